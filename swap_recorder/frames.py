# frames.py
import asyncio
import logging
from typing import Optional, Dict, List

from playwright.async_api import Page, Frame, Error as PlaywrightError

from .constants import FRAME_WAIT_TIMEOUT, FRAME_POLL_INTERVAL
from .models import FrameInfo
from .utils import short_url

logger = logging.getLogger(__name__)

FRAME_INFO_SCRIPT = '''() => ({
    title: document.title || '',
    hasWallet: typeof window.ethereum !== 'undefined',
    elementCount: document.querySelectorAll('*').length
})'''


class FrameTracker:
    """Registry of live child frames, keyed by url in attachment order"""

    def __init__(self, page: Page):
        self.page = page
        self._frames: Dict[str, Frame] = {}
        self.attached = False

    def attach(self):
        if self.attached:
            return
        for frame in self.page.frames:
            self._on_attached(frame)
        self.page.on('frameattached', self._on_attached)
        self.page.on('framedetached', self._on_detached)
        self.page.on('framenavigated', self._on_navigated)
        self.attached = True

    def detach(self):
        if not self.attached:
            return
        self.page.remove_listener('frameattached', self._on_attached)
        self.page.remove_listener('framedetached', self._on_detached)
        self.page.remove_listener('framenavigated', self._on_navigated)
        self.attached = False

    def _is_main(self, frame: Frame) -> bool:
        return frame is self.page.main_frame

    def _on_attached(self, frame: Frame):
        if self._is_main(frame):
            return
        self._frames[frame.url] = frame
        logger.debug(f"Frame attached: {short_url(frame.url)}")

    def _on_detached(self, frame: Frame):
        self._frames = {url: tracked for url, tracked in self._frames.items() if tracked is not frame}
        logger.debug(f"Frame detached: {short_url(frame.url)}")

    def _on_navigated(self, frame: Frame):
        if self._is_main(frame):
            return
        # re-key in place so attachment order survives navigation
        rekeyed = {}
        for url, tracked in self._frames.items():
            rekeyed[frame.url if tracked is frame else url] = tracked
        if frame not in rekeyed.values():
            rekeyed[frame.url] = frame
        self._frames = rekeyed

    def tracked_frames(self) -> List[Frame]:
        return list(self._frames.values())

    async def resolve_frame(self, selector: str) -> Frame:
        """Frame that contains selector; root document wins, falls back to the root"""
        main = self.page.main_frame
        if await self._contains(main, selector):
            return main
        for frame in self.tracked_frames():
            if await self._contains(frame, selector):
                return frame
        return main

    async def _contains(self, frame: Frame, selector: str) -> bool:
        try:
            if frame.is_detached():
                return False
            return await frame.query_selector(selector) is not None
        except PlaywrightError as e:
            logger.debug(f"Selector probe failed in {short_url(frame.url)}: {e}")
            return False

    async def snapshot_frames(self) -> List[FrameInfo]:
        snapshots = []
        main = self.page.main_frame
        for frame in self.page.frames:
            is_main = frame is main
            try:
                data = await frame.evaluate(FRAME_INFO_SCRIPT)
                snapshots.append(FrameInfo(
                    url=frame.url,
                    is_main_frame=is_main,
                    name=frame.name or '',
                    title=data.get('title', ''),
                    has_wallet=bool(data.get('hasWallet', False)),
                    element_count=int(data.get('elementCount', 0)),
                ))
            except PlaywrightError as e:
                logger.debug(f"Frame snapshot failed for {short_url(frame.url)}: {e}")
                snapshots.append(FrameInfo(url=frame.url, is_main_frame=is_main, name=frame.name or '', error=True))
        return snapshots

    def find_frame_by_url_substring(self, pattern: str) -> Optional[Frame]:
        for url, frame in self._frames.items():
            if pattern in url:
                return frame
        return None

    async def wait_for_frame(self, pattern: str, timeout: int = FRAME_WAIT_TIMEOUT,
                             poll_interval: int = FRAME_POLL_INTERVAL) -> Optional[Frame]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout / 1000
        while True:
            frame = self.find_frame_by_url_substring(pattern)
            if frame is not None:
                return frame
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.debug(f"No frame matching '{pattern}' after {timeout}ms")
                return None
            await asyncio.sleep(min(poll_interval / 1000, remaining))
