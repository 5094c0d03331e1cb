# engine.py
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, Set

from playwright.async_api import Page, Frame, ConsoleMessage, Error as PlaywrightError

from .capture import ActionCapture, parse_raw_action, record_timestamp
from .constants import (
    NAVIGATION_TIMEOUT, STOP_POLL_INTERVAL, STOP_SETTLE_DELAY, MEMORY_CHECK_INTERVAL,
    MEMORY_TRIM_AGE, MAX_BUFFERED_ACTIONS, MAX_BUFFERED_REQUESTS, ACTION_TRIM_THRESHOLD,
    ACTION_TRIM_KEEP, REQUEST_TRIM_THRESHOLD, REQUEST_TRIM_KEEP, MAX_ERRORS,
    LISTENER_RETRY_DELAY, CONSOLE_TAG,
)
from .dom_script import RECORDER_UI_SCRIPT, UPDATE_UI_SCRIPT, STOP_CHECK_SCRIPT
from .exceptions import RecorderError, SessionStateError
from .frames import FrameTracker
from .models import (
    ActionKind, SessionState, StopReason, WalletCapability, WalletAction, WalletProbe,
    Recording, OptimizedData, ChainInfo, BalanceInfo, SwapSettings,
)
from .network import NetworkMonitor
from .optimizer import DataOptimizer, format_report
from .probes import probe_wallet, detect_chain_info, get_balance_info, get_swap_settings
from .utils import now_ms, sleep_ms, normalize_url, short_url
from .waits import SmartWait

logger = logging.getLogger(__name__)


class RecorderEngine:
    """One recording session over a single page: Idle, Preparing, Recording, Stopping, Stopped"""

    def __init__(self, page: Page, config: Optional[Dict[str, Any]] = None):
        self.page = page
        self.config = config or {}
        self.state = SessionState.IDLE
        self.frames = FrameTracker(page)
        self.waits = SmartWait(page, self.frames, self.config)
        self.capture = ActionCapture(page)
        self.network = NetworkMonitor(page)

        self.session_id: Optional[str] = None
        self.name = ''
        self.url = ''
        self.created_at = ''
        self.start_ms = 0
        self.error_count = 0
        self.max_errors = self.config.get('max_errors', MAX_ERRORS)
        self.stop_reason: Optional[StopReason] = None

        self.wallet: Optional[WalletProbe] = None
        self.chain_info: Optional[ChainInfo] = None
        self.balance_info: Optional[BalanceInfo] = None
        self.swap_settings: Optional[SwapSettings] = None

        self.recording: Optional[Recording] = None
        self.optimized: Optional[OptimizedData] = None
        self._tasks: Set[asyncio.Task] = set()
        self._last_trim = 0
        self._listening = False

    async def start(self, name: str, url: str):
        if self.state != SessionState.IDLE:
            raise SessionStateError(f"Cannot start a session that is {self.state.value}")
        self.state = SessionState.PREPARING
        self.session_id = str(uuid.uuid4())
        self.name = name
        self.url = url
        self.created_at = datetime.now().isoformat()
        logger.info(f"Starting recording '{name}' on {url}")

        try:
            if normalize_url(self.page.url) != normalize_url(url):
                await self.page.goto(url, wait_until='domcontentloaded',
                                     timeout=self.config.get('navigation_timeout', NAVIGATION_TIMEOUT))
            await self._run_probes()

            self.start_ms = now_ms()
            self._last_trim = self.start_ms
            await self.network.start(self.start_ms)
            instrumented = await self.capture.install()
            self.frames.attach()
            self.page.on('framenavigated', self._on_frame_navigated)
            self.page.on('console', self._on_console)
            self.page.on('close', self._on_page_close)
            self._listening = True
            await self.inject_ui()
            await self.waits.wait_after_action('initial-load')
        except Exception as e:
            self.state = SessionState.STOPPED
            self._detach_listeners()
            await self.network.stop()
            raise RecorderError(f"Failed to start recording: {e}") from e

        self.state = SessionState.RECORDING
        self._spawn(self._memory_guard())
        if not instrumented:
            self._spawn(self.handle_recording_error(RecorderError("capture script is not active"), 'listener-setup'))
        logger.info("Recording started, use the STOP RECORDING button in the page to finish")

    async def _run_probes(self):
        self.wallet = await probe_wallet(self.page)
        if self.wallet.capability == WalletCapability.PRESENT:
            self.chain_info = await detect_chain_info(self.page)
            self.balance_info = await get_balance_info(self.page)
        self.swap_settings = await get_swap_settings(self.page)

        missing = [label for label, value in (
            ('chain info', self.chain_info),
            ('balance', self.balance_info),
            ('swap settings', self.swap_settings),
        ) if value is None]
        if missing:
            logger.warning(f"Recording without {', '.join(missing)}; some context will be missing")

    async def inject_ui(self) -> bool:
        try:
            return bool(await self.page.evaluate(RECORDER_UI_SCRIPT))
        except PlaywrightError as e:
            logger.debug(f"Recorder overlay not injected: {e}")
            return False

    async def _refresh_ui(self):
        try:
            await self.page.evaluate(UPDATE_UI_SCRIPT, {
                'actions': self.capture.total(),
                'clicks': self.capture.count('click'),
                'network': len(self.network),
            })
        except PlaywrightError as e:
            logger.debug(f"Overlay refresh skipped: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_frame_navigated(self, frame: Frame):
        if self.state != SessionState.RECORDING or frame is not self.page.main_frame:
            return
        self.capture.record_navigation(frame.url)
        logger.info(f"Navigated to {short_url(frame.url)}")
        self._spawn(self._after_navigation())

    async def _after_navigation(self):
        try:
            await self.waits.wait_after_action('navigation')
            if not await self.inject_ui():
                await self.page.wait_for_load_state('domcontentloaded')
                await self.inject_ui()
        except PlaywrightError as e:
            await self.handle_recording_error(e, 'frame-navigation')

    def _on_console(self, message: ConsoleMessage):
        text = message.text
        if CONSOLE_TAG not in text:
            return
        if message.type == 'error':
            logger.warning(f"Page: {text}")
        else:
            logger.debug(f"Page: {text}")

    def _on_page_close(self, page: Page):
        if self.stop_reason is None:
            self.stop_reason = StopReason.PAGE_CLOSED
        logger.warning("Recorded page was closed")

    def _detach_listeners(self):
        self.frames.detach()
        if not self._listening:
            return
        self._listening = False
        self.page.remove_listener('framenavigated', self._on_frame_navigated)
        self.page.remove_listener('console', self._on_console)
        self.page.remove_listener('close', self._on_page_close)

    async def handle_recording_error(self, error: Exception, context: str):
        self.error_count += 1
        logger.error(f"Recording error in {context} ({self.error_count}/{self.max_errors}): {error}")
        if self.error_count >= self.max_errors:
            logger.error("Too many recording errors, stopping the session")
            self.stop_reason = self.stop_reason or StopReason.ERROR_LIMIT
            return

        if context == 'frame-navigation':
            try:
                await self.page.reload(wait_until='domcontentloaded')
                await self.inject_ui()
                logger.info("Page reloaded after navigation error")
            except PlaywrightError as e:
                logger.warning(f"Page reload failed: {e}")
        elif context == 'listener-setup':
            await sleep_ms(LISTENER_RETRY_DELAY)
            if self.state != SessionState.RECORDING:
                return
            injected = await self.capture.inject_all()
            logger.info(f"Re-instrumented {injected} frames")

    async def wait_for_stop(self) -> StopReason:
        if self.state != SessionState.RECORDING:
            raise SessionStateError(f"Cannot wait on a session that is {self.state.value}")
        while self.stop_reason is None:
            if self.page.is_closed():
                self.stop_reason = StopReason.PAGE_CLOSED
                break
            try:
                if await self.page.evaluate(STOP_CHECK_SCRIPT):
                    self.stop_reason = StopReason.OPERATOR
                    break
            except PlaywrightError as e:
                logger.debug(f"Stop poll skipped: {e}")
            await self._refresh_ui()
            await sleep_ms(STOP_POLL_INTERVAL)
        logger.info(f"Stop requested ({self.stop_reason.value})")
        return self.stop_reason

    def check_memory(self) -> bool:
        actions = self.capture.total()
        requests = len(self.network)
        stale = now_ms() - self._last_trim > MEMORY_TRIM_AGE
        if not (stale or actions > MAX_BUFFERED_ACTIONS or requests > MAX_BUFFERED_REQUESTS):
            return False
        removed_actions = self.capture.trim(ACTION_TRIM_THRESHOLD, ACTION_TRIM_KEEP)
        removed_requests = self.network.trim(REQUEST_TRIM_THRESHOLD, REQUEST_TRIM_KEEP)
        self._last_trim = now_ms()
        if removed_actions or removed_requests:
            logger.warning(f"Memory guard dropped {removed_actions} actions and {removed_requests} requests")
        return True

    async def _memory_guard(self):
        while self.state == SessionState.RECORDING:
            await sleep_ms(MEMORY_CHECK_INTERVAL)
            self.check_memory()

    async def stop(self) -> Recording:
        if self.state != SessionState.RECORDING:
            raise SessionStateError(f"Cannot stop a session that is {self.state.value}")
        self.state = SessionState.STOPPING
        page_alive = not self.page.is_closed()
        if page_alive:
            await sleep_ms(STOP_SETTLE_DELAY)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._detach_listeners()
        await self.network.stop()

        raw = self.capture.drain_all()
        raw.sort(key=lambda record: record_timestamp(record) or 0)
        actions = tuple(
            action for action in (parse_raw_action(record, self.start_ms) for record in raw)
            if action is not None
        )
        wallet_actions = tuple(
            WalletAction(
                timestamp=action.timestamp,
                method=action.wallet_method,
                params=action.wallet_params,
                selector=action.selector,
                value=action.value,
            )
            for action in actions if action.kind == ActionKind.WALLET
        )
        frames = tuple(await self.frames.snapshot_frames()) if page_alive else ()
        has_wallet = (
            (self.wallet is not None and self.wallet.capability != WalletCapability.ABSENT)
            or any(frame.has_wallet for frame in frames)
        )

        self.recording = Recording(
            id=self.session_id,
            name=self.name,
            url=self.url,
            created_at=self.created_at,
            duration=now_ms() - self.start_ms,
            actions=actions,
            network_requests=self.network.requests(),
            wallet_actions=wallet_actions,
            frames=frames,
            has_wallet=has_wallet,
            chain_info=self.chain_info,
            balance_info=self.balance_info,
            swap_settings=self.swap_settings,
        )
        logger.info(f"Recorded {len(actions)} actions, {len(self.recording.network_requests)} requests, "
                    f"{len(wallet_actions)} wallet calls in {self.recording.duration / 1000:.1f}s")

        self.optimized = DataOptimizer(self.recording).optimize()
        logger.info(format_report(self.optimized))
        self.state = SessionState.STOPPED
        return self.recording
