"""
Tests for the frame registry and frame resolution
"""
import asyncio
import time
import pytest
from unittest.mock import Mock, MagicMock, AsyncMock
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from playwright.async_api import Error as PlaywrightError

from swap_recorder.frames import FrameTracker


def make_frame(url, has=False, name=''):
    frame = MagicMock()
    frame.url = url
    frame.name = name
    frame.is_detached = Mock(return_value=False)
    frame.query_selector = AsyncMock(return_value=object() if has else None)
    frame.evaluate = AsyncMock(return_value={'title': 'Page', 'hasWallet': False, 'elementCount': 42})
    return frame


def make_page(main, *children):
    page = MagicMock()
    page.main_frame = main
    page.frames = [main, *children]
    return page


class TestFrameRegistry:
    """Attach, detach and navigate bookkeeping"""

    def test_attach_seeds_existing_frames(self):
        """Main frame is never tracked"""
        main = make_frame('https://dex.example.org')
        child = make_frame('https://widget.example.org')
        tracker = FrameTracker(make_page(main, child))
        tracker.attach()
        assert tracker.tracked_frames() == [child]
        assert tracker.page.on.call_count == 3

    def test_detach_removes(self):
        """Detached frames leave the registry"""
        main = make_frame('https://dex.example.org')
        first = make_frame('https://a.example.org')
        second = make_frame('https://b.example.org')
        tracker = FrameTracker(make_page(main, first, second))
        tracker.attach()
        tracker._on_detached(first)
        assert tracker.tracked_frames() == [second]

    def test_navigate_rekeys_in_place(self):
        """Attachment order survives a frame navigation"""
        main = make_frame('https://dex.example.org')
        first = make_frame('about:blank')
        second = make_frame('https://b.example.org')
        tracker = FrameTracker(make_page(main, first, second))
        tracker.attach()
        first.url = 'https://a.example.org/widget'
        tracker._on_navigated(first)
        assert tracker.tracked_frames() == [first, second]
        assert tracker.find_frame_by_url_substring('a.example.org') is first
        assert tracker.find_frame_by_url_substring('about:blank') is None

    def test_find_frame(self):
        """Substring lookup"""
        main = make_frame('https://dex.example.org')
        child = make_frame('https://verify.walletconnect.com/frame')
        tracker = FrameTracker(make_page(main, child))
        tracker.attach()
        assert tracker.find_frame_by_url_substring('walletconnect') is child
        assert tracker.find_frame_by_url_substring('nothing') is None

    def test_detach_listeners_once(self):
        """Detach is a no-op when not attached"""
        tracker = FrameTracker(make_page(make_frame('https://dex.example.org')))
        tracker.detach()
        tracker.page.remove_listener.assert_not_called()
        tracker.attach()
        tracker.detach()
        assert tracker.page.remove_listener.call_count == 3


class TestResolveFrame:
    """resolve_frame"""

    @pytest.mark.asyncio
    async def test_selector_only_in_child(self):
        """Unique frame containing the selector"""
        main = make_frame('https://dex.example.org')
        child = make_frame('https://widget.example.org', has=True)
        tracker = FrameTracker(make_page(main, child))
        tracker.attach()
        assert await tracker.resolve_frame('#swap') is child

    @pytest.mark.asyncio
    async def test_root_wins(self):
        """Root and child both match"""
        main = make_frame('https://dex.example.org', has=True)
        child = make_frame('https://widget.example.org', has=True)
        tracker = FrameTracker(make_page(main, child))
        tracker.attach()
        assert await tracker.resolve_frame('#swap') is main
        child.query_selector.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_match_falls_back_to_root(self):
        """Neither matches"""
        main = make_frame('https://dex.example.org')
        child = make_frame('https://widget.example.org')
        tracker = FrameTracker(make_page(main, child))
        tracker.attach()
        assert await tracker.resolve_frame('#swap') is main

    @pytest.mark.asyncio
    async def test_probe_errors_skipped(self):
        """A failing frame does not stop the search"""
        main = make_frame('https://dex.example.org')
        broken = make_frame('https://broken.example.org')
        broken.query_selector.side_effect = PlaywrightError('Execution context was destroyed')
        detached = make_frame('https://gone.example.org', has=True)
        detached.is_detached.return_value = True
        target = make_frame('https://widget.example.org', has=True)
        tracker = FrameTracker(make_page(main, broken, detached, target))
        tracker.attach()
        assert await tracker.resolve_frame('#swap') is target
        detached.query_selector.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_root_error_never_raises(self):
        """Invalid selector on the root"""
        main = make_frame('https://dex.example.org')
        main.query_selector.side_effect = PlaywrightError('not a valid selector')
        tracker = FrameTracker(make_page(main))
        assert await tracker.resolve_frame('##') is main


class TestSnapshotFrames:
    """snapshot_frames"""

    @pytest.mark.asyncio
    async def test_snapshot_with_error_marker(self):
        """Per-frame failure is marked, not fatal"""
        main = make_frame('https://dex.example.org')
        main.evaluate.return_value = {'title': 'Swap', 'hasWallet': True, 'elementCount': 300}
        child = make_frame('https://widget.example.org', name='widget')
        child.evaluate.side_effect = PlaywrightError('Frame was detached')
        tracker = FrameTracker(make_page(main, child))
        root, broken = await tracker.snapshot_frames()
        assert root.is_main_frame is True
        assert root.title == 'Swap'
        assert root.has_wallet is True
        assert root.element_count == 300
        assert root.error is False
        assert broken.error is True
        assert broken.name == 'widget'
        assert broken.is_main_frame is False


class TestWaitForFrame:
    """wait_for_frame"""

    @pytest.mark.asyncio
    async def test_not_found_after_timeout(self):
        """Returns None no earlier than the timeout and not much later"""
        tracker = FrameTracker(make_page(make_frame('https://dex.example.org')))
        started = time.monotonic()
        result = await tracker.wait_for_frame('walletconnect', timeout=200, poll_interval=50)
        elapsed = time.monotonic() - started
        assert result is None
        assert elapsed >= 0.19
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_found_while_polling(self):
        """A frame attached mid-wait is returned"""
        main = make_frame('https://dex.example.org')
        tracker = FrameTracker(make_page(main))
        tracker.attach()
        late = make_frame('https://verify.walletconnect.com')

        async def attach_later():
            await asyncio.sleep(0.1)
            tracker._on_attached(late)

        task = asyncio.create_task(attach_later())
        result = await tracker.wait_for_frame('walletconnect', timeout=1000, poll_interval=20)
        await task
        assert result is late

    @pytest.mark.asyncio
    async def test_immediate_match(self):
        """Already registered"""
        main = make_frame('https://dex.example.org')
        child = make_frame('https://verify.walletconnect.com')
        tracker = FrameTracker(make_page(main, child))
        tracker.attach()
        assert await tracker.wait_for_frame('walletconnect', timeout=0) is child
