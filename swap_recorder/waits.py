# waits.py
import asyncio
import logging
from typing import Optional, Dict, Any

from playwright.async_api import Page, Frame, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from .constants import (
    ELEMENT_WAIT_TIMEOUT, CLICKABLE_WAIT_TIMEOUT, CLICKABLE_POLL_INTERVAL, ANIMATION_WAIT_CAP,
    STABILITY_DELAY, POPUP_WAIT_TIMEOUT, POPUP_SETTLE_DELAY, POPUP_IMAGE_TIMEOUT,
    LOADING_WAIT_TIMEOUT, WALLET_POPUP_TIMEOUT, WALLET_SETTLE_DELAY, NAVIGATION_WAIT_TIMEOUT,
    NETWORK_LOAD_TIMEOUT, NETWORK_SETTLE_WINDOW, NETWORK_IDLE_CEILING, WAIT_OVERHEAD,
    POPUP_SELECTOR, LOADING_SELECTOR, WALLET_PROMPT_SELECTOR, WALLET_POPUP_URL_MARKERS,
)
from .frames import FrameTracker
from .utils import sleep_ms

logger = logging.getLogger(__name__)

CLICKABLE_SCRIPT = '''(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) return false;
    const top = document.elementFromPoint(rect.left + rect.width / 2, rect.top + rect.height / 2);
    return !!top && (top === el || el.contains(top));
}'''

ANIMATION_SCRIPT = '''(selector) => {
    const el = document.querySelector(selector);
    if (!el) return 0;
    const style = window.getComputedStyle(el);
    const toMs = (value) => (value || '').split(',').map((part) => {
        const v = part.trim();
        return v.endsWith('ms') ? parseFloat(v) : parseFloat(v) * 1000;
    }).filter((n) => !isNaN(n));
    const durations = [...toMs(style.transitionDuration), ...toMs(style.animationDuration)];
    return durations.length ? Math.max(...durations) : 0;
}'''

NETWORK_QUIET_SCRIPT = '''({ settle, ceiling }) => new Promise((resolve) => {
    let timer = null;
    let cap = null;
    let observer = null;
    const finish = (reason) => {
        if (observer) observer.disconnect();
        clearTimeout(timer);
        clearTimeout(cap);
        resolve(reason);
    };
    const rearm = () => {
        clearTimeout(timer);
        timer = setTimeout(() => finish('settled'), settle);
    };
    cap = setTimeout(() => finish('ceiling'), ceiling);
    if (typeof PerformanceObserver === 'function') {
        observer = new PerformanceObserver((list) => {
            if (list.getEntries().length) rearm();
        });
        try {
            observer.observe({ entryTypes: ['resource'] });
        } catch (err) {
            observer = null;
        }
    }
    rearm();
})'''

PAGE_STATE_SCRIPT = '''({ popup, loading, wallet }) => ({
    popup: !!document.querySelector(popup),
    loading: !!document.querySelector(loading),
    wallet: !!document.querySelector(wallet),
    navigating: document.readyState !== 'complete'
})'''

LOADING_GONE_SCRIPT = '''(selector) => !Array.from(document.querySelectorAll(selector))
    .some((el) => el.offsetParent !== null)'''

POPUP_IMAGES_SCRIPT = '''({ selector, ceiling }) => new Promise((resolve) => {
    const popup = document.querySelector(selector);
    const pending = popup ? Array.from(popup.querySelectorAll('img')).filter((img) => !img.complete) : [];
    if (!pending.length) return resolve(true);
    let remaining = pending.length;
    const cap = setTimeout(() => resolve(false), ceiling);
    const done = () => {
        remaining -= 1;
        if (remaining <= 0) {
            clearTimeout(cap);
            resolve(true);
        }
    };
    pending.forEach((img) => {
        img.addEventListener('load', done, { once: true });
        img.addEventListener('error', done, { once: true });
    });
})'''


class SmartWait:
    """Bounded heuristics deciding when the page has settled around an action"""

    def __init__(self, page: Page, frame_tracker: FrameTracker, config: Optional[Dict[str, Any]] = None):
        self.page = page
        self.frames = frame_tracker
        self.enabled = (config or {}).get('smart_wait', True)

    def set_smart_wait(self, enabled: bool):
        self.enabled = enabled
        logger.info(f"Smart wait {'enabled' if enabled else 'disabled'}")

    async def _bounded(self, awaitable, timeout: int, stage: str) -> bool:
        try:
            await asyncio.wait_for(awaitable, (timeout + WAIT_OVERHEAD) / 1000)
            return True
        except (asyncio.TimeoutError, PlaywrightTimeoutError):
            logger.debug(f"{stage} wait gave up after {timeout}ms")
        except PlaywrightError as e:
            logger.debug(f"{stage} wait skipped: {e}")
        return False

    async def wait_before_action(self, selector: str, action: str = 'action'):
        if not self.enabled:
            return
        try:
            frame = await self.frames.resolve_frame(selector)
            await self._bounded(
                frame.wait_for_selector(selector, state='visible', timeout=ELEMENT_WAIT_TIMEOUT),
                ELEMENT_WAIT_TIMEOUT, 'element')
            await self._bounded(
                frame.wait_for_function(CLICKABLE_SCRIPT, arg=selector, polling=CLICKABLE_POLL_INTERVAL,
                                        timeout=CLICKABLE_WAIT_TIMEOUT),
                CLICKABLE_WAIT_TIMEOUT, 'clickable')
            await self._bounded(self._wait_for_animations(frame, selector), ANIMATION_WAIT_CAP, 'animation')
            await self.wait_for_network_idle()
            await sleep_ms(STABILITY_DELAY)
            logger.debug(f"Ready for {action} on {selector}")
        except Exception as e:
            logger.warning(f"Pre-action wait for {action} failed: {e}")

    async def _wait_for_animations(self, frame: Frame, selector: str):
        duration = await frame.evaluate(ANIMATION_SCRIPT, selector)
        if duration:
            await sleep_ms(min(float(duration), ANIMATION_WAIT_CAP))

    async def wait_after_action(self, label: str = 'action'):
        if not self.enabled:
            return
        try:
            state = await self._page_state()
            if state.get('popup'):
                await self._wait_for_popup()
            if state.get('loading'):
                await self._bounded(
                    self.page.wait_for_function(LOADING_GONE_SCRIPT, arg=LOADING_SELECTOR,
                                                timeout=LOADING_WAIT_TIMEOUT),
                    LOADING_WAIT_TIMEOUT, 'loading')
            if state.get('wallet'):
                await self._wait_for_wallet_popup()
            if state.get('navigating'):
                await self._bounded(
                    self.page.wait_for_load_state('load', timeout=NAVIGATION_WAIT_TIMEOUT),
                    NAVIGATION_WAIT_TIMEOUT, 'navigation')
            await self.wait_for_network_idle()
            logger.debug(f"Page settled after {label}")
        except Exception as e:
            logger.warning(f"Post-action wait after {label} failed: {e}")

    async def _page_state(self) -> Dict[str, bool]:
        try:
            return await self.page.evaluate(PAGE_STATE_SCRIPT, {
                'popup': POPUP_SELECTOR,
                'loading': LOADING_SELECTOR,
                'wallet': WALLET_PROMPT_SELECTOR,
            })
        except PlaywrightError as e:
            logger.debug(f"Page state probe failed: {e}")
            return {}

    async def _wait_for_popup(self):
        await self._bounded(
            self.page.wait_for_selector(POPUP_SELECTOR, state='visible', timeout=POPUP_WAIT_TIMEOUT),
            POPUP_WAIT_TIMEOUT, 'popup')
        await sleep_ms(POPUP_SETTLE_DELAY)
        await self._bounded(
            self.page.evaluate(POPUP_IMAGES_SCRIPT, {'selector': POPUP_SELECTOR, 'ceiling': POPUP_IMAGE_TIMEOUT}),
            POPUP_IMAGE_TIMEOUT, 'popup images')

    async def _wait_for_wallet_popup(self):
        pages = self.page.context.pages
        if any(marker in page.url for page in pages for marker in WALLET_POPUP_URL_MARKERS):
            logger.info("Wallet popup open, letting it settle")
            await sleep_ms(WALLET_SETTLE_DELAY)
            return
        await self._bounded(
            self.page.wait_for_selector(WALLET_PROMPT_SELECTOR, state='visible', timeout=WALLET_POPUP_TIMEOUT),
            WALLET_POPUP_TIMEOUT, 'wallet prompt')

    async def wait_for_network_idle(self):
        await self._bounded(
            self.page.wait_for_load_state('load', timeout=NETWORK_LOAD_TIMEOUT),
            NETWORK_LOAD_TIMEOUT, 'load state')
        await self._bounded(
            self.page.evaluate(NETWORK_QUIET_SCRIPT, {'settle': NETWORK_SETTLE_WINDOW, 'ceiling': NETWORK_IDLE_CEILING}),
            NETWORK_IDLE_CEILING, 'network quiescence')
