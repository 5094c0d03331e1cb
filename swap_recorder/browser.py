# browser.py
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from playwright.async_api import async_playwright, Playwright, BrowserContext, Page

from .constants import PROFILE_DIR, VIEWPORT, NAVIGATION_TIMEOUT

logger = logging.getLogger(__name__)


class BrowserSession:
    """Chromium with a persistent profile so wallet extensions keep their state"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.playwright: Optional[Playwright] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def initialize(self):
        profile = Path(self.config.get('profile', PROFILE_DIR))
        profile.mkdir(parents=True, exist_ok=True)

        args = ['--disable-blink-features=AutomationControlled']
        extension = self.config.get('extension')
        if extension:
            extension = str(Path(extension).resolve())
            args += [f'--disable-extensions-except={extension}', f'--load-extension={extension}']
            logger.info(f"Loading extension from {extension}")

        self.playwright = await async_playwright().start()
        self.context = await self.playwright.chromium.launch_persistent_context(
            str(profile),
            headless=self.config.get('headless', False),
            viewport=VIEWPORT,
            args=args,
        )
        self.context.set_default_navigation_timeout(self.config.get('navigation_timeout', NAVIGATION_TIMEOUT))
        self.page = self.context.pages[0] if self.context.pages else await self.context.new_page()
        logger.info(f"Browser ready with profile {profile}")

    async def cleanup(self):
        if self.context:
            await self.context.close()
            self.context = None
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None
