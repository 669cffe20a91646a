"""Browser session lifecycle for a single funnel run"""

import os
from datetime import datetime
from pathlib import Path
from typing import Optional
from loguru import logger

from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from src.browser.driver import PageDriver


def screenshot_path(directory: str, name: str) -> Path:
    """screenshots/<name>_<timestamp>.png, creating the directory"""
    screenshots_dir = Path(directory)
    screenshots_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    return screenshots_dir / f"{name}_{timestamp}.png"


class BrowserSession:
    """One browser, one context, one page; owned exclusively by one run.

    Use as an async context manager so the browser is closed on every exit
    path:

        async with BrowserSession(config, correlation_id) as session:
            await machine.run(...)
    """

    def __init__(self, config, correlation_id: str = "N/A"):
        """
        Args:
            config: FunnelConfig (viewport, user agent, headless default)
            correlation_id: Unique ID for logging/tracing
        """
        self.config = config
        self.correlation_id = correlation_id
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._driver: Optional[PageDriver] = None
        self._playwright = None

    @property
    def driver(self) -> PageDriver:
        if not self._driver:
            raise ValueError("Browser not started")
        return self._driver

    async def start_browser(self, headless: bool = None):
        """
        Start a fresh Playwright browser.

        Args:
            headless: Override headless mode. If None, uses config then HEADLESS env var
        """
        if headless is None:
            headless = self.config.headless or os.getenv('HEADLESS', 'false').lower() in ('true', '1', 'yes')

        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(
            headless=headless,
            args=["--disable-blink-features=AutomationControlled"]
        )
        self.context = await self.browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            user_agent=self.config.user_agent,
        )
        self.page = await self.context.new_page()
        self._driver = PageDriver(self.page, self.correlation_id)

        mode = "headless" if headless else "headed"
        logger.info(f"[{self.correlation_id}] Browser started in {mode} mode")

    async def close_browser(self):
        """Close browser"""
        try:
            if self.context:
                await self.context.close()

            if self.browser:
                await self.browser.close()

            if self._playwright:
                await self._playwright.stop()

            logger.info(f"[{self.correlation_id}] Browser closed")
        except Exception as e:
            logger.debug(f"[{self.correlation_id}] Error closing browser: {e}")
        finally:
            self.page = None
            self.context = None
            self.browser = None
            self._driver = None
            self._playwright = None

    async def __aenter__(self) -> "BrowserSession":
        try:
            await self.start_browser()
        except Exception:
            await self.close_browser()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close_browser()
