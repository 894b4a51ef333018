"""
Browser session provider for the extraction core.

The orchestrator only sees the SessionProvider / BrowserSession protocols;
BrowserManager is the Playwright-backed implementation.
"""

import asyncio
from typing import Any, List, Optional, Protocol

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from gmaps_scraper.config import ScrapingConfig
from gmaps_scraper.utils.anti_detection import DEFAULT_VIEWPORT, get_browser_launch_options, pick_user_agent


class BrowserSession(Protocol):
    async def new_page(self, isolated: bool = False) -> Any:
        ...

    async def close(self) -> None:
        ...


class SessionProvider(Protocol):
    async def acquire_session(self) -> BrowserSession:
        ...


class PlaywrightSession:
    """
    One Chromium browser owned by a single extraction run.
    Isolated pages get their own context so worker pages never share state.
    """

    def __init__(self, playwright: Playwright, browser: Browser, user_agent: str):
        self._playwright = playwright
        self._browser = browser
        self._user_agent = user_agent
        self._contexts: List[BrowserContext] = []
        self._default_context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

    async def _new_context(self) -> BrowserContext:
        context = await self._browser.new_context(
            viewport=DEFAULT_VIEWPORT,
            user_agent=self._user_agent,
            locale='en-US',
        )
        self._contexts.append(context)
        return context

    async def new_page(self, isolated: bool = False) -> Page:
        async with self._lock:
            if isolated:
                context = await self._new_context()
            else:
                if self._default_context is None:
                    self._default_context = await self._new_context()
                context = self._default_context
        return await context.new_page()

    async def close(self) -> None:
        """Close contexts, browser and Playwright; each step tolerates an already-dead target"""
        for context in self._contexts:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"Context close failed: {e}")
        self._contexts.clear()
        self._default_context = None

        try:
            await self._browser.close()
        except Exception as e:
            logger.debug(f"Browser close failed: {e}")
        try:
            await self._playwright.stop()
        except Exception as e:
            logger.debug(f"Playwright stop failed: {e}")
        logger.info("Closed Playwright browser session.")


class BrowserManager:
    """
    Launches Playwright Chromium sessions for extraction runs.
    Each acquire_session() call returns a fresh, exclusively owned session.
    """

    def __init__(self, config: Optional[ScrapingConfig] = None):
        self.config = config or ScrapingConfig()

    async def acquire_session(self) -> PlaywrightSession:
        logger.info("Launching new Playwright browser instance...")
        pw = await async_playwright().start()
        try:
            browser = await pw.chromium.launch(**get_browser_launch_options(self.config))
        except Exception:
            await pw.stop()
            raise
        return PlaywrightSession(pw, browser, pick_user_agent(self.config))
