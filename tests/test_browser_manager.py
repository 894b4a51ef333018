import asyncio

import pytest

from gmaps_scraper import browser_manager
from gmaps_scraper.browser_manager import BrowserManager, PlaywrightSession
from gmaps_scraper.config import ScrapingConfig


class _Context:
    def __init__(self, fail_close=False):
        self.pages = []
        self.closed = False
        self.fail_close = fail_close

    async def new_page(self):
        page = object()
        self.pages.append(page)
        return page

    async def close(self):
        if self.fail_close:
            raise RuntimeError("Target closed")
        self.closed = True


class _Browser:
    def __init__(self, fail_first_context_close=False):
        self.contexts = []
        self.context_kwargs = []
        self.closed = False
        self.fail_first_context_close = fail_first_context_close

    async def new_context(self, **kwargs):
        context = _Context(fail_close=self.fail_first_context_close and not self.contexts)
        self.contexts.append(context)
        self.context_kwargs.append(kwargs)
        return context

    async def close(self):
        self.closed = True


class _Chromium:
    def __init__(self, browser=None, error=None):
        self.browser = browser or _Browser()
        self.error = error
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.error:
            raise self.error
        return self.browser


class _Playwright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def stop(self):
        self.stopped = True


class _Starter:
    def __init__(self, playwright):
        self.playwright = playwright

    async def start(self):
        return self.playwright


# ---------------------------------------------------------------------------
# PlaywrightSession
# ---------------------------------------------------------------------------

class TestPlaywrightSession:
    def test_default_pages_share_one_context(self):
        browser = _Browser()
        session = PlaywrightSession(_Playwright(_Chromium(browser)), browser, "UA/1.0")

        async def _open():
            await session.new_page()
            await session.new_page()

        asyncio.run(_open())

        assert len(browser.contexts) == 1
        assert len(browser.contexts[0].pages) == 2
        assert browser.context_kwargs[0]['user_agent'] == "UA/1.0"

    def test_isolated_pages_get_their_own_context(self):
        browser = _Browser()
        session = PlaywrightSession(_Playwright(_Chromium(browser)), browser, "UA/1.0")

        async def _open():
            await asyncio.gather(*[session.new_page(isolated=True) for _ in range(3)])

        asyncio.run(_open())

        assert len(browser.contexts) == 3
        assert all(len(context.pages) == 1 for context in browser.contexts)

    def test_close_continues_past_failures(self):
        browser = _Browser(fail_first_context_close=True)
        playwright = _Playwright(_Chromium(browser))
        session = PlaywrightSession(playwright, browser, "UA/1.0")

        async def _run():
            await session.new_page()
            await session.new_page(isolated=True)
            await session.close()

        asyncio.run(_run())

        assert browser.contexts[1].closed
        assert browser.closed
        assert playwright.stopped


# ---------------------------------------------------------------------------
# BrowserManager
# ---------------------------------------------------------------------------

class TestBrowserManager:
    def test_launches_with_configured_options(self, monkeypatch):
        chromium = _Chromium()
        monkeypatch.setattr(browser_manager, 'async_playwright', lambda: _Starter(_Playwright(chromium)))

        session = asyncio.run(BrowserManager(ScrapingConfig(headless=False, user_agent="UA/2.0")).acquire_session())

        assert isinstance(session, PlaywrightSession)
        assert chromium.launch_kwargs['headless'] is False

    def test_launch_failure_stops_playwright(self, monkeypatch):
        playwright = _Playwright(_Chromium(error=RuntimeError("Executable doesn't exist")))
        monkeypatch.setattr(browser_manager, 'async_playwright', lambda: _Starter(playwright))

        with pytest.raises(RuntimeError):
            asyncio.run(BrowserManager(ScrapingConfig()).acquire_session())

        assert playwright.stopped
