from contextlib import asynccontextmanager
from typing import AsyncIterator
from urllib.parse import urlencode

from playwright.async_api import Browser, Page, Playwright, async_playwright

from logger import get_logger

log = get_logger(__name__)

PROXY_URL = "https://proxy.scrapeops.io/v1/"

_SCROLL_STEP_PX  = 100
_SCROLL_DELAY_MS = 100
_MAX_SCROLL_STEPS = 500
_NAV_TIMEOUT_MS  = 90_000

_AT_BOTTOM_JS = "() => window.innerHeight + window.scrollY >= document.body.scrollHeight"



def build_proxy_url(url: str, api_key: str, location: str, wait_ms: int = 5000) -> str:
    params = {
        "api_key": api_key,
        "url":     url,
        "country": location,
        "wait":    wait_ms,
    }
    return f"{PROXY_URL}?{urlencode(params)}"


async def auto_scroll(page: Page, max_steps: int = _MAX_SCROLL_STEPS) -> int:
    """
    Scroll down until the viewport touches the bottom of the document so
    lazily loaded cards get rendered. Returns the number of steps taken.
    """
    steps = 0
    while steps < max_steps:
        await page.evaluate(f"window.scrollBy(0, {_SCROLL_STEP_PX})")
        await page.wait_for_timeout(_SCROLL_DELAY_MS)
        steps += 1
        if await page.evaluate(_AT_BOTTOM_JS):
            break
    else:
        log.debug("Stopped scrolling after %d steps", steps)
    return steps



class PageSession:
    """One browser page, valid for a single attempt."""

    def __init__(self, page: Page, api_key: str, location: str, wait_ms: int):
        self.page     = page
        self.api_key  = api_key
        self.location = location
        self.wait_ms  = wait_ms

    async def fetch(self, url: str, wait_until: str = "networkidle") -> str:
        log.info("Navigating to: %s", url)
        await self.page.goto(
            build_proxy_url(url, self.api_key, self.location, self.wait_ms),
            wait_until=wait_until,
            timeout=_NAV_TIMEOUT_MS,
        )
        await auto_scroll(self.page)
        return await self.page.content()


class Renderer:
    """
    Owns the Playwright driver for the whole run. Each call to
    ``session()`` launches its own browser and closes it on exit, so
    retries never reuse a broken page.
    """

    def __init__(
        self,
        api_key: str,
        location: str = "us",
        user_agent: str | None = None,
        headless: bool = True,
        wait_ms: int = 5000,
    ):
        self.api_key    = api_key
        self.location   = location
        self.user_agent = user_agent
        self.headless   = headless
        self.wait_ms    = wait_ms
        self._playwright: Playwright | None = None

    async def __aenter__(self) -> "Renderer":
        self._playwright = await async_playwright().start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PageSession]:
        if self._playwright is None:
            raise RuntimeError("Renderer must be entered with 'async with' first")

        browser: Browser = await self._playwright.chromium.launch(headless=self.headless)
        try:
            context = await browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=self.user_agent,
            )
            page = await context.new_page()
            yield PageSession(page, self.api_key, self.location, self.wait_ms)
        finally:
            await browser.close()
