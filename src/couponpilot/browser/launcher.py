"""Playwright page lifecycle for CLI runs.

Opens a single Chromium page on the target checkout URL and tears the
browser down when the caller is done.  Navigation falls back to weaker
wait strategies when the preferred one times out, since checkout pages
often keep analytics connections open indefinitely.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Literal

from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

if TYPE_CHECKING:
    from playwright.async_api import Page

    from couponpilot.settings.config import BrowserSettings

logger = logging.getLogger(__name__)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]

_FALLBACK_STRATEGY: list[WaitUntil] = ["networkidle", "load", "domcontentloaded"]


def _build_fallback_chain(preferred: str) -> list[WaitUntil]:
    """Return *preferred* followed by every weaker strategy."""
    if preferred not in _FALLBACK_STRATEGY:
        return [preferred]  # type: ignore[list-item]
    idx = _FALLBACK_STRATEGY.index(preferred)  # type: ignore[arg-type]
    return _FALLBACK_STRATEGY[idx:]


async def goto_with_fallback(page: Page, url: str, *, timeout_ms: int, wait_until: str = "load") -> None:
    """Navigate to *url*, relaxing the wait strategy on timeout."""
    strategies = _build_fallback_chain(wait_until)
    for strategy in strategies:
        try:
            logger.debug("goto %s (wait_until=%s, timeout=%dms)", url, strategy, timeout_ms)
            await page.goto(url, wait_until=strategy, timeout=timeout_ms)
            return
        except PlaywrightTimeout:
            if strategy == strategies[-1]:
                raise
            logger.info("Navigation wait '%s' timed out for %s, relaxing", strategy, url)


@asynccontextmanager
async def open_page(url: str, settings: BrowserSettings | None = None) -> AsyncIterator[Page]:
    """Launch Chromium, open *url* and yield the page.

    Args:
        url: Checkout page to open.
        settings: Browser settings; defaults to the resolved couponpilot settings.
    """
    if settings is None:
        from couponpilot.settings import get_settings

        settings = get_settings().browser

    context_args: dict = {}
    if settings.user_agent:
        context_args["user_agent"] = settings.user_agent

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=settings.headless)
        context = await browser.new_context(**context_args)
        try:
            page = await context.new_page()
            await goto_with_fallback(page, url, timeout_ms=settings.timeout_ms, wait_until=settings.wait_until)
            logger.info("Opened %s (headless=%s)", page.url, settings.headless)
            yield page
        finally:
            await context.close()
            await browser.close()
