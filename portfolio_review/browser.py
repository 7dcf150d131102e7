import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Browser, async_playwright

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


@asynccontextmanager
async def launch_browser() -> AsyncIterator[Browser]:
    """Headless Chromium that is always closed on exit, including on cancellation."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=True, args=CHROMIUM_ARGS)
        logger.debug("browser.launched")
        try:
            yield browser
        finally:
            await browser.close()
            logger.debug("browser.closed")
