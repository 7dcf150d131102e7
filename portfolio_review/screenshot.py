"""
Local full-page screenshot of a portfolio.

Usage:
    python -m portfolio_review.screenshot https://your-portfolio.com
"""

import re
import sys
import asyncio
import logging
import argparse
from typing import List, Optional

from .browser import launch_browser
from .capturer import DESKTOP_VIEWPORT

logger = logging.getLogger(__name__)


def normalize_url(raw: str) -> str:
    raw = raw.strip()
    return raw if raw.startswith("http") else f"https://{raw}"


def screenshot_filename(url: str) -> str:
    safe_name = re.sub(r"^https?://", "", url)
    safe_name = re.sub(r"[^\w.-]", "_", safe_name)
    return f"screenshot-{safe_name}.png"


async def take_screenshot(url: str, path: str, timeout_s: float = 30.0) -> str:
    async with launch_browser() as browser:
        context = await browser.new_context(viewport=DESKTOP_VIEWPORT)
        page = await context.new_page()
        await page.goto(url, wait_until="networkidle", timeout=int(timeout_s * 1000))
        await page.screenshot(path=path, full_page=True)
    return path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Save a full-page screenshot of a portfolio URL.")
    parser.add_argument("url", nargs="?", help="Portfolio URL (https:// is added when missing)")
    parser.add_argument("--output", "-o", help="Output file (default: derived from the URL)")
    parser.add_argument("--timeout", type=float, default=30.0, help="Load timeout in seconds")
    args = parser.parse_args(argv)

    if not args.url:
        print("No URL given.\nUsage: python -m portfolio_review.screenshot https://your-portfolio.com", file=sys.stderr)
        return 1

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    url = normalize_url(args.url)
    path = args.output or screenshot_filename(url)
    asyncio.run(take_screenshot(url, path, args.timeout))
    print(f"Screenshot saved: {path} for URL: {url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
