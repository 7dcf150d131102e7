"""
Screenshot capture and upload.

Each capture renders to a temporary PNG, reads it back and removes the local
file before the bytes are uploaded under a unique name. Render, upload and
context failures leave the corresponding URL as None; they never fail the
request.
"""

import os
import logging
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from . import storage
from .browser import launch_browser
from .config import PipelineConfig
from .fetcher import extract_content, load_page
from .schemas import Screenshots

logger = logging.getLogger(__name__)

DESKTOP_VIEWPORT = {"width": 1280, "height": 800}
MOBILE_VIEWPORT = {"width": 375, "height": 812}

DESKTOP_FULL = "desktopFull"
DESKTOP_FOLD = "desktopFold"
MOBILE_FULL = "mobileFull"

CAPTURE_PLANS: Dict[str, Sequence[str]] = {
    "fast": (),
    "standard": (DESKTOP_FOLD,),
    "thorough": (DESKTOP_FULL, DESKTOP_FOLD, MOBILE_FULL),
}

_FIELD_FOR_KIND = {
    DESKTOP_FULL: "desktop_full",
    DESKTOP_FOLD: "desktop_fold",
    MOBILE_FULL: "mobile_full",
}


@dataclass
class CapturedPage:
    url: str
    loaded: bool = False
    title: str = ""
    word_count: int = 0
    screenshots: Screenshots = field(default_factory=Screenshots)


@contextmanager
def temp_png(tmp_dir: str = "") -> Iterator[str]:
    """Yield a temp .png path that is removed on exit, success or failure."""
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".png", dir=tmp_dir or None)
    tmp.close()
    try:
        yield tmp.name
    finally:
        try:
            os.remove(tmp.name)
        except FileNotFoundError:
            pass


async def capture_one(page, kind: str, prefix: str, config: PipelineConfig) -> Optional[str]:
    """Render one screenshot of `page` and upload it. Returns the public URL or None."""
    full_page = kind != DESKTOP_FOLD
    with temp_png(config.screenshot_tmp_dir) as path:
        try:
            await page.screenshot(path=path, full_page=full_page)
        except PlaywrightError as e:
            logger.warning("capturer.render_failed kind=%s url=%s err=%s", kind, page.url, str(e)[:200])
            return None
        with open(path, "rb") as f:
            data = f.read()

    try:
        return await storage.upload_screenshot_async(data, storage.unique_name(f"{prefix}-{kind}"))
    except storage.StorageError as e:
        logger.warning("capturer.upload_failed kind=%s url=%s err=%s", kind, page.url, str(e)[:200])
        return None


async def _open_page(browser, opened: List, url: str, **options):
    """New context and page, or None when the browser refuses one."""
    try:
        context = await browser.new_context(**options)
        opened.append(context)
        return await context.new_page()
    except PlaywrightError as e:
        logger.warning(
            "capturer.open_failed url=%s mobile=%s err=%s",
            url,
            options.get("is_mobile", False),
            str(e)[:200],
        )
        return None


async def capture_page(
    browser,
    url: str,
    kinds: Sequence[str],
    config: PipelineConfig,
    *,
    prefix: str = "portfolio",
    page=None,
    load_budget_s: Optional[float] = None,
) -> CapturedPage:
    """
    Capture the requested kinds for url.

    When `page` is given it is assumed to be a loaded desktop page for url and
    is reused; otherwise the page is visited in its own desktop context.
    Contexts that cannot be opened leave their screenshots as None.
    """
    captured = CapturedPage(url=url)
    desktop_kinds = [k for k in kinds if k in (DESKTOP_FULL, DESKTOP_FOLD)]
    budget_s = config.timeouts.case_study_load_s if load_budget_s is None else load_budget_s
    opened: List = []

    try:
        if page is not None:
            captured.loaded = True
        else:
            page = await _open_page(browser, opened, url, viewport=DESKTOP_VIEWPORT)
            if page is not None:
                captured.loaded = await load_page(page, url, budget_s) is not None
            if captured.loaded:
                content = await extract_content(page, config)
                captured.title = content.title
                captured.word_count = content.word_count

        if captured.loaded:
            for kind in desktop_kinds:
                setattr(captured.screenshots, _FIELD_FOR_KIND[kind], await capture_one(page, kind, prefix, config))

        if MOBILE_FULL in kinds and captured.loaded:
            mobile_page = await _open_page(
                browser,
                opened,
                url,
                viewport=MOBILE_VIEWPORT,
                is_mobile=True,
                has_touch=True,
            )
            if mobile_page is not None and await load_page(mobile_page, url, budget_s):
                captured.screenshots.mobile_full = await capture_one(mobile_page, MOBILE_FULL, prefix, config)
    finally:
        for context in opened:
            try:
                await context.close()
            except PlaywrightError:
                logger.debug("capturer.context_close_failed url=%s", url, exc_info=True)

    logger.info(
        "capturer.done url=%s loaded=%s shots=%s",
        url,
        captured.loaded,
        captured.screenshots.model_dump(by_alias=True),
    )
    return captured


async def capture_review_screenshot(url: str, config: PipelineConfig, load_timeout_s: float = 30.0) -> Optional[str]:
    """
    Single full-page screenshot for the legacy review flow.

    Unlike the analysis pipeline, a page that does not reach network idle is
    an error here.
    """
    async with launch_browser() as browser:
        context = await browser.new_context(viewport=DESKTOP_VIEWPORT)
        page = await context.new_page()
        await page.goto(url, wait_until="networkidle", timeout=int(load_timeout_s * 1000))
        return await capture_one(page, DESKTOP_FULL, "portfolio", config)
