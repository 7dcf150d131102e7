"""
Shared fixtures: an in-memory stand-in for the Playwright browser and a
pipeline configuration with short timeouts.
"""

import os
import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Dict, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from portfolio_review import fetcher as fetcher_mod
from portfolio_review.config import SCORING_PROMPT_PATH, PipelineConfig, Timeouts


class FakeSite:
    """
    Pages keyed by URL; unreachable URLs time out on every wait strategy.

    `context_limit` makes every browser refuse contexts beyond that many.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, dict]] = None,
        unreachable=(),
        goto_delay_s: float = 0.0,
        context_limit: Optional[int] = None,
    ):
        self.pages = pages or {}
        self.unreachable = set(unreachable)
        self.goto_delay_s = goto_delay_s
        self.context_limit = context_limit


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.goto_calls: List[tuple] = []
        self.screenshot_calls: List[tuple] = []
        self.routes: List[str] = []
        self.fail_screenshot = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.site.goto_delay_s:
            await asyncio.sleep(self.site.goto_delay_s)
        if url in self.site.unreachable:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.url = url

    async def evaluate(self, script):
        data = self.site.pages.get(self.url, {})
        if script == fetcher_mod.TEXT_SCRIPT:
            return data.get("text", "")
        if script == fetcher_mod.LINKS_SCRIPT:
            return [{"href": href, "text": text} for href, text in data.get("links", [])]
        raise AssertionError("unexpected script")

    async def title(self):
        return self.site.pages.get(self.url, {}).get("title", "")

    async def screenshot(self, path=None, full_page=False):
        from playwright.async_api import Error as PlaywrightError

        if self.fail_screenshot:
            raise PlaywrightError("Target closed")
        self.screenshot_calls.append((self.url, full_page))
        with open(path, "wb") as f:
            f.write(b"\x89PNG fake")

    async def route(self, pattern, handler):
        self.routes.append(pattern)


class FakeContext:
    def __init__(self, browser, options):
        self.browser = browser
        self.options = options
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self):
        page = FakePage(self.browser.site)
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, site: FakeSite):
        self.site = site
        self.contexts: List[FakeContext] = []
        self.closed = False

    async def new_context(self, **options):
        limit = self.site.context_limit
        if limit is not None and len(self.contexts) >= limit:
            from playwright.async_api import Error as PlaywrightError

            raise PlaywrightError("Target page, context or browser has been closed")
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeLauncher:
    """Replacement for browser.launch_browser that records every browser."""

    def __init__(self, site: FakeSite):
        self.site = site
        self.browsers: List[FakeBrowser] = []

    @asynccontextmanager
    async def __call__(self):
        browser = FakeBrowser(self.site)
        self.browsers.append(browser)
        try:
            yield browser
        finally:
            await browser.close()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in (
        "GEMINI_API_KEY",
        "LLM_API_KEY",
        "CLOUDINARY_CLOUD_NAME",
        "CLOUDINARY_API_KEY",
        "CLOUDINARY_API_SECRET",
        "AUDIT_STORE_URL",
        "AUDIT_STORE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    with open(SCORING_PROMPT_PATH, "r", encoding="utf-8") as f:
        prompt = f.read()
    shots_dir = tmp_path / "shots"
    shots_dir.mkdir()
    return PipelineConfig(
        timeouts=Timeouts(
            deadline_s=5.0,
            page_load_s=2.0,
            case_study_load_s=1.0,
            scorer_s=1.0,
            admission_wait_s=0.0,
        ),
        prompt_template=prompt,
        screenshot_tmp_dir=str(shots_dir),
    )


@pytest.fixture
def fast_deadline(config):
    def _make(deadline_s: float) -> PipelineConfig:
        return replace(config, timeouts=replace(config.timeouts, deadline_s=deadline_s))
    return _make


@pytest.fixture
def portfolio_site():
    return FakeSite(pages={
        "https://jane.design/": {
            "title": "Jane Doe - UX Designer",
            "text": "Jane Doe UX designer. Selected work and case studies.",
            "links": [
                ("https://jane.design/about", "About"),
                ("https://jane.design/case-study-1", "Checkout redesign"),
                ("https://jane.design/projects/onboarding", "Onboarding flow"),
                ("https://jane.design/contact", "Contact"),
            ],
        },
        "https://jane.design/case-study-1": {
            "title": "Checkout redesign",
            "text": "Problem research ideation testing outcome",
            "links": [],
        },
        "https://jane.design/projects/onboarding": {
            "title": "Onboarding flow",
            "text": "Onboarding research and results",
            "links": [],
        },
    })


def files_in(path) -> List[str]:
    return sorted(os.listdir(path))
