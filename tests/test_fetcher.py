from contextlib import AsyncExitStack

import pytest
from playwright.async_api import Error as PlaywrightError

from portfolio_review import fetcher as fetcher_mod
from portfolio_review.browser import launch_browser
from portfolio_review.fetcher import Link, select_case_studies

from conftest import FakePage, FakeSite

KEYWORDS = ("case", "work", "project", "portfolio")


def test_case_study_link_is_selected_and_about_is_not():
    links = [
        Link(href="https://x.com/case-study-1", anchor_text="View project"),
        Link(href="https://x.com/about", anchor_text="About us"),
    ]

    selected = select_case_studies(links, KEYWORDS, 3)

    assert [l.href for l in selected] == ["https://x.com/case-study-1"]


def test_keyword_match_is_case_insensitive_over_href_and_text():
    links = [
        Link(href="https://x.com/a", anchor_text="My WORK"),
        Link(href="https://x.com/Portfolio/b", anchor_text="B"),
        Link(href="https://x.com/c", anchor_text="Blog"),
    ]

    selected = select_case_studies(links, KEYWORDS, 3)

    assert [l.href for l in selected] == ["https://x.com/a", "https://x.com/Portfolio/b"]


def test_selection_keeps_document_order_caps_count_and_collapses_duplicates():
    links = [
        Link(href="https://x.com/work/1", anchor_text="One"),
        Link(href="https://x.com/work/1", anchor_text="One again"),
        Link(href="https://x.com/work/2", anchor_text="Two"),
        Link(href="https://x.com/work/3", anchor_text="Three"),
        Link(href="https://x.com/work/4", anchor_text="Four"),
    ]

    selected = select_case_studies(links, KEYWORDS, 3)

    assert [l.anchor_text for l in selected] == ["One", "Two", "Three"]


@pytest.mark.asyncio
async def test_load_page_falls_back_to_weaker_strategy():
    page = FakePage(FakeSite(pages={"https://x.com/": {}}))
    attempts = []

    async def flaky_goto(url, wait_until=None, timeout=None):
        attempts.append((wait_until, timeout))
        if wait_until == "networkidle":
            from playwright.async_api import TimeoutError as PlaywrightTimeoutError
            raise PlaywrightTimeoutError("Timeout exceeded")
        page.url = url

    page.goto = flaky_goto

    strategy = await fetcher_mod.load_page(page, "https://x.com/", 20.0)

    assert strategy == "domcontentloaded"
    assert attempts == [("networkidle", 10000), ("domcontentloaded", 6000)]


@pytest.mark.asyncio
async def test_load_page_returns_none_when_every_strategy_fails():
    site = FakeSite(unreachable={"https://down.example/"})
    page = FakePage(site)

    strategy = await fetcher_mod.load_page(page, "https://down.example/", 20.0)

    assert strategy is None
    assert [c[1] for c in page.goto_calls] == ["networkidle", "domcontentloaded", "commit"]
    assert sum(c[2] for c in page.goto_calls) == 20000


@pytest.mark.asyncio
async def test_extract_content_truncates_text_and_filters_links(config):
    site = FakeSite(pages={
        "https://x.com/home": {
            "title": "  Portfolio  ",
            "text": "word " * 2000,
            "links": [
                ("/work/app", "App redesign"),
                ("https://x.com/empty", ""),
                ("", "No href"),
            ],
        },
    })
    page = FakePage(site)
    await page.goto("https://x.com/home")

    content = await fetcher_mod.extract_content(page, config)

    assert len(content.text) == config.max_text_chars
    assert content.title == "Portfolio"
    assert content.links == [Link(href="https://x.com/work/app", anchor_text="App redesign")]


@pytest.mark.asyncio
async def test_extract_content_degrades_to_empty_on_dom_error(config):
    page = FakePage(FakeSite())

    async def broken_evaluate(script):
        raise PlaywrightError("Execution context was destroyed")

    page.evaluate = broken_evaluate

    content = await fetcher_mod.extract_content(page, config)

    assert content.text == ""
    assert content.links == []
    assert content.word_count == 0


@pytest.mark.asyncio
async def test_block_heavy_resources_installs_catch_all_route():
    page = FakePage(FakeSite())

    await fetcher_mod.block_heavy_resources(page)

    assert page.routes == ["**/*"]


VISIBLE_TEXT_HTML = """<html><head><style>h1 { color: #222; }</style></head><body>
<h1>Jane Doe</h1>
<p>UX   designer.</p>
<div style="display:none">Cookie banner</div>
<script>var tracking = 1;</script>
<a href="/case-study-1">Selected work</a>
</body></html>"""


@pytest.mark.asyncio
async def test_text_script_reads_only_rendered_text_in_chromium():
    async with AsyncExitStack() as stack:
        try:
            browser = await stack.enter_async_context(launch_browser())
        except PlaywrightError as e:
            pytest.skip(f"Chromium unavailable: {str(e)[:80]}")
        context = await browser.new_context()
        page = await context.new_page()
        await page.set_content(VISIBLE_TEXT_HTML)

        text = await page.evaluate(fetcher_mod.TEXT_SCRIPT)
        styles = await page.evaluate("() => document.querySelectorAll('style').length")

    assert text == "Jane Doe UX designer. Selected work"
    assert "Cookie banner" not in text
    assert "tracking" not in text
    assert styles == 1
