"""
Page loading and content extraction with Playwright.

A load never raises: progressively weaker wait strategies are tried until one
succeeds, and if none does the caller gets None and continues with empty
content. Extraction failures likewise degrade to empty content.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import PipelineConfig

logger = logging.getLogger(__name__)

# (wait_until, share of the caller's budget)
LOAD_STRATEGIES = (
    ("networkidle", 0.5),
    ("domcontentloaded", 0.3),
    ("commit", 0.2),
)

BLOCKED_RESOURCE_TYPES = ("image", "stylesheet", "font", "media")

# innerText is rendered text only: hidden nodes, scripts and styles drop out
TEXT_SCRIPT = """() => ((document.body && document.body.innerText) || '')
  .replace(/\\s+/g, ' ')
  .trim()"""

LINKS_SCRIPT = """() => Array.from(document.querySelectorAll('a')).map(a => ({
  href: a.href || a.getAttribute('href') || '',
  text: (a.innerText || '').trim()
}))"""


@dataclass(frozen=True)
class Link:
    href: str
    anchor_text: str


@dataclass
class ExtractedContent:
    text: str = ""
    title: str = ""
    links: List[Link] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "ExtractedContent":
        return cls()

    @property
    def word_count(self) -> int:
        return len(self.text.split())


async def load_page(page, url: str, budget_s: float) -> Optional[str]:
    """
    Navigate to url, falling back to weaker wait conditions.

    Returns the wait strategy that succeeded, or None if all failed.
    """
    for wait_until, share in LOAD_STRATEGIES:
        timeout_ms = max(1, int(round(budget_s * share * 1000)))
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            logger.info("fetcher.loaded url=%s strategy=%s timeout_ms=%d", url, wait_until, timeout_ms)
            return wait_until
        except PlaywrightTimeoutError:
            logger.info("fetcher.load_timeout url=%s strategy=%s timeout_ms=%d", url, wait_until, timeout_ms)
        except PlaywrightError as e:
            logger.warning("fetcher.load_error url=%s strategy=%s err=%s", url, wait_until, str(e)[:200])
    logger.warning("fetcher.load_failed url=%s", url)
    return None


def _collect_links(raw_links, base_url: str, require_text: bool) -> List[Link]:
    links: List[Link] = []
    for item in raw_links or []:
        if not isinstance(item, dict):
            continue
        href = (item.get("href") or "").strip()
        text = (item.get("text") or "").strip()
        if not href:
            continue
        if require_text and not text:
            continue
        links.append(Link(href=urljoin(base_url, href), anchor_text=text))
    return links


async def extract_content(page, config: PipelineConfig) -> ExtractedContent:
    """Pull visible text, title and anchors from the loaded page."""
    try:
        text = await page.evaluate(TEXT_SCRIPT) or ""
        title = await page.title() or ""
        raw_links = await page.evaluate(LINKS_SCRIPT)
    except PlaywrightError as e:
        logger.warning("fetcher.extract_failed url=%s err=%s", page.url, str(e)[:200])
        return ExtractedContent.empty()

    content = ExtractedContent(
        text=text[:config.max_text_chars],
        title=title.strip(),
        links=_collect_links(raw_links, page.url, config.require_anchor_text),
    )
    logger.info(
        "fetcher.extracted url=%s chars=%d links=%d",
        page.url,
        len(content.text),
        len(content.links),
    )
    return content


def is_case_study(link: Link, keywords: Iterable[str]) -> bool:
    haystack = f"{link.href} {link.anchor_text}".lower()
    return any(k.lower() in haystack for k in keywords)


def select_case_studies(links: List[Link], keywords: Iterable[str], limit: int) -> List[Link]:
    """First `limit` keyword-matching links in document order, one per href."""
    keywords = tuple(keywords)
    selected: List[Link] = []
    seen = set()
    for link in links:
        if link.href in seen or not is_case_study(link, keywords):
            continue
        seen.add(link.href)
        selected.append(link)
        if len(selected) >= limit:
            break
    return selected


async def block_heavy_resources(page) -> None:
    """Abort images, stylesheets, fonts and media to speed up loading."""

    async def _handle(route):
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    await page.route("**/*", _handle)
