"""Rendering pages in the shared browser and extracting their meta tags."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional, Protocol

from bs4 import BeautifulSoup
from playwright.async_api import BrowserContext, Route
from playwright.async_api import Error as PlaywrightError

from .config import BLOCKED_RESOURCE_TYPES, Settings
from .schemas import ExtractionFailure, ExtractionResult, ExtractionSuccess, MetaTag

logger = logging.getLogger(__name__)

EXTRACTION_SCHEMA = "meta-tags/1"

# (tag name, CSS selector, value source) in output order.
NAMED_TARGETS = (
    ("title", "title", "text"),
    ("description", 'meta[name="description"]', "content"),
    ("canonical", 'link[rel="canonical" i]', "href"),
    ("h1", "h1", "text"),
)
OPEN_GRAPH_SELECTOR = 'meta[property^="og:"]'
# Serialised as markup by page.content() but inert in the live document.
INERT_CONTAINERS = ("noscript", "template")


class ContextFactory(Protocol):
    async def new_context(self, **options: Any) -> BrowserContext: ...


def _element_value(element, source: str) -> Optional[str]:
    if source == "text":
        return element.get_text().strip()
    value = element.get(source)
    if isinstance(value, list):
        value = " ".join(value)
    return value


def extract_meta_tags(html: str) -> List[MetaTag]:
    """Apply the ``meta-tags/1`` extraction contract to a rendered document.

    Emits ``title``, ``description``, ``canonical`` and ``h1`` (first match
    only, skipped when absent) in that order, followed by every Open Graph
    ``meta[property^="og:"]`` element in document order. Content inside
    ``<noscript>`` and ``<template>`` is ignored, as it is in the live page.
    """

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(INERT_CONTAINERS)):
        tag.decompose()

    tags: List[MetaTag] = []

    for name, selector, source in NAMED_TARGETS:
        element = soup.select_one(selector)
        if element is not None:
            tags.append(MetaTag(name=name, content=_element_value(element, source)))

    for element in soup.select(OPEN_GRAPH_SELECTOR):
        tags.append(MetaTag(name=element.get("property"), content=element.get("content")))

    return tags


class ResourceFilter:
    """Route handler aborting every sub-resource of a blocked type."""

    def __init__(self, blocked_types=BLOCKED_RESOURCE_TYPES) -> None:
        self.blocked_types = frozenset(blocked_types)
        self.aborted = 0

    async def __call__(self, route: Route) -> None:
        if route.request.resource_type in self.blocked_types:
            self.aborted += 1
            await route.abort()
        else:
            await route.continue_()


class PageExtractor:
    """Loads one URL per call in an isolated browser context.

    ``extract`` never raises: every failure becomes an ``ExtractionFailure``
    so a single bad URL cannot abort the rest of a batch.
    """

    def __init__(self, browser: ContextFactory, settings: Settings) -> None:
        self.browser = browser
        self.settings = settings

    def _context_options(self) -> dict[str, Any]:
        return {
            "user_agent": self.settings.user_agent,
            "extra_http_headers": {"Accept-Language": self.settings.accept_language},
        }

    async def extract(self, url: str) -> ExtractionResult:
        start = time.perf_counter()
        try:
            context = await self.browser.new_context(**self._context_options())
        except Exception as exc:
            logger.warning("Could not open a browser context for %s: %s", url, exc)
            return ExtractionFailure(url=url, error=str(exc))

        try:
            result = await self._load(context, url)
        except (PlaywrightError, asyncio.TimeoutError) as exc:
            logger.info("Navigation failed for %s: %s", url, exc)
            result = ExtractionFailure(url=url, error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure while scraping %s", url)
            result = ExtractionFailure(url=url, error=str(exc) or exc.__class__.__name__)
        finally:
            await self._close(context, url)

        logger.debug(
            "Scraped %s (%s) in %.2fs",
            url,
            result.status,
            time.perf_counter() - start,
        )
        return result

    async def _load(self, context: BrowserContext, url: str) -> ExtractionResult:
        resource_filter = ResourceFilter(self.settings.blocked_resource_types)
        await context.route("**/*", resource_filter)
        page = await context.new_page()

        response = await page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.settings.navigation_timeout_ms,
        )
        if response is None:
            return ExtractionFailure(url=url, error=f"HTTP error! no response for {url}")
        if not response.ok:
            return ExtractionFailure(
                url=url, error=f"HTTP error! status: {response.status} for {url}"
            )

        html = await page.content()
        meta_tags = extract_meta_tags(html)
        logger.debug(
            "Extracted %d %s tag(s) from %s, %d sub-resource(s) blocked",
            len(meta_tags),
            EXTRACTION_SCHEMA,
            url,
            resource_filter.aborted,
        )
        return ExtractionSuccess(url=url, meta_tags=tuple(meta_tags))

    @staticmethod
    async def _close(context: BrowserContext, url: str) -> None:
        try:
            await context.close()
        except Exception as exc:
            logger.warning("Failed to close browser context for %s: %s", url, exc)
