"""In-memory stand-ins for the Playwright objects the extractor talks to."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from meta_scraper.config import Settings

SUBRESOURCE_TYPES = ("stylesheet", "script", "image", "font", "media", "xhr", "fetch")


@dataclass
class FakeSite:
    html: str = "<html><head><title>Fake</title></head></html>"
    status: int = 200
    delay: float = 0.0
    error: Optional[BaseException] = None
    no_response: bool = False


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class FakeRequest:
    def __init__(self, resource_type: str) -> None:
        self.resource_type = resource_type


class FakeRoute:
    def __init__(self, resource_type: str, log: Dict[str, List[str]]) -> None:
        self.request = FakeRequest(resource_type)
        self._log = log

    async def abort(self) -> None:
        self._log["aborted"].append(self.request.resource_type)

    async def continue_(self) -> None:
        self._log["continued"].append(self.request.resource_type)


class FakePage:
    def __init__(self, context: "FakeContext") -> None:
        self.context = context
        self._html = ""

    async def goto(self, url: str, wait_until: str, timeout: int) -> Optional[FakeResponse]:
        browser = self.context.browser
        browser.navigations.append(url)
        self.context.goto_kwargs = {"wait_until": wait_until, "timeout": timeout}
        site = browser.sites.get(url, FakeSite())

        browser.active += 1
        browser.peak_active = max(browser.peak_active, browser.active)
        try:
            for resource_type in ("document",) + SUBRESOURCE_TYPES:
                await self.context.route_handler(FakeRoute(resource_type, self.context.routed))
            await asyncio.sleep(site.delay)
        finally:
            browser.active -= 1

        if site.error is not None:
            raise site.error
        if site.no_response:
            return None
        self._html = site.html
        return FakeResponse(site.status)

    async def content(self) -> str:
        return self._html


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: Dict[str, Any]) -> None:
        self.browser = browser
        self.options = options
        self.route_handler = None
        self.routed: Dict[str, List[str]] = {"aborted": [], "continued": []}
        self.goto_kwargs: Dict[str, Any] = {}
        self.close_count = 0
        self.close_error: Optional[BaseException] = browser.close_error

    async def route(self, pattern: str, handler) -> None:
        assert pattern == "**/*"
        self.route_handler = handler

    async def new_page(self) -> FakePage:
        return FakePage(self)

    async def close(self) -> None:
        self.close_count += 1
        if self.close_error is not None:
            raise self.close_error


class FakeBrowser:
    """Implements ``new_context`` like ``BrowserSession`` and records usage."""

    def __init__(self) -> None:
        self.sites: Dict[str, FakeSite] = {}
        self.contexts: List[FakeContext] = []
        self.navigations: List[str] = []
        self.fail_contexts = False
        self.close_error: Optional[BaseException] = None
        self.active = 0
        self.peak_active = 0

    async def new_context(self, **options: Any) -> FakeContext:
        if self.fail_contexts:
            raise PlaywrightError("Target page, context or browser has been closed")
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def settings() -> Settings:
    return Settings()
