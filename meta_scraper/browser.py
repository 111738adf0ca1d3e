"""Lifecycle of the single headless Chromium shared by every scrape task."""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import Settings

logger = logging.getLogger(__name__)

LOCAL_BROWSER_ARGS = ["--no-sandbox"]

# Flag set for containers and serverless sandboxes where Chromium cannot
# create its own sandbox, has a tiny /dev/shm and no GPU.
RESTRICTED_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--single-process",
    "--no-first-run",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--mute-audio",
    "--hide-scrollbars",
    "--disk-cache-size=0",
    "--media-cache-size=0",
]


class BrowserLaunchError(RuntimeError):
    """Raised when Chromium cannot be started; the service must not serve."""


class BrowserUnavailableError(RuntimeError):
    """Raised when a context is requested outside the session's lifetime."""


def launch_options(settings: Settings) -> dict[str, Any]:
    """Return ``chromium.launch`` keyword arguments for the configured profile."""

    if settings.browser_profile == "restricted":
        options: dict[str, Any] = {"headless": True, "args": list(RESTRICTED_BROWSER_ARGS)}
    else:
        options = {"headless": True, "args": list(LOCAL_BROWSER_ARGS)}
    if settings.browser_executable_path:
        options["executable_path"] = settings.browser_executable_path
    return options


class BrowserSession:
    """Owns one Playwright driver and one Chromium process.

    ``initialize`` must complete before any extraction runs and ``shutdown`` is
    effective only once. Contexts handed out by ``new_context`` belong to the
    caller, who must close them.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._browser is not None and not self._closed

    async def initialize(self) -> None:
        if self._browser is not None:
            return
        if self._closed:
            raise BrowserLaunchError("Browser session has already been shut down")

        options = launch_options(self.settings)
        start = time.perf_counter()
        logger.info(
            "Launching headless Chromium with %s profile (%d flags)",
            self.settings.browser_profile,
            len(options["args"]),
        )
        playwright: Optional[Playwright] = None
        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(**options)
        except Exception as exc:
            logger.error("Failed to initialise browser: %s", exc)
            if playwright is not None:
                await self._stop_driver(playwright)
            raise BrowserLaunchError(f"Failed to launch browser: {exc}") from exc

        self._playwright = playwright
        self._browser = browser
        logger.info(
            "Browser initialised successfully (version %s) in %.2fs",
            browser.version,
            time.perf_counter() - start,
        )

    async def new_context(self, **options: Any) -> BrowserContext:
        if self._browser is None or self._closed:
            raise BrowserUnavailableError("Browser session is not running")
        return await self._browser.new_context(**options)

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None

        if browser is not None:
            logger.info("Closing browser...")
            try:
                await browser.close()
            except PlaywrightError as exc:
                logger.warning("Browser did not close cleanly: %s", exc)
        if playwright is not None:
            await self._stop_driver(playwright)

    @staticmethod
    async def _stop_driver(playwright: Playwright) -> None:
        try:
            await playwright.stop()
        except PlaywrightError as exc:
            logger.warning("Playwright driver did not stop cleanly: %s", exc)
