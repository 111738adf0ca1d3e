"""FastAPI application entrypoint."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from .browser import BrowserSession
from .cache import ResultCache
from .config import Settings, get_settings
from .coordinator import BatchCoordinator, BatchScrapeError
from .extractor import ContextFactory, PageExtractor
from .logging_setup import configure_logging
from .middleware import (
    BodySizeLimitMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    SlidingWindowRateLimiter,
)
from .scheduler import BoundedScheduler
from .schemas import ScrapeRequest, results_to_payload

LOG_FILE_PATH = configure_logging(get_settings().log_level)
logger = logging.getLogger(__name__)

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
URLS_REQUIRED = "URLs are required and must be an array."


def build_coordinator(settings: Settings, browser: ContextFactory) -> BatchCoordinator:
    """Wire the extraction pipeline around an already running browser."""

    return BatchCoordinator(
        extractor=PageExtractor(browser, settings),
        scheduler=BoundedScheduler(settings.concurrency),
        cache=ResultCache(settings.cache_ttl_seconds, settings.cache_max_entries),
        preserve_request_order=settings.preserve_request_order,
    )


def get_coordinator(request: Request) -> BatchCoordinator:
    coordinator: Optional[BatchCoordinator] = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scraper is not ready"
        )
    return coordinator


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        start = time.perf_counter()
        logger.info("Starting application initialisation")
        # A launch failure propagates and aborts startup; nothing is served.
        browser = BrowserSession(settings)
        await browser.initialize()
        app.state.browser = browser
        app.state.coordinator = build_coordinator(settings, browser)
        logger.info(
            "Scraper ready in %.2fs (concurrency %d, cache TTL %.0fs)",
            time.perf_counter() - start,
            settings.concurrency,
            settings.cache_ttl_seconds,
        )
        try:
            yield
        finally:
            logger.info("Closing server...")
            coordinator = app.state.coordinator
            if settings.shutdown_grace_seconds:
                drained = await coordinator.scheduler.join(settings.shutdown_grace_seconds)
                if not drained:
                    logger.warning(
                        "Shutting down with %d running and %d queued page load(s)",
                        coordinator.scheduler.in_flight,
                        coordinator.scheduler.pending,
                    )
            await browser.shutdown()
            app.state.coordinator = None

    app = FastAPI(title="Meta Tag Scraper", lifespan=lifespan)
    app.state.settings = settings
    app.state.coordinator = None

    app.add_middleware(
        RateLimitMiddleware,
        limiter=SlidingWindowRateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds),
    )
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_middleware(SecurityHeadersMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            {"error": "Internal server error", "message": str(exc)},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.post("/api/scrape")
    async def scrape(
        request: Request, coordinator: BatchCoordinator = Depends(get_coordinator)
    ) -> JSONResponse:
        try:
            payload = ScrapeRequest.model_validate(await request.json())
        except (ValueError, ValidationError):
            return JSONResponse({"error": URLS_REQUIRED}, status_code=status.HTTP_400_BAD_REQUEST)

        try:
            results = await coordinator.scrape(payload.urls)
        except BatchScrapeError as exc:
            return JSONResponse(
                {"error": "Internal server error", "message": str(exc)},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        except Exception as exc:
            # The app-level 500 handler runs outside CORS and security headers.
            logger.exception("Scrape request failed")
            return JSONResponse(
                {"error": "Internal server error", "message": str(exc) or exc.__class__.__name__},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return JSONResponse(results_to_payload(results))

    @app.get("/api/test")
    async def api_test() -> dict[str, str]:
        return {"status": "API is working"}

    @app.get("/", response_class=HTMLResponse)
    @app.get("/{full_path:path}", response_class=HTMLResponse, include_in_schema=False)
    async def index(request: Request, full_path: str = "") -> HTMLResponse:
        return TEMPLATES.TemplateResponse(request, "index.html", {"title": app.title})

    return app


app = create_app()


def run() -> None:  # pragma: no cover - process entrypoint
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, lifespan="on", log_config=None)


if __name__ == "__main__":  # pragma: no cover - manual script usage
    run()
