"""Per-request orchestration: cache lookups, scheduling and write-through."""
from __future__ import annotations

import asyncio
import logging
import time
from functools import partial
from typing import Any, Dict, Iterable, List, Protocol

from .cache import ResultCache
from .normalize import normalize_urls
from .scheduler import BoundedScheduler
from .schemas import ExtractionResult

logger = logging.getLogger(__name__)


class BatchScrapeError(RuntimeError):
    """Raised when waiting on a batch fails for reasons other than a URL error."""


class Extractor(Protocol):
    async def extract(self, url: str) -> ExtractionResult: ...


class BatchCoordinator:
    def __init__(
        self,
        extractor: Extractor,
        scheduler: BoundedScheduler,
        cache: ResultCache,
        preserve_request_order: bool = False,
    ) -> None:
        self.extractor = extractor
        self.scheduler = scheduler
        self.cache = cache
        self.preserve_request_order = preserve_request_order

    async def scrape(self, raw_urls: Iterable[Any]) -> List[ExtractionResult]:
        """Return one result per valid URL in ``raw_urls``.

        Cached results come first in encounter order, followed by freshly
        scraped ones, unless ``preserve_request_order`` is set. A URL repeated
        within one batch is only rendered once.
        """

        urls = normalize_urls(raw_urls)
        if not urls:
            return []

        start = time.perf_counter()
        hits: Dict[int, ExtractionResult] = {}
        miss_positions: Dict[int, str] = {}
        for position, url in enumerate(urls):
            cached = self.cache.get(url)
            if cached is not None:
                hits[position] = cached
            else:
                miss_positions[position] = url

        jobs: Dict[str, asyncio.Future] = {}
        for url in miss_positions.values():
            if url not in jobs:
                jobs[url] = self.scheduler.submit(partial(self.extractor.extract, url))

        logger.info(
            "Scrape batch: %d URL(s), %d cache hit(s), %d page load(s) queued",
            len(urls),
            len(hits),
            len(jobs),
        )

        fresh: Dict[str, ExtractionResult] = {}
        if jobs:
            try:
                completed = await asyncio.gather(*jobs.values())
            except Exception as exc:
                logger.exception("Scrape batch failed while waiting for page loads")
                raise BatchScrapeError(str(exc)) from exc
            fresh = dict(zip(jobs, completed))

        stored = sum(1 for url, result in fresh.items() if self.cache.set(url, result))
        failures = sum(1 for result in fresh.values() if not result.ok)
        logger.info(
            "Scrape batch finished in %.2fs: %d cached, %d failed",
            time.perf_counter() - start,
            stored,
            failures,
        )

        misses = {position: fresh[url] for position, url in miss_positions.items()}
        if self.preserve_request_order:
            merged = {**hits, **misses}
            return [merged[position] for position in sorted(merged)]
        return list(hits.values()) + list(misses.values())
