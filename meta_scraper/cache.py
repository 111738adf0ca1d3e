"""In-memory, time-limited cache of successful extraction results.

Repeated scrape requests for the same page inside the TTL window are served
from here instead of paying for another browser navigation. Entries expire
after ``ttl_seconds``; an optional ``max_entries`` ceiling evicts the oldest
entry first. Failures are never stored so a transient error is retried on the
next request.

Everything runs on the service's event loop thread, so no locking is needed.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from .schemas import ExtractionResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


class ResultCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, ExtractionResult]]" = OrderedDict()

    def get(self, url: str) -> Optional[ExtractionResult]:
        entry = self._entries.get(url)
        if entry is None:
            return None
        expires_at, result = entry
        if expires_at <= self._clock():
            del self._entries[url]
            return None
        return result

    def set(self, url: str, result: ExtractionResult) -> bool:
        """Store ``result`` for ``url``; returns ``False`` when it was refused."""

        if not result.ok:
            return False
        now = self._clock()
        self._purge_expired(now)
        self._entries.pop(url, None)
        self._entries[url] = (now + self.ttl_seconds, result)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from result cache", evicted)
        return True

    def clear(self) -> None:
        self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        # Insertion order equals expiry order because every entry shares one TTL.
        while self._entries:
            url, (expires_at, _) = next(iter(self._entries.items()))
            if expires_at > now:
                break
            del self._entries[url]

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and self.get(url) is not None

    def __len__(self) -> int:
        self._purge_expired(self._clock())
        return len(self._entries)
