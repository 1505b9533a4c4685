"""In-process stale-while-revalidate cache for batch outcomes."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from sales_batch.domain.interfaces import IResultCache
from sales_batch.domain.models import BatchOutcome, CacheStatus, Period, Side


def fingerprint(
    current_periods: Sequence[Period], previous_periods: Sequence[Period]
) -> str:
    """Stable cache key for a pair of period sequences, independent of input order."""

    def _side(periods: Sequence[Period]) -> list:
        return sorted(
            [period.key, period.start_date.isoformat(), period.end_date.isoformat()]
            for period in periods
        )

    material = {
        Side.CURRENT.value: _side(current_periods),
        Side.PREVIOUS.value: _side(previous_periods),
    }
    encoded = json.dumps(material, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: BatchOutcome
    created_at: float
    ttl: float
    grace: float

    def age(self, now: float) -> float:
        return max(now - self.created_at, 0.0)

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl

    def is_servable(self, now: float) -> bool:
        return self.age(now) < self.ttl + self.grace


class ResultCache(IResultCache):
    """Caches fully successful batch outcomes keyed by period fingerprint.

    A fresh entry is a ``HIT``. An entry past its TTL but inside the grace
    window is served as ``STALE`` while a single background thread per
    fingerprint recomputes it. Anything older is treated as a miss.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        grace_seconds: Optional[float] = None,
        max_size: int = 50,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than zero")
        if grace_seconds is not None and grace_seconds < 0:
            raise ValueError("grace_seconds cannot be negative")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.grace_seconds = ttl_seconds * 3 if grace_seconds is None else grace_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._refreshing: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._stale_hits = 0
        self._misses = 0
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )

    def get(self, key: str) -> Optional[CacheEntry]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_servable(now):
                del self._entries[key]
                return None
            return entry

    def put(self, key: str, outcome: BatchOutcome, ttl: Optional[float] = None) -> bool:
        """Store ``outcome`` unless any period failed; returns whether it was stored."""

        if outcome.metadata.failed_requests > 0:
            self.logger.debug("cache_skip_partial", extra={"fingerprint": key})
            return False
        entry = CacheEntry(
            key=key,
            value=outcome,
            created_at=self._clock(),
            ttl=self.ttl_seconds if ttl is None else ttl,
            grace=self.grace_seconds,
        )
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self.logger.debug("cache_evict", extra={"fingerprint": evicted})
            self._entries[key] = entry
        return True

    def get_or_compute(
        self, fingerprint: str, compute: Callable[[], BatchOutcome]
    ) -> Tuple[BatchOutcome, CacheStatus]:
        entry = self.get(fingerprint)
        now = self._clock()
        if entry is not None and entry.is_fresh(now):
            with self._lock:
                self._hits += 1
            self.logger.info("cache_hit", extra={"fingerprint": fingerprint})
            return entry.value, CacheStatus.HIT
        if entry is not None:
            with self._lock:
                self._stale_hits += 1
            self.logger.info(
                "cache_stale",
                extra={"fingerprint": fingerprint, "age": entry.age(now)},
            )
            self._schedule_refresh(fingerprint, compute)
            return entry.value, CacheStatus.STALE

        with self._lock:
            self._misses += 1
        outcome = compute()
        self.put(fingerprint, outcome)
        return outcome, CacheStatus.MISS

    def sweep(self) -> int:
        """Drop entries past their grace window; returns how many were removed."""

        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_servable(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, float]:
        now = self._clock()
        with self._lock:
            fresh = sum(1 for entry in self._entries.values() if entry.is_fresh(now))
            return {
                "size": len(self._entries),
                "fresh": fresh,
                "stale": len(self._entries) - fresh,
                "max_size": self.max_size,
                "hits": self._hits,
                "stale_hits": self._stale_hits,
                "misses": self._misses,
                "refreshing": len(self._refreshing),
            }

    def wait_for_refreshes(self, timeout: Optional[float] = None) -> bool:
        """Join pending refresh threads; False if any is still running at the timeout."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            threads = list(self._refreshing.values())
        for thread in threads:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            thread.join(remaining)
        return not any(thread.is_alive() for thread in threads)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _schedule_refresh(
        self, key: str, compute: Callable[[], BatchOutcome]
    ) -> None:
        with self._lock:
            if key in self._refreshing:
                return
            thread = threading.Thread(
                target=self._refresh,
                args=(key, compute),
                name=f"cache-refresh-{key[:12]}",
                daemon=True,
            )
            self._refreshing[key] = thread
        thread.start()

    def _refresh(self, key: str, compute: Callable[[], BatchOutcome]) -> None:
        try:
            outcome = compute()
            stored = self.put(key, outcome)
            self.logger.info(
                "cache_refreshed", extra={"fingerprint": key, "stored": stored}
            )
        except Exception:
            # the stale entry stays in place until it ages out
            self.logger.exception("cache_refresh_failed", extra={"fingerprint": key})
        finally:
            with self._lock:
                self._refreshing.pop(key, None)
