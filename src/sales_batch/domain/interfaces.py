"""Domain-level interfaces defining contracts for batch collaborators."""

from __future__ import annotations

from datetime import date
from typing import Callable, Dict, Mapping, Optional, Protocol, Sequence, Tuple

from .models import (
    BatchOutcome,
    CacheStatus,
    Period,
    PeriodResult,
    SalesSnapshot,
)


class ISalesClient(Protocol):
    """Contract for the single-range upstream sales endpoint."""

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when credentials are unusable."""

    def fetch(self, start_date: date, end_date: date) -> SalesSnapshot:
        """Fetch the sales snapshot for one inclusive date range."""


class IRetryPolicy(Protocol):
    """Decides whether and when a failed upstream call is attempted again."""

    def should_retry(self, error: BaseException, attempt_number: int) -> bool:
        """Return True when another attempt should follow ``attempt_number``."""

    def delay_for(self, attempt_number: int) -> float:
        """Seconds to wait before retry number ``attempt_number`` (zero-based)."""


class IBatchExecutor(Protocol):
    """Fans period requests out and collects one result per period."""

    def run(
        self,
        current_periods: Sequence[Period],
        previous_periods: Sequence[Period],
    ) -> Tuple[Dict[str, PeriodResult], Dict[str, PeriodResult]]:
        """Execute every period and return (current, previous) result maps."""


class IAggregator(Protocol):
    """Combines per-period results into totals and metadata."""

    def combine(
        self,
        current_results: Mapping[str, PeriodResult],
        previous_results: Mapping[str, PeriodResult],
        started_at: float,
    ) -> BatchOutcome:
        """Produce the immutable batch outcome."""


class IResultCache(Protocol):
    """Short-lived stale-while-revalidate cache of batch outcomes."""

    def get_or_compute(
        self, fingerprint: str, compute: Callable[[], BatchOutcome]
    ) -> Tuple[BatchOutcome, CacheStatus]:
        """Serve a cached outcome or compute and store a new one."""

    def wait_for_refreshes(self, timeout: Optional[float] = None) -> bool:
        """Block until pending background refreshes finish."""
