"""Service facade coordinating period calculation, batching, and caching."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from sales_batch.analytics.aggregator import Aggregator
from sales_batch.batch.executor import BatchExecutor
from sales_batch.cache.result_cache import ResultCache, fingerprint
from sales_batch.core.config import DashboardConfig
from sales_batch.core.middleware import IMiddleware, MiddlewareChain
from sales_batch.domain.exceptions import ConfigurationError, InputValidationError
from sales_batch.domain.models import (
    BatchOutcome,
    BatchRequest,
    BranchComparison,
    CacheStatus,
    Period,
    SalesSnapshot,
)
from sales_batch.periods.calculator import PeriodCalculator, add_months
from sales_batch.upstream.client import DashboardApiClient
from sales_batch.utils.validators import (
    parse_batch_request,
    validate_batch_request,
    validate_hours_chart_date,
)


class SalesBatchService:
    """High-level API consumed by the dashboard controller layer."""

    def __init__(
        self,
        config: DashboardConfig,
        calculator: PeriodCalculator,
        client: DashboardApiClient,
        executor: BatchExecutor,
        aggregator: Aggregator,
        *,
        cache: Optional[ResultCache] = None,
        middleware: Optional[MiddlewareChain] = None,
        middlewares: Optional[Sequence[IMiddleware]] = None,
        http_client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if middleware and middlewares:
            raise ValueError("Provide either 'middleware' or 'middlewares', not both")
        self._config = config
        self._calculator = calculator
        self._client = client
        self._executor = executor
        self._aggregator = aggregator
        self._cache = cache
        self._middleware = middleware or MiddlewareChain(middlewares or [])
        self._http_client = http_client
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )

    def __enter__(self) -> "SalesBatchService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def calculator(self) -> PeriodCalculator:
        return self._calculator

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    def handle_batch_request(self, payload: Any) -> Dict[str, Any]:
        """Controller entry point: JSON-like payload in, JSON-like envelope out.

        Input and configuration problems come back as ``success: False``
        envelopes without any upstream traffic. Upstream failures are never
        surfaced here; they show up as failed periods in the metadata.
        """

        try:
            request = parse_batch_request(payload)
            outcome, status = self.run_batch(request)
        except InputValidationError as exc:
            self.logger.info("batch_rejected", extra={"errors": exc.errors()})
            return {"success": False, "message": exc.message, "errors": exc.errors()}
        except ConfigurationError as exc:
            self.logger.error("batch_not_configured", extra={"reason": exc.message})
            return {"success": False, "message": exc.message}
        return {
            "success": True,
            "message": "Batch data retrieved successfully",
            "data": outcome.to_payload(
                cache_status=status, field_names=request.field_names
            ),
        }

    def run_batch(
        self, request: BatchRequest, *, use_cache: bool = True
    ) -> Tuple[BatchOutcome, CacheStatus]:
        """Run one batch through the middleware chain and the cache.

        The period limits and calendar rules are enforced here whatever
        middleware is installed.
        """

        statuses: List[CacheStatus] = []

        def handler(processed: BatchRequest) -> BatchOutcome:
            validate_batch_request(
                processed,
                today=self._calculator.today(),
                max_periods=self._config.max_periods_per_side,
            )
            current = processed.current_periods
            previous = processed.previous_periods
            if self._cache is None or not use_cache:
                statuses.append(CacheStatus.BYPASS)
                return self._execute(current, previous)
            outcome, status = self._cache.get_or_compute(
                fingerprint(current, previous),
                lambda: self._execute(current, previous),
            )
            statuses.append(status)
            return outcome

        outcome = self._middleware.execute(request, handler)
        return outcome, statuses[-1]

    def compare_week(
        self, reference_time: Optional[datetime] = None
    ) -> Tuple[BatchOutcome, CacheStatus]:
        """Each day of the current week so far against the same weekday last week."""

        today = self._calculator.today(reference_time)
        monday, _ = self._calculator.week_bounds(today)
        current = self._key_by_weekday(self._calculator.decompose_into_days(monday, today))
        previous = self._calculator.shift_periods(current, days=-7)
        return self.run_batch(self._comparison(current, previous, "week"))

    def compare_month(
        self, reference_time: Optional[datetime] = None
    ) -> Tuple[BatchOutcome, CacheStatus]:
        """Weeks of the month to date against the same span one month earlier."""

        today = self._calculator.today(reference_time)
        month_start, _ = self._calculator.month_bounds(today)
        current = self._calculator.decompose_into_weeks(month_start, today, label="month")
        # decomposed on its own so that clamped month ends cannot overlap
        previous = self._calculator.decompose_into_weeks(
            add_months(month_start, -1), add_months(today, -1), label="month"
        )
        return self.run_batch(self._comparison(current, previous, "month"))

    def compare_year(
        self, reference_time: Optional[datetime] = None
    ) -> Tuple[BatchOutcome, CacheStatus]:
        today = self._calculator.today(reference_time)
        current = self._calculator.decompose_into_quarters(
            date(today.year, 1, 1), today, label="year"
        )
        previous = self._calculator.shift_periods(current, years=-1)
        return self.run_batch(self._comparison(current, previous, "year"))

    def compare_branches(self, outcome: BatchOutcome) -> List[BranchComparison]:
        return self._aggregator.compare_branches(outcome)

    def dashboard_for_period(
        self, period_name: str, reference_time: Optional[datetime] = None
    ) -> SalesSnapshot:
        start_date, end_date = self._calculator.resolve(period_name, reference_time)
        return self._fetch_range(start_date, end_date, period=period_name)

    def dashboard_for_range(self, start_date: Any, end_date: Any) -> SalesSnapshot:
        start, end = self._calculator.validate_date_range(
            start_date, end_date, today=self._calculator.today()
        )
        return self._fetch_range(start, end, period="custom")

    def hours_chart(self, day: Any) -> Dict[str, Dict[str, Any]]:
        """Hourly sales for ``day`` as returned upstream, keyed by date then hour."""

        chart_date = validate_hours_chart_date(day, today=self._calculator.today())
        return self._client.fetch_hours_chart(chart_date)

    def available_periods(self) -> List[Dict[str, str]]:
        return self._calculator.available_periods()

    def cache_stats(self) -> Mapping[str, float]:
        if self._cache is None:
            return {}
        return self._cache.stats()

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _execute(
        self, current: Sequence[Period], previous: Sequence[Period]
    ) -> BatchOutcome:
        started_at = self._aggregator.start()
        current_results, previous_results = self._executor.run(current, previous)
        return self._aggregator.combine(current_results, previous_results, started_at)

    def _fetch_range(self, start_date: date, end_date: date, *, period: str) -> SalesSnapshot:
        self._client.ensure_configured()
        self.logger.info(
            "dashboard_request",
            extra={
                "period": period,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        return self._executor.fetch_single(start_date, end_date)

    @staticmethod
    def _comparison(
        current: Sequence[Period], previous: Sequence[Period], kind: str
    ) -> BatchRequest:
        return BatchRequest(
            current_periods=tuple(current),
            previous_periods=tuple(previous),
            metadata={"comparison": kind},
        )

    @staticmethod
    def _key_by_weekday(periods: Sequence[Period]) -> List[Period]:
        return [
            Period(
                key=period.label.lower(),
                label=period.label,
                start_date=period.start_date,
                end_date=period.end_date,
            )
            for period in periods
        ]
