"""Concurrent fan-out of single-period upstream calls."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from sales_batch.domain.exceptions import (
    BatchDeadlineExceededError,
    BatchValidationError,
    UpstreamError,
)
from sales_batch.domain.interfaces import IRetryPolicy, ISalesClient
from sales_batch.domain.models import Period, PeriodResult, SalesSnapshot, Side


class _ResultCollector:
    """One slot per (side, period key), each written at most once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: Dict[Tuple[Side, str], PeriodResult] = {}
        self._sealed = False

    def put(self, side: Side, result: PeriodResult) -> bool:
        slot = (side, result.period_key)
        with self._lock:
            if self._sealed or slot in self._slots:
                return False
            self._slots[slot] = result
            return True

    def seal(self) -> None:
        with self._lock:
            self._sealed = True

    def get(self, side: Side, key: str) -> Optional[PeriodResult]:
        with self._lock:
            return self._slots.get((side, key))

    def force(self, side: Side, result: PeriodResult) -> None:
        with self._lock:
            self._slots.setdefault((side, result.period_key), result)


class _PeriodTask:
    """Retry loop for one period; only its own thread mutates ``attempts``."""

    def __init__(self, side: Side, period: Period) -> None:
        self.side = side
        self.period = period
        self.attempts = 0


class BatchExecutor:
    """Runs every period through the client and retry policy concurrently."""

    def __init__(
        self,
        client: ISalesClient,
        retry_policy: IRetryPolicy,
        *,
        max_concurrency: Optional[int] = None,
        deadline_seconds: float = 180.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1 when provided")
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be greater than zero")
        self._client = client
        self._retry_policy = retry_policy
        self._max_concurrency = max_concurrency
        self._deadline_seconds = deadline_seconds
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )
        self.last_started_at: Optional[float] = None

    def run(
        self,
        current_periods: Sequence[Period],
        previous_periods: Sequence[Period],
    ) -> Tuple[Dict[str, PeriodResult], Dict[str, PeriodResult]]:
        """Execute both period sequences and return (current, previous) results.

        Upstream failures never escape: a period that fails or runs past the
        batch deadline is reported with ``succeeded=False`` and a zero total.
        Only ConfigurationError is raised, before anything is dispatched.
        """

        self.last_started_at = time.perf_counter()
        tasks = self._build_tasks(current_periods, previous_periods)
        if not tasks:
            return {}, {}
        self._client.ensure_configured()

        collector = _ResultCollector()
        cancel = threading.Event()
        workers = min(self._max_concurrency or len(tasks), len(tasks))
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="period-batch")
        try:
            futures: List[Future[None]] = [
                pool.submit(self._run_task, task, collector, cancel) for task in tasks
            ]
            _, pending = wait(futures, timeout=self._deadline_seconds)
            if pending:
                cancel.set()
                collector.seal()
                self.logger.warning(
                    "batch_deadline_exceeded",
                    extra={
                        "pending": len(pending),
                        "deadline_seconds": self._deadline_seconds,
                    },
                )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        current: Dict[str, PeriodResult] = {}
        previous: Dict[str, PeriodResult] = {}
        for task in tasks:
            result = collector.get(task.side, task.period.key)
            if result is None:
                result = PeriodResult.failure(
                    task.period,
                    attempts=task.attempts,
                    error=BatchDeadlineExceededError.__name__,
                )
                collector.force(task.side, result)
                self._log_failure(task, BatchDeadlineExceededError.__name__)
            target = current if task.side is Side.CURRENT else previous
            target[task.period.key] = result
        return current, previous

    def fetch_single(self, start_date: date, end_date: date) -> SalesSnapshot:
        """Fetch one range with the same retry policy, raising the final error."""

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._client.fetch(start_date, end_date)
            except UpstreamError as exc:
                if not self._retry_policy.should_retry(exc, attempt):
                    raise
                delay = self._retry_policy.delay_for(attempt - 1)
                self._log_retry(f"{start_date}..{end_date}", exc, attempt, delay)
                time.sleep(delay)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_tasks(
        current_periods: Sequence[Period], previous_periods: Sequence[Period]
    ) -> List[_PeriodTask]:
        tasks: List[_PeriodTask] = []
        errors: Dict[str, List[str]] = {}
        for side, periods in (
            (Side.CURRENT, current_periods),
            (Side.PREVIOUS, previous_periods),
        ):
            seen: set[str] = set()
            for period in periods:
                if period.key in seen:
                    errors.setdefault(f"{side.value}_periods", []).append(
                        f"duplicate period key '{period.key}'"
                    )
                    continue
                seen.add(period.key)
                tasks.append(_PeriodTask(side, period))
        if errors:
            raise BatchValidationError(errors=errors)
        return tasks

    def _run_task(
        self,
        task: _PeriodTask,
        collector: _ResultCollector,
        cancel: threading.Event,
    ) -> None:
        period = task.period
        while not cancel.is_set():
            task.attempts += 1
            try:
                snapshot = self._client.fetch(period.start_date, period.end_date)
            except UpstreamError as exc:
                if not self._retry_policy.should_retry(exc, task.attempts):
                    self._fail(task, collector, exc.__class__.__name__)
                    return
                delay = self._retry_policy.delay_for(task.attempts - 1)
                self._log_retry(period.key, exc, task.attempts, delay)
                if cancel.wait(delay):
                    return
                continue
            except Exception as exc:
                self.logger.exception(
                    "period_unexpected_error", extra={"period_key": period.key}
                )
                self._fail(task, collector, exc.__class__.__name__)
                return
            collector.put(task.side, PeriodResult.success(period, snapshot, task.attempts))
            return

    def _fail(
        self, task: _PeriodTask, collector: _ResultCollector, error_name: str
    ) -> None:
        result = PeriodResult.failure(task.period, attempts=task.attempts, error=error_name)
        if collector.put(task.side, result):
            self._log_failure(task, error_name)

    def _log_failure(self, task: _PeriodTask, error_name: str) -> None:
        self.logger.warning(
            "period_failed",
            extra={
                "period_key": task.period.key,
                "side": task.side.value,
                "error_class": error_name,
                "attempts": task.attempts,
            },
        )

    def _log_retry(
        self, label: str, error: BaseException, attempt: int, delay: float
    ) -> None:
        self.logger.info(
            "period_retry",
            extra={
                "period_key": label,
                "error_class": error.__class__.__name__,
                "attempt": attempt,
                "delay": delay,
            },
        )
