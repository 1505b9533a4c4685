"""Pure business-logic helpers for batch aggregation."""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from sales_batch.domain.interfaces import IAggregator
from sales_batch.domain.models import (
    BatchOutcome,
    BranchComparison,
    Metadata,
    PeriodResult,
    SalesSnapshot,
)
from sales_batch.utils import money
from sales_batch.utils.money import ZERO, round_one

FULL_SUCCESS_RATE = Decimal("100.0")


class Aggregator(IAggregator):
    """Performs read-only calculations on per-period results."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock

    def start(self) -> float:
        """Clock reading to pass back as ``started_at`` once the batch finishes."""

        return self._clock()

    def combine(
        self,
        current_results: Mapping[str, PeriodResult],
        previous_results: Mapping[str, PeriodResult],
        started_at: float,
    ) -> BatchOutcome:
        current = dict(sorted(current_results.items()))
        previous = dict(sorted(previous_results.items()))
        everything = list(current.values()) + list(previous.values())

        current_total = self.total(current.values())
        previous_total = self.total(previous.values())
        failed = sum(1 for result in everything if not result.succeeded)
        elapsed_ms = max(int(round((self._clock() - started_at) * 1000)), 0)

        metadata = Metadata(
            current_total=current_total,
            previous_total=previous_total,
            percent_change=self.percent_change(current_total, previous_total),
            total_requests=len(everything),
            failed_requests=failed,
            success_rate=self.success_rate(len(everything), failed),
            execution_time_ms=elapsed_ms,
            total_attempts=sum(result.attempts for result in everything),
        )
        return BatchOutcome(current=current, previous=previous, metadata=metadata)

    @staticmethod
    def total(results: Iterable[PeriodResult]) -> Decimal:
        return sum((result.total for result in results if result.succeeded), ZERO)

    @staticmethod
    def percent_change(current: Decimal, previous: Decimal) -> Optional[Decimal]:
        return money.percent_change(current, previous)

    @staticmethod
    def success_rate(total_requests: int, failed_requests: int) -> Decimal:
        # an empty batch has nothing failed
        if total_requests == 0:
            return FULL_SUCCESS_RATE
        succeeded = total_requests - failed_requests
        return round_one(Decimal(succeeded) * 100 / Decimal(total_requests))

    def branch_totals(self, results: Mapping[str, PeriodResult]) -> Dict[str, Decimal]:
        """Sum open-account and closed-ticket money per branch across periods."""

        totals: Dict[str, Decimal] = {}
        for result in results.values():
            if not result.succeeded or not result.raw:
                continue
            snapshot = SalesSnapshot.from_payload(result.raw)
            for branch, card in snapshot.branch_cards.items():
                totals[branch] = totals.get(branch, ZERO) + card.sales_total
        return totals

    def compare_branches(self, outcome: BatchOutcome) -> List[BranchComparison]:
        current = self.branch_totals(outcome.current)
        previous = self.branch_totals(outcome.previous)
        comparisons: List[BranchComparison] = []
        for branch in sorted(set(current) | set(previous)):
            current_total = current.get(branch, ZERO)
            previous_total = previous.get(branch, ZERO)
            comparisons.append(
                BranchComparison(
                    branch=branch,
                    current_total=current_total,
                    previous_total=previous_total,
                    percent_change=self.percent_change(current_total, previous_total),
                )
            )
        return comparisons
