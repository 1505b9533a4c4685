from datetime import date
from decimal import Decimal

from sales_batch.analytics.aggregator import Aggregator
from sales_batch.domain.models import Period, PeriodResult, SalesSnapshot


class _FakeClock:
    def __init__(self, value: float = 0.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


def _period(key: str) -> Period:
    return Period(key=key, label=key, start_date=date(2024, 3, 1), end_date=date(2024, 3, 7))


def _ok(key: str, total: str, raw=None, attempts: int = 1) -> PeriodResult:
    snapshot = SalesSnapshot(total=Decimal(total), raw=raw or {})
    return PeriodResult.success(_period(key), snapshot, attempts)


def _failed(key: str, attempts: int = 4) -> PeriodResult:
    return PeriodResult.failure(_period(key), attempts=attempts, error="UpstreamHttpError")


def test_percent_change_between_totals():
    aggregator = Aggregator(clock=_FakeClock())

    outcome = aggregator.combine({"w1": _ok("w1", "120000")}, {"w1": _ok("w1", "100000")}, 0.0)

    assert outcome.metadata.percent_change == Decimal("20.0")


def test_percent_change_is_absent_when_previous_total_is_zero():
    aggregator = Aggregator(clock=_FakeClock())

    outcome = aggregator.combine({"w1": _ok("w1", "500")}, {"w1": _ok("w1", "0")}, 0.0)

    assert outcome.metadata.percent_change is None
    assert outcome.to_payload()["metadata"]["percent_change"] is None


def test_partial_failure_keeps_successful_totals():
    aggregator = Aggregator(clock=_FakeClock())

    outcome = aggregator.combine(
        {"w1": _ok("w1", "50000"), "w2": _ok("w2", "75000")},
        {"w1": _failed("w1")},
        0.0,
    )

    metadata = outcome.metadata
    assert metadata.current_total == Decimal("125000")
    assert metadata.previous_total == Decimal("0")
    assert metadata.total_requests == 3
    assert metadata.failed_requests == 1
    assert metadata.success_rate == Decimal("66.7")
    assert metadata.percent_change is None
    assert metadata.total_attempts == 6


def test_total_failure_is_zero_rate_not_an_error():
    aggregator = Aggregator(clock=_FakeClock())

    outcome = aggregator.combine({"w1": _failed("w1")}, {"w1": _failed("w1")}, 0.0)

    assert outcome.metadata.success_rate == Decimal("0.0")
    assert outcome.metadata.current_total == Decimal("0")


def test_empty_batch_reports_full_success_rate():
    aggregator = Aggregator(clock=_FakeClock())

    outcome = aggregator.combine({}, {}, 0.0)

    assert outcome.metadata.total_requests == 0
    assert outcome.metadata.success_rate == Decimal("100.0")


def test_execution_time_is_measured_from_start():
    clock = _FakeClock(10.0)
    aggregator = Aggregator(clock=clock)
    started = aggregator.start()
    clock.value = 10.25

    outcome = aggregator.combine({}, {}, started)

    assert outcome.metadata.execution_time_ms == 250


def test_result_maps_are_ordered_by_key():
    aggregator = Aggregator(clock=_FakeClock())

    outcome = aggregator.combine(
        {"b": _ok("b", "1"), "a": _ok("a", "2")}, {}, 0.0
    )

    assert list(outcome.current) == ["a", "b"]


def test_percent_change_rounds_half_up():
    assert Aggregator.percent_change(Decimal("100.25"), Decimal("100")) == Decimal("0.3")
    assert Aggregator.percent_change(Decimal("90"), Decimal("100")) == Decimal("-10.0")


def test_branch_comparison_uses_open_and_closed_money():
    def cards(downtown_open, downtown_closed):
        return {
            "sales": {"total": 0},
            "cards": {
                "Downtown": {
                    "open_accounts": {"total": 2, "money": downtown_open},
                    "closed_ticket": {"total": 5, "money": downtown_closed},
                },
            },
        }

    aggregator = Aggregator(clock=_FakeClock())
    outcome = aggregator.combine(
        {"w1": _ok("w1", "0", raw=cards(100, 1100)), "w2": _ok("w2", "0", raw=cards(0, 300))},
        {"w1": _ok("w1", "0", raw=cards(50, 950))},
        0.0,
    )

    [comparison] = aggregator.compare_branches(outcome)

    assert comparison.branch == "Downtown"
    assert comparison.current_total == Decimal("1500")
    assert comparison.previous_total == Decimal("1000")
    assert comparison.percent_change == Decimal("50.0")


def test_branch_totals_ignore_failed_periods():
    aggregator = Aggregator(clock=_FakeClock())

    assert aggregator.branch_totals({"w1": _failed("w1")}) == {}
