import json
import threading
from datetime import datetime, timezone

import httpx
import pytest

from sales_batch.core.config import DashboardConfig
from sales_batch.core.container import DIContainer
from sales_batch.periods.calculator import PeriodCalculator
from sales_batch.utils.retry import RetryPolicy

pytestmark = pytest.mark.integration

NOW = datetime(2024, 3, 14, 12, 0, tzinfo=timezone.utc)


class _FakeUpstream:
    """MockTransport handler answering by start date, counting calls per range."""

    def __init__(self, totals=None, statuses=None):
        self.totals = totals or {}
        self.statuses = statuses or {}
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        with self._lock:
            self.calls.append(body)
        start = body["start_date"]
        if start in self.statuses:
            return httpx.Response(self.statuses[start], json={"message": "error"})
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "sales": {"total": self.totals.get(start, 0)},
                    "cards": {
                        "Centro": {
                            "open_accounts": {"total": 1, "money": 0},
                            "closed_ticket": {"total": 1, "money": self.totals.get(start, 0)},
                        }
                    },
                },
            },
        )

    def count(self, start: str) -> int:
        return sum(1 for call in self.calls if call["start_date"] == start)


def _service(upstream: _FakeUpstream, **overrides):
    config = DashboardConfig(
        api_url="https://sales.example.com",
        api_token="secret",
        **overrides,
    )
    http_client = httpx.Client(transport=httpx.MockTransport(upstream))
    return DIContainer.create_service(
        config=config,
        http_client=http_client,
        retry_policy=RetryPolicy(base_delay=0.0, max_delay=0.0),
        calculator=PeriodCalculator("UTC", now=lambda: NOW),
    )


def _month_weeks(ranges):
    return [
        {"week_key": f"week_{n}", "week_name": f"Week {n}", "start_date": start, "end_date": end}
        for n, (start, end) in enumerate(ranges, start=1)
    ]


def test_month_week_batch_end_to_end():
    upstream = _FakeUpstream(
        totals={"2024-03-04": 50000, "2024-03-11": 70000, "2024-02-05": 100000},
        statuses={"2024-02-12": 500},
    )
    service = _service(upstream)

    response = service.handle_batch_request(
        {
            "current_month_weeks": _month_weeks(
                [("2024-03-04", "2024-03-10"), ("2024-03-11", "2024-03-17")]
            ),
            "previous_month_weeks": _month_weeks(
                [("2024-02-05", "2024-02-11"), ("2024-02-12", "2024-02-18")]
            ),
        }
    )

    assert response["success"] is True
    metadata = response["data"]["metadata"]
    assert metadata["current_total"] == 120000
    assert metadata["previous_total"] == 100000
    assert metadata["percent_change"] == pytest.approx(20.0)
    assert metadata["total_requests"] == 4
    assert metadata["failed_requests"] == 1
    assert metadata["success_rate"] == pytest.approx(75.0)
    assert metadata["total_attempts"] == 7
    assert upstream.count("2024-02-12") == 4
    previous = response["data"]["previous_month_weeks"]
    assert previous["week_2"]["succeeded"] is False
    assert previous["week_2"]["total"] == 0
    assert previous["week_2"]["error"] == "UpstreamHttpError"


def test_month_week_batch_rejects_spans_over_seven_days():
    upstream = _FakeUpstream()
    service = _service(upstream)

    response = service.handle_batch_request(
        {
            "current_month_weeks": _month_weeks([("2024-03-01", "2024-03-10")]),
            "previous_month_weeks": [],
        }
    )

    assert response["success"] is False
    assert "current_month_weeks.0" in response["errors"]
    assert upstream.calls == []


def test_client_errors_are_attempted_once():
    upstream = _FakeUpstream(statuses={"2024-03-04": 400})
    service = _service(upstream)

    response = service.handle_batch_request(
        {
            "current_periods": [
                {"key": "w", "label": "W", "start_date": "2024-03-04", "end_date": "2024-03-10"}
            ],
            "previous_periods": [],
        }
    )

    assert response["data"]["metadata"]["success_rate"] == 0
    assert upstream.count("2024-03-04") == 1


def test_cached_batch_skips_upstream():
    upstream = _FakeUpstream(totals={"2024-03-04": 10})
    service = _service(upstream)
    payload = {
        "current_periods": [
            {"key": "w", "label": "W", "start_date": "2024-03-04", "end_date": "2024-03-10"}
        ],
        "previous_periods": [],
    }

    service.handle_batch_request(payload)
    second = service.handle_batch_request(payload)

    assert second["data"]["metadata"]["cache_status"] == "hit"
    assert len(upstream.calls) == 1


def test_placeholder_token_fails_without_network():
    upstream = _FakeUpstream()
    config = DashboardConfig(api_token="test_token_placeholder")
    service = DIContainer.create_service(
        config=config,
        http_client=httpx.Client(transport=httpx.MockTransport(upstream)),
        calculator=PeriodCalculator("UTC", now=lambda: NOW),
    )

    response = service.handle_batch_request(
        {
            "current_periods": [
                {"key": "w", "label": "W", "start_date": "2024-03-04", "end_date": "2024-03-10"}
            ],
            "previous_periods": [],
        }
    )

    assert response["success"] is False
    assert upstream.calls == []


def test_compare_week_and_branch_breakdown():
    upstream = _FakeUpstream(totals={"2024-03-11": 300, "2024-03-04": 200})
    service = _service(upstream, enable_cache=False)

    outcome, _ = service.compare_week()
    [branch] = service.compare_branches(outcome)

    assert branch.branch == "Centro"
    assert int(branch.current_total) == 300
    assert int(branch.previous_total) == 200
    assert float(branch.percent_change) == pytest.approx(50.0)


def test_dashboard_for_period_end_to_end():
    upstream = _FakeUpstream(totals={"2024-03-01": 4321})
    service = _service(upstream)

    snapshot = service.dashboard_for_period("this_month")

    assert int(snapshot.total) == 4321
    assert upstream.calls == [{"start_date": "2024-03-01", "end_date": "2024-03-14"}]
