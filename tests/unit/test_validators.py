from datetime import date

import pytest

from sales_batch.domain.exceptions import BatchValidationError, InvalidDateRangeError
from sales_batch.domain.models import BatchRequest, Period
from sales_batch.utils.validators import (
    parse_batch_request,
    validate_batch_request,
    validate_hours_chart_date,
)

TODAY = date(2024, 3, 14)


def _item(key: str, start: str, end: str, label: str = "Week") -> dict:
    return {"key": key, "label": label, "start_date": start, "end_date": end}


def _request(current, previous=()) -> BatchRequest:
    return BatchRequest(current_periods=tuple(current), previous_periods=tuple(previous))


def _period(key: str, start: date, end: date) -> Period:
    return Period(key=key, label=key, start_date=start, end_date=end)


def test_parse_canonical_payload():
    request = parse_batch_request(
        {
            "current_periods": [_item("w1", "2024-03-04", "2024-03-10")],
            "previous_periods": [_item("w1", "2024-02-04", "2024-02-10")],
        }
    )

    assert request.current_periods[0].start_date == date(2024, 3, 4)
    assert request.previous_periods[0].key == "w1"
    assert request.metadata == {}


def test_parse_month_week_payload_marks_week_span():
    request = parse_batch_request(
        {
            "current_month_weeks": [
                {
                    "week_key": "week_1",
                    "week_name": "Week 1",
                    "start_date": "2024-03-01",
                    "end_date": "2024-03-03",
                }
            ],
            "previous_month_weeks": [],
        }
    )

    assert request.current_periods[0].key == "week_1"
    assert request.current_periods[0].label == "Week 1"
    assert request.previous_periods == ()
    assert request.metadata["max_span_days"] == 7
    assert request.field_names == ("current_month_weeks", "previous_month_weeks")


def test_parse_collects_every_shape_error():
    with pytest.raises(BatchValidationError) as exc_info:
        parse_batch_request(
            {
                "current_periods": [
                    {"key": "", "start_date": "2024-03-01", "end_date": "2024-03-02"},
                    _item("w2", "2024-3-1", "2024-03-02"),
                    _item("w3", "2024-03-05", "2024-03-01"),
                ],
            }
        )

    errors = exc_info.value.errors()
    assert "current_periods.0.key" in errors
    assert "current_periods.1.start_date" in errors
    assert "current_periods.2.end_date" in errors
    assert "previous_periods" not in errors


def test_parse_rejects_non_object_payload():
    with pytest.raises(BatchValidationError) as exc_info:
        parse_batch_request(["not", "a", "mapping"])

    assert "payload" in exc_info.value.errors()


def test_parse_rejects_non_list_side():
    with pytest.raises(BatchValidationError) as exc_info:
        parse_batch_request({"current_periods": "w1", "previous_periods": []})

    assert exc_info.value.errors()["current_periods"] == ["current_periods must be a list"]


def test_more_than_ten_periods_per_side_is_rejected():
    periods = [_period(f"d{day}", date(2024, 3, day), date(2024, 3, day)) for day in range(1, 12)]

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(_request(periods), today=TODAY)

    assert "current_periods" in exc_info.value.errors()


def test_ten_periods_per_side_is_accepted():
    periods = [_period(f"d{day}", date(2024, 3, day), date(2024, 3, day)) for day in range(1, 11)]

    validate_batch_request(_request(periods, periods), today=TODAY)


def test_future_start_is_rejected_but_future_end_is_allowed():
    validate_batch_request(
        _request([_period("w", date(2024, 3, 11), date(2024, 3, 17))]), today=TODAY
    )

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(
            _request([_period("w", date(2024, 3, 15), date(2024, 3, 17))]), today=TODAY
        )

    assert "current_periods.0.start_date" in exc_info.value.errors()


def test_overlapping_periods_within_a_side_are_rejected():
    current = [
        _period("a", date(2024, 3, 1), date(2024, 3, 7)),
        _period("b", date(2024, 3, 7), date(2024, 3, 10)),
    ]

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(_request(current), today=TODAY)

    assert "overlap" in exc_info.value.errors()["current_periods"][0]


def test_week_batches_limit_span_to_seven_days():
    request = BatchRequest(
        current_periods=(_period("w", date(2024, 3, 1), date(2024, 3, 9)),),
        metadata={"max_span_days": 7},
    )

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(request, today=TODAY)

    assert "current_periods.0" in exc_info.value.errors()


def test_dates_older_than_five_years_are_rejected():
    old = _period("old", date(2019, 3, 13), date(2019, 3, 14))

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(_request([], [old]), today=TODAY)

    assert "previous_periods.0.start_date" in exc_info.value.errors()


def test_long_keys_and_labels_are_rejected():
    period = Period(
        key="k" * 51, label="l" * 101, start_date=date(2024, 3, 1), end_date=date(2024, 3, 1)
    )

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(_request([period]), today=TODAY)

    errors = exc_info.value.errors()
    assert "current_periods.0.key" in errors
    assert "current_periods.0.label" in errors


def test_hours_chart_date_rules():
    assert validate_hours_chart_date("2024-03-14", today=TODAY) == TODAY

    with pytest.raises(InvalidDateRangeError):
        validate_hours_chart_date("2020-01-01", today=TODAY)
    with pytest.raises(InvalidDateRangeError):
        validate_hours_chart_date("2024-03-15", today=TODAY)
    with pytest.raises(InvalidDateRangeError):
        validate_hours_chart_date("yesterday", today=TODAY)


def test_missing_side_is_an_empty_list():
    request = parse_batch_request({"current_periods": [_item("w1", "2024-03-04", "2024-03-10")]})

    assert len(request.current_periods) == 1
    assert request.previous_periods == ()


def test_explicit_null_side_is_rejected():
    with pytest.raises(BatchValidationError) as exc_info:
        parse_batch_request({"current_periods": [], "previous_periods": None})

    assert exc_info.value.errors()["previous_periods"] == ["previous_periods must be a list"]


def test_month_week_payload_missing_side_keeps_month_week_names():
    request = parse_batch_request(
        {"current_month_weeks": [{"week_key": "w1", "start_date": "2024-03-04", "end_date": "2024-03-10"}]}
    )

    assert request.previous_periods == ()
    assert request.field_names == ("current_month_weeks", "previous_month_weeks")


def test_week_span_allows_seven_days_after_start():
    request = BatchRequest(
        current_periods=(_period("w", date(2024, 3, 1), date(2024, 3, 8)),),
        metadata={"max_span_days": 7},
    )

    validate_batch_request(request, today=TODAY)


def test_month_week_errors_use_month_week_field_names():
    request = BatchRequest(
        current_periods=(_period("w", date(2024, 3, 20), date(2024, 3, 21)),),
        metadata={
            "max_span_days": 7,
            "field_names": ("current_month_weeks", "previous_month_weeks"),
        },
    )

    with pytest.raises(BatchValidationError) as exc_info:
        validate_batch_request(request, today=TODAY)

    assert "current_month_weeks.0.start_date" in exc_info.value.errors()
