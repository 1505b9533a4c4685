"""Input validation helpers for batch and single-date requests."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sales_batch.domain.exceptions import BatchValidationError, InvalidDateRangeError
from sales_batch.domain.models import BatchRequest, Period, Side
from sales_batch.periods.calculator import add_months, parse_iso_date

MAX_PERIODS_PER_SIDE = 10
MAX_KEY_LENGTH = 50
MAX_LABEL_LENGTH = 100
MAX_PAST_YEARS = 5
MAX_FUTURE_YEARS = 2
WEEK_SPAN_DAYS = 7
HOURS_CHART_EARLIEST = date(2020, 1, 1)

_SIDE_FIELDS: Dict[Side, Tuple[str, ...]] = {
    Side.CURRENT: ("current_periods", "current_month_weeks"),
    Side.PREVIOUS: ("previous_periods", "previous_month_weeks"),
}

Errors = Dict[str, List[str]]


def parse_batch_request(payload: Any) -> BatchRequest:
    """Build a BatchRequest from a JSON-like payload.

    Accepts ``current_periods``/``previous_periods`` items shaped as
    ``{key, label, start_date, end_date}`` as well as the month-week form
    ``current_month_weeks``/``previous_month_weeks`` with ``week_key`` and
    ``week_name``; the latter marks the request as a week batch whose periods
    may span at most seven days, and its field names are echoed back in the
    response. A side left out of the payload is an empty list, while an
    explicit ``null`` or a non-list is rejected. Shape problems are collected
    and raised together as a BatchValidationError keyed by field path.
    Calendar rules are checked separately by :func:`validate_batch_request`.
    """

    if not isinstance(payload, Mapping):
        raise BatchValidationError(
            errors={"payload": ["Request body must be a JSON object"]}
        )

    week_batch = any(
        name in payload for candidates in _SIDE_FIELDS.values() for name in candidates[1:]
    )
    errors: Errors = {}
    sides: Dict[Side, List[Period]] = {}
    fields: Dict[Side, str] = {}
    for side, candidates in _SIDE_FIELDS.items():
        default = candidates[1] if week_batch else candidates[0]
        field = next((name for name in candidates if name in payload), default)
        fields[side] = field
        sides[side] = _parse_side(payload[field], field, errors) if field in payload else []

    if errors:
        raise BatchValidationError(errors=errors)

    metadata: Dict[str, Any] = {}
    if week_batch:
        metadata = {
            "max_span_days": WEEK_SPAN_DAYS,
            "field_names": (fields[Side.CURRENT], fields[Side.PREVIOUS]),
        }
    return BatchRequest(
        current_periods=tuple(sides[Side.CURRENT]),
        previous_periods=tuple(sides[Side.PREVIOUS]),
        metadata=metadata,
    )


def validate_batch_request(
    request: BatchRequest,
    *,
    today: date,
    max_periods: int = MAX_PERIODS_PER_SIDE,
    max_span_days: Optional[int] = None,
    max_past_years: int = MAX_PAST_YEARS,
) -> None:
    """Check the semantic batch rules, raising BatchValidationError on any breach."""

    if max_span_days is None:
        max_span_days = request.metadata.get("max_span_days")
    errors: Errors = {}
    earliest = add_months(today, -12 * max_past_years)
    latest = add_months(today, 12 * MAX_FUTURE_YEARS)

    for side, field in zip(Side, request.field_names):
        periods = request.periods_for(side)
        if len(periods) > max_periods:
            _add(errors, field, f"at most {max_periods} periods are allowed per side")

        seen: set[str] = set()
        for index, period in enumerate(periods):
            path = f"{field}.{index}"
            if period.key in seen:
                _add(errors, f"{path}.key", f"duplicate period key '{period.key}'")
            seen.add(period.key)
            if len(period.key) > MAX_KEY_LENGTH:
                _add(errors, f"{path}.key", f"key may not exceed {MAX_KEY_LENGTH} characters")
            if len(period.label) > MAX_LABEL_LENGTH:
                _add(
                    errors,
                    f"{path}.label",
                    f"label may not exceed {MAX_LABEL_LENGTH} characters",
                )
            if period.start_date > today:
                _add(errors, f"{path}.start_date", "start_date cannot be in the future")
            if period.start_date < earliest:
                _add(
                    errors,
                    f"{path}.start_date",
                    f"start_date cannot be more than {max_past_years} years in the past",
                )
            if period.end_date > latest:
                _add(
                    errors,
                    f"{path}.end_date",
                    f"end_date cannot be more than {MAX_FUTURE_YEARS} years in the future",
                )
            span = (period.end_date - period.start_date).days
            if max_span_days is not None and span > max_span_days:
                _add(
                    errors,
                    path,
                    f"period '{period.key}' ends {span} days after it starts, "
                    f"the maximum is {max_span_days}",
                )

        for message in _overlap_messages(periods):
            _add(errors, field, message)

    if errors:
        raise BatchValidationError(errors=errors)


def validate_hours_chart_date(value: Any, *, today: date) -> date:
    day = parse_iso_date(value, field="date")
    if day <= HOURS_CHART_EARLIEST:
        raise InvalidDateRangeError(
            f"date must be after {HOURS_CHART_EARLIEST.isoformat()}", field="date"
        )
    if day > today:
        raise InvalidDateRangeError("date cannot be in the future", field="date")
    return day


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------
def _parse_side(raw: Any, field: str, errors: Errors) -> List[Period]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        _add(errors, field, f"{field} must be a list")
        return []

    periods: List[Period] = []
    for index, item in enumerate(raw):
        path = f"{field}.{index}"
        if not isinstance(item, Mapping):
            _add(errors, path, "each period must be an object")
            continue
        period = _parse_period(item, path, errors)
        if period is not None:
            periods.append(period)
    return periods


def _parse_period(item: Mapping[str, Any], path: str, errors: Errors) -> Optional[Period]:
    key = item.get("key", item.get("week_key"))
    label = item.get("label", item.get("week_name", key if isinstance(key, str) else ""))
    valid = True

    if not isinstance(key, str) or not key.strip():
        _add(errors, f"{path}.key", "key is required")
        valid = False
    if not isinstance(label, str):
        _add(errors, f"{path}.label", "label must be a string")
        valid = False

    dates: Dict[str, date] = {}
    for name in ("start_date", "end_date"):
        try:
            dates[name] = parse_iso_date(item.get(name), field=f"{path}.{name}")
        except InvalidDateRangeError as exc:
            _add(errors, exc.field, exc.message)
            valid = False

    if len(dates) == 2 and dates["end_date"] < dates["start_date"]:
        _add(errors, f"{path}.end_date", "end_date must not be before start_date")
        valid = False

    if not valid:
        return None
    return Period(
        key=key.strip(),
        label=label,
        start_date=dates["start_date"],
        end_date=dates["end_date"],
    )


def _overlap_messages(periods: Sequence[Period]) -> List[str]:
    messages: List[str] = []
    ordered = sorted(periods, key=lambda period: (period.start_date, period.end_date))
    for earlier, later in zip(ordered, ordered[1:]):
        if later.start_date <= earlier.end_date:
            messages.append(f"periods '{earlier.key}' and '{later.key}' overlap")
    return messages


def _add(errors: Errors, field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)
