"""Calendar period resolution and decomposition."""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sales_batch.domain.exceptions import (
    ConfigurationError,
    InvalidDateRangeError,
    UnsupportedPeriodError,
)
from sales_batch.domain.models import Period

DateLike = Union[str, date]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(value: DateLike, *, field: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string (or pass a date through)."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        raise InvalidDateRangeError(
            f"{field} must use the YYYY-MM-DD format, got {value!r}", field=field
        )
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidDateRangeError(
            f"{field} is not a valid calendar date: {value!r}", field=field
        ) from exc


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class PeriodCalculator:
    """Turns logical period names and ranges into concrete Period objects."""

    PERIOD_LABELS: Dict[str, str] = {
        "today": "Today",
        "yesterday": "Yesterday",
        "last_7_days": "Last 7 Days",
        "last_30_days": "Last 30 Days",
        "last_90_days": "Last 90 Days",
        "this_month": "This Month",
        "last_month": "Last Month",
        "this_year": "This Year",
    }

    def __init__(
        self,
        timezone_name: str = "UTC",
        *,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        try:
            self._zone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(
                "Unknown time zone", context={"timezone": timezone_name}
            ) from exc
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def zone(self) -> ZoneInfo:
        return self._zone

    def today(self, reference_time: Optional[datetime] = None) -> date:
        """Calendar date of ``reference_time`` (default: now) in the configured zone."""

        moment = reference_time or self._now()
        if moment.tzinfo is None:
            return moment.date()
        return moment.astimezone(self._zone).date()

    def available_periods(self) -> List[Dict[str, str]]:
        return [
            {"value": name, "label": label} for name, label in self.PERIOD_LABELS.items()
        ]

    def resolve(
        self, period_name: str, reference_time: Optional[datetime] = None
    ) -> Tuple[date, date]:
        """Resolve a named logical period into an inclusive ``(start, end)`` pair."""

        today = self.today(reference_time)
        name = (period_name or "").strip().lower()
        if name == "today":
            return today, today
        if name == "yesterday":
            yesterday = today - timedelta(days=1)
            return yesterday, yesterday
        if name == "last_7_days":
            return today - timedelta(days=7), today
        if name == "last_30_days":
            return today - timedelta(days=30), today
        if name == "last_90_days":
            return today - timedelta(days=90), today
        if name == "this_month":
            return today.replace(day=1), today
        if name == "last_month":
            last_month_end = today.replace(day=1) - timedelta(days=1)
            return last_month_end.replace(day=1), last_month_end
        if name == "this_year":
            return date(today.year, 1, 1), today
        raise UnsupportedPeriodError(
            f"Unsupported period: {period_name}",
            context={"supported": sorted(self.PERIOD_LABELS)},
        )

    def validate_date_range(
        self,
        start_date: DateLike,
        end_date: DateLike,
        *,
        today: Optional[date] = None,
        start_field: str = "start_date",
        end_field: str = "end_date",
    ) -> Tuple[date, date]:
        """Apply the explicit-range rules and return the parsed dates."""

        start = parse_iso_date(start_date, field=start_field)
        end = parse_iso_date(end_date, field=end_field)
        if start > end:
            raise InvalidDateRangeError(
                f"{start_field} ({start}) cannot be after {end_field} ({end})",
                field=start_field,
            )
        today = today or self.today()
        if start > today:
            raise InvalidDateRangeError(
                f"{start_field} ({start}) cannot be in the future", field=start_field
            )
        return start, end

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------
    def decompose_into_weeks(
        self, start_date: date, end_date: date, label: str = "period"
    ) -> List[Period]:
        """Split a range into Monday-Sunday weeks clipped to the range."""

        self._require_order(start_date, end_date)
        weeks: List[Period] = []
        week_start = start_date - timedelta(days=start_date.weekday())
        number = 1
        while week_start <= end_date:
            week_end = week_start + timedelta(days=6)
            weeks.append(
                Period(
                    key=f"{label}_week_{number}",
                    label=f"Week {number}",
                    start_date=max(week_start, start_date),
                    end_date=min(week_end, end_date),
                )
            )
            week_start += timedelta(days=7)
            number += 1
        return weeks

    def decompose_into_days(self, start_date: date, end_date: date) -> List[Period]:
        self._require_order(start_date, end_date)
        days: List[Period] = []
        current = start_date
        while current <= end_date:
            days.append(
                Period(
                    key=current.isoformat(),
                    label=calendar.day_name[current.weekday()],
                    start_date=current,
                    end_date=current,
                )
            )
            current += timedelta(days=1)
        return days

    def decompose_into_months(
        self, start_date: date, end_date: date, label: str = "period"
    ) -> List[Period]:
        self._require_order(start_date, end_date)
        months: List[Period] = []
        month_start = start_date.replace(day=1)
        number = 1
        while month_start <= end_date:
            _, last_day = self.month_bounds(month_start)
            months.append(
                Period(
                    key=f"{label}_month_{number}",
                    label=calendar.month_name[month_start.month],
                    start_date=max(month_start, start_date),
                    end_date=min(last_day, end_date),
                )
            )
            month_start = add_months(month_start, 1)
            number += 1
        return months

    def decompose_into_quarters(
        self, start_date: date, end_date: date, label: str = "period"
    ) -> List[Period]:
        self._require_order(start_date, end_date)
        quarters: List[Period] = []
        quarter_start = date(start_date.year, (start_date.month - 1) // 3 * 3 + 1, 1)
        while quarter_start <= end_date:
            next_start = add_months(quarter_start, 3)
            number = (quarter_start.month - 1) // 3 + 1
            quarters.append(
                Period(
                    key=f"{label}_q{number}",
                    label=f"Q{number} {quarter_start.year}",
                    start_date=max(quarter_start, start_date),
                    end_date=min(next_start - timedelta(days=1), end_date),
                )
            )
            quarter_start = next_start
        return quarters

    def shift_periods(
        self,
        periods: Iterable[Period],
        *,
        years: int = 0,
        months: int = 0,
        days: int = 0,
    ) -> List[Period]:
        """Build comparison periods by shifting each range, keeping keys and labels."""

        shifted: List[Period] = []
        total_months = years * 12 + months
        for period in periods:
            start = add_months(period.start_date, total_months) + timedelta(days=days)
            end = add_months(period.end_date, total_months) + timedelta(days=days)
            shifted.append(
                Period(key=period.key, label=period.label, start_date=start, end_date=end)
            )
        return shifted

    @staticmethod
    def week_bounds(reference: date) -> Tuple[date, date]:
        monday = reference - timedelta(days=reference.weekday())
        return monday, monday + timedelta(days=6)

    @staticmethod
    def month_bounds(reference: date) -> Tuple[date, date]:
        last = calendar.monthrange(reference.year, reference.month)[1]
        return reference.replace(day=1), reference.replace(day=last)

    @staticmethod
    def _require_order(start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise InvalidDateRangeError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})",
                field="start_date",
            )
