"""Domain value objects for batch period aggregation."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sales_batch.utils.money import ZERO, to_decimal, to_number


class Side(str, Enum):
    """Which half of a comparison a period belongs to."""

    CURRENT = "current"
    PREVIOUS = "previous"


class CacheStatus(str, Enum):
    """How a batch outcome was obtained."""

    MISS = "miss"
    HIT = "hit"
    STALE = "stale"
    BYPASS = "bypass"


class Period(BaseModel):
    """Immutable calendar range requested as one upstream call."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def validate_range(self) -> "Period":
        if not self.key.strip():
            raise ValueError("key must be a non-empty string")
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def to_payload(self) -> Dict[str, str]:
        return {
            "key": self.key,
            "label": self.label,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
        }


class MoneyCount(BaseModel):
    """Count/amount pair used by branch cards."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    money: Decimal = ZERO

    @field_validator("total", mode="before")
    @classmethod
    def default_total(cls, value: Any) -> int:
        return int(to_decimal(value))

    @field_validator("money", mode="before")
    @classmethod
    def default_money(cls, value: Any) -> Decimal:
        return to_decimal(value)


class PercentageBadge(BaseModel):
    model_config = ConfigDict(frozen=True)

    icon: str = ""
    qty: Decimal = ZERO

    @field_validator("icon", mode="before")
    @classmethod
    def default_icon(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("qty", mode="before")
    @classmethod
    def default_qty(cls, value: Any) -> Decimal:
        return to_decimal(value)


class BranchCard(BaseModel):
    """Per-branch breakdown returned by the upstream endpoint."""

    model_config = ConfigDict(frozen=True)

    open_accounts: MoneyCount = Field(default_factory=MoneyCount)
    closed_ticket: MoneyCount = Field(default_factory=MoneyCount)
    average_ticket: Decimal = ZERO
    percentage: PercentageBadge = Field(default_factory=PercentageBadge)
    date: Optional[str] = None
    store_id: Optional[int] = None

    @field_validator("open_accounts", "closed_ticket", "percentage", mode="before")
    @classmethod
    def default_nested(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else {}

    @field_validator("average_ticket", mode="before")
    @classmethod
    def default_average(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("store_id", mode="before")
    @classmethod
    def coerce_store_id(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        return int(to_decimal(value))

    @property
    def sales_total(self) -> Decimal:
        return self.open_accounts.money + self.closed_ticket.money


class SalesSnapshot(BaseModel):
    """Normalized upstream payload for one date range."""

    model_config = ConfigDict(frozen=True)

    total: Decimal = ZERO
    subtotal: Decimal = ZERO
    branch_cards: Mapping[str, BranchCard] = Field(default_factory=dict)
    raw: Mapping[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Optional[Mapping[str, Any]]) -> "SalesSnapshot":
        """Build a snapshot from the ``data`` block of an upstream response."""

        data = data if isinstance(data, Mapping) else {}
        sales = data.get("sales")
        sales = sales if isinstance(sales, Mapping) else {}
        cards = data.get("cards")
        cards = cards if isinstance(cards, Mapping) else {}
        return cls(
            total=to_decimal(sales.get("total")),
            subtotal=to_decimal(sales.get("subtotal")),
            branch_cards={
                str(name): BranchCard.model_validate(card if isinstance(card, Mapping) else {})
                for name, card in cards.items()
            },
            raw=dict(data),
        )


class PeriodResult(BaseModel):
    """Final verdict for one period after all retries."""

    model_config = ConfigDict(frozen=True)

    period_key: str
    total: Decimal = ZERO
    succeeded: bool
    attempts: int = Field(..., ge=0)
    raw: Optional[Mapping[str, Any]] = None
    period: Optional[Period] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def failed_means_zero(self) -> "PeriodResult":
        if not self.succeeded and self.total != ZERO:
            raise ValueError("failed period results must carry a zero total")
        return self

    @classmethod
    def success(
        cls, period: Period, snapshot: SalesSnapshot, attempts: int
    ) -> "PeriodResult":
        return cls(
            period_key=period.key,
            total=snapshot.total,
            succeeded=True,
            attempts=attempts,
            raw=dict(snapshot.raw),
            period=period,
        )

    @classmethod
    def failure(
        cls, period: Period, attempts: int, error: Optional[str] = None
    ) -> "PeriodResult":
        return cls(
            period_key=period.key,
            total=ZERO,
            succeeded=False,
            attempts=attempts,
            period=period,
            error=error,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.period is not None:
            payload.update(
                label=self.period.label,
                start_date=self.period.start_date.isoformat(),
                end_date=self.period.end_date.isoformat(),
            )
        payload.update(
            total=to_number(self.total),
            succeeded=self.succeeded,
            attempts=self.attempts,
            details=dict(self.raw or {}),
        )
        if self.error:
            payload["error"] = self.error
        return payload


class Metadata(BaseModel):
    """Totals and execution statistics for one batch."""

    model_config = ConfigDict(frozen=True)

    current_total: Decimal = ZERO
    previous_total: Decimal = ZERO
    percent_change: Optional[Decimal] = None
    total_requests: int = Field(0, ge=0)
    failed_requests: int = Field(0, ge=0)
    success_rate: Decimal = Decimal("100.0")
    execution_time_ms: int = Field(0, ge=0)
    total_attempts: int = Field(0, ge=0)
    request_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def validate_counts(self) -> "Metadata":
        if self.failed_requests > self.total_requests:
            raise ValueError("failed_requests cannot exceed total_requests")
        if not Decimal("0") <= self.success_rate <= Decimal("100"):
            raise ValueError("success_rate must be between 0 and 100")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return {
            "current_total": to_number(self.current_total),
            "previous_total": to_number(self.previous_total),
            "percent_change": to_number(self.percent_change),
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "success_rate": to_number(self.success_rate),
            "execution_time_ms": self.execution_time_ms,
            "total_attempts": self.total_attempts,
            "request_time": self.request_time.isoformat(),
        }


class BatchOutcome(BaseModel):
    """Immutable result of one batch execution."""

    model_config = ConfigDict(frozen=True)

    current: Mapping[str, PeriodResult] = Field(default_factory=dict)
    previous: Mapping[str, PeriodResult] = Field(default_factory=dict)
    metadata: Metadata

    def to_payload(
        self,
        *,
        cache_status: CacheStatus | None = None,
        field_names: Tuple[str, str] = ("current_periods", "previous_periods"),
    ) -> Dict[str, Any]:
        """Serialize to the JSON shape consumed by presentation code.

        ``field_names`` names the current and previous maps, so month-week
        callers get their results back under the fields they sent.
        """

        metadata = self.metadata.to_payload()
        if cache_status is not None:
            metadata["cache_status"] = cache_status.value
            metadata["cache_hit"] = cache_status in (CacheStatus.HIT, CacheStatus.STALE)
        current_field, previous_field = field_names
        return {
            current_field: {
                key: result.to_payload() for key, result in sorted(self.current.items())
            },
            previous_field: {
                key: result.to_payload() for key, result in sorted(self.previous.items())
            },
            "metadata": metadata,
        }


class BatchRequest(BaseModel):
    """Validated pair of period sequences to execute as one batch."""

    model_config = ConfigDict(frozen=True)

    current_periods: Tuple[Period, ...] = Field(default_factory=tuple)
    previous_periods: Tuple[Period, ...] = Field(default_factory=tuple)
    metadata: Mapping[str, Any] = Field(default_factory=dict)

    @property
    def total_periods(self) -> int:
        return len(self.current_periods) + len(self.previous_periods)

    @property
    def field_names(self) -> Tuple[str, str]:
        """Payload field names the request arrived under, current side first."""

        current, previous = self.metadata.get(
            "field_names", ("current_periods", "previous_periods")
        )
        return str(current), str(previous)

    def periods_for(self, side: Side) -> Tuple[Period, ...]:
        if side is Side.CURRENT:
            return self.current_periods
        return self.previous_periods


class BranchComparison(BaseModel):
    """Branch-level totals for the current and comparison periods."""

    model_config = ConfigDict(frozen=True)

    branch: str
    current_total: Decimal = ZERO
    previous_total: Decimal = ZERO
    percent_change: Optional[Decimal] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "branch": self.branch,
            "current_total": to_number(self.current_total),
            "previous_total": to_number(self.previous_total),
            "percent_change": to_number(self.percent_change),
        }
