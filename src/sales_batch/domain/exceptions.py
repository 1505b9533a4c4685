"""Exception hierarchy for sales batch aggregation failures."""

from __future__ import annotations

from typing import Any, Mapping, Sequence


class SalesBatchError(Exception):
    """Base class for all domain-level errors in the sales batch core."""

    default_message = "Sales batch error occurred"

    def __init__(
        self, message: str | None = None, *, context: Mapping[str, Any] | None = None
    ):
        self.message = message or self.default_message
        self.context: Mapping[str, Any] = dict(context or {})
        formatted = self._format_message()
        super().__init__(formatted)

    def _format_message(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class ConfigurationError(SalesBatchError):
    """Upstream credentials or settings are missing; nothing is attempted."""

    default_message = "Upstream API is not configured"


class InputValidationError(SalesBatchError):
    """Caller supplied input that cannot be processed."""

    default_message = "Invalid input"

    def errors(self) -> dict[str, list[str]]:
        return {"input": [self.message]}


class InvalidDateRangeError(InputValidationError):
    """A date or date range violates the range rules."""

    default_message = "Invalid date range"

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str,
        context: Mapping[str, Any] | None = None,
    ):
        self.field = field
        merged = {"field": field, **dict(context or {})}
        super().__init__(message, context=merged)

    def errors(self) -> dict[str, list[str]]:
        return {self.field: [self.message]}


class UnsupportedPeriodError(InputValidationError):
    """The named logical period is not known."""

    default_message = "Unsupported period"


class BatchValidationError(InputValidationError):
    """A batch request breaks one or more structural rules."""

    default_message = "Batch request validation failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: Mapping[str, Sequence[str]] | None = None,
        context: Mapping[str, Any] | None = None,
    ):
        self._errors = {field: list(msgs) for field, msgs in (errors or {}).items()}
        super().__init__(message, context=context)

    def errors(self) -> dict[str, list[str]]:
        if self._errors:
            return {field: list(msgs) for field, msgs in self._errors.items()}
        return super().errors()


class UpstreamError(SalesBatchError):
    """Failures talking to the upstream sales endpoint."""

    default_message = "Upstream request failed"


class UpstreamHttpError(UpstreamError):
    """Upstream answered with a non-2xx status."""

    default_message = "Upstream returned an error status"

    def __init__(
        self,
        message: str | None = None,
        *,
        status: int,
        context: Mapping[str, Any] | None = None,
    ):
        self.status = status
        merged = {"status_code": status, **dict(context or {})}
        super().__init__(message, context=merged)


class UpstreamConnectionError(UpstreamError):
    """Upstream could not be reached."""

    default_message = "Upstream connection failed"


class UpstreamTimeoutError(UpstreamConnectionError):
    """Upstream did not answer within the timeout."""

    default_message = "Upstream request timed out"


class MalformedResponseError(UpstreamError):
    """Upstream body is not JSON or does not report success."""

    default_message = "Malformed upstream response"


class BatchDeadlineExceededError(UpstreamError):
    """The period was still pending when the batch deadline expired."""

    default_message = "Batch deadline exceeded"
