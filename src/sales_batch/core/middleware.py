"""Middleware system for batch cross-cutting concerns."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Protocol, Sequence

from sales_batch.domain.models import BatchOutcome, BatchRequest
from sales_batch.utils.validators import MAX_PERIODS_PER_SIDE, validate_batch_request


class IMiddleware(Protocol):
    """Protocol describing middleware hooks."""

    def process_request(self, request: BatchRequest) -> BatchRequest: ...

    def process_response(self, response: BatchOutcome) -> BatchOutcome: ...


class LoggingMiddleware(IMiddleware):
    """Logs inbound batches and their aggregated outcome."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def process_request(self, request: BatchRequest) -> BatchRequest:
        self._logger.info(
            "batch_request",
            extra={
                "current_periods": len(request.current_periods),
                "previous_periods": len(request.previous_periods),
                "metadata": dict(request.metadata),
            },
        )
        return request

    def process_response(self, response: BatchOutcome) -> BatchOutcome:
        metadata = response.metadata
        self._logger.info(
            "batch_response",
            extra={
                "total_requests": metadata.total_requests,
                "failed_requests": metadata.failed_requests,
                "success_rate": str(metadata.success_rate),
                "execution_time_ms": metadata.execution_time_ms,
            },
        )
        return response


class ValidationMiddleware(IMiddleware):
    """Rejects batches that break the period limits or calendar rules."""

    def __init__(
        self,
        today: Callable[[], date],
        *,
        max_periods: int = MAX_PERIODS_PER_SIDE,
    ) -> None:
        self._today = today
        self._max_periods = max_periods

    def process_request(self, request: BatchRequest) -> BatchRequest:
        validate_batch_request(
            request, today=self._today(), max_periods=self._max_periods
        )
        return request

    def process_response(self, response: BatchOutcome) -> BatchOutcome:
        return response


class MiddlewareChain:
    """Applies middleware around a handler using chain of responsibility."""

    def __init__(self, middlewares: Sequence[IMiddleware]) -> None:
        self._middlewares = list(middlewares)

    def execute(
        self, request: BatchRequest, handler: Callable[[BatchRequest], BatchOutcome]
    ) -> BatchOutcome:
        for middleware in self._middlewares:
            request = middleware.process_request(request)

        response = handler(request)

        for middleware in reversed(self._middlewares):
            response = middleware.process_response(response)

        return response
