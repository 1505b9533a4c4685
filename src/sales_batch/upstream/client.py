"""HTTP adapter for the upstream main-dashboard-data endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx
from pydantic import ValidationError

from sales_batch.domain.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    UpstreamConnectionError,
    UpstreamHttpError,
    UpstreamTimeoutError,
)
from sales_batch.domain.models import SalesSnapshot
from sales_batch.utils.money import to_decimal


MAIN_DASHBOARD_PATH = "/api/main_dashboard_data"
HOURS_CHART_PATH = "/api/get_hours_chart"

PLACEHOLDER_TOKENS = frozenset(
    {"test_token_placeholder", "your_token_here", "changeme", "placeholder"}
)


@dataclass(frozen=True)
class UpstreamConfig:
    """Connection settings for the upstream sales API."""

    base_url: str
    api_token: Optional[str] = None
    timeout: float = 30.0
    endpoint_path: str = MAIN_DASHBOARD_PATH

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be provided")
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than zero")

    @property
    def has_usable_token(self) -> bool:
        token = (self.api_token or "").strip()
        return bool(token) and token.lower() not in PLACEHOLDER_TOKENS


class DashboardApiClient:
    """Issues one POST per date range and normalizes the response."""

    def __init__(
        self,
        http_client: httpx.Client,
        config: UpstreamConfig,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._http = http_client
        self.config = config
        self._base_url = config.base_url.rstrip("/")
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )

    def ensure_configured(self) -> None:
        if not self.config.has_usable_token:
            self.logger.error("upstream_not_configured")
            raise ConfigurationError(
                "Upstream API token is missing or a placeholder",
                context={"base_url": self._base_url},
            )

    def fetch(self, start_date: date, end_date: date) -> SalesSnapshot:
        """Fetch the sales snapshot for an inclusive date range."""

        self.ensure_configured()
        payload = {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        }
        body = self._post(self.config.endpoint_path, payload)
        try:
            snapshot = SalesSnapshot.from_payload(body.get("data"))
        except ValidationError as exc:
            raise MalformedResponseError(
                "Upstream data block could not be normalized",
                context={"payload": payload, "errors": exc.error_count()},
            ) from exc
        self.logger.debug(
            "upstream_snapshot",
            extra={
                "start_date": payload["start_date"],
                "end_date": payload["end_date"],
                "total": str(snapshot.total),
                "branches": len(snapshot.branch_cards),
            },
        )
        return snapshot

    def fetch_hours_chart(self, day: date) -> Dict[str, Dict[str, Decimal]]:
        """Hourly sales for ``day`` and the comparison days upstream returns."""

        self.ensure_configured()
        body = self._post(HOURS_CHART_PATH, {"date": day.isoformat()})
        data = body.get("data")
        if not isinstance(data, Mapping):
            return {}
        chart: Dict[str, Dict[str, Decimal]] = {}
        for chart_date, hours in data.items():
            if not isinstance(hours, Mapping):
                continue
            chart[str(chart_date)] = {
                str(hour): to_decimal(value) for hour, value in sorted(hours.items())
            }
        return chart

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_token}",
        }

    def _post(self, path: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            http_response = self._http.post(
                url,
                json=dict(payload),
                headers=self._headers(),
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(
                context={"url": url, "payload": dict(payload)}
            ) from exc
        except httpx.TransportError as exc:
            raise UpstreamConnectionError(
                str(exc) or None, context={"url": url, "payload": dict(payload)}
            ) from exc
        return self._map_response(http_response, payload)

    def _map_response(
        self, http_response: httpx.Response, payload: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        status = http_response.status_code
        if not 200 <= status < 300:
            self.logger.warning(
                "upstream_http_error",
                extra={"status_code": status, "payload": dict(payload)},
            )
            raise UpstreamHttpError(
                f"Upstream returned HTTP {status}",
                status=status,
                context={"payload": dict(payload)},
            )

        try:
            body = http_response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                "Upstream body is not valid JSON", context={"status_code": status}
            ) from exc

        if not isinstance(body, Mapping) or body.get("success") is not True:
            message = body.get("message") if isinstance(body, Mapping) else None
            raise MalformedResponseError(
                "Upstream response did not report success",
                context={"upstream_message": message or ""},
            )
        return body
