"""Dashboard configuration management helpers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from sales_batch.domain.exceptions import ConfigurationError
from sales_batch.upstream.client import UpstreamConfig
from sales_batch.utils.retry import RetryPolicy

ENV_PREFIX = "DASHBOARD_"


def _str_to_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _str_to_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer value: {value}") from exc


def _str_to_float(value: str | None, default: Optional[float]) -> Optional[float]:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid number value: {value}") from exc


@dataclass(frozen=True)
class DashboardConfig:
    """Immutable configuration object loaded from env or files."""

    api_url: str = "http://localhost:8000"
    api_token: Optional[str] = None
    timeout_seconds: float = 30.0
    batch_timeout_seconds: float = 180.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 30.0
    max_concurrency: int = 0
    max_periods_per_side: int = 10
    enable_cache: bool = True
    cache_ttl_seconds: float = 300.0
    cache_grace_seconds: Optional[float] = None
    cache_max_size: int = 50
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_env(cls) -> "DashboardConfig":
        defaults = cls()

        def env(name: str) -> Optional[str]:
            return os.getenv(f"{ENV_PREFIX}{name}")

        return cls(
            api_url=env("API_URL") or defaults.api_url,
            api_token=env("API_TOKEN") or defaults.api_token,
            timeout_seconds=_str_to_float(env("TIMEOUT_SECONDS"), defaults.timeout_seconds),
            batch_timeout_seconds=_str_to_float(
                env("BATCH_TIMEOUT_SECONDS"), defaults.batch_timeout_seconds
            ),
            max_retries=_str_to_int(env("MAX_RETRIES"), defaults.max_retries),
            backoff_base_seconds=_str_to_float(
                env("BACKOFF_BASE_SECONDS"), defaults.backoff_base_seconds
            ),
            backoff_cap_seconds=_str_to_float(
                env("BACKOFF_CAP_SECONDS"), defaults.backoff_cap_seconds
            ),
            max_concurrency=_str_to_int(env("MAX_CONCURRENCY"), defaults.max_concurrency),
            max_periods_per_side=_str_to_int(
                env("MAX_PERIODS_PER_SIDE"), defaults.max_periods_per_side
            ),
            enable_cache=_str_to_bool(env("ENABLE_CACHE"), defaults.enable_cache),
            cache_ttl_seconds=_str_to_float(
                env("CACHE_TTL_SECONDS"), defaults.cache_ttl_seconds
            ),
            cache_grace_seconds=_str_to_float(
                env("CACHE_GRACE_SECONDS"), defaults.cache_grace_seconds
            ),
            cache_max_size=_str_to_int(env("CACHE_MAX_SIZE"), defaults.cache_max_size),
            timezone=env("TIMEZONE") or defaults.timezone,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "DashboardConfig":
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        raw = file_path.read_text()
        data: Dict[str, Any]
        suffix = file_path.suffix.lower()
        if suffix == ".json":
            data = json.loads(raw)
        elif suffix in {".yaml", ".yml"}:
            data = cls._load_yaml(raw)
        else:
            raise ValueError("Unsupported config format. Use JSON or YAML.")
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping", context={"path": str(path)}
            )
        return cls(**cls._merge_with_defaults(data))

    def validate(self) -> None:
        if not self.api_url:
            raise ConfigurationError("api_url must be provided")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be greater than zero")
        if self.batch_timeout_seconds <= 0:
            raise ConfigurationError("batch_timeout_seconds must be greater than zero")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be non-negative")
        if self.backoff_base_seconds < 0:
            raise ConfigurationError("backoff_base_seconds must be non-negative")
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ConfigurationError(
                "backoff_cap_seconds must be at least backoff_base_seconds"
            )
        if self.max_concurrency < 0:
            raise ConfigurationError("max_concurrency must be non-negative")
        if self.max_periods_per_side < 1:
            raise ConfigurationError("max_periods_per_side must be at least 1")
        if self.cache_ttl_seconds <= 0:
            raise ConfigurationError("cache_ttl_seconds must be greater than zero")
        if self.cache_grace_seconds is not None and self.cache_grace_seconds < 0:
            raise ConfigurationError("cache_grace_seconds must be non-negative")
        if self.cache_max_size < 1:
            raise ConfigurationError("cache_max_size must be at least 1")

    def upstream_config(self) -> UpstreamConfig:
        return UpstreamConfig(
            base_url=self.api_url,
            api_token=self.api_token,
            timeout=self.timeout_seconds,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.backoff_base_seconds,
            max_delay=self.backoff_cap_seconds,
        )

    @classmethod
    def _merge_with_defaults(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        defaults = cls()
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                "Unknown configuration keys", context={"keys": unknown}
            )
        return {name: data.get(name, getattr(defaults, name)) for name in known}

    @staticmethod
    def _load_yaml(raw: str) -> Dict[str, Any]:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to parse YAML config files") from exc
        return yaml.safe_load(raw) or {}
