"""Dependency injection container for building fully-wired service instances."""

from __future__ import annotations

from typing import Optional, Sequence

import httpx

from sales_batch.analytics.aggregator import Aggregator
from sales_batch.batch.executor import BatchExecutor
from sales_batch.cache.result_cache import ResultCache
from sales_batch.core.config import DashboardConfig
from sales_batch.core.middleware import (
    IMiddleware,
    LoggingMiddleware,
    MiddlewareChain,
    ValidationMiddleware,
)
from sales_batch.core.service import SalesBatchService
from sales_batch.domain.interfaces import IRetryPolicy
from sales_batch.periods.calculator import PeriodCalculator
from sales_batch.upstream.client import DashboardApiClient


class DIContainer:
    """Factory helpers that assemble a SalesBatchService with default wiring."""

    @staticmethod
    def create_service(
        *,
        config: Optional[DashboardConfig] = None,
        http_client: Optional[httpx.Client] = None,
        retry_policy: Optional[IRetryPolicy] = None,
        calculator: Optional[PeriodCalculator] = None,
    ) -> SalesBatchService:
        cfg = config or DashboardConfig.from_env()
        owns_client = http_client is None
        client_http = http_client or DIContainer._build_http_client(cfg)

        calculator = calculator or PeriodCalculator(cfg.timezone)
        client = DashboardApiClient(client_http, cfg.upstream_config())
        executor = BatchExecutor(
            client,
            retry_policy or cfg.retry_policy(),
            max_concurrency=cfg.max_concurrency or None,
            deadline_seconds=cfg.batch_timeout_seconds,
        )
        cache = (
            ResultCache(
                ttl_seconds=cfg.cache_ttl_seconds,
                grace_seconds=cfg.cache_grace_seconds,
                max_size=cfg.cache_max_size,
            )
            if cfg.enable_cache
            else None
        )

        return SalesBatchService(
            config=cfg,
            calculator=calculator,
            client=client,
            executor=executor,
            aggregator=Aggregator(),
            cache=cache,
            middleware=DIContainer._build_middleware_chain(cfg, calculator),
            http_client=client_http if owns_client else None,
        )

    @staticmethod
    def create_custom_service(
        *,
        config: DashboardConfig,
        calculator: PeriodCalculator,
        client: DashboardApiClient,
        executor: BatchExecutor,
        aggregator: Optional[Aggregator] = None,
        cache: Optional[ResultCache] = None,
        middleware: Optional[MiddlewareChain] = None,
        middlewares: Optional[Sequence[IMiddleware]] = None,
    ) -> SalesBatchService:
        return SalesBatchService(
            config=config,
            calculator=calculator,
            client=client,
            executor=executor,
            aggregator=aggregator or Aggregator(),
            cache=cache,
            middleware=middleware,
            middlewares=middlewares,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_http_client(config: DashboardConfig) -> httpx.Client:
        return httpx.Client(timeout=config.timeout_seconds)

    @staticmethod
    def _build_middleware_chain(
        config: DashboardConfig, calculator: PeriodCalculator
    ) -> MiddlewareChain:
        return MiddlewareChain(
            [
                ValidationMiddleware(
                    calculator.today, max_periods=config.max_periods_per_side
                ),
                LoggingMiddleware(),
            ]
        )
