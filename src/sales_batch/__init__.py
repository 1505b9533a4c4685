"""Sales batch period-aggregation core following Clean Architecture layering."""

from .core.container import DIContainer
from .core.service import SalesBatchService

__all__ = [
    "SalesBatchService",
    "DIContainer",
    "domain",
    "periods",
    "upstream",
    "batch",
    "analytics",
    "cache",
    "core",
    "utils",
]
