"""Versioned cache controller and its fetch strategies."""

from .classifier import RequestClassifier
from .controller import CacheController, versioned_cache_name
from .statistics import CacheStatistics
from .strategies import (
    CacheFirstStrategy,
    FetchStrategy,
    NetworkFirstStrategy,
    StaleWhileRevalidateStrategy,
    StrategyContext,
)
from .sync import SyncDispatcher, SyncQueue, log_sync_request

__all__ = [
    "CacheController",
    "CacheFirstStrategy",
    "CacheStatistics",
    "FetchStrategy",
    "NetworkFirstStrategy",
    "RequestClassifier",
    "StaleWhileRevalidateStrategy",
    "StrategyContext",
    "SyncDispatcher",
    "SyncQueue",
    "log_sync_request",
    "versioned_cache_name",
]
