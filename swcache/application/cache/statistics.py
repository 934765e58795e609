"""Cache statistics tracking and reporting."""

from typing import Dict, Any
import time


class CacheStatistics:
    """Tracks counters for a controller's cache decisions."""

    def __init__(self):
        """Initialize cache statistics."""
        self.reset()

    def record_hit(self):
        """Record a response served from a store."""
        self.cache_hits += 1

    def record_miss(self):
        """Record a store lookup that found nothing."""
        self.cache_misses += 1

    def record_network_fetch(self):
        self.network_fetches += 1

    def record_network_failure(self):
        self.network_failures += 1

    def record_offline_fallback(self):
        """Record a navigation answered with the cached root document."""
        self.offline_fallbacks += 1

    def record_revalidation(self, succeeded: bool):
        self.background_revalidations += 1
        if not succeeded:
            self.revalidation_failures += 1

    def record_store_write(self):
        self.store_writes += 1

    def record_store_write_failure(self):
        self.store_write_failures += 1

    def record_store_read_failure(self):
        self.store_read_failures += 1

    def record_stores_deleted(self, count: int = 1):
        self.stores_deleted += count

    def record_passthrough(self):
        """Record a request the controller declined to intercept."""
        self.passthroughs += 1

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return self.cache_hits / total

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.start_time

    def get_stats(self) -> Dict[str, Any]:
        """Get all statistics as a dictionary."""
        return {
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "hit_rate": round(self.hit_rate, 3),
            "network_fetches": self.network_fetches,
            "network_failures": self.network_failures,
            "offline_fallbacks": self.offline_fallbacks,
            "background_revalidations": self.background_revalidations,
            "revalidation_failures": self.revalidation_failures,
            "store_writes": self.store_writes,
            "store_write_failures": self.store_write_failures,
            "store_read_failures": self.store_read_failures,
            "stores_deleted": self.stores_deleted,
            "passthroughs": self.passthroughs,
            "uptime_seconds": round(self.uptime_seconds, 1),
        }

    def reset(self):
        """Reset all statistics."""
        self.cache_hits = 0
        self.cache_misses = 0
        self.network_fetches = 0
        self.network_failures = 0
        self.offline_fallbacks = 0
        self.background_revalidations = 0
        self.revalidation_failures = 0
        self.store_writes = 0
        self.store_write_failures = 0
        self.store_read_failures = 0
        self.stores_deleted = 0
        self.passthroughs = 0
        self.start_time = time.time()
