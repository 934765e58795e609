"""In-process cache storage with a shared memory quota."""

from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

import anyio

from .base import CacheStorage, CacheStore
from .models import CachedEntry
from ...constants import DEFAULT_STORAGE_MAX_MEMORY_MB, LOG_KEY_PREFIX_LENGTH
from ...domain.exceptions import StoreQuotaExceededError
from ...domain.models import CapturedResponse, FetchRequest
from ...logging import debug, info, LogRecord, LogEvent


class InMemoryCacheStore(CacheStore):
    """
    A named store held in process memory.

    Entries are kept in insertion order and never evicted; a write that would
    push the owning storage past its quota is rejected instead.
    """

    def __init__(self, name: str, storage: "InMemoryCacheStorage"):
        super().__init__(name)
        self._storage = storage
        self._entries: OrderedDict[Tuple[str, str], CachedEntry] = OrderedDict()
        self._lock = anyio.Lock()

    @property
    def memory_usage_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self._entries.values())

    async def match(self, request: FetchRequest) -> Optional[CapturedResponse]:
        async with self._lock:
            entry = self._entries.get(request.identity)
            if entry is None:
                return None
            entry.update_access()
            return entry.response.clone()

    async def put(self, request: FetchRequest, response: CapturedResponse) -> None:
        entry = CachedEntry(
            method=request.method, url=request.url, response=response.clone()
        )
        async with self._lock:
            previous = self._entries.get(request.identity)
            delta = entry.size_bytes - (previous.size_bytes if previous else 0)
            self._storage._reserve(delta, self.name)

            self._entries[request.identity] = entry
            self._entries.move_to_end(request.identity)

        debug(
            LogRecord(
                event=LogEvent.STORE_EVENT.value,
                message="Stored entry",
                data={
                    "store": self.name,
                    "key": entry.key[:LOG_KEY_PREFIX_LENGTH] + "...",
                    "size_bytes": entry.size_bytes,
                    "replaced": previous is not None,
                },
            )
        )

    async def delete(self, request: FetchRequest) -> bool:
        async with self._lock:
            entry = self._entries.pop(request.identity, None)
            if entry is None:
                return False
            self._storage._release(entry.size_bytes)
            return True

    async def keys(self) -> List[Tuple[str, str]]:
        async with self._lock:
            return list(self._entries.keys())

    def _drop_all(self) -> int:
        """Forget every entry, returning the bytes released."""
        released = self.memory_usage_bytes
        self._entries.clear()
        return released


class InMemoryCacheStorage(CacheStorage):
    """
    Process-local storage for named stores.

    All stores share one memory quota, mirroring a per-origin storage quota.
    """

    def __init__(self, max_memory_mb: int = DEFAULT_STORAGE_MAX_MEMORY_MB):
        """Initialize storage with a quota of ``max_memory_mb`` megabytes."""
        self.max_memory_bytes = max_memory_mb * 1024 * 1024
        self.memory_usage_bytes = 0
        self._stores: Dict[str, InMemoryCacheStore] = {}
        self._lock = anyio.Lock()

    def _reserve(self, delta: int, store_name: str) -> None:
        if self.memory_usage_bytes + delta > self.max_memory_bytes:
            raise StoreQuotaExceededError(
                f"Storage quota exceeded writing to {store_name}",
                usage_bytes=self.memory_usage_bytes,
                max_bytes=self.max_memory_bytes,
                store_name=store_name,
            )
        self.memory_usage_bytes += delta

    def _release(self, size_bytes: int) -> None:
        self.memory_usage_bytes = max(0, self.memory_usage_bytes - size_bytes)

    async def open(self, name: str) -> CacheStore:
        async with self._lock:
            store = self._stores.get(name)
            if store is None:
                store = InMemoryCacheStore(name, self)
                self._stores[name] = store
                debug(
                    LogRecord(
                        event=LogEvent.STORE_EVENT.value,
                        message="Created store",
                        data={"store": name},
                    )
                )
            return store

    async def has(self, name: str) -> bool:
        async with self._lock:
            return name in self._stores

    async def delete(self, name: str) -> bool:
        async with self._lock:
            store = self._stores.pop(name, None)
            if store is None:
                return False
            self._release(store._drop_all())

        info(
            LogRecord(
                event=LogEvent.STORE_EVENT.value,
                message="Deleted store",
                data={"store": name},
            )
        )
        return True

    async def keys(self) -> List[str]:
        async with self._lock:
            return list(self._stores.keys())

    def get_memory_usage_mb(self) -> float:
        return self.memory_usage_bytes / (1024 * 1024)

    def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        return {
            "backend": "memory",
            "store_count": len(self._stores),
            "entry_count": sum(len(s._entries) for s in self._stores.values()),
            "memory_usage_mb": round(self.get_memory_usage_mb(), 2),
            "max_memory_mb": self.max_memory_bytes / (1024 * 1024),
        }
