"""Store primitives and their backends."""

from .base import CacheStorage, CacheStore
from .filesystem import FileSystemCacheStorage
from .memory import InMemoryCacheStorage
from .models import CachedEntry, entry_key
from ...config import Settings
from ...enums import StorageBackend


def create_storage(settings: Settings) -> CacheStorage:
    """Build the storage backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == StorageBackend.FileSystem:
        return FileSystemCacheStorage(settings.storage_dir)
    return InMemoryCacheStorage(max_memory_mb=settings.storage_max_memory_mb)


__all__ = [
    "CacheStorage",
    "CacheStore",
    "CachedEntry",
    "FileSystemCacheStorage",
    "InMemoryCacheStorage",
    "create_storage",
    "entry_key",
]
