"""Abstract store primitives consumed by the cache controller."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...domain.models import CapturedResponse, FetchRequest


class CacheStore(ABC):
    """A single named store mapping request identity to a captured response."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def match(self, request: FetchRequest) -> Optional[CapturedResponse]:
        """Return a copy of the stored response for ``request``, if any."""

    @abstractmethod
    async def put(self, request: FetchRequest, response: CapturedResponse) -> None:
        """Store ``response`` under ``request``'s identity, replacing any entry.

        Raises:
            StoreWriteError: If the entry cannot be persisted.
        """

    @abstractmethod
    async def delete(self, request: FetchRequest) -> bool:
        """Remove the entry for ``request``. Returns whether one existed."""

    @abstractmethod
    async def keys(self) -> List[Tuple[str, str]]:
        """Identities of every stored entry."""

    async def count(self) -> int:
        return len(await self.keys())


class CacheStorage(ABC):
    """The set of named stores available to a controller."""

    @abstractmethod
    async def open(self, name: str) -> CacheStore:
        """Return the store called ``name``, creating it if needed."""

    @abstractmethod
    async def has(self, name: str) -> bool:
        """Whether a store called ``name`` exists."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete the store called ``name``. Returns whether it existed."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """Names of every existing store."""

    async def match(
        self,
        request: FetchRequest,
        cache_names: Optional[Sequence[str]] = None,
    ) -> Optional[CapturedResponse]:
        """Look ``request`` up across stores, in order, without creating any.

        Args:
            request: Request whose identity is looked up
            cache_names: Stores to search; all stores when omitted

        Returns:
            The first match found, or None
        """
        names = list(cache_names) if cache_names is not None else await self.keys()
        for name in names:
            if not await self.has(name):
                continue
            store = await self.open(name)
            response = await store.match(request)
            if response is not None:
                return response
        return None

    def get_stats(self) -> Dict[str, Any]:
        """Backend-specific statistics."""
        return {}
