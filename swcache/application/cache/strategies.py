"""Per-request fetch strategies.

Each strategy answers one intercepted request. They share a
:class:`StrategyContext` that wraps store access and network access with the
controller's logging and statistics.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from .statistics import CacheStatistics
from ...constants import CONDITIONAL_HEADERS
from ...domain.exceptions import CacheError, NetworkError
from ...domain.models import CapturedResponse, FetchRequest
from ...infrastructure.network.fetcher import Fetcher
from ...infrastructure.storage.base import CacheStorage
from ...logging import debug, info, warning, LogRecord, LogEvent

SpawnBackground = Callable[..., None]


def without_conditional_headers(request: FetchRequest) -> FetchRequest:
    headers = {
        k: v for k, v in request.headers.items() if k.lower() not in CONDITIONAL_HEADERS
    }
    if len(headers) == len(request.headers):
        return request
    return request.model_copy(update={"headers": headers})


@dataclass
class StrategyContext:
    """Collaborators shared by all strategies of one controller."""

    storage: CacheStorage
    fetcher: Fetcher
    statistics: CacheStatistics
    core_cache_name: str
    runtime_cache_name: str
    offline_fallback_url: str
    spawn_background: SpawnBackground
    writable: Callable[[], bool]

    async def match(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> Optional[CapturedResponse]:
        """Look ``request`` up in the core store, then the runtime store.

        Unreadable entries count as misses.
        """
        try:
            return await self.storage.match(
                request, cache_names=[self.core_cache_name, self.runtime_cache_name]
            )
        except CacheError as e:
            self.statistics.record_store_read_failure()
            warning(
                LogRecord(
                    event=LogEvent.CACHE_EVENT.value,
                    message="Cached entry unreadable, treating as miss",
                    request_id=request_id,
                    data={"url": request.url, "store": e.store_name},
                ),
                exc=e,
            )
            return None

    async def fetch(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> CapturedResponse:
        """Fetch from the network, counting failures before re-raising them.

        Conditional headers are dropped so the network answers with a full,
        storable response.
        """
        self.statistics.record_network_fetch()
        try:
            return await self.fetcher.fetch(without_conditional_headers(request))
        except NetworkError:
            self.statistics.record_network_failure()
            raise

    async def store_copy(
        self,
        cache_name: str,
        request: FetchRequest,
        response: CapturedResponse,
        request_id: Optional[str] = None,
    ) -> bool:
        """Persist a copy of a 200 response. Write failures are logged, not raised."""
        if not response.cacheable:
            return False
        if not self.writable():
            debug(
                LogRecord(
                    event=LogEvent.CACHE_EVENT.value,
                    message="Controller no longer active, not storing response",
                    request_id=request_id,
                    data={"url": request.url, "store": cache_name},
                )
            )
            return False
        try:
            store = await self.storage.open(cache_name)
            await store.put(request, response.clone())
        except CacheError as e:
            self.statistics.record_store_write_failure()
            warning(
                LogRecord(
                    event=LogEvent.CACHE_EVENT.value,
                    message="Failed to store response, serving it uncached",
                    request_id=request_id,
                    data={"url": request.url, "store": cache_name},
                ),
                exc=e,
            )
            return False
        self.statistics.record_store_write()
        return True


class FetchStrategy(ABC):
    """Answers an intercepted request."""

    name: str = ""

    def __init__(self, context: StrategyContext):
        self.context = context

    @abstractmethod
    async def handle(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> CapturedResponse:
        """Produce the response for ``request``.

        Raises:
            NetworkError: If the network fails and no cached copy applies.
        """


class NetworkFirstStrategy(FetchStrategy):
    """Network first; offline navigations get the cached root document."""

    name = "network-first"

    async def handle(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> CapturedResponse:
        ctx = self.context
        try:
            return await ctx.fetch(request, request_id)
        except NetworkError as e:
            fallback_request = FetchRequest(url=ctx.offline_fallback_url)
            fallback = await ctx.match(fallback_request, request_id)
            if fallback is None:
                ctx.statistics.record_miss()
                warning(
                    LogRecord(
                        event=LogEvent.NETWORK_FAILURE.value,
                        message="Navigation failed and no offline document is cached",
                        request_id=request_id,
                        data={"url": request.url, "fallback": ctx.offline_fallback_url},
                    ),
                    exc=e,
                )
                raise

            ctx.statistics.record_hit()
            ctx.statistics.record_offline_fallback()
            info(
                LogRecord(
                    event=LogEvent.OFFLINE_FALLBACK.value,
                    message="Serving cached root document for offline navigation",
                    request_id=request_id,
                    data={"url": request.url, "fallback": ctx.offline_fallback_url},
                )
            )
            return fallback


class CacheFirstStrategy(FetchStrategy):
    """Cache first; misses are fetched and kept in the core store."""

    name = "cache-first"

    async def handle(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> CapturedResponse:
        ctx = self.context
        cached = await ctx.match(request, request_id)
        if cached is not None:
            ctx.statistics.record_hit()
            debug(
                LogRecord(
                    event=LogEvent.FETCH_STRATEGY.value,
                    message="Cache hit",
                    request_id=request_id,
                    data={"url": request.url, "strategy": self.name},
                )
            )
            return cached

        ctx.statistics.record_miss()
        response = await ctx.fetch(request, request_id)
        await ctx.store_copy(ctx.core_cache_name, request, response, request_id)
        return response


class StaleWhileRevalidateStrategy(FetchStrategy):
    """
    Serve any cached copy at once and refresh the runtime store behind it.

    The refresh runs as an unawaited background task; its errors are logged
    and discarded.
    """

    name = "stale-while-revalidate"

    async def handle(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> CapturedResponse:
        ctx = self.context
        cached = await ctx.match(request, request_id)
        if cached is not None:
            ctx.statistics.record_hit()
            ctx.spawn_background(self.revalidate, request, request_id)
            return cached

        ctx.statistics.record_miss()
        response = await ctx.fetch(request, request_id)
        await ctx.store_copy(ctx.runtime_cache_name, request, response, request_id)
        return response

    async def revalidate(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> None:
        ctx = self.context
        try:
            response = await ctx.fetch(request, request_id)
        except NetworkError as e:
            ctx.statistics.record_revalidation(succeeded=False)
            debug(
                LogRecord(
                    event=LogEvent.REVALIDATION.value,
                    message="Background revalidation failed",
                    request_id=request_id,
                    data={"url": request.url},
                ),
                exc=e,
            )
            return

        stored = await ctx.store_copy(
            ctx.runtime_cache_name, request, response, request_id
        )
        ctx.statistics.record_revalidation(succeeded=True)
        debug(
            LogRecord(
                event=LogEvent.REVALIDATION.value,
                message="Background revalidation finished",
                request_id=request_id,
                data={"url": request.url, "status": response.status, "stored": stored},
            )
        )
