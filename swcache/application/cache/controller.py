"""Versioned cache controller: install, activate, intercept, messages, sync."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urljoin

import anyio
from anyio.abc import TaskGroup

from .classifier import RequestClassifier
from .statistics import CacheStatistics
from .strategies import (
    CacheFirstStrategy,
    FetchStrategy,
    NetworkFirstStrategy,
    StaleWhileRevalidateStrategy,
    StrategyContext,
)
from .sync import SyncDispatcher
from ...config import Settings
from ...constants import (
    CACHE_NAME_SEPARATOR,
    DEFAULT_CACHE_VERSION,
    DEFAULT_CORE_CACHE_NAME,
    DEFAULT_OFFLINE_FALLBACK_URL,
    DEFAULT_PRECACHE_URLS,
    DEFAULT_RUNTIME_CACHE_NAME,
    DEFAULT_VERSIONED_ASSET_EXTENSIONS,
)
from ...domain.exceptions import (
    CacheError,
    ControllerStateError,
    InstallError,
    NetworkError,
)
from ...domain.models import (
    CapturedResponse,
    ControlMessage,
    ControllerStatus,
    FetchRequest,
    PrecacheManifest,
    origin_of,
)
from ...enums import ControllerState, ControlMessageType, RequestClass
from ...infrastructure.network.fetcher import Fetcher
from ...infrastructure.storage.base import CacheStorage
from ...logging import debug, error, info, warning, LogRecord, LogEvent


def versioned_cache_name(base: str, version: str) -> str:
    """Name of the ``base`` store for ``version``, e.g. ``core-v1``."""
    return f"{base}{CACHE_NAME_SEPARATOR}{version}"


class CacheController:
    """
    Owns the core and runtime stores of one cache version.

    Lifecycle: ``install()`` precaches the manifest into the core store,
    ``activate()`` deletes every store that does not belong to this version,
    after which ``handle_fetch()`` intercepts same-origin GET requests:

    - navigations: network-first, falling back to the cached root document
    - versioned assets: cache-first, misses kept in the core store
    - everything else: stale-while-revalidate into the runtime store

    The controller must be entered as an async context manager before it
    intercepts requests; background revalidations run in its task group and
    are awaited when the context exits.
    """

    def __init__(
        self,
        storage: CacheStorage,
        fetcher: Fetcher,
        scope_origin: str,
        version: str = DEFAULT_CACHE_VERSION,
        precache_urls: Sequence[str] = DEFAULT_PRECACHE_URLS,
        core_cache_name: str = DEFAULT_CORE_CACHE_NAME,
        runtime_cache_name: str = DEFAULT_RUNTIME_CACHE_NAME,
        versioned_asset_extensions: Iterable[str] = DEFAULT_VERSIONED_ASSET_EXTENSIONS,
        offline_fallback_url: str = DEFAULT_OFFLINE_FALLBACK_URL,
        skip_waiting_on_install: bool = True,
        sync_dispatcher: Optional[SyncDispatcher] = None,
    ):
        self.scope_origin = origin_of(scope_origin)
        self.version = version
        self.core_cache_name = versioned_cache_name(core_cache_name, version)
        self.runtime_cache_name = versioned_cache_name(runtime_cache_name, version)
        self.manifest = PrecacheManifest.from_urls(precache_urls)
        self.offline_fallback_url = urljoin(self.scope_origin + "/", offline_fallback_url)
        self.skip_waiting_on_install = skip_waiting_on_install
        self.sync_dispatcher = sync_dispatcher or SyncDispatcher.with_default_handlers()
        self.state = ControllerState.Parsed

        self._storage = storage
        self._fetcher = fetcher
        self._statistics = CacheStatistics()
        self._classifier = RequestClassifier(self.scope_origin, versioned_asset_extensions)
        self._skip_waiting = False
        self._clients_claimed = False
        self._stores_frozen = False
        self._task_group: Optional[TaskGroup] = None

        context = StrategyContext(
            storage=storage,
            fetcher=fetcher,
            statistics=self._statistics,
            core_cache_name=self.core_cache_name,
            runtime_cache_name=self.runtime_cache_name,
            offline_fallback_url=self.offline_fallback_url,
            spawn_background=self._spawn_background,
            writable=self.writable,
        )
        self._strategies: Dict[RequestClass, FetchStrategy] = {
            RequestClass.Navigation: NetworkFirstStrategy(context),
            RequestClass.VersionedAsset: CacheFirstStrategy(context),
            RequestClass.Other: StaleWhileRevalidateStrategy(context),
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        storage: CacheStorage,
        fetcher: Fetcher,
        sync_dispatcher: Optional[SyncDispatcher] = None,
    ) -> "CacheController":
        return cls(
            storage=storage,
            fetcher=fetcher,
            scope_origin=settings.scope_origin,
            version=settings.cache_version,
            precache_urls=settings.precache_urls,
            core_cache_name=settings.core_cache_name,
            runtime_cache_name=settings.runtime_cache_name,
            versioned_asset_extensions=settings.versioned_asset_extensions,
            offline_fallback_url=settings.offline_fallback_url,
            skip_waiting_on_install=settings.skip_waiting_on_install,
            sync_dispatcher=sync_dispatcher,
        )

    # Running context

    async def __aenter__(self) -> "CacheController":
        if self._task_group is not None:
            raise ControllerStateError("Controller is already running", state=self.state)
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> Optional[bool]:
        task_group, self._task_group = self._task_group, None
        if task_group is None:
            return None
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def running(self) -> bool:
        return self._task_group is not None

    def _spawn_background(self, func: Any, *args: Any) -> None:
        """Start ``func(*args)`` without awaiting it. Its errors are discarded."""
        if self._task_group is None:
            raise ControllerStateError("Controller is not running", state=self.state)
        self._task_group.start_soon(self._run_background, func, *args)

    async def _run_background(self, func: Any, *args: Any) -> None:
        if not self.writable():
            return
        try:
            await func(*args)
        except Exception as e:
            debug(
                LogRecord(
                    event=LogEvent.REVALIDATION.value,
                    message="Background task failed",
                    data={"task": getattr(func, "__name__", repr(func))},
                ),
                exc=e,
            )

    # Install

    async def install(self) -> None:
        """Precache the manifest into the core store, all or nothing.

        Raises:
            InstallError: If any manifest URL cannot be fetched with a 200 or
                stored. The controller returns to ``parsed`` and may be retried.
            ControllerStateError: If the controller was already installed.
        """
        if self.state is not ControllerState.Parsed:
            raise ControllerStateError(
                f"Cannot install a controller in state {self.state}", state=self.state
            )

        self.state = ControllerState.Installing
        info(
            LogRecord(
                event=LogEvent.CONTROLLER_INSTALL.value,
                message="Installing cache controller",
                data={
                    "version": self.version,
                    "core_cache": self.core_cache_name,
                    "manifest_size": len(self.manifest),
                },
            )
        )

        try:
            await self._precache()
        except InstallError as e:
            self.state = ControllerState.Parsed
            error(
                LogRecord(
                    event=LogEvent.CONTROLLER_INSTALL.value,
                    message="Install failed",
                    data={"version": self.version, "failed_urls": e.failed_urls},
                ),
                exc=e,
            )
            raise

        self.state = ControllerState.Installed
        info(
            LogRecord(
                event=LogEvent.CONTROLLER_INSTALL.value,
                message="Cache controller installed",
                data={"version": self.version},
            )
        )
        if self.skip_waiting_on_install:
            self.skip_waiting()

    async def _precache(self) -> None:
        urls = list(dict.fromkeys(self.manifest.resolve(self.scope_origin)))
        responses: Dict[str, CapturedResponse] = {}
        failures: Dict[str, str] = {}

        async def fetch_one(url: str) -> None:
            self._statistics.record_network_fetch()
            try:
                response = await self._fetcher.fetch(FetchRequest(url=url))
            except NetworkError as e:
                self._statistics.record_network_failure()
                failures[url] = e.message
                return
            if not response.cacheable:
                failures[url] = f"HTTP {response.status}"
                return
            responses[url] = response

        async with anyio.create_task_group() as tg:
            for url in urls:
                tg.start_soon(fetch_one, url)

        if failures:
            raise InstallError(
                f"Precache failed for {len(failures)} of {len(urls)} URL(s)",
                version=self.version,
                failed_urls=[url for url in urls if url in failures],
                details={"failures": failures},
            )

        written: List[FetchRequest] = []
        try:
            core = await self._storage.open(self.core_cache_name)
            for url in urls:
                request = FetchRequest(url=url)
                await core.put(request, responses[url])
                written.append(request)
                self._statistics.record_store_write()
        except CacheError as e:
            self._statistics.record_store_write_failure()
            await self._rollback(written)
            raise InstallError(
                f"Failed to store precached responses in {self.core_cache_name}",
                version=self.version,
                failed_urls=[url for url in urls if url not in {r.url for r in written}],
                details={"error": e.message},
            ) from e

        debug(
            LogRecord(
                event=LogEvent.PRECACHE.value,
                message="Precached manifest",
                data={"store": self.core_cache_name, "entries": len(urls)},
            )
        )

    async def _rollback(self, written: List[FetchRequest]) -> None:
        """Remove entries written by an install that did not complete."""
        if not written:
            return
        try:
            core = await self._storage.open(self.core_cache_name)
            for request in written:
                await core.delete(request)
        except CacheError as e:
            warning(
                LogRecord(
                    event=LogEvent.PRECACHE.value,
                    message="Failed to roll back partial precache",
                    data={"store": self.core_cache_name, "entries": len(written)},
                ),
                exc=e,
            )

    def skip_waiting(self) -> None:
        """Signal readiness to take over without waiting for older controllers."""
        if not self._skip_waiting:
            self._skip_waiting = True
            debug(
                LogRecord(
                    event=LogEvent.CONTROL_MESSAGE.value,
                    message="Skip waiting requested",
                    data={"version": self.version},
                )
            )

    @property
    def skip_waiting_requested(self) -> bool:
        return self._skip_waiting

    # Activate

    async def activate(self) -> List[str]:
        """Delete every store not owned by this version and claim clients.

        Returns:
            Names of the deleted stores
        """
        if self.state is not ControllerState.Installed:
            raise ControllerStateError(
                f"Cannot activate a controller in state {self.state}", state=self.state
            )

        self.state = ControllerState.Activating
        info(
            LogRecord(
                event=LogEvent.CONTROLLER_ACTIVATE.value,
                message="Activating cache controller",
                data={"version": self.version},
            )
        )

        keep = {self.core_cache_name, self.runtime_cache_name}
        deleted: List[str] = []
        try:
            for name in await self._storage.keys():
                if name in keep:
                    continue
                if await self._storage.delete(name):
                    deleted.append(name)
                    info(
                        LogRecord(
                            event=LogEvent.CACHE_CLEANUP.value,
                            message=f"Deleted stale store {name}",
                            data={"store": name, "version": self.version},
                        )
                    )
        except CacheError:
            self.state = ControllerState.Installed
            raise
        finally:
            self._statistics.record_stores_deleted(len(deleted))

        self.state = ControllerState.Activated
        await self.claim_clients()
        return deleted

    async def claim_clients(self) -> None:
        """Take over interception for every open client, not only new ones."""
        self._clients_claimed = True
        debug(
            LogRecord(
                event=LogEvent.CONTROLLER_ACTIVATE.value,
                message="Clients claimed",
                data={"version": self.version},
            )
        )

    @property
    def clients_claimed(self) -> bool:
        return self._clients_claimed

    def writable(self) -> bool:
        """Whether responses may still be written to this version's stores."""
        return self.state is ControllerState.Activated and not self._stores_frozen

    def freeze_stores(self, frozen: bool = True) -> None:
        """Stop (or resume) store writes while a newer version activates."""
        self._stores_frozen = frozen

    def mark_redundant(self) -> None:
        """Retire this controller once a newer version has taken over."""
        self.state = ControllerState.Redundant
        info(
            LogRecord(
                event=LogEvent.CONTROLLER_PROMOTED.value,
                message="Controller superseded",
                data={"version": self.version},
            )
        )

    # Intercept

    def classify(self, request: FetchRequest) -> Optional[RequestClass]:
        return self._classifier.classify(request)

    async def handle_fetch(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> Optional[CapturedResponse]:
        """Answer ``request`` from the stores and/or the network.

        Returns:
            The response, or None when the request is not intercepted and
            should go to the network untouched

        Raises:
            NetworkError: If the network fails and no cached copy applies
            ControllerStateError: If the controller is not running
        """
        if self.state is not ControllerState.Activated:
            self._statistics.record_passthrough()
            return None

        request_class = self._classifier.classify(request)
        if request_class is None:
            self._statistics.record_passthrough()
            return None

        if self._task_group is None:
            raise ControllerStateError(
                "Controller is not running", state=self.state, request_id=request_id
            )

        strategy = self._strategies[request_class]
        debug(
            LogRecord(
                event=LogEvent.FETCH_STRATEGY.value,
                message=f"Handling {request_class} request",
                request_id=request_id,
                data={"url": request.url, "strategy": strategy.name},
            )
        )
        return await strategy.handle(request, request_id)

    # Messages

    async def handle_message(
        self, data: Any, request_id: Optional[str] = None
    ) -> bool:
        """Apply a control message. Returns False when it was ignored."""
        if isinstance(data, ControlMessage):
            message_type = data.type
        elif isinstance(data, Mapping):
            message_type = data.get("type")
        else:
            message_type = None

        if message_type == ControlMessageType.SkipWaiting:
            self.skip_waiting()
            return True

        if message_type == ControlMessageType.ClearCache:
            await self.clear_all_caches(request_id)
            await self.claim_clients()
            return True

        debug(
            LogRecord(
                event=LogEvent.CONTROL_MESSAGE.value,
                message="Ignoring unrecognized control message",
                request_id=request_id,
                data={"type": message_type},
            )
        )
        return False

    async def clear_all_caches(self, request_id: Optional[str] = None) -> List[str]:
        """Delete every store of every version."""
        names = await self._storage.keys()
        deleted: List[str] = []
        for name in names:
            if await self._storage.delete(name):
                deleted.append(name)
        self._statistics.record_stores_deleted(len(deleted))
        warning(
            LogRecord(
                event=LogEvent.CACHE_CLEANUP.value,
                message="All caches cleared",
                request_id=request_id,
                data={"deleted": deleted},
            )
        )
        return deleted

    # Background sync

    async def handle_sync(self, tag: str, request_id: Optional[str] = None) -> bool:
        return await self.sync_dispatcher.dispatch(tag, request_id)

    # Introspection

    def status(self) -> ControllerStatus:
        return ControllerStatus(
            version=self.version,
            state=self.state,
            core_cache=self.core_cache_name,
            runtime_cache=self.runtime_cache_name,
            clients_claimed=self._clients_claimed,
            skip_waiting=self._skip_waiting,
            precache_urls=list(self.manifest.urls),
        )

    def get_stats(self) -> Dict[str, Any]:
        stats = self._statistics.get_stats()
        stats["version"] = self.version
        stats["state"] = self.state.value
        stats["storage"] = self._storage.get_stats()
        stats["sync_tags"] = self.sync_dispatcher.registered_tags
        return stats
