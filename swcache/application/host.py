"""Hosting environment that owns controllers and delivers their events."""

from contextlib import AsyncExitStack
from typing import Any, Dict, Mapping, Optional

from .cache.controller import CacheController
from .cache.sync import SyncQueue
from ..domain.exceptions import InstallError
from ..domain.models import CapturedResponse, ControlMessage, FetchRequest, SyncTask
from ..enums import ControlMessageType
from ..infrastructure.network.fetcher import Fetcher
from ..logging import debug, info, warning, LogRecord, LogEvent


class ControllerHost:
    """
    Delivers lifecycle, fetch, message and sync events to cache controllers.

    At most one controller is active (intercepting) and at most one is waiting
    (installed, not yet activated). Registering a new version installs it
    while the active one keeps serving; the new version takes over once it
    asks to skip waiting, or immediately when nothing is active.

    Use as an async context manager: registered controllers stay running until
    the host exits.
    """

    def __init__(self, fetcher: Fetcher):
        self._fetcher = fetcher
        self._active: Optional[CacheController] = None
        self._waiting: Optional[CacheController] = None
        self._sync_queue = SyncQueue()
        self._exit_stack: Optional[AsyncExitStack] = None

    async def __aenter__(self) -> "ControllerHost":
        self._exit_stack = AsyncExitStack()
        await self._exit_stack.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> Optional[bool]:
        stack, self._exit_stack = self._exit_stack, None
        self._active = None
        self._waiting = None
        if stack is None:
            return None
        return await stack.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def active(self) -> Optional[CacheController]:
        return self._active

    @property
    def waiting(self) -> Optional[CacheController]:
        return self._waiting

    @property
    def sync_queue(self) -> SyncQueue:
        return self._sync_queue

    async def register(self, controller: CacheController) -> None:
        """Install ``controller`` and promote it when it may take over.

        Raises:
            InstallError: If precaching failed; the active controller, if
                any, keeps serving.
        """
        if self._exit_stack is None:
            raise RuntimeError("ControllerHost must be entered before registering")

        try:
            await controller.install()
        except InstallError:
            warning(
                LogRecord(
                    event=LogEvent.CONTROLLER_INSTALL.value,
                    message="New controller failed to install; keeping current one",
                    data={
                        "version": controller.version,
                        "active_version": self._active.version if self._active else None,
                    },
                )
            )
            raise

        await self._exit_stack.enter_async_context(controller)
        if self._waiting is not None and self._waiting is not controller:
            self._waiting.mark_redundant()
        self._waiting = controller

        if controller.skip_waiting_requested or self._active is None:
            await self._promote()

    async def _promote(self) -> None:
        controller = self._waiting
        if controller is None:
            return
        previous = self._active
        if previous is not None:
            previous.freeze_stores()
        try:
            await controller.activate()
        except Exception:
            if previous is not None:
                previous.freeze_stores(False)
            raise
        self._active = controller
        self._waiting = None
        if previous is not None:
            previous.mark_redundant()
        info(
            LogRecord(
                event=LogEvent.CONTROLLER_PROMOTED.value,
                message="Controller activated",
                data={
                    "version": controller.version,
                    "previous_version": previous.version if previous else None,
                },
            )
        )

    async def fetch(
        self, request: FetchRequest, request_id: Optional[str] = None
    ) -> CapturedResponse:
        """Dispatch a fetch event; declined requests go to the network."""
        if self._active is not None:
            response = await self._active.handle_fetch(request, request_id)
            if response is not None:
                return response

        debug(
            LogRecord(
                event=LogEvent.FETCH_STRATEGY.value,
                message="Request not intercepted, passing through",
                request_id=request_id,
                data={"url": request.url, "method": request.method},
            )
        )
        return await self._fetcher.fetch(request)

    async def post_message(
        self, data: Any, to_waiting: bool = False, request_id: Optional[str] = None
    ) -> bool:
        """Deliver a control message to the active or the waiting controller."""
        controller = self._waiting if to_waiting else self._active
        if controller is None:
            debug(
                LogRecord(
                    event=LogEvent.CONTROL_MESSAGE.value,
                    message="No controller to receive message",
                    request_id=request_id,
                    data={"to_waiting": to_waiting},
                )
            )
            return False

        handled = await controller.handle_message(data, request_id)
        if handled and controller is self._waiting and _is_skip_waiting(data):
            await self._promote()
        return handled

    async def request_sync(self, tag: str) -> SyncTask:
        """Queue ``tag`` until connectivity is restored."""
        task = await self._sync_queue.enqueue(tag)
        debug(
            LogRecord(
                event=LogEvent.BACKGROUND_SYNC.value,
                message="Sync task queued",
                data={"tag": tag, "pending": len(self._sync_queue)},
            )
        )
        return task

    async def connectivity_restored(self) -> Dict[str, bool]:
        """Run every queued sync task once on the active controller."""
        if self._active is None:
            return {}
        return await self._sync_queue.flush(self._active.handle_sync)

    async def sync(self, tag: str, request_id: Optional[str] = None) -> bool:
        if self._active is None:
            return False
        return await self._active.handle_sync(tag, request_id)


def _is_skip_waiting(data: Any) -> bool:
    if isinstance(data, ControlMessage):
        return data.type == ControlMessageType.SkipWaiting
    if isinstance(data, Mapping):
        return data.get("type") == ControlMessageType.SkipWaiting
    return False
