"""Background sync dispatch and the queue of tasks awaiting connectivity."""

import time
from typing import Awaitable, Callable, Dict, List, Optional

import anyio

from ...constants import KNOWN_SYNC_TAGS
from ...domain.models import SyncTask
from ...logging import debug, info, warning, LogRecord, LogEvent

SyncHandler = Callable[[str], Awaitable[None]]


async def log_sync_request(tag: str) -> None:
    """Handler for tags whose backend endpoint does not exist yet."""
    info(
        LogRecord(
            event=LogEvent.BACKGROUND_SYNC.value,
            message=f"Sync requested for {tag}; no backend configured",
            data={"tag": tag},
        )
    )


class SyncDispatcher:
    """
    Dispatches named sync tasks to registered handlers.

    Dispatch never raises: an unknown tag is a no-op that reports success and
    a failing handler is logged and reported as unsuccessful.
    """

    def __init__(self, handlers: Optional[Dict[str, SyncHandler]] = None):
        self._handlers: Dict[str, SyncHandler] = dict(handlers or {})

    @classmethod
    def with_default_handlers(cls) -> "SyncDispatcher":
        return cls({tag: log_sync_request for tag in KNOWN_SYNC_TAGS})

    def register(self, tag: str, handler: SyncHandler) -> None:
        self._handlers[tag] = handler

    def unregister(self, tag: str) -> None:
        self._handlers.pop(tag, None)

    @property
    def registered_tags(self) -> List[str]:
        return sorted(self._handlers)

    async def dispatch(self, tag: str, request_id: Optional[str] = None) -> bool:
        """Run the handler for ``tag``.

        Returns:
            False only when a registered handler raised
        """
        handler = self._handlers.get(tag)
        if handler is None:
            debug(
                LogRecord(
                    event=LogEvent.BACKGROUND_SYNC.value,
                    message="No handler registered for sync tag",
                    request_id=request_id,
                    data={"tag": tag},
                )
            )
            return True

        try:
            await handler(tag)
        except Exception as e:
            warning(
                LogRecord(
                    event=LogEvent.BACKGROUND_SYNC.value,
                    message=f"Sync handler for {tag} failed",
                    request_id=request_id,
                    data={"tag": tag},
                ),
                exc=e,
            )
            return False

        debug(
            LogRecord(
                event=LogEvent.BACKGROUND_SYNC.value,
                message="Sync handler completed",
                request_id=request_id,
                data={"tag": tag},
            )
        )
        return True


class SyncQueue:
    """
    Sync tasks registered by the host while offline.

    A tag is queued at most once. Flushing drains the queue, so each queued
    task runs at most once per connectivity restoration.
    """

    def __init__(self):
        self._pending: Dict[str, SyncTask] = {}
        self._lock = anyio.Lock()

    async def enqueue(self, tag: str) -> SyncTask:
        async with self._lock:
            task = self._pending.get(tag)
            if task is None:
                task = SyncTask(tag=tag, enqueued_at=time.time())
                self._pending[tag] = task
            return task

    @property
    def pending_tags(self) -> List[str]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    async def flush(
        self, dispatch: Callable[[str], Awaitable[bool]]
    ) -> Dict[str, bool]:
        """Dispatch every queued task concurrently and empty the queue."""
        async with self._lock:
            tasks = list(self._pending.values())
            self._pending.clear()

        results: Dict[str, bool] = {}

        async def run(task: SyncTask) -> None:
            results[task.tag] = await dispatch(task.tag)

        async with anyio.create_task_group() as tg:
            for task in tasks:
                tg.start_soon(run, task)

        if tasks:
            info(
                LogRecord(
                    event=LogEvent.BACKGROUND_SYNC.value,
                    message=f"Flushed {len(tasks)} queued sync task(s)",
                    data={"results": results},
                )
            )
        return results
