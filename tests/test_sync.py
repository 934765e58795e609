"""Tests for sync dispatch and the pending sync queue."""

import anyio
import pytest

from swcache.application.cache.sync import SyncDispatcher, SyncQueue, log_sync_request
from swcache.constants import KNOWN_SYNC_TAGS


class TestSyncDispatcher:
    def test_default_handlers_cover_known_tags(self):
        dispatcher = SyncDispatcher.with_default_handlers()
        assert dispatcher.registered_tags == sorted(KNOWN_SYNC_TAGS)

    @pytest.mark.anyio
    async def test_dispatch_runs_handler(self):
        calls = []

        async def handler(tag: str) -> None:
            calls.append(tag)

        dispatcher = SyncDispatcher()
        dispatcher.register("sync-replays", handler)

        assert await dispatcher.dispatch("sync-replays")
        assert calls == ["sync-replays"]

    @pytest.mark.anyio
    async def test_unregistered_tag_is_noop_success(self):
        dispatcher = SyncDispatcher()
        assert await dispatcher.dispatch("sync-anything")

    @pytest.mark.anyio
    async def test_handler_failure_is_reported_not_raised(self):
        async def handler(tag: str) -> None:
            raise ConnectionError("offline")

        dispatcher = SyncDispatcher({"sync-highscores": handler})
        assert not await dispatcher.dispatch("sync-highscores")

    @pytest.mark.anyio
    async def test_unregister(self):
        async def handler(tag: str) -> None:
            raise ConnectionError("offline")

        dispatcher = SyncDispatcher({"sync-highscores": handler})
        dispatcher.unregister("sync-highscores")
        dispatcher.unregister("sync-highscores")
        assert dispatcher.registered_tags == []
        assert await dispatcher.dispatch("sync-highscores")

    @pytest.mark.anyio
    async def test_logging_stub_completes(self):
        await log_sync_request("sync-replays")


class TestSyncQueue:
    @pytest.mark.anyio
    async def test_enqueue_deduplicates_by_tag(self):
        queue = SyncQueue()
        first = await queue.enqueue("sync-replays")
        second = await queue.enqueue("sync-replays")

        assert first is second
        assert len(queue) == 1
        assert queue.pending_tags == ["sync-replays"]

    @pytest.mark.anyio
    async def test_flush_drains_queue(self):
        queue = SyncQueue()
        await queue.enqueue("sync-replays")
        await queue.enqueue("sync-highscores")

        async def dispatch(tag: str) -> bool:
            return tag == "sync-replays"

        results = await queue.flush(dispatch)

        assert results == {"sync-replays": True, "sync-highscores": False}
        assert len(queue) == 0
        assert await queue.flush(dispatch) == {}

    @pytest.mark.anyio
    async def test_flush_runs_tasks_concurrently(self):
        queue = SyncQueue()
        await queue.enqueue("a")
        await queue.enqueue("b")
        started = []
        both_started = anyio.Event()

        async def dispatch(tag: str) -> bool:
            started.append(tag)
            if len(started) == 2:
                both_started.set()
            with anyio.fail_after(1):
                await both_started.wait()
            return True

        assert await queue.flush(dispatch) == {"a": True, "b": True}
