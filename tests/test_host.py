"""Tests for the controller host: version takeover, pass-through and sync."""

from types import MappingProxyType

import anyio
import pytest

from swcache.application.cache.controller import CacheController
from swcache.application.cache.sync import SyncDispatcher
from swcache.application.host import ControllerHost
from swcache.domain.exceptions import InstallError
from swcache.enums import ControllerState

from conftest import ORIGIN, FakeFetcher, get


def controller_for(storage, fetcher, version: str, **kwargs) -> CacheController:
    kwargs.setdefault("precache_urls", ["/", "/index.html", "/app.js"])
    return CacheController(
        storage=storage, fetcher=fetcher, scope_origin=ORIGIN, version=version, **kwargs
    )


class GatedFetcher(FakeFetcher):
    """Holds fetches of ``gated_url`` until ``release`` is set."""

    def __init__(self, routes):
        super().__init__(routes)
        self.gated_url = None
        self.entered = anyio.Event()
        self.release = anyio.Event()

    async def fetch(self, request):
        if request.url == self.gated_url:
            self.entered.set()
            await self.release.wait()
        return await super().fetch(request)


class TestRegistration:
    @pytest.mark.anyio
    async def test_first_controller_is_activated(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            controller = controller_for(storage, fetcher, "v1")
            await host.register(controller)

            assert host.active is controller
            assert host.waiting is None
            assert controller.state == ControllerState.Activated

    @pytest.mark.anyio
    async def test_new_version_takes_over_and_cleans_up(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            old = controller_for(storage, fetcher, "v1")
            await host.register(old)
            await host.fetch(get("/level.json"))

            new = controller_for(storage, fetcher, "v2")
            await host.register(new)

            assert host.active is new
            assert old.state == ControllerState.Redundant
            assert sorted(await storage.keys()) == ["core-v2"]

    @pytest.mark.anyio
    async def test_new_version_waits_without_skip_waiting(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            old = controller_for(storage, fetcher, "v1")
            await host.register(old)

            new = controller_for(storage, fetcher, "v2", skip_waiting_on_install=False)
            await host.register(new)

            assert host.active is old
            assert host.waiting is new
            assert new.state == ControllerState.Installed
            assert await storage.has("core-v1")

            assert await host.post_message({"type": "SKIP_WAITING"}, to_waiting=True)

            assert host.active is new
            assert host.waiting is None
            assert old.state == ControllerState.Redundant
            assert not await storage.has("core-v1")

    @pytest.mark.anyio
    async def test_failed_install_keeps_previous_version(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            old = controller_for(storage, fetcher, "v1")
            await host.register(old)

            broken = controller_for(storage, fetcher, "v2", precache_urls=["/gone.js"])
            with pytest.raises(InstallError):
                await host.register(broken)

            assert host.active is old
            assert host.waiting is None
            assert old.state == ControllerState.Activated

            fetcher.offline = True
            response = await host.fetch(get("/app.js"))
            assert response.body == b"console.log('v1')"

    @pytest.mark.anyio
    async def test_register_requires_running_host(self, storage, fetcher):
        host = ControllerHost(fetcher)
        with pytest.raises(RuntimeError):
            await host.register(controller_for(storage, fetcher, "v1"))

    @pytest.mark.anyio
    async def test_failed_install_can_be_retried(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            controller = controller_for(storage, fetcher, "v1", precache_urls=["/", "/late.js"])
            with pytest.raises(InstallError):
                await host.register(controller)
            assert not controller.running

            fetcher.serve("/late.js", b"late")
            await host.register(controller)

            assert host.active is controller
            assert controller.running
            assert controller.state == ControllerState.Activated


class TestVersionSwitchWithRequestsInFlight:
    @pytest.mark.anyio
    async def test_old_version_miss_does_not_recreate_its_store(self, storage, fetcher):
        gated = GatedFetcher(fetcher.routes)
        responses = []

        async with ControllerHost(gated) as host:
            old = controller_for(storage, gated, "v0")
            await host.register(old)

            async def old_request():
                responses.append(await host.fetch(get("/level.json")))

            gated.gated_url = ORIGIN + "/level.json"
            async with anyio.create_task_group() as tg:
                tg.start_soon(old_request)
                await gated.entered.wait()

                await host.register(controller_for(storage, gated, "v1"))
                assert sorted(await storage.keys()) == ["core-v1"]
                gated.release.set()

            assert responses[0].body == b'{"level": 1}'
            assert sorted(await storage.keys()) == ["core-v1"]

    @pytest.mark.anyio
    async def test_old_version_revalidation_does_not_recreate_its_store(
        self, storage, fetcher
    ):
        gated = GatedFetcher(fetcher.routes)

        async with ControllerHost(gated) as host:
            await host.register(controller_for(storage, gated, "v0"))
            await host.fetch(get("/level.json"))
            assert await storage.has("runtime-v0")

            gated.gated_url = ORIGIN + "/level.json"
            stale = await host.fetch(get("/level.json"))
            assert stale.body == b'{"level": 1}'
            await gated.entered.wait()

            await host.register(controller_for(storage, gated, "v1"))
            gated.release.set()

        assert sorted(await storage.keys()) == ["core-v1"]


class TestFetch:
    @pytest.mark.anyio
    async def test_uncontrolled_requests_use_network(self, fetcher):
        async with ControllerHost(fetcher) as host:
            response = await host.fetch(get("/level.json"))
        assert response.body == b'{"level": 1}'

    @pytest.mark.anyio
    async def test_declined_requests_use_network(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            await host.register(controller_for(storage, fetcher, "v1"))
            fetcher.routes["https://cdn.example/lib.js"] = b"lib"

            response = await host.fetch(get("/lib.js", origin="https://cdn.example"))

        assert response.body == b"lib"
        assert await storage.match(get("/lib.js", origin="https://cdn.example")) is None


class TestMessages:
    @pytest.mark.anyio
    async def test_message_without_controller(self, fetcher):
        async with ControllerHost(fetcher) as host:
            assert not await host.post_message({"type": "SKIP_WAITING"})

    @pytest.mark.anyio
    async def test_clear_cache_through_host(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            await host.register(controller_for(storage, fetcher, "v1"))
            assert await host.post_message({"type": "CLEAR_CACHE"})
            assert await storage.keys() == []

    @pytest.mark.anyio
    async def test_skip_waiting_from_any_mapping_promotes(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            await host.register(controller_for(storage, fetcher, "v1"))
            new = controller_for(storage, fetcher, "v2", skip_waiting_on_install=False)
            await host.register(new)

            message = MappingProxyType({"type": "SKIP_WAITING"})
            assert await host.post_message(message, to_waiting=True)

            assert host.active is new


class TestBackgroundSync:
    @pytest.mark.anyio
    async def test_queued_tasks_run_once_on_connectivity(self, storage, fetcher):
        seen = []

        async def record(tag: str) -> None:
            seen.append(tag)

        dispatcher = SyncDispatcher({"sync-highscores": record, "sync-replays": record})
        async with ControllerHost(fetcher) as host:
            await host.register(
                controller_for(storage, fetcher, "v1", sync_dispatcher=dispatcher)
            )
            await host.request_sync("sync-highscores")
            await host.request_sync("sync-highscores")
            await host.request_sync("sync-replays")

            results = await host.connectivity_restored()
            again = await host.connectivity_restored()

        assert results == {"sync-highscores": True, "sync-replays": True}
        assert sorted(seen) == ["sync-highscores", "sync-replays"]
        assert again == {}

    @pytest.mark.anyio
    async def test_tasks_stay_queued_while_uncontrolled(self, fetcher):
        async with ControllerHost(fetcher) as host:
            await host.request_sync("sync-replays")
            assert await host.connectivity_restored() == {}
            assert host.sync_queue.pending_tags == ["sync-replays"]

    @pytest.mark.anyio
    async def test_immediate_sync(self, storage, fetcher):
        async with ControllerHost(fetcher) as host:
            assert not await host.sync("sync-replays")
            await host.register(controller_for(storage, fetcher, "v1"))
            assert await host.sync("sync-replays")
