"""Tests for the HTTP interface: control routes, proxying and error mapping."""

from datetime import datetime

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from swcache.config import Settings
from swcache.domain.exceptions import NetworkTimeoutError
from swcache.domain.models import CapturedResponse, FetchRequest
from swcache.infrastructure.network import HttpxFetcher
from swcache.infrastructure.storage import InMemoryCacheStorage
from swcache.interfaces.http.app import create_app

from conftest import ORIGIN, FakeFetcher


class SlowFetcher(FakeFetcher):
    """Times out on ``/slow``, otherwise behaves like :class:`FakeFetcher`."""

    async def fetch(self, request: FetchRequest) -> CapturedResponse:
        if request.url == ORIGIN + "/slow":
            self.calls.append(request)
            raise NetworkTimeoutError("Timed out", url=request.url, timeout_seconds=1.0)
        return await super().fetch(request)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("UPSTREAM_ORIGIN", ORIGIN)
    monkeypatch.setenv("PRECACHE_URLS", "/,/index.html,/app.js")
    monkeypatch.setenv("LOG_FILE_PATH", str(tmp_path / "log.jsonl"))
    monkeypatch.setenv("ERROR_LOG_FILE_PATH", str(tmp_path / "error.jsonl"))
    return Settings(_env_file=None)


@pytest.fixture
def upstream(fetcher) -> SlowFetcher:
    slow = SlowFetcher(fetcher.routes)
    slow.serve("/api/scores", b'{"saved": true}')
    return slow


@pytest.fixture
def app_storage() -> InMemoryCacheStorage:
    return InMemoryCacheStorage(max_memory_mb=4)


@pytest.fixture
def test_app(test_settings, app_storage, upstream):
    return create_app(test_settings, storage=app_storage, fetcher=upstream)


@pytest.fixture
def test_client(test_app):
    """Yield a TestClient with lifespan events run."""
    with TestClient(test_app) as client:
        yield client


class TestHealthRoutes:
    def test_health_reports_active_state(self, test_client):
        response = test_client.get("/__swcache/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["state"] == "activated"
        datetime.fromisoformat(data["timestamp"])

    def test_status(self, test_client):
        response = test_client.get("/__swcache/status")

        assert response.status_code == 200
        data = response.json()
        assert data["active"]["version"] == "v1"
        assert data["active"]["core_cache"] == "core-v1"
        assert data["active"]["clients_claimed"] is True
        assert data["waiting"] is None
        assert data["stats"]["storage"]["backend"] == "memory"
        assert data["pending_sync"] == []
        assert "http2_available" in data["http_client"]


class TestProxy:
    def test_precached_asset_served_offline(self, test_client, upstream):
        upstream.offline = True

        response = test_client.get("/app.js")

        assert response.status_code == 200
        assert response.content == b"console.log('v1')"
        assert "X-Request-ID" in response.headers
        assert "X-Response-Time-ms" in response.headers

    def test_query_string_is_forwarded(self, test_client, upstream):
        upstream.routes[ORIGIN + "/level.json?id=3"] = b"three"

        response = test_client.get("/level.json?id=3")

        assert response.content == b"three"
        assert upstream.calls[-1].url == ORIGIN + "/level.json?id=3"

    def test_offline_navigation_gets_root_document(self, test_client, upstream):
        upstream.offline = True

        response = test_client.get("/levels", headers={"accept": "text/html,*/*"})

        assert response.status_code == 200
        assert response.content == b"<html>index</html>"

    def test_sec_fetch_mode_marks_navigation(self, test_client, upstream):
        upstream.offline = True

        response = test_client.get("/menu", headers={"sec-fetch-mode": "navigate"})

        assert response.content == b"<html>index</html>"

    def test_post_is_passed_through(self, test_client, upstream):
        response = test_client.post("/api/scores", content=b'{"score": 10}')

        assert response.status_code == 200
        assert response.json() == {"saved": True}
        assert upstream.calls[-1].method == "POST"
        assert upstream.calls[-1].body == b'{"score": 10}'

    def test_upstream_status_is_preserved(self, test_client):
        response = test_client.get("/nope.js")
        assert response.status_code == 404

    def test_offline_miss_is_bad_gateway(self, test_client, upstream):
        upstream.offline = True

        response = test_client.get("/level.json")

        assert response.status_code == 502
        body = response.json()
        assert body["type"] == "error"
        assert body["error"]["type"] == "network_error"

    def test_timeout_is_gateway_timeout(self, test_client):
        response = test_client.get("/slow")

        assert response.status_code == 504
        assert response.json()["error"]["type"] == "gateway_timeout_error"


class TestControlRoutes:
    def test_clear_cache_message(self, test_client, app_storage):
        response = test_client.post("/__swcache/messages", json={"type": "CLEAR_CACHE"})

        assert response.status_code == 200
        assert response.json() == {"handled": True}
        assert app_storage.get_stats()["store_count"] == 0

    def test_unknown_message_is_ignored(self, test_client):
        response = test_client.post("/__swcache/messages", json={"type": "RELOAD"})
        assert response.json() == {"handled": False}

    def test_message_to_missing_waiting_controller(self, test_client):
        response = test_client.post(
            "/__swcache/messages?to_waiting=true", json={"type": "SKIP_WAITING"}
        )
        assert response.json() == {"handled": False}

    def test_invalid_json_message(self, test_client):
        response = test_client.post(
            "/__swcache/messages",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"

    def test_queued_sync_runs_on_connectivity(self, test_client):
        response = test_client.post("/__swcache/sync/sync-replays")
        assert response.status_code == 202
        assert response.json()["tag"] == "sync-replays"

        status = test_client.get("/__swcache/status").json()
        assert status["pending_sync"] == ["sync-replays"]

        response = test_client.post("/__swcache/connectivity")
        assert response.json() == {"results": {"sync-replays": True}}

        response = test_client.post("/__swcache/connectivity")
        assert response.json() == {"results": {}}

    def test_immediate_sync(self, test_client):
        response = test_client.post("/__swcache/sync/sync-highscores/run")
        assert response.json() == {"tag": "sync-highscores", "success": True}


class TestLifecycle:
    def test_failed_install_serves_uncontrolled(self, test_settings, app_storage, upstream):
        del upstream.routes[ORIGIN + "/app.js"]
        app = create_app(test_settings, storage=app_storage, fetcher=upstream)

        with TestClient(app) as client:
            assert client.get("/__swcache/health").json()["state"] is None
            response = client.get("/level.json")
            assert response.content == b'{"level": 1}'

        assert app_storage.get_stats()["entry_count"] == 0

    def test_fetcher_closed_on_shutdown(self, test_app, upstream):
        with TestClient(test_app):
            assert not upstream.closed
        assert upstream.closed

    def test_requests_before_startup_are_rejected(self, test_app):
        client = TestClient(test_app)

        response = client.get("/app.js")

        assert response.status_code == 503
        assert response.json()["error"]["type"] == "not_ready_error"


class TestConditionalRequests:
    @pytest.fixture
    def router(self) -> respx.MockRouter:
        router = respx.MockRouter(assert_all_called=False)
        for path in ("/", "/index.html", "/app.js"):
            router.get(ORIGIN + path).mock(return_value=httpx.Response(200, content=b"ok"))

        def etag_aware(request: httpx.Request) -> httpx.Response:
            if "if-none-match" in request.headers:
                return httpx.Response(304)
            return httpx.Response(200, content=b"\x00asm", headers={"etag": '"w1"'})

        router.get(ORIGIN + "/game.wasm").mock(side_effect=etag_aware)
        router.get(ORIGIN + "/level.json").mock(side_effect=etag_aware)
        return router

    @pytest.fixture
    def etag_client(self, test_settings, app_storage, router):
        fetcher = HttpxFetcher(httpx.AsyncClient(transport=httpx.MockTransport(router.handler)))
        app = create_app(test_settings, storage=app_storage, fetcher=fetcher)
        with TestClient(app) as client:
            yield client

    def test_versioned_asset_is_stored_despite_client_etag(
        self, etag_client, router, app_storage
    ):
        response = etag_client.get("/game.wasm", headers={"if-none-match": '"w0"'})

        assert response.status_code == 200
        assert response.content == b"\x00asm"
        assert "if-none-match" not in router.calls.last.request.headers
        assert app_storage.get_stats()["entry_count"] == 4

        again = etag_client.get("/game.wasm", headers={"if-none-match": '"w1"'})
        assert again.status_code == 200
        assert len([c for c in router.calls if c.request.url.path == "/game.wasm"]) == 1

    def test_runtime_copy_is_stored_despite_client_etag(self, etag_client, app_storage):
        response = etag_client.get("/level.json", headers={"if-none-match": '"w0"'})

        assert response.status_code == 200
        stats = app_storage.get_stats()
        assert stats["store_count"] == 2
        assert stats["entry_count"] == 4
