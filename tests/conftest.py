from typing import Dict, Iterator, List, Optional, Set

from unittest.mock import MagicMock, patch
import pytest

from swcache.domain.exceptions import NetworkError
from swcache.domain.models import CapturedResponse, FetchRequest
from swcache.infrastructure.storage import InMemoryCacheStorage


ORIGIN = "https://game.example"


# Configure anyio to only use asyncio backend
@pytest.fixture
def anyio_backend() -> str:
    """Force tests to use asyncio backend only."""
    return "asyncio"


@pytest.fixture(autouse=True, scope="session")
def mock_logger() -> Iterator[MagicMock]:
    with patch("swcache.logging._logger", MagicMock()) as mock_logger:
        mock_logger.log.return_value = None
        yield mock_logger


class FakeFetcher:
    """In-process network: serves canned bodies by URL and records calls.

    Unknown URLs answer 404. ``offline`` makes every fetch fail; URLs listed
    in ``failing_urls`` fail individually.
    """

    def __init__(self, routes: Optional[Dict[str, bytes]] = None):
        self.routes: Dict[str, bytes] = dict(routes or {})
        self.statuses: Dict[str, int] = {}
        self.calls: List[FetchRequest] = []
        self.offline = False
        self.failing_urls: Set[str] = set()
        self.closed = False

    def serve(self, path: str, body: bytes, status: int = 200) -> None:
        url = ORIGIN + path
        self.routes[url] = body
        self.statuses[url] = status

    def calls_to(self, path: str) -> int:
        return sum(1 for call in self.calls if call.url == ORIGIN + path)

    async def fetch(self, request: FetchRequest) -> CapturedResponse:
        self.calls.append(request)
        if self.offline or request.url in self.failing_urls:
            raise NetworkError(f"Offline: {request.url}", url=request.url)
        if request.url not in self.routes:
            return CapturedResponse(status=404, body=b"not found", url=request.url)
        return CapturedResponse(
            status=self.statuses.get(request.url, 200),
            headers={"content-type": "application/octet-stream"},
            body=self.routes[request.url],
            url=request.url,
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fetcher() -> FakeFetcher:
    fake = FakeFetcher()
    fake.serve("/", b"<html>root</html>")
    fake.serve("/index.html", b"<html>index</html>")
    fake.serve("/app.js", b"console.log('v1')")
    fake.serve("/game.wasm", b"\x00asm")
    fake.serve("/level.json", b'{"level": 1}')
    return fake


@pytest.fixture
def storage() -> InMemoryCacheStorage:
    return InMemoryCacheStorage(max_memory_mb=1)


def get(path: str, mode: str = "cors", origin: str = ORIGIN) -> FetchRequest:
    return FetchRequest(url=origin + path, mode=mode)
