"""Network primitive used by the cache controller."""

from typing import Dict, Mapping

import httpx
from typing_extensions import Protocol

from ...constants import HOP_BY_HOP_HEADERS
from ...domain.exceptions import NetworkError, NetworkTimeoutError
from ...domain.models import CapturedResponse, FetchRequest


class Fetcher(Protocol):
    async def fetch(self, request: FetchRequest) -> CapturedResponse: ...

    async def aclose(self) -> None: ...


def filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Drop hop-by-hop headers, keeping everything else as-is."""
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


class HttpxFetcher:
    """
    Fetches requests with an ``httpx.AsyncClient``.

    Transport failures raise :class:`NetworkError`; HTTP error statuses are
    returned as ordinary responses.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def fetch(self, request: FetchRequest) -> CapturedResponse:
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=filter_headers(request.headers),
                content=request.body,
            )
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(
                f"Timed out fetching {request.url}",
                url=request.url,
                details={"error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network failure fetching {request.url}: {type(e).__name__}",
                url=request.url,
                details={"error": str(e)},
            ) from e

        return CapturedResponse(
            status=response.status_code,
            headers=filter_headers(response.headers),
            body=response.content,
            url=str(response.url),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
