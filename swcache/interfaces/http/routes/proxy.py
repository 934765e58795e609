"""Catch-all route delivering every other request to the controller host."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..dependencies import get_host, get_settings
from ....application.host import ControllerHost
from ....config import Settings
from ....domain.models import FetchRequest
from ....enums import RequestMode
from ....infrastructure.network.fetcher import filter_headers

router = APIRouter()

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def request_mode(request: Request) -> RequestMode:
    """Fetch mode from ``Sec-Fetch-Mode``, or inferred from ``Accept``."""
    header = request.headers.get("sec-fetch-mode", "").lower()
    try:
        return RequestMode(header)
    except ValueError:
        pass
    if request.method == "GET" and "text/html" in request.headers.get("accept", ""):
        return RequestMode.Navigate
    return RequestMode.Cors


def upstream_url(settings: Settings, request: Request) -> str:
    url = settings.scope_origin + request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(
    path: str,
    request: Request,
    host: ControllerHost = Depends(get_host),
    settings: Settings = Depends(get_settings),
) -> Response:
    body = await request.body()
    fetch_request = FetchRequest(
        url=upstream_url(settings, request),
        method=request.method,
        headers=filter_headers(request.headers),
        mode=request_mode(request),
        body=body or None,
    )
    captured = await host.fetch(fetch_request, request_id=request.state.request_id)
    return Response(
        content=captured.body,
        status_code=captured.status,
        headers=filter_headers(captured.headers),
    )
