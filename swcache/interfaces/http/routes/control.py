"""Control endpoints: status, control messages and background sync."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..dependencies import get_host
from ....application.host import ControllerHost
from ....constants import CONTROL_ROUTE_PREFIX
from ....infrastructure.network.http_client_factory import HttpClientFactory

router = APIRouter(prefix=CONTROL_ROUTE_PREFIX)


@router.get("/status")
async def get_status(host: ControllerHost = Depends(get_host)) -> JSONResponse:
    """Lifecycle state, store names and statistics of the controllers."""
    active = host.active
    waiting = host.waiting
    content: Dict[str, Any] = {
        "active": active.status().model_dump(mode="json") if active else None,
        "waiting": waiting.status().model_dump(mode="json") if waiting else None,
        "stats": active.get_stats() if active else None,
        "pending_sync": host.sync_queue.pending_tags,
        "http_client": HttpClientFactory.get_client_info(),
    }
    return JSONResponse(content=content)


@router.post("/messages")
async def post_message(
    request: Request,
    to_waiting: bool = False,
    host: ControllerHost = Depends(get_host),
) -> JSONResponse:
    """Deliver a control message such as ``{"type": "SKIP_WAITING"}``."""
    data = await request.json()
    handled = await host.post_message(
        data, to_waiting=to_waiting, request_id=request.state.request_id
    )
    return JSONResponse(content={"handled": handled})


@router.post("/sync/{tag}")
async def request_sync(tag: str, host: ControllerHost = Depends(get_host)) -> JSONResponse:
    """Queue a sync task until connectivity is restored."""
    task = await host.request_sync(tag)
    return JSONResponse(status_code=202, content=task.model_dump(mode="json"))


@router.post("/sync/{tag}/run")
async def run_sync(
    tag: str, request: Request, host: ControllerHost = Depends(get_host)
) -> JSONResponse:
    """Dispatch a sync task immediately."""
    success = await host.sync(tag, request_id=request.state.request_id)
    return JSONResponse(content={"tag": tag, "success": success})


@router.post("/connectivity")
async def connectivity_restored(host: ControllerHost = Depends(get_host)) -> JSONResponse:
    """Signal that connectivity is back; runs every queued sync task once."""
    results = await host.connectivity_restored()
    return JSONResponse(content={"results": results})
