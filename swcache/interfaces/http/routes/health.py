from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ....constants import CONTROL_ROUTE_PREFIX

router = APIRouter(prefix=CONTROL_ROUTE_PREFIX)


@router.get("/health", include_in_schema=False)
async def health_check(request: Request) -> JSONResponse:
    """Check basic service health and availability.

    Returns:
        JSONResponse: Status 'ok', current UTC timestamp and the lifecycle
        state of the active controller (null when uncontrolled).
    """
    host = getattr(request.app.state, "host", None)
    active = host.active if host is not None else None
    return JSONResponse(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "state": active.state.value if active is not None else None,
        }
    )
