from fastapi import Request

from ...application.host import ControllerHost
from ...config import Settings
from ...domain.exceptions import ControllerStateError


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_host(request: Request) -> ControllerHost:
    """Return the running controller host, or raise when startup has not run."""
    host = getattr(request.app.state, "host", None)
    if host is None:
        raise ControllerStateError(
            "Controller host is not running",
            request_id=getattr(request.state, "request_id", None),
        )
    return host
