import time
from typing import Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from ...domain.exceptions import (
    ControllerStateError,
    NetworkError,
    NetworkTimeoutError,
)
from ...domain.models import ErrorType, error_payload
from ...logging import error, warning, LogRecord, LogEvent


STATUS_CODE_ERROR_MAP: Dict[int, ErrorType] = {
    400: ErrorType.INVALID_REQUEST,
    404: ErrorType.NOT_FOUND,
    422: ErrorType.INVALID_REQUEST,
    500: ErrorType.API_ERROR,
    502: ErrorType.NETWORK,
    503: ErrorType.NOT_READY,
    504: ErrorType.GATEWAY_TIMEOUT,
}


def get_error_details_from_exc(exc: Exception) -> Tuple[ErrorType, str, int]:
    """Maps caught exceptions to error type, message and status code."""
    if isinstance(exc, NetworkTimeoutError):
        status_code = 504
    elif isinstance(exc, NetworkError):
        status_code = 502
    elif isinstance(exc, ControllerStateError):
        status_code = 503
    else:
        return ErrorType.API_ERROR, "An unexpected internal server error occurred.", 500

    message = getattr(exc, "message", None) or str(exc)
    return STATUS_CODE_ERROR_MAP[status_code], message, status_code


def _build_error_response(
    error_type: ErrorType, message: str, status_code: int
) -> JSONResponse:
    """Creates a JSONResponse with the standard error body."""
    return JSONResponse(
        status_code=status_code, content=error_payload(error_type, message)
    )


async def log_and_return_error_response(
    request: Request,
    status_code: int,
    error_type: ErrorType,
    error_message: str,
    caught_exception: Optional[Exception] = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    start_time_mono = getattr(request.state, "start_time_monotonic", time.monotonic())
    duration_ms = (time.monotonic() - start_time_mono) * 1000

    log_data = {
        "status_code": status_code,
        "duration_ms": duration_ms,
        "error_type": error_type.value,
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else "unknown",
    }

    record = LogRecord(
        event=LogEvent.REQUEST_FAILURE.value,
        message=f"Request failed: {error_message}",
        request_id=request_id,
        data=log_data,
    )
    if status_code >= 500 and status_code not in (502, 504):
        error(record, exc=caught_exception)
    else:
        warning(record, exc=caught_exception)

    response = _build_error_response(error_type, error_message, status_code)
    response.headers["X-Request-ID"] = request_id
    return response
