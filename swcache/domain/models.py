from enum import StrEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import CACHEABLE_STATUS_CODE
from ..enums import ControllerState, RequestMode


class FetchRequest(BaseModel):
    """An outgoing request as seen by the cache controller.

    Attributes:
        url (str): Absolute URL, query string included.
        method (str): Upper-cased HTTP method.
        headers (Dict[str, str]): Request headers.
        mode (RequestMode): Fetch mode; ``navigate`` marks a top-level page load.
        body (Optional[bytes]): Request body, if any.
    """

    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    mode: RequestMode = RequestMode.Cors
    body: Optional[bytes] = None

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.upper()

    @field_validator("url")
    @classmethod
    def require_absolute_url(cls, v: str) -> str:
        parsed = httpx.URL(v)
        if not parsed.scheme or not parsed.host:
            raise ValueError(f"Request URL must be absolute: {v!r}")
        return v

    @property
    def identity(self) -> Tuple[str, str]:
        """Key under which the response to this request is stored."""
        return (self.method, self.url)

    @property
    def origin(self) -> str:
        return origin_of(self.url)

    @property
    def path(self) -> str:
        return httpx.URL(self.url).path


class CapturedResponse(BaseModel):
    """A response captured from the network or read back from a store.

    Attributes:
        status (int): HTTP status code.
        headers (Dict[str, str]): Response headers.
        body (bytes): Full response body.
        url (Optional[str]): Final URL after redirects.
    """

    status: int = 200
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def cacheable(self) -> bool:
        """Whether this response may be persisted."""
        return self.status == CACHEABLE_STATUS_CODE

    @property
    def size_bytes(self) -> int:
        return len(self.body) + sum(len(k) + len(v) for k, v in self.headers.items())

    def clone(self) -> "CapturedResponse":
        """Return an independent copy, safe to hand to another consumer."""
        return self.model_copy(deep=True)


class ControlMessage(BaseModel):
    """Control signal posted by the host page.

    Attributes:
        type (Optional[str]): Signal name, e.g. ``SKIP_WAITING`` or ``CLEAR_CACHE``.
    """

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None


class PrecacheManifest(BaseModel):
    """Ordered, immutable list of URLs fetched into the core store at install."""

    model_config = ConfigDict(frozen=True)

    urls: Tuple[str, ...] = ()

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for url in v:
            if not url or not (url.startswith("/") or url.startswith(("http://", "https://"))):
                raise ValueError(
                    f"Manifest URLs must be root-relative or absolute: {url!r}"
                )
        return v

    @classmethod
    def from_urls(cls, urls: Sequence[str]) -> "PrecacheManifest":
        return cls(urls=tuple(urls))

    def resolve(self, scope_origin: str) -> List[str]:
        """Resolve every entry against ``scope_origin``, keeping order."""
        base = scope_origin.rstrip("/") + "/"
        return [urljoin(base, url) for url in self.urls]

    def __len__(self) -> int:
        return len(self.urls)


class SyncTask(BaseModel):
    """A named background task waiting for connectivity."""

    tag: str
    enqueued_at: float


class ControllerStatus(BaseModel):
    """Snapshot of a controller's lifecycle and stores."""

    version: str
    state: ControllerState
    core_cache: str
    runtime_cache: str
    clients_claimed: bool
    skip_waiting: bool
    precache_urls: List[str]


class ErrorType(StrEnum):
    """Error categories reported by the HTTP interface."""

    INVALID_REQUEST = "invalid_request_error"
    NETWORK = "network_error"
    GATEWAY_TIMEOUT = "gateway_timeout_error"
    NOT_READY = "not_ready_error"
    NOT_FOUND = "not_found_error"
    API_ERROR = "api_error"


class ErrorDetail(BaseModel):
    type: ErrorType
    message: str


class ErrorResponse(BaseModel):
    type: str = "error"
    error: ErrorDetail


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` for ``url``, default ports omitted."""
    parsed = httpx.URL(url)
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port is not None:
        origin += f":{parsed.port}"
    return origin


def error_payload(error_type: ErrorType, message: str) -> Dict[str, Any]:
    return ErrorResponse(error=ErrorDetail(type=error_type, message=message)).model_dump(
        mode="json"
    )
