"""Request classification for strategy selection."""

from typing import Iterable, Optional

from ...constants import DEFAULT_VERSIONED_ASSET_EXTENSIONS, INTERCEPTED_METHODS
from ...domain.models import FetchRequest, origin_of
from ...enums import RequestClass, RequestMode


class RequestClassifier:
    """
    Classifies requests within a controller's scope.

    A request outside the scope origin, or using a method the controller does
    not intercept, has no class and is left to the network.
    """

    def __init__(
        self,
        scope_origin: str,
        versioned_asset_extensions: Iterable[str] = DEFAULT_VERSIONED_ASSET_EXTENSIONS,
    ):
        self.scope_origin = origin_of(scope_origin)
        self.versioned_asset_extensions = frozenset(
            ext.lower().lstrip(".") for ext in versioned_asset_extensions
        )

    def is_same_origin(self, request: FetchRequest) -> bool:
        return request.origin == self.scope_origin

    def is_versioned_asset(self, request: FetchRequest) -> bool:
        filename = request.path.rsplit("/", 1)[-1]
        if "." not in filename:
            return False
        return filename.rsplit(".", 1)[-1].lower() in self.versioned_asset_extensions

    def classify(self, request: FetchRequest) -> Optional[RequestClass]:
        """Return the request's class, or None when it must not be intercepted."""
        if not self.is_same_origin(request):
            return None
        if request.method not in INTERCEPTED_METHODS:
            return None
        if request.mode == RequestMode.Navigate:
            return RequestClass.Navigation
        if self.is_versioned_asset(request):
            return RequestClass.VersionedAsset
        return RequestClass.Other
