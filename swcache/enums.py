"""Enums module for SWCache.

Contains all enumeration classes used throughout the application.
"""

from enum import StrEnum


class RequestMode(StrEnum):
    """Fetch mode reported by the client for an outgoing request."""
    Navigate = "navigate"
    SameOrigin = "same-origin"
    Cors = "cors"
    NoCors = "no-cors"


class RequestClass(StrEnum):
    """Classification used to pick a fetch strategy."""
    Navigation = "navigation"
    VersionedAsset = "versioned-asset"
    Other = "other"


class ControllerState(StrEnum):
    """Lifecycle state of a cache controller."""
    Parsed = "parsed"
    Installing = "installing"
    Installed = "installed"
    Activating = "activating"
    Activated = "activated"
    Redundant = "redundant"


class ControlMessageType(StrEnum):
    """Control signals accepted from the host."""
    SkipWaiting = "SKIP_WAITING"
    ClearCache = "CLEAR_CACHE"


class StorageBackend(StrEnum):
    """Available cache storage implementations."""
    Memory = "memory"
    FileSystem = "filesystem"
