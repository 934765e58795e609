"""Custom exception hierarchy for the SWCache application.

This module defines specific exception types for the failure modes of the
cache controller, its storage backends and the network fetcher.
"""

from typing import Optional, Dict, Any, List


class SWCacheException(Exception):
    """Base exception for all SWCache-specific exceptions."""

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.details = details or {}


class ConfigurationError(SWCacheException):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.config_key = config_key


class NetworkError(SWCacheException):
    """Raised when a network fetch fails before producing a response."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.url = url


class NetworkTimeoutError(NetworkError):
    """Raised when a network fetch times out."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, url, request_id, details)
        self.timeout_seconds = timeout_seconds


class InstallError(SWCacheException):
    """Raised when the precache step of an install does not complete."""

    def __init__(
        self,
        message: str,
        version: Optional[str] = None,
        failed_urls: Optional[List[str]] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.version = version
        self.failed_urls = failed_urls or []


class ControllerStateError(SWCacheException):
    """Raised when a lifecycle operation is invoked in the wrong state."""

    def __init__(
        self,
        message: str,
        state: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.state = state


class CacheError(SWCacheException):
    """Base exception for cache store errors."""

    def __init__(
        self,
        message: str,
        store_name: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.store_name = store_name


class StoreWriteError(CacheError):
    """Raised when an entry cannot be written to a store."""

    pass


class StoreQuotaExceededError(StoreWriteError):
    """Raised when a write would exceed the storage quota."""

    def __init__(
        self,
        message: str,
        usage_bytes: int = 0,
        max_bytes: int = 0,
        store_name: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, store_name, request_id, details)
        self.usage_bytes = usage_bytes
        self.max_bytes = max_bytes


class StoreReadError(CacheError):
    """Raised when a stored entry cannot be read back."""

    pass
