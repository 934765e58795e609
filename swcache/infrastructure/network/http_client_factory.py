"""
HTTP client factory for the network fetcher.
Handles configuration and initialization of the pooled httpx client.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ...config import Settings


@dataclass
class ConnectionLimits:
    """Connection pool configuration."""

    max_keepalive: int
    max_connections: int
    keepalive_expiry: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionLimits":
        return cls(
            max_keepalive=settings.pool_max_keepalive_connections,
            max_connections=settings.pool_max_connections,
            keepalive_expiry=settings.pool_keepalive_expiry,
        )


class HttpClientFactory:
    """Factory for creating configured HTTP clients for the fetcher."""

    @staticmethod
    def create_client(
        settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> httpx.AsyncClient:
        """
        Create a pooled httpx client from settings.

        Args:
            settings: Application settings
            transport: Optional transport override

        Returns:
            Configured httpx client
        """
        limits = ConnectionLimits.from_settings(settings)
        http_client_kwargs = HttpClientFactory._build_httpx_config(settings, limits)
        if transport is not None:
            http_client_kwargs["transport"] = transport
        return HttpClientFactory._create_with_http2_fallback(http_client_kwargs)

    @staticmethod
    def _build_httpx_config(
        settings: Settings, limits: ConnectionLimits
    ) -> Dict[str, Any]:
        """Build httpx client configuration."""
        return {
            "limits": httpx.Limits(
                max_keepalive_connections=limits.max_keepalive,
                max_connections=limits.max_connections,
                keepalive_expiry=limits.keepalive_expiry,
            ),
            "timeout": httpx.Timeout(
                connect=settings.http_connect_timeout,
                read=settings.http_read_timeout,
                write=settings.http_write_timeout,
                pool=settings.http_pool_timeout,
            ),
            "verify": os.getenv("SSL_CERT_FILE", True),
            "follow_redirects": True,
        }

    @staticmethod
    def _create_with_http2_fallback(
        http_client_kwargs: Dict[str, Any],
    ) -> httpx.AsyncClient:
        """
        Create httpx client with HTTP/2 support, falling back to HTTP/1.1.

        Args:
            http_client_kwargs: Base client configuration

        Returns:
            Configured httpx client
        """
        try:
            client = httpx.AsyncClient(**http_client_kwargs, http2=True)
            logging.info("Using httpx.AsyncClient with HTTP/2")
            return client
        except ImportError:
            client = httpx.AsyncClient(**http_client_kwargs)
            logging.info(
                "Using httpx.AsyncClient (HTTP/1.1). "
                "Install h2 for HTTP/2: pip install 'httpx[http2]'"
            )
            return client

    @staticmethod
    def get_client_info() -> Dict[str, Any]:
        """
        Get information about available HTTP client features.

        Returns:
            Dictionary with feature availability information
        """
        info = {
            "httpx_available": True,
            "http2_available": False,
        }

        try:
            import h2  # noqa: F401

            info["http2_available"] = True
        except ImportError:
            pass

        return info
