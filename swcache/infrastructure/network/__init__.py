"""Network primitive and HTTP client construction."""

from .fetcher import Fetcher, HttpxFetcher, filter_headers
from .http_client_factory import HttpClientFactory

__all__ = ["Fetcher", "HttpxFetcher", "HttpClientFactory", "filter_headers"]
