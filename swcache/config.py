import sys
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices, field_validator
from typing import Optional, List, Union, Any

from urllib.parse import urlparse

from swcache.constants import (
    DEFAULT_CACHE_VERSION,
    DEFAULT_CORE_CACHE_NAME,
    DEFAULT_RUNTIME_CACHE_NAME,
    DEFAULT_PRECACHE_URLS,
    DEFAULT_VERSIONED_ASSET_EXTENSIONS,
    DEFAULT_OFFLINE_FALLBACK_URL,
    DEFAULT_STORAGE_DIR,
    DEFAULT_STORAGE_MAX_MEMORY_MB,
    DEFAULT_HTTP_CONNECT_TIMEOUT,
    DEFAULT_HTTP_READ_TIMEOUT,
    DEFAULT_HTTP_WRITE_TIMEOUT,
    DEFAULT_HTTP_POOL_TIMEOUT,
    DEFAULT_POOL_MAX_KEEPALIVE_CONNECTIONS,
    DEFAULT_POOL_MAX_CONNECTIONS,
    DEFAULT_POOL_KEEPALIVE_EXPIRY,
)
from swcache.enums import StorageBackend


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="", case_sensitive=False
    )

    # Required
    upstream_origin: str = Field(
        default=...,
        validation_alias=AliasChoices("UPSTREAM_ORIGIN"),
    )

    # Optional with defaults
    app_name: str = "SWCache"
    app_version: str = "1.0.0"
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_file_path: Optional[str] = Field(
        default="log.jsonl", validation_alias=AliasChoices("LOG_FILE_PATH")
    )
    error_log_file_path: Optional[str] = Field(
        default="error.jsonl", validation_alias=AliasChoices("ERROR_LOG_FILE_PATH")
    )
    log_pretty_console: bool = Field(
        default=False, validation_alias=AliasChoices("LOG_PRETTY_CONSOLE")
    )
    host: str = "127.0.0.1"
    port: int = Field(default=8080, validation_alias=AliasChoices("PORT"))
    reload: bool = False

    redact_log_fields: Union[List[str], str] = Field(
        default_factory=lambda: ["authorization", "cookie", "set-cookie"],
        validation_alias=AliasChoices("REDACT_LOG_FIELDS"),
    )

    # Cache controller configuration
    cache_version: str = Field(
        default=DEFAULT_CACHE_VERSION, validation_alias=AliasChoices("CACHE_VERSION")
    )
    core_cache_name: str = Field(
        default=DEFAULT_CORE_CACHE_NAME,
        validation_alias=AliasChoices("CORE_CACHE_NAME"),
    )
    runtime_cache_name: str = Field(
        default=DEFAULT_RUNTIME_CACHE_NAME,
        validation_alias=AliasChoices("RUNTIME_CACHE_NAME"),
    )
    precache_urls: Union[List[str], str] = Field(
        default_factory=lambda: list(DEFAULT_PRECACHE_URLS),
        validation_alias=AliasChoices("PRECACHE_URLS"),
    )
    versioned_asset_extensions: Union[List[str], str] = Field(
        default_factory=lambda: sorted(DEFAULT_VERSIONED_ASSET_EXTENSIONS),
        validation_alias=AliasChoices("VERSIONED_ASSET_EXTENSIONS"),
    )
    offline_fallback_url: str = Field(
        default=DEFAULT_OFFLINE_FALLBACK_URL,
        validation_alias=AliasChoices("OFFLINE_FALLBACK_URL"),
    )
    skip_waiting_on_install: bool = Field(
        default=True, validation_alias=AliasChoices("SKIP_WAITING_ON_INSTALL")
    )

    # Storage configuration
    storage_backend: StorageBackend = Field(
        default=StorageBackend.Memory, validation_alias=AliasChoices("STORAGE_BACKEND")
    )
    storage_dir: str = Field(
        default=DEFAULT_STORAGE_DIR, validation_alias=AliasChoices("STORAGE_DIR")
    )
    storage_max_memory_mb: int = Field(
        default=DEFAULT_STORAGE_MAX_MEMORY_MB,
        validation_alias=AliasChoices("STORAGE_MAX_MEMORY_MB"),
    )

    # Connection pool configuration
    pool_max_keepalive_connections: int = Field(
        default=DEFAULT_POOL_MAX_KEEPALIVE_CONNECTIONS,
        validation_alias=AliasChoices("POOL_MAX_KEEPALIVE_CONNECTIONS"),
    )
    pool_max_connections: int = Field(
        default=DEFAULT_POOL_MAX_CONNECTIONS,
        validation_alias=AliasChoices("POOL_MAX_CONNECTIONS"),
    )
    pool_keepalive_expiry: int = Field(
        default=DEFAULT_POOL_KEEPALIVE_EXPIRY,
        validation_alias=AliasChoices("POOL_KEEPALIVE_EXPIRY"),
    )

    # HTTP timeout configuration
    http_connect_timeout: float = Field(
        default=DEFAULT_HTTP_CONNECT_TIMEOUT,
        validation_alias=AliasChoices("HTTP_CONNECT_TIMEOUT"),
    )
    http_read_timeout: float = Field(
        default=DEFAULT_HTTP_READ_TIMEOUT,
        validation_alias=AliasChoices("HTTP_READ_TIMEOUT"),
    )
    http_write_timeout: float = Field(
        default=DEFAULT_HTTP_WRITE_TIMEOUT,
        validation_alias=AliasChoices("HTTP_WRITE_TIMEOUT"),
    )
    http_pool_timeout: float = Field(
        default=DEFAULT_HTTP_POOL_TIMEOUT,
        validation_alias=AliasChoices("HTTP_POOL_TIMEOUT"),
    )

    @field_validator(
        "redact_log_fields",
        "precache_urls",
        "versioned_asset_extensions",
    )
    @classmethod
    def parse_comma_separated(cls, v: Union[List[str], str]) -> List[str]:
        """Parse comma-separated string values into lists for configuration fields.

        Handles both string inputs (splitting by commas) and already-list inputs.
        Empty strings are converted to empty lists.

        Args:
            v: Input value which can be a string or list

        Returns:
            List of stripped, non-empty items
        """
        if isinstance(v, str):
            if v.strip() == "":
                return []
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("versioned_asset_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [ext.lower().lstrip(".") for ext in v if ext.strip(". ")]

    def __init__(self, **kwargs: Any) -> None:
        """Initialize settings object and perform validation.

        Calls parent constructor with provided keyword arguments, then validates
        the upstream origin and the cache naming configuration.

        Args:
            **kwargs: Keyword arguments for settings initialization

        Raises:
            SystemExit: If required settings are missing or invalid
        """
        super().__init__(**kwargs)
        self._validate_upstream()
        self._validate_cache_layout()

    def _validate_upstream(self) -> None:
        """Validate that UPSTREAM_ORIGIN is an http(s) origin."""
        errors = []

        if not (self.upstream_origin and self.upstream_origin.strip()):
            errors.append(
                "UPSTREAM_ORIGIN is required. Set it in your environment or .env."
            )
        else:
            try:
                parsed = urlparse(self.upstream_origin)
                if parsed.scheme.lower() not in ("http", "https"):
                    errors.append("UPSTREAM_ORIGIN must use http or https.")
                if not parsed.hostname:
                    errors.append("UPSTREAM_ORIGIN must include a host.")
                if parsed.path not in ("", "/") or parsed.query:
                    errors.append(
                        "UPSTREAM_ORIGIN must be an origin without path or query."
                    )
            except ValueError:
                errors.append("UPSTREAM_ORIGIN is invalid.")

        if errors:
            error_message = "\n".join(errors)
            import logging

            logging.error(f"Configuration Error:\n{error_message}\n")
            sys.exit(1)

    def _validate_cache_layout(self) -> None:
        """Validate cache names, version tag and manifest entries."""
        errors = []

        version = self.cache_version.strip()
        if not version or any(ch.isspace() for ch in version):
            errors.append("CACHE_VERSION must be a non-empty token without spaces.")

        core = self.core_cache_name.strip()
        runtime = self.runtime_cache_name.strip()
        if not core or not runtime:
            errors.append("CORE_CACHE_NAME and RUNTIME_CACHE_NAME must be non-empty.")
        elif core == runtime:
            errors.append("CORE_CACHE_NAME and RUNTIME_CACHE_NAME must differ.")

        for url in self.precache_urls:
            if not (url.startswith("/") or url.startswith(("http://", "https://"))):
                errors.append(
                    f"PRECACHE_URLS entry {url!r} must be root-relative or absolute."
                )

        if not self.offline_fallback_url.startswith("/"):
            errors.append("OFFLINE_FALLBACK_URL must be root-relative.")

        if self.storage_max_memory_mb < 1:
            errors.append("STORAGE_MAX_MEMORY_MB must be at least 1.")

        if errors:
            error_message = "\n".join(errors)
            import logging

            logging.error(f"Configuration Error:\n{error_message}\n")
            sys.exit(1)

    @property
    def scope_origin(self) -> str:
        return self.upstream_origin.rstrip("/")
