"""Constants module for SWCache configuration.

Contains default values for cache naming, the precache manifest, request
classification, storage limits and HTTP client behaviour.
"""

from typing import FrozenSet, Tuple

# Store naming: "<base>-<version>"
DEFAULT_CACHE_VERSION = "v1"
DEFAULT_CORE_CACHE_NAME = "core"
DEFAULT_RUNTIME_CACHE_NAME = "runtime"
CACHE_NAME_SEPARATOR = "-"

# Assets fetched into the core store at install time
DEFAULT_PRECACHE_URLS: Tuple[str, ...] = (
    "/",
    "/index.html",
    "/manifest.json",
    "/xmoto-web.js",
    "/xmoto-web.wasm",
    "/xmoto-web.data",
    "/assets/icon-192.png",
    "/assets/icon-512.png",
)

# Immutable build artifacts served cache-first
DEFAULT_VERSIONED_ASSET_EXTENSIONS: FrozenSet[str] = frozenset({"wasm", "data", "js"})

# Document served for navigations while offline
DEFAULT_OFFLINE_FALLBACK_URL = "/index.html"

# Only this status is ever persisted
CACHEABLE_STATUS_CODE = 200

# Request headers dropped from fetches a controller issues
CONDITIONAL_HEADERS: FrozenSet[str] = frozenset(
    {"if-none-match", "if-modified-since", "if-match", "if-unmodified-since", "if-range"}
)

# Methods a controller will intercept
INTERCEPTED_METHODS: FrozenSet[str] = frozenset({"GET"})

# Background sync tags the game client registers
SYNC_TAG_HIGHSCORES = "sync-highscores"
SYNC_TAG_REPLAYS = "sync-replays"
KNOWN_SYNC_TAGS: Tuple[str, ...] = (SYNC_TAG_HIGHSCORES, SYNC_TAG_REPLAYS)

# Storage
DEFAULT_STORAGE_DIR = ".swcache"
DEFAULT_STORAGE_MAX_MEMORY_MB = 256
ENTRY_METADATA_SUFFIX = ".json"
ENTRY_BODY_SUFFIX = ".body"
ENTRY_TEMP_SUFFIX = ".tmp"

# Number of cache key characters shown in logs
LOG_KEY_PREFIX_LENGTH = 8

# HTTP interface
CONTROL_ROUTE_PREFIX = "/__swcache"

# Headers that must not be forwarded between hops. Content-Encoding and
# Content-Length are dropped because httpx hands back decoded bodies.
HOP_BY_HOP_HEADERS: FrozenSet[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
        "content-encoding",
    }
)

# HTTP client defaults
DEFAULT_HTTP_CONNECT_TIMEOUT = 10.0
DEFAULT_HTTP_READ_TIMEOUT = 30.0
DEFAULT_HTTP_WRITE_TIMEOUT = 30.0
DEFAULT_HTTP_POOL_TIMEOUT = 10.0
DEFAULT_POOL_MAX_KEEPALIVE_CONNECTIONS = 20
DEFAULT_POOL_MAX_CONNECTIONS = 100
DEFAULT_POOL_KEEPALIVE_EXPIRY = 60
