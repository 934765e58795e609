"""Data models for the cache storage backends."""

import hashlib
import time
from dataclasses import dataclass, field
from typing import Tuple

from ...domain.models import CapturedResponse


def entry_key(identity: Tuple[str, str]) -> str:
    """Stable hex digest for a ``(method, url)`` request identity."""
    method, url = identity
    return hashlib.sha256(f"{method} {url}".encode("utf-8")).hexdigest()


@dataclass
class CachedEntry:
    """Represents a stored response with metadata."""

    method: str
    url: str
    response: CapturedResponse
    stored_at: float = field(default_factory=time.time)
    access_count: int = 0
    last_accessed: float = field(default_factory=time.time)
    size_bytes: int = 0

    def __post_init__(self):
        """Calculate size after initialization."""
        if self.size_bytes == 0:
            self.size_bytes = self.response.size_bytes + len(self.url)

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.method, self.url)

    @property
    def key(self) -> str:
        return entry_key(self.identity)

    def update_access(self):
        """Update access count and timestamp."""
        self.access_count += 1
        self.last_accessed = time.time()
