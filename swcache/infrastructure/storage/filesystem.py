"""Persistent cache storage backed by a directory tree.

Layout::

    <root>/<quoted store name>/<sha256 of identity>.json   metadata
    <root>/<quoted store name>/<sha256 of identity>.body   response body

The metadata file is written last, so an entry exists exactly when its
metadata file does. Both files are written to a temporary name first and
moved into place.
"""

import json
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, unquote

import aiofiles  # type: ignore[import-untyped]
import anyio
from asyncer import asyncify

from .base import CacheStorage, CacheStore
from .models import entry_key
from ...constants import (
    ENTRY_BODY_SUFFIX,
    ENTRY_METADATA_SUFFIX,
    ENTRY_TEMP_SUFFIX,
    LOG_KEY_PREFIX_LENGTH,
)
from ...domain.exceptions import StoreReadError, StoreWriteError
from ...domain.models import CapturedResponse, FetchRequest
from ...logging import debug, info, LogRecord, LogEvent


def _store_dirname(name: str) -> str:
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid store name: {name!r}")
    return quote(name, safe="")


class FileSystemCacheStore(CacheStore):
    """A named store persisted as one directory of entry files."""

    def __init__(self, name: str, directory: anyio.Path):
        super().__init__(name)
        self.directory = directory
        self._lock = anyio.Lock()

    def _paths(self, request: FetchRequest) -> Tuple[anyio.Path, anyio.Path]:
        key = entry_key(request.identity)
        return (
            self.directory / f"{key}{ENTRY_METADATA_SUFFIX}",
            self.directory / f"{key}{ENTRY_BODY_SUFFIX}",
        )

    async def _read_metadata(self, path: anyio.Path) -> Dict[str, Any]:
        try:
            async with aiofiles.open(str(path), "r", encoding="utf-8") as f:
                content = await f.read()
            metadata = json.loads(content)
        except (OSError, ValueError) as e:
            raise StoreReadError(
                f"Unreadable entry metadata {path.name}: {e}", store_name=self.name
            ) from e
        if not isinstance(metadata, dict) or not {"method", "url", "status"} <= metadata.keys():
            raise StoreReadError(
                f"Incomplete entry metadata {path.name}", store_name=self.name
            )
        return metadata

    async def match(self, request: FetchRequest) -> Optional[CapturedResponse]:
        meta_path, body_path = self._paths(request)
        if not await meta_path.exists():
            return None

        metadata = await self._read_metadata(meta_path)
        try:
            async with aiofiles.open(str(body_path), "rb") as f:
                body = await f.read()
        except OSError as e:
            raise StoreReadError(
                f"Missing body for entry {meta_path.name}", store_name=self.name
            ) from e

        return CapturedResponse(
            status=metadata["status"],
            headers=metadata.get("headers", {}),
            body=body,
            url=metadata.get("response_url"),
        )

    async def _write_atomic(self, path: anyio.Path, data: Union[bytes, str]) -> None:
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{ENTRY_TEMP_SUFFIX}")
        mode = "wb" if isinstance(data, bytes) else "w"
        encoding = None if isinstance(data, bytes) else "utf-8"
        try:
            async with aiofiles.open(str(tmp_path), mode, encoding=encoding) as f:
                await f.write(data)
            await tmp_path.replace(path)
        except OSError:
            if await tmp_path.exists():
                await tmp_path.unlink()
            raise

    async def put(self, request: FetchRequest, response: CapturedResponse) -> None:
        meta_path, body_path = self._paths(request)
        metadata = {
            "method": request.method,
            "url": request.url,
            "status": response.status,
            "headers": response.headers,
            "response_url": response.url,
            "stored_at": time.time(),
            "body_size": len(response.body),
        }

        async with self._lock:
            try:
                await self.directory.mkdir(parents=True, exist_ok=True)
                await self._write_atomic(body_path, response.body)
                await self._write_atomic(meta_path, json.dumps(metadata))
            except OSError as e:
                raise StoreWriteError(
                    f"Failed to write entry to {self.name}: {e}", store_name=self.name
                ) from e

        debug(
            LogRecord(
                event=LogEvent.STORE_EVENT.value,
                message="Stored entry",
                data={
                    "store": self.name,
                    "key": meta_path.stem[:LOG_KEY_PREFIX_LENGTH] + "...",
                    "size_bytes": len(response.body),
                },
            )
        )

    async def delete(self, request: FetchRequest) -> bool:
        meta_path, body_path = self._paths(request)
        async with self._lock:
            existed = await meta_path.exists()
            await meta_path.unlink(missing_ok=True)
            await body_path.unlink(missing_ok=True)
        return existed

    async def keys(self) -> List[Tuple[str, str]]:
        identities: List[Tuple[str, str]] = []
        if not await self.directory.exists():
            return identities
        async for path in self.directory.glob(f"*{ENTRY_METADATA_SUFFIX}"):
            metadata = await self._read_metadata(path)
            identities.append((metadata["method"], metadata["url"]))
        return identities


class FileSystemCacheStorage(CacheStorage):
    """Storage whose stores survive process restarts."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = anyio.Path(directory)
        self._stores: Dict[str, FileSystemCacheStore] = {}
        self._lock = anyio.Lock()

    def _store_path(self, name: str) -> anyio.Path:
        return self.directory / _store_dirname(name)

    async def open(self, name: str) -> CacheStore:
        path = self._store_path(name)
        async with self._lock:
            store = self._stores.get(name)
            if store is None:
                store = FileSystemCacheStore(name, path)
                self._stores[name] = store
            if not await path.exists():
                try:
                    await path.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise StoreWriteError(
                        f"Failed to create store {name}: {e}", store_name=name
                    ) from e
                debug(
                    LogRecord(
                        event=LogEvent.STORE_EVENT.value,
                        message="Created store",
                        data={"store": name, "path": str(path)},
                    )
                )
            return store

    async def has(self, name: str) -> bool:
        return await self._store_path(name).is_dir()

    async def delete(self, name: str) -> bool:
        path = self._store_path(name)
        async with self._lock:
            self._stores.pop(name, None)
            if not await path.is_dir():
                return False
            try:
                await asyncify(shutil.rmtree)(str(path))
            except OSError as e:
                raise StoreWriteError(
                    f"Failed to delete store {name}: {e}", store_name=name
                ) from e

        info(
            LogRecord(
                event=LogEvent.STORE_EVENT.value,
                message="Deleted store",
                data={"store": name},
            )
        )
        return True

    async def keys(self) -> List[str]:
        if not await self.directory.is_dir():
            return []
        names = []
        async for path in self.directory.iterdir():
            if await path.is_dir():
                names.append(unquote(path.name))
        return sorted(names)

    def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        return {
            "backend": "filesystem",
            "directory": str(self.directory),
            "open_stores": len(self._stores),
        }
