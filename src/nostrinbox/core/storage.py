"""
Key/value persistence for watermarks and follower baselines.

The core persists only small opaque byte blobs under string keys. Any
object with async ``get``/``set``/``delete`` methods satisfies the
[KeyValueStore][nostrinbox.core.storage.KeyValueStore] protocol; two
implementations ship here:

* [MemoryStore][nostrinbox.core.storage.MemoryStore]: process lifetime
  only, used by tests and ``--once`` dry runs.
* [FileStore][nostrinbox.core.storage.FileStore]: one file per key under a
  directory, written atomically (temp file then ``os.replace``) so a crash
  never leaves a half-written watermark.

See Also:
    [WatermarkStore][nostrinbox.services.common.watermarks.WatermarkStore]:
        Per-peer and feed watermarks.
    [FollowerBaseline][nostrinbox.services.notifications.baseline.FollowerBaseline]:
        Follower snapshot persistence.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal async key/value persistence contract."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...


class StorageConfig(BaseModel):
    """Where persistent state lives.

    ``path=None`` keeps everything in memory for the lifetime of the
    process.
    """

    path: str | None = Field(
        default="~/.local/state/nostrinbox",
        description="Directory for persisted state (None = in-memory only)",
    )


class MemoryStore:
    """In-process dict-backed store."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        if not isinstance(value, bytes):
            raise TypeError(f"value must be bytes, got {type(value).__name__}")
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class FileStore:
    """Directory-backed store with one file per key.

    Keys are percent-encoded into file names, so any string is a valid key.
    Blocking file I/O runs in a worker thread.
    """

    _SUFFIX = ".bin"

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("key must not be empty")
        return self._directory / (quote(key, safe="") + self._SUFFIX)

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None

    async def set(self, key: str, value: bytes) -> None:
        if not isinstance(value, bytes):
            raise TypeError(f"value must be bytes, got {type(value).__name__}")
        await asyncio.to_thread(self._write_atomic, self._path(key), value)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    def _write_atomic(self, path: Path, value: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("store_written key_file=%s bytes=%s", path.name, len(value))


def create_store(config: StorageConfig) -> KeyValueStore:
    """Build the store selected by *config*."""
    if config.path is None:
        return MemoryStore()
    return FileStore(config.path)
