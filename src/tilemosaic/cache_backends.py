"""Byte-valued cache backends used by the layer cache."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Callable

from tilemosaic.store.base import CacheBackend

LOGGER = logging.getLogger(__name__)


class MemoryCacheBackend:
    """In-process LRU cache with an optional time-to-live."""

    def __init__(
        self,
        *,
        capacity: int = 1024,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, bytes]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self.ttl_seconds is not None and self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)


class DirectoryCacheBackend:
    """Cache entries stored as files named by the SHA-256 of their key."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / digest[:2] / digest

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle, temp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(handle, "wb") as temp:
                temp.write(value)
            os.replace(temp_name, path)
        except OSError:
            Path(temp_name).unlink(missing_ok=True)
            raise


class NullCacheBackend:
    """Backend that never stores anything."""

    def get(self, key: str) -> bytes | None:
        return None

    def set(self, key: str, value: bytes) -> None:
        return None


def create_backend(
    kind: str,
    *,
    capacity: int = 1024,
    ttl_seconds: float | None = None,
    directory: Path | None = None,
) -> CacheBackend:
    """Build a cache backend by name."""
    LOGGER.debug("Using %s cache backend", kind)
    if kind == "memory":
        return MemoryCacheBackend(capacity=capacity, ttl_seconds=ttl_seconds)
    if kind == "directory":
        if directory is None:
            raise ValueError("Directory cache backend requires a directory.")
        return DirectoryCacheBackend(directory)
    if kind == "none":
        return NullCacheBackend()
    raise ValueError(f"Unknown cache backend: {kind}")
