# chunkstat/storage/backing_store.py
from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from chunkstat.config.storage_config import RetryConfig, StorageBackend, StorageConfig
from chunkstat.utils.errors import StorageUnavailable
from chunkstat.utils.filesystem import FileSystem
from chunkstat.utils.logger import logs
from chunkstat.utils.retry import Retry


class BackingStore(ABC):
    """
    Durable byte storage addressed by an opaque location string.

    Contract:
      - allocate() reserves a zero-filled region and returns its location
      - read()/write() address [offset, offset + n) inside one region
      - free() releases the region; a freed location is never reused

    Subclasses implement the `_raw_*` hooks; `read` wraps them in bounded
    retry and turns exhaustion into StorageUnavailable.
    """

    def __init__(self, retry: RetryConfig | None = None):
        self.retry = retry or RetryConfig()
        self._policy = Retry.from_config(self.retry, exceptions=(OSError,))

    # --------------------------------------------------
    def read(self, location: str, offset: int, nbytes: int) -> bytes:
        try:
            return self._policy.call(self._raw_read, location, offset, nbytes)
        except OSError as e:
            raise StorageUnavailable(
                f"read {location}[{offset}:{offset + nbytes}] failed "
                f"after {self.retry.max_attempts} attempts"
            ) from e

    def write(self, location: str, offset: int, data: bytes) -> None:
        try:
            self._policy.call(self._raw_write, location, offset, data)
        except OSError as e:
            raise StorageUnavailable(f"write {location}@{offset} failed") from e

    # --------------------------------------------------
    # hook methods
    # --------------------------------------------------
    @abstractmethod
    def allocate(self, nbytes: int) -> str:
        ...

    @abstractmethod
    def free(self, location: str) -> None:
        ...

    @abstractmethod
    def exists(self, location: str) -> bool:
        ...

    @abstractmethod
    def _raw_read(self, location: str, offset: int, nbytes: int) -> bytes:
        ...

    @abstractmethod
    def _raw_write(self, location: str, offset: int, data: bytes) -> None:
        ...


class MemoryBackingStore(BackingStore):
    """bytearray per location; for tests and small workloads."""

    def __init__(self, retry: RetryConfig | None = None):
        super().__init__(retry)
        self._regions: dict[str, bytearray] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def allocate(self, nbytes: int) -> str:
        with self._lock:
            location = f"mem://{next(self._ids)}"
            self._regions[location] = bytearray(nbytes)
        return location

    def free(self, location: str) -> None:
        with self._lock:
            self._regions.pop(location, None)

    def exists(self, location: str) -> bool:
        return location in self._regions

    def _region(self, location: str) -> bytearray:
        try:
            return self._regions[location]
        except KeyError:
            raise FileNotFoundError(location) from None

    def _raw_read(self, location: str, offset: int, nbytes: int) -> bytes:
        return bytes(self._region(location)[offset:offset + nbytes])

    def _raw_write(self, location: str, offset: int, data: bytes) -> None:
        region = self._region(location)
        region[offset:offset + len(data)] = data


class FileBackingStore(BackingStore):
    """One file per location under `root`."""

    def __init__(self, root: str | Path, retry: RetryConfig | None = None):
        super().__init__(retry)
        self.root = FileSystem.ensure_dir(root)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _path(self, location: str) -> Path:
        return self.root / location

    def allocate(self, nbytes: int) -> str:
        with self._lock:
            while True:
                location = f"region_{next(self._ids):08d}.bin"
                if not self._path(location).exists():
                    break
        with open(self._path(location), "wb") as f:
            f.truncate(nbytes)
        logs.debug(f"[FileBackingStore] allocated {location} ({nbytes} bytes)")
        return location

    def free(self, location: str) -> None:
        FileSystem.remove(self._path(location))

    def exists(self, location: str) -> bool:
        return self._path(location).exists()

    def _raw_read(self, location: str, offset: int, nbytes: int) -> bytes:
        with open(self._path(location), "rb") as f:
            f.seek(offset)
            data = f.read(nbytes)
        if len(data) != nbytes:
            raise OSError(f"short read on {location}: {len(data)}/{nbytes} bytes")
        return data

    def _raw_write(self, location: str, offset: int, data: bytes) -> None:
        with open(self._path(location), "r+b") as f:
            f.seek(offset)
            f.write(data)


def build_backing_store(config: StorageConfig) -> BackingStore:
    if config.backend == StorageBackend.FILE:
        return FileBackingStore(config.root, retry=config.retry)
    return MemoryBackingStore(retry=config.retry)
