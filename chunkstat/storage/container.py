#!filepath: chunkstat/storage/container.py
from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Sequence

import numpy as np

from chunkstat.chunking.types import ChunkRange
from chunkstat.config.storage_config import StorageConfig
from chunkstat.storage.backing_store import BackingStore, MemoryBackingStore, build_backing_store
from chunkstat.storage.buffers import ResidentMemory
from chunkstat.storage.sizing import quantized_size
from chunkstat.utils.errors import (
    ContainerBusy,
    ContainerReleased,
    InvalidArgument,
    RangeOutOfBounds,
    ShapeMismatch,
)
from chunkstat.utils.logger import logs

NUMERIC_KINDS = "biuf"


class _RegionGate:
    """
    Readers = reduction passes; writer = write_chunk / final release.

    Any number of passes may read at once. A writer waits until no pass is
    in flight and holds the region exclusively for the whole mutation.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._readers = 0
        self._writing = False

    @property
    def readers(self) -> int:
        return self._readers

    @contextmanager
    def shared(self, timeout: float) -> Iterator[None]:
        with self._cond:
            if not self._cond.wait_for(lambda: not self._writing, timeout):
                raise ContainerBusy("write in progress; reduction could not start")
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @contextmanager
    def exclusive(self, timeout: float) -> Iterator[None]:
        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._readers == 0 and not self._writing, timeout
            )
            if not ready:
                raise ContainerBusy(
                    f"{self._readers} reduction pass(es) still in flight after {timeout}s"
                )
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


@dataclass
class _Region:
    """One backing identity: the unit of aliasing and of deduplicated sizing."""

    identity: int
    backing: BackingStore
    location: str
    dtype: np.dtype
    shape: tuple[int, ...]
    columns: Optional[tuple[str, ...]]
    refcount: int = 1
    gate: _RegionGate = field(default_factory=_RegionGate)

    @property
    def rows(self) -> int:
        return self.shape[0]

    @property
    def width(self) -> int:
        return self.shape[1] if len(self.shape) == 2 else 1

    @property
    def element_count(self) -> int:
        return self.rows * self.width

    @property
    def row_bytes(self) -> int:
        return self.width * self.dtype.itemsize


class ContainerHandle:
    """
    Lightweight, typed reference onto a backing identity.

    Copying a handle (alias) never copies data; every alias observes every
    write. Shape and dtype are fixed for the life of the identity.
    """

    __slots__ = ("_store", "_region", "_released", "__weakref__")

    def __init__(self, store: "ContainerStore", region: _Region):
        self._store = store
        self._region = region
        self._released = False

    @property
    def identity(self) -> int:
        return self._region.identity

    @property
    def dtype(self) -> np.dtype:
        return self._region.dtype

    @property
    def shape(self) -> tuple[int, ...]:
        return self._region.shape

    @property
    def columns(self) -> Optional[tuple[str, ...]]:
        return self._region.columns

    @property
    def rows(self) -> int:
        return self._region.rows

    @property
    def nbytes(self) -> int:
        return self._region.element_count * self._region.dtype.itemsize

    @property
    def refcount(self) -> int:
        return self._region.refcount

    @property
    def released(self) -> bool:
        return self._released

    def __len__(self) -> int:
        return self._region.rows

    def __repr__(self) -> str:
        state = "released" if self._released else f"refs={self._region.refcount}"
        return (
            f"ContainerHandle(identity={self._region.identity}, "
            f"shape={self._region.shape}, dtype={self._region.dtype}, {state})"
        )


class ContainerStore:
    """
    Arena of backing identities (Frozen contract)

    ======================================
    Operations
    ======================================
    create / alias / release       - lifetime (deterministic ref counting)
    read_chunk / write_chunk       - row-range I/O
    size_of                        - quantized size, each identity once
    reading(handle)                - marks a reduction pass in flight

    ======================================
    Rules
    ======================================
    - Arguments are validated before any backing-store I/O
    - write_chunk mutates the identity, never the handle (reference copy)
    - storage is freed exactly when the last handle is released
    """

    def __init__(
        self,
        backing: BackingStore | None = None,
        *,
        header_bytes: int = 16,
        write_wait_timeout: float = 30.0,
    ):
        self.backing = backing or MemoryBackingStore()
        self.header_bytes = header_bytes
        self.write_wait_timeout = write_wait_timeout

        self._regions: dict[int, _Region] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: StorageConfig) -> "ContainerStore":
        return cls(
            build_backing_store(config),
            header_bytes=config.header_bytes,
            write_wait_timeout=config.write_wait_timeout,
        )

    # --------------------------------------------------
    # lifetime
    # --------------------------------------------------
    def create(
        self,
        shape: int | Sequence[int],
        dtype: Any = np.float64,
        backing: BackingStore | None = None,
        *,
        columns: Sequence[str] | None = None,
    ) -> ContainerHandle:
        shape_t = self._validate_shape(shape)
        dtype_n = self._validate_dtype(dtype)

        if columns is not None:
            columns = tuple(str(c) for c in columns)
            width = shape_t[1] if len(shape_t) == 2 else 1
            if len(columns) != width:
                raise ShapeMismatch(f"{len(columns)} column names for width {width}")
            if len(set(columns)) != len(columns):
                raise InvalidArgument(f"duplicate column names: {columns}")

        backing = backing or self.backing
        nbytes = int(np.prod(shape_t, dtype=np.int64)) * dtype_n.itemsize
        location = backing.allocate(nbytes)

        with self._lock:
            identity = next(self._ids)
            region = _Region(
                identity=identity,
                backing=backing,
                location=location,
                dtype=dtype_n,
                shape=shape_t,
                columns=columns,
            )
            self._regions[identity] = region

        logs.debug(f"[Container] create identity={identity} shape={shape_t} dtype={dtype_n}")
        return ContainerHandle(self, region)

    def alias(self, handle: ContainerHandle) -> ContainerHandle:
        region = self._live(handle)
        with self._lock:
            # last release already in progress; the region is being freed
            if region.refcount == 0:
                raise ContainerReleased(f"identity {region.identity} is being released")
            region.refcount += 1
        return ContainerHandle(self, region)

    def release(self, handle: ContainerHandle) -> None:
        region = self._live(handle)
        handle._released = True

        with self._lock:
            region.refcount -= 1
            last = region.refcount == 0

        if not last:
            return

        try:
            with region.gate.exclusive(self.write_wait_timeout):
                region.backing.free(region.location)
                with self._lock:
                    self._regions.pop(region.identity, None)
        except ContainerBusy:
            with self._lock:
                region.refcount += 1
            handle._released = False
            raise
        logs.debug(f"[Container] identity={region.identity} freed")

    def live_identities(self) -> set[int]:
        with self._lock:
            return set(self._regions)

    # --------------------------------------------------
    # I/O
    # --------------------------------------------------
    def read_chunk(self, handle: ContainerHandle, range_: ChunkRange | tuple[int, int]) -> np.ndarray:
        region = self._live(handle)
        rng = self._validate_range(region, range_)

        raw = region.backing.read(
            region.location,
            rng.start * region.row_bytes,
            len(rng) * region.row_bytes,
        )
        # owning buffer: every view keeps it alive, so the ledger counts it
        # until the last view is gone
        owner = ResidentMemory.track(np.empty(len(rng) * region.width, dtype=region.dtype))
        owner.view(np.uint8)[:] = np.frombuffer(raw, dtype=np.uint8)
        if len(region.shape) == 2:
            return owner.reshape(len(rng), region.shape[1])
        return owner

    def write_chunk(self, handle: ContainerHandle, range_: ChunkRange | tuple[int, int], data: Any) -> None:
        region = self._live(handle)
        rng = self._validate_range(region, range_)

        expected = (len(rng),) + region.shape[1:]
        arr = np.asarray(data)
        if arr.shape != expected:
            raise ShapeMismatch(f"data shape {arr.shape} != chunk shape {expected}")
        if arr.dtype.kind not in NUMERIC_KINDS:
            raise InvalidArgument(f"non-numeric data ({arr.dtype}) cannot be written")
        payload = np.ascontiguousarray(arr, dtype=region.dtype).tobytes()

        with region.gate.exclusive(self.write_wait_timeout):
            region.backing.write(region.location, rng.start * region.row_bytes, payload)

    @contextmanager
    def reading(self, handle: ContainerHandle) -> Iterator[ContainerHandle]:
        """Hold the identity read-only for one reduction pass."""
        region = self._live(handle)
        with region.gate.shared(self.write_wait_timeout):
            yield handle

    # --------------------------------------------------
    # sizing
    # --------------------------------------------------
    def size_of(self, *items: Any) -> int:
        """
        Quantized size of every distinct backing identity reachable from
        `items` (handles, or lists / tuples / sets / dicts nesting them).
        """
        visited: set[int] = set()
        total = 0
        for region in self._walk(items, seen_composites=set()):
            if region.identity in visited:
                continue
            visited.add(region.identity)
            total += quantized_size(region.element_count, region.dtype.itemsize, self.header_bytes)
        return total

    def _walk(self, obj: Any, seen_composites: set[int]) -> Iterator[_Region]:
        if isinstance(obj, ContainerHandle):
            yield self._live(obj)
            return

        if isinstance(obj, (str, bytes, np.ndarray)):
            raise InvalidArgument(f"cannot size object of type {type(obj).__name__}")

        if id(obj) in seen_composites:
            return
        seen_composites.add(id(obj))

        if isinstance(obj, Mapping):
            children: Iterable[Any] = obj.values()
        elif isinstance(obj, Iterable):
            children = obj
        else:
            raise InvalidArgument(f"cannot size object of type {type(obj).__name__}")

        for child in children:
            yield from self._walk(child, seen_composites)

    # --------------------------------------------------
    # helpers
    # --------------------------------------------------
    def column_index(self, handle: ContainerHandle, column: int | str | None) -> Optional[int]:
        """Resolve a column name / index; None for 1-D containers."""
        region = self._live(handle)

        if len(region.shape) == 1:
            allowed = (None, 0) + (region.columns or ())
            if column not in allowed:
                raise InvalidArgument(f"1-D container has no column {column!r}")
            return None

        if column is None:
            raise InvalidArgument("column is required for a 2-D container")

        if isinstance(column, (int, np.integer)) and not isinstance(column, bool):
            if not 0 <= column < region.width:
                raise InvalidArgument(f"column index {column} out of [0, {region.width})")
            return int(column)

        if region.columns is None or column not in region.columns:
            raise InvalidArgument(f"unknown column {column!r}; have {region.columns}")
        return region.columns.index(column)

    def _live(self, handle: ContainerHandle) -> _Region:
        if not isinstance(handle, ContainerHandle):
            raise InvalidArgument(f"expected ContainerHandle, got {type(handle).__name__}")
        if handle._store is not self:
            raise InvalidArgument("handle belongs to a different ContainerStore")
        if handle._released:
            raise ContainerReleased(f"identity {handle.identity} handle already released")
        return handle._region

    @staticmethod
    def _validate_range(region: _Region, range_: ChunkRange | tuple[int, int]) -> ChunkRange:
        rng = range_ if isinstance(range_, ChunkRange) else ChunkRange(*range_)
        if rng.end > region.rows:
            raise RangeOutOfBounds(rng, region.shape)
        return rng

    @staticmethod
    def _validate_shape(shape: int | Sequence[int]) -> tuple[int, ...]:
        if isinstance(shape, (int, np.integer)):
            shape = (int(shape),)
        try:
            shape_t = tuple(int(s) for s in shape)
        except (TypeError, ValueError):
            raise ShapeMismatch(f"shape must be a length or (rows, cols), got {shape!r}") from None

        if len(shape_t) not in (1, 2):
            raise ShapeMismatch(f"shape must have 1 or 2 dimensions, got {shape_t}")
        if any(s < 0 for s in shape_t):
            raise ShapeMismatch(f"negative dimension in {shape_t}")
        if len(shape_t) == 2 and shape_t[1] == 0:
            raise ShapeMismatch(f"2-D container needs at least one column, got {shape_t}")
        return shape_t

    @staticmethod
    def _validate_dtype(dtype: Any) -> np.dtype:
        try:
            dtype_n = np.dtype(dtype)
        except TypeError:
            raise InvalidArgument(f"unknown dtype {dtype!r}") from None

        if dtype_n.fields is not None or dtype_n.kind not in NUMERIC_KINDS:
            raise ShapeMismatch(f"dtype {dtype_n} is not a numeric scalar element type")
        return dtype_n
