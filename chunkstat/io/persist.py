#!filepath: chunkstat/io/persist.py
from __future__ import annotations

import json
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import numpy as np

from chunkstat.chunking.planner import plan
from chunkstat.storage.container import ContainerHandle, ContainerStore
from chunkstat.utils.errors import PortabilityError
from chunkstat.utils.filesystem import FileSystem
from chunkstat.utils.logger import logs

FORMAT_NAME = "chunkstat.container"
FORMAT_VERSION = 1
DATA_FILE = "data.bin"
MANIFEST_FILE = "manifest.json"


def save(
    store: ContainerStore,
    handle: ContainerHandle,
    location: str | Path | None = None,
    *,
    chunk_rows: int = 65_536,
    root: str | Path = "data/saved",
) -> Path:
    """
    Persist a container as <location>/data.bin + <location>/manifest.json.

    Data is streamed chunk by chunk into data.bin.tmp and renamed; the
    manifest is written last, so a location with a manifest is complete.
    The container is held read-only for the duration.
    """
    if location is None:
        location = Path(root) / f"container_{handle.identity}_{uuid.uuid4().hex[:8]}"
    location = FileSystem.ensure_dir(location)

    data_path = location / DATA_FILE
    with store.reading(handle), FileSystem.atomic_writer(data_path) as f:
        for rng in plan(handle.rows, chunk_size=chunk_rows):
            f.write(store.read_chunk(handle, rng).tobytes())

    payload: Dict[str, Any] = {
        "format": FORMAT_NAME,
        "format_version": FORMAT_VERSION,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "byteorder": sys.byteorder,
        "dtype": handle.dtype.str,
        "itemsize": handle.dtype.itemsize,
        "shape": list(handle.shape),
        "columns": list(handle.columns) if handle.columns is not None else None,
        "size": FileSystem.get_file_size(data_path),
    }
    FileSystem.safe_write(
        location / MANIFEST_FILE,
        json.dumps(payload, indent=2, sort_keys=True).encode("utf-8"),
    )

    logs.info(f"[save] identity={handle.identity} → {location}")
    return location


def read_manifest(location: str | Path) -> dict:
    path = Path(location) / MANIFEST_FILE
    if not path.exists():
        raise FileNotFoundError(f"no manifest at {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise PortabilityError(f"unreadable manifest {path}: {e}") from e


def validate_manifest(manifest: dict, data_size: int) -> np.dtype:
    """Reject anything this build / this machine cannot read byte-for-byte."""
    if manifest.get("format") != FORMAT_NAME:
        raise PortabilityError(f"not a chunkstat container: format={manifest.get('format')!r}")

    version = manifest.get("format_version")
    if version != FORMAT_VERSION:
        raise PortabilityError(f"unsupported format_version {version!r} (expected {FORMAT_VERSION})")

    if manifest.get("byteorder") != sys.byteorder:
        raise PortabilityError(
            f"written on a {manifest.get('byteorder')}-endian host, this host is {sys.byteorder}-endian"
        )

    try:
        dtype = np.dtype(manifest["dtype"])
    except (KeyError, TypeError) as e:
        raise PortabilityError(f"bad dtype in manifest: {manifest.get('dtype')!r}") from e

    if dtype.byteorder not in ("=", "|"):
        raise PortabilityError(f"dtype {dtype.str} is not in native byte order")
    if manifest.get("itemsize") != dtype.itemsize:
        raise PortabilityError(
            f"itemsize {manifest.get('itemsize')} does not match {dtype.str} ({dtype.itemsize})"
        )

    shape = tuple(manifest.get("shape") or ())
    expected = int(np.prod(shape, dtype=np.int64)) * dtype.itemsize
    if data_size != expected or manifest.get("size") != expected:
        raise PortabilityError(f"data size {data_size} does not match shape {shape} x {dtype.itemsize}")
    return dtype


def load(
    store: ContainerStore,
    location: str | Path,
    *,
    chunk_rows: int = 65_536,
) -> ContainerHandle:
    """Restore a saved container into a fresh backing identity."""
    location = Path(location)
    manifest = read_manifest(location)
    data_path = location / DATA_FILE
    dtype = validate_manifest(manifest, FileSystem.get_file_size(data_path))

    shape = tuple(manifest["shape"])
    handle = store.create(shape, dtype, columns=manifest.get("columns"))
    row_bytes = dtype.itemsize * (shape[1] if len(shape) == 2 else 1)

    try:
        with open(data_path, "rb") as f:
            for rng in plan(shape[0], chunk_size=chunk_rows):
                raw = f.read(len(rng) * row_bytes)
                block = np.frombuffer(raw, dtype=dtype).reshape((len(rng),) + shape[1:])
                store.write_chunk(handle, rng, block)
    except BaseException:
        store.release(handle)
        raise

    logs.info(f"[load] {location} → identity={handle.identity}")
    return handle
