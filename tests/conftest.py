# tests/conftest.py
from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from loguru import logger

from chunkstat.api import ChunkStat
from chunkstat.config.app_config import AppConfig
from chunkstat.config.execution_config import ExecutionConfig
from chunkstat.config.log_config import LogConfig
from chunkstat.config.storage_config import RetryConfig, StorageConfig
from chunkstat.storage.backing_store import FileBackingStore, MemoryBackingStore
from chunkstat.storage.container import ContainerStore

FAST_RETRY = RetryConfig(max_attempts=3, delay=0.0, backoff=1.0, jitter=False)


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def store() -> ContainerStore:
    return ContainerStore(MemoryBackingStore(retry=FAST_RETRY), header_bytes=16, write_wait_timeout=0.2)


@pytest.fixture
def file_store(tmp_path: Path) -> ContainerStore:
    return ContainerStore(
        FileBackingStore(tmp_path / "backing", retry=FAST_RETRY),
        header_bytes=16,
        write_wait_timeout=0.2,
    )


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Defaults, with every path isolated under tmp_path."""
    return AppConfig(
        log=LogConfig(dir=str(tmp_path / "logs")),
        storage=StorageConfig(
            root=str(tmp_path / "backing"),
            saved_root=str(tmp_path / "saved"),
            retry=FAST_RETRY,
        ),
        execution=ExecutionConfig(default_chunk_size=1_000),
    )


@pytest.fixture
def engine(app_config: AppConfig, store: ContainerStore) -> ChunkStat:
    return ChunkStat(app_config, store=store)


@pytest.fixture
def make_vector(store: ContainerStore):
    """Factory: 1-D float64 container filled from an array."""

    def _make(values) -> "ContainerHandle":  # noqa: F821
        arr = np.asarray(values, dtype=np.float64)
        h = store.create(arr.shape[0], np.float64)
        if arr.shape[0]:
            store.write_chunk(h, (0, arr.shape[0]), arr)
        return h

    return _make


@pytest.fixture
def make_table(store: ContainerStore):
    """Factory: 2-D float64 container with named columns."""

    def _make(columns: dict[str, np.ndarray]):
        names = list(columns)
        data = np.column_stack([np.asarray(columns[n], dtype=np.float64) for n in names])
        h = store.create(data.shape, np.float64, columns=names)
        store.write_chunk(h, (0, data.shape[0]), data)
        return h

    return _make
