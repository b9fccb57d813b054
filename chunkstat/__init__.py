#!filepath: chunkstat/__init__.py

from .utils.logger import Logging, logs
from .utils.retry import Retry
from .utils.errors import (
    ChunkStatError,
    InvalidArgument,
    ShapeMismatch,
    RangeOutOfBounds,
    EmptyInput,
    StorageUnavailable,
    PortabilityError,
    ContainerReleased,
    ContainerBusy,
    ReductionCancelled,
    ChunkProcessingError,
    SingularDesignError,
)
from .config.app_config import AppConfig
from .chunking.types import ChunkRange
from .chunking.planner import Partition, plan
from .chunking.executor import CancelToken, ChunkExecutor
from .storage.container import ContainerHandle, ContainerStore
from .regression.engine import LinearModelResult
from .api import (
    ChunkStat,
    Statistic,
    aggregate,
    fit_linear_model,
    load,
    open,
    resident_memory,
    save,
    size_of,
)

# alias 简化调用
retry = Retry

__version__ = "0.1.0"

__all__ = [
    "logs", "Logging",
    "retry",
    "AppConfig",
    "ChunkStat", "Statistic",
    "ChunkRange", "Partition", "plan",
    "CancelToken", "ChunkExecutor",
    "ContainerHandle", "ContainerStore",
    "LinearModelResult",
    "open", "save", "load", "aggregate", "fit_linear_model", "size_of", "resident_memory",
    "ChunkStatError", "InvalidArgument", "ShapeMismatch", "RangeOutOfBounds", "EmptyInput",
    "StorageUnavailable", "PortabilityError", "ContainerReleased", "ContainerBusy",
    "ReductionCancelled", "ChunkProcessingError", "SingularDesignError",
]
