# chunkstat/utils/errors.py
from __future__ import annotations

from typing import Any, Optional


class ChunkStatError(RuntimeError):
    """Root of every error raised by chunkstat."""


class InvalidArgument(ChunkStatError, ValueError):
    """
    Malformed request (bad partition, unknown column, unsupported dtype ...).
    Raised before any backing-store I/O happens.
    """


class ShapeMismatch(ChunkStatError, ValueError):
    """Shape inconsistent with the element type or with the target container."""


class RangeOutOfBounds(ChunkStatError, IndexError):
    def __init__(self, range_: Any, shape: tuple):
        self.range = range_
        self.shape = shape
        super().__init__(f"range {range_} exceeds container shape {shape}")


class EmptyInput(ChunkStatError, ValueError):
    """A statistic was finalized over zero (or too few) observations."""


class StorageUnavailable(ChunkStatError):
    """Backing store kept failing after bounded retry."""


class PortabilityError(ChunkStatError):
    """Persisted layout cannot be read on this platform / by this version."""


class ContainerReleased(ChunkStatError):
    """Operation attempted through a handle that was already released."""


class ContainerBusy(ChunkStatError):
    """Write rejected: a reduction pass stayed in flight past the wait timeout."""


class ReductionCancelled(ChunkStatError):
    """Reduction aborted by a cancel token or a timeout; no result exists."""


class ChunkProcessingError(ChunkStatError):
    """
    absorb / combine failed for `range`; the whole reduction was discarded.
    `cause` is the original exception (also chained as __cause__).
    """

    def __init__(self, range_: Any, cause: BaseException):
        self.range = range_
        self.cause = cause
        super().__init__(f"chunk {range_} failed: {type(cause).__name__}: {cause}")


class SingularDesignError(ChunkStatError):
    """
    Pivot of `column` fell below tolerance: that predictor is rank deficient
    (collinear with earlier columns or constant). Drop or regularize it.
    """

    def __init__(self, column: int, name: Optional[str] = None, pivot: float = 0.0):
        self.column = column
        self.name = name
        self.pivot = pivot
        label = f"{column} ({name})" if name is not None else f"{column}"
        super().__init__(f"design matrix is singular at column {label}, pivot={pivot:.3e}")
