# chunkstat/chunking/planner.py
from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Any, Optional

from chunkstat.chunking.types import ChunkRange
from chunkstat.utils.errors import InvalidArgument


@dataclass(frozen=True)
class Partition:
    """
    Exactly one of chunk_count / chunk_size is set.

    chunk_count=N : N ranges of ceil(L / N) rows (fewer if L < N)
    chunk_size=S  : ranges of S rows, last one may be shorter
    """

    chunk_count: Optional[int] = None
    chunk_size: Optional[int] = None

    def __post_init__(self):
        if (self.chunk_count is None) == (self.chunk_size is None):
            raise InvalidArgument("partition needs exactly one of chunk_count / chunk_size")
        value = self.chunk_count if self.chunk_count is not None else self.chunk_size
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise InvalidArgument(f"partition value must be an int, got {value!r}")
        if value < 1:
            name = "chunk_count" if self.chunk_count is not None else "chunk_size"
            raise InvalidArgument(f"{name} must be >= 1, got {value}")

    @classmethod
    def parse(cls, value: Any) -> "Partition":
        """Accept a Partition, an int (chunk count) or a dict with one key."""
        if isinstance(value, Partition):
            return value
        if isinstance(value, numbers.Integral) and not isinstance(value, bool):
            return cls(chunk_count=value)
        if isinstance(value, dict):
            unknown = set(value) - {"chunk_count", "chunk_size"}
            if unknown:
                raise InvalidArgument(f"unknown partition keys: {sorted(unknown)}")
            return cls(**value)
        raise InvalidArgument(f"cannot interpret partition {value!r}")


def plan(
    total_length: int,
    partition: Partition | dict | int | None = None,
    *,
    chunk_count: int | None = None,
    chunk_size: int | None = None,
) -> list[ChunkRange]:
    """
    Split [0, total_length) into ordered, contiguous, non-overlapping ranges.

    Pure: the same inputs always give the same ranges. Validation happens
    before anything else so a malformed request never reaches storage.

        plan(23, chunk_count=5) -> [0,5) [5,10) [10,15) [15,20) [20,23)
    """
    if partition is None:
        partition = Partition(chunk_count=chunk_count, chunk_size=chunk_size)
    elif chunk_count is not None or chunk_size is not None:
        raise InvalidArgument("pass either a partition or chunk_count / chunk_size, not both")
    else:
        partition = Partition.parse(partition)

    if isinstance(total_length, bool) or not isinstance(total_length, numbers.Integral):
        raise InvalidArgument(f"total_length must be an int, got {total_length!r}")
    if total_length < 0:
        raise InvalidArgument(f"total_length must be >= 0, got {total_length}")

    total_length = int(total_length)
    if total_length == 0:
        return []

    if partition.chunk_size is not None:
        size = partition.chunk_size
    else:
        size = -(-total_length // partition.chunk_count)

    return [
        ChunkRange(start, min(start + size, total_length))
        for start in range(0, total_length, size)
    ]
