# chunkstat/chunking/types.py
from __future__ import annotations

from dataclasses import dataclass

from chunkstat.utils.errors import InvalidArgument


@dataclass(frozen=True, order=True)
class ChunkRange:
    """Half-open index interval [start, end)."""

    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise InvalidArgument(f"invalid range [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    def span(self, other: "ChunkRange") -> "ChunkRange":
        """Smallest range covering both (used to label merged partials)."""
        return ChunkRange(min(self.start, other.start), max(self.end, other.end))

    def __str__(self) -> str:
        return f"[{self.start},{self.end})"
