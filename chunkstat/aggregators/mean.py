# chunkstat/aggregators/mean.py
from __future__ import annotations

from typing import NamedTuple

import numpy as np

from chunkstat.aggregators.base import ColumnAccumulator
from chunkstat.utils.errors import EmptyInput


class MeanState(NamedTuple):
    total: float
    count: int


class MeanAccumulator(ColumnAccumulator[MeanState, float]):
    """state = (sum, count); combine adds both fields."""

    def initial_state(self) -> MeanState:
        return MeanState(0.0, 0)

    def absorb(self, state: MeanState, chunk: np.ndarray) -> MeanState:
        values = self.values(chunk)
        return MeanState(state.total + float(values.sum()), state.count + int(values.size))

    def combine(self, a: MeanState, b: MeanState) -> MeanState:
        return MeanState(a.total + b.total, a.count + b.count)

    def finalize(self, state: MeanState) -> float:
        if state.count == 0:
            raise EmptyInput("mean of zero observations is undefined")
        return state.total / state.count
