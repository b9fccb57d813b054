# chunkstat/aggregators/variance.py
from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np

from chunkstat.aggregators.base import ColumnAccumulator
from chunkstat.utils.errors import EmptyInput, InvalidArgument


class MomentState(NamedTuple):
    count: int
    mean: float
    m2: float  # sum of squared deviations from `mean`


def merge_moments(a: MomentState, b: MomentState) -> MomentState:
    """
    Parallel-variance merge (Chan et al.):

        delta = mu_b - mu_a
        mu    = mu_a + delta * n_b / n
        M2    = M2_a + M2_b + delta^2 * n_a * n_b / n
    """
    if a.count == 0:
        return b
    if b.count == 0:
        return a

    n = a.count + b.count
    delta = b.mean - a.mean
    mean = a.mean + delta * b.count / n
    m2 = a.m2 + b.m2 + delta * delta * a.count * b.count / n
    return MomentState(n, mean, m2)


class VarianceAccumulator(ColumnAccumulator[MomentState, float]):
    """
    Streaming variance.

    Each chunk is reduced to its own (count, mean, M2) and folded into the
    running state with `merge_moments`, which is Welford's recurrence
    generalised from one row to a block of rows.

    finalize returns M2 / (count - ddof); ddof=1 (default) gives the sample
    variance, ddof=0 the population variance.
    """

    def __init__(self, column: int | None = None, ddof: int = 1):
        super().__init__(column)
        if ddof < 0:
            raise InvalidArgument(f"ddof must be >= 0, got {ddof}")
        self.ddof = ddof

    def initial_state(self) -> MomentState:
        return MomentState(0, 0.0, 0.0)

    def absorb(self, state: MomentState, chunk: np.ndarray) -> MomentState:
        values = self.values(chunk)
        if values.size == 0:
            return state
        mean = float(values.mean())
        m2 = float(np.square(values - mean).sum())
        return merge_moments(state, MomentState(int(values.size), mean, m2))

    def combine(self, a: MomentState, b: MomentState) -> MomentState:
        return merge_moments(a, b)

    def finalize(self, state: MomentState) -> float:
        if state.count <= self.ddof:
            raise EmptyInput(
                f"variance with ddof={self.ddof} needs more than {self.ddof} "
                f"observations, got {state.count}"
            )
        return state.m2 / (state.count - self.ddof)


class StdAccumulator(VarianceAccumulator):
    def finalize(self, state: MomentState) -> float:
        return math.sqrt(super().finalize(state))
