# chunkstat/aggregators/median.py
"""
Median over chunked data: two separate contracts, chosen explicitly.

======================================
ExactMedian  (statistic "median_exact")
======================================
  pass 1  RangeAccumulator        count / finite min / max / ±inf counts,
                                  merged globally; a rank that falls among
                                  the infinities is answered without binning
  pass 2+ BinRefineAccumulator    per-bin count / min / max over the
                                  current candidate interval; the bin that
                                  holds the target rank becomes the next
                                  interval [bin_min, bin_max]
  last    CollectAccumulator      once the candidate interval holds at most
                                  `collect_limit` values they are gathered,
                                  sorted, and the rank is read off exactly

  Binning is monotone in the value, so every value inside
  [bin_min, bin_max] belongs to that bin and the interval shrinks strictly
  on every refine pass.

======================================
ApproxMedian  (statistic "median_approx")
======================================
  fixed-edge histogram per chunk, merged by summing counts; the median is
  interpolated inside its bin, so |error| <= bin width.

There is no silent fallback from one to the other.
"""
from __future__ import annotations

from typing import Any, Callable, NamedTuple, Optional

import numpy as np

from chunkstat.aggregators.base import Accumulator, ColumnAccumulator
from chunkstat.utils.errors import EmptyInput, InvalidArgument

Reducer = Callable[[Accumulator], Any]


def _bin_index(values: np.ndarray, lo: float, hi: float, bins: int) -> np.ndarray:
    """Monotone map of values in [lo, hi] onto 0..bins-1 (halved to avoid overflow)."""
    scale = hi * 0.5 - lo * 0.5
    if scale <= 0:
        return np.zeros(values.shape, dtype=np.int64)
    pos = (values * 0.5 - lo * 0.5) / scale * bins
    return np.clip(np.floor(pos), 0, bins - 1).astype(np.int64)


# ==================================================
# pass 1: range
# ==================================================
class RangeState(NamedTuple):
    count: int
    min: float
    max: float
    neg_inf: int = 0
    pos_inf: int = 0

    @property
    def finite(self) -> int:
        return self.count - self.neg_inf - self.pos_inf


class RangeAccumulator(ColumnAccumulator[RangeState, RangeState]):
    """min / max over finite values only; ±inf are counted apart."""

    def initial_state(self) -> RangeState:
        return RangeState(0, np.inf, -np.inf)

    def absorb(self, state: RangeState, chunk: np.ndarray) -> RangeState:
        values = self.values(chunk)
        if values.size == 0:
            return state
        finite = values[np.isfinite(values)]
        neg_inf = int(np.count_nonzero(values == -np.inf))
        part = RangeState(
            int(values.size),
            float(finite.min()) if finite.size else np.inf,
            float(finite.max()) if finite.size else -np.inf,
            neg_inf,
            int(values.size - finite.size) - neg_inf,
        )
        return self.combine(state, part)

    def combine(self, a: RangeState, b: RangeState) -> RangeState:
        return RangeState(
            a.count + b.count,
            min(a.min, b.min),
            max(a.max, b.max),
            a.neg_inf + b.neg_inf,
            a.pos_inf + b.pos_inf,
        )

    def finalize(self, state: RangeState) -> RangeState:
        if state.count == 0:
            raise EmptyInput("median of zero observations is undefined")
        return state


# ==================================================
# exact: refine + collect
# ==================================================
class RefineState(NamedTuple):
    below: int
    counts: np.ndarray
    mins: np.ndarray
    maxs: np.ndarray


class BinRefineAccumulator(ColumnAccumulator[RefineState, RefineState]):
    """Counting bins over the closed interval [lo, hi] with per-bin extremes."""

    def __init__(self, lo: float, hi: float, bins: int, column: int | None = None):
        super().__init__(column)
        if bins < 2:
            raise InvalidArgument(f"bins must be >= 2, got {bins}")
        self.lo, self.hi, self.bins = float(lo), float(hi), int(bins)

    def initial_state(self) -> RefineState:
        return RefineState(
            0,
            np.zeros(self.bins, dtype=np.int64),
            np.full(self.bins, np.inf),
            np.full(self.bins, -np.inf),
        )

    def absorb(self, state: RefineState, chunk: np.ndarray) -> RefineState:
        values = self.values(chunk)
        below = int(np.count_nonzero(values < self.lo))
        inside = values[(values >= self.lo) & (values <= self.hi)]

        idx = _bin_index(inside, self.lo, self.hi, self.bins)
        counts = np.bincount(idx, minlength=self.bins)
        mins = np.full(self.bins, np.inf)
        maxs = np.full(self.bins, -np.inf)
        np.minimum.at(mins, idx, inside)
        np.maximum.at(maxs, idx, inside)

        return self.combine(state, RefineState(below, counts, mins, maxs))

    def combine(self, a: RefineState, b: RefineState) -> RefineState:
        return RefineState(
            a.below + b.below,
            a.counts + b.counts,
            np.minimum(a.mins, b.mins),
            np.maximum(a.maxs, b.maxs),
        )

    def finalize(self, state: RefineState) -> RefineState:
        return state


class CollectState(NamedTuple):
    below: int
    values: np.ndarray


class CollectAccumulator(ColumnAccumulator[CollectState, CollectState]):
    """Gathers the (few) values inside [lo, hi]; finalize sorts them."""

    def __init__(self, lo: float, hi: float, column: int | None = None):
        super().__init__(column)
        self.lo, self.hi = float(lo), float(hi)

    def initial_state(self) -> CollectState:
        return CollectState(0, np.empty(0, dtype=np.float64))

    def absorb(self, state: CollectState, chunk: np.ndarray) -> CollectState:
        values = self.values(chunk)
        below = int(np.count_nonzero(values < self.lo))
        inside = values[(values >= self.lo) & (values <= self.hi)]
        return self.combine(state, CollectState(below, inside))

    def combine(self, a: CollectState, b: CollectState) -> CollectState:
        return CollectState(a.below + b.below, np.concatenate([a.values, b.values]))

    def finalize(self, state: CollectState) -> CollectState:
        return CollectState(state.below, np.sort(state.values, kind="stable"))


class ExactMedian:
    """
    Driver for the multi-pass exact median; `reduce(acc)` runs one full
    chunked pass with `acc` and returns its merged state.
    """

    def __init__(self, column: int | None = None, bins: int = 1024, collect_limit: int = 65_536):
        if bins < 2:
            raise InvalidArgument(f"bins must be >= 2, got {bins}")
        if collect_limit < 1:
            raise InvalidArgument(f"collect_limit must be >= 1, got {collect_limit}")
        self.column = column
        self.bins = bins
        self.collect_limit = collect_limit
        self.passes = 0

    def compute(self, reduce: Reducer) -> float:
        self.passes = 0
        rng = self._pass(reduce, RangeAccumulator(self.column))

        n = rng.count
        ranks = [n // 2] if n % 2 else [n // 2 - 1, n // 2]
        picked = [self._pick(reduce, k, rng) for k in ranks]
        return sum(picked) / len(picked)

    def _pick(self, reduce: Reducer, k: int, rng: RangeState) -> float:
        # -inf first, +inf last; only finite values are ever binned
        if k < rng.neg_inf:
            return -np.inf
        if k >= rng.count - rng.pos_inf:
            return np.inf
        return self._select(reduce, k, rng.min, rng.max, rng.finite)

    def _select(self, reduce: Reducer, k: int, lo: float, hi: float, inside: int) -> float:
        while lo < hi and inside > self.collect_limit:
            st = self._pass(reduce, BinRefineAccumulator(lo, hi, self.bins, self.column))
            cum = st.below + np.cumsum(st.counts)
            j = int(np.searchsorted(cum, k, side="right"))
            lo, hi, inside = float(st.mins[j]), float(st.maxs[j]), int(st.counts[j])

        if lo == hi:
            return lo

        st = self._pass(reduce, CollectAccumulator(lo, hi, self.column))
        return float(st.values[k - st.below])

    def _pass(self, reduce: Reducer, acc: Accumulator) -> Any:
        self.passes += 1
        return acc.finalize(reduce(acc))


# ==================================================
# approximate: fixed-edge histogram
# ==================================================
class HistogramState(NamedTuple):
    below: int
    counts: np.ndarray
    above: int


class HistogramAccumulator(ColumnAccumulator[HistogramState, float]):
    """
    Histogram with `bins` equal-width bins over [lo, hi]. Values outside the
    range are counted in `below` / `above` so ranks stay correct; a median
    landing outside the range is clamped to the edge.
    """

    def __init__(self, lo: float, hi: float, bins: int, column: int | None = None):
        super().__init__(column)
        if bins < 1:
            raise InvalidArgument(f"bins must be >= 1, got {bins}")
        if not (np.isfinite(lo) and np.isfinite(hi)):
            raise InvalidArgument(f"histogram range [{lo}, {hi}] must be finite")
        if not lo <= hi:
            raise InvalidArgument(f"histogram range [{lo}, {hi}] is empty")
        self.lo, self.hi, self.bins = float(lo), float(hi), int(bins)

    @property
    def bin_width(self) -> float:
        return (self.hi - self.lo) / self.bins

    def initial_state(self) -> HistogramState:
        return HistogramState(0, np.zeros(self.bins, dtype=np.int64), 0)

    def absorb(self, state: HistogramState, chunk: np.ndarray) -> HistogramState:
        values = self.values(chunk)
        below = int(np.count_nonzero(values < self.lo))
        above = int(np.count_nonzero(values > self.hi))
        inside = values[(values >= self.lo) & (values <= self.hi)]
        counts = np.bincount(_bin_index(inside, self.lo, self.hi, self.bins), minlength=self.bins)
        return self.combine(state, HistogramState(below, counts, above))

    def combine(self, a: HistogramState, b: HistogramState) -> HistogramState:
        return HistogramState(a.below + b.below, a.counts + b.counts, a.above + b.above)

    def finalize(self, state: HistogramState) -> float:
        n = state.below + int(state.counts.sum()) + state.above
        if n == 0:
            raise EmptyInput("median of zero observations is undefined")

        target = n / 2.0
        if target <= state.below:
            return self.lo
        if target >= n - state.above:
            return self.hi
        if self.hi == self.lo:
            return self.lo

        cum = state.below + np.cumsum(state.counts)
        j = int(np.searchsorted(cum, target, side="left"))
        before = cum[j] - state.counts[j]
        frac = (target - before) / state.counts[j]
        return self.lo + (j + frac) * self.bin_width


class ApproxMedian:
    """
    Histogram median. Without `value_range` a RangeAccumulator pass finds
    the edges first; with it, one pass is enough.
    """

    def __init__(
        self,
        column: int | None = None,
        bins: int = 1024,
        value_range: Optional[tuple[float, float]] = None,
    ):
        if bins < 1:
            raise InvalidArgument(f"bins must be >= 1, got {bins}")
        self.column = column
        self.bins = bins
        self.value_range = value_range
        self.bin_width: Optional[float] = None

    def compute(self, reduce: Reducer) -> float:
        if self.value_range is None:
            rng = RangeAccumulator(self.column)
            st = rng.finalize(reduce(rng))
            if st.count / 2.0 <= st.neg_inf:
                return -np.inf
            if st.count / 2.0 >= st.count - st.pos_inf:
                return np.inf
            lo, hi = st.min, st.max
        else:
            lo, hi = self.value_range

        hist = HistogramAccumulator(lo, hi, self.bins, self.column)
        self.bin_width = hist.bin_width
        return hist.finalize(reduce(hist))
