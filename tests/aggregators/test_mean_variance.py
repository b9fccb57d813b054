# tests/aggregators/test_mean_variance.py
import math

import numpy as np
import pytest

from chunkstat.aggregators.mean import MeanAccumulator, MeanState
from chunkstat.aggregators.variance import (
    MomentState,
    StdAccumulator,
    VarianceAccumulator,
    merge_moments,
)
from chunkstat.utils.errors import EmptyInput, InvalidArgument


def fold(acc, chunks):
    state = acc.initial_state()
    for c in chunks:
        state = acc.combine(state, acc.absorb(acc.initial_state(), np.asarray(c, dtype=np.float64)))
    return acc.finalize(state)


# ============================================================
# mean
# ============================================================
def test_mean_absorb_and_combine():
    acc = MeanAccumulator()
    a = acc.absorb(acc.initial_state(), np.array([1.0, 2.0]))
    b = acc.absorb(acc.initial_state(), np.array([3.0]))

    assert a == MeanState(3.0, 2)
    assert acc.combine(a, b) == MeanState(6.0, 3)
    assert acc.finalize(acc.combine(a, b)) == 2.0


def test_mean_combine_is_order_free():
    acc = MeanAccumulator()
    parts = [acc.absorb(acc.initial_state(), np.array(c, dtype=float)) for c in ([1, 2], [3], [4, 5, 6])]

    left = acc.combine(acc.combine(parts[0], parts[1]), parts[2])
    right = acc.combine(parts[2], acc.combine(parts[1], parts[0]))
    assert left == right


def test_mean_of_nothing():
    acc = MeanAccumulator()
    with pytest.raises(EmptyInput):
        acc.finalize(acc.initial_state())


def test_mean_selects_column_of_2d_chunk():
    acc = MeanAccumulator(column=1)
    chunk = np.array([[1.0, 10.0], [2.0, 20.0]])
    assert acc.finalize(acc.absorb(acc.initial_state(), chunk)) == 15.0


def test_2d_chunk_without_column():
    acc = MeanAccumulator()
    with pytest.raises(InvalidArgument):
        acc.absorb(acc.initial_state(), np.ones((2, 2)))


def test_integer_chunks_are_promoted():
    acc = MeanAccumulator()
    big = np.array([2**31 - 1, 2**31 - 1], dtype=np.int32)
    assert acc.finalize(acc.absorb(acc.initial_state(), big)) == 2**31 - 1


# ============================================================
# variance
# ============================================================
def test_merge_moments_with_empty_side():
    a = MomentState(3, 2.0, 2.0)
    empty = MomentState(0, 0.0, 0.0)
    assert merge_moments(a, empty) == a
    assert merge_moments(empty, a) == a


def test_variance_matches_numpy_for_any_split():
    rng = np.random.default_rng(7)
    data = rng.normal(50.0, 3.0, size=1_001)

    for n_chunks in (1, 2, 7, 1_001):
        chunks = np.array_split(data, n_chunks)
        assert fold(VarianceAccumulator(), chunks) == pytest.approx(np.var(data, ddof=1), rel=1e-12)
        assert fold(VarianceAccumulator(ddof=0), chunks) == pytest.approx(np.var(data), rel=1e-12)


def test_variance_is_shift_stable():
    # large offset: naive sum-of-squares would lose every significant digit
    data = 1e9 + np.array([4.0, 7.0, 13.0, 16.0])
    assert fold(VarianceAccumulator(), [data[:1], data[1:3], data[3:]]) == pytest.approx(30.0)


def test_empty_chunks_do_not_disturb_state():
    acc = VarianceAccumulator()
    st = acc.absorb(acc.initial_state(), np.array([1.0, 3.0]))
    assert acc.absorb(st, np.array([])) == st


def test_variance_needs_more_than_ddof_values():
    acc = VarianceAccumulator()
    one = acc.absorb(acc.initial_state(), np.array([5.0]))
    with pytest.raises(EmptyInput):
        acc.finalize(one)

    assert VarianceAccumulator(ddof=0).finalize(one) == 0.0


def test_negative_ddof():
    with pytest.raises(InvalidArgument):
        VarianceAccumulator(ddof=-1)


def test_std_is_sqrt_variance():
    data = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
    assert fold(StdAccumulator(ddof=0), [data[:3], data[3:]]) == pytest.approx(2.0)
    assert fold(StdAccumulator(), [data]) == pytest.approx(math.sqrt(32.0 / 7.0))


def test_nan_rejected():
    acc = VarianceAccumulator()
    with pytest.raises(InvalidArgument):
        acc.absorb(acc.initial_state(), np.array([1.0, np.nan]))
