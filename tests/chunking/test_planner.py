# tests/chunking/test_planner.py
import numpy as np
import pytest

from chunkstat.chunking.planner import Partition, plan
from chunkstat.chunking.types import ChunkRange
from chunkstat.utils.errors import InvalidArgument


def as_pairs(ranges):
    return [(r.start, r.end) for r in ranges]


def test_chunk_count_23_by_5():
    assert as_pairs(plan(23, chunk_count=5)) == [(0, 5), (5, 10), (10, 15), (15, 20), (20, 23)]


def test_chunk_size_last_range_shorter():
    assert as_pairs(plan(10, chunk_size=4)) == [(0, 4), (4, 8), (8, 10)]


def test_chunk_count_larger_than_length():
    assert as_pairs(plan(3, chunk_count=10)) == [(0, 1), (1, 2), (2, 3)]


def test_ceil_sizing_can_give_fewer_ranges():
    # ceil(10 / 4) = 3 → 4 ranges; ceil(10 / 6) = 2 → 5 ranges
    assert len(plan(10, chunk_count=4)) == 4
    assert as_pairs(plan(10, chunk_count=6)) == [(0, 2), (2, 4), (4, 6), (6, 8), (8, 10)]


def test_empty_length_gives_no_ranges():
    assert plan(0, chunk_count=3) == []
    assert plan(0, chunk_size=100) == []


@pytest.mark.parametrize("length", [1, 7, 100, 1_000_003])
@pytest.mark.parametrize("partition", [Partition(chunk_count=1), Partition(chunk_count=7), Partition(chunk_size=33)])
def test_ranges_cover_exactly_once_in_order(length, partition):
    ranges = plan(length, partition)

    assert ranges[0].start == 0
    assert ranges[-1].end == length
    for prev, cur in zip(ranges, ranges[1:]):
        assert prev.end == cur.start
    assert all(len(r) > 0 for r in ranges)
    assert sum(len(r) for r in ranges) == length


def test_plan_is_deterministic():
    assert plan(1234, chunk_count=9) == plan(1234, chunk_count=9)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"chunk_count": 0},
        {"chunk_size": 0},
        {"chunk_count": -2},
        {"chunk_count": 2.5},
        {"chunk_count": True},
        {},
        {"chunk_count": 2, "chunk_size": 3},
    ],
)
def test_invalid_partitions(kwargs):
    with pytest.raises(InvalidArgument):
        plan(10, **kwargs)


@pytest.mark.parametrize("length", [-1, 2.0, "10", None])
def test_invalid_length(length):
    with pytest.raises(InvalidArgument):
        plan(length, chunk_count=2)


def test_numpy_integers_are_accepted():
    assert len(plan(np.int64(10), chunk_count=np.int32(2))) == 2


def test_partition_parse():
    assert Partition.parse(4) == Partition(chunk_count=4)
    assert Partition.parse({"chunk_size": 8}) == Partition(chunk_size=8)
    p = Partition(chunk_size=3)
    assert Partition.parse(p) is p

    with pytest.raises(InvalidArgument):
        Partition.parse({"rows": 3})
    with pytest.raises(InvalidArgument):
        Partition.parse("4")


def test_partition_and_keywords_are_exclusive():
    with pytest.raises(InvalidArgument):
        plan(10, Partition(chunk_count=2), chunk_size=3)


def test_chunk_range_basics():
    r = ChunkRange(3, 8)
    assert len(r) == 5
    assert str(r) == "[3,8)"
    assert r.span(ChunkRange(8, 12)) == ChunkRange(3, 12)

    with pytest.raises(InvalidArgument):
        ChunkRange(5, 2)
    with pytest.raises(InvalidArgument):
        ChunkRange(-1, 2)
