#!filepath: tests/utils/test_error_taxonomy.py
import pytest

from chunkstat.chunking.types import ChunkRange
from chunkstat.utils.errors import (
    ChunkProcessingError,
    ChunkStatError,
    EmptyInput,
    InvalidArgument,
    RangeOutOfBounds,
    ShapeMismatch,
    SingularDesignError,
)


@pytest.mark.parametrize(
    "err, builtin",
    [
        (InvalidArgument("x"), ValueError),
        (ShapeMismatch("x"), ValueError),
        (EmptyInput("x"), ValueError),
        (RangeOutOfBounds(ChunkRange(0, 5), (3,)), IndexError),
    ],
)
def test_errors_are_also_builtin_types(err, builtin):
    assert isinstance(err, ChunkStatError)
    assert isinstance(err, builtin)


def test_chunk_processing_error_carries_range_and_cause():
    cause = ZeroDivisionError("boom")
    err = ChunkProcessingError(ChunkRange(10, 20), cause)
    assert err.range == ChunkRange(10, 20)
    assert err.cause is cause
    assert "[10,20)" in str(err)


def test_singular_design_error_message():
    err = SingularDesignError(column=3, name="volume", pivot=1e-17)
    assert err.column == 3
    assert "volume" in str(err)
