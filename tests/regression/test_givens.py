# tests/regression/test_givens.py
import numpy as np
import pytest

from chunkstat.regression.givens import retriangularize, rotate_row_into


def factor_of(rows: np.ndarray) -> np.ndarray:
    R = np.zeros((rows.shape[1], rows.shape[1]))
    for row in rows:
        rotate_row_into(R, row)
    return R


def test_factor_reproduces_gram_matrix():
    Z = np.random.default_rng(0).normal(size=(50, 4))
    R = factor_of(Z)

    assert np.allclose(np.triu(R), R)
    assert np.allclose(R.T @ R, Z.T @ Z)


def test_diagonal_is_non_negative():
    Z = -np.abs(np.random.default_rng(1).normal(size=(20, 3)))
    R = factor_of(Z)
    assert np.all(np.diag(R) >= 0)


def test_row_is_not_modified():
    row = np.array([1.0, 2.0, 3.0])
    R = np.zeros((3, 3))
    rotate_row_into(R, row)
    assert row.tolist() == [1.0, 2.0, 3.0]


def test_zero_row_is_a_no_op():
    R = factor_of(np.eye(3))
    before = R.copy()
    rotate_row_into(R, np.zeros(3))
    assert np.array_equal(R, before)


def test_start_skips_leading_columns():
    R = factor_of(np.eye(3))
    rotate_row_into(R, np.array([0.0, 3.0, 0.0]), start=1)
    assert R[1, 1] == pytest.approx(np.hypot(1.0, 3.0))
    assert R[0, 0] == 1.0


def test_retriangularize_equals_single_pass():
    Z = np.random.default_rng(2).normal(size=(40, 5))
    whole = factor_of(Z)
    merged = retriangularize(factor_of(Z[:13]), factor_of(Z[13:]))

    assert np.allclose(merged.T @ merged, whole.T @ whole)
    assert np.allclose(np.abs(merged), np.abs(whole))


def test_retriangularize_shape_mismatch():
    with pytest.raises(ValueError):
        retriangularize(np.zeros((2, 2)), np.zeros((3, 3)))
