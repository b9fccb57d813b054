# chunkstat/regression/givens.py
from __future__ import annotations

import math

import numpy as np


def rotate_row_into(R: np.ndarray, row: np.ndarray, start: int = 0) -> None:
    """
    Eliminate `row` into the upper-triangular `R` with Givens rotations,
    in place (rank-1 update of the Cholesky factor).

    `row` must be zero before column `start`. Diagonal entries stay
    non-negative: the rotated pivot is hypot(R[k, k], row[k]).
    O(m^2) for an m x m factor.
    """
    z = np.array(row, dtype=np.float64, copy=True)
    m = R.shape[0]

    for k in range(start, m):
        b = z[k]
        if b == 0.0:
            continue
        a = R[k, k]
        r = math.hypot(a, b)
        c, s = a / r, b / r

        rk = R[k, k:].copy()
        zk = z[k:]
        R[k, k:] = c * rk + s * zk
        z[k:] = c * zk - s * rk

        R[k, k] = r
        z[k] = 0.0


def retriangularize(Ra: np.ndarray, Rb: np.ndarray) -> np.ndarray:
    """
    Factor of the stacked matrix [Ra; Rb]: rotate every row of Rb into a
    copy of Ra. Equivalent to having absorbed both row sets, in any order.
    """
    if Ra.shape != Rb.shape:
        raise ValueError(f"factor shapes differ: {Ra.shape} vs {Rb.shape}")

    out = np.array(Ra, dtype=np.float64, copy=True)
    for i in range(Rb.shape[0]):
        if np.any(Rb[i, i:]):
            rotate_row_into(out, Rb[i], start=i)
    return out
