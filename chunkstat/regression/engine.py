#!filepath: chunkstat/regression/engine.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence

import numpy as np
from scipy.linalg import solve_triangular

from chunkstat.aggregators.base import Accumulator
from chunkstat.regression.givens import retriangularize, rotate_row_into
from chunkstat.utils.errors import EmptyInput, InvalidArgument, SingularDesignError

INTERCEPT = "intercept"


class RegressionState(NamedTuple):
    R: np.ndarray  # (p + 2) x (p + 2) upper triangular
    n: int


@dataclass(frozen=True)
class LinearModelResult:
    """
    Ordinary least squares fit of y = b0 + X b.

    coefficients[0] is the intercept, then one entry per predictor in the
    order they were requested (`names` follows the same order).
    """

    coefficients: np.ndarray
    names: tuple[str, ...]
    residual_sum_of_squares: float
    n: int
    ridge: float = 0.0

    @property
    def intercept(self) -> float:
        return float(self.coefficients[0])

    @property
    def slopes(self) -> np.ndarray:
        return self.coefficients[1:]

    def predict(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if X.shape[1] != len(self.coefficients) - 1:
            raise InvalidArgument(
                f"expected {len(self.coefficients) - 1} predictor columns, got {X.shape[1]}"
            )
        return self.intercept + X @ self.slopes

    def as_dict(self) -> dict:
        return {
            "coefficients": dict(zip(self.names, map(float, self.coefficients))),
            "residual_sum_of_squares": self.residual_sum_of_squares,
            "n": self.n,
            "ridge": self.ridge,
        }


class CholeskyRegression(Accumulator[RegressionState, LinearModelResult]):
    """
    CholeskyRegression (incremental least squares)

    ======================================
    State
    ======================================
    R : upper-triangular factor of order p + 2 over the augmented columns
        [x_1 .. x_p, 1, y], so that R^T R == Z^T Z. X^T X is never formed.

    ======================================
    Operations
    ======================================
    absorb   : each row (x, 1, y) is rotated into R, O(p^2) per row
    combine  : stack R_a over R_b and re-triangularize
    finalize : back-substitute the leading (p+1) block against column p+1;
               RSS = R[p+1, p+1]^2

    Ridge (lambda > 0) is added at finalize by rotating sqrt(lambda) * e_j
    for every predictor j into a copy of R; the intercept is not penalized.
    Adding it to the initial state instead would count it once per partial.
    """

    def __init__(
        self,
        predictors: Sequence[int],
        response: int,
        *,
        ridge: float = 0.0,
        tolerance: float = 1e-10,
        names: Optional[Sequence[str]] = None,
    ):
        predictors = [int(c) for c in predictors]
        if not predictors:
            raise InvalidArgument("at least one predictor column is required")
        if len(set(predictors)) != len(predictors):
            raise InvalidArgument(f"duplicate predictor columns: {predictors}")
        if int(response) in predictors:
            raise InvalidArgument(f"response column {response} is also a predictor")
        if ridge < 0:
            raise InvalidArgument(f"ridge must be >= 0, got {ridge}")
        if tolerance <= 0:
            raise InvalidArgument(f"tolerance must be > 0, got {tolerance}")

        self.predictors = predictors
        self.response = int(response)
        self.ridge = float(ridge)
        self.tolerance = float(tolerance)
        self.p = len(predictors)
        self.order = self.p + 2

        if names is None:
            names = [f"x{c}" for c in predictors]
        if len(names) != self.p:
            raise InvalidArgument(f"{len(names)} names for {self.p} predictors")
        self.names = tuple(names)

    # --------------------------------------------------
    def initial_state(self) -> RegressionState:
        return RegressionState(np.zeros((self.order, self.order)), 0)

    def augmented_rows(self, chunk: np.ndarray) -> np.ndarray:
        arr = np.asarray(chunk)
        if arr.ndim != 2:
            raise InvalidArgument(f"regression needs 2-D chunks, got ndim={arr.ndim}")

        Z = np.empty((arr.shape[0], self.order), dtype=np.float64)
        Z[:, :self.p] = arr[:, self.predictors]
        Z[:, self.p] = 1.0
        Z[:, self.p + 1] = arr[:, self.response]
        if not np.isfinite(Z).all():
            raise InvalidArgument("regression input contains NaN or infinite values")
        return Z

    def absorb(self, state: RegressionState, chunk: np.ndarray) -> RegressionState:
        Z = self.augmented_rows(chunk)
        R = state.R.copy()
        for row in Z:
            rotate_row_into(R, row)
        return RegressionState(R, state.n + Z.shape[0])

    def combine(self, a: RegressionState, b: RegressionState) -> RegressionState:
        if a.n == 0:
            return b
        if b.n == 0:
            return a
        return RegressionState(retriangularize(a.R, b.R), a.n + b.n)

    def finalize(self, state: RegressionState) -> LinearModelResult:
        if state.n == 0:
            raise EmptyInput("cannot fit a linear model to zero rows")

        q = self.p + 1
        R = state.R.copy()
        for j in range(self.p if self.ridge > 0 else 0):
            penalty = np.zeros(self.order)
            penalty[j] = math.sqrt(self.ridge)
            rotate_row_into(R, penalty, start=j)

        self._check_pivots(R[:q, :q])

        beta_aug = solve_triangular(R[:q, :q], R[:q, q], lower=False)

        if self.ridge > 0:
            # ||Z [b; -1]||^2 on the unpenalized factor
            rss = float(np.sum(np.square(state.R @ np.append(beta_aug, -1.0))))
        else:
            rss = float(R[q, q] ** 2)

        coefficients = np.concatenate([[beta_aug[self.p]], beta_aug[:self.p]])
        return LinearModelResult(
            coefficients=coefficients,
            names=(INTERCEPT,) + self.names,
            residual_sum_of_squares=rss,
            n=state.n,
            ridge=self.ridge,
        )

    def _check_pivots(self, Rq: np.ndarray) -> None:
        """
        Pivot j is compared with the norm of column j of the factor, i.e. the
        norm of the j-th design column. A pivot below tolerance * norm means
        the column is (numerically) a combination of the earlier ones.
        """
        for j in range(Rq.shape[0]):
            pivot = abs(Rq[j, j])
            scale = float(np.linalg.norm(Rq[:j + 1, j]))
            if pivot <= self.tolerance * scale or scale == 0.0:
                name = self.names[j] if j < self.p else INTERCEPT
                column = self.predictors[j] if j < self.p else -1
                raise SingularDesignError(column=column, name=name, pivot=pivot)
