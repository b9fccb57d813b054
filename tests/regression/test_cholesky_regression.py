# tests/regression/test_cholesky_regression.py
import numpy as np
import pytest

from chunkstat.regression.engine import INTERCEPT, CholeskyRegression, LinearModelResult
from chunkstat.utils.errors import EmptyInput, InvalidArgument, SingularDesignError


def fit(model: CholeskyRegression, table: np.ndarray, n_chunks: int = 4) -> LinearModelResult:
    partials = [
        model.absorb(model.initial_state(), chunk)
        for chunk in np.array_split(table, n_chunks)
    ]
    state = model.initial_state()
    for p in partials:
        state = model.combine(state, p)
    return model.finalize(state)


@pytest.fixture
def noisy_table():
    rng = np.random.default_rng(42)
    n = 2_000
    x1 = rng.normal(size=n)
    x2 = rng.uniform(-5, 5, size=n)
    y = 1.5 - 2.0 * x1 + 0.25 * x2 + rng.normal(scale=0.1, size=n)
    return np.column_stack([x1, x2, y])


# ============================================================
# OLS
# ============================================================
def test_exact_line_is_recovered():
    x = np.arange(1.0, 101.0)
    table = np.column_stack([x, 2.0 + 3.0 * x])

    res = fit(CholeskyRegression([0], 1), table)

    assert res.intercept == pytest.approx(2.0, abs=1e-6)
    assert res.slopes[0] == pytest.approx(3.0, abs=1e-6)
    assert res.residual_sum_of_squares == pytest.approx(0.0, abs=1e-12)
    assert res.names == (INTERCEPT, "x0")
    assert res.n == 100


def test_matches_lstsq(noisy_table):
    X = np.column_stack([np.ones(len(noisy_table)), noisy_table[:, :2]])
    y = noisy_table[:, 2]
    beta, rss, *_ = np.linalg.lstsq(X, y, rcond=None)

    res = fit(CholeskyRegression([0, 1], 2, names=["a", "b"]), noisy_table)

    assert np.allclose(res.coefficients, beta, atol=1e-8)
    assert res.residual_sum_of_squares == pytest.approx(float(rss[0]), rel=1e-8)
    assert res.as_dict()["coefficients"]["a"] == pytest.approx(beta[1])


@pytest.mark.parametrize("n_chunks", [1, 3, 17, 2_000])
def test_partitioning_does_not_change_the_fit(noisy_table, n_chunks):
    base = fit(CholeskyRegression([0, 1], 2), noisy_table, 1)
    res = fit(CholeskyRegression([0, 1], 2), noisy_table, n_chunks)
    assert np.allclose(res.coefficients, base.coefficients, atol=1e-9)


def test_combine_order_does_not_matter(noisy_table):
    model = CholeskyRegression([0, 1], 2)
    a = model.absorb(model.initial_state(), noisy_table[:700])
    b = model.absorb(model.initial_state(), noisy_table[700:])

    ab = model.finalize(model.combine(a, b))
    ba = model.finalize(model.combine(b, a))
    assert np.allclose(ab.coefficients, ba.coefficients, atol=1e-10)


def test_predictor_order_follows_request(noisy_table):
    res = fit(CholeskyRegression([1, 0], 2), noisy_table)
    assert res.slopes[0] == pytest.approx(0.25, abs=0.01)
    assert res.slopes[1] == pytest.approx(-2.0, abs=0.01)


def test_predict(noisy_table):
    res = fit(CholeskyRegression([0, 1], 2), noisy_table)
    pred = res.predict(noisy_table[:5, :2])
    assert pred.shape == (5,)
    assert np.allclose(pred, res.intercept + noisy_table[:5, :2] @ res.slopes)

    with pytest.raises(InvalidArgument):
        res.predict(np.ones((2, 3)))


# ============================================================
# singular designs
# ============================================================
def test_collinear_predictor_is_named():
    x = np.arange(50.0)
    table = np.column_stack([x, 2.0 * x, x + 1.0])

    with pytest.raises(SingularDesignError) as exc:
        fit(CholeskyRegression([0, 1], 2, names=["x", "twice_x"]), table)
    assert exc.value.column == 1
    assert exc.value.name == "twice_x"


def test_constant_predictor_collides_with_intercept():
    x = np.full(30, 4.0)
    table = np.column_stack([x, np.arange(30.0)])

    with pytest.raises(SingularDesignError) as exc:
        fit(CholeskyRegression([0], 1), table)
    assert exc.value.column == -1
    assert exc.value.name == INTERCEPT


def test_all_zero_predictor():
    table = np.column_stack([np.zeros(10), np.arange(10.0)])
    with pytest.raises(SingularDesignError) as exc:
        fit(CholeskyRegression([0], 1), table)
    assert exc.value.column == 0


def test_ridge_resolves_collinearity():
    x = np.arange(50.0)
    table = np.column_stack([x, 2.0 * x, 3.0 * x + 1.0])
    res = fit(CholeskyRegression([0, 1], 2, ridge=1.0), table)
    assert np.all(np.isfinite(res.coefficients))


# ============================================================
# ridge
# ============================================================
def test_ridge_matches_closed_form(noisy_table):
    lam = 25.0
    n = len(noisy_table)
    Z = np.column_stack([noisy_table[:, :2], np.ones(n)])
    y = noisy_table[:, 2]
    D = np.diag([lam, lam, 0.0])
    beta_aug = np.linalg.solve(Z.T @ Z + D, Z.T @ y)

    res = fit(CholeskyRegression([0, 1], 2, ridge=lam), noisy_table, 5)

    assert res.intercept == pytest.approx(beta_aug[2], abs=1e-8)
    assert np.allclose(res.slopes, beta_aug[:2], atol=1e-8)
    expected_rss = float(np.sum((y - Z @ beta_aug) ** 2))
    assert res.residual_sum_of_squares == pytest.approx(expected_rss, rel=1e-8)
    assert res.ridge == lam


def test_ridge_independent_of_partition(noisy_table):
    a = fit(CholeskyRegression([0, 1], 2, ridge=3.0), noisy_table, 1)
    b = fit(CholeskyRegression([0, 1], 2, ridge=3.0), noisy_table, 9)
    assert np.allclose(a.coefficients, b.coefficients, atol=1e-9)


# ============================================================
# arguments
# ============================================================
@pytest.mark.parametrize(
    "args, kwargs",
    [
        (([], 1), {}),
        (([0, 0], 1), {}),
        (([0], 0), {}),
        (([0], 1), {"ridge": -1.0}),
        (([0], 1), {"tolerance": 0.0}),
        (([0], 1), {"names": ["a", "b"]}),
    ],
)
def test_invalid_model(args, kwargs):
    with pytest.raises(InvalidArgument):
        CholeskyRegression(*args, **kwargs)


def test_no_rows():
    model = CholeskyRegression([0], 1)
    with pytest.raises(EmptyInput):
        model.finalize(model.initial_state())


def test_non_finite_rows_rejected():
    model = CholeskyRegression([0], 1)
    with pytest.raises(InvalidArgument):
        model.absorb(model.initial_state(), np.array([[1.0, np.nan]]))
