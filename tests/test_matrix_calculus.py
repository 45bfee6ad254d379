import numpy as np
import pytest

from panobundle.core.matrix_calculus import (
    check_product_shapes,
    jacobian_ab_wrt_a,
    jacobian_ab_wrt_b,
    jacobian_at_wrt_a,
)


def _numeric(f, X: np.ndarray, h: float = 1e-6) -> np.ndarray:
    y0 = f(X).reshape(-1)
    J = np.zeros((y0.size, X.size), dtype=np.float64)
    for c in range(X.size):
        Xp = X.copy().reshape(-1)
        Xm = X.copy().reshape(-1)
        Xp[c] += h
        Xm[c] -= h
        J[:, c] = (f(Xp.reshape(X.shape)).reshape(-1) - f(Xm.reshape(X.shape)).reshape(-1)) / (2.0 * h)
    return J


def test_product_jacobians_match_finite_differences():
    rng = np.random.default_rng(0)
    A = rng.normal(size=(2, 3))
    B = rng.normal(size=(3, 4))

    J_a = jacobian_ab_wrt_a(A, B)
    J_b = jacobian_ab_wrt_b(A, B)
    assert J_a.shape == (8, 6)
    assert J_b.shape == (8, 12)
    assert np.max(np.abs(J_a - _numeric(lambda X: X @ B, A))) < 1e-8
    assert np.max(np.abs(J_b - _numeric(lambda X: A @ X, B))) < 1e-8


def test_transpose_jacobian_is_commutation_matrix():
    rng = np.random.default_rng(1)
    A = rng.normal(size=(2, 3))
    J = jacobian_at_wrt_a(2, 3)
    assert J.shape == (6, 6)
    assert np.array_equal(J @ A.reshape(-1), A.T.reshape(-1))
    assert np.max(np.abs(J - _numeric(lambda X: X.T, A))) < 1e-8
    # A permutation: each row and column holds a single one.
    assert np.array_equal(J.sum(axis=0), np.ones(6))
    assert np.array_equal(J.sum(axis=1), np.ones(6))


def test_square_transpose_jacobian_is_involution():
    J = jacobian_at_wrt_a(3, 3)
    assert np.array_equal(J @ J, np.eye(9))


def test_shape_errors():
    with pytest.raises(ValueError):
        check_product_shapes(np.zeros((2, 3)), np.zeros((2, 3)))
    with pytest.raises(ValueError):
        jacobian_ab_wrt_a(np.zeros(3), np.zeros((3, 1)))
    with pytest.raises(ValueError):
        jacobian_at_wrt_a(0, 3)
