from __future__ import annotations

import numpy as np


def check_product_shapes(A: np.ndarray, B: np.ndarray) -> tuple[int, int, int]:
    """Return (m, n, p) for the product of A (m,n) and B (n,p)."""
    A = np.asarray(A)
    B = np.asarray(B)
    if A.ndim != 2 or B.ndim != 2:
        raise ValueError("A and B must be 2D matrices")
    if A.shape[1] != B.shape[0]:
        raise ValueError(f"inner dimensions mismatch: {A.shape} x {B.shape}")
    return int(A.shape[0]), int(A.shape[1]), int(B.shape[1])


def jacobian_ab_wrt_a(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """
    Jacobian of C = A @ B with respect to A.

    Matrices are vectorized row-major (``M.reshape(-1)``), so that
    d vec(C) / d vec(A) = kron(I_m, B^T) with shape (m*p, m*n).
    """
    m, _n, _p = check_product_shapes(A, B)
    B = np.asarray(B, dtype=np.float64)
    return np.kron(np.eye(m, dtype=np.float64), B.T)


def jacobian_ab_wrt_b(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """
    Jacobian of C = A @ B with respect to B: kron(A, I_p), shape (m*p, n*p).
    """
    _m, _n, p = check_product_shapes(A, B)
    A = np.asarray(A, dtype=np.float64)
    return np.kron(A, np.eye(p, dtype=np.float64))


def jacobian_at_wrt_a(m: int, n: int) -> np.ndarray:
    """
    Jacobian of A^T with respect to A for A of shape (m,n).

    This is the (n*m, m*n) commutation matrix: entry (j*m + i, i*n + j) is 1.
    """
    m = int(m)
    n = int(n)
    if m <= 0 or n <= 0:
        raise ValueError("matrix dimensions must be > 0")
    J = np.zeros((n * m, m * n), dtype=np.float64)
    for i in range(m):
        for j in range(n):
            J[j * m + i, i * n + j] = 1.0
    return J
