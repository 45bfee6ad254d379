from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from panobundle.config import RansacConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityResult:
    """
    Similarity transform y ~ scale * R @ x + t mapping computed points x onto
    ground-truth points y.
    """

    scale: float
    rotation: np.ndarray  # (3,3)
    translation: np.ndarray  # (3,)
    inliers: np.ndarray  # (M,) sorted indices
    transformed: np.ndarray  # (N,3) registered computed points
    threshold: float

    def apply(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return self.scale * (pts @ self.rotation.T) + self.translation.reshape(1, 3)

    def to_dict(self) -> dict[str, object]:
        return {
            "scale": float(self.scale),
            "R": np.asarray(self.rotation, dtype=np.float64).tolist(),
            "t": np.asarray(self.translation, dtype=np.float64).reshape(3).tolist(),
            "inliers": [int(i) for i in self.inliers.tolist()],
            "threshold": float(self.threshold),
        }


def umeyama_similarity(X_src: np.ndarray, X_dst: np.ndarray) -> tuple[float, np.ndarray, np.ndarray] | None:
    """
    Similarity transform aligning X_src to X_dst (Umeyama, least squares).
    Returns (s, R, t) such that s*R*X_src + t approximates X_dst, or None
    when the input is degenerate (fewer than 3 points, no spread, collinear
    points, or a non-finite solution).
    """
    X_src = np.asarray(X_src, dtype=np.float64).reshape(-1, 3)
    X_dst = np.asarray(X_dst, dtype=np.float64).reshape(-1, 3)
    if X_src.shape != X_dst.shape or X_src.shape[0] < 3:
        return None
    if not (np.all(np.isfinite(X_src)) and np.all(np.isfinite(X_dst))):
        return None

    mu_x = np.mean(X_src, axis=0)
    mu_y = np.mean(X_dst, axis=0)
    Xc = X_src - mu_x
    Yc = X_dst - mu_y
    var_x = float(np.mean(np.sum(Xc * Xc, axis=1)))
    var_y = float(np.mean(np.sum(Yc * Yc, axis=1)))
    if var_x <= 1e-18 or var_y <= 1e-18:
        return None

    # Collinear source points have a vanishing second singular value.
    sv_src = np.linalg.svd(Xc, compute_uv=False)
    if sv_src[1] <= 1e-9 * sv_src[0]:
        return None

    cov = (Yc.T @ Xc) / float(X_src.shape[0])
    U, D, Vt = np.linalg.svd(cov)
    if D[1] <= 1e-12 * max(D[0], 1e-300):
        return None
    S = np.eye(3, dtype=np.float64)
    if np.linalg.det(U) * np.linalg.det(Vt) < 0:
        S[2, 2] = -1.0
    R = U @ S @ Vt
    s = float(np.trace(np.diag(D) @ S) / var_x)
    t = mu_y - s * (R @ mu_x)
    if not (np.isfinite(s) and s > 0.0 and np.all(np.isfinite(R)) and np.all(np.isfinite(t))):
        return None
    return s, R, t


def _residuals(X: np.ndarray, Y: np.ndarray, s: float, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    return np.linalg.norm(s * (X @ R.T) + t.reshape(1, 3) - Y, axis=1)


def auto_inlier_threshold(ground_truth: np.ndarray, ratio: float) -> float:
    Y = np.asarray(ground_truth, dtype=np.float64).reshape(-1, 3)
    spread = float(np.sqrt(np.mean(np.sum((Y - Y.mean(axis=0)) ** 2, axis=1))))
    return float(ratio) * spread


def compute_similarity(
    computed: np.ndarray,
    ground_truth: np.ndarray,
    rng: np.random.Generator,
    config: RansacConfig | None = None,
) -> SimilarityResult | None:
    """
    Robust similarity registration of `computed` onto `ground_truth` (paired by index).

    RANSAC over minimal Umeyama samples: the hypothesis with the most inliers
    wins, ties go to the smaller summed inlier residual, then to the earlier
    iteration. Degenerate samples are skipped. With `config.refine`, the
    transform is re-estimated on all inliers and kept if it does not lose any.

    Returns None (and logs why) when the point sets differ in length, are too
    small, or no hypothesis gathers `min_sample_size` inliers.
    """
    if config is None:
        config = RansacConfig()
    X = np.asarray(computed, dtype=np.float64)
    Y = np.asarray(ground_truth, dtype=np.float64)
    if X.shape[0] != Y.shape[0]:
        logger.error("Cannot perform registration, point sets have different sizes (%d vs %d)", X.shape[0], Y.shape[0])
        return None
    X = X.reshape(-1, 3)
    Y = Y.reshape(-1, 3)
    n = int(X.shape[0])
    k = int(config.min_sample_size)
    if n < k:
        logger.error("Cannot perform registration, need at least %d points (got %d)", k, n)
        return None

    if config.inlier_threshold is not None:
        threshold = float(config.inlier_threshold)
    else:
        threshold = auto_inlier_threshold(Y, config.auto_threshold_ratio)
    if not np.isfinite(threshold) or threshold <= 0.0:
        logger.error("Cannot perform registration, invalid inlier threshold %r", threshold)
        return None

    best: tuple[int, float, float, np.ndarray, np.ndarray, np.ndarray] | None = None
    n_degenerate = 0
    for _ in range(int(config.max_iterations)):
        idx = rng.choice(n, size=k, replace=False)
        sol = umeyama_similarity(X[idx], Y[idx])
        if sol is None:
            n_degenerate += 1
            continue
        s, R, t = sol
        res = _residuals(X, Y, s, R, t)
        mask = res <= threshold
        count = int(np.count_nonzero(mask))
        total = float(np.sum(res[mask]))
        if best is None or count > best[0] or (count == best[0] and total < best[1]):
            best = (count, total, s, R, t, mask)
        if count == n:
            break

    if n_degenerate:
        logger.debug("skipped %d degenerate RANSAC samples", n_degenerate)
    if best is None or best[0] < k:
        logger.error("Cannot perform registration, no consistent similarity hypothesis found")
        return None

    count, total, s, R, t, mask = best
    if config.refine:
        sol = umeyama_similarity(X[mask], Y[mask])
        if sol is not None:
            s2, R2, t2 = sol
            res2 = _residuals(X, Y, s2, R2, t2)
            mask2 = res2 <= threshold
            if int(np.count_nonzero(mask2)) >= count:
                s, R, t, mask = s2, R2, t2, mask2

    transformed = s * (X @ R.T) + t.reshape(1, 3)
    logger.debug("similarity: %d/%d inliers (threshold %.6g)", int(np.count_nonzero(mask)), n, threshold)
    return SimilarityResult(
        scale=float(s),
        rotation=R,
        translation=np.asarray(t, dtype=np.float64).reshape(3),
        inliers=np.flatnonzero(mask).astype(np.int64),
        transformed=transformed,
        threshold=threshold,
    )
