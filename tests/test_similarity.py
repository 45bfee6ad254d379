import numpy as np

from panobundle.config import RansacConfig
from panobundle.core.geometry import rotation_xyz
from panobundle.registration import similarity
from panobundle.registration.similarity import (
    auto_inlier_threshold,
    compute_similarity,
    umeyama_similarity,
)


def _points(rng: np.random.Generator, n: int = 30) -> np.ndarray:
    return rng.uniform(-5.0, 5.0, size=(n, 3))


def test_umeyama_recovers_known_similarity():
    rng = np.random.default_rng(0)
    X = _points(rng)
    R = rotation_xyz(0.3, -0.5, 1.2)
    t = np.array([4.0, -1.0, 2.5])
    Y = 2.5 * X @ R.T + t
    s_est, R_est, t_est = umeyama_similarity(X, Y)
    assert abs(s_est - 2.5) < 1e-10
    assert np.max(np.abs(R_est - R)) < 1e-10
    assert np.max(np.abs(t_est - t)) < 1e-9
    assert abs(np.linalg.det(R_est) - 1.0) < 1e-12


def test_umeyama_degenerate_inputs():
    assert umeyama_similarity(np.zeros((2, 3)), np.zeros((2, 3))) is None
    same = np.ones((5, 3))
    assert umeyama_similarity(same, same) is None
    line = np.outer(np.arange(5.0), [1.0, 2.0, 3.0])
    assert umeyama_similarity(line, line) is None
    pts = np.eye(3)
    bad = pts.copy()
    bad[0, 0] = np.nan
    assert umeyama_similarity(pts, bad) is None


def test_identity_registration():
    rng = np.random.default_rng(1)
    X = _points(rng, 10)
    sim = compute_similarity(X, X, rng)
    assert sim is not None
    assert abs(sim.scale - 1.0) < 1e-10
    assert np.max(np.abs(sim.rotation - np.eye(3))) < 1e-10
    assert np.max(np.abs(sim.translation)) < 1e-9
    assert sim.inliers.tolist() == list(range(10))
    assert np.max(np.abs(sim.transformed - X)) < 1e-9


def test_known_similarity_with_outliers():
    rng = np.random.default_rng(2)
    X = _points(rng, 40)
    R = rotation_xyz(-0.7, 0.2, 0.4)
    t = np.array([-3.0, 10.0, 1.0])
    Y = 0.5 * X @ R.T + t
    outliers = [3, 17, 25]
    Y_noisy = Y.copy()
    Y_noisy[outliers] += np.array([5.0, -4.0, 6.0])

    cfg = RansacConfig(inlier_threshold=0.01)
    sim = compute_similarity(X, Y_noisy, np.random.default_rng(0), cfg)
    assert sim is not None
    assert sorted(set(range(40)) - set(sim.inliers.tolist())) == outliers
    assert abs(sim.scale - 0.5) < 1e-9
    assert np.max(np.abs(sim.rotation - R)) < 1e-9
    assert np.max(np.abs(sim.apply(X) - Y)) < 1e-8
    assert sim.threshold == 0.01


def test_seeded_registration_is_deterministic():
    rng = np.random.default_rng(3)
    X = _points(rng, 25)
    Y = X @ rotation_xyz(0.1, 0.2, 0.3).T + rng.normal(scale=0.05, size=X.shape)
    a = compute_similarity(X, Y, np.random.default_rng(42))
    b = compute_similarity(X, Y, np.random.default_rng(42))
    assert a is not None and b is not None
    assert np.array_equal(a.rotation, b.rotation)
    assert np.array_equal(a.inliers, b.inliers)
    assert a.scale == b.scale


def test_registration_failures_return_none():
    rng = np.random.default_rng(4)
    X = _points(rng, 10)
    assert compute_similarity(X, X[:9], rng) is None
    assert compute_similarity(X[:2], X[:2], rng) is None
    line = np.outer(np.arange(10.0), [1.0, 0.0, 0.0])
    assert compute_similarity(line, line, rng, RansacConfig(max_iterations=20)) is None


def test_auto_threshold_scales_with_spread():
    Y = np.array([[1.0, 0.0, 0.0], [-1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, -1.0, 0.0]])
    assert abs(auto_inlier_threshold(Y, 0.1) - 0.1) < 1e-15
    assert abs(auto_inlier_threshold(3.0 * Y, 0.1) - 0.3) < 1e-15


def _axis_points() -> tuple[np.ndarray, np.ndarray]:
    # Six unit points on the axes plus one gross outlier.
    X = np.vstack([np.eye(3), -np.eye(3), [[10.0, 10.0, 10.0]]])
    Y = X.copy()
    Y[6] = [100.0, 0.0, 0.0]
    return X, Y


def _scripted_hypotheses(monkeypatch, rotations):
    hypotheses = iter([(1.0, R, np.zeros(3)) for R in rotations])
    monkeypatch.setattr(similarity, "umeyama_similarity", lambda X_src, X_dst: next(hypotheses))


def test_equal_inlier_count_prefers_smaller_residual(monkeypatch):
    X, Y = _axis_points()
    flip_z = np.diag([-1.0, -1.0, 1.0])
    _scripted_hypotheses(monkeypatch, [flip_z, np.eye(3)])
    cfg = RansacConfig(max_iterations=2, inlier_threshold=3.0, refine=False)
    sim = compute_similarity(X, Y, np.random.default_rng(0), cfg)
    assert sim is not None
    # Both hypotheses keep the six axis points; the identity has zero residual.
    assert sim.inliers.tolist() == [0, 1, 2, 3, 4, 5]
    assert np.array_equal(sim.rotation, np.eye(3))


def test_equal_inlier_count_and_residual_keeps_first_hypothesis(monkeypatch):
    X, Y = _axis_points()
    flip_z = np.diag([-1.0, -1.0, 1.0])
    flip_x = np.diag([1.0, -1.0, -1.0])
    cfg = RansacConfig(max_iterations=2, inlier_threshold=3.0, refine=False)

    # Both flips leave two axis points fixed and move four by 2: same count, same total.
    _scripted_hypotheses(monkeypatch, [flip_x, flip_z])
    sim = compute_similarity(X, Y, np.random.default_rng(0), cfg)
    assert sim is not None
    assert np.array_equal(sim.rotation, flip_x)

    _scripted_hypotheses(monkeypatch, [flip_z, flip_x])
    sim = compute_similarity(X, Y, np.random.default_rng(0), cfg)
    assert sim is not None
    assert np.array_equal(sim.rotation, flip_z)
