import numpy as np
import pytest

from panobundle.config import EvaluationConfig, RansacConfig
from panobundle.eval.trajectory import (
    RegistrationError,
    angular_errors_deg,
    evaluate_to_gt,
    trajectory_length,
)
from panobundle.sim.trajectory import synthetic_trajectory_pair


def test_trajectory_length_skips_first_and_last_segments():
    C = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [3.0, 0.0, 0.0], [6.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
    # Only the segments 1->2 and 2->3 are summed.
    assert trajectory_length(C) == 5.0
    assert trajectory_length(C[:3]) == 0.0
    assert trajectory_length(C[:1]) == 0.0


def test_angular_errors_are_zero_for_consistent_rotations():
    rng = np.random.default_rng(0)
    gt, computed, (_s, R, _t) = synthetic_trajectory_pair(rng, n_cameras=6)
    err = angular_errors_deg(gt.rotations, computed.rotations, R)
    assert err.shape == (6,)
    assert np.max(err) < 1e-5


def test_evaluate_exact_trajectory():
    rng = np.random.default_rng(1)
    gt, computed, (s, R, t) = synthetic_trajectory_pair(rng, n_cameras=15, scale=3.0)
    ev = evaluate_to_gt(gt.centers, computed.centers, gt.rotations, computed.rotations, np.random.default_rng(0))
    assert abs(ev.similarity.scale - s) < 1e-9
    assert np.max(np.abs(ev.similarity.rotation - R)) < 1e-9
    assert np.max(ev.baseline_errors) < 1e-9
    assert np.max(ev.angular_errors_deg) < 1e-5
    assert ev.baseline_stats.count == 15
    assert int(ev.baseline_histogram.counts.sum()) == 15
    assert np.max(np.abs(ev.registered_centers - gt.centers)) < 1e-9
    assert ev.trajectory_length == trajectory_length(gt.centers)


def test_evaluate_with_outliers_and_noise():
    rng = np.random.default_rng(2)
    gt, computed, _ = synthetic_trajectory_pair(rng, n_cameras=30, noise=1e-3, outliers=3, outlier_offset=5.0)
    cfg = EvaluationConfig(ransac=RansacConfig(inlier_threshold=0.05), histogram_bins=8)
    ev = evaluate_to_gt(gt.centers, computed.centers, gt.rotations, computed.rotations, np.random.default_rng(0), cfg)
    assert sorted(set(range(30)) - set(ev.similarity.inliers.tolist())) == [0, 1, 2]
    assert ev.baseline_histogram.counts.shape == (8,)
    assert np.all(ev.baseline_errors[:3] > 1.0)
    assert np.max(ev.baseline_errors[3:]) < 0.05
    d = ev.to_dict()
    assert set(d) == {"similarity", "trajectory_length", "baseline", "angular_deg"}
    assert len(d["baseline"]["errors"]) == 30


def test_evaluate_input_errors():
    rng = np.random.default_rng(3)
    gt, computed, _ = synthetic_trajectory_pair(rng, n_cameras=5)
    with pytest.raises(ValueError):
        evaluate_to_gt(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 3, 3)), np.zeros((0, 3, 3)), rng)
    with pytest.raises(ValueError):
        evaluate_to_gt(gt.centers, computed.centers[:4], gt.rotations, computed.rotations, rng)
    line = np.outer(np.arange(5.0), [1.0, 1.0, 0.0])
    with pytest.raises(RegistrationError):
        evaluate_to_gt(line, line, gt.rotations, computed.rotations, rng, EvaluationConfig(ransac=RansacConfig(max_iterations=10)))
