from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from panobundle.config import EvaluationConfig
from panobundle.core.geometry import radian_to_degree, rotation_magnitude
from panobundle.eval.stats import BoxStats, Histogram, box_stats, histogram
from panobundle.registration.similarity import SimilarityResult, compute_similarity

logger = logging.getLogger(__name__)


class RegistrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class TrajectoryEvaluation:
    """
    Comparison of an estimated camera trajectory with ground truth after a
    global similarity registration.

    - `baseline_errors`: camera center distance to GT (GT units)
    - `angular_errors_deg`: rotation residual per camera (degrees)
    """

    similarity: SimilarityResult
    baseline_errors: np.ndarray  # (N,)
    angular_errors_deg: np.ndarray  # (N,)
    baseline_stats: BoxStats
    angular_stats: BoxStats
    baseline_histogram: Histogram
    angular_histogram: Histogram
    trajectory_length: float

    @property
    def registered_centers(self) -> np.ndarray:
        return self.similarity.transformed

    def to_dict(self) -> dict[str, object]:
        return {
            "similarity": self.similarity.to_dict(),
            "trajectory_length": float(self.trajectory_length),
            "baseline": {
                "errors": [float(v) for v in self.baseline_errors.tolist()],
                "stats": self.baseline_stats.to_dict(),
                "histogram": self.baseline_histogram.to_dict(),
            },
            "angular_deg": {
                "errors": [float(v) for v in self.angular_errors_deg.tolist()],
                "stats": self.angular_stats.to_dict(),
                "histogram": self.angular_histogram.to_dict(),
            },
        }


def trajectory_length(centers: np.ndarray) -> float:
    """
    Sum of consecutive center-to-center distances for 0 < i < n - 2.

    The first segment and the last segment are left out.
    """
    C = np.asarray(centers, dtype=np.float64).reshape(-1, 3)
    n = int(C.shape[0])
    length = 0.0
    for i in range(1, n - 2):
        length += float(np.linalg.norm(C[i] - C[i + 1]))
    return length


def angular_errors_deg(
    rotations_gt: np.ndarray,
    rotations_computed: np.ndarray,
    R_transform: np.ndarray,
) -> np.ndarray:
    R_gt = np.asarray(rotations_gt, dtype=np.float64).reshape(-1, 3, 3)
    R_c = np.asarray(rotations_computed, dtype=np.float64).reshape(-1, 3, 3)
    R_transform = np.asarray(R_transform, dtype=np.float64).reshape(3, 3)
    if R_gt.shape[0] != R_c.shape[0]:
        raise ValueError("rotation sequences must have the same length")
    out = np.empty((R_gt.shape[0],), dtype=np.float64)
    for i in range(R_gt.shape[0]):
        R2 = R_c[i] @ R_transform.T
        out[i] = radian_to_degree(rotation_magnitude(R_gt[i] @ R2.T))
    return out


def evaluate_to_gt(
    centers_gt: np.ndarray,
    centers_computed: np.ndarray,
    rotations_gt: np.ndarray,
    rotations_computed: np.ndarray,
    rng: np.random.Generator,
    config: EvaluationConfig | None = None,
) -> TrajectoryEvaluation:
    """
    Register the computed camera centers onto GT with a robust similarity,
    then measure per-camera position and rotation residuals.
    """
    if config is None:
        config = EvaluationConfig()
    C_gt = np.asarray(centers_gt, dtype=np.float64).reshape(-1, 3)
    C_c = np.asarray(centers_computed, dtype=np.float64).reshape(-1, 3)
    R_gt = np.asarray(rotations_gt, dtype=np.float64).reshape(-1, 3, 3)
    R_c = np.asarray(rotations_computed, dtype=np.float64).reshape(-1, 3, 3)
    n = int(C_gt.shape[0])
    if n == 0:
        raise ValueError("trajectories are empty")
    if not (C_c.shape[0] == n and R_gt.shape[0] == n and R_c.shape[0] == n):
        raise ValueError("camera centers and rotations must have the same length for GT and computed trajectories")

    sim = compute_similarity(C_c, C_gt, rng, config.ransac)
    if sim is None:
        raise RegistrationError("could not estimate a similarity between the computed and GT trajectories")

    logger.info(
        "Estimated similarity transformation between the sequences\nR\n%s\nt\n%s\nscale\n%.6g",
        np.array2string(sim.rotation, precision=6),
        np.array2string(sim.translation, precision=6),
        sim.scale,
    )

    baseline = np.linalg.norm(C_gt - sim.transformed, axis=1)
    length = trajectory_length(C_gt)
    logger.info("Trajectory length: %.6g", length)

    angular = angular_errors_deg(R_gt, R_c, sim.rotation)

    stats_baseline = box_stats(baseline)
    stats_angular = box_stats(angular)
    logger.info("Baseline error statistics:\n%s", stats_baseline)
    logger.info("Angular error statistics:\n%s", stats_angular)

    return TrajectoryEvaluation(
        similarity=sim,
        baseline_errors=baseline,
        angular_errors_deg=angular,
        baseline_stats=stats_baseline,
        angular_stats=stats_angular,
        baseline_histogram=histogram(baseline, bins=config.histogram_bins),
        angular_histogram=histogram(angular, bins=config.histogram_bins),
        trajectory_length=length,
    )
