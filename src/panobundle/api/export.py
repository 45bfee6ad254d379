from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np

from panobundle.eval.trajectory import TrajectoryEvaluation

logger = logging.getLogger(__name__)

REPORT_SCHEMA = "panobundle.report.v0"

GT_COLOR = (0, 255, 0)
COMPUTED_COLOR = (255, 255, 0)


def export_to_ply(points_gt: np.ndarray, points_computed: np.ndarray, path: Path) -> bool:
    """
    Export two camera trajectories as a colored ASCII point cloud:
    GT in green first, then computed in yellow.

    Returns False (and logs) if the file cannot be written.
    """
    gt = np.asarray(points_gt, dtype=np.float64).reshape(-1, 3)
    comp = np.asarray(points_computed, dtype=np.float64).reshape(-1, 3)

    lines = [
        "ply",
        "format ascii 1.0",
        f"element vertex {gt.shape[0] + comp.shape[0]}",
        "property float x",
        "property float y",
        "property float z",
        "property uchar red",
        "property uchar green",
        "property uchar blue",
        "end_header",
    ]
    for pts, color in ((gt, GT_COLOR), (comp, COMPUTED_COLOR)):
        for p in pts:
            lines.append(f"{p[0]:.9g} {p[1]:.9g} {p[2]:.9g} {color[0]} {color[1]} {color[2]}")

    try:
        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        logger.error("Failed to write %s: %s", path, e)
        return False
    return True


def write_evaluation_report(path: Path, evaluation: TrajectoryEvaluation) -> bool:
    report: dict[str, object] = {"schema_version": REPORT_SCHEMA}
    report.update(evaluation.to_dict())
    try:
        Path(path).write_text(json.dumps(report, indent=2, sort_keys=True), encoding="utf-8")
    except OSError as e:
        logger.error("Failed to write %s: %s", path, e)
        return False
    return True


def save_evaluation(
    out_dir: Path,
    evaluation: TrajectoryEvaluation,
    centers_gt: np.ndarray,
    centers_computed: np.ndarray,
) -> bool:
    """
    Write the evaluation outputs into `out_dir`:

      camera_registered.ply + camera_original.ply + evaluation_report.json
    """
    out_dir = Path(out_dir)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to create %s: %s", out_dir, e)
        return False

    ok = export_to_ply(centers_gt, evaluation.registered_centers, out_dir / "camera_registered.ply")
    ok = export_to_ply(centers_gt, centers_computed, out_dir / "camera_original.ply") and ok
    ok = write_evaluation_report(out_dir / "evaluation_report.json", evaluation) and ok
    return ok
