from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any, Sequence

import numpy as np

from panobundle.core.geometry import is_rotation

logger = logging.getLogger(__name__)

TRAJECTORY_SCHEMA = "panobundle.trajectory.v0"


@dataclass(frozen=True)
class Trajectory:
    """Ordered cameras: image names, centers (N,3) and world-to-camera rotations (N,3,3)."""

    images: tuple[str, ...]
    centers: np.ndarray
    rotations: np.ndarray

    def __len__(self) -> int:
        return len(self.images)

    def subset(self, indices: Sequence[int]) -> "Trajectory":
        idx = np.asarray(list(indices), dtype=np.int64)
        return Trajectory(
            images=tuple(self.images[int(i)] for i in idx.tolist()),
            centers=self.centers[idx].reshape(-1, 3),
            rotations=self.rotations[idx].reshape(-1, 3, 3),
        )


def _stem(path: str) -> str:
    # Handle both posix and windows separators in stored names.
    name = PurePath(str(path).replace("\\", "/")).name
    return PurePath(name).stem


def find_id_gt(file: str, filelist: Sequence[str]) -> int:
    """
    Index of `file` in `filelist`, comparing file stems (directories and
    extensions ignored). First match wins; -1 if nothing matches.
    """
    key = _stem(file)
    for i, entry in enumerate(filelist):
        if _stem(entry) == key:
            return i
    return -1


def parse_trajectory(data: dict[str, Any]) -> Trajectory:
    if not isinstance(data, dict):
        raise ValueError("trajectory must be a JSON object")
    if data.get("schema_version") != TRAJECTORY_SCHEMA:
        raise ValueError(f"schema_version must be {TRAJECTORY_SCHEMA}")
    cameras = data.get("cameras")
    if not isinstance(cameras, list):
        raise ValueError("cameras must be a list")

    images: list[str] = []
    centers: list[np.ndarray] = []
    rotations: list[np.ndarray] = []
    for i, cam in enumerate(cameras):
        if not isinstance(cam, dict):
            raise ValueError(f"camera {i}: must be an object")
        try:
            image = str(cam["image"])
            c = np.asarray(cam["center"], dtype=np.float64)
            R = np.asarray(cam["rotation"], dtype=np.float64)
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"camera {i}: missing or invalid field: {e}") from e
        if c.shape != (3,):
            raise ValueError(f"camera {i}: center must have 3 values")
        if R.shape != (3, 3):
            raise ValueError(f"camera {i}: rotation must be 3x3")
        if not (np.all(np.isfinite(c)) and np.all(np.isfinite(R))):
            raise ValueError(f"camera {i}: center and rotation must be finite")
        if not is_rotation(R, atol=1e-5):
            raise ValueError(f"camera {i}: rotation is not orthonormal")
        images.append(image)
        centers.append(c)
        rotations.append(R)

    return Trajectory(
        images=tuple(images),
        centers=np.asarray(centers, dtype=np.float64).reshape(-1, 3),
        rotations=np.asarray(rotations, dtype=np.float64).reshape(-1, 3, 3),
    )


def load_trajectory(path: Path) -> Trajectory:
    return parse_trajectory(json.loads(Path(path).read_text(encoding="utf-8")))


def trajectory_to_dict(traj: Trajectory) -> dict[str, Any]:
    return {
        "schema_version": TRAJECTORY_SCHEMA,
        "cameras": [
            {
                "image": name,
                "center": np.asarray(c, dtype=np.float64).reshape(3).tolist(),
                "rotation": np.asarray(R, dtype=np.float64).reshape(3, 3).tolist(),
            }
            for name, c, R in zip(traj.images, traj.centers, traj.rotations)
        ],
    }


def save_trajectory(path: Path, traj: Trajectory) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(trajectory_to_dict(traj), indent=2), encoding="utf-8")
    return path


def match_trajectories(gt: Trajectory, computed: Trajectory) -> tuple[Trajectory, Trajectory]:
    """
    Pair computed cameras with GT cameras by image name.

    Computed cameras without a GT counterpart are skipped with a warning.
    Returns (gt_aligned, computed_aligned) with equal length and indexing.
    """
    gt_idx: list[int] = []
    comp_idx: list[int] = []
    for i, image in enumerate(computed.images):
        j = find_id_gt(image, gt.images)
        if j < 0:
            logger.warning("No ground truth camera for %s", image)
            continue
        gt_idx.append(j)
        comp_idx.append(i)
    logger.info("Matched %d/%d computed cameras to ground truth", len(comp_idx), len(computed))
    return gt.subset(gt_idx), computed.subset(comp_idx)
