from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


def is_rotation(R: np.ndarray, atol: float = 1e-6) -> bool:
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3) or not np.all(np.isfinite(R)):
        return False
    if not np.allclose(R @ R.T, np.eye(3), atol=atol):
        return False
    return bool(abs(np.linalg.det(R) - 1.0) < atol)


def nearest_rotation(R: np.ndarray) -> np.ndarray:
    """Project a 3x3 matrix onto SO(3) (closest rotation in Frobenius norm)."""
    from scipy.spatial.transform import Rotation as Rot  # type: ignore

    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    if not np.all(np.isfinite(R)):
        raise ValueError("rotation contains non-finite values")
    if np.linalg.det(R) <= 0.0:
        raise ValueError("cannot correct a reflection or singular matrix into a rotation")
    return Rot.from_matrix(R).as_matrix()


def radian_to_degree(radian: float) -> float:
    return float(radian) / math.pi * 180.0


def degree_to_radian(degree: float) -> float:
    return float(degree) * math.pi / 180.0


def rotation_xyz(angle_x: float, angle_y: float, angle_z: float) -> np.ndarray:
    """Rotation R = Rx(ax) @ Ry(ay) @ Rz(az), angles in radians."""
    from scipy.spatial.transform import Rotation as Rot  # type: ignore

    return Rot.from_euler("XYZ", [angle_x, angle_y, angle_z]).as_matrix()


def cross_product_matrix(v: np.ndarray) -> np.ndarray:
    x, y, z = (float(c) for c in np.asarray(v, dtype=np.float64).reshape(3))
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]], dtype=np.float64)


def rotation_magnitude(R: np.ndarray) -> float:
    """
    Mean rotation amplitude (radians) of R.

    Computed as the mean of the dot products of the columns of R with the
    identity columns, i.e. acos(trace(R) / 3).
    """
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    cos_theta = float(np.trace(R)) / 3.0
    cos_theta = min(1.0, max(-1.0, cos_theta))
    return math.acos(cos_theta)


def rotation_difference(R1: np.ndarray, R2: np.ndarray) -> float:
    """Angle (radians) of R1 @ R2^T, measured with `rotation_magnitude`."""
    R1 = np.asarray(R1, dtype=np.float64).reshape(3, 3)
    R2 = np.asarray(R2, dtype=np.float64).reshape(3, 3)
    return rotation_magnitude(R1 @ R2.T)


@dataclass(frozen=True)
class Pose:
    """
    Rigid transform X_cam = R X_world + t.

    The rotation block is checked at construction; use `Pose.from_rotation`
    with ``correct=True`` to project a slightly drifted matrix back onto SO(3).
    """

    rotation: np.ndarray  # (3,3)
    translation: np.ndarray  # (3,)

    def __post_init__(self) -> None:
        R = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        t = np.asarray(self.translation, dtype=np.float64).reshape(3)
        if not is_rotation(R):
            raise ValueError("pose rotation must be orthonormal with det=+1")
        if not np.all(np.isfinite(t)):
            raise ValueError("pose translation contains non-finite values")
        object.__setattr__(self, "rotation", R)
        object.__setattr__(self, "translation", t)

    @classmethod
    def identity(cls) -> "Pose":
        return cls(np.eye(3, dtype=np.float64), np.zeros((3,), dtype=np.float64))

    @classmethod
    def from_rotation(cls, R: np.ndarray, t: np.ndarray | None = None, *, correct: bool = False) -> "Pose":
        R = np.asarray(R, dtype=np.float64).reshape(3, 3)
        if correct:
            R = nearest_rotation(R)
        if t is None:
            t = np.zeros((3,), dtype=np.float64)
        return cls(R, t)

    @classmethod
    def from_homogeneous(cls, T: np.ndarray, *, correct: bool = False) -> "Pose":
        T = np.asarray(T, dtype=np.float64).reshape(4, 4)
        if not np.allclose(T[3], [0.0, 0.0, 0.0, 1.0]):
            raise ValueError("last row of a homogeneous pose must be [0,0,0,1]")
        return cls.from_rotation(T[:3, :3], T[:3, 3], correct=correct)

    @classmethod
    def from_flat(cls, params: np.ndarray, *, correct: bool = False) -> "Pose":
        """Build from a row-major flattened 4x4 matrix (16 values)."""
        params = np.asarray(params, dtype=np.float64).reshape(-1)
        if params.size != 16:
            raise ValueError("a flattened pose must have 16 values")
        return cls.from_homogeneous(params.reshape(4, 4), correct=correct)

    def homogeneous(self) -> np.ndarray:
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def flat(self) -> np.ndarray:
        return self.homogeneous().reshape(-1)

    def compose(self, other: "Pose") -> "Pose":
        """Return self * other (apply `other` first)."""
        return Pose(self.rotation @ other.rotation, self.rotation @ other.translation + self.translation)

    def __mul__(self, other: "Pose") -> "Pose":
        return self.compose(other)

    def inverse(self) -> "Pose":
        Rt = self.rotation.T
        return Pose(Rt, -Rt @ self.translation)

    def center(self) -> np.ndarray:
        """Camera center in world coordinates."""
        return -self.rotation.T @ self.translation

    def apply(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64)
        return pts @ self.rotation.T + self.translation
