from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from panobundle.core.distortion import Distortion, NoDistortion, distortion_model, make_distortion
from panobundle.core.geometry import Pose

N_PINHOLE_PARAMS = 4  # fx, fy, cx, cy


def _as_homogeneous(T: Pose | np.ndarray) -> np.ndarray:
    if isinstance(T, Pose):
        return T.homogeneous()
    T = np.asarray(T, dtype=np.float64)
    if T.shape == (16,):
        return T.reshape(4, 4)
    if T.shape == (3, 4):
        return np.vstack([T, [0.0, 0.0, 0.0, 1.0]])
    return T.reshape(4, 4)


def _as_point4(X: np.ndarray) -> np.ndarray:
    X = np.asarray(X, dtype=np.float64).reshape(-1)
    if X.size == 3:
        return np.append(X, 1.0)
    if X.size != 4:
        raise ValueError("expected a 3D point or a homogeneous 4-vector")
    return X


@dataclass(frozen=True)
class PinholeCamera:
    """
    Pinhole camera with optional lens distortion.

    The parameter vector is ``[fx, fy, cx, cy, *distortion]`` with the
    principal point expressed in pixels. Instances are plain values: every
    forward and derivative operator reads only the instance it is called on,
    so a camera can be rebuilt from a solver parameter block on each
    evaluation and shared freely between threads.

    Projection of a camera-frame point X (homogeneous, 4-vector) through a
    pose T (4x4):
      Xc = T X,  P = Xc[:2] / Xc[2],  D = distort(P),  pixel = scale * D + pp
    """

    fx: float
    fy: float
    cx: float
    cy: float
    distortion: Distortion = field(default_factory=NoDistortion)

    @classmethod
    def params_size_for(cls, distortion: str = "none") -> int:
        return N_PINHOLE_PARAMS + distortion_model(distortion).n_params

    @classmethod
    def from_params(cls, params: np.ndarray, distortion: str = "none") -> "PinholeCamera":
        params = np.asarray(params, dtype=np.float64).reshape(-1)
        expected = cls.params_size_for(distortion)
        if params.size != expected:
            raise ValueError(f"pinhole/{distortion} expects {expected} parameters, got {params.size}")
        fx, fy, cx, cy = (np.float64(v) for v in params[:N_PINHOLE_PARAMS])
        return cls(fx=fx, fy=fy, cx=cx, cy=cy, distortion=make_distortion(distortion, params[N_PINHOLE_PARAMS:]))

    def with_params(self, params: np.ndarray) -> "PinholeCamera":
        return PinholeCamera.from_params(params, self.distortion.name)

    @property
    def distortion_name(self) -> str:
        return self.distortion.name

    @property
    def params_size(self) -> int:
        return N_PINHOLE_PARAMS + self.distortion.n_params

    @property
    def distortion_params_size(self) -> int:
        return self.distortion.n_params

    def params(self) -> np.ndarray:
        return np.concatenate(
            [np.array([self.fx, self.fy, self.cx, self.cy], dtype=np.float64), self.distortion.params()], axis=0
        )

    def K(self) -> np.ndarray:
        return np.array(
            [[float(self.fx), 0.0, float(self.cx)], [0.0, float(self.fy), float(self.cy)], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    # pixel <-> normalized camera plane

    def pixel_to_camera(self, pixel: np.ndarray) -> np.ndarray:
        pixel = np.asarray(pixel, dtype=np.float64)
        return np.stack([(pixel[..., 0] - self.cx) / self.fx, (pixel[..., 1] - self.cy) / self.fy], axis=-1)

    def pixel_to_camera_jacobian_wrt_scale(self, pixel: np.ndarray) -> np.ndarray:
        u, v = (float(c) for c in np.asarray(pixel, dtype=np.float64).reshape(2))
        return np.diag([-(u - self.cx) / (self.fx * self.fx), -(v - self.cy) / (self.fy * self.fy)])

    def pixel_to_camera_jacobian_wrt_principal_point(self) -> np.ndarray:
        return np.diag([-1.0 / self.fx, -1.0 / self.fy])

    def pixel_to_camera_jacobian_wrt_point(self) -> np.ndarray:
        return np.diag([1.0 / self.fx, 1.0 / self.fy])

    def camera_to_pixel(self, p: np.ndarray) -> np.ndarray:
        p = np.asarray(p, dtype=np.float64)
        return np.stack([self.fx * p[..., 0] + self.cx, self.fy * p[..., 1] + self.cy], axis=-1)

    # distortion

    def add_distortion(self, p: np.ndarray) -> np.ndarray:
        return self.distortion.distort(p)

    def add_distortion_jacobian_wrt_point(self, p: np.ndarray) -> np.ndarray:
        return self.distortion.distort_jacobian_wrt_point(p)

    def add_distortion_jacobian_wrt_distortion(self, p: np.ndarray) -> np.ndarray:
        return self.distortion.distort_jacobian_wrt_params(p)

    def remove_distortion(self, p: np.ndarray) -> np.ndarray:
        return self.distortion.undistort(p)

    def remove_distortion_jacobian_wrt_point(self, p: np.ndarray) -> np.ndarray:
        return self.distortion.undistort_jacobian_wrt_point(p)

    def remove_distortion_jacobian_wrt_distortion(self, p: np.ndarray) -> np.ndarray:
        return self.distortion.undistort_jacobian_wrt_params(p)

    # unit sphere

    @staticmethod
    def to_unit_sphere(p: np.ndarray) -> np.ndarray:
        x, y = (float(c) for c in np.asarray(p, dtype=np.float64).reshape(2))
        v = np.array([x, y, 1.0], dtype=np.float64)
        return v / np.linalg.norm(v)

    @staticmethod
    def to_unit_sphere_jacobian_wrt_point(p: np.ndarray) -> np.ndarray:
        x, y = (float(c) for c in np.asarray(p, dtype=np.float64).reshape(2))
        v = np.array([x, y, 1.0], dtype=np.float64)
        n = float(np.linalg.norm(v))
        u = v / n
        J_normalize = (np.eye(3, dtype=np.float64) - np.outer(u, u)) / n
        return J_normalize[:, :2]

    # projection

    def _project_chain(self, T: Pose | np.ndarray, X: np.ndarray, apply_distortion: bool):
        T4 = _as_homogeneous(T)
        X4 = _as_point4(X)
        Xc = (T4 @ X4)[:3]
        z = Xc[2]
        P = Xc[:2] / z
        D = self.distortion.distort(P) if apply_distortion else P
        J_P_Xc = np.array(
            [[1.0 / z, 0.0, -Xc[0] / (z * z)], [0.0, 1.0 / z, -Xc[1] / (z * z)]],
            dtype=np.float64,
        )
        J_D_P = self.distortion.distort_jacobian_wrt_point(P) if apply_distortion else np.eye(2, dtype=np.float64)
        J_pix_Xc = np.diag([self.fx, self.fy]) @ J_D_P @ J_P_Xc
        return T4, X4, P, D, J_pix_Xc

    def project_onto_image(self, T: Pose | np.ndarray, X: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        _T4, _X4, _P, D, _J = self._project_chain(T, X, apply_distortion)
        return self.camera_to_pixel(D)

    def project_jacobian_wrt_rotation(
        self, T: Pose | np.ndarray, X: np.ndarray, apply_distortion: bool = True
    ) -> np.ndarray:
        """(2,9) jacobian wrt the row-major entries of T[:3,:3]."""
        _T4, X4, _P, _D, J_pix_Xc = self._project_chain(T, X, apply_distortion)
        J_Xc_R = np.kron(np.eye(3, dtype=np.float64), X4[:3].reshape(1, 3))
        return J_pix_Xc @ J_Xc_R

    def project_jacobian_wrt_point(self, T: Pose | np.ndarray, X: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        """(2,4) jacobian wrt the homogeneous input point."""
        T4, _X4, _P, _D, J_pix_Xc = self._project_chain(T, X, apply_distortion)
        return J_pix_Xc @ T4[:3, :]

    def project_jacobian_wrt_scale(self, T: Pose | np.ndarray, X: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        _T4, _X4, _P, D, _J = self._project_chain(T, X, apply_distortion)
        return np.diag(D)

    def project_jacobian_wrt_principal_point(self) -> np.ndarray:
        return np.eye(2, dtype=np.float64)

    def project_jacobian_wrt_distortion(
        self, T: Pose | np.ndarray, X: np.ndarray, apply_distortion: bool = True
    ) -> np.ndarray:
        _T4, _X4, P, _D, _J = self._project_chain(T, X, apply_distortion)
        if not apply_distortion:
            return np.zeros((2, self.distortion_params_size), dtype=np.float64)
        return np.diag([self.fx, self.fy]) @ self.distortion.distort_jacobian_wrt_params(P)
