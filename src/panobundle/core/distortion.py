from __future__ import annotations

from dataclasses import dataclass, fields
from typing import ClassVar

import numpy as np


@dataclass(frozen=True)
class Distortion:
    """
    Lens distortion acting on normalized camera coordinates (x=X/Z, y=Y/Z).

    Subclasses are immutable coefficient sets. Forward evaluation is
    vectorized over a trailing axis of size 2; jacobians are evaluated at a
    single point.
    """

    name: ClassVar[str] = ""
    n_params: ClassVar[int] = 0

    @classmethod
    def from_params(cls, params: np.ndarray) -> "Distortion":
        params = np.asarray(params, dtype=np.float64).reshape(-1)
        if params.size != cls.n_params:
            raise ValueError(f"{cls.name} distortion expects {cls.n_params} parameters, got {params.size}")
        return cls(*(float(v) for v in params.tolist()))

    def params(self) -> np.ndarray:
        return np.array([float(getattr(self, f.name)) for f in fields(self)], dtype=np.float64)

    def distort(self, p: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def distort_jacobian_wrt_point(self, p: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def distort_jacobian_wrt_params(self, p: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def undistort(self, pd: np.ndarray, max_iterations: int = 20, tol: float = 1e-14) -> np.ndarray:
        """
        Inverse of `distort` at a single point, by Newton iterations.

        Stops on convergence, on a singular distortion jacobian or on a
        non-finite step, and returns the last valid iterate.
        """
        pd = np.asarray(pd, dtype=np.float64).reshape(2)
        if self.n_params == 0:
            return pd.copy()
        p = pd.copy()
        for _ in range(int(max_iterations)):
            r = self.distort(p) - pd
            if float(np.max(np.abs(r))) < tol:
                break
            try:
                step = np.linalg.solve(self.distort_jacobian_wrt_point(p), r)
            except np.linalg.LinAlgError:
                break
            p_next = p - step
            if not np.all(np.isfinite(p_next)):
                break
            p = p_next
        return p

    def undistort_jacobian_wrt_point(self, pd: np.ndarray) -> np.ndarray:
        """d undistort(pd) / d pd = (d distort / d p)^-1 at p = undistort(pd)."""
        p = self.undistort(pd)
        return np.linalg.inv(self.distort_jacobian_wrt_point(p))

    def undistort_jacobian_wrt_params(self, pd: np.ndarray) -> np.ndarray:
        """d undistort(pd) / d params = -(d distort / d p)^-1 (d distort / d params)."""
        p = self.undistort(pd)
        Jp = self.distort_jacobian_wrt_point(p)
        Jk = self.distort_jacobian_wrt_params(p)
        return -np.linalg.solve(Jp, Jk)


@dataclass(frozen=True)
class NoDistortion(Distortion):
    name: ClassVar[str] = "none"
    n_params: ClassVar[int] = 0

    def distort(self, p: np.ndarray) -> np.ndarray:
        return np.array(p, dtype=np.float64)

    def distort_jacobian_wrt_point(self, p: np.ndarray) -> np.ndarray:
        return np.eye(2, dtype=np.float64)

    def distort_jacobian_wrt_params(self, p: np.ndarray) -> np.ndarray:
        return np.zeros((2, 0), dtype=np.float64)


@dataclass(frozen=True)
class _RadialDistortion(Distortion):
    # Radial factor g(r2) = 1 + k1 r2 + k2 r2^2 + k3 r2^3 with missing terms at 0.

    def _radial_coeffs(self) -> tuple[float, float, float]:
        raise NotImplementedError

    def distort(self, p: np.ndarray) -> np.ndarray:
        p = np.asarray(p, dtype=np.float64)
        k1, k2, k3 = self._radial_coeffs()
        r2 = p[..., 0] ** 2 + p[..., 1] ** 2
        g = 1.0 + r2 * (k1 + r2 * (k2 + r2 * k3))
        return p * g[..., None]

    def distort_jacobian_wrt_point(self, p: np.ndarray) -> np.ndarray:
        x, y = (float(c) for c in np.asarray(p, dtype=np.float64).reshape(2))
        k1, k2, k3 = self._radial_coeffs()
        r2 = x * x + y * y
        g = 1.0 + r2 * (k1 + r2 * (k2 + r2 * k3))
        dg = k1 + 2.0 * k2 * r2 + 3.0 * k3 * r2 * r2
        return np.array(
            [
                [g + 2.0 * x * x * dg, 2.0 * x * y * dg],
                [2.0 * x * y * dg, g + 2.0 * y * y * dg],
            ],
            dtype=np.float64,
        )

    def _radial_powers(self, p: np.ndarray) -> tuple[np.ndarray, float]:
        p = np.asarray(p, dtype=np.float64).reshape(2)
        r2 = float(p[0] * p[0] + p[1] * p[1])
        return p, r2


@dataclass(frozen=True)
class RadialK1Distortion(_RadialDistortion):
    name: ClassVar[str] = "radialk1"
    n_params: ClassVar[int] = 1

    k1: float = 0.0

    def _radial_coeffs(self) -> tuple[float, float, float]:
        return self.k1, 0.0, 0.0

    def distort_jacobian_wrt_params(self, p: np.ndarray) -> np.ndarray:
        p, r2 = self._radial_powers(p)
        return (p * r2).reshape(2, 1)


@dataclass(frozen=True)
class RadialK3Distortion(_RadialDistortion):
    name: ClassVar[str] = "radialk3"
    n_params: ClassVar[int] = 3

    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0

    def _radial_coeffs(self) -> tuple[float, float, float]:
        return self.k1, self.k2, self.k3

    def distort_jacobian_wrt_params(self, p: np.ndarray) -> np.ndarray:
        p, r2 = self._radial_powers(p)
        return np.stack([p * r2, p * r2**2, p * r2**3], axis=1)


@dataclass(frozen=True)
class BrownDistortion(Distortion):
    """
    Brown-Conrady distortion on normalized camera coordinates (x=X/Z, y=Y/Z).

    Parameters follow common OpenCV naming and ordering:
      radial: k1, k2, k3
      tangential: p1, p2
    """

    name: ClassVar[str] = "brown"
    n_params: ClassVar[int] = 5

    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    def distort(self, p: np.ndarray) -> np.ndarray:
        p = np.asarray(p, dtype=np.float64)
        x = p[..., 0]
        y = p[..., 1]
        r2 = x * x + y * y
        radial = 1.0 + self.k1 * r2 + self.k2 * r2 * r2 + self.k3 * r2 * r2 * r2
        x_tan = 2.0 * self.p1 * x * y + self.p2 * (r2 + 2.0 * x * x)
        y_tan = self.p1 * (r2 + 2.0 * y * y) + 2.0 * self.p2 * x * y
        return np.stack([x * radial + x_tan, y * radial + y_tan], axis=-1)

    def distort_jacobian_wrt_point(self, p: np.ndarray) -> np.ndarray:
        x, y = (float(c) for c in np.asarray(p, dtype=np.float64).reshape(2))
        r2 = x * x + y * y
        g = 1.0 + self.k1 * r2 + self.k2 * r2 * r2 + self.k3 * r2 * r2 * r2
        dg = self.k1 + 2.0 * self.k2 * r2 + 3.0 * self.k3 * r2 * r2
        return np.array(
            [
                [g + 2.0 * x * x * dg + 2.0 * self.p1 * y + 6.0 * self.p2 * x, 2.0 * x * y * dg + 2.0 * self.p1 * x + 2.0 * self.p2 * y],
                [2.0 * x * y * dg + 2.0 * self.p1 * x + 2.0 * self.p2 * y, g + 2.0 * y * y * dg + 6.0 * self.p1 * y + 2.0 * self.p2 * x],
            ],
            dtype=np.float64,
        )

    def distort_jacobian_wrt_params(self, p: np.ndarray) -> np.ndarray:
        x, y = (float(c) for c in np.asarray(p, dtype=np.float64).reshape(2))
        r2 = x * x + y * y
        # Columns follow the parameter order k1, k2, p1, p2, k3.
        return np.array(
            [
                [x * r2, x * r2 * r2, 2.0 * x * y, r2 + 2.0 * x * x, x * r2**3],
                [y * r2, y * r2 * r2, r2 + 2.0 * y * y, 2.0 * x * y, y * r2**3],
            ],
            dtype=np.float64,
        )


DISTORTION_MODELS: dict[str, type[Distortion]] = {
    cls.name: cls for cls in (NoDistortion, RadialK1Distortion, RadialK3Distortion, BrownDistortion)
}


def distortion_model(name: str) -> type[Distortion]:
    try:
        return DISTORTION_MODELS[str(name)]
    except KeyError:
        raise ValueError(f"Unsupported distortion model: {name} (expected one of {sorted(DISTORTION_MODELS)})") from None


def distortion_params_size(name: str) -> int:
    return distortion_model(name).n_params


def make_distortion(name: str, params: np.ndarray | None = None) -> Distortion:
    cls = distortion_model(name)
    if params is None:
        return cls()
    return cls.from_params(params)


def distortion_from_dict(d: dict) -> Distortion:
    cls = distortion_model(str(d.get("model", "none")))
    return cls(**{f.name: float(d.get(f.name, 0.0)) for f in fields(cls)})


def distortion_to_dict(m: Distortion) -> dict:
    out: dict = {"model": m.name}
    out.update({f.name: float(getattr(m, f.name)) for f in fields(m)})
    return out
