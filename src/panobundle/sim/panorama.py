from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation as Rot

from panobundle.bundle.panorama_cost import PanoramaPinholeCost
from panobundle.core.camera import PinholeCamera
from panobundle.core.distortion import make_distortion

# Per-coefficient bounds; distortion stays invertible over the image.
_DISTORTION_RANGES: dict[str, tuple[float, ...]] = {
    "none": (),
    "radialk1": (0.1,),
    "radialk3": (0.1, 0.02, 0.005),
    "brown": (0.1, 0.02, 1e-3, 1e-3, 0.005),
}


@dataclass(frozen=True)
class PanoramaCase:
    """One synthetic correspondence between two rotation-only views."""

    camera: PinholeCamera
    pose_i: np.ndarray  # (16,) row-major 4x4
    pose_j: np.ndarray  # (16,)
    pixel_i: np.ndarray  # (2,)
    pixel_j: np.ndarray  # (2,)

    def cost(self) -> PanoramaPinholeCost:
        return PanoramaPinholeCost(self.pixel_i, self.pixel_j, self.camera)

    def parameters(self) -> list[np.ndarray]:
        return [self.pose_i.copy(), self.pose_j.copy(), self.camera.params()]


def random_rotation(rng: np.random.Generator, max_angle: float = np.pi) -> np.ndarray:
    axis = rng.normal(size=3)
    axis /= np.linalg.norm(axis)
    angle = float(rng.uniform(0.0, max_angle))
    return Rot.from_rotvec(axis * angle).as_matrix()


def random_camera(
    rng: np.random.Generator,
    distortion: str = "none",
    width: int = 640,
    height: int = 480,
) -> PinholeCamera:
    f = float(rng.uniform(400.0, 700.0))
    ranges = np.asarray(_DISTORTION_RANGES[distortion], dtype=np.float64)
    coeffs = rng.uniform(-1.0, 1.0, size=ranges.shape) * ranges
    return PinholeCamera(
        fx=f,
        fy=f * float(rng.uniform(0.98, 1.02)),
        cx=0.5 * width + float(rng.normal(scale=5.0)),
        cy=0.5 * height + float(rng.normal(scale=5.0)),
        distortion=make_distortion(distortion, coeffs),
    )


def _pose(R: np.ndarray) -> np.ndarray:
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R
    return T.reshape(-1)


def random_panorama_case(
    rng: np.random.Generator,
    distortion: str = "none",
    width: int = 640,
    height: int = 480,
    max_relative_angle: float = 0.15,
    noise_px: float = 0.0,
) -> PanoramaCase:
    """
    Draw a camera, two world-to-camera rotations a small angle apart and a
    pixel near the image center of view i; the pixel of view j is the exact
    transfer of that ray (plus optional Gaussian noise).
    """
    camera = random_camera(rng, distortion, width, height)
    Ri = random_rotation(rng)
    Rj = random_rotation(rng, max_relative_angle) @ Ri

    pixel_i = np.array(
        [rng.uniform(0.25 * width, 0.75 * width), rng.uniform(0.25 * height, 0.75 * height)],
        dtype=np.float64,
    )
    ray = camera.to_unit_sphere(camera.remove_distortion(camera.pixel_to_camera(pixel_i)))
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = Rj @ Ri.T
    pixel_j = camera.project_onto_image(T, ray)
    if noise_px > 0.0:
        pixel_j = pixel_j + rng.normal(scale=noise_px, size=2)

    return PanoramaCase(camera=camera, pose_i=_pose(Ri), pose_j=_pose(Rj), pixel_i=pixel_i, pixel_j=pixel_j)
