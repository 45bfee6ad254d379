from __future__ import annotations

import numpy as np

from panobundle.api.trajectory_io import Trajectory
from panobundle.sim.panorama import random_rotation


def synthetic_trajectory_pair(
    rng: np.random.Generator,
    n_cameras: int = 20,
    scale: float = 2.0,
    noise: float = 0.0,
    rotation_noise_rad: float = 0.0,
    outliers: int = 0,
    outlier_offset: float = 10.0,
) -> tuple[Trajectory, Trajectory, tuple[float, np.ndarray, np.ndarray]]:
    """
    Ground-truth trajectory along a helix and a computed copy expressed in
    another similarity frame.

    The computed centers satisfy ``C_gt ~ s * R @ C_c + t`` (before noise).
    The first `outliers` computed centers are pushed `outlier_offset` GT
    units away. Returns (gt, computed, (s, R, t)).
    """
    if n_cameras < 1:
        raise ValueError("n_cameras must be >= 1")
    u = np.linspace(0.0, 2.0 * np.pi, n_cameras, endpoint=False)
    C_gt = np.stack([np.cos(u), np.sin(u), 0.3 * u], axis=1)
    R_gt = np.stack([random_rotation(rng) for _ in range(n_cameras)], axis=0)

    s = float(scale)
    R = random_rotation(rng)
    t = rng.normal(size=3)

    # Invert the registration so that s * R @ C_c + t lands back on C_gt.
    C_c = ((C_gt - t.reshape(1, 3)) @ R) / s
    if noise > 0.0:
        C_c = C_c + rng.normal(scale=noise / s, size=C_c.shape)
    for i in range(min(int(outliers), n_cameras)):
        direction = rng.normal(size=3)
        C_c[i] += (outlier_offset / s) * direction / np.linalg.norm(direction)

    # Camera rotations follow the frame change: R_c = R_gt @ R.
    R_c = np.einsum("nij,jk->nik", R_gt, R)
    if rotation_noise_rad > 0.0:
        R_c = np.stack([random_rotation(rng, rotation_noise_rad) @ Rc for Rc in R_c], axis=0)

    images = tuple(f"img{i:04d}.jpg" for i in range(n_cameras))
    gt = Trajectory(images=images, centers=C_gt, rotations=R_gt)
    computed = Trajectory(images=images, centers=C_c, rotations=R_c)
    return gt, computed, (s, R, t)
