from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from panobundle.core.camera import PinholeCamera
from panobundle.core.matrix_calculus import jacobian_ab_wrt_a, jacobian_ab_wrt_b, jacobian_at_wrt_a

logger = logging.getLogger(__name__)

POSE_BLOCK_SIZE = 16
N_RESIDUALS = 2

# Homogeneous lift of a unit-sphere direction: d[x y z 1] / d[x y z].
_J_HOMOGENEOUS = np.eye(4, 3, dtype=np.float64)


def scatter_rotation_jacobian(J9: np.ndarray) -> np.ndarray:
    """
    Place a (2,9) jacobian wrt the row-major rotation entries into the
    (2,16) jacobian wrt a row-major 4x4 pose. Translation and last-row
    columns are zero.
    """
    J9 = np.asarray(J9, dtype=np.float64).reshape(N_RESIDUALS, 9)
    J = np.zeros((N_RESIDUALS, POSE_BLOCK_SIZE), dtype=np.float64)
    J[:, 0:3] = J9[:, 0:3]
    J[:, 4:7] = J9[:, 3:6]
    J[:, 8:11] = J9[:, 6:9]
    return J


def relative_rotation_jacobians(Ri: np.ndarray, Rj: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Jacobians of R = Rj @ Ri^T wrt Ri and wrt Rj, both (9,9) in row-major vec.
    """
    Ri = np.asarray(Ri, dtype=np.float64).reshape(3, 3)
    Rj = np.asarray(Rj, dtype=np.float64).reshape(3, 3)
    J_R_Ri = jacobian_ab_wrt_b(Rj, Ri.T) @ jacobian_at_wrt_a(3, 3)
    J_R_Rj = jacobian_ab_wrt_a(Rj, Ri.T)
    return J_R_Ri, J_R_Rj


class PanoramaPinholeCost:
    """
    Reprojection residual of one feature correspondence between two
    rotation-only (panoramic) views sharing one pinhole camera.

    Parameter blocks, in order:
      0. pose i, row-major flattened 4x4 (16 values)
      1. pose j, row-major flattened 4x4 (16 values)
      2. intrinsics ``[fx, fy, cx, cy, *distortion]``

    The pixel of view i is lifted to a unit-sphere direction, rotated by
    R = Rj Ri^T and projected into view j. The residual is the signed
    difference to the observed pixel of view j.

    `Evaluate` follows the ceres cost-function calling convention and never
    raises; `evaluate` is the array-returning convenience form. Neither
    mutates the instance.
    """

    num_residuals = N_RESIDUALS

    def __init__(self, pixel_i: np.ndarray, pixel_j: np.ndarray, camera: PinholeCamera) -> None:
        pixel_i = np.array(pixel_i, dtype=np.float64).reshape(-1)
        pixel_j = np.array(pixel_j, dtype=np.float64).reshape(-1)
        if pixel_i.size != 2 or pixel_j.size != 2:
            raise ValueError("pixel_i and pixel_j must be 2D pixel coordinates")
        if not (np.all(np.isfinite(pixel_i)) and np.all(np.isfinite(pixel_j))):
            raise ValueError("observations must be finite")
        pixel_i.setflags(write=False)
        pixel_j.setflags(write=False)
        self._pixel_i = pixel_i
        self._pixel_j = pixel_j
        self._distortion = camera.distortion_name
        self.parameter_block_sizes: tuple[int, int, int] = (POSE_BLOCK_SIZE, POSE_BLOCK_SIZE, camera.params_size)

    @property
    def pixel_i(self) -> np.ndarray:
        return self._pixel_i

    @property
    def pixel_j(self) -> np.ndarray:
        return self._pixel_j

    @property
    def distortion_model(self) -> str:
        return self._distortion

    def evaluate(
        self,
        pose_i: np.ndarray,
        pose_j: np.ndarray,
        intrinsics: np.ndarray,
        want: Sequence[bool] = (True, True, True),
    ) -> tuple[np.ndarray, list[np.ndarray | None]]:
        """
        Returns (residual (2,), [J_pose_i (2,16), J_pose_j (2,16), J_intrinsics (2,N)]),
        with None in place of blocks not requested in `want`.
        """
        pose_i = np.asarray(pose_i, dtype=np.float64).reshape(-1)
        pose_j = np.asarray(pose_j, dtype=np.float64).reshape(-1)
        intrinsics = np.asarray(intrinsics, dtype=np.float64).reshape(-1)
        for k, block in enumerate((pose_i, pose_j, intrinsics)):
            if block.size != self.parameter_block_sizes[k]:
                raise ValueError(f"parameter block {k} has {block.size} values, expected {self.parameter_block_sizes[k]}")
        if len(want) != 3:
            raise ValueError("want must have one flag per parameter block")
        return self._compute(pose_i, pose_j, intrinsics, tuple(bool(w) for w in want))

    def Evaluate(
        self,
        parameters: Sequence[np.ndarray],
        residuals: np.ndarray,
        jacobians: Sequence[np.ndarray | None] | None = None,
    ) -> bool:
        if len(parameters) != 3:
            logger.error("expected 3 parameter blocks, got %d", len(parameters))
            return False
        blocks = [np.asarray(p, dtype=np.float64).reshape(-1) for p in parameters]
        for k, block in enumerate(blocks):
            if block.size != self.parameter_block_sizes[k]:
                logger.error(
                    "parameter block %d has %d values, expected %d", k, block.size, self.parameter_block_sizes[k]
                )
                return False
        if np.size(residuals) != N_RESIDUALS:
            logger.error("residual buffer has %d values, expected %d", np.size(residuals), N_RESIDUALS)
            return False

        want = [False, False, False]
        if jacobians is not None:
            if len(jacobians) != 3:
                logger.error("expected 3 jacobian slots, got %d", len(jacobians))
                return False
            for k, J in enumerate(jacobians):
                if J is None:
                    continue
                expected = N_RESIDUALS * self.parameter_block_sizes[k]
                if np.size(J) != expected:
                    logger.error("jacobian buffer %d has %d values, expected %d", k, np.size(J), expected)
                    return False
                want[k] = True

        try:
            residual, jac_blocks = self._compute(blocks[0], blocks[1], blocks[2], tuple(want))
        except np.linalg.LinAlgError as e:
            logger.debug("singular distortion jacobian during evaluation: %s", e)
            return False

        residuals[...] = residual.reshape(np.shape(residuals))
        if jacobians is not None:
            for k, J in enumerate(jac_blocks):
                if J is not None:
                    jacobians[k][...] = J.reshape(np.shape(jacobians[k]))
        return True

    def _compute(
        self,
        pose_i: np.ndarray,
        pose_j: np.ndarray,
        intrinsics: np.ndarray,
        want: tuple[bool, ...],
    ) -> tuple[np.ndarray, list[np.ndarray | None]]:
        Ri = pose_i.reshape(4, 4)[:3, :3]
        Rj = pose_j.reshape(4, 4)[:3, :3]
        camera = PinholeCamera.from_params(intrinsics, self._distortion)

        # Relative rotation only, translation stays at zero for the panoramic case.
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = Rj @ Ri.T

        pt_i_cam = camera.pixel_to_camera(self._pixel_i)
        pt_i_undist = camera.remove_distortion(pt_i_cam)
        pt_i_sphere = np.append(camera.to_unit_sphere(pt_i_undist), 1.0)

        pt_j_est = camera.project_onto_image(T, pt_i_sphere, True)
        residual = pt_j_est - self._pixel_j

        out: list[np.ndarray | None] = [None, None, None]
        if not any(want):
            return residual, out

        if want[0] or want[1]:
            J_proj_R = camera.project_jacobian_wrt_rotation(T, pt_i_sphere)
            J_R_Ri, J_R_Rj = relative_rotation_jacobians(Ri, Rj)
            if want[0]:
                out[0] = scatter_rotation_jacobian(J_proj_R @ J_R_Ri)
            if want[1]:
                out[1] = scatter_rotation_jacobian(J_proj_R @ J_R_Rj)

        if want[2]:
            # Chain through the lifted point: pixel_i -> camera -> undistorted -> sphere.
            J_proj_sphere = camera.project_jacobian_wrt_point(T, pt_i_sphere) @ _J_HOMOGENEOUS @ camera.to_unit_sphere_jacobian_wrt_point(
                pt_i_undist
            )
            J_proj_cam = J_proj_sphere @ camera.remove_distortion_jacobian_wrt_point(pt_i_cam)

            J_scale = camera.project_jacobian_wrt_scale(T, pt_i_sphere) + J_proj_cam @ camera.pixel_to_camera_jacobian_wrt_scale(
                self._pixel_i
            )
            J_pp = camera.project_jacobian_wrt_principal_point() + J_proj_cam @ camera.pixel_to_camera_jacobian_wrt_principal_point()

            J = np.zeros((N_RESIDUALS, camera.params_size), dtype=np.float64)
            J[:, 0:2] = J_scale
            J[:, 2:4] = J_pp
            if camera.distortion_params_size > 0:
                J[:, 4:] = camera.project_jacobian_wrt_distortion(T, pt_i_sphere) + J_proj_sphere @ camera.remove_distortion_jacobian_wrt_distortion(
                    pt_i_cam
                )
            out[2] = J

        return residual, out


def make_pyceres_cost(cost: PanoramaPinholeCost):
    """
    Wrap a `PanoramaPinholeCost` into a ``pyceres.CostFunction`` so it can be
    added to a ``pyceres.Problem`` as a residual block.
    """
    import pyceres  # type: ignore

    class PanoramaPinholeCeresCost(pyceres.CostFunction):
        def __init__(self) -> None:
            pyceres.CostFunction.__init__(self)
            self.set_num_residuals(cost.num_residuals)
            self.set_parameter_block_sizes(list(cost.parameter_block_sizes))

        def Evaluate(self, parameters, residuals, jacobians) -> bool:
            return cost.Evaluate(parameters, residuals, jacobians)

    return PanoramaPinholeCeresCost()
