import numpy as np
import pytest

from panobundle.bundle.panorama_cost import PanoramaPinholeCost, make_pyceres_cost
from panobundle.core.camera import PinholeCamera
from panobundle.core.geometry import rotation_xyz
from panobundle.sim.panorama import random_panorama_case

pyceres = pytest.importorskip("pyceres")


def test_pyceres_wrapper_forwards_evaluate():
    case = random_panorama_case(np.random.default_rng(0), "radialk1", noise_px=1.0)
    cost = case.cost()
    wrapped = make_pyceres_cost(cost)
    assert isinstance(wrapped, pyceres.CostFunction)

    params = case.parameters()
    expected_r, expected_j = cost.evaluate(*params)
    residuals = np.zeros(2)
    jacobians = [np.zeros(32), None, np.zeros(10)]
    assert wrapped.Evaluate(params, residuals, jacobians)
    assert np.array_equal(residuals, expected_r)
    assert np.array_equal(jacobians[0].reshape(2, 16), expected_j[0])
    assert np.array_equal(jacobians[2].reshape(2, 5), expected_j[2])


def test_pyceres_solve_recovers_focal_length():
    rng = np.random.default_rng(4)
    true_cam = PinholeCamera(fx=580.0, fy=575.0, cx=321.0, cy=238.0)
    Ri = rotation_xyz(-0.2, 0.1, 0.4)
    Rj = rotation_xyz(0.12, 0.2, -0.1) @ Ri
    T = np.eye(4)
    T[:3, :3] = Rj @ Ri.T

    pose_i = np.eye(4)
    pose_i[:3, :3] = Ri
    pose_i = pose_i.reshape(-1).copy()
    pose_j = np.eye(4)
    pose_j[:3, :3] = Rj
    pose_j = pose_j.reshape(-1).copy()
    intrinsics = true_cam.params() * np.array([1.04, 0.97, 1.0, 1.0])

    problem = pyceres.Problem()
    for _ in range(30):
        pixel_i = rng.uniform([120.0, 90.0], [520.0, 390.0])
        ray = true_cam.to_unit_sphere(true_cam.pixel_to_camera(pixel_i))
        cost = PanoramaPinholeCost(pixel_i, true_cam.project_onto_image(T, ray), true_cam)
        problem.add_residual_block(make_pyceres_cost(cost), None, [pose_i, pose_j, intrinsics])
    problem.set_parameter_block_constant(pose_i)
    problem.set_parameter_block_constant(pose_j)

    options = pyceres.SolverOptions()
    options.max_num_iterations = 50
    options.function_tolerance = 1e-14
    options.gradient_tolerance = 1e-14
    options.parameter_tolerance = 1e-14
    summary = pyceres.SolverSummary()
    pyceres.solve(options, problem, summary)

    assert np.max(np.abs(intrinsics - true_cam.params())) < 1e-3
