from panobundle.api import (
    Trajectory,
    export_to_ply,
    find_id_gt,
    load_trajectory,
    match_trajectories,
    save_evaluation,
    save_trajectory,
)
from panobundle.bundle.panorama_cost import PanoramaPinholeCost, make_pyceres_cost
from panobundle.core.camera import PinholeCamera
from panobundle.eval.trajectory import RegistrationError, TrajectoryEvaluation, evaluate_to_gt
from panobundle.registration.similarity import SimilarityResult, compute_similarity

__all__ = [
    "PanoramaPinholeCost",
    "make_pyceres_cost",
    "PinholeCamera",
    "compute_similarity",
    "SimilarityResult",
    "evaluate_to_gt",
    "TrajectoryEvaluation",
    "RegistrationError",
    "Trajectory",
    "load_trajectory",
    "save_trajectory",
    "match_trajectories",
    "find_id_gt",
    "export_to_ply",
    "save_evaluation",
]
