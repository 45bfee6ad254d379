from panobundle.api.export import export_to_ply, save_evaluation, write_evaluation_report
from panobundle.api.trajectory_io import Trajectory, find_id_gt, load_trajectory, match_trajectories, save_trajectory

__all__ = [
    "Trajectory",
    "find_id_gt",
    "load_trajectory",
    "save_trajectory",
    "match_trajectories",
    "export_to_ply",
    "save_evaluation",
    "write_evaluation_report",
]
