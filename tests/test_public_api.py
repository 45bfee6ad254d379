from __future__ import annotations


def test_public_api_exports() -> None:
    import panobundle as pb

    for name in (
        "PanoramaPinholeCost",
        "make_pyceres_cost",
        "PinholeCamera",
        "compute_similarity",
        "evaluate_to_gt",
        "RegistrationError",
        "load_trajectory",
        "save_trajectory",
        "match_trajectories",
        "find_id_gt",
        "export_to_ply",
        "save_evaluation",
    ):
        assert hasattr(pb, name), name
