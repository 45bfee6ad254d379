from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path

import numpy as np

from panobundle.api.export import save_evaluation
from panobundle.api.trajectory_io import load_trajectory, match_trajectories, save_trajectory
from panobundle.bundle.gradient_check import check_jacobians
from panobundle.config import EvaluationConfig, load_evaluation_config
from panobundle.core.distortion import DISTORTION_MODELS
from panobundle.eval.trajectory import RegistrationError, evaluate_to_gt
from panobundle.sim.panorama import random_panorama_case
from panobundle.sim.trajectory import synthetic_trajectory_pair

logger = logging.getLogger("panobundle")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_config(args: argparse.Namespace) -> EvaluationConfig:
    cfg = load_evaluation_config(args.config) if args.config else EvaluationConfig()
    if args.seed is not None:
        cfg = replace(cfg, seed=int(args.seed))
    if args.threshold is not None:
        cfg = replace(cfg, ransac=replace(cfg.ransac, inlier_threshold=float(args.threshold)))
    return cfg


def run_eval_trajectory(args: argparse.Namespace) -> int:
    try:
        cfg = _load_config(args)
        gt = load_trajectory(args.gt)
        computed = load_trajectory(args.computed)
    except (OSError, ValueError) as e:
        logger.error("%s", e)
        return 1

    gt_m, computed_m = match_trajectories(gt, computed)
    if len(computed_m) == 0:
        logger.error("No computed camera matches the ground truth")
        return 1

    rng = np.random.default_rng(cfg.seed)
    try:
        evaluation = evaluate_to_gt(
            gt_m.centers, computed_m.centers, gt_m.rotations, computed_m.rotations, rng, cfg
        )
    except RegistrationError as e:
        logger.error("%s", e)
        return 1

    if not save_evaluation(args.out, evaluation, gt_m.centers, computed_m.centers):
        return 1
    print(f"Wrote {args.out}")
    summary = {
        "cameras": len(computed_m),
        "inliers": int(evaluation.similarity.inliers.size),
        "scale": float(evaluation.similarity.scale),
        "baseline_median": evaluation.baseline_stats.median,
        "angular_median_deg": evaluation.angular_stats.median,
    }
    print(json.dumps(summary))
    return 0


def run_check_jacobians(args: argparse.Namespace) -> int:
    rng = np.random.default_rng(args.seed)
    ok = True
    for trial in range(int(args.trials)):
        case = random_panorama_case(rng, args.distortion)
        report = check_jacobians(case.cost(), case.parameters())
        print(json.dumps({"trial": trial, "distortion": args.distortion, **report.to_dict()}))
        ok = ok and report.ok
    return 0 if ok else 1


def run_simulate_trajectory(args: argparse.Namespace) -> int:
    rng = np.random.default_rng(args.seed)
    gt, computed, _ = synthetic_trajectory_pair(
        rng,
        n_cameras=args.cameras,
        scale=args.scale,
        noise=args.noise,
        outliers=args.outliers,
    )
    for path, traj in ((args.out_gt, gt), (args.out_computed, computed)):
        try:
            save_trajectory(path, traj)
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            return 1
        print(f"Wrote {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="panobundle")
    sub = parser.add_subparsers(dest="cmd", required=True)

    ev = sub.add_parser("eval-trajectory", help="Register a computed trajectory onto ground truth and report errors.")
    ev.add_argument("--gt", type=Path, required=True, help="Ground-truth trajectory JSON.")
    ev.add_argument("--computed", type=Path, required=True, help="Computed trajectory JSON.")
    ev.add_argument("--out", type=Path, required=True, help="Output directory (PLY files + evaluation_report.json).")
    ev.add_argument("--config", type=Path, default=None, help="Evaluation config JSON (panobundle.config.v0).")
    ev.add_argument("--seed", type=int, default=None, help="Override the RANSAC seed.")
    ev.add_argument("--threshold", type=float, default=None, help="Override the RANSAC inlier threshold (GT units).")
    ev.add_argument("-v", "--verbose", action="store_true")

    chk = sub.add_parser("check-jacobians", help="Compare analytic and numeric jacobians on random panorama cases.")
    chk.add_argument("--distortion", type=str, default="none", choices=sorted(DISTORTION_MODELS))
    chk.add_argument("--trials", type=int, default=10)
    chk.add_argument("--seed", type=int, default=0)
    chk.add_argument("-v", "--verbose", action="store_true")

    simu = sub.add_parser("simulate-trajectory", help="Write a synthetic GT/computed trajectory pair.")
    simu.add_argument("--out-gt", type=Path, required=True)
    simu.add_argument("--out-computed", type=Path, required=True)
    simu.add_argument("--cameras", type=int, default=20)
    simu.add_argument("--scale", type=float, default=2.0)
    simu.add_argument("--noise", type=float, default=0.0, help="Center noise std (GT units).")
    simu.add_argument("--outliers", type=int, default=0)
    simu.add_argument("--seed", type=int, default=0)
    simu.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.cmd == "eval-trajectory":
        return run_eval_trajectory(args)

    if args.cmd == "check-jacobians":
        return run_check_jacobians(args)

    if args.cmd == "simulate-trajectory":
        return run_simulate_trajectory(args)

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
