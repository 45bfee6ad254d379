import json

import numpy as np

from panobundle.api.trajectory_io import save_trajectory
from panobundle.cli.main import main
from panobundle.sim.trajectory import synthetic_trajectory_pair


def test_eval_trajectory_command(tmp_path, capsys):
    gt, computed, _ = synthetic_trajectory_pair(np.random.default_rng(0), n_cameras=10, noise=1e-3)
    save_trajectory(tmp_path / "gt.json", gt)
    save_trajectory(tmp_path / "computed.json", computed)
    out = tmp_path / "out"

    rc = main(
        [
            "eval-trajectory",
            "--gt",
            str(tmp_path / "gt.json"),
            "--computed",
            str(tmp_path / "computed.json"),
            "--out",
            str(out),
            "--seed",
            "3",
        ]
    )
    assert rc == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0] == f"Wrote {out}"
    summary = json.loads(lines[1])
    assert summary["cameras"] == 10
    assert summary["inliers"] == 10
    for name in ("camera_registered.ply", "camera_original.ply", "evaluation_report.json"):
        assert (out / name).is_file()


def test_eval_trajectory_fails_on_degenerate_input(tmp_path):
    gt, computed, _ = synthetic_trajectory_pair(np.random.default_rng(1), n_cameras=2)
    save_trajectory(tmp_path / "gt.json", gt)
    save_trajectory(tmp_path / "computed.json", computed)
    rc = main(
        [
            "eval-trajectory",
            "--gt",
            str(tmp_path / "gt.json"),
            "--computed",
            str(tmp_path / "computed.json"),
            "--out",
            str(tmp_path / "out"),
        ]
    )
    assert rc == 1
    assert not (tmp_path / "out").exists()


def test_eval_trajectory_fails_on_missing_file(tmp_path):
    rc = main(
        [
            "eval-trajectory",
            "--gt",
            str(tmp_path / "nope.json"),
            "--computed",
            str(tmp_path / "nope.json"),
            "--out",
            str(tmp_path / "out"),
        ]
    )
    assert rc == 1


def test_check_jacobians_command(capsys):
    rc = main(["check-jacobians", "--distortion", "brown", "--trials", "3", "--seed", "5"])
    assert rc == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 3
    for i, line in enumerate(lines):
        rec = json.loads(line)
        assert rec["trial"] == i
        assert rec["distortion"] == "brown"
        assert rec["ok"] is True


def test_simulate_trajectory_command(tmp_path, capsys):
    rc = main(
        [
            "simulate-trajectory",
            "--out-gt",
            str(tmp_path / "gt.json"),
            "--out-computed",
            str(tmp_path / "computed.json"),
            "--cameras",
            "6",
        ]
    )
    assert rc == 0
    assert capsys.readouterr().out.count("Wrote") == 2
    data = json.loads((tmp_path / "computed.json").read_text(encoding="utf-8"))
    assert len(data["cameras"]) == 6


def test_eval_trajectory_fails_on_invalid_config(tmp_path):
    gt, computed, _ = synthetic_trajectory_pair(np.random.default_rng(2), n_cameras=6)
    save_trajectory(tmp_path / "gt.json", gt)
    save_trajectory(tmp_path / "computed.json", computed)
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"schema_version": "panobundle.config.v0", "histogram_bins": None}), encoding="utf-8")
    rc = main(
        [
            "eval-trajectory",
            "--gt",
            str(tmp_path / "gt.json"),
            "--computed",
            str(tmp_path / "computed.json"),
            "--out",
            str(tmp_path / "out"),
            "--config",
            str(cfg),
        ]
    )
    assert rc == 1
    assert not (tmp_path / "out").exists()


def test_eval_trajectory_fails_on_non_object_trajectory(tmp_path):
    (tmp_path / "gt.json").write_text("[]", encoding="utf-8")
    rc = main(
        [
            "eval-trajectory",
            "--gt",
            str(tmp_path / "gt.json"),
            "--computed",
            str(tmp_path / "gt.json"),
            "--out",
            str(tmp_path / "out"),
        ]
    )
    assert rc == 1


def test_simulate_trajectory_fails_on_unwritable_output(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    rc = main(
        [
            "simulate-trajectory",
            "--out-gt",
            str(blocker / "gt.json"),
            "--out-computed",
            str(tmp_path / "computed.json"),
        ]
    )
    assert rc == 1
    assert not (tmp_path / "computed.json").exists()
