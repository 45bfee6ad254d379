from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_SCHEMA = "panobundle.config.v0"


class ConfigValidationError(ValueError):
    pass


@dataclass(frozen=True)
class RansacConfig:
    """
    Robust similarity estimation settings.

    - `min_sample_size`: points per hypothesis (3 is the minimal closed-form case)
    - `inlier_threshold`: residual distance in ground-truth units; None derives it
      as `auto_threshold_ratio` times the RMS spread of the ground-truth points
    - `refine`: re-estimate the transform on all inliers of the best hypothesis
    """

    max_iterations: int = 1024
    min_sample_size: int = 3
    inlier_threshold: float | None = None
    auto_threshold_ratio: float = 0.05
    refine: bool = True


@dataclass(frozen=True)
class EvaluationConfig:
    ransac: RansacConfig = field(default_factory=RansacConfig)
    histogram_bins: int = 50
    seed: int = 0


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def _is_number(raw: Any) -> bool:
    return isinstance(raw, (int, float)) and not isinstance(raw, bool) and math.isfinite(raw)


def _int_field(data: dict[str, Any], key: str, default: int, name: str) -> int:
    raw = data.get(key, default)
    _require(isinstance(raw, int) and not isinstance(raw, bool), f"{name} must be an integer")
    return int(raw)


def _float_field(data: dict[str, Any], key: str, default: float, name: str) -> float:
    raw = data.get(key, default)
    _require(_is_number(raw), f"{name} must be a finite number")
    return float(raw)


def parse_ransac_config(data: dict[str, Any]) -> RansacConfig:
    _require(isinstance(data, dict), "ransac must be an object")
    defaults = RansacConfig()

    max_iterations = _int_field(data, "max_iterations", defaults.max_iterations, "ransac.max_iterations")
    _require(max_iterations >= 1, "ransac.max_iterations must be >= 1")

    min_sample_size = _int_field(data, "min_sample_size", defaults.min_sample_size, "ransac.min_sample_size")
    _require(min_sample_size >= 3, "ransac.min_sample_size must be >= 3")

    thr_raw = data.get("inlier_threshold", defaults.inlier_threshold)
    _require(thr_raw is None or _is_number(thr_raw), "ransac.inlier_threshold must be a number or null")
    threshold = None if thr_raw is None else float(thr_raw)
    _require(threshold is None or threshold > 0.0, "ransac.inlier_threshold must be > 0 (or null for automatic)")

    ratio = _float_field(data, "auto_threshold_ratio", defaults.auto_threshold_ratio, "ransac.auto_threshold_ratio")
    _require(ratio > 0.0, "ransac.auto_threshold_ratio must be > 0")

    refine = data.get("refine", defaults.refine)
    _require(isinstance(refine, bool), "ransac.refine must be a boolean")

    return RansacConfig(
        max_iterations=max_iterations,
        min_sample_size=min_sample_size,
        inlier_threshold=threshold,
        auto_threshold_ratio=ratio,
        refine=refine,
    )


def parse_evaluation_config(data: dict[str, Any]) -> EvaluationConfig:
    _require(isinstance(data, dict), "config must be a JSON object")
    schema_version = data.get("schema_version")
    _require(schema_version == CONFIG_SCHEMA, f"schema_version must be {CONFIG_SCHEMA}")

    ransac = parse_ransac_config(data.get("ransac", {}))

    bins = _int_field(data, "histogram_bins", 50, "histogram_bins")
    _require(bins >= 1, "histogram_bins must be >= 1")

    seed = _int_field(data, "seed", 0, "seed")
    _require(seed >= 0, "seed must be a non-negative integer")

    return EvaluationConfig(ransac=ransac, histogram_bins=bins, seed=seed)


def load_evaluation_config(path: Path) -> EvaluationConfig:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"{path}: invalid JSON: {e}") from e
    return parse_evaluation_config(data)


def evaluation_config_to_dict(cfg: EvaluationConfig) -> dict[str, Any]:
    return {
        "schema_version": CONFIG_SCHEMA,
        "ransac": {
            "max_iterations": cfg.ransac.max_iterations,
            "min_sample_size": cfg.ransac.min_sample_size,
            "inlier_threshold": cfg.ransac.inlier_threshold,
            "auto_threshold_ratio": cfg.ransac.auto_threshold_ratio,
            "refine": cfg.ransac.refine,
        },
        "histogram_bins": cfg.histogram_bins,
        "seed": cfg.seed,
    }
