from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from panobundle.bundle.panorama_cost import PanoramaPinholeCost


@dataclass(frozen=True)
class GradientCheckReport:
    max_abs_error: tuple[float, ...]  # per parameter block
    max_rel_error: tuple[float, ...]
    ok: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "max_abs_error": [float(v) for v in self.max_abs_error],
            "max_rel_error": [float(v) for v in self.max_rel_error],
            "ok": bool(self.ok),
        }


def _residual(cost: PanoramaPinholeCost, blocks: Sequence[np.ndarray]) -> np.ndarray:
    r, _ = cost.evaluate(blocks[0], blocks[1], blocks[2], want=(False, False, False))
    return r


def numeric_jacobians(
    cost: PanoramaPinholeCost,
    parameters: Sequence[np.ndarray],
    step: float = 1e-6,
) -> list[np.ndarray]:
    """
    Central finite-difference jacobians of every parameter block.

    The step is relative to the magnitude of each parameter (absolute for
    parameters close to zero).
    """
    blocks = [np.array(p, dtype=np.float64).reshape(-1) for p in parameters]
    out: list[np.ndarray] = []
    for k, block in enumerate(blocks):
        J = np.zeros((cost.num_residuals, block.size), dtype=np.float64)
        for c in range(block.size):
            h = float(step) * max(1.0, abs(float(block[c])))
            plus = [b.copy() for b in blocks]
            minus = [b.copy() for b in blocks]
            plus[k][c] += h
            minus[k][c] -= h
            J[:, c] = (_residual(cost, plus) - _residual(cost, minus)) / (2.0 * h)
        out.append(J)
    return out


def check_jacobians(
    cost: PanoramaPinholeCost,
    parameters: Sequence[np.ndarray],
    *,
    rtol: float = 1e-4,
    atol: float = 1e-6,
    step: float = 1e-6,
) -> GradientCheckReport:
    """
    Compare analytic and numeric jacobians entry by entry.

    An entry passes when |analytic - numeric| <= atol + rtol * max(|analytic|, |numeric|).
    """
    _r, analytic = cost.evaluate(parameters[0], parameters[1], parameters[2])
    numeric = numeric_jacobians(cost, parameters, step=step)

    abs_errs: list[float] = []
    rel_errs: list[float] = []
    ok = True
    for k, (Ja, Jn) in enumerate(zip(analytic, numeric)):
        if Ja is None:
            raise RuntimeError(f"no analytic jacobian returned for parameter block {k}")
        diff = np.abs(Ja - Jn)
        scale = np.maximum(np.abs(Ja), np.abs(Jn))
        abs_errs.append(float(np.max(diff)) if diff.size else 0.0)
        rel = diff / np.maximum(scale, 1e-12)
        rel_errs.append(float(np.max(np.where(scale > atol, rel, 0.0))) if diff.size else 0.0)
        if diff.size and not np.all(diff <= atol + rtol * scale):
            ok = False
    return GradientCheckReport(max_abs_error=tuple(abs_errs), max_rel_error=tuple(rel_errs), ok=ok)
