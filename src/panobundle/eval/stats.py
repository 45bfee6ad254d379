from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class BoxStats:
    count: int
    min: float
    max: float
    mean: float
    median: float
    first_quartile: float
    third_quartile: float

    def to_dict(self) -> dict[str, float]:
        return {
            "count": float(self.count),
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "median": self.median,
            "first_quartile": self.first_quartile,
            "third_quartile": self.third_quartile,
        }

    def __str__(self) -> str:
        return (
            f"min: {self.min:.6g}\nmean: {self.mean:.6g}\nmedian: {self.median:.6g}\nmax: {self.max:.6g}\n"
            f"first quartile: {self.first_quartile:.6g}\nthird quartile: {self.third_quartile:.6g}"
        )


@dataclass(frozen=True)
class Histogram:
    edges: np.ndarray  # (bins+1,)
    counts: np.ndarray  # (bins,)

    def to_dict(self) -> dict[str, list]:
        return {
            "edges": [float(v) for v in self.edges.tolist()],
            "counts": [int(v) for v in self.counts.tolist()],
        }


def box_stats(values) -> BoxStats:
    v = np.asarray(values, dtype=np.float64).reshape(-1)
    if v.size == 0:
        raise ValueError("cannot compute statistics of an empty sequence")
    return BoxStats(
        count=int(v.size),
        min=float(np.min(v)),
        max=float(np.max(v)),
        mean=float(np.mean(v)),
        median=float(np.median(v)),
        first_quartile=float(np.quantile(v, 0.25)),
        third_quartile=float(np.quantile(v, 0.75)),
    )


def histogram(values, bins: int = 50) -> Histogram:
    """Fixed-bucket histogram over [0, max(values)]; values below 0 are dropped."""
    v = np.asarray(values, dtype=np.float64).reshape(-1)
    if v.size == 0:
        raise ValueError("cannot build a histogram of an empty sequence")
    upper = float(np.max(v))
    if upper <= 0.0:
        upper = 1.0
    counts, edges = np.histogram(v, bins=int(bins), range=(0.0, upper))
    return Histogram(edges=edges.astype(np.float64), counts=counts.astype(np.int64))
