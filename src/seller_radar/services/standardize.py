# src/seller_radar/services/standardize.py
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike

from seller_radar.domain.errors import FeatureMismatchError

VARIANCE_FLOOR = 1e-6


@dataclass(frozen=True)
class StandardizationStats:
    means: tuple[float, ...]
    std_devs: tuple[float, ...]

    def __len__(self) -> int:
        return len(self.means)


def fit(rows: Sequence[Sequence[float]] | np.ndarray) -> StandardizationStats:
    """
    Per-feature population mean / stddev over the training rows.

    Variance is floored at 1e-6 before the square root so constant
    features never divide by zero.
    """
    X = np.asarray(rows, dtype=float)
    if X.size == 0:
        return StandardizationStats(means=(), std_devs=())
    if X.ndim != 2:
        raise ValueError("fit expects a 2-D matrix of training rows")

    n = X.shape[0]
    means = X.sum(axis=0) / n
    variance = np.maximum((X * X).sum(axis=0) / n - means * means, VARIANCE_FLOOR)
    return StandardizationStats(
        means=tuple(float(m) for m in means),
        std_devs=tuple(float(s) for s in np.sqrt(variance)),
    )


def transform(values: ArrayLike, stats: StandardizationStats) -> np.ndarray:
    """
    z-score a single vector (1-D) or a matrix of rows (2-D) with stored stats.

    Inference always uses the stats captured at training time.
    """
    arr = np.asarray(values, dtype=float)
    means = np.asarray(stats.means, dtype=float)
    stds = np.asarray(stats.std_devs, dtype=float)
    if arr.shape[-1] != means.shape[0]:
        raise FeatureMismatchError(
            f"vector has {arr.shape[-1]} features but stats cover {means.shape[0]}"
        )
    return (arr - means) / stds
