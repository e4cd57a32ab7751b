"""Robust statistics helpers shared by the estimators."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def median(data: Sequence[float]) -> float:
    """Median of *data*, ``0.0`` for an empty sequence."""

    arr = np.asarray(data, dtype=float)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def iqr(data: Sequence[float]) -> float:
    """Interquartile range using linear percentile interpolation.

    Fewer than two values have no spread and return ``0.0``.
    """

    arr = np.asarray(data, dtype=float)
    if arr.size < 2:
        return 0.0
    q1, q3 = np.percentile(arr, [25.0, 75.0])
    return float(q3 - q1)


def tukey_mask(data: Sequence[float], k: float = 1.5) -> np.ndarray:
    """Boolean mask of values inside the Tukey fences ``[Q1 - k*IQR, Q3 + k*IQR]``."""

    arr = np.asarray(data, dtype=float)
    if arr.size < 4:
        return np.ones(arr.shape, dtype=bool)
    q1, q3 = np.percentile(arr, [25.0, 75.0])
    spread = q3 - q1
    return (arr >= q1 - k * spread) & (arr <= q3 + k * spread)


def weighted_median(values: Sequence[float], weights: Sequence[float]) -> float:
    """Median of *values* where each entry counts ``weights[i]`` times.

    Falls back to the plain median when all weights are zero.
    """

    vals = np.asarray(values, dtype=float)
    w = np.asarray(weights, dtype=float)
    if vals.size == 0:
        return 0.0
    if vals.shape != w.shape:
        raise ValueError("values and weights must have the same shape")
    if not np.any(w > 0):
        return float(np.median(vals))
    order = np.argsort(vals, kind="stable")
    vals = vals[order]
    w = w[order]
    cum = np.cumsum(w)
    half = cum[-1] / 2.0
    idx = int(np.searchsorted(cum, half, side="left"))
    if np.isclose(cum[idx], half) and idx + 1 < vals.size:
        return float((vals[idx] + vals[idx + 1]) / 2.0)
    return float(vals[idx])
