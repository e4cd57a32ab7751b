"""Normalised cross-correlation lag with sub-sample refinement.

For every integer lag ``k`` in ``[-K, K]`` the Pearson coefficient between
``x[i]`` and ``y[i + k]`` is computed over the overlapping samples, so a
positive lag means ``y`` (the finger channel) trails ``x`` (the face
channel).  The discrete maximum is refined by the vertex of the parabola
through it and its two neighbours.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

INSUFFICIENT_SAMPLES = "InsufficientSamples"


@dataclass(frozen=True)
class CrossCorrelationEstimate:
    """Lag estimate from :func:`cross_correlation_lag`.

    Attributes
    ----------
    lag_ms:
        Refined lag in milliseconds; positive when the finger pulse arrives
        after the face pulse.
    correlation:
        Peak Pearson coefficient clamped to ``[0, 1]``.
    peak_sharpness:
        Peak value minus the mean of its two neighbours.
    fwhm_ms:
        Width of the correlation peak at half its height.
    """

    lag_ms: float
    correlation: float
    peak_sharpness: float
    fwhm_ms: float = 0.0
    lag_samples: float = 0.0
    valid: bool = True
    reason: str | None = None

    @classmethod
    def invalid(cls, reason: str) -> "CrossCorrelationEstimate":
        return cls(0.0, 0.0, 0.0, valid=False, reason=reason)


def normalized_cross_correlation(
    x: Sequence[float] | np.ndarray,
    y: Sequence[float] | np.ndarray,
    max_lag: int,
) -> np.ndarray:
    """Pearson coefficient for every lag in ``[-max_lag, max_lag]``.

    Index ``max_lag`` of the returned array corresponds to zero lag.  Lags
    with a degenerate overlap score ``0``.
    """

    xa = np.asarray(x, dtype=float)
    ya = np.asarray(y, dtype=float)
    n = min(xa.size, ya.size)
    xa = xa[:n] - xa[:n].mean()
    ya = ya[:n] - ya[:n].mean()
    out = np.zeros(2 * max_lag + 1)
    for k in range(-max_lag, max_lag + 1):
        if k >= 0:
            xs, ys = xa[: n - k], ya[k:]
        else:
            xs, ys = xa[-k:], ya[: n + k]
        if xs.size == 0:
            continue
        sxx = float(np.dot(xs, xs))
        syy = float(np.dot(ys, ys))
        if sxx > 1e-10 and syy > 1e-10:
            out[k + max_lag] = float(np.dot(xs, ys)) / np.sqrt(sxx * syy)
    return out


def quadratic_vertex(values: np.ndarray, idx: int) -> float:
    """Offset of the parabola vertex through ``values[idx-1:idx+2]``.

    Returns ``0.0`` at the array edges or for a flat neighbourhood.
    """

    if idx <= 0 or idx >= values.size - 1:
        return 0.0
    y1, y2, y3 = values[idx - 1], values[idx], values[idx + 1]
    a = (y1 + y3) / 2.0 - y2
    b = (y3 - y1) / 2.0
    if abs(a) <= 1e-10:
        return 0.0
    delta = -b / (2.0 * a)
    # A true maximum lies within half a sample of the discrete peak.
    return float(np.clip(delta, -0.5, 0.5))


def peak_sharpness(values: np.ndarray, idx: int) -> float:
    """Peak minus the mean of its immediate neighbours; ``0`` at the edges."""

    if idx <= 0 or idx >= values.size - 1:
        return 0.0
    return float(values[idx] - (values[idx - 1] + values[idx + 1]) / 2.0)


def _fwhm_samples(values: np.ndarray, idx: int) -> float:
    half = values[idx] / 2.0
    left = idx
    while left > 0 and values[left] > half:
        left -= 1
    right = idx
    while right < values.size - 1 and values[right] > half:
        right += 1
    return float(right - left)


def cross_correlation_lag(
    face: Sequence[float] | np.ndarray,
    finger: Sequence[float] | np.ndarray,
    fs: float,
    *,
    max_lag_ms: float = 200.0,
    min_samples: int = 100,
) -> CrossCorrelationEstimate:
    """Estimate the face-to-finger lag by normalised cross-correlation.

    Windows shorter than ``min_samples`` produce an invalid estimate with
    reason ``"InsufficientSamples"`` instead of raising.
    """

    x = np.asarray(face, dtype=float).reshape(-1)
    y = np.asarray(finger, dtype=float).reshape(-1)
    if min(x.size, y.size) < min_samples:
        logger.debug("xcorr skipped: %d samples < %d", min(x.size, y.size), min_samples)
        return CrossCorrelationEstimate.invalid(INSUFFICIENT_SAMPLES)
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        return CrossCorrelationEstimate.invalid("NonFinite")

    max_lag = max(1, int(fs * max_lag_ms / 1000.0))
    max_lag = min(max_lag, min(x.size, y.size) - 2)
    corr = normalized_cross_correlation(x, y, max_lag)
    idx = int(np.argmax(corr))
    peak = float(corr[idx])
    if peak <= 0.0:
        return CrossCorrelationEstimate(0.0, 0.0, 0.0, valid=False, reason="NoCorrelation")

    lag_samples = (idx - max_lag) + quadratic_vertex(corr, idx)
    return CrossCorrelationEstimate(
        lag_ms=lag_samples * 1000.0 / fs,
        correlation=min(1.0, peak),
        peak_sharpness=peak_sharpness(corr, idx),
        fwhm_ms=_fwhm_samples(corr, idx) * 1000.0 / fs,
        lag_samples=lag_samples,
    )


__all__ = [
    "INSUFFICIENT_SAMPLES",
    "CrossCorrelationEstimate",
    "normalized_cross_correlation",
    "quadratic_vertex",
    "peak_sharpness",
    "cross_correlation_lag",
]
