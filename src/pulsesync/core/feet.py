"""Beat-level foot-to-foot timing.

A pulse foot is the local minimum preceding the steepest part of the
systolic upstroke.  Upstrokes are located as peaks of the first derivative
exceeding a small fraction of the window's maximum slope; from each one the
detector walks backwards down the waveform to the preceding minimum.  Face
and finger feet are then paired beat by beat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy.signal import find_peaks

from ..utils.signals import iqr, median

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FootToFootEstimate:
    """Median and spread of accepted face-to-finger foot lags.

    An estimate with ``paired_beats == 0`` is the empty sentinel: no beat
    could be paired and the timing values carry no information.
    """

    median_lag_ms: float
    iqr_ms: float
    paired_beats: int
    lags_ms: tuple[float, ...] = field(default=(), repr=False)

    @property
    def valid(self) -> bool:
        return self.paired_beats > 0

    @classmethod
    def empty(cls) -> "FootToFootEstimate":
        return cls(0.0, 0.0, 0)


def detect_feet(
    signal: Sequence[float] | np.ndarray,
    fs: float,
    *,
    slope_fraction: float = 0.05,
    refractory_ms: float = 350.0,
) -> np.ndarray:
    """Return foot times in milliseconds from the start of ``signal``.

    The backward search from an upstroke stops at the previous upstroke; a
    foot that would lie on or before it (or at the window start) is dropped.
    """

    x = np.asarray(signal, dtype=float).reshape(-1)
    if x.size < 3 or not np.all(np.isfinite(x)):
        return np.zeros(0)
    slope = np.gradient(x)
    max_slope = float(slope.max())
    if max_slope <= 0.0:
        return np.zeros(0)

    distance = max(1, int(refractory_ms / 1000.0 * fs))
    upstrokes, _ = find_peaks(slope, height=slope_fraction * max_slope, distance=distance)

    feet: list[int] = []
    floor = 0
    for i in upstrokes:
        j = int(i)
        while j > floor and x[j - 1] < x[j]:
            j -= 1
        # Reaching the previous upstroke (or the window start) means no minimum.
        if j > floor:
            feet.append(j)
        floor = int(i)
    return np.asarray(feet, dtype=float) * 1000.0 / fs


def pair_feet(
    face_ms: np.ndarray,
    finger_ms: np.ndarray,
    *,
    min_lag_ms: float = 50.0,
    max_lag_ms: float = 500.0,
) -> np.ndarray:
    """Pair each face foot with the nearest finger foot.

    Only lags ``finger - face`` inside ``[min_lag_ms, max_lag_ms]`` are kept.
    """

    if face_ms.size == 0 or finger_ms.size == 0:
        return np.zeros(0)
    finger_sorted = np.sort(finger_ms)
    pos = np.searchsorted(finger_sorted, face_ms)
    lo = np.clip(pos - 1, 0, finger_sorted.size - 1)
    hi = np.clip(pos, 0, finger_sorted.size - 1)
    pick_hi = np.abs(finger_sorted[hi] - face_ms) < np.abs(finger_sorted[lo] - face_ms)
    nearest = np.where(pick_hi, finger_sorted[hi], finger_sorted[lo])
    lags = nearest - face_ms
    return lags[(lags >= min_lag_ms) & (lags <= max_lag_ms)]


def foot_to_foot_lag(
    face: Sequence[float] | np.ndarray,
    finger: Sequence[float] | np.ndarray,
    fs: float,
    *,
    slope_fraction: float = 0.05,
    refractory_ms: float = 350.0,
    min_lag_ms: float = 50.0,
    max_lag_ms: float = 500.0,
) -> FootToFootEstimate:
    """Median and IQR of paired foot lags; the empty sentinel when none pair."""

    face_feet = detect_feet(face, fs, slope_fraction=slope_fraction, refractory_ms=refractory_ms)
    finger_feet = detect_feet(finger, fs, slope_fraction=slope_fraction, refractory_ms=refractory_ms)
    lags = pair_feet(face_feet, finger_feet, min_lag_ms=min_lag_ms, max_lag_ms=max_lag_ms)
    if lags.size == 0:
        logger.debug("no foot pairs (face=%d finger=%d feet)", face_feet.size, finger_feet.size)
        return FootToFootEstimate.empty()
    return FootToFootEstimate(
        median_lag_ms=median(lags),
        iqr_ms=iqr(lags),
        paired_beats=int(lags.size),
        lags_ms=tuple(float(v) for v in lags),
    )


__all__ = ["FootToFootEstimate", "detect_feet", "pair_feet", "foot_to_foot_lag"]
