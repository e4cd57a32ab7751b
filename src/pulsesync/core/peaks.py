"""Systolic peak detection, heart rate and pulse width.

These helpers feed the GoodSync gate (heart-rate and pulse-width agreement
between channels) and the near-real-time quality engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.signal import find_peaks, peak_widths

MIN_RR_MS = 350.0
MAX_RR_MS = 2000.0


@dataclass(frozen=True)
class PeakResult:
    """Detected peaks of one channel."""

    indices: np.ndarray
    times_ms: np.ndarray
    rr_ms: np.ndarray

    @property
    def count(self) -> int:
        return int(self.indices.size)

    @property
    def valid(self) -> bool:
        return self.indices.size >= 3 and self.rr_ms.size > 0


@dataclass(frozen=True)
class HeartRate:
    """Heart rate derived from RR intervals; ``bpm`` is ``0.0`` when invalid."""

    bpm: float
    rr_mean_ms: float
    rr_std_ms: float
    valid: bool

    @property
    def plausible(self) -> bool:
        return self.valid and 40.0 <= self.bpm <= 180.0


def detect_peaks(
    signal: Sequence[float] | np.ndarray,
    fs: float,
    *,
    threshold_factor: float = 0.3,
    min_distance_ms: float = MIN_RR_MS,
) -> PeakResult:
    """Find systolic peaks above ``mean + threshold_factor * std``.

    Peaks closer than ``min_distance_ms`` are suppressed, keeping the taller
    one.  RR intervals outside ``[350, 2000]`` ms are discarded.
    """

    x = np.asarray(signal, dtype=float).reshape(-1)
    empty = np.zeros(0)
    if x.size < 3 or not np.all(np.isfinite(x)):
        return PeakResult(np.zeros(0, dtype=int), empty, empty)

    height = float(x.mean() + threshold_factor * x.std())
    distance = max(1, int(min_distance_ms / 1000.0 * fs))
    idx, _ = find_peaks(x, height=height, distance=distance)

    times = idx * 1000.0 / fs
    rr = np.diff(times)
    rr = rr[(rr >= MIN_RR_MS) & (rr <= MAX_RR_MS)]
    return PeakResult(idx, times, rr)


def heart_rate(peaks: PeakResult) -> HeartRate:
    """``60000 / mean(RR)`` with RR spread; invalid without three peaks."""

    if not peaks.valid:
        return HeartRate(0.0, 0.0, 0.0, False)
    mean_rr = float(np.mean(peaks.rr_ms))
    return HeartRate(60_000.0 / mean_rr, mean_rr, float(np.std(peaks.rr_ms)), True)


def pulse_width_ms(signal: Sequence[float] | np.ndarray, peaks: PeakResult, fs: float) -> float | None:
    """Median full width at half maximum of the detected pulses.

    Widths are measured relative to each peak's prominence.  ``None`` when
    no peak was found.
    """

    if peaks.count == 0:
        return None
    x = np.asarray(signal, dtype=float).reshape(-1)
    widths, _, _, _ = peak_widths(x, peaks.indices, rel_height=0.5)
    if widths.size == 0:
        return None
    return float(np.median(widths)) * 1000.0 / fs


__all__ = [
    "MIN_RR_MS",
    "MAX_RR_MS",
    "PeakResult",
    "HeartRate",
    "detect_peaks",
    "heart_rate",
    "pulse_width_ms",
]
