"""Per-channel signal conditioning.

Each resampled channel is detrended with a high-pass Butterworth filter,
band-limited to the cardiac band and z-normalised.  All filters are built
as second-order sections and applied forward-backward, which keeps long
recordings numerically stable and leaves the relative timing of the two
channels untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.signal import butter, sosfilt, sosfiltfilt

from ..config import Settings
from ..errors import ConfigurationError
from .wavelet import denoise, should_denoise

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionedChannel:
    """Output of :func:`condition_channel`.

    Attributes
    ----------
    signal:
        Detrended, band-passed and z-normalised samples.
    raw:
        The resampled input the signal was derived from.
    denoised:
        ``True`` when the wavelet shrinkage pass was applied.
    """

    signal: np.ndarray
    raw: np.ndarray
    denoised: bool = False


def _padlen(sos: np.ndarray) -> int:
    # Same default scipy uses for sosfiltfilt.
    n_zeros = min(int((sos[:, 2] == 0).sum()), int((sos[:, 5] == 0).sum()))
    return 3 * (2 * len(sos) + 1 - n_zeros)


def _apply(sos: np.ndarray, x: np.ndarray) -> np.ndarray:
    if x.size > _padlen(sos):
        return sosfiltfilt(sos, x)
    # Too short for forward-backward padding.
    return sosfilt(sos, x)


def _as_finite(signal: Sequence[float] | np.ndarray) -> np.ndarray:
    arr = np.asarray(signal, dtype=float).reshape(-1)
    if not np.all(np.isfinite(arr)):
        logger.debug("replacing %d non-finite samples with zeros", int((~np.isfinite(arr)).sum()))
        arr = np.where(np.isfinite(arr), arr, 0.0)
    return arr


def detrend(
    signal: Sequence[float] | np.ndarray,
    fs: float,
    cutoff_hz: float = 0.5,
    order: int = 2,
) -> np.ndarray:
    """Remove baseline wander with a zero-phase Butterworth high-pass."""

    x = _as_finite(signal)
    if x.size == 0:
        return x
    nyq = 0.5 * fs
    if not 0 < cutoff_hz < nyq:
        raise ConfigurationError(f"cutoff {cutoff_hz} Hz must lie in (0, {nyq}) Hz")
    sos = butter(order, cutoff_hz / nyq, btype="highpass", output="sos")
    # Start from zero mean so the filter transient stays small.
    return _apply(sos, x - x.mean())


def bandpass(
    signal: Sequence[float] | np.ndarray,
    fs: float,
    low_hz: float = 0.7,
    high_hz: float = 4.0,
    order: int = 4,
) -> np.ndarray:
    """Zero-phase Butterworth band-pass between ``low_hz`` and ``high_hz``.

    ``order`` is the order of the analogue prototype per edge, so the default
    of 4 yields a 4th-order low/high roll-off on each side of the passband.
    """

    x = _as_finite(signal)
    if x.size == 0:
        return x
    nyq = 0.5 * fs
    if not 0 < low_hz < high_hz < nyq:
        raise ConfigurationError(f"band {low_hz}-{high_hz} Hz must lie in (0, {nyq}) Hz")
    sos = butter(order, [low_hz / nyq, high_hz / nyq], btype="bandpass", output="sos")
    return _apply(sos, x - x.mean())


def zscore(signal: Sequence[float] | np.ndarray, eps: float = 1e-10) -> np.ndarray:
    """Subtract the mean and divide by the standard deviation.

    A numerically flat signal returns zeros instead of amplifying noise or
    producing NaN.
    """

    x = _as_finite(signal)
    if x.size == 0:
        return x
    std = float(np.std(x))
    if std <= eps:
        return np.zeros_like(x)
    return (x - x.mean()) / std


def condition_channel(
    raw: Sequence[float] | np.ndarray,
    fs: float,
    *,
    settings: Settings | None = None,
    sqi: float | None = None,
) -> ConditionedChannel:
    """Detrend, optionally denoise, band-pass and normalise one channel.

    The wavelet pass runs only when ``sqi`` is supplied and lies inside the
    configured borderline band; clean channels and hopeless ones are left
    alone.
    """

    if settings is None:
        settings = Settings()
    fcfg = settings.filter
    dcfg = settings.denoise

    raw_arr = _as_finite(raw)
    x = detrend(raw_arr, fs, fcfg.detrend_cutoff_hz, fcfg.detrend_order)

    applied = False
    if dcfg.enabled and sqi is not None and should_denoise(sqi, dcfg.sqi_low, dcfg.sqi_high):
        x = denoise(x, levels=dcfg.levels, threshold_factor=dcfg.threshold_factor, mode=dcfg.mode)
        applied = True
        logger.debug("wavelet denoise applied (sqi=%s)", sqi)

    x = bandpass(x, fs, fcfg.low_hz, fcfg.high_hz, fcfg.order)
    return ConditionedChannel(signal=zscore(x), raw=raw_arr, denoised=applied)


__all__ = ["ConditionedChannel", "detrend", "bandpass", "zscore", "condition_channel"]
