"""Per-channel Signal Quality Index (SQI).

The SQI starts from 100 points and subtracts hinge penalties:

* an SNR penalty when the in-band SNR falls below the channel's target,
* a channel-specific penalty (ROI motion for the face channel, clipped
  pixel fraction for the finger channel),
* a shared penalty from the motion sensor RMS.

Every penalty is a non-decreasing function of its input, so raising any
single penalty input can never raise the SQI.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.signal import periodogram

from ..config import QualitySettings, Settings

logger = logging.getLogger(__name__)

FACE = "face"
FINGER = "finger"


@dataclass(frozen=True)
class ChannelQuality:
    """SQI breakdown for one channel over one analysis window.

    Attributes
    ----------
    snr_db:
        In-band to out-of-band power ratio in dB.
    snr_score:
        ``100`` minus the SNR penalty, clamped to ``[0, 100]``.
    penalty:
        Points lost to face motion or finger saturation.
    aux_penalty:
        Points lost to motion-sensor RMS.
    sqi:
        Composite score clamped to ``[0, 100]``.
    """

    channel: str
    snr_db: float
    snr_score: float
    penalty: float
    aux_penalty: float
    sqi: int

    def as_dict(self) -> dict:
        return {
            "channel": self.channel,
            "snr_db": self.snr_db,
            "snr_score": self.snr_score,
            "penalty": self.penalty,
            "aux_penalty": self.aux_penalty,
            "sqi": self.sqi,
        }


def snr_db(
    signal: Sequence[float] | np.ndarray,
    fs: float,
    band: tuple[float, float] = (0.7, 4.0),
    *,
    min_samples: int = 64,
    cap_db: float = 50.0,
) -> float:
    """Ratio of cardiac-band power to out-of-band power, in dB.

    A Hann-windowed periodogram of the linearly detrended input is split at
    the band edges; bins below 0.1 Hz are ignored.  Inputs shorter than
    ``min_samples`` return ``0.0`` and a noise floor of zero returns
    ``cap_db``.
    """

    x = np.asarray(signal, dtype=float).reshape(-1)
    if x.size < min_samples or not np.all(np.isfinite(x)):
        return 0.0
    freqs, power = periodogram(x, fs=fs, window="hann", detrend="linear")
    usable = freqs >= 0.1
    in_band = usable & (freqs >= band[0]) & (freqs <= band[1])
    out_band = usable & ~in_band
    signal_power = float(power[in_band].sum())
    noise_power = float(power[out_band].sum())
    if noise_power <= 1e-12:
        return cap_db if signal_power > 0 else 0.0
    if signal_power <= 0:
        return -cap_db
    return float(min(cap_db, 10.0 * math.log10(signal_power / noise_power)))


def hinge(value: float | None, threshold: float, slope: float) -> float:
    """Penalty ``slope * max(0, value - threshold)``.

    ``None`` means the metric was not measured and costs nothing; a
    non-finite value is treated as the worst case.
    """

    if value is None:
        return 0.0
    if not math.isfinite(value):
        return math.inf
    return slope * max(0.0, value - threshold)


def _clamp_score(score: float) -> int:
    if math.isnan(score):
        return 0
    return int(max(0.0, min(100.0, score)))


def face_sqi(
    snr: float,
    motion_px: float | None = None,
    imu_g: float | None = None,
    *,
    settings: QualitySettings | None = None,
) -> ChannelQuality:
    """Composite SQI for the proximal (face) channel."""

    cfg = settings or QualitySettings()
    snr_penalty = hinge(-snr, -cfg.face_snr_target_db, cfg.face_snr_slope)
    snr_score = max(0.0, 100.0 - snr_penalty)
    penalty = hinge(motion_px, cfg.motion_threshold_px, cfg.motion_slope)
    aux = hinge(imu_g, cfg.imu_threshold_g, cfg.imu_slope)
    return ChannelQuality(FACE, snr, snr_score, penalty, aux,
                          _clamp_score(100.0 - snr_penalty - penalty - aux))


def finger_sqi(
    snr: float,
    saturation: float | None = None,
    imu_g: float | None = None,
    *,
    settings: QualitySettings | None = None,
) -> ChannelQuality:
    """Composite SQI for the distal (finger) channel.

    ``saturation`` is the clipped-pixel fraction in ``[0, 1]``.
    """

    cfg = settings or QualitySettings()
    snr_penalty = hinge(-snr, -cfg.finger_snr_target_db, cfg.finger_snr_slope)
    snr_score = max(0.0, 100.0 - snr_penalty)
    penalty = hinge(saturation, cfg.saturation_threshold, cfg.saturation_slope)
    aux = hinge(imu_g, cfg.imu_threshold_g, cfg.imu_slope)
    return ChannelQuality(FINGER, snr, snr_score, penalty, aux,
                          _clamp_score(100.0 - snr_penalty - penalty - aux))


def assess_channel(
    channel: str,
    signal: Sequence[float] | np.ndarray,
    fs: float,
    *,
    channel_metric: float | None = None,
    imu_g: float | None = None,
    settings: Settings | None = None,
) -> ChannelQuality:
    """Measure SNR on ``signal`` and build the channel's SQI.

    ``channel_metric`` is the face motion magnitude for ``"face"`` and the
    saturation fraction for ``"finger"``.
    """

    if settings is None:
        settings = Settings()
    q = settings.quality
    snr = snr_db(signal, fs, settings.filter.band,
                 min_samples=q.snr_min_samples, cap_db=q.snr_cap_db)
    if channel == FACE:
        result = face_sqi(snr, channel_metric, imu_g, settings=q)
    elif channel == FINGER:
        result = finger_sqi(snr, channel_metric, imu_g, settings=q)
    else:
        raise ValueError(f"unknown channel: {channel!r}")
    logger.debug("%s sqi=%d snr=%.1f dB penalty=%.1f aux=%.1f",
                 channel, result.sqi, snr, result.penalty, result.aux_penalty)
    return result


__all__ = [
    "FACE",
    "FINGER",
    "ChannelQuality",
    "snr_db",
    "hinge",
    "face_sqi",
    "finger_sqi",
    "assess_channel",
]
