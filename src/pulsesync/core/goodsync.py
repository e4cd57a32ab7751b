"""GoodSync segment detection.

A session is scanned with overlapping windows.  Each window is scored on
cross-channel correlation, heart-rate agreement, pulse-width agreement,
per-channel SQI and (optionally) motion-sensor RMS.  Windows passing every
check are unioned with a morphological closing that bridges short gaps, and
segments shorter than the minimum duration are discarded.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from ..config import GoodSyncSettings, Settings
from ..types import AuxMetrics, Window
from ..utils.windows import iter_windows
from .peaks import detect_peaks, heart_rate, pulse_width_ms
from .quality import FACE, FINGER, assess_channel
from .xcorr import cross_correlation_lag

logger = logging.getLogger(__name__)


class WindowState(str, enum.Enum):
    CANDIDATE_GOOD = "candidate_good"
    CANDIDATE_BAD = "candidate_bad"


@dataclass(frozen=True)
class WindowMetrics:
    """Quality metrics of one sliding window.

    Unmeasurable deltas (a channel without three peaks, say) are ``inf``.
    """

    start_ms: float
    end_ms: float
    correlation: float
    hr_delta_bpm: float
    fwhm_delta_ms: float
    sqi_face: int
    sqi_finger: int
    imu_rms_g: float | None = None
    lag_ms: float = 0.0


@dataclass(frozen=True)
class GateDecision:
    state: WindowState
    failures: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.state is WindowState.CANDIDATE_GOOD


@dataclass(frozen=True)
class SyncSegment:
    """Continuous span where both channels are trustworthy together.

    Metadata is conservative across the merged windows: the lowest
    correlation and SQIs and the largest heart-rate delta.
    """

    start_ms: float
    end_ms: float
    correlation: float
    hr_delta_bpm: float
    sqi_face: int
    sqi_finger: int

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms

    def as_dict(self) -> dict:
        return {
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "duration_ms": self.duration_ms,
            "correlation": self.correlation,
            "hr_delta_bpm": self.hr_delta_bpm,
            "sqi_face": self.sqi_face,
            "sqi_finger": self.sqi_finger,
        }


def evaluate_gate(metrics: WindowMetrics, settings: GoodSyncSettings | None = None) -> GateDecision:
    """Apply the multi-metric gate to one window."""

    cfg = settings or GoodSyncSettings()
    failures: list[str] = []
    if not metrics.correlation >= cfg.min_correlation:
        failures.append("correlation")
    if not metrics.hr_delta_bpm <= cfg.max_hr_delta_bpm:
        failures.append("hr_delta")
    if not metrics.fwhm_delta_ms <= cfg.max_fwhm_delta_ms:
        failures.append("pulse_width")
    if metrics.sqi_face < cfg.min_sqi:
        failures.append("sqi_face")
    if metrics.sqi_finger < cfg.min_sqi:
        failures.append("sqi_finger")
    if cfg.use_imu_gate and metrics.imu_rms_g is not None and not metrics.imu_rms_g <= cfg.imu_max_g:
        failures.append("imu")
    state = WindowState.CANDIDATE_BAD if failures else WindowState.CANDIDATE_GOOD
    return GateDecision(state, tuple(failures))


def merge_windows(
    good_windows: Iterable[WindowMetrics],
    max_gap_ms: float = 1000.0,
    min_segment_ms: float = 5000.0,
) -> list[SyncSegment]:
    """Union passing windows, bridge gaps up to ``max_gap_ms`` and drop short runs."""

    ordered = sorted(good_windows, key=lambda w: (w.start_ms, w.end_ms))
    groups: list[list[WindowMetrics]] = []
    end = -math.inf
    for win in ordered:
        if groups and win.start_ms - end <= max_gap_ms:
            groups[-1].append(win)
            end = max(end, win.end_ms)
        else:
            groups.append([win])
            end = win.end_ms

    segments: list[SyncSegment] = []
    for group in groups:
        seg = SyncSegment(
            start_ms=min(w.start_ms for w in group),
            end_ms=max(w.end_ms for w in group),
            correlation=min(w.correlation for w in group),
            hr_delta_bpm=max(w.hr_delta_bpm for w in group),
            sqi_face=min(w.sqi_face for w in group),
            sqi_finger=min(w.sqi_finger for w in group),
        )
        if seg.duration_ms >= min_segment_ms:
            segments.append(seg)
    return segments


def window_metrics(
    face: np.ndarray,
    finger: np.ndarray,
    fs: float,
    window: Window,
    *,
    raw_face: np.ndarray | None = None,
    raw_finger: np.ndarray | None = None,
    aux: AuxMetrics | None = None,
    settings: Settings | None = None,
) -> WindowMetrics:
    """Measure one window of the conditioned session."""

    if settings is None:
        settings = Settings()
    aux = aux or AuxMetrics()
    t = settings.timing
    sl = slice(window.start, window.end)
    f_win = face[sl]
    g_win = finger[sl]

    xc = cross_correlation_lag(f_win, g_win, fs, max_lag_ms=t.max_lag_ms, min_samples=t.min_samples)

    face_peaks = detect_peaks(f_win, fs, threshold_factor=t.peak_threshold_factor,
                              min_distance_ms=t.refractory_ms)
    finger_peaks = detect_peaks(g_win, fs, threshold_factor=t.peak_threshold_factor,
                                min_distance_ms=t.refractory_ms)
    hr_face = heart_rate(face_peaks)
    hr_finger = heart_rate(finger_peaks)
    hr_delta = abs(hr_face.bpm - hr_finger.bpm) if hr_face.valid and hr_finger.valid else math.inf

    w_face = pulse_width_ms(f_win, face_peaks, fs)
    w_finger = pulse_width_ms(g_win, finger_peaks, fs)
    fwhm_delta = abs(w_face - w_finger) if w_face is not None and w_finger is not None else math.inf

    imu = aux.window_mean("imu_rms_g", window.start, window.end)
    q_face = assess_channel(
        FACE, (raw_face if raw_face is not None else face)[sl], fs,
        channel_metric=aux.window_mean("face_motion_px", window.start, window.end),
        imu_g=imu, settings=settings,
    )
    q_finger = assess_channel(
        FINGER, (raw_finger if raw_finger is not None else finger)[sl], fs,
        channel_metric=aux.window_mean("finger_saturation", window.start, window.end),
        imu_g=imu, settings=settings,
    )
    return WindowMetrics(
        start_ms=window.start * 1000.0 / fs,
        end_ms=window.end * 1000.0 / fs,
        correlation=xc.correlation if xc.valid else 0.0,
        hr_delta_bpm=hr_delta,
        fwhm_delta_ms=fwhm_delta,
        sqi_face=q_face.sqi,
        sqi_finger=q_finger.sqi,
        imu_rms_g=imu,
        lag_ms=xc.lag_ms,
    )


def scan_windows(
    face: Sequence[float] | np.ndarray,
    finger: Sequence[float] | np.ndarray,
    fs: float,
    *,
    raw_face: Sequence[float] | np.ndarray | None = None,
    raw_finger: Sequence[float] | np.ndarray | None = None,
    aux: AuxMetrics | None = None,
    settings: Settings | None = None,
) -> list[tuple[WindowMetrics, GateDecision]]:
    """Score every sliding window of the session against the gate."""

    if settings is None:
        settings = Settings()
    cfg = settings.goodsync
    f = np.asarray(face, dtype=float)
    g = np.asarray(finger, dtype=float)
    rf = None if raw_face is None else np.asarray(raw_face, dtype=float)
    rg = None if raw_finger is None else np.asarray(raw_finger, dtype=float)
    n = min(f.size, g.size)
    size = max(1, int(round(cfg.window_s * fs)))
    step = max(1, int(round(cfg.step_s * fs)))

    scored = []
    windows = list(iter_windows(range(n), size, step)) if n >= size else []
    for win in windows:
        metrics = window_metrics(f, g, fs, win, raw_face=rf, raw_finger=rg, aux=aux, settings=settings)
        scored.append((metrics, evaluate_gate(metrics, cfg)))
    return scored


def detect_segments(
    face: Sequence[float] | np.ndarray,
    finger: Sequence[float] | np.ndarray,
    fs: float,
    *,
    raw_face: Sequence[float] | np.ndarray | None = None,
    raw_finger: Sequence[float] | np.ndarray | None = None,
    aux: AuxMetrics | None = None,
    settings: Settings | None = None,
) -> list[SyncSegment]:
    """Return the GoodSync segments of a conditioned session.

    ``raw_face``/``raw_finger`` are the signals SNR is measured on; they
    default to the conditioned channels.  A session shorter than one window
    yields an empty list.
    """

    if settings is None:
        settings = Settings()
    cfg = settings.goodsync
    scored = scan_windows(face, finger, fs, raw_face=raw_face, raw_finger=raw_finger,
                          aux=aux, settings=settings)
    good = [m for m, d in scored if d.passed]
    segments = merge_windows(good, cfg.gap_close_ms, cfg.min_segment_ms)
    logger.debug("goodsync: %d/%d windows passed, %d segment(s)",
                 len(good), len(scored), len(segments))
    return segments


__all__ = [
    "WindowState",
    "WindowMetrics",
    "GateDecision",
    "SyncSegment",
    "evaluate_gate",
    "merge_windows",
    "window_metrics",
    "scan_windows",
    "detect_segments",
]
