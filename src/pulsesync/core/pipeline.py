"""End-to-end session analysis.

:func:`analyze_session` chains the stages: synchronise the raw streams onto
one timeline, score each channel, condition it (denoising borderline
channels), estimate PTT on overlapping analysis windows, aggregate the
windows robustly, detect GoodSync segments and finally gate the PTT on
confidence.  Malformed input never raises from here; it becomes a
:class:`~pulsesync.core.confidence.Withheld` result carrying the reason.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

import numpy as np

from ..config import Settings
from ..errors import InputError
from ..types import AuxMetrics, SampleStream
from ..utils.windows import covering_windows
from .confidence import PttReport, Withheld, combined_confidence, gate, guidance
from .consensus import ConsensusResult, SessionAggregate, aggregate, combine
from .feet import foot_to_foot_lag
from .filters import condition_channel, detrend
from .goodsync import SyncSegment, detect_segments
from .peaks import detect_peaks, heart_rate
from .quality import FACE, FINGER, ChannelQuality, assess_channel
from .timestamps import SynchronizationResult, synchronize
from .xcorr import cross_correlation_lag

logger = logging.getLogger(__name__)

REFERENCE_RATE_HZ = 100.0


@dataclass(frozen=True)
class ConditionedSession:
    """Intermediate signals kept for plotting and diagnostics."""

    time_ms: np.ndarray
    face: np.ndarray
    finger: np.ndarray
    face_denoised: bool = False
    finger_denoised: bool = False


@dataclass(frozen=True)
class SessionResult:
    """Outcome of :func:`analyze_session`.

    ``ptt`` is either :class:`Reported` or :class:`Withheld`; every other
    field is populated as far as the analysis got.
    """

    ptt: PttReport
    correlation: float = 0.0
    stability_ms: float = 0.0
    confidence: float = 0.0
    face_quality: ChannelQuality | None = None
    finger_quality: ChannelQuality | None = None
    segments: tuple[SyncSegment, ...] = ()
    windows: tuple[ConsensusResult, ...] = ()
    aggregate: SessionAggregate | None = None
    hr_face_bpm: float | None = None
    hr_finger_bpm: float | None = None
    synchronization: SynchronizationResult | None = field(default=None, repr=False)
    conditioned: ConditionedSession | None = field(default=None, repr=False)

    @property
    def reported(self) -> bool:
        return self.ptt.reported

    @property
    def ptt_ms(self) -> float | None:
        return getattr(self.ptt, "ptt_ms", None)

    def as_dict(self) -> dict:
        sync = self.synchronization
        return {
            "ptt": self.ptt.as_dict(),
            "correlation": self.correlation,
            "stability_ms": self.stability_ms,
            "confidence": self.confidence,
            "face_quality": self.face_quality.as_dict() if self.face_quality else None,
            "finger_quality": self.finger_quality.as_dict() if self.finger_quality else None,
            "hr_face_bpm": self.hr_face_bpm,
            "hr_finger_bpm": self.hr_finger_bpm,
            "segments": [s.as_dict() for s in self.segments],
            "windows": [w.as_dict() for w in self.windows],
            "agreement_fraction": self.aggregate.agreement_fraction if self.aggregate else 0.0,
            "drift_ms_per_s": sync.drift.drift_ms_per_s if sync and sync.drift.valid else None,
            "warnings": list(sync.warnings) if sync else [],
        }


def _session_hr(signal: np.ndarray, fs: float, settings: Settings) -> float | None:
    t = settings.timing
    hr = heart_rate(detect_peaks(signal, fs, threshold_factor=t.peak_threshold_factor,
                                 min_distance_ms=t.refractory_ms))
    return hr.bpm if hr.valid else None


def estimate_windows(
    face: np.ndarray,
    finger: np.ndarray,
    fs: float,
    *,
    settings: Settings | None = None,
) -> list[ConsensusResult]:
    """Per-window xcorr and foot estimates combined into consensus results."""

    if settings is None:
        settings = Settings()
    t = settings.timing
    size = max(1, int(round(settings.analysis.window_s * fs)))
    step = max(1, int(round(settings.analysis.step_s * fs)))
    results = []
    for win in covering_windows(min(face.size, finger.size), size, step):
        f = face[win.start : win.end]
        g = finger[win.start : win.end]
        xc = cross_correlation_lag(f, g, fs, max_lag_ms=t.max_lag_ms, min_samples=t.min_samples)
        foot = foot_to_foot_lag(
            f, g, fs,
            slope_fraction=t.foot_slope_fraction,
            refractory_ms=t.refractory_ms,
            min_lag_ms=t.min_lag_ms,
            max_lag_ms=t.max_pair_lag_ms,
        )
        result = combine(xc, foot, settings=settings.consensus)
        results.append(replace(result, start_ms=win.start * 1000.0 / fs, end_ms=win.end * 1000.0 / fs))
    return results


def _withheld(reason: str, settings: Settings, sync: SynchronizationResult | None = None) -> SessionResult:
    tips = guidance(None, None, None, settings=settings.confidence)
    logger.warning("session withheld: %s", reason)
    return SessionResult(ptt=Withheld((reason,), tips), synchronization=sync)


def analyze_session(
    face: SampleStream,
    finger: SampleStream,
    aux: AuxMetrics | None = None,
    *,
    settings: Settings | None = None,
) -> SessionResult:
    """Estimate PTT, quality and GoodSync segments for one recording.

    Parameters
    ----------
    face, finger:
        Raw proximal and distal intensity streams.
    aux:
        Optional ROI motion, saturation and motion-sensor metrics.  Arrays
        must be aligned with the unified timeline.
    settings:
        Configuration; defaults to :class:`~pulsesync.config.Settings`.
    """

    if settings is None:
        settings = Settings()
    aux = aux or AuxMetrics()

    try:
        sync = synchronize(face, finger, settings=settings)
    except InputError as exc:
        return _withheld(exc.reason, settings)

    timeline = sync.timeline
    fs = timeline.sample_rate_hz
    n = len(timeline)
    if n < settings.timing.min_samples:
        return _withheld("InsufficientSamples", settings, sync)

    fcfg = settings.filter
    pre_face = detrend(timeline.face, fs, fcfg.detrend_cutoff_hz, fcfg.detrend_order)
    pre_finger = detrend(timeline.finger, fs, fcfg.detrend_cutoff_hz, fcfg.detrend_order)
    imu = aux.window_mean("imu_rms_g", 0, n)
    face_q = assess_channel(FACE, pre_face, fs, imu_g=imu, settings=settings,
                            channel_metric=aux.window_mean("face_motion_px", 0, n))
    finger_q = assess_channel(FINGER, pre_finger, fs, imu_g=imu, settings=settings,
                              channel_metric=aux.window_mean("finger_saturation", 0, n))

    cond_face = condition_channel(timeline.face, fs, settings=settings, sqi=face_q.sqi)
    cond_finger = condition_channel(timeline.finger, fs, settings=settings, sqi=finger_q.sqi)
    conditioned = ConditionedSession(timeline.time_ms, cond_face.signal, cond_finger.signal,
                                     cond_face.denoised, cond_finger.denoised)

    windows = estimate_windows(cond_face.signal, cond_finger.signal, fs, settings=settings)
    agg = aggregate(windows, settings=settings.consensus)
    segments = detect_segments(cond_face.signal, cond_finger.signal, fs,
                               raw_face=pre_face, raw_finger=pre_finger,
                               aux=aux, settings=settings)
    hr_face = _session_hr(cond_face.signal, fs, settings)
    hr_finger = _session_hr(cond_finger.signal, fs, settings)

    if not agg.valid:
        reasons = tuple(dict.fromkeys(w.xcorr.reason or "NoEstimate" for w in windows)) or ("NoEstimate",)
        report = gate(None, 0.0, face=face_q, finger=finger_q, reasons=reasons,
                      settings=settings.confidence)
        return SessionResult(ptt=report, face_quality=face_q, finger_quality=finger_q,
                             segments=tuple(segments), windows=tuple(windows), aggregate=agg,
                             hr_face_bpm=hr_face, hr_finger_bpm=hr_finger,
                             synchronization=sync, conditioned=conditioned)

    accepted = [windows[i] for i in agg.accepted]
    correlation = float(np.mean([w.xcorr.correlation for w in accepted]))
    sharpness = float(np.median([w.xcorr.peak_sharpness for w in accepted]))
    # Neighbour spacing shrinks with the sample rate, and sharpness with its square.
    sharpness_ref = settings.confidence.sharpness_ref * (REFERENCE_RATE_HZ / fs) ** 2
    confidence = combined_confidence(face_q.sqi, finger_q.sqi, correlation, sharpness,
                                     agg.mean_weight, sharpness_ref=sharpness_ref)
    report = gate(agg.ptt_ms, confidence, face=face_q, finger=finger_q,
                  correlation=correlation, agreeing=agg.agreement_fraction >= 0.5,
                  settings=settings.confidence)
    logger.info("session ptt=%.1f ms corr=%.2f confidence=%.2f (%s)", agg.ptt_ms, correlation,
                confidence, "reported" if report.reported else "withheld")

    return SessionResult(
        ptt=report,
        correlation=correlation,
        stability_ms=agg.stability_ms,
        confidence=confidence,
        face_quality=face_q,
        finger_quality=finger_q,
        segments=tuple(segments),
        windows=tuple(windows),
        aggregate=agg,
        hr_face_bpm=hr_face,
        hr_finger_bpm=hr_finger,
        synchronization=sync,
        conditioned=conditioned,
    )


__all__ = ["ConditionedSession", "SessionResult", "estimate_windows", "analyze_session"]
