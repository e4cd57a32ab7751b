"""Timestamp validation, drift measurement and unified-timeline resampling.

Both optical streams arrive with their own capture clocks.  Before any
filtering the streams are checked for monotonic timestamps, their frame
intervals and relative drift are measured, and both are linearly
interpolated onto one fixed-rate timeline covering the temporal
intersection of the streams.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from ..config import Settings
from ..errors import InputError
from ..types import SampleStream

logger = logging.getLogger(__name__)

NS_PER_MS = 1_000_000
NS_PER_S = 1_000_000_000


@dataclass(frozen=True)
class MonotonicityReport:
    """Outcome of :func:`validate_monotonicity`."""

    valid: bool
    violations: int
    indices: tuple[int, ...] = ()
    message: str = ""


@dataclass(frozen=True)
class DriftReport:
    """Relative frame-rate drift between two streams.

    Attributes
    ----------
    drift_ms_per_s:
        Absolute timing drift in milliseconds accumulated per second.
    valid:
        ``False`` when the streams do not overlap for a full measurement
        window; ``reason`` then names the failure.
    rate_a_hz, rate_b_hz:
        Frame rates observed inside the measurement window.
    """

    drift_ms_per_s: float
    valid: bool
    rate_a_hz: float = 0.0
    rate_b_hz: float = 0.0
    reason: str | None = None
    message: str = ""


@dataclass(frozen=True)
class UnifiedTimeline:
    """Both channels interpolated onto one fixed-rate timeline."""

    timestamps_ns: np.ndarray
    face: np.ndarray
    finger: np.ndarray
    sample_rate_hz: float

    def __post_init__(self) -> None:
        for arr in (self.timestamps_ns, self.face, self.finger):
            arr.setflags(write=False)

    def __len__(self) -> int:
        return int(self.timestamps_ns.size)

    @property
    def time_ms(self) -> np.ndarray:
        """Milliseconds elapsed since the first unified sample."""

        if self.timestamps_ns.size == 0:
            return np.zeros(0)
        return (self.timestamps_ns - self.timestamps_ns[0]) / NS_PER_MS

    @property
    def duration_s(self) -> float:
        if self.timestamps_ns.size < 2:
            return 0.0
        return float(self.timestamps_ns[-1] - self.timestamps_ns[0]) / NS_PER_S


@dataclass(frozen=True)
class SynchronizationResult:
    """Everything :func:`synchronize` learned about the two raw streams."""

    timeline: UnifiedTimeline
    face_report: MonotonicityReport
    finger_report: MonotonicityReport
    drift: DriftReport
    face_interval_ms: float | None
    finger_interval_ms: float | None
    warnings: list[str] = field(default_factory=list)


def validate_monotonicity(timestamps: Sequence[int] | np.ndarray) -> MonotonicityReport:
    """Count adjacent pairs where the timestamp fails to increase.

    Camera timestamps jitter, so violations are reported rather than treated
    as fatal.
    """

    ts = np.asarray(timestamps, dtype=np.int64)
    if ts.size == 0:
        return MonotonicityReport(True, 0, (), "Empty timestamp list")
    bad = np.flatnonzero(np.diff(ts) <= 0) + 1
    if bad.size == 0:
        return MonotonicityReport(True, 0, (), "All timestamps monotonically increasing")
    shown = ", ".join(str(i) for i in bad[:5])
    return MonotonicityReport(
        valid=False,
        violations=int(bad.size),
        indices=tuple(int(i) for i in bad),
        message=f"Found {bad.size} non-monotonic timestamps at indices: [{shown}]",
    )


def estimate_frame_interval(timestamps: Sequence[int] | np.ndarray) -> float | None:
    """Median of the positive adjacent deltas, in milliseconds.

    Returns ``None`` when fewer than two timestamps or no positive delta
    exist.
    """

    ts = np.asarray(timestamps, dtype=np.int64)
    if ts.size < 2:
        return None
    deltas = np.diff(ts)
    deltas = deltas[deltas > 0]
    if deltas.size == 0:
        return None
    return float(np.median(deltas)) / NS_PER_MS


def compute_drift(
    timestamps_a: Sequence[int] | np.ndarray,
    timestamps_b: Sequence[int] | np.ndarray,
    window_ms: float = 5000.0,
    *,
    default_interval_ms: float = 33.33,
) -> DriftReport:
    """Estimate relative drift from frame counts in a shared window.

    Samples of each stream falling inside ``[overlap_start, overlap_start +
    window]`` are counted; the frame-rate difference multiplied by the mean
    frame interval of the two streams yields drift in ms/s.
    """

    a = np.asarray(timestamps_a, dtype=np.int64)
    b = np.asarray(timestamps_b, dtype=np.int64)
    if a.size < 2 or b.size < 2:
        return DriftReport(
            0.0, False, reason="InsufficientSamples",
            message="Insufficient timestamps for drift calculation",
        )

    window_ns = int(round(window_ms * NS_PER_MS))
    start = max(int(a.min()), int(b.min()))
    end = min(int(a.max()), int(b.max()))
    if end - start < window_ns:
        return DriftReport(
            0.0, False, reason="InsufficientOverlap",
            message="Insufficient overlap between streams",
        )

    stop = start + window_ns
    count_a = int(np.count_nonzero((a >= start) & (a <= stop)))
    count_b = int(np.count_nonzero((b >= start) & (b <= stop)))
    window_s = window_ms / 1000.0
    rate_a = count_a / window_s
    rate_b = count_b / window_s

    interval_a = estimate_frame_interval(a) or default_interval_ms
    interval_b = estimate_frame_interval(b) or default_interval_ms
    drift = abs(rate_a - rate_b) * (interval_a + interval_b) / 2.0

    logger.debug("drift: a=%.2f fps b=%.2f fps drift=%.2f ms/s", rate_a, rate_b, drift)
    return DriftReport(
        drift_ms_per_s=drift,
        valid=True,
        rate_a_hz=rate_a,
        rate_b_hz=rate_b,
        message=f"Drift: {drift:.2f} ms/s",
    )


def _strictly_increasing(stream: SampleStream) -> tuple[np.ndarray, np.ndarray]:
    """Drop samples whose timestamp does not exceed the running maximum."""

    ts = stream.timestamps_ns
    vals = stream.values
    if ts.size < 2:
        return ts, vals
    running = np.maximum.accumulate(ts)
    keep = np.ones(ts.size, dtype=bool)
    keep[1:] = ts[1:] > running[:-1]
    return ts[keep], vals[keep]


def _interpolate(ts: np.ndarray, vals: np.ndarray, target: np.ndarray) -> np.ndarray:
    # np.interp clamps to the edge values outside the sampled range.
    origin = ts[0]
    return np.interp(
        (target - origin).astype(float),
        (ts - origin).astype(float),
        vals,
    )


def resample_to_unified_timeline(
    face: SampleStream,
    finger: SampleStream,
    target_rate_hz: float = 100.0,
) -> UnifiedTimeline:
    """Resample both streams onto a fixed-rate timeline over their overlap.

    Raises
    ------
    InputError
        ``EmptyStream`` when either stream has no samples, ``NoOverlap`` when
        the streams do not intersect in time.
    """

    if target_rate_hz <= 0:
        raise InputError("InvalidRate", f"target rate must be positive, got {target_rate_hz}")
    for stream in (face, finger):
        if stream.is_empty:
            raise InputError("EmptyStream", f"{stream.name} has no samples")

    face_ts, face_vals = _strictly_increasing(face)
    finger_ts, finger_vals = _strictly_increasing(finger)

    start = max(int(face_ts[0]), int(finger_ts[0]))
    end = min(int(face_ts[-1]), int(finger_ts[-1]))
    if end <= start:
        raise InputError("NoOverlap", "No temporal overlap between streams")

    step_ns = int(NS_PER_S / target_rate_hz)
    n = (end - start) // step_ns + 1
    unified = start + step_ns * np.arange(n, dtype=np.int64)

    timeline = UnifiedTimeline(
        timestamps_ns=unified,
        face=_interpolate(face_ts, face_vals, unified),
        finger=_interpolate(finger_ts, finger_vals, unified),
        sample_rate_hz=float(target_rate_hz),
    )
    logger.debug("resampled to %d samples at %.1f Hz", n, target_rate_hz)
    return timeline


def synchronize(
    face: SampleStream,
    finger: SampleStream,
    *,
    settings: Settings | None = None,
) -> SynchronizationResult:
    """Validate, measure and resample the two raw streams.

    Drift that cannot be measured (overlap shorter than the drift window) is
    reported in :attr:`SynchronizationResult.drift` and does not prevent
    resampling.
    """

    if settings is None:
        settings = Settings()
    cfg = settings.sync

    face_report = validate_monotonicity(face.timestamps_ns)
    finger_report = validate_monotonicity(finger.timestamps_ns)
    warnings: list[str] = []
    for name, report in (("face", face_report), ("finger", finger_report)):
        if not report.valid:
            logger.warning("%s stream: %s", name, report.message)
            warnings.append(f"{name}: {report.message}")

    timeline = resample_to_unified_timeline(face, finger, cfg.target_rate_hz)

    drift = compute_drift(
        face.timestamps_ns,
        finger.timestamps_ns,
        cfg.drift_window_ms,
        default_interval_ms=cfg.default_interval_ms,
    )
    if drift.valid and drift.drift_ms_per_s > cfg.drift_warn_ms_per_s:
        logger.warning("inter-stream drift %.2f ms/s exceeds %.2f ms/s",
                       drift.drift_ms_per_s, cfg.drift_warn_ms_per_s)
        warnings.append(drift.message)

    return SynchronizationResult(
        timeline=timeline,
        face_report=face_report,
        finger_report=finger_report,
        drift=drift,
        face_interval_ms=estimate_frame_interval(face.timestamps_ns),
        finger_interval_ms=estimate_frame_interval(finger.timestamps_ns),
        warnings=warnings,
    )


__all__ = [
    "MonotonicityReport",
    "DriftReport",
    "UnifiedTimeline",
    "SynchronizationResult",
    "validate_monotonicity",
    "estimate_frame_interval",
    "compute_drift",
    "resample_to_unified_timeline",
    "synchronize",
]
