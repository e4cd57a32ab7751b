"""Near-real-time channel quality indicators.

Samples are pushed one at a time into fixed-capacity ring buffers.  At most
every ``1 / refresh_hz`` seconds the engine copies the most recent window
out of each buffer and computes a traffic-light status per channel plus a
single capture tip.  The buffers have a single writer and readers only ever
see copies.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from ..config import RealtimeSettings, Settings
from .filters import bandpass, detrend, zscore
from .peaks import detect_peaks, heart_rate
from .quality import FACE, FINGER, snr_db

logger = logging.getLogger(__name__)

NS_PER_S = 1_000_000_000


@dataclass(frozen=True)
class BufferWindow:
    """Chronological copy of the newest samples of a :class:`RingBuffer`."""

    values: np.ndarray
    timestamps_ns: np.ndarray

    def __len__(self) -> int:
        return int(self.values.size)

    @property
    def sample_rate_hz(self) -> float:
        if self.timestamps_ns.size < 2:
            return 0.0
        span = float(self.timestamps_ns[-1] - self.timestamps_ns[0])
        if span <= 0:
            return 0.0
        return (self.timestamps_ns.size - 1) * NS_PER_S / span


class RingBuffer:
    """Preallocated FIFO of ``(timestamp_ns, value)`` pairs.

    When full, appending overwrites the oldest sample.
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self.capacity = int(capacity)
        self._values = np.zeros(self.capacity, dtype=float)
        self._timestamps = np.zeros(self.capacity, dtype=np.int64)
        self._start = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def append(self, value: float, timestamp_ns: int) -> None:
        if self.capacity == 0:
            return
        end = (self._start + self._size) % self.capacity
        self._values[end] = value
        self._timestamps[end] = timestamp_ns
        if self._size < self.capacity:
            self._size += 1
        else:
            self._start = (self._start + 1) % self.capacity

    def clear(self) -> None:
        self._start = 0
        self._size = 0

    def snapshot(self, window_ns: int | None = None) -> BufferWindow | None:
        """Copy the samples no older than ``window_ns`` before the newest one.

        ``None`` when the buffer is empty.
        """

        if self._size == 0:
            return None
        order = (self._start + np.arange(self._size)) % self.capacity
        ts = self._timestamps[order]
        vals = self._values[order]
        if window_ns is not None:
            keep = ts >= ts[-1] - window_ns
            # Only the newest contiguous run counts.
            first = self._size - int(np.argmin(keep[::-1])) if not keep.all() else 0
            ts = ts[first:]
            vals = vals[first:]
        return BufferWindow(vals.copy(), ts.copy())


class ChannelStatus(str, enum.Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    def worse(self, other: "ChannelStatus") -> "ChannelStatus":
        order = [ChannelStatus.GREEN, ChannelStatus.YELLOW, ChannelStatus.RED]
        return self if order.index(self) >= order.index(other) else other


@dataclass(frozen=True)
class RealtimeSample:
    """One capture tick; any channel may be missing."""

    timestamp_ns: int
    face: float | None = None
    finger: float | None = None
    face_motion_px: float | None = None
    finger_saturation: float | None = None
    imu_rms_g: float | None = None
    torch_enabled: bool = False


@dataclass(frozen=True)
class ChannelIndicator:
    channel: str
    status: ChannelStatus
    snr_db: float | None = None
    motion_px: float | None = None
    saturation: float | None = None
    imu_rms_g: float | None = None
    hr_bpm: float | None = None
    ac_dc_ratio: float | None = None
    sparkline: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)
    diagnostics: tuple[str, ...] = ()

    @property
    def active(self) -> bool:
        return "Inactive" not in self.diagnostics

    @classmethod
    def inactive(cls, channel: str) -> "ChannelIndicator":
        return cls(channel, ChannelStatus.GREEN, diagnostics=("Inactive",))


@dataclass(frozen=True)
class QualitySnapshot:
    face: ChannelIndicator
    finger: ChannelIndicator
    hr_delta_bpm: float | None
    tip: str | None
    updated_at_ms: int


def _mean(window: BufferWindow | None) -> float | None:
    if window is None or len(window) == 0:
        return None
    return float(np.mean(window.values))


class RealTimeQualityEngine:
    """Traffic-light quality indicators refreshed at a few hertz."""

    def __init__(self, settings: Settings | None = None):
        if settings is None:
            settings = Settings()
        self.settings = settings
        cfg: RealtimeSettings = settings.realtime
        self.window_ns = int(cfg.window_s * NS_PER_S)
        self.interval_ns = int(NS_PER_S / cfg.refresh_hz)
        capacity = max(32, int(cfg.buffer_s * cfg.max_fs_hz))
        self.face = RingBuffer(capacity)
        self.finger = RingBuffer(capacity)
        self.face_motion = RingBuffer(capacity)
        self.finger_saturation = RingBuffer(capacity)
        self.imu = RingBuffer(capacity)
        self._last_emit_ns: int | None = None
        self._torch = False
        self.last: QualitySnapshot | None = None

    def add_sample(self, sample: RealtimeSample) -> QualitySnapshot | None:
        """Buffer ``sample``; return a snapshot when one is due."""

        ts = int(sample.timestamp_ns)
        for buf, value in (
            (self.face, sample.face),
            (self.finger, sample.finger),
            (self.face_motion, sample.face_motion_px),
            (self.finger_saturation, sample.finger_saturation),
            (self.imu, sample.imu_rms_g),
        ):
            if value is not None:
                buf.append(float(value), ts)
        self._torch = sample.torch_enabled

        if self._last_emit_ns is not None and ts - self._last_emit_ns < self.interval_ns:
            return None

        cfg = self.settings.realtime
        face_win = self.face.snapshot(self.window_ns)
        finger_win = self.finger.snapshot(self.window_ns)
        has_face = face_win is not None and len(face_win) >= cfg.min_window_samples
        has_finger = finger_win is not None and len(finger_win) >= cfg.min_window_samples
        if not has_face and not has_finger:
            return None

        imu = _mean(self.imu.snapshot(self.window_ns))
        motion = _mean(self.face_motion.snapshot(self.window_ns))
        saturation = _mean(self.finger_saturation.snapshot(self.window_ns))

        face = self._indicator(FACE, face_win, motion, imu) if has_face else ChannelIndicator.inactive(FACE)
        finger = (self._indicator(FINGER, finger_win, saturation, imu) if has_finger
                  else ChannelIndicator.inactive(FINGER))
        hr_delta = None
        if face.hr_bpm is not None and finger.hr_bpm is not None:
            hr_delta = abs(face.hr_bpm - finger.hr_bpm)

        snapshot = QualitySnapshot(face, finger, hr_delta, self._select_tip(face, finger, hr_delta),
                                   ts // 1_000_000)
        self._last_emit_ns = ts
        self.last = snapshot
        return snapshot

    def _indicator(self, channel: str, window: BufferWindow, metric: float | None,
                   imu: float | None) -> ChannelIndicator:
        fs = window.sample_rate_hz
        fcfg = self.settings.filter
        snr = hr = None
        if fs > 5.0:
            x = detrend(window.values, fs, fcfg.detrend_cutoff_hz, fcfg.detrend_order)
            snr = snr_db(x, fs, fcfg.band, min_samples=self.settings.quality.snr_min_samples,
                         cap_db=self.settings.quality.snr_cap_db)
            high = min(fcfg.high_hz, 0.45 * fs)
            filtered = bandpass(x, fs, fcfg.low_hz, high, fcfg.order)
            rate = heart_rate(detect_peaks(filtered, fs,
                                           threshold_factor=self.settings.timing.peak_threshold_factor))
            hr = rate.bpm if rate.plausible else None

        status, diagnostics = self._status(channel, snr, metric, imu, hr)
        mean = float(np.mean(window.values))
        ac_dc = float(np.std(window.values)) / abs(mean) if abs(mean) >= 1e-3 else None
        return ChannelIndicator(
            channel=channel,
            status=status,
            snr_db=snr,
            motion_px=metric if channel == FACE else None,
            saturation=metric if channel == FINGER else None,
            imu_rms_g=imu,
            hr_bpm=hr,
            ac_dc_ratio=ac_dc,
            sparkline=zscore(window.values),
            diagnostics=tuple(diagnostics),
        )

    def _status(self, channel: str, snr: float | None, metric: float | None,
                imu: float | None, hr: float | None) -> tuple[ChannelStatus, list[str]]:
        cfg = self.settings.realtime
        label = "Face" if channel == FACE else "Finger"
        if channel == FACE:
            snr_red, snr_yellow = cfg.face_snr_red_db, cfg.face_snr_yellow_db
            metric_red, metric_yellow = cfg.motion_red_px, cfg.motion_yellow_px
            metric_label = "Face motion"
        else:
            snr_red, snr_yellow = cfg.finger_snr_red_db, cfg.finger_snr_yellow_db
            metric_red, metric_yellow = cfg.saturation_red, cfg.saturation_yellow
            metric_label = "Saturation"

        diagnostics: list[str] = []
        status = ChannelStatus.GREEN
        if snr is None or snr < snr_red:
            return ChannelStatus.RED, [f"{label} SNR < {snr_red:g} dB"]
        if snr < snr_yellow:
            diagnostics.append(f"{label} SNR < {snr_yellow:g} dB")
            status = ChannelStatus.YELLOW

        if metric is not None:
            if metric > metric_red:
                diagnostics.append(f"{metric_label} > {metric_red:g}")
                return ChannelStatus.RED, diagnostics
            if metric > metric_yellow:
                diagnostics.append(f"{metric_label} > {metric_yellow:g}")
                status = status.worse(ChannelStatus.YELLOW)

        if imu is not None and imu > cfg.imu_yellow_g:
            diagnostics.append("High device motion")
            status = status.worse(ChannelStatus.YELLOW)
        if hr is None:
            diagnostics.append(f"{label} HR unresolved")
            status = status.worse(ChannelStatus.YELLOW)
        return status, diagnostics

    def _select_tip(self, face: ChannelIndicator, finger: ChannelIndicator,
                    hr_delta: float | None) -> str | None:
        cfg = self.settings.realtime
        if finger.saturation is not None and finger.saturation > cfg.saturation_yellow:
            return "Reduce finger pressure slightly"
        if finger.active and (finger.snr_db is None or finger.snr_db < cfg.finger_snr_tip_db):
            return "Increase ambient light" if self._torch else "Enable torch for finger camera"
        if face.motion_px is not None and face.motion_px > cfg.motion_yellow_px:
            return "Hold head steady"
        if hr_delta is not None and hr_delta > cfg.hr_delta_tip_bpm:
            return "Stay still until both signals align"
        return None


__all__ = [
    "BufferWindow",
    "RingBuffer",
    "ChannelStatus",
    "RealtimeSample",
    "ChannelIndicator",
    "QualitySnapshot",
    "RealTimeQualityEngine",
]
