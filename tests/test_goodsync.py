import math

import numpy as np

from pulsesync.config import GoodSyncSettings
from pulsesync.core.filters import bandpass, zscore
from pulsesync.core.goodsync import (
    WindowMetrics,
    WindowState,
    detect_segments,
    evaluate_gate,
    merge_windows,
)
from pulsesync.simulation import pulse_train
from pulsesync.types import AuxMetrics

FS = 100.0


def metrics(start_s=0.0, end_s=8.0, **overrides):
    values = dict(
        start_ms=start_s * 1000.0,
        end_ms=end_s * 1000.0,
        correlation=0.9,
        hr_delta_bpm=1.0,
        fwhm_delta_ms=20.0,
        sqi_face=90,
        sqi_finger=85,
    )
    values.update(overrides)
    return WindowMetrics(**values)


def test_gate_passes_good_window():
    decision = evaluate_gate(metrics())
    assert decision.passed
    assert decision.state is WindowState.CANDIDATE_GOOD
    assert decision.failures == ()


def test_gate_fails_low_correlation():
    decision = evaluate_gate(metrics(correlation=0.65))
    assert not decision.passed
    assert decision.failures == ("correlation",)


def test_gate_checks_every_metric():
    decision = evaluate_gate(
        metrics(hr_delta_bpm=6.0, fwhm_delta_ms=math.inf, sqi_face=69, sqi_finger=10, imu_rms_g=0.2)
    )
    assert decision.state is WindowState.CANDIDATE_BAD
    assert decision.failures == ("hr_delta", "pulse_width", "sqi_face", "sqi_finger", "imu")


def test_gate_imu_optional():
    assert evaluate_gate(metrics(imu_rms_g=None)).passed
    relaxed = GoodSyncSettings(use_imu_gate=False)
    assert evaluate_gate(metrics(imu_rms_g=0.2), relaxed).passed


def test_merge_bridges_short_gap():
    segs = merge_windows([metrics(0, 4), metrics(4.5, 8)])
    assert len(segs) == 1
    assert segs[0].start_ms == 0.0
    assert segs[0].end_ms == 8000.0


def test_merge_keeps_long_gap_apart():
    segs = merge_windows([metrics(0, 6), metrics(7.5, 14)])
    assert [(s.start_ms, s.end_ms) for s in segs] == [(0.0, 6000.0), (7500.0, 14000.0)]


def test_merge_drops_short_segments():
    assert merge_windows([metrics(0, 4)]) == []
    assert len(merge_windows([metrics(0, 4)], min_segment_ms=3000)) == 1


def test_merge_metadata_is_conservative():
    segs = merge_windows([
        metrics(0, 8, correlation=0.95, hr_delta_bpm=1.0, sqi_face=95, sqi_finger=80),
        metrics(1, 9, correlation=0.80, hr_delta_bpm=3.5, sqi_face=75, sqi_finger=90),
    ])
    assert len(segs) == 1
    seg = segs[0]
    assert seg.correlation == 0.80
    assert seg.hr_delta_bpm == 3.5
    assert seg.sqi_face == 75
    assert seg.sqi_finger == 80
    assert seg.duration_ms == 9000.0
    assert seg.as_dict()["duration_ms"] == 9000.0


def test_merge_accepts_unsorted_windows():
    segs = merge_windows([metrics(3, 11), metrics(0, 8)])
    assert [(s.start_ms, s.end_ms) for s in segs] == [(0.0, 11000.0)]


def synthetic(seconds=30.0, delay_ms=100.0):
    t = np.arange(int(seconds * FS)) / FS
    face = pulse_train(t, 1.2, seconds + 1.0)
    finger = pulse_train(t - delay_ms / 1000.0, 1.2, seconds + 1.0)
    return face, finger


def test_detect_segments_on_clean_session():
    face, finger = synthetic()
    segs = detect_segments(zscore(bandpass(face, FS)), zscore(bandpass(finger, FS)), FS,
                           raw_face=face - face.mean(), raw_finger=finger - finger.mean())
    assert len(segs) == 1
    assert segs[0].duration_ms >= 20000.0
    assert segs[0].correlation >= 0.7


def test_detect_segments_rejects_device_motion():
    face, finger = synthetic()
    segs = detect_segments(zscore(bandpass(face, FS)), zscore(bandpass(finger, FS)), FS,
                           raw_face=face - face.mean(), raw_finger=finger - finger.mean(),
                           aux=AuxMetrics(imu_rms_g=0.3))
    assert segs == []


def test_detect_segments_short_session():
    face, finger = synthetic(seconds=5.0)
    assert detect_segments(face, finger, FS) == []
