import logging

import numpy as np
import pytest

from pulsesync.core.timestamps import (
    compute_drift,
    estimate_frame_interval,
    resample_to_unified_timeline,
    synchronize,
    validate_monotonicity,
)
from pulsesync.errors import InputError
from pulsesync.types import SampleStream


def make_stream(rate_hz, duration_s, start_ns=0, name="stream"):
    n = int(duration_s * rate_hz)
    ts = start_ns + (np.arange(n) * 1e9 / rate_hz).astype(np.int64)
    # Values are the timestamps in ms so linear interpolation is exact.
    return SampleStream(ts, ts / 1e6, name=name)


def test_monotonicity_counts_violations():
    report = validate_monotonicity([0, 1, 1, 3, 2, 5])
    assert not report.valid
    assert report.violations == 2
    assert report.indices == (2, 4)
    assert "2 non-monotonic" in report.message


def test_monotonicity_empty_and_clean():
    assert validate_monotonicity([]).valid
    assert validate_monotonicity([1, 2, 3]).violations == 0


def test_frame_interval():
    assert estimate_frame_interval([0, 33_000_000, 66_000_000, 99_000_000]) == pytest.approx(33.0)
    assert estimate_frame_interval([5]) is None
    assert estimate_frame_interval([5, 5]) is None


def test_drift_equal_rates_is_zero():
    a = make_stream(30, 10).timestamps_ns
    report = compute_drift(a, a.copy(), 5000)
    assert report.valid
    assert report.drift_ms_per_s == pytest.approx(0.0)


def test_drift_different_rates():
    a = make_stream(30, 10).timestamps_ns
    b = make_stream(29, 10).timestamps_ns
    report = compute_drift(a, b, 5000)
    assert report.valid
    assert report.rate_a_hz > report.rate_b_hz
    assert 30.0 < report.drift_ms_per_s < 40.0


def test_drift_needs_overlap():
    a = make_stream(30, 2).timestamps_ns
    report = compute_drift(a, a, 5000)
    assert not report.valid
    assert report.reason == "InsufficientOverlap"


def test_resample_covers_overlap_only():
    face = make_stream(30, 10, name="face")
    finger = make_stream(30, 10, start_ns=500_000_000, name="finger")
    timeline = resample_to_unified_timeline(face, finger, 100.0)
    assert timeline.timestamps_ns[0] == 500_000_000
    assert timeline.timestamps_ns[-1] <= face.timestamps_ns[-1]
    assert np.all(np.diff(timeline.timestamps_ns) == 10_000_000)
    expected = timeline.timestamps_ns / 1e6
    assert np.allclose(timeline.face, expected)
    assert np.allclose(timeline.finger, expected)
    assert timeline.time_ms[0] == 0.0


def test_resample_is_bit_identical_on_repeat():
    face = make_stream(30, 5, name="face")
    finger = make_stream(29.5, 5, start_ns=7_000_000, name="finger")
    first = resample_to_unified_timeline(face, finger)
    second = resample_to_unified_timeline(face, finger)
    assert np.array_equal(first.timestamps_ns, second.timestamps_ns)
    assert first.face.tobytes() == second.face.tobytes()
    assert first.finger.tobytes() == second.finger.tobytes()


def test_resample_does_not_touch_inputs():
    face = make_stream(30, 3, name="face")
    finger = make_stream(30, 3, name="finger")
    before = face.values.copy()
    resample_to_unified_timeline(face, finger)
    assert np.array_equal(face.values, before)
    assert not face.values.flags.writeable


def test_no_overlap_raises():
    face = make_stream(30, 2, name="face")
    finger = make_stream(30, 2, start_ns=5_000_000_000, name="finger")
    with pytest.raises(InputError) as exc:
        resample_to_unified_timeline(face, finger)
    assert exc.value.reason == "NoOverlap"


def test_empty_stream_raises():
    face = make_stream(30, 2, name="face")
    empty = SampleStream(np.zeros(0, dtype=np.int64), np.zeros(0), name="finger")
    with pytest.raises(InputError) as exc:
        resample_to_unified_timeline(face, empty)
    assert exc.value.reason == "EmptyStream"


def test_length_mismatch_raises():
    with pytest.raises(InputError) as exc:
        SampleStream([0, 1, 2], [1.0, 2.0])
    assert exc.value.reason == "LengthMismatch"


def test_synchronize_tolerates_jitter(caplog):
    face = make_stream(30, 8, name="face")
    ts = face.timestamps_ns.copy()
    ts[10] = ts[9]
    jittery = SampleStream(ts, face.values, name="face")
    finger = make_stream(30, 8, name="finger")
    with caplog.at_level(logging.WARNING, logger="pulsesync"):
        result = synchronize(jittery, finger)
    assert result.face_report.violations == 1
    assert result.finger_report.valid
    assert result.warnings and result.warnings[0].startswith("face")
    assert "non-monotonic" in caplog.text
    assert len(result.timeline) > 0
    assert result.drift.valid
    assert result.face_interval_ms == pytest.approx(33.333, abs=0.01)
