import numpy as np
import pytest

from pulsesync.config import Settings
from pulsesync.core.realtime import (
    ChannelStatus,
    RealTimeQualityEngine,
    RealtimeSample,
    RingBuffer,
)
from pulsesync.simulation import SimulationConfig, generate_streams
from pulsesync.types import SampleStream


def test_ring_buffer_evicts_oldest():
    buf = RingBuffer(3)
    for i in range(1, 6):
        buf.append(float(i), i * 10)
    assert len(buf) == 3
    snap = buf.snapshot()
    assert snap.values.tolist() == [3.0, 4.0, 5.0]
    assert snap.timestamps_ns.tolist() == [30, 40, 50]


def test_ring_buffer_snapshot_window_and_copy():
    buf = RingBuffer(8)
    for i in range(4):
        buf.append(float(i), i * 10)
    snap = buf.snapshot(15)
    assert snap.values.tolist() == [2.0, 3.0]
    snap.values[:] = -1.0
    assert buf.snapshot().values.tolist() == [0.0, 1.0, 2.0, 3.0]


def test_ring_buffer_empty_and_clear():
    buf = RingBuffer(4)
    assert buf.snapshot() is None
    buf.append(1.0, 0)
    buf.clear()
    assert len(buf) == 0
    zero = RingBuffer(0)
    zero.append(1.0, 0)
    assert len(zero) == 0
    with pytest.raises(ValueError):
        RingBuffer(-1)


def test_buffer_window_rate():
    buf = RingBuffer(10)
    for i in range(5):
        buf.append(0.0, i * 10_000_000)
    assert buf.snapshot().sample_rate_hz == pytest.approx(100.0)


def replay(engine, face=None, finger=None, **extra):
    stream = face if face is not None else finger
    snaps = []
    for i, ts in enumerate(stream.timestamps_ns):
        sample = RealtimeSample(
            int(ts),
            face=None if face is None else float(face.values[i]),
            finger=None if finger is None else float(finger.values[i]),
            **extra,
        )
        snap = engine.add_sample(sample)
        if snap is not None:
            snaps.append(snap)
    return snaps


def test_engine_emits_at_refresh_rate():
    face, finger = generate_streams(SimulationConfig(duration_s=10.0))
    snaps = replay(RealTimeQualityEngine(), face, finger)
    assert snaps
    stamps = np.array([s.updated_at_ms for s in snaps])
    assert np.all(np.diff(stamps) >= 400)
    assert len(snaps) <= 10.0 * 2.5 + 1
    first_ready = face.timestamps_ns[29] // 1_000_000
    assert stamps[0] == first_ready


def test_engine_clean_session_is_green():
    face, finger = generate_streams(SimulationConfig(duration_s=10.0))
    engine = RealTimeQualityEngine()
    snaps = replay(engine, face, finger)
    last = snaps[-1]
    assert engine.last is last
    assert last.face.status is ChannelStatus.GREEN
    assert last.finger.status is ChannelStatus.GREEN
    assert last.face.hr_bpm == pytest.approx(72.0, abs=4.0)
    assert last.hr_delta_bpm is not None and last.hr_delta_bpm < 5.0
    assert last.tip is None
    assert last.face.sparkline.size > 0


def test_engine_single_channel():
    _, finger = generate_streams(SimulationConfig(duration_s=5.0))
    snaps = replay(RealTimeQualityEngine(), finger=finger)
    assert snaps
    assert not snaps[-1].face.active
    assert snaps[-1].finger.active
    assert snaps[-1].hr_delta_bpm is None


def test_engine_saturation_tip():
    face, finger = generate_streams(SimulationConfig(duration_s=5.0))
    snaps = replay(RealTimeQualityEngine(), face, finger, finger_saturation=0.2)
    last = snaps[-1]
    assert last.finger.status is ChannelStatus.RED
    assert last.tip == "Reduce finger pressure slightly"


@pytest.mark.parametrize("torch, tip", [(False, "Enable torch for finger camera"),
                                        (True, "Increase ambient light")])
def test_engine_dark_finger_tip(torch, tip):
    face, finger = generate_streams(SimulationConfig(duration_s=5.0))
    rng = np.random.default_rng(3)
    noisy = SampleStream(finger.timestamps_ns, rng.normal(size=len(finger)), name="finger")
    snaps = replay(RealTimeQualityEngine(), face, noisy, torch_enabled=torch)
    last = snaps[-1]
    assert last.finger.status is ChannelStatus.RED
    assert last.tip == tip


def test_engine_waits_for_enough_samples():
    settings = Settings.model_validate({"realtime": {"min_window_samples": 1000}})
    face, finger = generate_streams(SimulationConfig(duration_s=5.0))
    assert replay(RealTimeQualityEngine(settings), face, finger) == []
