import json

import numpy as np
import pytest

from pulsesync.errors import InputError
from pulsesync.export import save_session, write_result
from pulsesync.ingest import load_session, session_from_mapping
from pulsesync.simulation import SimulationConfig, generate_streams
from pulsesync.types import AuxMetrics, SampleStream


@pytest.fixture
def streams():
    return generate_streams(SimulationConfig(duration_s=6.0))


def test_npz_preserves_streams_and_aux(tmp_path, streams):
    face, finger = streams
    aux = AuxMetrics(imu_rms_g=0.02, face_motion_px=np.linspace(0, 1, len(face)))
    path = save_session(tmp_path / "sub" / "s.npz", face, finger, aux)
    session = load_session(path)
    assert np.array_equal(session.face.timestamps_ns, face.timestamps_ns)
    assert np.array_equal(session.finger.values, finger.values)
    assert session.aux.imu_rms_g == pytest.approx(0.02)
    assert session.aux.face_motion_px.shape == (len(face),)
    assert session.source.endswith("s.npz")


def test_csv_with_uneven_channels(tmp_path, streams):
    face, finger = streams
    short = SampleStream(finger.timestamps_ns[:100], finger.values[:100], name="finger")
    path = save_session(tmp_path / "s.csv", face, short)
    session = load_session(path)
    assert len(session.face) == len(face)
    assert len(session.finger) == 100
    assert np.array_equal(session.finger.timestamps_ns, short.timestamps_ns)
    assert np.allclose(session.face.values, face.values)


def test_csv_shared_clock(tmp_path):
    p = tmp_path / "shared.csv"
    p.write_text("timestamp_ns,face,finger\n0,1.0,2.0\n33333333,1.5,\n66666666,2.0,2.5\n")
    session = load_session(p)
    assert session.face.timestamps_ns.tolist() == [0, 66666666]
    assert session.finger.values.tolist() == [2.0, 2.5]


def test_json_session(tmp_path):
    p = tmp_path / "s.json"
    p.write_text(json.dumps({"t_ns": [0, 10, 20], "face": [1, 2, 3], "finger": [3, 2, 1],
                             "finger_saturation": 0.1}))
    session = load_session(p)
    assert len(session.face) == 3
    assert session.aux.finger_saturation == pytest.approx(0.1)


def test_mapping_errors():
    with pytest.raises(InputError) as exc:
        session_from_mapping({"face": [1.0], "finger": [1.0]})
    assert exc.value.reason == "MissingTimestamps"
    with pytest.raises(InputError) as exc:
        session_from_mapping({"t_ns": [0], "face": [1.0]})
    assert exc.value.reason == "MissingChannel"


def test_unsupported_and_malformed(tmp_path):
    with pytest.raises(InputError) as exc:
        load_session(tmp_path / "s.txt")
    assert exc.value.reason == "UnsupportedFormat"
    p = tmp_path / "s.json"
    p.write_text("[1, 2]")
    with pytest.raises(InputError) as exc:
        load_session(p)
    assert exc.value.reason == "MalformedFile"


def test_save_rejects_unknown_suffix(tmp_path, streams):
    with pytest.raises(ValueError):
        save_session(tmp_path / "s.parquet", *streams)


def test_write_result_replaces_non_finite(tmp_path):
    out = tmp_path / "r.json"
    text = write_result({"a": float("inf"), "b": [1.0, float("nan")], "c": np.float64(2.5)}, out)
    assert json.loads(text) == {"a": None, "b": [1.0, None], "c": 2.5}
    assert json.loads(out.read_text()) == json.loads(text)


def test_csv_blank_value_drops_its_row(tmp_path):
    p = tmp_path / "gaps.csv"
    p.write_text(
        "face_t_ns,face,finger_t_ns,finger\n"
        "0,1.0,0,2.0\n"
        "10,,10,2.5\n"
        "20,1.5,,3.0\n"
        "30,2.0,30,3.5\n"
    )
    session = load_session(p)
    assert session.face.timestamps_ns.tolist() == [0, 20, 30]
    assert session.face.values.tolist() == [1.0, 1.5, 2.0]
    assert session.finger.timestamps_ns.tolist() == [0, 10, 30]
    assert session.finger.values.tolist() == [2.0, 2.5, 3.5]
