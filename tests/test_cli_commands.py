import json

import pytest
from typer.testing import CliRunner

from pulsesync.cli import app

runner = CliRunner()


@pytest.fixture
def session_path(tmp_path):
    path = tmp_path / "ideal.npz"
    result = runner.invoke(app, ["simulate", str(path), "--preset", "ideal"])
    assert result.exit_code == 0, result.output
    assert "ptt=100 ms" in result.stdout
    return path


def test_simulate_csv_with_overrides(tmp_path):
    path = tmp_path / "s.csv"
    result = runner.invoke(app, ["simulate", str(path), "--ptt-ms", "120", "--duration", "10"])
    assert result.exit_code == 0, result.output
    assert "300 samples" in result.stdout
    assert path.exists()


def test_simulate_unknown_preset(tmp_path):
    result = runner.invoke(app, ["simulate", str(tmp_path / "s.npz"), "--preset", "nope"])
    assert result.exit_code != 0


def test_analyze_prints_json(session_path):
    result = runner.invoke(app, ["analyze", str(session_path)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["ptt"]["status"] == "reported"
    assert 90.0 <= data["ptt"]["ptt_ms"] <= 110.0


def test_analyze_writes_output(session_path, tmp_path):
    out = tmp_path / "result.json"
    result = runner.invoke(app, ["analyze", str(session_path), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("PTT ")
    assert json.loads(out.read_text())["segments"]


def test_analyze_quiet(session_path):
    result = runner.invoke(app, ["analyze", str(session_path), "--quiet"])
    assert result.exit_code == 0
    assert result.stdout.strip().startswith("PTT ")
    assert "confidence" in result.stdout


def test_set_override_withholds(session_path):
    result = runner.invoke(app, ["--set", "confidence.threshold=1.0", "analyze", str(session_path), "-q"])
    assert result.exit_code == 0, result.output
    assert "PTT withheld: LowConfidence" in result.stdout


def test_set_unknown_key(session_path):
    result = runner.invoke(app, ["--set", "confidence.nope=1", "analyze", str(session_path)])
    assert result.exit_code != 0


def test_config_file(session_path, tmp_path):
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"confidence": {"threshold": 1.0}}))
    result = runner.invoke(app, ["--config", str(cfg), "analyze", str(session_path), "-q"])
    assert result.exit_code == 0, result.output
    assert "withheld" in result.stdout


def test_segments(session_path):
    result = runner.invoke(app, ["segments", str(session_path)])
    assert result.exit_code == 0, result.output
    assert "corr=" in result.stdout


def test_segments_none_for_short_session(tmp_path):
    path = tmp_path / "short.npz"
    runner.invoke(app, ["simulate", str(path), "--duration", "6"])
    result = runner.invoke(app, ["segments", str(path)])
    assert result.exit_code == 0
    assert "No GoodSync segments" in result.stdout


def test_plot(session_path, tmp_path):
    import matplotlib

    matplotlib.use("Agg")
    out = tmp_path / "fig.png"
    result = runner.invoke(app, ["plot", str(session_path), "--save", str(out)])
    assert result.exit_code == 0, result.output
    assert out.exists()


def test_monitor(session_path):
    result = runner.invoke(app, ["monitor", str(session_path)])
    assert result.exit_code == 0, result.output
    assert "face=green" in result.stdout


def test_unreadable_session(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("[]")
    result = runner.invoke(app, ["analyze", str(bad)])
    assert result.exit_code == 1


def test_rate_too_low_for_band(session_path):
    result = runner.invoke(app, ["--set", "sync.target_rate_hz=6", "analyze", str(session_path)])
    assert result.exit_code == 1


def test_repeated_invocations_in_one_process(tmp_path):
    for name in ("a.npz", "b.npz", "c.npz"):
        result = runner.invoke(app, ["-v", "simulate", str(tmp_path / name), "--duration", "10"])
        assert result.exit_code == 0, result.output
        assert (tmp_path / name).exists()


def test_module_docstring():
    import pulsesync.cli

    assert "Typer" in pulsesync.cli.__doc__
