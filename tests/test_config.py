import json

import pytest
from pydantic import ValidationError

from pulsesync.config import Settings, load_settings


def test_defaults():
    s = Settings()
    assert s.filter.band == (0.7, 4.0)
    assert s.confidence.threshold == 0.60
    assert s.goodsync.min_correlation == 0.70
    assert s.sync.target_rate_hz == 100.0


def test_from_env(monkeypatch):
    monkeypatch.setenv("PULSESYNC_FILTER__LOW_HZ", "0.9")
    monkeypatch.setenv("PULSESYNC_CONFIDENCE__THRESHOLD", "0.75")
    s = Settings.from_env()
    assert s.filter.low_hz == 0.9
    assert s.confidence.threshold == 0.75


def test_load_settings_json(tmp_path):
    p = tmp_path / "cfg.json"
    p.write_text(json.dumps({"timing": {"max_lag_ms": 250}, "goodsync": {"min_sqi": 60}}))
    s = load_settings(p)
    assert s.timing.max_lag_ms == 250
    assert s.goodsync.min_sqi == 60
    assert s.filter.high_hz == 4.0


def test_load_settings_rejects_non_mapping(tmp_path):
    p = tmp_path / "cfg.json"
    p.write_text("[1, 2]")
    with pytest.raises(TypeError):
        load_settings(p)


try:
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None


@pytest.mark.skipif(yaml is None, reason="PyYAML not installed")
def test_load_settings_yaml(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("denoise:\n  mode: HARD\nconsensus:\n  agreement_ms: 15\n")
    s = load_settings(p)
    assert s.denoise.mode == "hard"
    assert s.consensus.agreement_ms == 15


def test_inverted_band_rejected():
    with pytest.raises(ValidationError):
        Settings.model_validate({"filter": {"low_hz": 5.0, "high_hz": 4.0}})


def test_unknown_denoise_mode_rejected():
    with pytest.raises(ValidationError):
        Settings.model_validate({"denoise": {"mode": "garrote"}})


def test_refresh_rate_capped():
    with pytest.raises(ValidationError):
        Settings.model_validate({"realtime": {"refresh_hz": 10}})
