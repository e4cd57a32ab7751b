import logging

import pytest

from pulsesync.config import ConfidenceSettings
from pulsesync.core.confidence import (
    FALLBACK_TIP,
    LOW_CONFIDENCE,
    Reported,
    Withheld,
    combined_confidence,
    gate,
    guidance,
)
from pulsesync.core.quality import face_sqi, finger_sqi


def test_combined_confidence_formula():
    assert combined_confidence(100, 100, 1.0, 0.002) == pytest.approx(1.0)
    assert combined_confidence(80, 90, 0.9, 0.004) == pytest.approx(0.72)
    assert combined_confidence(80, 90, 0.9, 0.001) == pytest.approx(0.36)
    assert combined_confidence(100, 100, 1.0, 0.01, 0.5) == pytest.approx(0.5)


def test_combined_confidence_is_clamped():
    assert combined_confidence(100, 100, 1.5, 1.0) == 1.0
    assert combined_confidence(100, 100, -0.3, 0.01) == 0.0
    assert combined_confidence(-10, 100, 0.9, 0.01) == 0.0


def test_gate_reports_at_threshold():
    report = gate(100.0, 0.60)
    assert isinstance(report, Reported)
    assert report.reported
    assert report.ptt_ms == 100.0
    assert report.as_dict()["status"] == "reported"


def test_gate_withholds_below_threshold(caplog):
    with caplog.at_level(logging.WARNING, logger="pulsesync"):
        report = gate(100.0, 0.599, correlation=0.9)
    assert isinstance(report, Withheld)
    assert not report.reported
    assert report.reasons == (LOW_CONFIDENCE,)
    assert report.guidance
    assert report.confidence == 0.599
    assert "withheld" in caplog.text


def test_gate_withholds_on_hard_reason():
    report = gate(100.0, 0.95, reasons=("InsufficientSamples",))
    assert not report.reported
    assert report.reasons == ("InsufficientSamples",)


def test_gate_without_estimate():
    report = gate(None, 0.9)
    assert report.reasons == ("NoEstimate",)
    assert report.as_dict()["guidance"] == [FALLBACK_TIP]


def test_custom_threshold():
    cfg = ConfidenceSettings(threshold=0.5)
    assert gate(100.0, 0.55, settings=cfg).reported


def test_guidance_channel_tips():
    dim_face = face_sqi(0.0)
    shaky_face = face_sqi(20.0, motion_px=2.0)
    pressed_finger = finger_sqi(20.0, saturation=0.2)
    dark_finger = finger_sqi(2.0)
    assert guidance(dim_face, None, 0.9) == ("Improve face lighting (reduce shadows)",)
    assert guidance(shaky_face, None, 0.9) == ("Hold head steady",)
    assert guidance(None, pressed_finger, 0.9) == ("Reduce finger pressure slightly",)
    assert guidance(None, dark_finger, 0.9) == ("Check torch is enabled and finger covers the lens",)


def test_guidance_order_and_agreement():
    tips = guidance(face_sqi(0.0), finger_sqi(2.0), 0.3, agreeing=False)
    assert tips == (
        "Improve face lighting (reduce shadows)",
        "Check torch is enabled and finger covers the lens",
        "Hold both cameras steady (reduce movement)",
        "Stay still until both signals align",
    )


def test_guidance_ignores_good_channels():
    assert guidance(face_sqi(20.0), finger_sqi(20.0), 0.9) == (FALLBACK_TIP,)


def test_unmeasured_correlation_adds_no_movement_tip():
    assert guidance(None, None, None) == (FALLBACK_TIP,)
    assert guidance(None, None, 0.3) == ("Hold both cameras steady (reduce movement)",)
    report = gate(None, 0.0, reasons=("NoOverlap",))
    assert report.guidance == (FALLBACK_TIP,)
