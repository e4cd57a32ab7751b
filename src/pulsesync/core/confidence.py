"""Confidence scoring and the report/withhold decision.

The PTT is published only when the combined confidence reaches the
threshold.  Otherwise the result is :class:`Withheld`, carrying the reasons
and at least one actionable capture tip.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from ..config import ConfidenceSettings
from .quality import ChannelQuality

logger = logging.getLogger(__name__)

LOW_CONFIDENCE = "LowConfidence"
FALLBACK_TIP = "Signal quality too low, please retry"


@dataclass(frozen=True)
class Reported:
    """A PTT value that passed the confidence gate."""

    ptt_ms: float
    confidence: float

    reported = True

    def as_dict(self) -> dict:
        return {"status": "reported", "ptt_ms": self.ptt_ms, "confidence": self.confidence}


@dataclass(frozen=True)
class Withheld:
    """No PTT published; ``reasons`` are machine tags, ``guidance`` user tips."""

    reasons: tuple[str, ...]
    guidance: tuple[str, ...]
    confidence: float = 0.0

    reported = False

    def as_dict(self) -> dict:
        return {
            "status": "withheld",
            "reasons": list(self.reasons),
            "guidance": list(self.guidance),
            "confidence": self.confidence,
        }


PttReport = Union[Reported, Withheld]


def combined_confidence(
    sqi_face: float,
    sqi_finger: float,
    correlation: float,
    sharpness: float,
    agreement_weight: float = 1.0,
    *,
    sharpness_ref: float = 0.002,
) -> float:
    """``(min SQI / 100) * corr * min(1, sharpness / ref) * weight`` in ``[0, 1]``."""

    sqi_term = max(0.0, min(sqi_face, sqi_finger)) / 100.0
    corr_term = max(0.0, min(1.0, correlation))
    sharp_term = max(0.0, min(1.0, sharpness / sharpness_ref)) if sharpness_ref > 0 else 1.0
    value = sqi_term * corr_term * sharp_term * agreement_weight
    return max(0.0, min(1.0, value))


def guidance(
    face: ChannelQuality | None,
    finger: ChannelQuality | None,
    correlation: float | None,
    agreeing: bool | None = None,
    *,
    settings: ConfidenceSettings | None = None,
) -> tuple[str, ...]:
    """Prioritised capture tips; never empty.

    Channel tips are emitted only for channels whose SQI falls below
    ``low_sqi``.  ``correlation=None`` means it was never measured and adds
    no movement tip.
    """

    cfg = settings or ConfidenceSettings()
    tips: list[str] = []

    if face is not None and face.sqi < cfg.low_sqi:
        if face.snr_score < 100.0:
            tips.append("Improve face lighting (reduce shadows)")
        if face.penalty > 0:
            tips.append("Hold head steady")
        if face.snr_score >= 100.0 and face.penalty <= 0:
            tips.append("Check face camera positioning")

    if finger is not None and finger.sqi < cfg.low_sqi:
        if finger.penalty > 0:
            tips.append("Reduce finger pressure slightly")
        if finger.snr_score < 100.0:
            tips.append("Check torch is enabled and finger covers the lens")
        if finger.snr_score >= 100.0 and finger.penalty <= 0:
            tips.append("Check finger placement")

    if correlation is not None and correlation < cfg.low_correlation:
        tips.append("Hold both cameras steady (reduce movement)")
    if agreeing is False:
        tips.append("Stay still until both signals align")

    if not tips:
        tips.append(FALLBACK_TIP)
    return tuple(dict.fromkeys(tips))


def gate(
    ptt_ms: float | None,
    confidence: float,
    *,
    face: ChannelQuality | None = None,
    finger: ChannelQuality | None = None,
    correlation: float | None = None,
    agreeing: bool | None = None,
    reasons: tuple[str, ...] = (),
    settings: ConfidenceSettings | None = None,
) -> PttReport:
    """Report ``ptt_ms`` iff ``confidence >= threshold`` and no hard reason applies."""

    cfg = settings or ConfidenceSettings()
    if ptt_ms is not None and not reasons and confidence >= cfg.threshold:
        return Reported(ptt_ms=float(ptt_ms), confidence=confidence)

    tags = tuple(reasons)
    if confidence < cfg.threshold and LOW_CONFIDENCE not in tags:
        tags = tags + (LOW_CONFIDENCE,)
    if not tags:
        tags = ("NoEstimate",)
    tips = guidance(face, finger, correlation, agreeing, settings=cfg)
    logger.warning("PTT withheld (confidence %.2f, threshold %.2f): %s",
                   confidence, cfg.threshold, ", ".join(tags))
    return Withheld(reasons=tags, guidance=tips, confidence=confidence)


__all__ = [
    "LOW_CONFIDENCE",
    "FALLBACK_TIP",
    "Reported",
    "Withheld",
    "PttReport",
    "combined_confidence",
    "guidance",
    "gate",
]
