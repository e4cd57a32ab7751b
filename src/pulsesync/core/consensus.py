"""Agreement between the two timing methods and session aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import numpy as np

from ..config import ConsensusSettings
from ..utils.signals import iqr, tukey_mask, weighted_median
from .feet import FootToFootEstimate
from .xcorr import CrossCorrelationEstimate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsensusResult:
    """Combined PTT for one analysis window.

    ``ptt_ms`` always comes from the cross-correlation lag; the foot method
    only decides ``weight``.  ``method_agreement_ms`` is ``None`` when no
    foot pair was found.
    """

    ptt_ms: float
    iqr_ms: float
    method_agreement_ms: float | None
    beat_count: int
    agreeing: bool
    weight: float
    xcorr: CrossCorrelationEstimate
    foot: FootToFootEstimate
    valid: bool = True
    start_ms: float = 0.0
    end_ms: float = 0.0

    def as_dict(self) -> dict:
        return {
            "ptt_ms": self.ptt_ms,
            "iqr_ms": self.iqr_ms,
            "method_agreement_ms": self.method_agreement_ms,
            "beat_count": self.beat_count,
            "agreeing": self.agreeing,
            "weight": self.weight,
            "correlation": self.xcorr.correlation,
            "valid": self.valid,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
        }


@dataclass(frozen=True)
class SessionAggregate:
    """Robust session-level PTT from the per-window results."""

    ptt_ms: float
    stability_ms: float
    iqr_ms: float
    agreement_fraction: float
    windows_used: int
    windows_rejected: int
    mean_weight: float
    accepted: tuple[int, ...] = field(default=(), repr=False)

    @property
    def valid(self) -> bool:
        return self.windows_used > 0


def combine(
    xcorr: CrossCorrelationEstimate,
    foot: FootToFootEstimate,
    *,
    settings: ConsensusSettings | None = None,
) -> ConsensusResult:
    """Cross-check the xcorr lag against the median foot lag.

    Agreement within ``agreement_ms`` keeps full weight; disagreement or a
    missing foot estimate drops the weight to ``disagreement_weight``.
    """

    cfg = settings or ConsensusSettings()
    if not xcorr.valid:
        return ConsensusResult(0.0, 0.0, None, foot.paired_beats, False, 0.0,
                               xcorr, foot, valid=False)

    delta: float | None = None
    agreeing = False
    if foot.valid:
        delta = abs(xcorr.lag_ms - foot.median_lag_ms)
        agreeing = delta <= cfg.agreement_ms
    weight = 1.0 if agreeing else cfg.disagreement_weight
    if not agreeing:
        logger.debug("methods disagree: xcorr=%.1f ms foot=%s", xcorr.lag_ms,
                     f"{foot.median_lag_ms:.1f} ms" if foot.valid else "none")
    return ConsensusResult(
        ptt_ms=xcorr.lag_ms,
        iqr_ms=foot.iqr_ms,
        method_agreement_ms=delta,
        beat_count=foot.paired_beats,
        agreeing=agreeing,
        weight=weight,
        xcorr=xcorr,
        foot=foot,
    )


def aggregate(
    results: Iterable[ConsensusResult],
    *,
    settings: ConsensusSettings | None = None,
) -> SessionAggregate:
    """Tukey-fence outlier rejection followed by a weighted median.

    Stability is the standard deviation of the surviving window PTTs.
    """

    cfg = settings or ConsensusSettings()
    items: Sequence[ConsensusResult] = list(results)
    valid_idx = [i for i, r in enumerate(items) if r.valid]
    if not valid_idx:
        return SessionAggregate(0.0, 0.0, 0.0, 0.0, 0, 0, 0.0)

    ptts = np.array([items[i].ptt_ms for i in valid_idx])
    weights = np.array([items[i].weight for i in valid_idx])
    keep = tukey_mask(ptts, cfg.iqr_k)
    kept = ptts[keep]
    kept_w = weights[keep]
    accepted = tuple(i for i, k in zip(valid_idx, keep) if k)
    agreeing = sum(1 for i in accepted if items[i].agreeing)

    rejected = int(ptts.size - kept.size)
    if rejected:
        logger.debug("rejected %d outlier window(s)", rejected)
    return SessionAggregate(
        ptt_ms=weighted_median(kept, kept_w),
        stability_ms=float(np.std(kept)) if kept.size > 1 else 0.0,
        iqr_ms=iqr(kept),
        agreement_fraction=agreeing / len(accepted),
        windows_used=len(accepted),
        windows_rejected=rejected,
        mean_weight=float(np.mean(kept_w)),
        accepted=accepted,
    )


__all__ = ["ConsensusResult", "SessionAggregate", "combine", "aggregate"]
