"""Core signal-processing stages for pulsesync."""

from .confidence import PttReport, Reported, Withheld, combined_confidence, gate, guidance
from .consensus import ConsensusResult, SessionAggregate, aggregate, combine
from .feet import FootToFootEstimate, detect_feet, foot_to_foot_lag
from .filters import ConditionedChannel, bandpass, condition_channel, detrend, zscore
from .goodsync import SyncSegment, WindowMetrics, detect_segments, evaluate_gate, merge_windows
from .pipeline import SessionResult, analyze_session
from .quality import ChannelQuality, assess_channel, face_sqi, finger_sqi, snr_db
from .realtime import RealTimeQualityEngine, RealtimeSample, RingBuffer
from .timestamps import (
    UnifiedTimeline,
    compute_drift,
    estimate_frame_interval,
    resample_to_unified_timeline,
    synchronize,
    validate_monotonicity,
)
from .wavelet import denoise, should_denoise
from .xcorr import CrossCorrelationEstimate, cross_correlation_lag

__all__ = [
    "PttReport",
    "Reported",
    "Withheld",
    "combined_confidence",
    "gate",
    "guidance",
    "ConsensusResult",
    "SessionAggregate",
    "aggregate",
    "combine",
    "FootToFootEstimate",
    "detect_feet",
    "foot_to_foot_lag",
    "ConditionedChannel",
    "bandpass",
    "condition_channel",
    "detrend",
    "zscore",
    "SyncSegment",
    "WindowMetrics",
    "detect_segments",
    "evaluate_gate",
    "merge_windows",
    "SessionResult",
    "analyze_session",
    "ChannelQuality",
    "assess_channel",
    "face_sqi",
    "finger_sqi",
    "snr_db",
    "RealTimeQualityEngine",
    "RealtimeSample",
    "RingBuffer",
    "UnifiedTimeline",
    "compute_drift",
    "estimate_frame_interval",
    "resample_to_unified_timeline",
    "synchronize",
    "validate_monotonicity",
    "denoise",
    "should_denoise",
    "CrossCorrelationEstimate",
    "cross_correlation_lag",
]
