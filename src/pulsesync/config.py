"""Configuration utilities for pulsesync.

This module defines a hierarchical configuration schema using Pydantic models.
The :class:`Settings` container groups the specialised sub-sections used by
each processing stage: timeline synchronisation, filtering, conditional
denoising, channel quality, pulse timing, consensus, GoodSync segmentation,
confidence gating and the near-real-time quality engine.  Instances can be
populated from environment variables or from YAML/JSON files with matching
nested keys.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import EnvSettingsSource

try:  # pragma: no cover - optional dependency
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None


class SectionModel(BaseModel):
    """Base model for configuration subsections that ignores unknown fields."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


# ---------------------------------------------------------------------------
# Settings schema
# ---------------------------------------------------------------------------


class SyncSettings(SectionModel):
    """Unified timeline construction and drift measurement."""

    target_rate_hz: float = Field(100.0, gt=0)
    drift_window_ms: float = Field(5000.0, gt=0)
    drift_warn_ms_per_s: float = 5.0
    default_interval_ms: float = 33.33


class FilterSettings(SectionModel):
    """Detrend and cardiac band-pass parameters."""

    detrend_cutoff_hz: float = Field(0.5, gt=0)
    detrend_order: int = Field(2, ge=1)
    low_hz: float = Field(0.7, gt=0)
    high_hz: float = Field(4.0, gt=0)
    order: int = Field(4, ge=1)

    @model_validator(mode="after")
    def _check_band(self) -> "FilterSettings":
        if self.low_hz >= self.high_hz:
            raise ValueError("filter.low_hz must be below filter.high_hz")
        return self

    @property
    def band(self) -> tuple[float, float]:
        return (self.low_hz, self.high_hz)


class DenoiseSettings(SectionModel):
    """Conditional Haar wavelet shrinkage."""

    enabled: bool = True
    sqi_low: int = 40
    sqi_high: int = 80
    levels: int = Field(4, ge=1)
    threshold_factor: float = Field(1.0, ge=0)
    mode: str = "soft"

    @field_validator("mode")
    @classmethod
    def _check_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in {"soft", "hard"}:
            raise ValueError("denoise.mode must be 'soft' or 'hard'")
        return value

    @model_validator(mode="after")
    def _check_band(self) -> "DenoiseSettings":
        if self.sqi_low > self.sqi_high:
            raise ValueError("denoise.sqi_low must not exceed denoise.sqi_high")
        return self


class QualitySettings(SectionModel):
    """Penalty hinges used to build the per-channel SQI."""

    face_snr_target_db: float = 6.0
    face_snr_slope: float = 10.0
    finger_snr_target_db: float = 10.0
    finger_snr_slope: float = 8.0
    motion_threshold_px: float = 0.5
    motion_slope: float = 40.0
    saturation_threshold: float = 0.05
    saturation_slope: float = 500.0
    imu_threshold_g: float = 0.05
    imu_slope: float = 200.0
    snr_min_samples: int = 64
    snr_cap_db: float = 50.0


class TimingSettings(SectionModel):
    """Cross-correlation and foot-to-foot timing parameters."""

    max_lag_ms: float = Field(200.0, gt=0)
    min_samples: int = Field(100, ge=3)
    foot_slope_fraction: float = Field(0.05, ge=0, le=1)
    min_lag_ms: float = 50.0
    max_pair_lag_ms: float = 500.0
    refractory_ms: float = 350.0
    peak_threshold_factor: float = 0.3

    @model_validator(mode="after")
    def _check_band(self) -> "TimingSettings":
        if self.min_lag_ms >= self.max_pair_lag_ms:
            raise ValueError("timing.min_lag_ms must be below timing.max_pair_lag_ms")
        return self


class ConsensusSettings(SectionModel):
    """Two-method agreement and session aggregation."""

    agreement_ms: float = Field(20.0, ge=0)
    disagreement_weight: float = Field(0.5, ge=0, le=1)
    iqr_k: float = Field(1.5, ge=0)


class GoodSyncSettings(SectionModel):
    """Multi-metric gate and segment merging for GoodSync detection."""

    window_s: float = Field(8.0, gt=0)
    step_s: float = Field(1.0, gt=0)
    min_correlation: float = 0.70
    max_hr_delta_bpm: float = 5.0
    max_fwhm_delta_ms: float = 120.0
    min_sqi: int = 70
    use_imu_gate: bool = True
    imu_max_g: float = 0.05
    gap_close_ms: float = 1000.0
    min_segment_ms: float = 5000.0


class ConfidenceSettings(SectionModel):
    """Reporting threshold and sharpness normalisation."""

    threshold: float = Field(0.60, ge=0, le=1)
    sharpness_ref: float = Field(0.002, gt=0)
    low_sqi: int = 60
    low_correlation: float = 0.60


class AnalysisSettings(SectionModel):
    """Windowing used for per-window PTT estimation over a session."""

    window_s: float = Field(20.0, gt=0)
    step_s: float = Field(10.0, gt=0)


class RealtimeSettings(SectionModel):
    """Near-real-time quality engine."""

    buffer_s: float = Field(20.0, gt=0)
    window_s: float = Field(8.0, gt=0)
    refresh_hz: float = Field(2.5, gt=0, le=4.0)
    max_fs_hz: int = 90
    min_window_samples: int = 30
    face_snr_red_db: float = 3.0
    face_snr_yellow_db: float = 6.0
    finger_snr_red_db: float = 4.0
    finger_snr_yellow_db: float = 10.0
    motion_red_px: float = 1.0
    motion_yellow_px: float = 0.5
    saturation_red: float = 0.15
    saturation_yellow: float = 0.05
    imu_yellow_g: float = 0.05
    finger_snr_tip_db: float = 8.0
    hr_delta_tip_bpm: float = 5.0


class SimulationSettings(SectionModel):
    """Defaults for the synthetic dual-stream generator."""

    heart_rate_hz: float = 1.2
    ptt_ms: float = 100.0
    duration_s: float = 30.0
    capture_rate_hz: float = 30.0
    noise_level: float = 0.0
    drift_rate: float = 0.0
    white_noise: float = 0.0
    seed: int = 0


class Settings(BaseSettings):
    """Container for all runtime configuration sections."""

    sync: SyncSettings = Field(default_factory=SyncSettings)
    filter: FilterSettings = Field(default_factory=FilterSettings)
    denoise: DenoiseSettings = Field(default_factory=DenoiseSettings)
    quality: QualitySettings = Field(default_factory=QualitySettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    consensus: ConsensusSettings = Field(default_factory=ConsensusSettings)
    goodsync: GoodSyncSettings = Field(default_factory=GoodSyncSettings)
    confidence: ConfidenceSettings = Field(default_factory=ConfidenceSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)

    model_config = SettingsConfigDict(
        env_prefix="PULSESYNC_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        class LegacyEnvSettingsSource(EnvSettingsSource):
            def decode_complex_value(self, field_name, target_field, value):  # type: ignore[override]
                try:
                    return super().decode_complex_value(field_name, target_field, value)
                except json.JSONDecodeError:
                    return value

        env_settings.__class__ = LegacyEnvSettingsSource
        return init_settings, env_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``PULSESYNC_*`` environment variables only."""

        return cls()


# ---------------------------------------------------------------------------
# Loading utilities
# ---------------------------------------------------------------------------


def load_settings(path: str | Path) -> Settings:
    """Load settings from a JSON or YAML file."""

    p = Path(path)
    text = p.read_text()
    if p.suffix.lower() in {".yaml", ".yml"}:
        if yaml is None:
            raise RuntimeError("PyYAML is required to load YAML files")
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise TypeError("Configuration file must define a mapping")
    return Settings.model_validate(data)
