"""Common type helpers for pulsesync.

This module defines the lightweight containers exchanged between the
capture collaborators and the processing core.  Streams are immutable once
handed over; everything downstream produces new values.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import InputError


@dataclass(frozen=True)
class Window:
    """Index based window used for segmenting sequences."""

    start: int
    end: int

    @property
    def width(self) -> int:
        """Return the number of elements covered by the window."""

        return self.end - self.start


@dataclass(frozen=True)
class SampleStream:
    """Ordered ``(timestamp_ns, intensity)`` pairs from one optical channel.

    Timestamps are expected to increase strictly but violations are
    tolerated; they are counted by
    :func:`pulsesync.core.timestamps.validate_monotonicity`.
    """

    timestamps_ns: np.ndarray
    values: np.ndarray
    name: str = "stream"

    def __post_init__(self) -> None:
        ts = np.array(self.timestamps_ns, dtype=np.int64).reshape(-1)
        vals = np.array(self.values, dtype=float).reshape(-1)
        if ts.size != vals.size:
            raise InputError(
                "LengthMismatch",
                f"{self.name}: {ts.size} timestamps but {vals.size} values",
            )
        ts.setflags(write=False)
        vals.setflags(write=False)
        object.__setattr__(self, "timestamps_ns", ts)
        object.__setattr__(self, "values", vals)

    def __len__(self) -> int:
        return int(self.values.size)

    @property
    def is_empty(self) -> bool:
        return self.values.size == 0

    @property
    def span_ns(self) -> tuple[int, int]:
        """First and last timestamp of the stream."""

        if self.is_empty:
            raise InputError("EmptyStream", f"{self.name} has no samples")
        return int(self.timestamps_ns[0]), int(self.timestamps_ns[-1])


@dataclass(frozen=True)
class AuxMetrics:
    """Auxiliary quality inputs supplied by capture collaborators.

    Each field is either a scalar applying to the whole session or an array
    aligned with the unified timeline.  ``None`` means "not measured".
    """

    face_motion_px: float | np.ndarray | None = None
    finger_saturation: float | np.ndarray | None = None
    imu_rms_g: float | np.ndarray | None = None

    def window_mean(self, name: str, start: int, end: int) -> float | None:
        """Return the mean of metric ``name`` over samples ``[start, end)``."""

        value = getattr(self, name)
        if value is None:
            return None
        arr = np.asarray(value, dtype=float)
        if arr.ndim == 0:
            return float(arr)
        chunk = arr[start:end]
        if chunk.size == 0:
            return None
        return float(np.mean(chunk))

