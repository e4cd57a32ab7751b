"""Loaders for recorded dual-channel sessions.

Supported layouts:

A) ``.npz`` archives with ``face_t_ns``, ``face``, ``finger_t_ns`` and
   ``finger`` arrays (a shared ``t_ns`` array may replace the per-channel
   timestamps).  Optional ``face_motion_px``, ``finger_saturation`` and
   ``imu_rms_g`` arrays become auxiliary metrics.

B) ``.json`` documents with the same keys holding lists.

C) Headered CSV, either shared-clock ``timestamp_ns,face,finger`` or
   per-channel ``face_t_ns,face,finger_t_ns,finger`` (blank cells allowed
   where one channel has fewer samples).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import pandas as pd

from ..errors import InputError
from ..types import AuxMetrics, SampleStream

logger = logging.getLogger(__name__)

_SHARED_TS = ("t_ns", "timestamp_ns", "timestamp")
_AUX_FIELDS = ("face_motion_px", "finger_saturation", "imu_rms_g")


@dataclass(frozen=True)
class RecordedSession:
    face: SampleStream
    finger: SampleStream
    aux: AuxMetrics
    source: str = ""


def _pick(data: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _channel(timestamps: Any, values: Any, name: str) -> SampleStream:
    """Build one stream, dropping rows where the timestamp or the value is missing."""

    ts = np.asarray(timestamps).reshape(-1)
    vals = np.asarray(values, dtype=float).reshape(-1)
    if ts.size == vals.size:
        keep = np.isfinite(vals)
        if not np.issubdtype(ts.dtype, np.integer):
            ts = np.round(ts.astype(float))
            keep &= np.isfinite(ts)
        ts, vals = ts[keep], vals[keep]
    # Unequal lengths are left for SampleStream to reject.
    return SampleStream(ts.astype(np.int64), vals, name=name)


def session_from_mapping(data: Mapping[str, Any], *, source: str = "<mapping>") -> RecordedSession:
    """Build a :class:`RecordedSession` from array-like columns."""

    shared = _pick(data, _SHARED_TS)
    face_ts = _pick(data, ("face_t_ns", "face_timestamp_ns"))
    finger_ts = _pick(data, ("finger_t_ns", "finger_timestamp_ns"))
    face_ts = shared if face_ts is None else face_ts
    finger_ts = shared if finger_ts is None else finger_ts
    if face_ts is None or finger_ts is None:
        raise InputError("MissingTimestamps", f"{source}: no timestamp column")
    for key in ("face", "finger"):
        if key not in data:
            raise InputError("MissingChannel", f"{source}: no {key!r} column")

    face = _channel(face_ts, data["face"], "face")
    finger = _channel(finger_ts, data["finger"], "finger")

    aux_kwargs = {}
    for name in _AUX_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        arr = np.asarray(value, dtype=float)
        aux_kwargs[name] = float(arr) if arr.ndim == 0 else arr
    return RecordedSession(face, finger, AuxMetrics(**aux_kwargs), source)


def _read_csv(path: Path) -> dict[str, Any]:
    df = pd.read_csv(path)
    df.columns = [str(c).strip().lstrip("\ufeff") for c in df.columns]
    if not any(c in df.columns for c in _SHARED_TS):
        return {c: df[c].to_numpy() for c in df.columns}
    # Shared clock: rows missing either channel are unusable.
    df = df.dropna(subset=[c for c in ("face", "finger") if c in df.columns])
    return {c: df[c].to_numpy() for c in df.columns}


def load_session(path: str | Path) -> RecordedSession:
    """Load a recorded session from ``.npz``, ``.json`` or ``.csv``."""

    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".npz":
        with np.load(p, allow_pickle=False) as npz:
            data = {k: npz[k] for k in npz.files}
    elif suffix == ".json":
        data = json.loads(p.read_text())
        if not isinstance(data, dict):
            raise InputError("MalformedFile", f"{p}: JSON session must be an object")
    elif suffix == ".csv":
        data = _read_csv(p)
    else:
        raise InputError("UnsupportedFormat", f"{p}: expected .npz, .json or .csv")
    session = session_from_mapping(data, source=str(p))
    logger.debug("loaded %s: %d face / %d finger samples", p, len(session.face), len(session.finger))
    return session


__all__ = ["RecordedSession", "session_from_mapping", "load_session"]
