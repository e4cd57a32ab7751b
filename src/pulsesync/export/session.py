"""Persist recorded sessions and analysis results.

Sessions are written in the layouts :func:`pulsesync.ingest.load_session`
reads back: compressed ``npz`` archives or per-channel CSV via pandas.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..types import AuxMetrics, SampleStream


def _columns(face: SampleStream, finger: SampleStream, aux: AuxMetrics | None) -> dict[str, np.ndarray]:
    cols: dict[str, np.ndarray] = {
        "face_t_ns": face.timestamps_ns,
        "face": face.values,
        "finger_t_ns": finger.timestamps_ns,
        "finger": finger.values,
    }
    if aux is not None:
        for name in ("face_motion_px", "finger_saturation", "imu_rms_g"):
            value = getattr(aux, name)
            if value is not None:
                cols[name] = np.asarray(value, dtype=float)
    return cols


def save_session(
    path: str | Path,
    face: SampleStream,
    finger: SampleStream,
    aux: AuxMetrics | None = None,
) -> Path:
    """Write ``face``/``finger`` (and optional aux metrics) to ``.npz`` or ``.csv``.

    Parameters
    ----------
    path:
        Destination; the suffix selects the format.  Parent directories are
        created as needed.
    face, finger:
        Raw channel streams.
    aux:
        Optional auxiliary metrics.  Only per-sample arrays are written to
        CSV; scalars are kept in ``npz`` archives only.

    Returns
    -------
    pathlib.Path
        The written path.
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    cols = _columns(face, finger, aux)
    if p.suffix.lower() == ".npz":
        np.savez_compressed(p, **cols)
    elif p.suffix.lower() == ".csv":
        series = {k: pd.Series(v) for k, v in cols.items() if np.ndim(v) == 1}
        df = pd.DataFrame(series)
        df["face_t_ns"] = df["face_t_ns"].astype("Int64")
        df["finger_t_ns"] = df["finger_t_ns"].astype("Int64")
        df.to_csv(p, index=False)
    else:
        raise ValueError(f"unsupported session format: {p.suffix}")
    return p


def _default(obj: Any) -> Any:
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serialisable")


def write_result(result: Any, path: str | Path | None = None) -> str:
    """Serialise ``result.as_dict()`` (or a plain mapping) to JSON.

    Infinite values become ``null``.  When ``path`` is given the text is
    also written there.
    """

    data = result.as_dict() if hasattr(result, "as_dict") else result
    text = json.dumps(_finite_only(data), indent=2, default=_default)
    if path is not None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text)
    return text


def _finite_only(value: Any) -> Any:
    if isinstance(value, float) and not np.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _finite_only(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite_only(v) for v in value]
    return value
