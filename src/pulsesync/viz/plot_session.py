"""Figure of a conditioned session with its GoodSync segments."""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt

from ..core.pipeline import SessionResult
from .styles import CHANNEL_COLORS, SEGMENT_COLOR, apply_style


def _title(result: SessionResult) -> str:
    if result.reported:
        return f"PTT {result.ptt_ms:.1f} ms (confidence {result.confidence:.2f})"
    return "PTT withheld: " + ", ".join(result.ptt.reasons)


def plot_session(result: SessionResult, *, save: str | Path | None = None):
    """Plot both conditioned channels, shading GoodSync segments.

    Returns the figure; when ``save`` is given it is also written there and
    closed.
    """

    if result.conditioned is None:
        raise ValueError("session has no conditioned signals to plot")
    cond = result.conditioned
    t_s = cond.time_ms / 1000.0

    apply_style()
    fig, (ax1, ax2) = plt.subplots(2, 1, sharex=True, gridspec_kw={"height_ratios": [3, 1]})
    ax1.plot(t_s, cond.face, color=CHANNEL_COLORS["face"], label="face")
    ax1.plot(t_s, cond.finger, color=CHANNEL_COLORS["finger"], label="finger")
    for seg in result.segments:
        ax1.axvspan(seg.start_ms / 1000.0, seg.end_ms / 1000.0, color=SEGMENT_COLOR, alpha=0.15)
    ax1.set_ylabel("z-score")
    ax1.set_title(_title(result))
    ax1.legend(loc="upper right")

    if result.windows:
        lags = [w.ptt_ms if w.valid else float("nan") for w in result.windows]
        centres = [(w.start_ms + w.end_ms) / 2000.0 for w in result.windows]
        ax2.plot(centres, lags, "o-", color="black")
    ax2.set_xlabel("Time [s]")
    ax2.set_ylabel("Window PTT [ms]")

    if save is not None:
        p = Path(save)
        p.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(p)
        plt.close(fig)
    return fig
