"""Matplotlib styles for pulsesync figures."""

from __future__ import annotations

import matplotlib.pyplot as plt

# Base style shared by every figure; override entries through :func:`apply_style`.
BASE_STYLE = {
    "figure.figsize": (11, 5),
    "axes.grid": True,
    "grid.linestyle": "--",
    "grid.alpha": 0.4,
    "axes.titlesize": "large",
    "axes.labelsize": "medium",
    "lines.linewidth": 1.2,
}

CHANNEL_COLORS = {"face": "tab:blue", "finger": "tab:red"}
SEGMENT_COLOR = "tab:green"


def apply_style(extra: dict | None = None) -> None:
    """Apply a consistent matplotlib style.

    Parameters
    ----------
    extra:
        Optional dictionary of rcParams that override the base style.
    """
    style = BASE_STYLE.copy()
    if extra:
        style.update(extra)
    plt.rcParams.update(style)
