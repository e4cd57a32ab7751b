"""Plotting helpers for pulsesync sessions."""

from .plot_session import plot_session
from .styles import apply_style

__all__ = ["plot_session", "apply_style"]
