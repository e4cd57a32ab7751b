"""Exception types raised for malformed input or configuration.

Noisy or low-quality signals never raise: those outcomes are reported
through sentinel estimates, weights and withheld results.  Only input that
cannot be processed at all ends up here.
"""

from __future__ import annotations


class PulseSyncError(ValueError):
    """Base class for all pulsesync errors."""


class InputError(PulseSyncError):
    """Raised when input streams cannot be processed.

    ``reason`` is a short machine readable tag such as ``"NoOverlap"`` or
    ``"InsufficientSamples"``; the message is meant for humans.
    """

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(f"{reason}: {message}" if message else reason)


class ConfigurationError(PulseSyncError):
    """Raised when settings are inconsistent with the supplied data."""


__all__ = ["PulseSyncError", "InputError", "ConfigurationError"]
