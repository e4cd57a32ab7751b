"""Utility modules for loading recorded pulsesync sessions."""

from .streams import RecordedSession, load_session, session_from_mapping

__all__ = ["RecordedSession", "load_session", "session_from_mapping"]
