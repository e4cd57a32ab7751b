"""Writers for sessions and analysis results."""

from .session import save_session, write_result

__all__ = ["save_session", "write_result"]
