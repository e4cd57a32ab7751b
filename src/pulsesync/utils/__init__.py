"""Small shared helpers for pulsesync."""
