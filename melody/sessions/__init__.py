"""Session token handling."""

from .registry import MIN_TOKEN_BYTES, SessionRecord, SessionRegistry

__all__ = ["MIN_TOKEN_BYTES", "SessionRecord", "SessionRegistry"]
