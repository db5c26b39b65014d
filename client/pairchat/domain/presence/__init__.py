"""Presence domain exports."""

from .models import DisconnectRecord, TypingState

__all__ = ["DisconnectRecord", "TypingState"]
