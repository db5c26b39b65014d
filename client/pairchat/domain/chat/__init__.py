"""Chat domain exports."""

from .models import Message, MessageKind, MessageLog, SenderRole

__all__ = [
	"Message",
	"MessageKind",
	"MessageLog",
	"SenderRole",
]
