"""Session domain exports."""

from .models import ChatMode, EndReason, RoomKey, Session, SessionStage, room_id_for

__all__ = [
	"ChatMode",
	"EndReason",
	"RoomKey",
	"Session",
	"SessionStage",
	"room_id_for",
]
