"""Chat session models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from pairchat.domain.exceptions import InvalidIdentity


class ChatMode(str, Enum):
	NONE = "none"
	RANDOM = "random"
	FRIEND = "friend"


class SessionStage(str, Enum):
	IDLE = "idle"
	SEARCHING = "searching"
	ACTIVE = "active"
	ENDING = "ending"


class EndReason(str, Enum):
	LEFT = "left"
	PARTNER_LEFT = "partner_left"
	NAVIGATED_AWAY = "navigated_away"
	BECAME_FRIENDS = "became_friends"
	NOT_AUTHORIZED = "not_authorized"
	FRIEND_REMOVED = "friend_removed"
	RESET = "reset"


ROOM_SEPARATORS: Dict[ChatMode, str] = {
	ChatMode.RANDOM: "-",
	ChatMode.FRIEND: "_",
}


@dataclass(slots=True, frozen=True)
class RoomKey:
	"""Canonical room for a pair of users, independent of who joins first."""

	user_a: str
	user_b: str
	mode: ChatMode

	@classmethod
	def from_participants(cls, user_one: str, user_two: str, mode: ChatMode) -> "RoomKey":
		if mode not in ROOM_SEPARATORS:
			raise ValueError(f"no room layout for mode {mode.value}")
		for user_id in (user_one, user_two):
			if not user_id or any(sep in user_id for sep in ROOM_SEPARATORS.values()):
				raise InvalidIdentity("Invalid participant ID.")
		ordered = sorted((user_one, user_two))
		return cls(user_a=ordered[0], user_b=ordered[1], mode=mode)

	@property
	def room_id(self) -> str:
		return f"{self.user_a}{ROOM_SEPARATORS[self.mode]}{self.user_b}"


def room_id_for(user_one: str, user_two: str, mode: ChatMode) -> str:
	return RoomKey.from_participants(user_one, user_two, mode).room_id


@dataclass(slots=True)
class Session:
	mode: ChatMode = ChatMode.NONE
	stage: SessionStage = SessionStage.IDLE
	partner_id: Optional[str] = None
	partner_name: Optional[str] = None
	room_id: Optional[str] = None
	# Fresh per active session; async results compare it before applying.
	session_id: Optional[str] = None
	end_reason: Optional[EndReason] = None

	@property
	def is_active(self) -> bool:
		return self.stage is SessionStage.ACTIVE
