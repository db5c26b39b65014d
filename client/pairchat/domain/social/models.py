"""Friend request state carried alongside a chat session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FriendRequestStatus(str, Enum):
	NONE = "none"
	SENT_PENDING = "sent_pending"
	RECEIVED_PENDING = "received_pending"


@dataclass(slots=True, frozen=True)
class FriendRequestRecord:
	status: FriendRequestStatus = FriendRequestStatus.NONE
	from_id: Optional[str] = None
	from_name: Optional[str] = None
	to_id: Optional[str] = None

	@property
	def is_pending(self) -> bool:
		return self.status is not FriendRequestStatus.NONE

	def involves(self, user_id: str) -> bool:
		return self.is_pending and user_id in (self.from_id, self.to_id)
