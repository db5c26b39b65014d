"""Pydantic schemas for events the client emits to the chat server."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field


class OutboundEvent(str, Enum):
	"""Realtime event names emitted by the client."""

	SET_USERNAME = "set_username"
	JOIN_ROOM = "join_room"
	LEAVE_CHAT = "leave_chat"
	LEAVE_FRIEND_CHAT = "leave_friend_chat"
	START_SEARCH = "start_search"
	STOP_SEARCH = "stop_search"
	START_FRIEND_CHAT = "start_friend_chat"
	SEND_MESSAGE = "send_message"
	TYPING = "typing"
	MESSAGE_SEEN = "message_seen"
	SEND_FRIEND_REQUEST = "send_friend_request"


class WireModel(BaseModel):
	"""camelCase on the wire, snake_case in Python."""

	model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class OutboundPayload(WireModel):
	event: ClassVar[OutboundEvent]

	def to_wire(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True)


class SetUsernamePayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.SET_USERNAME

	user_id: str = Field(..., alias="userId")
	username: str


class JoinRoomPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.JOIN_ROOM

	room_id: str = Field(..., alias="roomId")
	user_id: str = Field(..., alias="userId")


class LeaveChatPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.LEAVE_CHAT

	to_user_id: str = Field(..., alias="toUserId")


class LeaveFriendChatPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.LEAVE_FRIEND_CHAT

	user_id: str = Field(..., alias="userId")
	friend_id: str = Field(..., alias="friendId")


class StartSearchPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.START_SEARCH

	user_id: str = Field(..., alias="userId")
	username: Optional[str] = None


class StopSearchPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.STOP_SEARCH

	user_id: str = Field(..., alias="userId")


class StartFriendChatPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.START_FRIEND_CHAT

	user_id: str = Field(..., alias="userId")
	friend_id: str = Field(..., alias="friendId")
	username: Optional[str] = None


class SendMessagePayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.SEND_MESSAGE

	to_user_id: str = Field(..., alias="toUserId")
	message: str
	from_user_id: str = Field(..., alias="fromUserId")
	timestamp: int


class TypingPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.TYPING

	to_user_id: str = Field(..., alias="toUserId")
	from_user_id: str = Field(..., alias="fromUserId")


class MessageSeenPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.MESSAGE_SEEN

	to_user_id: str = Field(..., alias="toUserId")
	from_user_id: str = Field(..., alias="fromUserId")
	timestamp: int


class SendFriendRequestPayload(OutboundPayload):
	event: ClassVar[OutboundEvent] = OutboundEvent.SEND_FRIEND_REQUEST

	to_user_id: str = Field(..., alias="toUserId")
	from_user_id: str = Field(..., alias="fromUserId")
	from_username: str = Field(..., alias="fromUsername")
