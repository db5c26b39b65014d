"""Closed set of inbound realtime events and the parser that builds them."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Literal, Optional, Type, Union

from pydantic import AliasChoices, Field, ValidationError, field_validator

from pairchat.domain.exceptions import MalformedEvent
from pairchat.realtime.schemas import WireModel


class InboundEvent(WireModel):
	name: ClassVar[str] = ""


class TransportConnected(InboundEvent):
	"""Raised by the transport itself once the socket is open."""

	name: ClassVar[str] = "connect"


class TransportDisconnected(InboundEvent):
	"""Raised by the transport when the socket drops."""

	name: ClassVar[str] = "disconnect"

	reason: Optional[str] = None


class MatchFound(InboundEvent):
	name: ClassVar[str] = "match_found"

	# Format is validated by the session machine so a bad id can abort the match.
	partner_id: Optional[str] = Field(default=None, alias="partnerId")
	partner_name: str = Field(default="Anonymous", alias="partnerName")

	@field_validator("partner_name", mode="before")
	def _default_name(cls, value: Any):  # type: ignore[override]
		return value or "Anonymous"


class ReceiveMessage(InboundEvent):
	name: ClassVar[str] = "receive_message"

	message: str
	from_user_id: str = Field(..., alias="fromUserId")
	timestamp: int
	message_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("messageId", "_id", "message_id"))


class PartnerTyping(InboundEvent):
	name: ClassVar[str] = "partner_typing"

	from_user_id: str = Field(..., alias="fromUserId")


class MessageSeen(InboundEvent):
	name: ClassVar[str] = "message_seen"

	from_user_id: str = Field(..., alias="fromUserId")
	timestamp: int
	to_user_id: Optional[str] = Field(default=None, alias="toUserId")


class PartnerDisconnected(InboundEvent):
	name: ClassVar[str] = "partner_disconnected"

	disconnected_user_id: str = Field(..., alias="disconnectedUserId")


class FriendRequestReceived(InboundEvent):
	name: ClassVar[str] = "friend_request_received"

	from_user_id: str = Field(..., alias="fromUserId")
	from_username: str = Field(default="Anonymous", alias="fromUsername")

	@field_validator("from_username", mode="before")
	def _default_name(cls, value: Any):  # type: ignore[override]
		return value or "Anonymous"


class FriendRequestStatusChanged(InboundEvent):
	name: ClassVar[str] = "friend_request_status"

	from_user_id: str = Field(..., alias="fromUserId")
	to_user_id: str = Field(..., alias="toUserId")
	from_username: Optional[str] = Field(default=None, alias="fromUsername")
	status: Literal["sent", "accepted", "rejected"]


class FriendRequestAccepted(InboundEvent):
	name: ClassVar[str] = "friend_request_accepted"

	user_id: str = Field(..., validation_alias=AliasChoices("userId", "fromUserId", "user_id"))
	friend_id: str = Field(..., validation_alias=AliasChoices("friendId", "toUserId", "friend_id"))


class FriendRequestRejected(InboundEvent):
	name: ClassVar[str] = "friend_request_rejected"

	user_id: str = Field(..., validation_alias=AliasChoices("userId", "fromUserId", "user_id"))
	friend_id: str = Field(..., validation_alias=AliasChoices("friendId", "toUserId", "friend_id"))


class FriendRemoved(InboundEvent):
	name: ClassVar[str] = "friend_removed"

	removed_user_id: str = Field(..., alias="removedUserId")


class ServerError(InboundEvent):
	name: ClassVar[str] = "error"

	message: str = "Server error."


AnyInboundEvent = Union[
	TransportConnected,
	TransportDisconnected,
	MatchFound,
	ReceiveMessage,
	PartnerTyping,
	MessageSeen,
	PartnerDisconnected,
	FriendRequestReceived,
	FriendRequestStatusChanged,
	FriendRequestAccepted,
	FriendRequestRejected,
	FriendRemoved,
	ServerError,
]

# Events the server sends by name; connect/disconnect come from the transport.
SERVER_EVENTS: Dict[str, Type[InboundEvent]] = {
	cls.name: cls
	for cls in (
		MatchFound,
		ReceiveMessage,
		PartnerTyping,
		MessageSeen,
		PartnerDisconnected,
		FriendRequestReceived,
		FriendRequestStatusChanged,
		FriendRequestAccepted,
		FriendRequestRejected,
		FriendRemoved,
		ServerError,
	)
}


def parse_event(name: str, payload: Any) -> InboundEvent:
	"""Validate a raw Socket.IO payload into its typed event."""
	model = SERVER_EVENTS.get(name)
	if model is None:
		raise MalformedEvent(f"Unknown event: {name}")
	if payload is None:
		payload = {}
	if not isinstance(payload, dict):
		raise MalformedEvent(f"Event {name} payload must be an object")
	try:
		return model.model_validate(payload)
	except ValidationError as exc:
		raise MalformedEvent(f"Invalid {name} payload") from exc
