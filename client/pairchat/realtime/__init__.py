"""Typed realtime protocol shared by the transport and the coordinator."""

from .events import SERVER_EVENTS, InboundEvent, parse_event
from .schemas import OutboundEvent, OutboundPayload

__all__ = [
	"InboundEvent",
	"OutboundEvent",
	"OutboundPayload",
	"SERVER_EVENTS",
	"parse_event",
]
