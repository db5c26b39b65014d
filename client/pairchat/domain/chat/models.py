"""Chat message log models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple


class SenderRole(str, Enum):
	LOCAL = "local"
	REMOTE = "remote"
	SYSTEM = "system"


class MessageKind(str, Enum):
	NORMAL = "normal"
	SYSTEM = "system"
	FRIEND_REQUEST_SENT = "friend_request_sent"
	FRIEND_REQUEST_RECEIVED = "friend_request_received"


@dataclass(slots=True, frozen=True)
class Message:
	id: str
	text: str
	sender_role: SenderRole
	timestamp: int
	seen: bool = False
	kind: MessageKind = MessageKind.NORMAL
	# Inline actions offered with the entry, e.g. ("accept", "reject").
	actions: Tuple[str, ...] = ()


def message_id_for(sender_id: str, timestamp: int) -> str:
	return f"{sender_id}:{timestamp}"


class MessageLog:
	"""Ordered message log for the current session.

	Entries are immutable; marking one seen swaps in a copy so snapshots taken
	earlier stay unchanged.
	"""

	def __init__(self) -> None:
		self._items: List[Message] = []

	def __len__(self) -> int:
		return len(self._items)

	def __iter__(self) -> Iterator[Message]:
		return iter(list(self._items))

	def items(self) -> Tuple[Message, ...]:
		return tuple(self._items)

	def append(self, message: Message) -> None:
		self._items.append(message)

	def replace_all(self, messages: Sequence[Message]) -> None:
		self._items = list(messages)

	def clear(self) -> None:
		self._items.clear()

	def remove(self, message_id: str) -> Optional[Message]:
		for index, message in enumerate(self._items):
			if message.id == message_id:
				return self._items.pop(index)
		return None

	def remove_local(self, timestamp: int) -> Optional[Message]:
		for index in range(len(self._items) - 1, -1, -1):
			message = self._items[index]
			if message.sender_role is SenderRole.LOCAL and message.timestamp == timestamp:
				return self._items.pop(index)
		return None

	def last_local_timestamp(self) -> Optional[int]:
		for message in reversed(self._items):
			if message.sender_role is SenderRole.LOCAL:
				return message.timestamp
		return None

	def is_duplicate(self, text: str, timestamp: int, window_ms: int) -> bool:
		return any(
			message.sender_role is SenderRole.REMOTE
			and message.text == text
			and abs(message.timestamp - timestamp) < window_ms
			for message in self._items
		)

	def mark_seen(self, timestamp: int) -> Optional[Message]:
		for index in range(len(self._items) - 1, -1, -1):
			message = self._items[index]
			if message.sender_role is SenderRole.LOCAL and not message.seen and message.timestamp == timestamp:
				updated = replace(message, seen=True)
				self._items[index] = updated
				return updated
		return None
