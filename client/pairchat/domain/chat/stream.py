"""Outgoing and incoming chat messages for the active session."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from pairchat.domain.chat.models import Message, MessageKind, MessageLog, SenderRole, message_id_for
from pairchat.domain.connection.manager import ConnectionManager
from pairchat.domain.exceptions import EmptyInput, NotAuthorizedForChat, NotConnected, NotReady, TransportError
from pairchat.domain.session.machine import SessionStateMachine
from pairchat.domain.session.models import ChatMode, SessionStage
from pairchat.infra.api import ChatApi
from pairchat.obs import metrics as obs_metrics
from pairchat.realtime.events import MessageSeen, ReceiveMessage
from pairchat.realtime.schemas import MessageSeenPayload, SendMessagePayload
from pairchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
	return int(time.time() * 1000)


class MessageStream:
	"""Optimistic sends with rollback, inbound dedup and read receipts.

	Sends persist over REST first and then go out on the realtime channel; the
	realtime delivery is what the partner sees live. Any result that arrives
	after the session changed is dropped.
	"""

	def __init__(
		self,
		connection: ConnectionManager,
		sessions: SessionStateMachine,
		api: ChatApi,
		*,
		settings: Optional[Settings] = None,
		now_ms: Optional[Callable[[], int]] = None,
		on_change: Optional[Callable[[], None]] = None,
	) -> None:
		self.connection = connection
		self.sessions = sessions
		self.api = api
		self.settings = settings or default_settings
		self.log = MessageLog()
		self.draft = ""
		self._now_ms = now_ms or _wall_clock_ms
		self._on_change = on_change

	def reset(self) -> None:
		self.log.clear()
		self.draft = ""
		self._notify()

	def set_draft(self, text: str) -> None:
		self.draft = text
		self._notify()

	def append_system(
		self,
		text: str,
		*,
		kind: MessageKind = MessageKind.SYSTEM,
		actions: Tuple[str, ...] = (),
	) -> Message:
		message = Message(
			id=f"system:{uuid4().hex}",
			text=text,
			sender_role=SenderRole.SYSTEM,
			timestamp=self._now_ms(),
			kind=kind,
			actions=actions,
		)
		self.log.append(message)
		self._notify()
		return message

	def remove(self, message_id: str) -> None:
		if self.log.remove(message_id) is not None:
			self._notify()

	def _next_timestamp(self) -> int:
		timestamp = self._now_ms()
		last = self.log.last_local_timestamp()
		if last is not None and timestamp <= last:
			# Local timestamps key read receipts, so they must be unique.
			timestamp = last + 1
		return timestamp

	async def send(self, text: Optional[str] = None) -> Message:
		body = self.draft if text is None else text
		if not body or not body.strip():
			raise EmptyInput()
		session = self.sessions.session
		identity = self.connection.identity
		if (
			session.stage is not SessionStage.ACTIVE
			or session.partner_id is None
			or identity is None
			or not self.connection.is_connected
		):
			raise NotReady()
		partner_id = session.partner_id
		token = session.session_id
		timestamp = self._next_timestamp()
		message = Message(
			id=message_id_for(identity.user_id, timestamp),
			text=body,
			sender_role=SenderRole.LOCAL,
			timestamp=timestamp,
		)
		self.log.append(message)
		if text is None or text == self.draft:
			self.draft = ""
		self._notify()
		try:
			if session.mode is ChatMode.FRIEND:
				await self.api.send_friend_message(identity.user_id, partner_id, body)
			else:
				await self.api.send_random_message(identity.user_id, partner_id, body)
			if not self.sessions.is_current(token):
				logger.info("session changed before delivery, skipping realtime send")
				return message
			await self.connection.emit(
				SendMessagePayload(
					to_user_id=partner_id,
					message=body,
					from_user_id=identity.user_id,
					timestamp=timestamp,
				)
			)
		except (TransportError, NotConnected) as exc:
			self._rollback(message, token)
			if isinstance(exc, TransportError) and exc.status_code == 403:
				raise NotAuthorizedForChat() from exc
			raise
		return message

	def _rollback(self, message: Message, token: Optional[str]) -> None:
		if not self.sessions.is_current(token):
			return
		if self.log.remove_local(message.timestamp) is not None:
			self._notify()

	async def handle_message(self, event: ReceiveMessage) -> Optional[Message]:
		identity = self.connection.identity
		if identity is not None and event.from_user_id == identity.user_id:
			logger.debug("ignoring echo of own message")
			return None
		session = self.sessions.session
		if session.stage is not SessionStage.ACTIVE or event.from_user_id != session.partner_id:
			logger.warning(
				"message from unexpected sender",
				extra={"sender": event.from_user_id, "partner": session.partner_id},
			)
			return None
		if self.log.is_duplicate(event.message, event.timestamp, self.settings.dedup_window_ms):
			obs_metrics.duplicate_dropped()
			logger.info("dropping duplicate message", extra={"sender": event.from_user_id})
			return None
		message = Message(
			id=event.message_id or message_id_for(event.from_user_id, event.timestamp),
			text=event.message,
			sender_role=SenderRole.REMOTE,
			timestamp=event.timestamp,
		)
		self.log.append(message)
		self._notify()
		if identity is not None:
			try:
				await self.connection.emit(
					MessageSeenPayload(
						to_user_id=event.from_user_id,
						from_user_id=identity.user_id,
						timestamp=event.timestamp,
					)
				)
			except (NotConnected, TransportError) as exc:
				logger.warning("failed to send read receipt: %s", exc)
		return message

	def handle_seen(self, event: MessageSeen) -> Optional[Message]:
		session = self.sessions.session
		if session.stage is not SessionStage.ACTIVE or event.from_user_id != session.partner_id:
			return None
		updated = self.log.mark_seen(event.timestamp)
		if updated is not None:
			self._notify()
		return updated

	async def load_history(self) -> Tuple[Message, ...]:
		"""Merge persisted friend chat history under the live log."""
		session = self.sessions.session
		identity = self.connection.identity
		if session.stage is not SessionStage.ACTIVE or session.mode is not ChatMode.FRIEND or identity is None:
			return self.log.items()
		token = session.session_id
		history = await self.api.fetch_chat_history(identity.user_id, session.partner_id)
		if not self.sessions.is_current(token):
			return self.log.items()
		stored_rows: List[Message] = [
			Message(
				id=row.id,
				text=row.text,
				sender_role=SenderRole.LOCAL if row.sender_id == identity.user_id else SenderRole.REMOTE,
				timestamp=row.timestamp_ms,
				seen=row.seen,
			)
			for row in history
		]
		merged = list(stored_rows)
		window = self.settings.dedup_window_ms
		for live in self.log:
			if live.sender_role is not SenderRole.SYSTEM and any(
				stored.sender_role is live.sender_role
				and stored.text == live.text
				and abs(stored.timestamp - live.timestamp) < window
				for stored in stored_rows
			):
				continue
			merged.append(live)
		# Stable sort keeps same-millisecond entries in arrival order.
		merged.sort(key=lambda message: message.timestamp)
		self.log.replace_all(merged)
		self._notify()
		return self.log.items()

	def _notify(self) -> None:
		if self._on_change is not None:
			self._on_change()


__all__ = ["MessageStream"]
