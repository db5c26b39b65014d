"""Session lifecycle: idle, searching, active, ending."""

from __future__ import annotations

import logging
from typing import Callable, Optional
from uuid import uuid4

from pairchat.domain.connection.manager import ConnectionManager
from pairchat.domain.connection.models import Identity
from pairchat.domain.exceptions import (
	FriendNotFound,
	InvalidIdentity,
	InvalidTransition,
	NotConnected,
	TransportError,
)
from pairchat.domain.ids import is_valid_user_id
from pairchat.domain.session.models import ChatMode, EndReason, RoomKey, Session, SessionStage
from pairchat.infra.api import ChatApi
from pairchat.obs import logging as obs_logging
from pairchat.obs import metrics as obs_metrics
from pairchat.realtime.events import MatchFound
from pairchat.realtime.schemas import (
	JoinRoomPayload,
	LeaveChatPayload,
	LeaveFriendChatPayload,
	OutboundPayload,
	StartFriendChatPayload,
	StartSearchPayload,
	StopSearchPayload,
)

logger = logging.getLogger(__name__)

SessionHook = Callable[[Session], None]


class SessionStateMachine:
	"""Tracks which chat the user is in and drives the matching protocol.

	Local state changes first and outbound signals follow, so leaving is
	immediate even when the socket is down. Every active session gets a fresh
	``session_id`` which async work captures and re-checks before applying its
	result.
	"""

	def __init__(
		self,
		connection: ConnectionManager,
		api: ChatApi,
		*,
		on_change: Optional[Callable[[], None]] = None,
		on_started: Optional[SessionHook] = None,
		on_ended: Optional[SessionHook] = None,
	) -> None:
		self.connection = connection
		self.api = api
		self._session = Session()
		self._on_change = on_change
		self._on_started = on_started
		self._on_ended = on_ended

	@property
	def session(self) -> Session:
		return self._session

	def current_room(self) -> Optional[str]:
		if self._session.stage is SessionStage.ACTIVE and self._session.partner_id:
			return self._session.room_id
		return None

	def is_current(self, session_id: Optional[str]) -> bool:
		return session_id is not None and self._session.session_id == session_id

	def _require_identity(self) -> Identity:
		identity = self.connection.identity
		if identity is None or not self.connection.is_connected:
			raise NotConnected()
		return identity

	async def start_searching(self) -> None:
		identity = self._require_identity()
		stage = self._session.stage
		if stage is SessionStage.SEARCHING:
			logger.debug("already searching")
			return
		if stage is not SessionStage.IDLE:
			raise InvalidTransition("Leave the current chat before searching.")
		# Enter searching before the emit so a fast match is not dropped.
		self._replace(Session(mode=ChatMode.RANDOM, stage=SessionStage.SEARCHING))
		try:
			await self.connection.emit(StartSearchPayload(user_id=identity.user_id, username=identity.display_name))
		except (NotConnected, TransportError):
			if self._session.stage is SessionStage.SEARCHING:
				self._replace(Session())
			raise

	async def stop_searching(self) -> None:
		if self._session.stage is not SessionStage.SEARCHING:
			raise InvalidTransition("Not searching.")
		self._replace(Session())
		identity = self.connection.identity
		if identity is None:
			return
		await self._emit_quietly(StopSearchPayload(user_id=identity.user_id))

	def abort_search(self) -> bool:
		"""Drop back to idle without telling the server."""
		if self._session.stage is not SessionStage.SEARCHING:
			return False
		self._replace(Session())
		return True

	async def handle_match_found(self, event: MatchFound) -> Optional[Session]:
		if self._session.stage is not SessionStage.SEARCHING:
			logger.warning("match_found ignored in stage %s", self._session.stage.value)
			return None
		identity = self.connection.identity
		partner_id = event.partner_id
		if identity is None or not is_valid_user_id(partner_id) or partner_id == identity.user_id:
			self._replace(Session())
			raise InvalidIdentity("Invalid partner ID.")
		room = RoomKey.from_participants(identity.user_id, partner_id, ChatMode.RANDOM)
		session = self._activate(ChatMode.RANDOM, partner_id, event.partner_name, room.room_id)
		await self._emit_quietly(JoinRoomPayload(room_id=room.room_id, user_id=identity.user_id))
		return session

	async def open_friend_session(self, friend_id: str) -> Session:
		if self._session.stage is not SessionStage.IDLE:
			raise InvalidTransition("Leave the current chat before opening another.")
		if not is_valid_user_id(friend_id):
			raise InvalidIdentity("Invalid friend ID.")
		identity = self._require_identity()
		if friend_id == identity.user_id:
			raise InvalidIdentity("Invalid friend ID.")
		friends = await self.api.fetch_friends(identity.user_id)
		if self.connection.identity != identity or not self.connection.is_connected:
			logger.info("signed out while loading friends, friend chat not opened")
			raise NotConnected()
		friend = next((row for row in friends if row.id == friend_id), None)
		if friend is None:
			raise FriendNotFound()
		if self._session.stage is not SessionStage.IDLE:
			raise InvalidTransition("Another chat started while loading friends.")
		room = RoomKey.from_participants(identity.user_id, friend_id, ChatMode.FRIEND)
		session = self._activate(ChatMode.FRIEND, friend_id, friend.user_name, room.room_id)
		await self._emit_quietly(
			StartFriendChatPayload(user_id=identity.user_id, friend_id=friend_id, username=identity.display_name)
		)
		await self._emit_quietly(JoinRoomPayload(room_id=room.room_id, user_id=identity.user_id))
		return session

	async def leave(self, reason: EndReason = EndReason.LEFT) -> None:
		session = self._session
		if session.stage is not SessionStage.ACTIVE or session.partner_id is None:
			raise InvalidTransition("No active chat to leave.")
		identity = self.connection.identity
		payload: Optional[OutboundPayload] = None
		if session.mode is ChatMode.RANDOM:
			payload = LeaveChatPayload(to_user_id=session.partner_id)
		elif identity is not None:
			payload = LeaveFriendChatPayload(user_id=identity.user_id, friend_id=session.partner_id)
		self._end(reason)
		if payload is not None:
			await self._emit_quietly(payload)

	def partner_departed(self) -> bool:
		if self._session.stage is not SessionStage.ACTIVE:
			return False
		self._end(EndReason.PARTNER_LEFT)
		return True

	def end_silently(self, reason: EndReason) -> bool:
		"""End the active session locally; the server already knows."""
		if self._session.stage is not SessionStage.ACTIVE:
			return False
		self._end(reason)
		return True

	async def navigate_away(self, *, intentional: bool = False) -> None:
		stage = self._session.stage
		if stage is SessionStage.SEARCHING:
			await self.stop_searching()
			return
		if stage is not SessionStage.ACTIVE:
			return
		if intentional:
			self._end(EndReason.NAVIGATED_AWAY)
			return
		await self.leave(EndReason.NAVIGATED_AWAY)

	def reset(self) -> None:
		if self._session.stage is SessionStage.ACTIVE:
			self._end(EndReason.RESET)
		self._replace(Session())

	def _activate(self, mode: ChatMode, partner_id: str, partner_name: Optional[str], room_id: str) -> Session:
		session = Session(
			mode=mode,
			stage=SessionStage.ACTIVE,
			partner_id=partner_id,
			partner_name=partner_name or "Anonymous",
			room_id=room_id,
			session_id=uuid4().hex,
		)
		self._session = session
		obs_logging.bind_context(room_id=room_id)
		if self._on_started is not None:
			self._on_started(session)
		self._transition()
		return session

	def _end(self, reason: EndReason) -> None:
		session = self._session
		session.stage = SessionStage.ENDING
		session.end_reason = reason
		self._transition()
		if self._on_ended is not None:
			self._on_ended(session)
		obs_logging.clear_room()
		self._replace(Session(end_reason=reason))

	def _replace(self, session: Session) -> None:
		self._session = session
		self._transition()

	def _transition(self) -> None:
		session = self._session
		obs_metrics.session_transition(session.mode.value, session.stage.value)
		logger.info(
			"session %s",
			session.stage.value,
			extra={"mode": session.mode.value, "end_reason": session.end_reason.value if session.end_reason else None},
		)
		if self._on_change is not None:
			self._on_change()

	async def _emit_quietly(self, payload: OutboundPayload) -> None:
		try:
			await self.connection.emit(payload)
		except (NotConnected, TransportError) as exc:
			logger.warning("failed to emit %s: %s", payload.event.value, exc)


__all__ = ["SessionStateMachine", "SessionHook"]
