"""Single owner of connection, session, message, typing and friend state."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, List, Literal, Optional, Tuple, Type, TypeVar

from pairchat.domain.chat.models import Message
from pairchat.domain.chat.stream import MessageStream
from pairchat.domain.connection.manager import ConnectionManager
from pairchat.domain.connection.models import ConnectionStatus, Identity
from pairchat.domain.exceptions import ChatError, NotAuthorizedForChat
from pairchat.domain.presence.grace import DisconnectGraceMonitor
from pairchat.domain.presence.typing_tracker import TypingTracker
from pairchat.domain.session.machine import SessionStateMachine
from pairchat.domain.session.models import ChatMode, EndReason, Session, SessionStage
from pairchat.domain.social.models import FriendRequestRecord
from pairchat.domain.social.overlay import FriendRequestOverlay
from pairchat.domain.social.schemas import PendingFriendRequest
from pairchat.infra.api import ChatApi
from pairchat.infra.socketio_transport import RealtimeTransport
from pairchat.obs import logging as obs_logging
from pairchat.realtime.events import (
	FriendRemoved,
	FriendRequestAccepted,
	FriendRequestReceived,
	FriendRequestRejected,
	FriendRequestStatusChanged,
	InboundEvent,
	MatchFound,
	MessageSeen,
	PartnerDisconnected,
	PartnerTyping,
	ReceiveMessage,
	ServerError,
	TransportConnected,
	TransportDisconnected,
)
from pairchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class Notice:
	"""User-facing message the host shows as a toast."""

	level: Literal["info", "success", "error"]
	title: str
	text: str
	reason: Optional[str] = None


@dataclass(frozen=True)
class NavigationIntent:
	target: Literal["home", "random_chat", "friend_chat"]
	friend_id: Optional[str] = None
	friend_name: Optional[str] = None


@dataclass(frozen=True)
class CoordinatorSnapshot:
	connection_status: ConnectionStatus
	user_id: Optional[str]
	display_name: Optional[str]
	retry_count: int
	mode: ChatMode
	stage: SessionStage
	partner_id: Optional[str]
	partner_name: Optional[str]
	room_id: Optional[str]
	end_reason: Optional[EndReason]
	messages: Tuple[Message, ...]
	draft: str
	local_typing: bool
	remote_typing: bool
	friend_request: FriendRequestRecord
	pending_requests: Tuple[PendingFriendRequest, ...]
	friends: FrozenSet[str]


SnapshotListener = Callable[[CoordinatorSnapshot], None]


class ChatCoordinator:
	"""Facade the host UI talks to.

	Views call the async intent methods and read :class:`CoordinatorSnapshot`
	objects; transport events arrive through :meth:`dispatch`. Intents never
	raise :class:`ChatError`; failures are published as :class:`Notice` and the
	intent returns a falsy value.
	"""

	def __init__(
		self,
		transport: RealtimeTransport,
		api: ChatApi,
		*,
		settings: Optional[Settings] = None,
		clock: Callable[[], float] = time.monotonic,
		now_ms: Optional[Callable[[], int]] = None,
		on_notice: Optional[Callable[[Notice], None]] = None,
		on_navigate: Optional[Callable[[NavigationIntent], None]] = None,
		on_connected: Optional[Callable[[Identity], None]] = None,
		on_disconnected: Optional[Callable[[Optional[str]], None]] = None,
		on_error: Optional[Callable[[ChatError], None]] = None,
	) -> None:
		self.settings = settings or default_settings
		self.transport = transport
		self.api = api
		self._on_notice = on_notice
		self._on_navigate = on_navigate
		self._host_connected = on_connected
		self._host_disconnected = on_disconnected
		self._host_error = on_error
		self._listeners: List[SnapshotListener] = []

		self.connection = ConnectionManager(
			transport,
			settings=self.settings,
			room_provider=self._current_room,
			on_connected=self._handle_connected,
			on_disconnected=self._handle_disconnected,
			on_error=self._handle_connection_error,
			on_change=self._changed,
		)
		self.sessions = SessionStateMachine(
			self.connection,
			api,
			on_change=self._changed,
			on_started=self._session_started,
			on_ended=self._session_ended,
		)
		self.stream = MessageStream(
			self.connection,
			self.sessions,
			api,
			settings=self.settings,
			now_ms=now_ms,
			on_change=self._changed,
		)
		self.typing = TypingTracker(
			self.connection,
			self.sessions,
			settings=self.settings,
			clock=clock,
			on_change=self._changed,
		)
		self.grace = DisconnectGraceMonitor(settings=self.settings, clock=clock)
		self.friends = FriendRequestOverlay(
			self.connection,
			self.sessions,
			self.stream,
			api,
			on_change=self._changed,
		)
		self._handlers: Dict[Type[InboundEvent], Callable[[InboundEvent], Awaitable[None]]] = {
			TransportConnected: self._on_transport_connected,
			TransportDisconnected: self._on_transport_disconnected,
			MatchFound: self._on_match_found,
			ReceiveMessage: self._on_receive_message,
			MessageSeen: self._on_message_seen,
			PartnerTyping: self._on_partner_typing,
			PartnerDisconnected: self._on_partner_disconnected,
			FriendRequestReceived: self._on_friend_request_received,
			FriendRequestStatusChanged: self._on_friend_request_status,
			FriendRequestAccepted: self._on_friend_request_accepted,
			FriendRequestRejected: self._on_friend_request_rejected,
			FriendRemoved: self._on_friend_removed,
			ServerError: self._on_server_error,
		}
		transport.set_listener(self.dispatch)

	def snapshot(self) -> CoordinatorSnapshot:
		return self._build_snapshot()

	def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
		self._listeners.append(listener)

		def unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return unsubscribe

	def _build_snapshot(self) -> CoordinatorSnapshot:
		state = self.connection.state
		session = self.sessions.session
		identity = state.identity
		typing = self.typing.state
		return CoordinatorSnapshot(
			connection_status=state.status,
			user_id=identity.user_id if identity else None,
			display_name=identity.display_name if identity else None,
			retry_count=state.retry_count,
			mode=session.mode,
			stage=session.stage,
			partner_id=session.partner_id,
			partner_name=session.partner_name,
			room_id=session.room_id,
			end_reason=session.end_reason,
			messages=self.stream.log.items(),
			draft=self.stream.draft,
			local_typing=typing.local_typing,
			remote_typing=typing.remote_typing,
			friend_request=self.friends.record,
			pending_requests=tuple(self.friends.pending),
			friends=frozenset(self.friends.friends),
		)

	def _changed(self) -> None:
		if not self._listeners:
			return
		snapshot = self.snapshot()
		for listener in list(self._listeners):
			listener(snapshot)

	async def connect(self, user_id: str, display_name: Optional[str] = None) -> bool:
		identity = Identity(user_id=user_id, display_name=display_name or "Anonymous")
		await self._guard("Connection Error", self.connection.connect(identity))
		return self.connection.is_connected

	async def on_foreground(self) -> None:
		await self._guard("Connection Error", self.connection.on_foreground())
		if self.connection.is_connected:
			await self._refresh_social_state()

	async def reset(self) -> None:
		"""Logout: drop the session, all local state and the connection."""
		self.sessions.reset()
		self.typing.reset()
		self.grace.reset()
		self.stream.reset()
		self.friends.reset()
		await self.connection.reset()
		obs_logging.clear_context()

	async def aclose(self) -> None:
		await self.reset()
		await self.api.aclose()

	async def start_searching(self) -> bool:
		return await self._guard("Search Error", self.sessions.start_searching()) is not _FAILED

	async def stop_searching(self) -> bool:
		return await self._guard("Search Error", self.sessions.stop_searching()) is not _FAILED

	async def open_friend_session(self, friend_id: str) -> Optional[Session]:
		result = await self._guard("Chat Error", self.sessions.open_friend_session(friend_id))
		if result is _FAILED:
			return None
		await self.load_history()
		return result

	async def leave(self) -> bool:
		return await self._guard("Chat Error", self.sessions.leave()) is not _FAILED

	async def navigate_away(self, *, intentional: bool = False) -> None:
		await self._guard("Chat Error", self.sessions.navigate_away(intentional=intentional))

	async def update_draft(self, text: str) -> None:
		self.stream.set_draft(text)
		if text:
			await self.typing.on_local_input()

	async def on_local_input(self) -> bool:
		return await self.typing.on_local_input()

	async def send_message(self, text: Optional[str] = None) -> Optional[Message]:
		result = await self._guard("Message Error", self.stream.send(text))
		return None if result is _FAILED else result

	async def load_history(self) -> Tuple[Message, ...]:
		result = await self._guard("Chat Error", self.stream.load_history())
		return self.stream.log.items() if result is _FAILED else result

	async def send_friend_request(self) -> bool:
		result = await self._guard("Friend Request", self.friends.send_request())
		if result is _FAILED:
			return False
		self._notice("success", "Friend Request", "Friend request sent!")
		return True

	async def accept_friend_request(self, from_user_id: Optional[str] = None) -> bool:
		result = await self._guard("Friend Request", self.friends.accept(from_user_id))
		if result is _FAILED:
			return False
		friend_id, friend_name = result
		self._notice("success", "Friend Request", "You are now friends!")
		self._became_friends(friend_id, friend_name)
		return True

	async def reject_friend_request(self, from_user_id: Optional[str] = None) -> bool:
		result = await self._guard("Friend Request", self.friends.reject(from_user_id))
		if result is _FAILED:
			return False
		self._notice("info", "Friend Request", "Friend request rejected.")
		return True

	async def remove_friend(self, friend_id: str) -> bool:
		result = await self._guard("Friends", self.friends.remove_friend(friend_id))
		if result is _FAILED:
			return False
		self._end_friend_session(friend_id, EndReason.FRIEND_REMOVED)
		return True

	async def dispatch(self, event: InboundEvent) -> None:
		handler = self._handlers.get(type(event))
		if handler is None:
			logger.warning("no handler for event %s", event.name)
			return
		await self._guard("Chat Error", handler(event))

	async def _on_transport_connected(self, event: TransportConnected) -> None:
		logger.debug("transport connected")

	async def _on_transport_disconnected(self, event: TransportDisconnected) -> None:
		await self.connection.handle_transport_lost(event.reason)

	async def _on_match_found(self, event: MatchFound) -> None:
		session = await self.sessions.handle_match_found(event)
		if session is not None:
			self._navigate(NavigationIntent("random_chat", session.partner_id, session.partner_name))

	async def _on_receive_message(self, event: ReceiveMessage) -> None:
		await self.stream.handle_message(event)

	async def _on_message_seen(self, event: MessageSeen) -> None:
		self.stream.handle_seen(event)

	async def _on_partner_typing(self, event: PartnerTyping) -> None:
		self.typing.handle_partner_typing(event)

	async def _on_partner_disconnected(self, event: PartnerDisconnected) -> None:
		session = self.sessions.session
		if not self.grace.should_end_session(event, session):
			return
		name = session.partner_name or "Your partner"
		self.stream.append_system(f"{name} has left the chat.")
		self.sessions.partner_departed()

	async def _on_friend_request_received(self, event: FriendRequestReceived) -> None:
		if self.friends.handle_received(event):
			self._notice("info", "Friend Request", f"{event.from_username} sent you a friend request.")

	async def _on_friend_request_status(self, event: FriendRequestStatusChanged) -> None:
		other = self.friends.handle_status(event)
		if other is None:
			return
		if event.status == "accepted":
			self._became_friends(other, None)
		elif event.status == "rejected":
			self._notice("info", "Friend Request", "Friend request was rejected.")

	async def _on_friend_request_accepted(self, event: FriendRequestAccepted) -> None:
		other = self.friends.handle_accepted(event)
		if other is not None:
			self._became_friends(other, None)

	async def _on_friend_request_rejected(self, event: FriendRequestRejected) -> None:
		if self.friends.handle_rejected(event):
			self._notice("info", "Friend Request", "Friend request was rejected.")

	async def _on_friend_removed(self, event: FriendRemoved) -> None:
		self.friends.handle_friend_removed(event)
		if self._end_friend_session(event.removed_user_id, EndReason.FRIEND_REMOVED):
			self._notice("info", "Friends", "This friend is no longer available.")

	async def _on_server_error(self, event: ServerError) -> None:
		self.sessions.abort_search()
		self._notice("error", "Error", event.message)

	def _current_room(self) -> Optional[str]:
		return self.sessions.current_room()

	def _session_started(self, session: Session) -> None:
		self.stream.reset()
		self.typing.reset()
		self.grace.reset()
		self.friends.clear_record()

	def _session_ended(self, session: Session) -> None:
		self.typing.reset()
		self.friends.clear_record()

	async def _handle_connected(self, identity: Identity) -> None:
		await self._refresh_social_state()
		if self._host_connected is not None:
			self._host_connected(identity)

	async def _handle_disconnected(self, reason: Optional[str]) -> None:
		self.typing.clear_remote()
		if self._host_disconnected is not None:
			self._host_disconnected(reason)

	async def _handle_connection_error(self, error: ChatError) -> None:
		self.sessions.abort_search()
		self._notice("error", "Connection Lost", error.message, reason=error.reason)
		if self._host_error is not None:
			self._host_error(error)

	async def _refresh_social_state(self) -> None:
		await self._refresh_friends()
		await self._refresh_pending_requests()

	async def _refresh_friends(self) -> None:
		identity = self.connection.identity
		if identity is None:
			return
		try:
			profile = await self.api.fetch_profile(identity.user_id)
		except ChatError as exc:
			logger.warning("failed to fetch friends: %s", exc)
			self._notice("error", "Friends", "Failed to fetch friends.", reason=exc.reason)
			return
		if self.connection.identity != identity:
			return
		self.friends.set_friends(profile.friends)

	async def _refresh_pending_requests(self) -> None:
		identity = self.connection.identity
		if identity is None:
			return
		try:
			pending = await self.api.fetch_pending_friend_requests(identity.user_id)
		except ChatError as exc:
			logger.warning("failed to fetch pending friend requests: %s", exc)
			self._notice("error", "Friend Requests", "Failed to fetch pending friend requests.", reason=exc.reason)
			return
		if self.connection.identity != identity:
			return
		self.friends.set_pending(pending)

	def _became_friends(self, friend_id: str, friend_name: Optional[str]) -> None:
		session = self.sessions.session
		if (
			session.stage is not SessionStage.ACTIVE
			or session.mode is not ChatMode.RANDOM
			or session.partner_id != friend_id
		):
			return
		name = friend_name or session.partner_name
		# Intentional navigation: the relationship changes, so no leave_chat.
		self.sessions.end_silently(EndReason.BECAME_FRIENDS)
		self._navigate(NavigationIntent("friend_chat", friend_id, name))

	def _end_friend_session(self, friend_id: str, reason: EndReason) -> bool:
		session = self.sessions.session
		if session.mode is not ChatMode.FRIEND or session.partner_id != friend_id:
			return False
		if not self.sessions.end_silently(reason):
			return False
		self._navigate(NavigationIntent("home"))
		return True

	async def _guard(self, title: str, operation: Awaitable[_T]):
		try:
			return await operation
		except NotAuthorizedForChat as exc:
			logger.warning("server rejected the chat pairing")
			self.sessions.end_silently(EndReason.NOT_AUTHORIZED)
			self._notice("error", title, exc.message, reason=exc.reason)
			self._navigate(NavigationIntent("home"))
		except ChatError as exc:
			logger.info("%s: %s", title, exc.reason)
			self._notice("error", title, exc.message, reason=exc.reason)
		return _FAILED

	def _notice(self, level: Literal["info", "success", "error"], title: str, text: str, *, reason: Optional[str] = None) -> None:
		if self._on_notice is not None:
			self._on_notice(Notice(level=level, title=title, text=text, reason=reason))

	def _navigate(self, intent: NavigationIntent) -> None:
		if self._on_navigate is not None:
			self._on_navigate(intent)


class _Failed:
	def __bool__(self) -> bool:
		return False

	def __repr__(self) -> str:
		return "<failed>"


_FAILED = _Failed()


__all__ = ["ChatCoordinator", "CoordinatorSnapshot", "NavigationIntent", "Notice"]
