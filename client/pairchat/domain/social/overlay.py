"""Friend requests exchanged during (and outside) a chat session."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Set, Tuple

from pairchat.domain.chat.models import MessageKind
from pairchat.domain.chat.stream import MessageStream
from pairchat.domain.connection.manager import ConnectionManager
from pairchat.domain.connection.models import Identity
from pairchat.domain.exceptions import (
	AlreadyPending,
	InvalidIdentity,
	InvalidTransition,
	NoPendingRequest,
	NotConnected,
	NotReady,
	TransportError,
)
from pairchat.domain.ids import is_valid_user_id
from pairchat.domain.session.machine import SessionStateMachine
from pairchat.domain.session.models import SessionStage
from pairchat.domain.social.models import FriendRequestRecord, FriendRequestStatus
from pairchat.domain.social.schemas import PendingFriendRequest
from pairchat.infra.api import ChatApi
from pairchat.realtime.events import (
	FriendRemoved,
	FriendRequestAccepted,
	FriendRequestReceived,
	FriendRequestRejected,
	FriendRequestStatusChanged,
)
from pairchat.realtime.schemas import SendFriendRequestPayload

logger = logging.getLogger(__name__)

REQUEST_ACTIONS: Tuple[str, ...] = ("accept", "reject")


class FriendRequestOverlay:
	"""Tracks the friend request with the current partner plus the inbox.

	At most one request is pending per session pair. Requests from users other
	than the current partner land in ``pending`` so they can be answered from
	outside a chat.
	"""

	def __init__(
		self,
		connection: ConnectionManager,
		sessions: SessionStateMachine,
		stream: MessageStream,
		api: ChatApi,
		*,
		on_change: Optional[Callable[[], None]] = None,
	) -> None:
		self.connection = connection
		self.sessions = sessions
		self.stream = stream
		self.api = api
		self.record = FriendRequestRecord()
		self.pending: List[PendingFriendRequest] = []
		self.friends: Set[str] = set()
		self._on_change = on_change

	def _me(self) -> Identity:
		identity = self.connection.identity
		if identity is None:
			raise NotConnected()
		return identity

	def clear_record(self) -> None:
		if self.record.is_pending:
			self.record = FriendRequestRecord()
			self._notify()

	def reset(self) -> None:
		self.record = FriendRequestRecord()
		self.pending = []
		self.friends = set()
		self._notify()

	def set_pending(self, requests: List[PendingFriendRequest]) -> None:
		seen: Set[str] = set()
		unique = []
		for request in requests:
			if request.from_user_id in seen:
				continue
			seen.add(request.from_user_id)
			unique.append(request)
		self.pending = unique
		self._notify()

	def set_friends(self, friend_ids: List[str]) -> None:
		self.friends = set(friend_ids)
		self._notify()

	async def send_request(self) -> FriendRequestRecord:
		session = self.sessions.session
		identity = self._me()
		partner_id = session.partner_id
		if session.stage is not SessionStage.ACTIVE or partner_id is None:
			raise NotReady("Start a chat before sending a friend request.")
		if not is_valid_user_id(identity.user_id) or not is_valid_user_id(partner_id):
			raise InvalidIdentity("Invalid user or partner ID.")
		if partner_id in self.friends:
			raise InvalidTransition("You are already friends.")
		if self.record.involves(partner_id) or any(p.from_user_id == partner_id for p in self.pending):
			raise AlreadyPending()
		if not self.connection.is_connected:
			raise NotConnected()
		token = session.session_id
		self.record = FriendRequestRecord(
			status=FriendRequestStatus.SENT_PENDING,
			from_id=identity.user_id,
			from_name=identity.display_name,
			to_id=partner_id,
		)
		marker = self.stream.append_system(
			f"Friend request sent to {session.partner_name or 'Anonymous'}.",
			kind=MessageKind.FRIEND_REQUEST_SENT,
		)
		try:
			await self.api.send_friend_request(identity.user_id, partner_id)
			if not self.sessions.is_current(token):
				return self.record
			await self.connection.emit(
				SendFriendRequestPayload(
					to_user_id=partner_id,
					from_user_id=identity.user_id,
					from_username=identity.display_name,
				)
			)
		except (TransportError, NotConnected):
			if self.sessions.is_current(token):
				self.record = FriendRequestRecord()
				self.stream.remove(marker.id)
				self._notify()
			raise
		return self.record

	def handle_received(self, event: FriendRequestReceived) -> bool:
		identity = self.connection.identity
		if identity is not None and event.from_user_id == identity.user_id:
			return False
		if event.from_user_id in self.friends:
			logger.info("friend request from existing friend ignored")
			return False
		session = self.sessions.session
		if session.stage is SessionStage.ACTIVE and event.from_user_id == session.partner_id:
			if self.record.status is FriendRequestStatus.RECEIVED_PENDING and self.record.from_id == event.from_user_id:
				logger.info("duplicate friend request suppressed")
				return False
			if self.record.status is FriendRequestStatus.SENT_PENDING:
				# Both sides asked at once; the server resolves it with an accept.
				logger.info("crossing friend requests")
			self.record = FriendRequestRecord(
				status=FriendRequestStatus.RECEIVED_PENDING,
				from_id=event.from_user_id,
				from_name=event.from_username,
				to_id=identity.user_id if identity is not None else None,
			)
			self.stream.append_system(
				f"{event.from_username} sent you a friend request.",
				kind=MessageKind.FRIEND_REQUEST_RECEIVED,
				actions=REQUEST_ACTIONS,
			)
			self._notify()
			return True
		if any(request.from_user_id == event.from_user_id for request in self.pending):
			return False
		self.pending.append(
			PendingFriendRequest(from_user_id=event.from_user_id, from_username=event.from_username)
		)
		self._notify()
		return True

	def _resolve_target(self, from_user_id: Optional[str]) -> Tuple[str, str]:
		record = self.record
		if record.status is FriendRequestStatus.RECEIVED_PENDING and record.from_id is not None:
			if from_user_id is None or from_user_id == record.from_id:
				return record.from_id, record.from_name or "Anonymous"
		if from_user_id is not None:
			for request in self.pending:
				if request.from_user_id == from_user_id:
					return request.from_user_id, request.from_username
		raise NoPendingRequest()

	async def accept(self, from_user_id: Optional[str] = None) -> Tuple[str, str]:
		"""Accept a received request; returns the new friend's id and name."""
		target_id, target_name = self._resolve_target(from_user_id)
		identity = self._me()
		if not is_valid_user_id(identity.user_id) or not is_valid_user_id(target_id):
			raise InvalidIdentity("Invalid user or friend ID.")
		await self.api.accept_friend_request(identity.user_id, target_id)
		self._settle(target_id, accepted=True)
		return target_id, target_name

	async def reject(self, from_user_id: Optional[str] = None) -> str:
		target_id, _ = self._resolve_target(from_user_id)
		identity = self._me()
		if not is_valid_user_id(identity.user_id) or not is_valid_user_id(target_id):
			raise InvalidIdentity("Invalid user or friend ID.")
		await self.api.reject_friend_request(identity.user_id, target_id)
		self._settle(target_id, accepted=False)
		return target_id

	def handle_status(self, event: FriendRequestStatusChanged) -> Optional[str]:
		"""Mirror a server status push; returns the other user's id when settled."""
		identity = self.connection.identity
		me = identity.user_id if identity is not None else None
		other = event.to_user_id if event.from_user_id == me else event.from_user_id
		if event.status == "sent":
			session = self.sessions.session
			if (
				event.from_user_id == me
				and session.stage is SessionStage.ACTIVE
				and other == session.partner_id
				and not self.record.is_pending
			):
				self.record = FriendRequestRecord(
					status=FriendRequestStatus.SENT_PENDING,
					from_id=me,
					from_name=event.from_username,
					to_id=other,
				)
				self._notify()
			return None
		if not self.record.involves(other) and other not in {p.from_user_id for p in self.pending}:
			if event.status == "accepted" and other not in self.friends:
				self.friends.add(other)
				self._notify()
				return other
			return None
		self._settle(other, accepted=event.status == "accepted")
		return other

	def handle_accepted(self, event: FriendRequestAccepted) -> Optional[str]:
		other = self._counterpart(event.user_id, event.friend_id)
		if other is None:
			return None
		self._settle(other, accepted=True)
		return other

	def handle_rejected(self, event: FriendRequestRejected) -> bool:
		other = self._counterpart(event.user_id, event.friend_id)
		if other is None or not self.record.involves(other):
			return False
		self._settle(other, accepted=False)
		return True

	async def remove_friend(self, friend_id: str) -> None:
		identity = self._me()
		if not is_valid_user_id(friend_id):
			raise InvalidIdentity("Invalid friend ID.")
		await self.api.remove_friend(identity.user_id, friend_id)
		self.friends.discard(friend_id)
		self._notify()

	def handle_friend_removed(self, event: FriendRemoved) -> bool:
		if event.removed_user_id not in self.friends:
			return False
		self.friends.discard(event.removed_user_id)
		self._notify()
		return True

	def _counterpart(self, user_id: str, friend_id: str) -> Optional[str]:
		identity = self.connection.identity
		me = identity.user_id if identity is not None else None
		if user_id == me:
			return friend_id
		if friend_id == me:
			return user_id
		logger.warning("friend event does not involve the current user")
		return None

	def _settle(self, other_id: str, *, accepted: bool) -> None:
		if self.record.involves(other_id):
			self.record = FriendRequestRecord()
		self.pending = [request for request in self.pending if request.from_user_id != other_id]
		if accepted:
			self.friends.add(other_id)
		self._notify()

	def _notify(self) -> None:
		if self._on_change is not None:
			self._on_change()


__all__ = ["FriendRequestOverlay", "REQUEST_ACTIONS"]
