"""Realtime connection lifecycle: identity, bounded reconnection and room re-join."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Optional

from pairchat.domain.connection.models import ConnectionState, ConnectionStatus, Identity
from pairchat.domain.exceptions import ChatError, ConnectionLost, InvalidIdentity, NotConnected, TransportError
from pairchat.domain.ids import is_valid_user_id
from pairchat.infra.socketio_transport import RealtimeTransport
from pairchat.obs import logging as obs_logging
from pairchat.obs import metrics as obs_metrics
from pairchat.realtime.schemas import JoinRoomPayload, OutboundPayload, SetUsernamePayload
from pairchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

RoomProvider = Callable[[], Optional[str]]


class ConnectionManager:
	"""Owns the single realtime connection for the signed-in identity.

	Reconnection is driven here rather than by the socket library so the retry
	budget (attempt count, doubling delay with a cap) is explicit. After every
	successful open the identity is re-announced and, when a room is active,
	the room is re-joined.
	"""

	def __init__(
		self,
		transport: RealtimeTransport,
		*,
		settings: Optional[Settings] = None,
		room_provider: Optional[RoomProvider] = None,
		on_connected: Optional[Callable[[Identity], Awaitable[None]]] = None,
		on_disconnected: Optional[Callable[[Optional[str]], Awaitable[None]]] = None,
		on_error: Optional[Callable[[ChatError], Awaitable[None]]] = None,
		on_change: Optional[Callable[[], None]] = None,
	) -> None:
		self.transport = transport
		self.settings = settings or default_settings
		self.state = ConnectionState()
		self._room_provider = room_provider or (lambda: None)
		self._on_connected = on_connected
		self._on_disconnected = on_disconnected
		self._on_error = on_error
		self._on_change = on_change
		self._retry_task: Optional[asyncio.Task[None]] = None
		self._closing = False

	@property
	def identity(self) -> Optional[Identity]:
		return self.state.identity

	@property
	def status(self) -> ConnectionStatus:
		return self.state.status

	@property
	def is_connected(self) -> bool:
		return self.state.status is ConnectionStatus.CONNECTED and self.transport.connected

	@property
	def is_reconnecting(self) -> bool:
		return self._retry_task is not None and not self._retry_task.done()

	async def connect(self, identity: Identity) -> None:
		if not is_valid_user_id(identity.user_id):
			raise InvalidIdentity("Invalid user ID.")
		current = self.state
		if current.identity == identity and current.status is not ConnectionStatus.DISCONNECTED:
			logger.debug("connect skipped, already %s", current.status.value)
			return
		if current.identity is not None and current.status is not ConnectionStatus.DISCONNECTED:
			logger.info("replacing connection held for another identity")
		await self._teardown()
		self.state = ConnectionState(identity=identity)
		self._set_status(ConnectionStatus.CONNECTING)
		try:
			await self._open(identity)
		except TransportError as exc:
			logger.warning("initial connect failed: %s", exc)
			if self.state.identity == identity:
				self._start_retry_loop(identity)
			return
		if self.state.identity != identity:
			# Reset or replaced while the socket was opening.
			return
		await self._on_open(identity)

	async def on_foreground(self) -> None:
		identity = self.state.identity
		if identity is None:
			return
		if self.state.status is ConnectionStatus.CONNECTED and not self.transport.connected:
			self._set_status(ConnectionStatus.DISCONNECTED)
		if not self.is_connected:
			await self.connect(identity)
			return
		await self._rejoin_room(identity)

	async def handle_transport_lost(self, reason: Optional[str] = None) -> None:
		identity = self.state.identity
		if self._closing or identity is None:
			return
		if self.state.status is ConnectionStatus.DISCONNECTED or self.is_reconnecting:
			return
		logger.warning("connection lost", extra={"reason": reason})
		self._set_status(ConnectionStatus.CONNECTING)
		if self._on_disconnected is not None:
			await self._on_disconnected(reason)
		self._start_retry_loop(identity)

	async def emit(self, payload: OutboundPayload) -> None:
		if not self.is_connected:
			raise NotConnected()
		event = payload.event.value
		await self.transport.emit(event, payload.to_wire())
		obs_metrics.socket_event("out", event)

	async def reset(self) -> None:
		await self._teardown()
		self.state = ConnectionState()
		self._set_status(ConnectionStatus.DISCONNECTED)

	async def _teardown(self) -> None:
		task, self._retry_task = self._retry_task, None
		if task is not None and task is not asyncio.current_task():
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task
		self._closing = True
		try:
			await self.transport.close()
		except TransportError as exc:
			logger.warning("error closing transport: %s", exc)
		finally:
			self._closing = False
		self.state.status = ConnectionStatus.DISCONNECTED

	async def _open(self, identity: Identity) -> None:
		try:
			await asyncio.wait_for(self.transport.open(identity), timeout=self.settings.connect_timeout_seconds)
		except asyncio.TimeoutError as exc:
			raise TransportError("Connection timed out.") from exc

	async def _on_open(self, identity: Identity) -> None:
		self.state.retry_count = 0
		self._set_status(ConnectionStatus.CONNECTED)
		obs_logging.bind_context(user_id=identity.user_id)
		logger.info("connected")
		await self._announce(identity)
		if self._on_connected is not None:
			await self._on_connected(identity)

	async def _announce(self, identity: Identity) -> None:
		try:
			await self.emit(SetUsernamePayload(user_id=identity.user_id, username=identity.display_name))
		except (NotConnected, TransportError) as exc:
			logger.warning("failed to announce identity: %s", exc)
			return
		await self._rejoin_room(identity)

	async def _rejoin_room(self, identity: Identity) -> None:
		room_id = self._room_provider()
		if not room_id:
			return
		try:
			await self.emit(JoinRoomPayload(room_id=room_id, user_id=identity.user_id))
		except (NotConnected, TransportError) as exc:
			logger.warning("failed to rejoin room %s: %s", room_id, exc)

	def _start_retry_loop(self, identity: Identity) -> None:
		if self.is_reconnecting:
			return
		self._retry_task = asyncio.create_task(
			self._retry_loop(identity),
			name=f"pairchat-reconnect:{identity.user_id}",
		)

	async def _retry_loop(self, identity: Identity) -> None:
		try:
			opened = await self._retry_open(identity)
		finally:
			if self._retry_task is asyncio.current_task():
				self._retry_task = None
		if self.state.identity != identity:
			return
		if opened:
			await self._on_open(identity)
			return
		self._set_status(ConnectionStatus.DISCONNECTED)
		logger.error("reconnection attempts exhausted", extra={"attempts": self.state.retry_count})
		if self._on_error is not None:
			await self._on_error(ConnectionLost())

	async def _retry_open(self, identity: Identity) -> bool:
		delay = self.settings.reconnection_delay_seconds
		max_delay = self.settings.reconnection_delay_max_seconds
		attempts = max(0, self.settings.reconnection_attempts)
		for attempt in range(1, attempts + 1):
			await asyncio.sleep(delay)
			if self.state.identity != identity:
				return False
			self.state.retry_count = attempt
			self._notify()
			try:
				await self._open(identity)
			except TransportError as exc:
				obs_metrics.reconnect_attempt("failed")
				logger.info("reconnect attempt %s/%s failed: %s", attempt, attempts, exc)
				delay = min(delay * 2, max_delay)
				continue
			obs_metrics.reconnect_attempt("succeeded")
			return True
		return False

	def _set_status(self, status: ConnectionStatus) -> None:
		self.state.status = status
		obs_metrics.connection_status(status.value)
		self._notify()

	def _notify(self) -> None:
		if self._on_change is not None:
			self._on_change()


__all__ = ["ConnectionManager", "RoomProvider"]
