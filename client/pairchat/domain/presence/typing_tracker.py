"""Throttled outbound typing signals and self-expiring inbound indicators."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from pairchat.domain.connection.manager import ConnectionManager
from pairchat.domain.exceptions import NotConnected, TransportError
from pairchat.domain.presence.models import TypingState
from pairchat.domain.session.machine import SessionStateMachine
from pairchat.domain.session.models import SessionStage
from pairchat.realtime.events import PartnerTyping
from pairchat.realtime.schemas import TypingPayload
from pairchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class TypingTracker:
	def __init__(
		self,
		connection: ConnectionManager,
		sessions: SessionStateMachine,
		*,
		settings: Optional[Settings] = None,
		clock: Callable[[], float] = time.monotonic,
		on_change: Optional[Callable[[], None]] = None,
	) -> None:
		self.connection = connection
		self.sessions = sessions
		self.settings = settings or default_settings
		self.state = TypingState()
		self._clock = clock
		self._on_change = on_change
		self._local_timer: Optional[asyncio.TimerHandle] = None
		self._remote_timer: Optional[asyncio.TimerHandle] = None

	async def on_local_input(self) -> bool:
		"""Record a keystroke; returns True when a typing signal went out."""
		session = self.sessions.session
		identity = self.connection.identity
		if session.stage is not SessionStage.ACTIVE or session.partner_id is None or identity is None:
			return False
		if not self.connection.is_connected:
			return False
		self.state.local_typing = True
		self._restart_local_timer()
		now = self._clock()
		last = self.state.local_last_emitted_at
		if last is not None and now - last <= self.settings.typing_throttle_seconds:
			return False
		self.state.local_last_emitted_at = now
		try:
			await self.connection.emit(TypingPayload(to_user_id=session.partner_id, from_user_id=identity.user_id))
		except (NotConnected, TransportError) as exc:
			logger.warning("failed to emit typing: %s", exc)
			if self.state.local_last_emitted_at == now:
				self.state.local_last_emitted_at = last
			return False
		return True

	def handle_partner_typing(self, event: PartnerTyping) -> bool:
		session = self.sessions.session
		if session.stage is not SessionStage.ACTIVE or event.from_user_id != session.partner_id:
			return False
		timeout = self.settings.typing_timeout_seconds
		self.state.remote_typing = True
		self.state.remote_clear_deadline = self._clock() + timeout
		if self._remote_timer is not None:
			self._remote_timer.cancel()
		self._remote_timer = asyncio.get_running_loop().call_later(timeout, self._expire_remote)
		self._notify()
		return True

	def clear_remote(self) -> None:
		if self._remote_timer is not None:
			self._remote_timer.cancel()
			self._remote_timer = None
		if self.state.remote_typing:
			self.state.remote_typing = False
			self.state.remote_clear_deadline = None
			self._notify()

	def reset(self) -> None:
		for timer in (self._local_timer, self._remote_timer):
			if timer is not None:
				timer.cancel()
		self._local_timer = None
		self._remote_timer = None
		self.state = TypingState()
		self._notify()

	def _restart_local_timer(self) -> None:
		if self._local_timer is not None:
			self._local_timer.cancel()
		self._local_timer = asyncio.get_running_loop().call_later(
			self.settings.typing_timeout_seconds,
			self._expire_local,
		)

	def _expire_local(self) -> None:
		self._local_timer = None
		self.state.local_typing = False
		self.state.local_last_emitted_at = None
		self._notify()

	def _expire_remote(self) -> None:
		self._remote_timer = None
		self.state.remote_typing = False
		self.state.remote_clear_deadline = None
		self._notify()

	def _notify(self) -> None:
		if self._on_change is not None:
			self._on_change()


__all__ = ["TypingTracker"]
