import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Ensure the client package is importable when tests run from repo root
CLIENT_ROOT = Path(__file__).resolve().parents[1]
if str(CLIENT_ROOT) not in sys.path:
	sys.path.insert(0, str(CLIENT_ROOT))

from pairchat.coordinator import ChatCoordinator
from pairchat.domain.exceptions import TransportError
from pairchat.domain.social.schemas import FriendSummary, UserProfile
from pairchat.realtime.events import TransportDisconnected, parse_event
from pairchat.settings import Settings

ALICE = "a" * 24
BOB = "b" * 24
CAROL = "c" * 24


class FakeTransport:
	"""In-memory stand-in for the Socket.IO transport."""

	def __init__(self) -> None:
		self.connected = False
		self.emitted: List[Tuple[str, dict]] = []
		self.open_calls = 0
		self.close_calls = 0
		self.open_failures = 0
		self.fail_emits = False
		self.listener = None

	def set_listener(self, listener) -> None:
		self.listener = listener

	async def open(self, identity) -> None:
		self.open_calls += 1
		self.last_identity = identity
		if self.open_failures:
			self.open_failures -= 1
			raise TransportError("connection refused")
		self.connected = True

	async def close(self) -> None:
		self.close_calls += 1
		was_connected = self.connected
		self.connected = False
		if was_connected and self.listener is not None:
			# python-socketio fires its disconnect handler on a client-side close too.
			await self.listener(TransportDisconnected(reason="io client disconnect"))

	async def emit(self, event: str, payload: dict) -> None:
		if not self.connected or self.fail_emits:
			raise TransportError(f"failed to emit {event}")
		self.emitted.append((event, payload))

	async def deliver(self, name: str, payload: Optional[dict] = None) -> None:
		await self.listener(parse_event(name, payload or {}))

	async def drop(self, reason: str = "transport close") -> None:
		self.connected = False
		await self.listener(TransportDisconnected(reason=reason))

	def events(self, name: str) -> List[dict]:
		return [payload for event, payload in self.emitted if event == name]


class ManualClock:
	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def monotonic(self) -> float:
		return self.now

	def now_ms(self) -> int:
		return int(self.now * 1000)

	def advance(self, seconds: float) -> None:
		self.now += seconds


class Host:
	"""Records what the coordinator asks the host UI to do."""

	def __init__(self) -> None:
		self.notices: list = []
		self.navigations: list = []


def _make_api(friends=(), pending=(), history=(), profile_friends=()) -> AsyncMock:
	api = AsyncMock()
	api.fetch_profile.return_value = UserProfile(id="0" * 24, friends=list(profile_friends))
	api.fetch_friends.return_value = list(friends)
	api.fetch_pending_friend_requests.return_value = list(pending)
	api.fetch_chat_history.return_value = list(history)
	return api


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0, sleep=asyncio.sleep) -> None:
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		if loop.time() > deadline:
			raise AssertionError("condition not met in time")
		await sleep(0.005)


@pytest.fixture
def fast_settings() -> Settings:
	return Settings(
		reconnection_attempts=3,
		reconnection_delay_seconds=0.01,
		reconnection_delay_max_seconds=0.02,
		connect_timeout_seconds=1.0,
		typing_throttle_seconds=1.0,
		typing_timeout_seconds=0.2,
		dedup_window_ms=1000,
		disconnect_grace_seconds=60.0,
		obs_log_json=False,
	)


@pytest.fixture
def transport() -> FakeTransport:
	return FakeTransport()


@pytest.fixture
def clock() -> ManualClock:
	return ManualClock()


@pytest.fixture
def host() -> Host:
	return Host()


@pytest.fixture
def api() -> AsyncMock:
	return _make_api(friends=[FriendSummary(id=BOB, user_name="Bob")])


@pytest_asyncio.fixture
async def coordinator(transport, api, fast_settings, clock, host):
	coord = ChatCoordinator(
		transport,
		api,
		settings=fast_settings,
		clock=clock.monotonic,
		now_ms=clock.now_ms,
		on_notice=host.notices.append,
		on_navigate=host.navigations.append,
	)
	try:
		yield coord
	finally:
		await coord.reset()


@pytest.fixture
def start_random_chat(coordinator, transport):
	async def _start(partner_id: str = BOB, partner_name: str = "Bob", user_id: str = ALICE) -> None:
		assert await coordinator.connect(user_id, "Alice")
		assert await coordinator.start_searching()
		await transport.deliver("match_found", {"partnerId": partner_id, "partnerName": partner_name})

	return _start


@pytest.fixture
def eventually():
	return _eventually


@pytest.fixture
def make_api():
	return _make_api


@pytest_asyncio.fixture
async def make_coordinator(fast_settings, clock):
	"""Factory for extra coordinators, e.g. the other side of a pairing."""
	created: list = []

	def _make(api=None, host: Optional[Host] = None) -> Tuple[ChatCoordinator, FakeTransport]:
		fake_transport = FakeTransport()
		recorder = host or Host()
		coord = ChatCoordinator(
			fake_transport,
			api or _make_api(),
			settings=fast_settings,
			clock=clock.monotonic,
			now_ms=clock.now_ms,
			on_notice=recorder.notices.append,
			on_navigate=recorder.navigations.append,
		)
		created.append(coord)
		return coord, fake_transport

	try:
		yield _make
	finally:
		for coord in created:
			await coord.reset()
