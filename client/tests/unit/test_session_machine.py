import pytest
import pytest_asyncio

from pairchat.domain.connection.manager import ConnectionManager
from pairchat.domain.connection.models import Identity
from pairchat.domain.exceptions import FriendNotFound, InvalidIdentity, InvalidTransition, NotConnected, TransportError
from pairchat.domain.session.machine import SessionStateMachine
from pairchat.domain.session.models import ChatMode, EndReason, SessionStage
from pairchat.domain.social.schemas import FriendSummary
from pairchat.realtime.events import MatchFound

ALICE = "a" * 24
BOB = "b" * 24
CAROL = "c" * 24


class Hooks:
    def __init__(self) -> None:
        self.started: list = []
        self.ended: list = []

    def on_started(self, session):
        self.started.append(session.session_id)

    def on_ended(self, session):
        self.ended.append(session.end_reason)


@pytest.fixture
def hooks():
    return Hooks()


@pytest_asyncio.fixture
async def connection(transport, fast_settings):
    manager = ConnectionManager(transport, settings=fast_settings)
    await manager.connect(Identity(user_id=ALICE, display_name="Alice"))
    transport.emitted.clear()
    try:
        yield manager
    finally:
        await manager.reset()


@pytest.fixture
def machine(connection, make_api, hooks):
    api = make_api(friends=[FriendSummary(id=BOB, user_name="Bob")])
    return SessionStateMachine(connection, api, on_started=hooks.on_started, on_ended=hooks.on_ended)


async def _match(machine, partner_id=BOB):
    await machine.start_searching()
    return await machine.handle_match_found(MatchFound(partner_id=partner_id, partner_name="Bob"))


@pytest.mark.asyncio
async def test_start_searching_requires_connection(transport, fast_settings, make_api):
    machine = SessionStateMachine(ConnectionManager(transport, settings=fast_settings), make_api())

    with pytest.raises(NotConnected):
        await machine.start_searching()
    assert machine.session.stage is SessionStage.IDLE


@pytest.mark.asyncio
async def test_start_searching_emits_once(machine, transport):
    await machine.start_searching()
    await machine.start_searching()

    assert machine.session.stage is SessionStage.SEARCHING
    assert machine.session.mode is ChatMode.RANDOM
    assert transport.events("start_search") == [{"userId": ALICE, "username": "Alice"}]


@pytest.mark.asyncio
async def test_start_searching_fails_during_active_session(machine):
    await _match(machine)

    with pytest.raises(InvalidTransition):
        await machine.start_searching()


@pytest.mark.asyncio
async def test_start_searching_rolls_back_when_emit_fails(machine, transport):
    transport.fail_emits = True

    with pytest.raises(TransportError):
        await machine.start_searching()
    assert machine.session.stage is SessionStage.IDLE


@pytest.mark.asyncio
async def test_stop_searching_only_from_searching(machine, transport):
    with pytest.raises(InvalidTransition):
        await machine.stop_searching()

    await machine.start_searching()
    await machine.stop_searching()

    assert machine.session.stage is SessionStage.IDLE
    assert transport.events("stop_search") == [{"userId": ALICE}]


@pytest.mark.asyncio
async def test_match_found_ignored_when_not_searching(machine, transport):
    result = await machine.handle_match_found(MatchFound(partner_id=BOB))

    assert result is None
    assert machine.session.stage is SessionStage.IDLE
    assert transport.events("join_room") == []


@pytest.mark.asyncio
async def test_match_with_malformed_partner_aborts(machine):
    await machine.start_searching()

    with pytest.raises(InvalidIdentity):
        await machine.handle_match_found(MatchFound(partner_id="bogus"))
    assert machine.session.stage is SessionStage.IDLE
    assert machine.session.partner_id is None


@pytest.mark.asyncio
async def test_match_activates_session_and_joins_room(machine, transport, hooks):
    session = await _match(machine)

    assert session.stage is SessionStage.ACTIVE
    assert session.partner_id == BOB
    assert session.partner_name == "Bob"
    assert session.room_id == f"{ALICE}-{BOB}"
    assert session.session_id
    assert transport.events("join_room") == [{"roomId": f"{ALICE}-{BOB}", "userId": ALICE}]
    assert hooks.started == [session.session_id]
    assert machine.current_room() == session.room_id


@pytest.mark.asyncio
async def test_open_friend_session_requires_existing_friend(machine):
    with pytest.raises(FriendNotFound):
        await machine.open_friend_session(CAROL)
    assert machine.session.stage is SessionStage.IDLE


@pytest.mark.asyncio
async def test_open_friend_session_rejects_malformed_id(machine):
    with pytest.raises(InvalidIdentity):
        await machine.open_friend_session("nope")


@pytest.mark.asyncio
async def test_open_friend_session(machine, transport):
    session = await machine.open_friend_session(BOB)

    assert session.mode is ChatMode.FRIEND
    assert session.stage is SessionStage.ACTIVE
    assert session.room_id == f"{ALICE}_{BOB}"
    assert transport.events("start_friend_chat") == [{"userId": ALICE, "friendId": BOB, "username": "Alice"}]
    assert transport.events("join_room") == [{"roomId": f"{ALICE}_{BOB}", "userId": ALICE}]


@pytest.mark.asyncio
async def test_sessions_are_mutually_exclusive(machine):
    await _match(machine)

    with pytest.raises(InvalidTransition):
        await machine.open_friend_session(BOB)
    assert machine.session.mode is ChatMode.RANDOM
    assert machine.session.stage is SessionStage.ACTIVE


@pytest.mark.asyncio
async def test_leave_random_emits_leave_chat_and_idles(machine, transport, hooks):
    await _match(machine)

    await machine.leave()

    assert machine.session.stage is SessionStage.IDLE
    assert machine.session.partner_id is None
    assert machine.session.end_reason is EndReason.LEFT
    assert transport.events("leave_chat") == [{"toUserId": BOB}]
    assert hooks.ended == [EndReason.LEFT]


@pytest.mark.asyncio
async def test_leave_is_local_even_when_emit_fails(machine, transport):
    await _match(machine)
    transport.fail_emits = True

    await machine.leave()

    assert machine.session.stage is SessionStage.IDLE


@pytest.mark.asyncio
async def test_leave_friend_session_emits_leave_friend_chat(machine, transport):
    await machine.open_friend_session(BOB)

    await machine.leave()

    assert transport.events("leave_friend_chat") == [{"userId": ALICE, "friendId": BOB}]
    assert transport.events("leave_chat") == []


@pytest.mark.asyncio
async def test_leave_requires_active_session(machine):
    with pytest.raises(InvalidTransition):
        await machine.leave()


@pytest.mark.asyncio
async def test_partner_departure_does_not_emit_leave(machine, transport):
    await _match(machine)

    assert machine.partner_departed() is True
    assert machine.session.end_reason is EndReason.PARTNER_LEFT
    assert transport.events("leave_chat") == []
    assert machine.partner_departed() is False


@pytest.mark.asyncio
async def test_navigate_away_leaves_active_session(machine, transport):
    await _match(machine)

    await machine.navigate_away()

    assert transport.events("leave_chat") == [{"toUserId": BOB}]
    assert machine.session.end_reason is EndReason.NAVIGATED_AWAY


@pytest.mark.asyncio
async def test_intentional_navigation_skips_leave_event(machine, transport):
    await _match(machine)

    await machine.navigate_away(intentional=True)

    assert machine.session.stage is SessionStage.IDLE
    assert transport.events("leave_chat") == []


@pytest.mark.asyncio
async def test_navigate_away_stops_search(machine, transport):
    await machine.start_searching()

    await machine.navigate_away()

    assert machine.session.stage is SessionStage.IDLE
    assert transport.events("stop_search") == [{"userId": ALICE}]


@pytest.mark.asyncio
async def test_each_session_gets_a_new_token(machine):
    first = await _match(machine)
    await machine.leave()
    second = await _match(machine)

    assert first.session_id != second.session_id
    assert machine.is_current(second.session_id)
    assert not machine.is_current(first.session_id)


@pytest.mark.asyncio
async def test_open_friend_session_abandoned_after_sign_out(machine, connection, transport):
    async def sign_out(user_id):
        await connection.reset()
        return [FriendSummary(id=BOB, user_name="Bob")]

    machine.api.fetch_friends.side_effect = sign_out

    with pytest.raises(NotConnected):
        await machine.open_friend_session(BOB)

    assert machine.session.stage is SessionStage.IDLE
    assert machine.session.partner_id is None
    assert transport.events("start_friend_chat") == []
