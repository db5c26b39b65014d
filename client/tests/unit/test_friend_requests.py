import pytest

from pairchat.domain.chat.models import MessageKind
from pairchat.domain.exceptions import AlreadyPending, NoPendingRequest, TransportError
from pairchat.domain.session.models import ChatMode, EndReason, SessionStage
from pairchat.domain.social.models import FriendRequestStatus
from pairchat.domain.social.schemas import FriendSummary, PendingFriendRequest, UserProfile

ALICE = "a" * 24
BOB = "b" * 24
CAROL = "c" * 24


def _kinds(coordinator):
    return [message.kind for message in coordinator.snapshot().messages]


@pytest.mark.asyncio
async def test_send_request_records_and_notifies_partner(coordinator, api, transport, start_random_chat):
    await start_random_chat()

    assert await coordinator.send_friend_request() is True

    record = coordinator.snapshot().friend_request
    assert record.status is FriendRequestStatus.SENT_PENDING
    assert (record.from_id, record.to_id) == (ALICE, BOB)
    assert _kinds(coordinator) == [MessageKind.FRIEND_REQUEST_SENT]
    api.send_friend_request.assert_awaited_once_with(ALICE, BOB)
    assert transport.events("send_friend_request") == [{"toUserId": BOB, "fromUserId": ALICE, "fromUsername": "Alice"}]


@pytest.mark.asyncio
async def test_second_request_is_already_pending(coordinator, start_random_chat):
    await start_random_chat()
    await coordinator.send_friend_request()

    with pytest.raises(AlreadyPending):
        await coordinator.friends.send_request()


@pytest.mark.asyncio
async def test_request_blocked_while_partner_request_pending(coordinator, transport, start_random_chat):
    await start_random_chat()
    await transport.deliver("friend_request_received", {"fromUserId": BOB, "fromUsername": "Bob"})

    with pytest.raises(AlreadyPending):
        await coordinator.friends.send_request()


@pytest.mark.asyncio
async def test_failed_request_rolls_back(coordinator, api, host, transport, start_random_chat):
    await start_random_chat()
    api.send_friend_request.side_effect = TransportError("User or friend not found.", status_code=404)

    assert await coordinator.send_friend_request() is False

    assert coordinator.snapshot().friend_request.status is FriendRequestStatus.NONE
    assert _kinds(coordinator) == []
    assert transport.events("send_friend_request") == []
    assert host.notices[-1].text == "User or friend not found."


@pytest.mark.asyncio
async def test_received_request_from_partner_offers_actions(coordinator, transport, start_random_chat):
    await start_random_chat()

    await transport.deliver("friend_request_received", {"fromUserId": BOB, "fromUsername": "Bob"})
    await transport.deliver("friend_request_received", {"fromUserId": BOB, "fromUsername": "Bob"})

    snapshot = coordinator.snapshot()
    assert snapshot.friend_request.status is FriendRequestStatus.RECEIVED_PENDING
    received = [message for message in snapshot.messages if message.kind is MessageKind.FRIEND_REQUEST_RECEIVED]
    assert len(received) == 1
    assert received[0].actions == ("accept", "reject")


@pytest.mark.asyncio
async def test_request_from_non_partner_goes_to_pending_list(coordinator, transport, start_random_chat):
    await start_random_chat()

    await transport.deliver("friend_request_received", {"fromUserId": CAROL, "fromUsername": "Carol"})

    snapshot = coordinator.snapshot()
    assert snapshot.friend_request.status is FriendRequestStatus.NONE
    assert [request.from_user_id for request in snapshot.pending_requests] == [CAROL]


@pytest.mark.asyncio
async def test_accept_without_pending_request_fails(coordinator, host, api, start_random_chat):
    await start_random_chat()

    assert await coordinator.accept_friend_request() is False

    assert host.notices[-1].reason == NoPendingRequest.reason
    api.accept_friend_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_accept_exits_random_chat_into_friendship(coordinator, api, host, transport, start_random_chat):
    await start_random_chat()
    await transport.deliver("friend_request_received", {"fromUserId": BOB, "fromUsername": "Bob"})

    assert await coordinator.accept_friend_request() is True

    snapshot = coordinator.snapshot()
    api.accept_friend_request.assert_awaited_once_with(ALICE, BOB)
    assert snapshot.friend_request.status is FriendRequestStatus.NONE
    assert BOB in snapshot.friends
    assert snapshot.stage is SessionStage.IDLE
    assert snapshot.end_reason is EndReason.BECAME_FRIENDS
    assert transport.events("leave_chat") == []
    navigation = host.navigations[-1]
    assert (navigation.target, navigation.friend_id, navigation.friend_name) == ("friend_chat", BOB, "Bob")


@pytest.mark.asyncio
async def test_reject_clears_request_and_keeps_chatting(coordinator, api, transport, start_random_chat):
    await start_random_chat()
    await transport.deliver("friend_request_received", {"fromUserId": BOB, "fromUsername": "Bob"})

    assert await coordinator.reject_friend_request() is True

    snapshot = coordinator.snapshot()
    api.reject_friend_request.assert_awaited_once_with(ALICE, BOB)
    assert snapshot.friend_request.status is FriendRequestStatus.NONE
    assert snapshot.stage is SessionStage.ACTIVE
    assert BOB not in snapshot.friends


@pytest.mark.asyncio
async def test_accept_from_pending_list(coordinator, api, transport, start_random_chat):
    await start_random_chat()
    await transport.deliver("friend_request_received", {"fromUserId": CAROL, "fromUsername": "Carol"})

    assert await coordinator.accept_friend_request(CAROL) is True

    snapshot = coordinator.snapshot()
    api.accept_friend_request.assert_awaited_once_with(ALICE, CAROL)
    assert snapshot.pending_requests == ()
    assert CAROL in snapshot.friends
    # Not the current partner, so the random chat carries on.
    assert snapshot.stage is SessionStage.ACTIVE


@pytest.mark.asyncio
async def test_realtime_acceptance_mirrors_local_effects(coordinator, api, host, transport, start_random_chat):
    await start_random_chat()
    await coordinator.send_friend_request()

    await transport.deliver("friend_request_accepted", {"userId": BOB, "friendId": ALICE})

    snapshot = coordinator.snapshot()
    api.accept_friend_request.assert_not_awaited()
    assert snapshot.friend_request.status is FriendRequestStatus.NONE
    assert snapshot.mode is ChatMode.NONE
    assert snapshot.end_reason is EndReason.BECAME_FRIENDS
    assert host.navigations[-1].target == "friend_chat"


@pytest.mark.asyncio
async def test_realtime_rejection_clears_sent_request(coordinator, host, transport, start_random_chat):
    await start_random_chat()
    await coordinator.send_friend_request()

    await transport.deliver("friend_request_rejected", {"userId": BOB, "friendId": ALICE})

    snapshot = coordinator.snapshot()
    assert snapshot.friend_request.status is FriendRequestStatus.NONE
    assert snapshot.stage is SessionStage.ACTIVE
    assert host.notices[-1].text == "Friend request was rejected."


@pytest.mark.asyncio
async def test_status_push_rejected(coordinator, transport, start_random_chat):
    await start_random_chat()
    await coordinator.send_friend_request()

    await transport.deliver(
        "friend_request_status",
        {"fromUserId": ALICE, "toUserId": BOB, "fromUsername": "Alice", "status": "rejected"},
    )

    assert coordinator.snapshot().friend_request.status is FriendRequestStatus.NONE


@pytest.mark.asyncio
async def test_status_push_accepted_exits_random_chat(coordinator, host, transport, start_random_chat):
    await start_random_chat()
    await coordinator.send_friend_request()

    await transport.deliver(
        "friend_request_status",
        {"fromUserId": ALICE, "toUserId": BOB, "fromUsername": "Alice", "status": "accepted"},
    )

    snapshot = coordinator.snapshot()
    assert BOB in snapshot.friends
    assert snapshot.stage is SessionStage.IDLE
    assert host.navigations[-1].friend_name == "Bob"


@pytest.mark.asyncio
async def test_session_end_clears_request_record(coordinator, start_random_chat):
    await start_random_chat()
    await coordinator.send_friend_request()

    await coordinator.leave()

    assert coordinator.snapshot().friend_request.status is FriendRequestStatus.NONE


@pytest.mark.asyncio
async def test_pending_requests_load_on_connect(coordinator, api):
    api.fetch_pending_friend_requests.return_value = [
        PendingFriendRequest(from_user_id=CAROL, from_username="Carol"),
        PendingFriendRequest(from_user_id=CAROL, from_username="Carol"),
    ]

    await coordinator.connect(ALICE, "Alice")

    api.fetch_pending_friend_requests.assert_awaited_once_with(ALICE)
    assert [request.from_user_id for request in coordinator.snapshot().pending_requests] == [CAROL]


@pytest.mark.asyncio
async def test_friend_removed_ends_friend_session(coordinator, api, host, transport):
    api.fetch_friends.return_value = [FriendSummary(id=BOB, user_name="Bob")]
    await coordinator.connect(ALICE, "Alice")
    await coordinator.open_friend_session(BOB)
    coordinator.friends.set_friends([BOB])

    await transport.deliver("friend_removed", {"removedUserId": BOB})

    snapshot = coordinator.snapshot()
    assert BOB not in snapshot.friends
    assert snapshot.stage is SessionStage.IDLE
    assert snapshot.end_reason is EndReason.FRIEND_REMOVED
    assert host.navigations[-1].target == "home"


@pytest.mark.asyncio
async def test_remove_friend_calls_api(coordinator, api, transport):
    await coordinator.connect(ALICE, "Alice")
    coordinator.friends.set_friends([BOB, CAROL])

    assert await coordinator.remove_friend(CAROL) is True

    api.remove_friend.assert_awaited_once_with(ALICE, CAROL)
    assert coordinator.snapshot().friends == frozenset({BOB})


@pytest.mark.asyncio
async def test_existing_friends_load_on_connect(coordinator, api, host, start_random_chat):
    api.fetch_profile.return_value = UserProfile(id=ALICE, user_name="Alice", friends=[{"_id": BOB}])

    await start_random_chat()

    assert coordinator.snapshot().friends == frozenset({BOB})
    assert await coordinator.send_friend_request() is False
    assert host.notices[-1].reason == "invalid_transition"
    api.send_friend_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_request_from_existing_friend_is_ignored(coordinator, api, transport, start_random_chat):
    api.fetch_profile.return_value = UserProfile(id=ALICE, friends=[BOB])
    await start_random_chat()

    await transport.deliver("friend_request_received", {"fromUserId": BOB, "fromUsername": "Bob"})

    snapshot = coordinator.snapshot()
    assert snapshot.friend_request.status is FriendRequestStatus.NONE
    assert snapshot.messages == ()


@pytest.mark.asyncio
async def test_friends_from_previous_identity_are_discarded(coordinator, api):
    async def sign_out(user_id):
        await coordinator.reset()
        return UserProfile(id=user_id, friends=[BOB])

    api.fetch_profile.side_effect = sign_out

    await coordinator.connect(ALICE, "Alice")

    assert coordinator.snapshot().friends == frozenset()
    api.fetch_pending_friend_requests.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_friend_list_is_reported(coordinator, api, host):
    api.fetch_profile.side_effect = TransportError("Network error.")

    assert await coordinator.connect(ALICE, "Alice")

    assert [notice.text for notice in host.notices] == ["Failed to fetch friends."]
    api.fetch_pending_friend_requests.assert_awaited_once_with(ALICE)
