"""Domain-level exceptions surfaced by the chat coordinator."""

from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    """Base class for coordinator errors.

    ``reason`` is a stable slug for programmatic checks; the exception text is
    the user-facing notice.
    """

    reason: str = "unknown"
    default_message: str = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class NotConnected(ChatError):
    reason = "not_connected"
    default_message = "Not connected to server."


class InvalidIdentity(ChatError):
    reason = "invalid_identity"
    default_message = "Invalid user or partner ID."


class EmptyInput(ChatError):
    reason = "empty_input"
    default_message = "Message cannot be empty."


class NotReady(ChatError):
    reason = "not_ready"
    default_message = "Chat is not properly initialized. Please try again."


class InvalidTransition(ChatError):
    reason = "invalid_transition"
    default_message = "That action is not available right now."


class AlreadyPending(ChatError):
    reason = "already_pending"
    default_message = "A friend request is already pending."


class NoPendingRequest(ChatError):
    reason = "no_pending_request"
    default_message = "There is no friend request to answer."


class FriendNotFound(ChatError):
    reason = "friend_not_found"
    default_message = "Friend not found."


class NotAuthorizedForChat(ChatError):
    reason = "not_authorized_for_chat"
    default_message = "You are not in a chat with this user."


class ConnectionLost(ChatError):
    reason = "connection_lost"
    default_message = "Failed to reconnect to the server."


class MalformedEvent(ChatError):
    reason = "malformed_event"
    default_message = "Received an invalid event from the server."


class TransportError(ChatError):
    """Raised when a REST call or realtime emit fails on the network."""

    reason = "transport"
    default_message = "Network request failed."

    def __init__(self, message: str | None = None, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
