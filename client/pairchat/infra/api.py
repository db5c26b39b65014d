"""REST client for the chat and friends endpoints."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Protocol, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from pairchat.domain.chat.schemas import ChatHistoryResponse, HistoryMessage
from pairchat.domain.exceptions import TransportError
from pairchat.domain.social.schemas import (
    FriendListResponse,
    FriendSummary,
    PendingFriendRequest,
    PendingRequestsResponse,
    UserProfile,
)
from pairchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_Model = TypeVar("_Model", bound=BaseModel)

_STATUS_MESSAGES = {
    400: "Invalid request.",
    403: "You are not in a chat with this user.",
    404: "User or friend not found.",
}


class ChatApi(Protocol):
    """Interface the coordinator components use for persistence and lookups."""

    async def send_random_message(self, user_id: str, partner_id: str, message: str) -> None:
        ...

    async def send_friend_message(self, user_id: str, friend_id: str, message: str) -> None:
        ...

    async def fetch_chat_history(self, user_id: str, friend_id: str) -> List[HistoryMessage]:
        ...

    async def send_friend_request(self, user_id: str, friend_id: str) -> None:
        ...

    async def accept_friend_request(self, user_id: str, friend_id: str) -> None:
        ...

    async def reject_friend_request(self, user_id: str, friend_id: str) -> None:
        ...

    async def fetch_friends(self, user_id: str) -> List[FriendSummary]:
        ...

    async def remove_friend(self, user_id: str, friend_id: str) -> None:
        ...

    async def fetch_pending_friend_requests(self, user_id: str) -> List[PendingFriendRequest]:
        ...

    async def fetch_profile(self, user_id: str) -> UserProfile:
        ...

    async def aclose(self) -> None:
        ...


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return _STATUS_MESSAGES.get(response.status_code, f"Request failed with status {response.status_code}.")


class HttpChatApi(ChatApi):
    """httpx-backed implementation of :class:`ChatApi`."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        config = settings or default_settings
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            base_url=base_url or config.rest_base_url,
            timeout=config.rest_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _request(self, method: str, path: str, *, json: Optional[Mapping[str, Any]] = None) -> dict:
        try:
            response = await self.http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc.__class__.__name__)
            raise TransportError("Network error. Please check your connection.") from exc
        if response.is_error:
            logger.info("%s %s returned %s", method, path, response.status_code)
            raise TransportError(_error_message(response), status_code=response.status_code)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("Invalid response from server.", status_code=response.status_code) from exc
        return data if isinstance(data, dict) else {}

    async def _fetch(self, path: str, model: Type[_Model]) -> _Model:
        data = await self._request("GET", path)
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise TransportError("Invalid response from server.") from exc

    async def send_random_message(self, user_id: str, partner_id: str, message: str) -> None:
        await self._request(
            "POST",
            "/api/chats/send-random",
            json={"userId": user_id, "partnerId": partner_id, "message": message},
        )

    async def send_friend_message(self, user_id: str, friend_id: str, message: str) -> None:
        await self._request(
            "POST",
            "/api/chats/send",
            json={"userId": user_id, "friendId": friend_id, "message": message},
        )

    async def fetch_chat_history(self, user_id: str, friend_id: str) -> List[HistoryMessage]:
        history = await self._fetch(f"/api/chats/{user_id}/{friend_id}", ChatHistoryResponse)
        return sorted(history.messages, key=lambda item: item.timestamp_ms)

    async def send_friend_request(self, user_id: str, friend_id: str) -> None:
        await self._request("POST", "/api/users/send-friend-request", json={"userId": user_id, "friendId": friend_id})

    async def accept_friend_request(self, user_id: str, friend_id: str) -> None:
        await self._request("POST", "/api/users/accept-friend-request", json={"userId": user_id, "friendId": friend_id})

    async def reject_friend_request(self, user_id: str, friend_id: str) -> None:
        await self._request("POST", "/api/users/reject-friend-request", json={"userId": user_id, "friendId": friend_id})

    async def fetch_friends(self, user_id: str) -> List[FriendSummary]:
        response = await self._fetch(f"/api/users/friends/{user_id}", FriendListResponse)
        return list(response.friends)

    async def remove_friend(self, user_id: str, friend_id: str) -> None:
        await self._request("DELETE", f"/api/users/remove-friend/{user_id}/{friend_id}")

    async def fetch_pending_friend_requests(self, user_id: str) -> List[PendingFriendRequest]:
        response = await self._fetch(f"/api/users/pending-friend-requests/{user_id}", PendingRequestsResponse)
        return list(response.friend_requests)

    async def fetch_profile(self, user_id: str) -> UserProfile:
        return await self._fetch(f"/api/users/{user_id}", UserProfile)


__all__ = ["ChatApi", "HttpChatApi"]
