"""Pydantic schemas for the friend and profile REST responses."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _RestModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class FriendSummary(_RestModel):
	id: str = Field(..., alias="_id")
	user_name: str = "Anonymous"

	@field_validator("user_name", mode="before")
	def _default_name(cls, value: Any):  # type: ignore[override]
		return value or "Anonymous"


class FriendListResponse(_RestModel):
	friends: List[FriendSummary] = Field(default_factory=list)


class PendingFriendRequest(_RestModel):
	from_user_id: str = Field(..., alias="fromUserId")
	from_username: str = Field(default="Anonymous", alias="fromUsername")

	@field_validator("from_username", mode="before")
	def _default_name(cls, value: Any):  # type: ignore[override]
		return value or "Anonymous"


class PendingRequestsResponse(_RestModel):
	friend_requests: List[PendingFriendRequest] = Field(default_factory=list, alias="friendRequests")


class UserProfile(_RestModel):
	id: str = Field(..., alias="_id")
	user_name: str = "Anonymous"
	gender: Optional[str] = None
	bio: Optional[str] = None
	interests: List[str] = Field(default_factory=list)
	friends: List[str] = Field(default_factory=list)

	@field_validator("friends", mode="before")
	def _friend_ids(cls, value: Any):  # type: ignore[override]
		# Populated friend documents and bare ids are both seen in the wild.
		if not isinstance(value, list):
			return []
		ids = []
		for item in value:
			if isinstance(item, dict):
				item = item.get("_id")
			if item:
				ids.append(str(item))
		return ids
