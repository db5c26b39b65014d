"""Pydantic schemas for the chat history REST response."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class HistoryMessage(BaseModel):
	model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

	id: str = Field(..., alias="_id")
	text: str
	sender_id: str = Field(..., alias="senderId")
	timestamp: datetime
	seen: bool = False

	@property
	def timestamp_ms(self) -> int:
		return int(self.timestamp.timestamp() * 1000)


class ChatHistoryResponse(BaseModel):
	model_config = ConfigDict(extra="ignore")

	messages: List[HistoryMessage] = Field(default_factory=list)
