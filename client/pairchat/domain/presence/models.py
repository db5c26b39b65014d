"""Typing and disconnect bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class TypingState:
	local_typing: bool = False
	local_last_emitted_at: Optional[float] = None
	remote_typing: bool = False
	remote_clear_deadline: Optional[float] = None


@dataclass(slots=True)
class DisconnectRecord:
	partner_id: str
	last_signal_at: float
