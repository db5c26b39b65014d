"""Domain models for the realtime connection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionStatus(str, Enum):
	DISCONNECTED = "disconnected"
	CONNECTING = "connecting"
	CONNECTED = "connected"


@dataclass(slots=True, frozen=True)
class Identity:
	"""Authenticated user the connection announces itself as."""

	user_id: str
	display_name: str = "Anonymous"


@dataclass(slots=True)
class ConnectionState:
	status: ConnectionStatus = ConnectionStatus.DISCONNECTED
	identity: Optional[Identity] = None
	retry_count: int = 0
