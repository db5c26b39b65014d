"""Prometheus metrics recorded by the coordinator."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

SOCKET_EVENTS = Counter(
	"pairchat_socketio_events_total",
	"Socket.IO events exchanged with the chat server",
	["direction", "event"],
)

CONNECTION_STATUS = Gauge(
	"pairchat_connection_status",
	"1 for the current connection status, 0 for the others",
	["status"],
)

RECONNECT_ATTEMPTS = Counter(
	"pairchat_reconnect_attempts_total",
	"Reconnection attempts by outcome",
	["outcome"],
)

DUPLICATE_MESSAGES = Counter(
	"pairchat_duplicate_messages_dropped_total",
	"Inbound messages discarded by the dedup window",
)

DISCONNECT_SIGNALS = Counter(
	"pairchat_partner_disconnect_signals_total",
	"partner_disconnected signals by outcome",
	["outcome"],
)

SESSION_TRANSITIONS = Counter(
	"pairchat_session_transitions_total",
	"Session stage transitions",
	["mode", "stage"],
)

_STATUSES = ("disconnected", "connecting", "connected")


def socket_event(direction: str, event: str) -> None:
	SOCKET_EVENTS.labels(direction=direction, event=event).inc()


def connection_status(status: str) -> None:
	for candidate in _STATUSES:
		CONNECTION_STATUS.labels(status=candidate).set(1.0 if candidate == status else 0.0)


def reconnect_attempt(outcome: str) -> None:
	RECONNECT_ATTEMPTS.labels(outcome=outcome).inc()


def duplicate_dropped() -> None:
	DUPLICATE_MESSAGES.inc()


def disconnect_signal(outcome: str) -> None:
	DISCONNECT_SIGNALS.labels(outcome=outcome).inc()


def session_transition(mode: str, stage: str) -> None:
	SESSION_TRANSITIONS.labels(mode=mode, stage=stage).inc()
