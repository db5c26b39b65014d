"""Socket.IO client transport feeding typed events to the coordinator."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, Protocol
from urllib.parse import urlencode

import socketio

from pairchat.domain.connection.models import Identity
from pairchat.domain.exceptions import MalformedEvent, TransportError
from pairchat.obs import metrics as obs_metrics
from pairchat.realtime.events import (
    SERVER_EVENTS,
    InboundEvent,
    TransportConnected,
    TransportDisconnected,
    parse_event,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[InboundEvent], Awaitable[None]]


class RealtimeTransport(Protocol):
    """What the connection manager needs from a realtime channel."""

    @property
    def connected(self) -> bool:
        ...

    def set_listener(self, listener: EventListener) -> None:
        ...

    async def open(self, identity: Identity) -> None:
        ...

    async def close(self) -> None:
        ...

    async def emit(self, event: str, payload: dict) -> None:
        ...


class SocketIOTransport(RealtimeTransport):
    """python-socketio AsyncClient wrapper.

    Automatic reconnection is disabled on the client; the connection manager
    owns the retry budget so the policy is identical for every transport.
    """

    def __init__(
        self,
        url: str,
        *,
        path: str = "socket.io",
        transports: Optional[List[str]] = None,
        client: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.path = path
        self.transports = transports or ["websocket", "polling"]
        self.client = client or socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._listener: Optional[EventListener] = None
        self._register_handlers()

    @property
    def connected(self) -> bool:
        return bool(self.client.connected)

    def set_listener(self, listener: EventListener) -> None:
        self._listener = listener

    def _register_handlers(self) -> None:
        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)
        for name in SERVER_EVENTS:
            self.client.on(name, self._make_handler(name))

    def _make_handler(self, name: str) -> Callable[..., Awaitable[None]]:
        async def handler(data=None) -> None:
            await self._on_server_event(name, data)

        return handler

    async def _on_connect(self) -> None:
        await self._deliver(TransportConnected())

    async def _on_disconnect(self, *args) -> None:
        # python-socketio >= 5.12 passes the disconnect reason.
        reason = str(args[0]) if args else None
        await self._deliver(TransportDisconnected(reason=reason))

    async def _on_server_event(self, name: str, data) -> None:
        obs_metrics.socket_event("in", name)
        try:
            event = parse_event(name, data)
        except MalformedEvent as exc:
            logger.warning("dropping malformed %s event: %s", name, exc)
            return
        await self._deliver(event)

    async def _deliver(self, event: InboundEvent) -> None:
        if self._listener is None:
            logger.debug("no listener registered, dropping %s", event.name)
            return
        await self._listener(event)

    async def open(self, identity: Identity) -> None:
        if self.client.connected:
            return
        query = urlencode({"userId": identity.user_id, "username": identity.display_name})
        try:
            await self.client.connect(
                f"{self.url}?{query}",
                auth={"userId": identity.user_id, "username": identity.display_name},
                transports=self.transports,
                socketio_path=self.path,
            )
        except socketio.exceptions.ConnectionError as exc:
            raise TransportError(f"Unable to connect: {exc}") from exc

    async def close(self) -> None:
        if not self.client.connected:
            return
        await self.client.disconnect()

    async def emit(self, event: str, payload: dict) -> None:
        if not self.client.connected:
            raise TransportError("Socket is not connected.")
        try:
            await self.client.emit(event, payload)
        except socketio.exceptions.SocketIOError as exc:
            raise TransportError(f"Failed to emit {event}: {exc}") from exc
