"""Builds a coordinator wired to the Socket.IO transport and REST client."""

from __future__ import annotations

from typing import Callable, Optional

from pairchat.coordinator import ChatCoordinator, NavigationIntent, Notice
from pairchat.infra.api import HttpChatApi
from pairchat.infra.socketio_transport import SocketIOTransport
from pairchat.obs import init as obs_init
from pairchat.settings import Settings, settings as default_settings


def build_coordinator(
	settings: Optional[Settings] = None,
	*,
	on_notice: Optional[Callable[[Notice], None]] = None,
	on_navigate: Optional[Callable[[NavigationIntent], None]] = None,
) -> ChatCoordinator:
	config = settings or default_settings
	obs_init(config)
	transport = SocketIOTransport(
		config.server_url,
		path=config.socketio_path,
		transports=config.transports,
	)
	api = HttpChatApi(settings=config)
	return ChatCoordinator(
		transport,
		api,
		settings=config,
		on_notice=on_notice,
		on_navigate=on_navigate,
	)


__all__ = ["build_coordinator"]
