"""Settings for the pairchat client coordinator."""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	server_url: str = _env_field("http://localhost:5000", "PAIRCHAT_SERVER_URL", "SERVER_URL")
	api_base_url: Optional[str] = _env_field(None, "PAIRCHAT_API_BASE_URL", "API_BASE_URL")
	socketio_path: str = _env_field("socket.io", "PAIRCHAT_SOCKETIO_PATH")
	# Comma separated, e.g. "websocket,polling".
	socketio_transports: str = _env_field("websocket,polling", "PAIRCHAT_SOCKETIO_TRANSPORTS")

	# Reconnection budget mirrors the mobile client: 10 attempts, 500ms doubling to 2s.
	reconnection_attempts: int = _env_field(10, "PAIRCHAT_RECONNECTION_ATTEMPTS")
	reconnection_delay_seconds: float = _env_field(0.5, "PAIRCHAT_RECONNECTION_DELAY")
	reconnection_delay_max_seconds: float = _env_field(2.0, "PAIRCHAT_RECONNECTION_DELAY_MAX")
	connect_timeout_seconds: float = _env_field(20.0, "PAIRCHAT_CONNECT_TIMEOUT")
	rest_timeout_seconds: float = _env_field(10.0, "PAIRCHAT_REST_TIMEOUT")

	typing_throttle_seconds: float = _env_field(1.0, "PAIRCHAT_TYPING_THROTTLE")
	typing_timeout_seconds: float = _env_field(3.0, "PAIRCHAT_TYPING_TIMEOUT")
	# Inbound remote messages with identical text inside this window are replays.
	dedup_window_ms: int = _env_field(1000, "PAIRCHAT_DEDUP_WINDOW_MS")
	disconnect_grace_seconds: float = _env_field(60.0, "PAIRCHAT_DISCONNECT_GRACE")

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	service_name: str = _env_field("pairchat-client", "SERVICE_NAME")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_json: bool = _env_field(True, "LOG_JSON")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		populate_by_name=True,
		extra="ignore",
	)

	@field_validator("obs_log_level", mode="after")
	def _normalise_level(cls, value: str):  # type: ignore[override]
		return value.upper()

	@property
	def transports(self) -> List[str]:
		parts = [part.strip() for part in self.socketio_transports.split(",") if part.strip()]
		return parts or ["websocket", "polling"]

	@property
	def rest_base_url(self) -> str:
		return (self.api_base_url or self.server_url).rstrip("/")

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development")


settings = Settings()
