"""Observability package bootstrap."""

from __future__ import annotations

from typing import Optional

from pairchat.obs import logging as obs_logging
from pairchat.settings import Settings, settings as default_settings

_initialised = False


def init(settings: Optional[Settings] = None):
	"""Configure logging once; returns the package logger."""
	global _initialised
	config = settings or default_settings
	if _initialised:
		return obs_logging.get_logger()
	logger = obs_logging.configure_logging(config.obs_log_level, json_output=config.obs_log_json)
	_initialised = True
	return logger
