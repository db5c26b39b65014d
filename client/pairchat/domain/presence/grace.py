"""Suppression of repeated partner-disconnect signals."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from pairchat.domain.presence.models import DisconnectRecord
from pairchat.domain.session.models import Session, SessionStage
from pairchat.obs import metrics as obs_metrics
from pairchat.realtime.events import PartnerDisconnected
from pairchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class DisconnectGraceMonitor:
	"""Decides whether a partner_disconnected signal should end the session.

	The server can repeat the signal for one departure; only the first per
	partner inside the grace window counts. Records are dropped when a new
	session starts.

	Inside :class:`~pairchat.coordinator.ChatCoordinator` an accepted signal
	ends the session at once, so a repeat is already filtered by the
	inactive-session check and the window branch is not reached there. The
	window only decides the outcome for callers that keep the session active
	after an accepted signal.
	"""

	def __init__(
		self,
		*,
		settings: Optional[Settings] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.settings = settings or default_settings
		self._clock = clock
		self._records: Dict[str, DisconnectRecord] = {}

	def should_end_session(self, event: PartnerDisconnected, session: Session) -> bool:
		partner_id = event.disconnected_user_id
		if session.stage is not SessionStage.ACTIVE or partner_id != session.partner_id:
			obs_metrics.disconnect_signal("ignored")
			logger.debug("disconnect signal for non-partner ignored")
			return False
		now = self._clock()
		record = self._records.get(partner_id)
		if record is not None and now - record.last_signal_at < self.settings.disconnect_grace_seconds:
			obs_metrics.disconnect_signal("suppressed")
			logger.info("repeated disconnect signal suppressed")
			return False
		self._records[partner_id] = DisconnectRecord(partner_id=partner_id, last_signal_at=now)
		obs_metrics.disconnect_signal("accepted")
		return True

	def last_signal_at(self, partner_id: str) -> Optional[float]:
		record = self._records.get(partner_id)
		return record.last_signal_at if record is not None else None

	def reset(self) -> None:
		self._records.clear()


__all__ = ["DisconnectGraceMonitor"]
