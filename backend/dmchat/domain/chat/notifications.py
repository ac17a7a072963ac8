"""Hook for participants who were offline when a message was sent."""

from __future__ import annotations

import logging

from dmchat.domain.chat.models import ChatMessage
from dmchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class OfflineNotifier:
	"""Receives the offline-participant signal. Push delivery lives elsewhere."""

	async def participant_offline(self, user_id: str, message: ChatMessage) -> None:
		obs_metrics.inc_chat_offline_signal()
		logger.info(
			"participant_offline user_id=%s chat_id=%s message_id=%s",
			user_id,
			message.chat_id,
			message.id,
		)
