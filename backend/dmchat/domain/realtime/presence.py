"""Online/offline announcements to a user's connected friends."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List

from dmchat.domain.realtime.registry import ConnectionRegistry
from dmchat.domain.realtime.rooms import Transport
from dmchat.domain.social.models import PresenceStatus
from dmchat.domain.social.schemas import UserStatusEvent
from dmchat.infra.store import DocumentStore, get_store
from dmchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
	"""Persists the presence flag and tells registered friends about the change.

	Each friend is reached on the connection the registry currently holds for
	them, so a superseded socket hears nothing.

	Delivery is best-effort: friends without a registry entry are skipped and
	there is no catch-up when they connect later.
	"""

	def __init__(
		self,
		registry: ConnectionRegistry,
		transport: Transport,
		stores: Callable[[], DocumentStore] = get_store,
	) -> None:
		self._registry = registry
		self._transport = transport
		self._stores = stores

	async def announce_online(self, user_id: str) -> List[str]:
		return await self._announce(user_id, PresenceStatus.ONLINE)

	async def announce_offline(self, user_id: str) -> List[str]:
		return await self._announce(user_id, PresenceStatus.OFFLINE)

	async def _announce(self, user_id: str, status: PresenceStatus) -> List[str]:
		user = await self._stores().set_presence(
			user_id,
			online=status is PresenceStatus.ONLINE,
			last_active=datetime.now(timezone.utc),
		)
		if user is None:
			logger.warning("presence_unknown_user user_id=%s status=%s", user_id, status.value)
			return []
		payload = UserStatusEvent(user_id=user.id, status=status.value).to_wire()
		notified: List[str] = []
		for friend_id in sorted(user.friends):
			# registry is read after the store write; entries may have changed meanwhile
			handle = self._registry.lookup(friend_id)
			if handle is None:
				continue
			await self._transport.emit("userStatus", payload, room=handle.sid)
			notified.append(friend_id)
		obs_metrics.inc_presence_broadcast(status.value, len(notified))
		logger.info("presence_broadcast user_id=%s status=%s notified=%d", user.id, status.value, len(notified))
		return notified
