"""Fire-and-forget delivery of friend-request events to connected users."""

from __future__ import annotations

import logging

from dmchat.domain.common.wire import WireModel
from dmchat.domain.realtime.registry import ConnectionRegistry
from dmchat.domain.realtime.rooms import Transport
from dmchat.domain.social.models import FriendRequest
from dmchat.domain.social.schemas import (
	FriendRequestAcceptedEvent,
	FriendRequestEvent,
	FriendRequestRejectedEvent,
	PublicProfile,
)
from dmchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class FriendEventRelay:
	"""Each method returns True when the target had a registry entry.

	Events go to the registered connection only, never to older sockets of the
	same user.

	An absent target is not an error; the event is simply not delivered.
	"""

	def __init__(self, registry: ConnectionRegistry, transport: Transport) -> None:
		self._registry = registry
		self._transport = transport

	async def _deliver(self, event: str, target_id: str, payload: WireModel) -> bool:
		handle = self._registry.lookup(target_id)
		if handle is None:
			obs_metrics.inc_friend_event(event, delivered=False)
			logger.debug("friend_event_undelivered event=%s target=%s", event, target_id)
			return False
		await self._transport.emit(event, payload.to_wire(), room=handle.sid)
		obs_metrics.inc_friend_event(event, delivered=True)
		return True

	async def friend_request(self, request: FriendRequest, sender: PublicProfile) -> bool:
		return await self._deliver(
			"friendRequest",
			request.receiver_id,
			FriendRequestEvent(id=request.id, sender=sender),
		)

	async def friend_request_accepted(self, sender: PublicProfile, receiver: PublicProfile) -> bool:
		"""Tell both sides about the new friendship. True if the original sender was reached."""
		delivered = await self._deliver("friendRequestAccepted", sender.id, FriendRequestAcceptedEvent(user=receiver))
		await self._deliver("friendRequestAccepted", receiver.id, FriendRequestAcceptedEvent(user=sender))
		return delivered

	async def friend_request_rejected(self, sender_id: str, request_id: str) -> bool:
		return await self._deliver(
			"friendRequestRejected",
			sender_id,
			FriendRequestRejectedEvent(request_id=request_id),
		)
