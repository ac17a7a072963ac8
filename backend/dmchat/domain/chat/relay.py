"""Persist-then-broadcast message delivery and typing signals."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from dmchat.domain.chat.exceptions import EmptyMessage, NotAMember
from dmchat.domain.chat.notifications import OfflineNotifier
from dmchat.domain.chat.schemas import MessagePayload, SendMessageRequest, TypingEvent
from dmchat.domain.realtime.registry import ConnectionRegistry
from dmchat.domain.realtime.rooms import RoomMembership, Transport, chat_room
from dmchat.infra.store import DocumentStore, get_store
from dmchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class MessageRelay:
	def __init__(
		self,
		registry: ConnectionRegistry,
		rooms: RoomMembership,
		transport: Transport,
		stores: Callable[[], DocumentStore] = get_store,
		notifier: Optional[OfflineNotifier] = None,
	) -> None:
		self._registry = registry
		self._rooms = rooms
		self._transport = transport
		self._stores = stores
		self._notifier = notifier or OfflineNotifier()

	async def send_message(self, user_id: str, request: SendMessageRequest) -> MessagePayload:
		"""Store a message and broadcast it to the chat channel, sender included.

		Raises ``EmptyMessage`` for blank content and ``NotAMember`` when the chat
		is unknown or the sender is not a participant. Neither has side effects.
		"""
		if not request.content.strip():
			obs_metrics.inc_chat_dropped(EmptyMessage.reason)
			raise EmptyMessage()
		store = self._stores()
		chat = await store.get_chat(request.chat_id)
		if chat is None or not chat.has_participant(user_id):
			obs_metrics.inc_chat_dropped(NotAMember.reason)
			raise NotAMember()

		message = await store.create_message(
			chat.id,
			str(user_id),
			request.content,
			request.message_type,
			file_url=request.file_url,
			created_at=datetime.now(timezone.utc),
		)
		await store.set_last_message(chat.id, message.id, message.created_at)
		sender = await store.get_user(user_id)
		payload = MessagePayload.from_model(message, sender)
		await self._transport.emit("newMessage", payload.to_wire(), room=chat_room(chat.id))
		obs_metrics.inc_chat_send(message.message_type.value)
		logger.info("message_sent chat_id=%s message_id=%s sender_id=%s", chat.id, message.id, user_id)

		for participant in chat.others(user_id):
			if self._registry.lookup(participant) is None:
				await self._notifier.participant_offline(participant, message)
		return payload

	async def typing(self, sid: str, user_id: str, chat_id: str) -> None:
		await self._typing_signal("userTyping", sid, user_id, chat_id)

	async def stop_typing(self, sid: str, user_id: str, chat_id: str) -> None:
		await self._typing_signal("userStopTyping", sid, user_id, chat_id)

	async def _typing_signal(self, event: str, sid: str, user_id: str, chat_id: str) -> None:
		if not self._rooms.is_member(sid, chat_id):
			raise NotAMember()
		payload = TypingEvent(chat_id=chat_id, user_id=str(user_id)).to_wire()
		await self._transport.emit(event, payload, room=chat_room(chat_id), skip_sid=sid)
