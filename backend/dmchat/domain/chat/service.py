"""Chat listing, creation and history for the HTTP surface."""

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dmchat.domain.chat.exceptions import InvalidParticipant, NotAMember
from dmchat.domain.chat.models import Chat
from dmchat.domain.chat.schemas import ChatSummary, MessagePage, MessagePayload, Pagination
from dmchat.domain.realtime.registry import ConnectionRegistry
from dmchat.domain.realtime.rooms import RoomMembership
from dmchat.domain.social.models import UserRecord
from dmchat.infra.store import DocumentStore, get_store

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class ChatService:
	def __init__(
		self,
		registry: ConnectionRegistry,
		rooms: RoomMembership,
		stores: Callable[[], DocumentStore] = get_store,
	) -> None:
		self._registry = registry
		self._rooms = rooms
		self._stores = stores

	async def _users_for(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
		users = await self._stores().get_users(user_ids)
		return {user.id: user for user in users}

	async def _summarise(self, chat: Chat, users: Optional[Dict[str, UserRecord]] = None) -> ChatSummary:
		store = self._stores()
		last_message = await store.get_message(chat.last_message_id) if chat.last_message_id else None
		if users is None:
			users = await self._users_for(chat.participants)
		return ChatSummary.from_model(chat, users, last_message)

	async def list_chats(self, user_id: str) -> List[ChatSummary]:
		chats = await self._stores().find_chats_for_user(user_id)
		users = await self._users_for({p for chat in chats for p in chat.participants})
		return [await self._summarise(chat, users) for chat in chats]

	async def open_chat(self, user_id: str, other_id: str) -> Tuple[ChatSummary, bool]:
		"""Return the direct chat between the two users, creating it if needed.

		The boolean is True when a new chat was created. Connected participants
		are joined to the new chat channel straight away.
		"""
		user_id, other_id = str(user_id), str(other_id)
		if user_id == other_id:
			raise InvalidParticipant("self_chat")
		store = self._stores()
		if await store.get_user(other_id) is None:
			raise InvalidParticipant("unknown_user")

		chat = await store.find_direct_chat(user_id, other_id)
		if chat is not None:
			return await self._summarise(chat), False

		chat = await store.create_chat([user_id, other_id])
		logger.info("chat_created chat_id=%s user_id=%s other_id=%s", chat.id, user_id, other_id)
		for participant in chat.participants:
			handle = self._registry.lookup(participant)
			if handle is not None:
				await self._rooms.attach(handle.sid, chat.id)
		return await self._summarise(chat), True

	async def get_messages(
		self,
		user_id: str,
		chat_id: str,
		*,
		page: int = 1,
		limit: int = DEFAULT_PAGE_SIZE,
	) -> MessagePage:
		"""One page of history, oldest first within the page."""
		page = max(1, page)
		limit = max(1, min(limit, MAX_PAGE_SIZE))
		store = self._stores()
		chat = await store.get_chat(chat_id)
		if chat is None or not chat.has_participant(user_id):
			raise NotAMember()

		messages = await store.list_messages(chat.id, skip=(page - 1) * limit, limit=limit)
		total = await store.count_messages(chat.id)
		senders = await self._users_for({m.sender_id for m in messages})
		return MessagePage(
			messages=[MessagePayload.from_model(m, senders.get(m.sender_id)) for m in reversed(messages)],
			pagination=Pagination(current=page, limit=limit, total=total, pages=math.ceil(total / limit)),
		)
