"""Channel naming and room membership for socket connections."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Protocol, Set

from dmchat.infra.store import DocumentStore, get_store
from dmchat.settings import settings

logger = logging.getLogger(__name__)


def user_room(user_id: str) -> str:
	return f"user:{user_id}"


def chat_room(chat_id: str) -> str:
	return f"chat:{chat_id}"


class Transport(Protocol):
	"""The subset of ``socketio.AsyncNamespace`` the realtime core relies on."""

	async def emit(self, event: str, data: Any = None, room: Optional[str] = None, skip_sid: Optional[str] = None, **kwargs: Any) -> None: ...

	async def enter_room(self, sid: str, room: str, namespace: Optional[str] = None) -> None: ...

	async def leave_room(self, sid: str, room: str, namespace: Optional[str] = None) -> None: ...


class RoomMembership:
	"""Joins connections to personal and conversation channels.

	Keeps a mirror of which sid sits in which room so callers can answer
	membership questions without asking the socket.io manager or the store.
	"""

	def __init__(self, transport: Transport, stores: Callable[[], DocumentStore] = get_store) -> None:
		self._transport = transport
		self._stores = stores
		self._rooms: Dict[str, Set[str]] = {}
		self._by_sid: Dict[str, Set[str]] = {}

	async def _enter(self, sid: str, room: str) -> None:
		await self._transport.enter_room(sid, room)
		self._rooms.setdefault(room, set()).add(sid)
		self._by_sid.setdefault(sid, set()).add(room)

	async def _leave(self, sid: str, room: str) -> None:
		await self._transport.leave_room(sid, room)
		self._forget(sid, room)

	def _forget(self, sid: str, room: str) -> None:
		members = self._rooms.get(room)
		if members is not None:
			members.discard(sid)
			if not members:
				del self._rooms[room]
		joined = self._by_sid.get(sid)
		if joined is not None:
			joined.discard(room)
			if not joined:
				del self._by_sid[sid]

	async def join_personal(self, sid: str, user_id: str) -> None:
		await self._enter(sid, user_room(user_id))

	async def join_conversation_rooms(self, sid: str, user_id: str) -> List[str]:
		"""Join one channel per chat the user participates in. Returns the chat ids."""
		chats = await self._stores().find_chats_for_user(user_id)
		for chat in chats:
			await self._enter(sid, chat_room(chat.id))
		return [chat.id for chat in chats]

	async def join_conversation(self, sid: str, user_id: str, chat_id: str) -> bool:
		if settings.verify_room_joins:
			chat = await self._stores().get_chat(chat_id)
			if chat is None or not chat.has_participant(user_id):
				logger.info("room_join_refused user_id=%s chat_id=%s", user_id, chat_id)
				return False
		await self._enter(sid, chat_room(chat_id))
		return True

	async def attach(self, sid: str, chat_id: str) -> None:
		"""Join a chat channel for a participant the caller has already checked."""
		await self._enter(sid, chat_room(chat_id))

	async def leave_conversation(self, sid: str, chat_id: str) -> None:
		await self._leave(sid, chat_room(chat_id))

	def is_member(self, sid: str, chat_id: str) -> bool:
		return sid in self._rooms.get(chat_room(chat_id), ())

	def members(self, room: str) -> FrozenSet[str]:
		return frozenset(self._rooms.get(room, ()))

	def rooms_of(self, sid: str) -> FrozenSet[str]:
		return frozenset(self._by_sid.get(sid, ()))

	async def evict(self, sid: str) -> None:
		for room in list(self._by_sid.get(sid, ())):
			await self._leave(sid, room)

	def leave_all(self, sid: str) -> None:
		"""Drop ``sid`` from the mirror. socket.io clears its own rooms on disconnect."""
		for room in list(self._by_sid.get(sid, ())):
			self._forget(sid, room)
