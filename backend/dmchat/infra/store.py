"""Persistent store for users, chats, messages and friend requests.

Two backends share the ``DocumentStore`` interface: ``PostgresStore`` backed by
asyncpg, and ``InMemoryStore`` used by tests and database-less local runs.
Backend failures surface as ``StoreError`` so event handlers can abort a single
event without knowing which backend is in use.
"""

from __future__ import annotations

import abc
import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import asyncpg
import ulid

from dmchat.domain.chat.models import Chat, ChatMessage, MessageType
from dmchat.domain.social.models import (
	DEFAULT_PROFILE_PIC,
	FriendRequest,
	FriendRequestStatus,
	UserRecord,
)
from dmchat.infra import postgres
from dmchat.settings import settings

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


class StoreError(Exception):
	"""Raised when the backing store is unavailable or rejects a write."""


def _now() -> datetime:
	return datetime.now(timezone.utc)


def _new_id() -> str:
	return str(ulid.new())


class DocumentStore(abc.ABC):
	"""Operations the realtime core and the HTTP layer need from persistence."""

	# users

	@abc.abstractmethod
	async def create_user(self, username: str, *, profile_pic: str = DEFAULT_PROFILE_PIC) -> UserRecord: ...

	@abc.abstractmethod
	async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

	@abc.abstractmethod
	async def get_users(self, user_ids: Iterable[str]) -> List[UserRecord]: ...

	@abc.abstractmethod
	async def set_presence(self, user_id: str, *, online: bool, last_active: datetime) -> Optional[UserRecord]:
		"""Write the presence flag and timestamp, returning the updated user."""

	@abc.abstractmethod
	async def add_friend(self, user_id: str, friend_id: str) -> None:
		"""Add ``friend_id`` to ``user_id``'s friend set (idempotent)."""

	@abc.abstractmethod
	async def list_users_excluding(self, exclude: Iterable[str], *, limit: int) -> List[UserRecord]: ...

	# chats

	@abc.abstractmethod
	async def get_chat(self, chat_id: str) -> Optional[Chat]: ...

	@abc.abstractmethod
	async def find_chats_for_user(self, user_id: str) -> List[Chat]:
		"""Chats listing ``user_id`` as participant, most recently updated first."""

	@abc.abstractmethod
	async def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]: ...

	@abc.abstractmethod
	async def create_chat(self, participants: Sequence[str]) -> Chat: ...

	@abc.abstractmethod
	async def set_last_message(self, chat_id: str, message_id: str, updated_at: datetime) -> None: ...

	# messages

	@abc.abstractmethod
	async def create_message(
		self,
		chat_id: str,
		sender_id: str,
		content: str,
		message_type: MessageType,
		*,
		file_url: Optional[str],
		created_at: datetime,
	) -> ChatMessage: ...

	@abc.abstractmethod
	async def get_message(self, message_id: str) -> Optional[ChatMessage]: ...

	@abc.abstractmethod
	async def list_messages(self, chat_id: str, *, skip: int, limit: int) -> List[ChatMessage]:
		"""Messages of ``chat_id`` newest first."""

	@abc.abstractmethod
	async def count_messages(self, chat_id: str) -> int: ...

	# friend requests

	@abc.abstractmethod
	async def create_friend_request(self, sender_id: str, receiver_id: str) -> FriendRequest: ...

	@abc.abstractmethod
	async def get_friend_request(self, request_id: str) -> Optional[FriendRequest]: ...

	@abc.abstractmethod
	async def find_friend_request_between(
		self,
		user_a: str,
		user_b: str,
		*,
		status: Optional[FriendRequestStatus] = None,
	) -> Optional[FriendRequest]:
		"""Find a request between the pair in either direction."""

	@abc.abstractmethod
	async def set_friend_request_status(self, request_id: str, status: FriendRequestStatus) -> Optional[FriendRequest]: ...

	@abc.abstractmethod
	async def delete_friend_request(self, request_id: str) -> bool: ...

	@abc.abstractmethod
	async def list_friend_requests(
		self,
		*,
		receiver_id: Optional[str] = None,
		involving: Optional[str] = None,
		status: Optional[FriendRequestStatus] = None,
	) -> List[FriendRequest]: ...

	async def ping(self) -> None:
		"""Raise ``StoreError`` when the backend cannot serve requests."""
		return None

	async def close(self) -> None:
		return None


class InMemoryStore(DocumentStore):
	"""Dictionary-backed store guarded by a single asyncio lock."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._users: Dict[str, UserRecord] = {}
		self._chats: Dict[str, Chat] = {}
		self._messages: Dict[str, List[ChatMessage]] = {}
		self._requests: Dict[str, FriendRequest] = {}

	async def create_user(self, username: str, *, profile_pic: str = DEFAULT_PROFILE_PIC) -> UserRecord:
		async with self._lock:
			if any(u.username == username for u in self._users.values()):
				raise StoreError(f"duplicate_username:{username}")
			user = UserRecord(id=_new_id(), username=username, profile_pic=profile_pic, last_active=_now())
			self._users[user.id] = user
			return replace(user)

	async def get_user(self, user_id: str) -> Optional[UserRecord]:
		async with self._lock:
			user = self._users.get(str(user_id))
			return replace(user) if user else None

	async def get_users(self, user_ids: Iterable[str]) -> List[UserRecord]:
		async with self._lock:
			return [replace(self._users[uid]) for uid in dict.fromkeys(map(str, user_ids)) if uid in self._users]

	async def set_presence(self, user_id: str, *, online: bool, last_active: datetime) -> Optional[UserRecord]:
		async with self._lock:
			user = self._users.get(str(user_id))
			if user is None:
				return None
			user.is_online = online
			user.last_active = last_active
			return replace(user)

	async def add_friend(self, user_id: str, friend_id: str) -> None:
		async with self._lock:
			user = self._users.get(str(user_id))
			if user is None:
				raise StoreError(f"unknown_user:{user_id}")
			user.friends = user.friends | {str(friend_id)}

	async def list_users_excluding(self, exclude: Iterable[str], *, limit: int) -> List[UserRecord]:
		excluded = set(map(str, exclude))
		async with self._lock:
			candidates = sorted(
				(u for u in self._users.values() if u.id not in excluded),
				key=lambda u: u.username,
			)
			return [replace(u) for u in candidates[:limit]]

	async def get_chat(self, chat_id: str) -> Optional[Chat]:
		async with self._lock:
			chat = self._chats.get(str(chat_id))
			return replace(chat) if chat else None

	async def find_chats_for_user(self, user_id: str) -> List[Chat]:
		async with self._lock:
			chats = [c for c in self._chats.values() if c.has_participant(user_id)]
			chats.sort(key=lambda c: c.updated_at, reverse=True)
			return [replace(c) for c in chats]

	async def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]:
		pair = {str(user_a), str(user_b)}
		async with self._lock:
			for chat in self._chats.values():
				if not chat.is_group and len(chat.participants) == 2 and set(chat.participants) == pair:
					return replace(chat)
			return None

	async def create_chat(self, participants: Sequence[str]) -> Chat:
		now = _now()
		chat = Chat(
			id=_new_id(),
			participants=tuple(str(p) for p in participants),
			created_at=now,
			updated_at=now,
		)
		async with self._lock:
			self._chats[chat.id] = chat
			self._messages[chat.id] = []
			return replace(chat)

	async def set_last_message(self, chat_id: str, message_id: str, updated_at: datetime) -> None:
		async with self._lock:
			chat = self._chats.get(str(chat_id))
			if chat is None:
				raise StoreError(f"unknown_chat:{chat_id}")
			chat.last_message_id = message_id
			chat.updated_at = updated_at

	async def create_message(
		self,
		chat_id: str,
		sender_id: str,
		content: str,
		message_type: MessageType,
		*,
		file_url: Optional[str],
		created_at: datetime,
	) -> ChatMessage:
		message = ChatMessage(
			id=_new_id(),
			chat_id=str(chat_id),
			sender_id=str(sender_id),
			content=content,
			message_type=message_type,
			file_url=file_url,
			read_by=(str(sender_id),),
			created_at=created_at,
		)
		async with self._lock:
			if str(chat_id) not in self._chats:
				raise StoreError(f"unknown_chat:{chat_id}")
			self._messages.setdefault(message.chat_id, []).append(message)
			return replace(message)

	async def get_message(self, message_id: str) -> Optional[ChatMessage]:
		async with self._lock:
			for messages in self._messages.values():
				for message in messages:
					if message.id == message_id:
						return replace(message)
			return None

	async def list_messages(self, chat_id: str, *, skip: int, limit: int) -> List[ChatMessage]:
		async with self._lock:
			messages = list(self._messages.get(str(chat_id), []))
		messages.sort(key=lambda m: (m.created_at, m.id), reverse=True)
		return [replace(m) for m in messages[skip : skip + limit]]

	async def count_messages(self, chat_id: str) -> int:
		async with self._lock:
			return len(self._messages.get(str(chat_id), []))

	async def create_friend_request(self, sender_id: str, receiver_id: str) -> FriendRequest:
		request = FriendRequest(
			id=_new_id(),
			sender_id=str(sender_id),
			receiver_id=str(receiver_id),
			status=FriendRequestStatus.PENDING,
			created_at=_now(),
		)
		async with self._lock:
			self._requests[request.id] = request
			return replace(request)

	async def get_friend_request(self, request_id: str) -> Optional[FriendRequest]:
		async with self._lock:
			request = self._requests.get(str(request_id))
			return replace(request) if request else None

	async def find_friend_request_between(
		self,
		user_a: str,
		user_b: str,
		*,
		status: Optional[FriendRequestStatus] = None,
	) -> Optional[FriendRequest]:
		pair = {str(user_a), str(user_b)}
		async with self._lock:
			for request in self._requests.values():
				if {request.sender_id, request.receiver_id} != pair:
					continue
				if status is not None and request.status != status:
					continue
				return replace(request)
			return None

	async def set_friend_request_status(self, request_id: str, status: FriendRequestStatus) -> Optional[FriendRequest]:
		async with self._lock:
			request = self._requests.get(str(request_id))
			if request is None:
				return None
			request.status = status
			request.updated_at = _now()
			return replace(request)

	async def delete_friend_request(self, request_id: str) -> bool:
		async with self._lock:
			return self._requests.pop(str(request_id), None) is not None

	async def list_friend_requests(
		self,
		*,
		receiver_id: Optional[str] = None,
		involving: Optional[str] = None,
		status: Optional[FriendRequestStatus] = None,
	) -> List[FriendRequest]:
		async with self._lock:
			results = []
			for request in self._requests.values():
				if receiver_id is not None and request.receiver_id != str(receiver_id):
					continue
				if involving is not None and str(involving) not in (request.sender_id, request.receiver_id):
					continue
				if status is not None and request.status != status:
					continue
				results.append(replace(request))
		results.sort(key=lambda r: r.created_at, reverse=True)
		return results


def _user_from_record(record: asyncpg.Record) -> UserRecord:
	return UserRecord(
		id=record["id"],
		username=record["username"],
		profile_pic=record["profile_pic"] or DEFAULT_PROFILE_PIC,
		is_online=bool(record["is_online"]),
		last_active=record["last_active"],
		friends=frozenset(record["friends"] or ()),
	)


def _chat_from_record(record: asyncpg.Record) -> Chat:
	return Chat(
		id=record["id"],
		participants=tuple(record["participants"]),
		is_group=bool(record["is_group"]),
		last_message_id=record["last_message_id"],
		created_at=record["created_at"],
		updated_at=record["updated_at"],
	)


def _message_from_record(record: asyncpg.Record) -> ChatMessage:
	return ChatMessage(
		id=record["id"],
		chat_id=record["chat_id"],
		sender_id=record["sender_id"],
		content=record["content"],
		message_type=MessageType(record["message_type"]),
		file_url=record["file_url"],
		read_by=tuple(record["read_by"] or ()),
		created_at=record["created_at"],
	)


def _request_from_record(record: asyncpg.Record) -> FriendRequest:
	return FriendRequest(
		id=record["id"],
		sender_id=record["sender_id"],
		receiver_id=record["receiver_id"],
		status=FriendRequestStatus(record["status"]),
		created_at=record["created_at"],
		updated_at=record["updated_at"],
	)


class PostgresStore(DocumentStore):
	"""Store backed by the shared asyncpg pool."""

	def __init__(self, pool_factory: Callable[[], Awaitable[asyncpg.pool.Pool]] = postgres.get_pool) -> None:
		self._pool_factory = pool_factory

	@asynccontextmanager
	async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
		try:
			pool = await self._pool_factory()
			async with pool.acquire() as conn:
				yield conn
		except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
			raise StoreError(str(exc) or exc.__class__.__name__) from exc

	async def ping(self) -> None:
		async with self._connection() as conn:
			await conn.execute("SELECT 1")

	async def ensure_schema(self) -> None:
		sql = SCHEMA_PATH.read_text(encoding="utf-8")
		async with self._connection() as conn:
			await conn.execute(sql)

	async def create_user(self, username: str, *, profile_pic: str = DEFAULT_PROFILE_PIC) -> UserRecord:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO users (id, username, profile_pic, last_active)
				VALUES ($1, $2, $3, $4)
				RETURNING *
				""",
				_new_id(),
				username,
				profile_pic,
				_now(),
			)
		return _user_from_record(record)

	async def get_user(self, user_id: str) -> Optional[UserRecord]:
		async with self._connection() as conn:
			record = await conn.fetchrow("SELECT * FROM users WHERE id = $1", str(user_id))
		return _user_from_record(record) if record else None

	async def get_users(self, user_ids: Iterable[str]) -> List[UserRecord]:
		ids = list(dict.fromkeys(map(str, user_ids)))
		if not ids:
			return []
		async with self._connection() as conn:
			rows = await conn.fetch("SELECT * FROM users WHERE id = ANY($1::text[])", ids)
		by_id = {row["id"]: _user_from_record(row) for row in rows}
		return [by_id[uid] for uid in ids if uid in by_id]

	async def set_presence(self, user_id: str, *, online: bool, last_active: datetime) -> Optional[UserRecord]:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"UPDATE users SET is_online = $2, last_active = $3 WHERE id = $1 RETURNING *",
				str(user_id),
				online,
				last_active,
			)
		return _user_from_record(record) if record else None

	async def add_friend(self, user_id: str, friend_id: str) -> None:
		async with self._connection() as conn:
			await conn.execute(
				"""
				UPDATE users SET friends = array_append(friends, $2)
				WHERE id = $1 AND NOT ($2 = ANY(friends))
				""",
				str(user_id),
				str(friend_id),
			)

	async def list_users_excluding(self, exclude: Iterable[str], *, limit: int) -> List[UserRecord]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"SELECT * FROM users WHERE NOT (id = ANY($1::text[])) ORDER BY username LIMIT $2",
				list(map(str, exclude)),
				limit,
			)
		return [_user_from_record(row) for row in rows]

	async def get_chat(self, chat_id: str) -> Optional[Chat]:
		async with self._connection() as conn:
			record = await conn.fetchrow("SELECT * FROM chats WHERE id = $1", str(chat_id))
		return _chat_from_record(record) if record else None

	async def find_chats_for_user(self, user_id: str) -> List[Chat]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"SELECT * FROM chats WHERE $1 = ANY(participants) ORDER BY updated_at DESC",
				str(user_id),
			)
		return [_chat_from_record(row) for row in rows]

	async def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				SELECT * FROM chats
				WHERE is_group = FALSE
					AND participants @> ARRAY[$1, $2]::text[]
					AND cardinality(participants) = 2
				LIMIT 1
				""",
				str(user_a),
				str(user_b),
			)
		return _chat_from_record(record) if record else None

	async def create_chat(self, participants: Sequence[str]) -> Chat:
		now = _now()
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO chats (id, participants, is_group, created_at, updated_at)
				VALUES ($1, $2::text[], FALSE, $3, $3)
				RETURNING *
				""",
				_new_id(),
				[str(p) for p in participants],
				now,
			)
		return _chat_from_record(record)

	async def set_last_message(self, chat_id: str, message_id: str, updated_at: datetime) -> None:
		async with self._connection() as conn:
			await conn.execute(
				"UPDATE chats SET last_message_id = $2, updated_at = $3 WHERE id = $1",
				str(chat_id),
				message_id,
				updated_at,
			)

	async def create_message(
		self,
		chat_id: str,
		sender_id: str,
		content: str,
		message_type: MessageType,
		*,
		file_url: Optional[str],
		created_at: datetime,
	) -> ChatMessage:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO messages (id, chat_id, sender_id, content, message_type, file_url, read_by, created_at)
				VALUES ($1, $2, $3, $4, $5, $6, ARRAY[$3]::text[], $7)
				RETURNING *
				""",
				_new_id(),
				str(chat_id),
				str(sender_id),
				content,
				message_type.value,
				file_url,
				created_at,
			)
		return _message_from_record(record)

	async def get_message(self, message_id: str) -> Optional[ChatMessage]:
		async with self._connection() as conn:
			record = await conn.fetchrow("SELECT * FROM messages WHERE id = $1", str(message_id))
		return _message_from_record(record) if record else None

	async def list_messages(self, chat_id: str, *, skip: int, limit: int) -> List[ChatMessage]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM messages WHERE chat_id = $1
				ORDER BY created_at DESC, id DESC
				OFFSET $2 LIMIT $3
				""",
				str(chat_id),
				skip,
				limit,
			)
		return [_message_from_record(row) for row in rows]

	async def count_messages(self, chat_id: str) -> int:
		async with self._connection() as conn:
			value = await conn.fetchval("SELECT COUNT(*) FROM messages WHERE chat_id = $1", str(chat_id))
		return int(value or 0)

	async def create_friend_request(self, sender_id: str, receiver_id: str) -> FriendRequest:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO friend_requests (id, sender_id, receiver_id, status, created_at)
				VALUES ($1, $2, $3, $4, $5)
				RETURNING *
				""",
				_new_id(),
				str(sender_id),
				str(receiver_id),
				FriendRequestStatus.PENDING.value,
				_now(),
			)
		return _request_from_record(record)

	async def get_friend_request(self, request_id: str) -> Optional[FriendRequest]:
		async with self._connection() as conn:
			record = await conn.fetchrow("SELECT * FROM friend_requests WHERE id = $1", str(request_id))
		return _request_from_record(record) if record else None

	async def find_friend_request_between(
		self,
		user_a: str,
		user_b: str,
		*,
		status: Optional[FriendRequestStatus] = None,
	) -> Optional[FriendRequest]:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				SELECT * FROM friend_requests
				WHERE ((sender_id = $1 AND receiver_id = $2) OR (sender_id = $2 AND receiver_id = $1))
					AND ($3::text IS NULL OR status = $3)
				ORDER BY created_at DESC
				LIMIT 1
				""",
				str(user_a),
				str(user_b),
				status.value if status else None,
			)
		return _request_from_record(record) if record else None

	async def set_friend_request_status(self, request_id: str, status: FriendRequestStatus) -> Optional[FriendRequest]:
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"UPDATE friend_requests SET status = $2, updated_at = $3 WHERE id = $1 RETURNING *",
				str(request_id),
				status.value,
				_now(),
			)
		return _request_from_record(record) if record else None

	async def delete_friend_request(self, request_id: str) -> bool:
		async with self._connection() as conn:
			result = await conn.execute("DELETE FROM friend_requests WHERE id = $1", str(request_id))
		return result.endswith(" 1")

	async def list_friend_requests(
		self,
		*,
		receiver_id: Optional[str] = None,
		involving: Optional[str] = None,
		status: Optional[FriendRequestStatus] = None,
	) -> List[FriendRequest]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM friend_requests
				WHERE ($1::text IS NULL OR receiver_id = $1)
					AND ($2::text IS NULL OR sender_id = $2 OR receiver_id = $2)
					AND ($3::text IS NULL OR status = $3)
				ORDER BY created_at DESC
				""",
				receiver_id,
				involving,
				status.value if status else None,
			)
		return [_request_from_record(row) for row in rows]

	async def close(self) -> None:
		await postgres.close_pool()


_store: Optional[DocumentStore] = None


async def init_store() -> DocumentStore:
	"""Create the configured store once per process."""
	global _store
	if _store is None:
		if settings.store_backend == "memory":
			_store = InMemoryStore()
		else:
			store = PostgresStore()
			await store.ensure_schema()
			_store = store
	return _store


def set_store(store: Optional[DocumentStore]) -> None:
	global _store
	_store = store


def get_store() -> DocumentStore:
	if _store is None:
		raise StoreError("store_not_initialised")
	return _store


async def close_store() -> None:
	global _store
	if _store is not None:
		await _store.close()
		_store = None
