import os
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set

os.environ.setdefault("JWT_SECRET", "dmchat-test-secret-0123456789abcdef0123456789")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from dmchat.domain.realtime import context as realtime_context
from dmchat.infra import store as store_module
from dmchat.infra.jwt import encode_access
from dmchat.infra.store import InMemoryStore
from dmchat.settings import settings


@dataclass
class Emitted:
	event: str
	data: Any
	room: Optional[str]
	skip_sid: Optional[str]
	recipients: FrozenSet[str] = field(default_factory=frozenset)


class RecordingTransport:
	"""Stands in for the socket.io namespace: tracks rooms and who each emit reached."""

	def __init__(self) -> None:
		self.rooms: Dict[str, Set[str]] = defaultdict(set)
		self.emitted: List[Emitted] = []

	async def emit(self, event, data=None, room=None, skip_sid=None, **kwargs):
		recipients = set(self.rooms.get(room, ())) if room else set()
		if room and not recipients and not room.startswith(("user:", "chat:")):
			recipients = {room}
		recipients.discard(skip_sid)
		self.emitted.append(Emitted(event, data, room, skip_sid, frozenset(recipients)))

	async def enter_room(self, sid, room, namespace=None):
		self.rooms[room].add(sid)

	async def leave_room(self, sid, room, namespace=None):
		self.rooms[room].discard(sid)

	def received(self, sid: str, event: Optional[str] = None) -> List[Any]:
		return [e.data for e in self.emitted if sid in e.recipients and (event is None or e.event == event)]

	def events(self, name: str) -> List[Emitted]:
		return [e for e in self.emitted if e.event == name]

	def clear(self) -> None:
		self.emitted.clear()


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from dmchat.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def memory_store():
	store = InMemoryStore()
	store_module.set_store(store)
	try:
		yield store
	finally:
		store_module.set_store(None)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev mode keeps the X-User-Id fallback available; joins are verified by default."""
	original_env = settings.environment
	original_verify = settings.verify_room_joins
	settings.environment = "dev"
	settings.verify_room_joins = True
	try:
		yield
	finally:
		settings.environment = original_env
		settings.verify_room_joins = original_verify


@pytest.fixture
def transport():
	return RecordingTransport()


@pytest.fixture
def realtime(transport):
	return realtime_context.build_context(transport)


@pytest.fixture
def make_user(memory_store):
	async def _make(username: str):
		return await memory_store.create_user(username)

	return _make


@pytest.fixture
def auth_headers():
	def _headers(user_id: str) -> Dict[str, str]:
		return {"Authorization": f"Bearer {encode_access(user_id)}"}

	return _headers


@pytest_asyncio.fixture
async def api_client(realtime):
	from dmchat.main import app

	previous = realtime_context.get_context()
	realtime_context.set_context(realtime)
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		realtime_context.set_context(previous)
