import pytest
import socketio
from socketio import packet
from socketio.exceptions import ConnectionRefusedError

from dmchat.domain.realtime.rooms import chat_room, user_room
from dmchat.domain.realtime.sockets import ChatGateway
from dmchat.infra.jwt import encode_access
from dmchat.infra.store import StoreError
from dmchat.settings import settings


def _environ(token: str) -> dict:
	return {"asgi.scope": {"headers": [(b"authorization", f"Bearer {token}".encode())]}}


@pytest.fixture
def gateway(transport):
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = ChatGateway()
	server.register_namespace(namespace)
	namespace.emit = transport.emit
	namespace.enter_room = transport.enter_room
	namespace.leave_room = transport.leave_room
	return namespace


async def _connect(gateway, user_id: str, sid: str) -> None:
	await gateway.trigger_event("connect", sid, {"asgi.scope": {"headers": []}}, {"token": encode_access(user_id)})


@pytest.mark.asyncio
async def test_connect_requires_valid_token(gateway, transport):
	with pytest.raises(ConnectionRefusedError):
		await gateway.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})
	with pytest.raises(ConnectionRefusedError):
		await gateway.trigger_event("connect", "sid-1", _environ("not-a-jwt"))

	assert len(gateway.context.registry) == 0
	assert transport.rooms == {}


@pytest.mark.asyncio
async def test_refused_handshake_sends_reason_to_client(gateway, monkeypatch):
	server = gateway.server
	sent = []

	async def _capture(eio_sid, pkt):
		sent.append(pkt)

	monkeypatch.setattr(server, "_send_packet", _capture)
	server.environ["eio-1"] = {"asgi.scope": {"headers": []}}

	await server._handle_connect("eio-1", "/", {"token": "bogus"})

	[refusal] = sent
	assert refusal.packet_type == packet.CONNECT_ERROR
	assert refusal.data == {"message": "Authentication failed"}
	assert len(gateway.context.registry) == 0


@pytest.mark.asyncio
async def test_store_failure_during_connect_refuses_and_unregisters(gateway, transport, memory_store, make_user, monkeypatch):
	alice = await make_user("alice")
	bob = await make_user("bob")
	await memory_store.create_chat([alice.id, bob.id])

	async def _boom(*args, **kwargs):
		raise StoreError("read failed")

	monkeypatch.setattr(memory_store, "find_chats_for_user", _boom)
	with pytest.raises(ConnectionRefusedError):
		await _connect(gateway, alice.id, "sid-a")

	assert gateway.context.registry.lookup(alice.id) is None
	assert gateway.user_for("sid-a") is None
	assert transport.rooms[user_room(alice.id)] == set()
	assert (await memory_store.get_user(alice.id)).is_online is False


@pytest.mark.asyncio
async def test_connect_registers_joins_and_announces(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	await memory_store.add_friend(alice.id, bob.id)
	await memory_store.add_friend(bob.id, alice.id)
	chat = await memory_store.create_chat([alice.id, bob.id])

	await gateway.trigger_event("connect", "sid-b", _environ(encode_access(bob.id)))
	await _connect(gateway, alice.id, "sid-a")

	assert gateway.context.registry.lookup(alice.id).sid == "sid-a"
	assert transport.rooms[user_room(alice.id)] == {"sid-a"}
	assert transport.rooms[chat_room(chat.id)] == {"sid-a", "sid-b"}
	assert transport.received("sid-b", "userStatus") == [{"userId": alice.id, "status": "online"}]
	assert gateway.user_for("sid-a").id == alice.id


@pytest.mark.asyncio
async def test_send_message_end_to_end(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	chat = await memory_store.create_chat([alice.id, bob.id])
	await _connect(gateway, alice.id, "sid-a")
	await _connect(gateway, bob.id, "sid-b")

	await gateway.trigger_event("sendMessage", "sid-a", {"chatId": chat.id, "content": "hi"})

	[stored] = await memory_store.list_messages(chat.id, skip=0, limit=10)
	assert stored.sender_id == alice.id
	assert stored.content == "hi"
	assert stored.read_by == (alice.id,)
	for sid in ("sid-a", "sid-b"):
		[message] = transport.received(sid, "newMessage")
		assert message["id"] == stored.id
		assert message["sender"]["id"] == alice.id


@pytest.mark.asyncio
async def test_join_chat_and_typing(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	await _connect(gateway, alice.id, "sid-a")
	await _connect(gateway, bob.id, "sid-b")
	chat = await memory_store.create_chat([alice.id, bob.id])

	await gateway.trigger_event("joinChat", "sid-a", chat.id)
	await gateway.trigger_event("joinChat", "sid-b", {"chatId": chat.id})
	await gateway.trigger_event("typing", "sid-a", chat.id)

	assert transport.received("sid-b", "userTyping") == [{"chatId": chat.id, "userId": alice.id}]
	assert transport.received("sid-a", "userTyping") == []

	await gateway.trigger_event("leaveChat", "sid-b", chat.id)
	await gateway.trigger_event("stopTyping", "sid-a", chat.id)
	assert transport.received("sid-b", "userStopTyping") == []


@pytest.mark.asyncio
async def test_non_member_events_are_dropped_silently(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	mallory = await make_user("mallory")
	chat = await memory_store.create_chat([alice.id, bob.id])
	await _connect(gateway, mallory.id, "sid-m")
	transport.clear()

	await gateway.trigger_event("joinChat", "sid-m", chat.id)
	await gateway.trigger_event("sendMessage", "sid-m", {"chatId": chat.id, "content": "let me in"})
	await gateway.trigger_event("typing", "sid-m", chat.id)
	await gateway.trigger_event("sendMessage", "sid-m", {"chatId": chat.id, "content": "   "})
	await gateway.trigger_event("sendMessage", "sid-m", ["not", "a", "dict"])
	await gateway.trigger_event("noSuchEvent", "sid-m", {})

	assert await memory_store.count_messages(chat.id) == 0
	assert transport.emitted == []


@pytest.mark.asyncio
async def test_events_from_unknown_sid_are_ignored(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	chat = await memory_store.create_chat([alice.id, bob.id])

	await gateway.trigger_event("sendMessage", "sid-x", {"chatId": chat.id, "content": "hi"})

	assert await memory_store.count_messages(chat.id) == 0


@pytest.mark.asyncio
async def test_store_failure_aborts_only_that_event(gateway, transport, memory_store, make_user, monkeypatch):
	alice = await make_user("alice")
	bob = await make_user("bob")
	chat = await memory_store.create_chat([alice.id, bob.id])
	await _connect(gateway, alice.id, "sid-a")
	await _connect(gateway, bob.id, "sid-b")
	original = memory_store.create_message

	async def _boom(*args, **kwargs):
		raise StoreError("write failed")

	monkeypatch.setattr(memory_store, "create_message", _boom)
	await gateway.trigger_event("sendMessage", "sid-a", {"chatId": chat.id, "content": "lost"})
	monkeypatch.setattr(memory_store, "create_message", original)
	await gateway.trigger_event("sendMessage", "sid-b", {"chatId": chat.id, "content": "still works"})

	assert [m["content"] for m in transport.received("sid-a", "newMessage")] == ["still works"]


@pytest.mark.asyncio
async def test_rate_limited_send_warns_sender(gateway, transport, memory_store, make_user):
	original = settings.rate_limit_messages_per_minute
	settings.rate_limit_messages_per_minute = 1
	try:
		alice = await make_user("alice")
		bob = await make_user("bob")
		chat = await memory_store.create_chat([alice.id, bob.id])
		await _connect(gateway, alice.id, "sid-a")

		await gateway.trigger_event("sendMessage", "sid-a", {"chatId": chat.id, "content": "one"})
		await gateway.trigger_event("sendMessage", "sid-a", {"chatId": chat.id, "content": "two"})
	finally:
		settings.rate_limit_messages_per_minute = original

	assert await memory_store.count_messages(chat.id) == 1
	[warning] = transport.events("sys.warn")
	assert warning.room == "sid-a"
	assert warning.data["code"] == "rate_limited"


@pytest.mark.asyncio
async def test_stale_disconnect_keeps_newer_session_online(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	await memory_store.add_friend(alice.id, bob.id)
	await memory_store.add_friend(bob.id, alice.id)
	await _connect(gateway, bob.id, "sid-b")
	await _connect(gateway, alice.id, "sid-a1")
	await _connect(gateway, alice.id, "sid-a2")
	transport.clear()

	await gateway.trigger_event("disconnect", "sid-a1")

	assert gateway.context.registry.lookup(alice.id).sid == "sid-a2"
	assert transport.events("userStatus") == []
	assert (await memory_store.get_user(alice.id)).is_online is True

	await gateway.trigger_event("disconnect", "sid-a2")

	assert gateway.context.registry.lookup(alice.id) is None
	assert transport.received("sid-b", "userStatus") == [{"userId": alice.id, "status": "offline"}]
	assert (await memory_store.get_user(alice.id)).is_online is False


@pytest.mark.asyncio
async def test_superseded_socket_gets_no_user_directed_events(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	carol = await make_user("carol")
	await memory_store.add_friend(alice.id, bob.id)
	await memory_store.add_friend(bob.id, alice.id)
	await _connect(gateway, alice.id, "sid-a1")
	await _connect(gateway, alice.id, "sid-a2")

	await _connect(gateway, bob.id, "sid-b")
	await _connect(gateway, carol.id, "sid-c")
	await gateway.trigger_event("sendFriendRequest", "sid-c", alice.id)

	assert gateway.context.registry.lookup(alice.id).sid == "sid-a2"
	assert transport.received("sid-a1", "userStatus") == []
	assert transport.received("sid-a1", "friendRequest") == []
	assert transport.received("sid-a2", "userStatus") == [{"userId": bob.id, "status": "online"}]
	[request_event] = transport.received("sid-a2", "friendRequest")
	assert request_event["sender"]["id"] == carol.id


@pytest.mark.asyncio
async def test_friend_request_flow_over_sockets(gateway, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	await _connect(gateway, alice.id, "sid-a")
	await _connect(gateway, bob.id, "sid-b")

	await gateway.trigger_event("sendFriendRequest", "sid-a", bob.id)

	[request_event] = transport.received("sid-b", "friendRequest")
	assert request_event["sender"]["id"] == alice.id
	assert request_event["sender"]["username"] == "alice"

	await gateway.trigger_event(
		"respondToFriendRequest",
		"sid-b",
		{"requestId": request_event["id"], "action": "accept"},
	)

	[to_alice] = transport.received("sid-a", "friendRequestAccepted")
	[to_bob] = transport.received("sid-b", "friendRequestAccepted")
	assert to_alice["user"]["id"] == bob.id
	assert to_bob["user"]["id"] == alice.id
	assert await memory_store.get_friend_request(request_event["id"]) is None
