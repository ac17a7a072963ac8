import pytest

from dmchat.domain.realtime.rooms import RoomMembership, chat_room, user_room
from dmchat.settings import settings


@pytest.mark.asyncio
async def test_join_personal_and_conversation_rooms(transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	carol = await make_user("carol")
	chat_ab = await memory_store.create_chat([alice.id, bob.id])
	await memory_store.create_chat([bob.id, carol.id])
	rooms = RoomMembership(transport)

	await rooms.join_personal("sid-a", alice.id)
	joined = await rooms.join_conversation_rooms("sid-a", alice.id)

	assert joined == [chat_ab.id]
	assert transport.rooms[user_room(alice.id)] == {"sid-a"}
	assert transport.rooms[chat_room(chat_ab.id)] == {"sid-a"}
	assert rooms.rooms_of("sid-a") == frozenset({user_room(alice.id), chat_room(chat_ab.id)})


@pytest.mark.asyncio
async def test_join_conversation_refuses_non_participant(transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	mallory = await make_user("mallory")
	chat = await memory_store.create_chat([alice.id, bob.id])
	rooms = RoomMembership(transport)

	assert await rooms.join_conversation("sid-m", mallory.id, chat.id) is False
	assert await rooms.join_conversation("sid-m", mallory.id, "missing-chat") is False
	assert not rooms.is_member("sid-m", chat.id)
	assert "sid-m" not in transport.rooms[chat_room(chat.id)]

	assert await rooms.join_conversation("sid-a", alice.id, chat.id) is True
	assert rooms.is_member("sid-a", chat.id)


@pytest.mark.asyncio
async def test_unverified_join_trusts_the_client(transport, make_user):
	settings.verify_room_joins = False
	mallory = await make_user("mallory")
	rooms = RoomMembership(transport)

	assert await rooms.join_conversation("sid-m", mallory.id, "any-chat") is True
	assert rooms.is_member("sid-m", "any-chat")


@pytest.mark.asyncio
async def test_leave_conversation_and_leave_all(transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	chat = await memory_store.create_chat([alice.id, bob.id])
	rooms = RoomMembership(transport)
	await rooms.join_personal("sid-a", alice.id)
	await rooms.join_conversation("sid-a", alice.id, chat.id)

	await rooms.leave_conversation("sid-a", chat.id)
	assert not rooms.is_member("sid-a", chat.id)
	assert transport.rooms[chat_room(chat.id)] == set()

	rooms.leave_all("sid-a")
	assert rooms.rooms_of("sid-a") == frozenset()
	assert rooms.members(user_room(alice.id)) == frozenset()


@pytest.mark.asyncio
async def test_evict_leaves_rooms_through_transport(transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	chat = await memory_store.create_chat([alice.id, bob.id])
	rooms = RoomMembership(transport)
	await rooms.join_personal("sid-a", alice.id)
	await rooms.join_conversation_rooms("sid-a", alice.id)

	await rooms.evict("sid-a")

	assert transport.rooms[user_room(alice.id)] == set()
	assert transport.rooms[chat_room(chat.id)] == set()
	assert rooms.rooms_of("sid-a") == frozenset()
