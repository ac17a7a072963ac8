import pytest

from dmchat.infra.store import StoreError


async def _connect(realtime, user_id: str, sid: str) -> None:
	realtime.registry.register(user_id, sid)
	await realtime.rooms.join_personal(sid, user_id)


@pytest.mark.asyncio
async def test_online_reaches_only_registered_friends(realtime, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	carol = await make_user("carol")
	dave = await make_user("dave")
	for friend in (bob, carol):
		await memory_store.add_friend(alice.id, friend.id)
		await memory_store.add_friend(friend.id, alice.id)
	await _connect(realtime, bob.id, "sid-b")
	await _connect(realtime, dave.id, "sid-d")

	notified = await realtime.presence.announce_online(alice.id)

	assert notified == [bob.id]
	assert transport.received("sid-b", "userStatus") == [{"userId": alice.id, "status": "online"}]
	assert transport.received("sid-d") == []
	stored = await memory_store.get_user(alice.id)
	assert stored.is_online is True


@pytest.mark.asyncio
async def test_offline_is_symmetric(realtime, transport, memory_store, make_user):
	alice = await make_user("alice")
	bob = await make_user("bob")
	await memory_store.add_friend(alice.id, bob.id)
	await _connect(realtime, bob.id, "sid-b")
	await realtime.presence.announce_online(alice.id)
	transport.clear()

	notified = await realtime.presence.announce_offline(alice.id)

	assert notified == [bob.id]
	assert transport.received("sid-b", "userStatus") == [{"userId": alice.id, "status": "offline"}]
	stored = await memory_store.get_user(alice.id)
	assert stored.is_online is False


@pytest.mark.asyncio
async def test_unknown_user_is_not_broadcast(realtime, transport):
	assert await realtime.presence.announce_online("ghost") == []
	assert transport.emitted == []


@pytest.mark.asyncio
async def test_store_failure_propagates(realtime, transport, memory_store, make_user, monkeypatch):
	alice = await make_user("alice")

	async def _boom(*args, **kwargs):
		raise StoreError("down")

	monkeypatch.setattr(memory_store, "set_presence", _boom)

	with pytest.raises(StoreError):
		await realtime.presence.announce_online(alice.id)
	assert transport.emitted == []
