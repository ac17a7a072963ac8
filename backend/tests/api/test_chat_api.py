import pytest


@pytest.mark.asyncio
async def test_requires_authentication(api_client):
	response = await api_client.get("/api/chat/chats")
	assert response.status_code == 401
	body = response.json()
	assert body["detail"] == "invalid_token"
	assert "request_id" in body


@pytest.mark.asyncio
async def test_open_chat_then_send_and_fetch(api_client, auth_headers, make_user, transport, realtime):
	alice = await make_user("alice")
	bob = await make_user("bob")
	realtime.registry.register(bob.id, "sid-b")

	created = await api_client.post("/api/chat/chat", json={"userId": bob.id}, headers=auth_headers(alice.id))
	assert created.status_code == 201
	chat = created.json()
	assert {p["id"] for p in chat["participants"]} == {alice.id, bob.id}

	existing = await api_client.post("/api/chat/chat", json={"userId": alice.id}, headers=auth_headers(bob.id))
	assert existing.status_code == 200
	assert existing.json()["id"] == chat["id"]

	sent = await api_client.post(
		"/api/chat/message",
		json={"chatId": chat["id"], "content": "hello over http"},
		headers=auth_headers(alice.id),
	)
	assert sent.status_code == 201
	assert sent.json()["readBy"] == [alice.id]
	assert [m["content"] for m in transport.received("sid-b", "newMessage")] == ["hello over http"]

	history = await api_client.get(f"/api/chat/chat/{chat['id']}/messages", headers=auth_headers(bob.id))
	assert history.status_code == 200
	page = history.json()
	assert [m["content"] for m in page["messages"]] == ["hello over http"]
	assert page["pagination"] == {"current": 1, "limit": 50, "total": 1, "pages": 1}

	chats = await api_client.get("/api/chat/chats", headers=auth_headers(bob.id))
	assert [c["id"] for c in chats.json()] == [chat["id"]]
	assert chats.json()[0]["lastMessage"]["content"] == "hello over http"


@pytest.mark.asyncio
async def test_send_errors_map_to_status_codes(api_client, auth_headers, make_user, memory_store):
	alice = await make_user("alice")
	bob = await make_user("bob")
	mallory = await make_user("mallory")
	chat = await memory_store.create_chat([alice.id, bob.id])

	blank = await api_client.post(
		"/api/chat/message", json={"chatId": chat.id, "content": "  "}, headers=auth_headers(alice.id)
	)
	outsider = await api_client.post(
		"/api/chat/message", json={"chatId": chat.id, "content": "hi"}, headers=auth_headers(mallory.id)
	)
	history = await api_client.get(f"/api/chat/chat/{chat.id}/messages", headers=auth_headers(mallory.id))
	unknown = await api_client.post("/api/chat/chat", json={"userId": "nobody"}, headers=auth_headers(alice.id))

	assert blank.status_code == 400
	assert blank.json()["detail"] == "empty_message"
	assert outsider.status_code == 404
	assert history.status_code == 404
	assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_dev_header_fallback(api_client, make_user):
	alice = await make_user("alice")
	response = await api_client.get("/api/chat/chats", headers={"X-User-Id": alice.id})
	assert response.status_code == 200
	assert response.json() == []
