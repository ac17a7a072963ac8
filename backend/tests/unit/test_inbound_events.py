import pytest

from dmchat.domain.chat.models import MessageType
from dmchat.domain.realtime.events import InvalidEvent, JoinChat, StartTyping, parse_inbound
from dmchat.domain.social.models import FriendRequestStatus
from dmchat.domain.social.schemas import SendFriendRequest


def test_bare_ids_are_accepted():
	assert parse_inbound("joinChat", "chat-1") == JoinChat(chat_id="chat-1")
	assert parse_inbound("typing", {"chatId": "chat-1"}) == StartTyping(chat_id="chat-1")
	assert parse_inbound("sendFriendRequest", "user-2") == SendFriendRequest(receiver_id="user-2")


def test_send_message_payload():
	payload = parse_inbound("sendMessage", {"chatId": "chat-1", "content": "hi"})
	assert payload.chat_id == "chat-1"
	assert payload.message_type is MessageType.TEXT


@pytest.mark.parametrize("action, expected", [
	("accept", FriendRequestStatus.ACCEPTED),
	("accepted", FriendRequestStatus.ACCEPTED),
	("REJECT", FriendRequestStatus.REJECTED),
])
def test_respond_actions_are_normalised(action, expected):
	payload = parse_inbound("respondToFriendRequest", {"requestId": "r1", "action": action})
	assert payload.action is expected


@pytest.mark.parametrize("event, data, reason", [
	("dance", {}, "unknown_event"),
	("sendMessage", "hi", "malformed_payload"),
	("sendMessage", {"content": "no chat"}, "malformed_payload"),
	("joinChat", None, "malformed_payload"),
	("joinChat", {"chatId": ""}, "malformed_payload"),
	("respondToFriendRequest", {"requestId": "r1", "action": "maybe"}, "malformed_payload"),
])
def test_malformed_events_are_rejected(event, data, reason):
	with pytest.raises(InvalidEvent) as exc_info:
		parse_inbound(event, data)
	assert exc_info.value.reason == reason
