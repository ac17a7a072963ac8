"""Typed parsing of client-to-server socket events.

Each wire event name maps to one pydantic model. Payloads are validated here so
handlers only ever see well-formed data; anything else is rejected with an
``InvalidEvent`` carrying a short reason for logs and metrics.
"""

from __future__ import annotations

from typing import Any, Dict, Type

from pydantic import ValidationError

from dmchat.domain.chat.schemas import ChatRef, SendMessageRequest
from dmchat.domain.common.wire import WireModel
from dmchat.domain.social.schemas import RespondToFriendRequest, SendFriendRequest


class JoinChat(ChatRef):
	pass


class LeaveChat(ChatRef):
	pass


class StartTyping(ChatRef):
	pass


class StopTyping(ChatRef):
	pass


INBOUND: Dict[str, Type[WireModel]] = {
	"joinChat": JoinChat,
	"leaveChat": LeaveChat,
	"sendMessage": SendMessageRequest,
	"typing": StartTyping,
	"stopTyping": StopTyping,
	"sendFriendRequest": SendFriendRequest,
	"respondToFriendRequest": RespondToFriendRequest,
}

# Events whose payload may arrive as a bare id instead of an object.
_BARE_FIELDS: Dict[str, str] = {
	"joinChat": "chatId",
	"leaveChat": "chatId",
	"typing": "chatId",
	"stopTyping": "chatId",
	"sendFriendRequest": "receiverId",
}


class InvalidEvent(Exception):
	def __init__(self, event: str, reason: str) -> None:
		super().__init__(f"{event}: {reason}")
		self.event = event
		self.reason = reason


def parse_inbound(event: str, data: Any) -> WireModel:
	model = INBOUND.get(event)
	if model is None:
		raise InvalidEvent(event, "unknown_event")
	if isinstance(data, (str, int)) and not isinstance(data, bool) and event in _BARE_FIELDS:
		data = {_BARE_FIELDS[event]: str(data)}
	if not isinstance(data, dict):
		raise InvalidEvent(event, "malformed_payload")
	try:
		return model.model_validate(data)
	except ValidationError:
		raise InvalidEvent(event, "malformed_payload") from None
