"""Pydantic schemas for chat payloads, shared by the socket events and HTTP routes."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, model_validator

from dmchat.domain.chat.models import Chat, ChatMessage, MessageType
from dmchat.domain.common.wire import WireModel
from dmchat.domain.social.models import UserRecord
from dmchat.domain.social.schemas import PublicProfile

MAX_CONTENT_LENGTH = 4000


class SenderProfile(WireModel):
	id: str
	username: Optional[str] = None
	profile_pic: Optional[str] = None

	@classmethod
	def resolve(cls, sender_id: str, user: Optional[UserRecord]) -> "SenderProfile":
		if user is None:
			return cls(id=sender_id)
		return cls(id=user.id, username=user.username, profile_pic=user.profile_pic)


class SendMessageRequest(WireModel):
	"""``sendMessage`` payload. Blank content is rejected by the relay, not here."""

	chat_id: str = Field(..., min_length=1)
	content: str = Field(..., max_length=MAX_CONTENT_LENGTH)
	message_type: MessageType = MessageType.TEXT
	file_url: Optional[str] = None

	@model_validator(mode="after")
	def _file_url_for_attachments(self) -> "SendMessageRequest":
		if self.message_type.requires_file and not self.file_url:
			raise ValueError("fileUrl is required for image and file messages")
		return self


class ChatRef(WireModel):
	chat_id: str = Field(..., min_length=1)


class MessagePayload(WireModel):
	"""Fully populated message as broadcast in ``newMessage``."""

	id: str
	chat_id: str
	sender: SenderProfile
	content: str
	message_type: MessageType
	file_url: Optional[str] = None
	read_by: List[str]
	created_at: datetime

	@classmethod
	def from_model(cls, message: ChatMessage, sender: Optional[UserRecord]) -> "MessagePayload":
		return cls(
			id=message.id,
			chat_id=message.chat_id,
			sender=SenderProfile.resolve(message.sender_id, sender),
			content=message.content,
			message_type=message.message_type,
			file_url=message.file_url,
			read_by=list(message.read_by),
			created_at=message.created_at,
		)


class TypingEvent(WireModel):
	chat_id: str
	user_id: str


class CreateChatRequest(WireModel):
	user_id: str = Field(..., min_length=1)


class ChatSummary(WireModel):
	id: str
	participants: List[PublicProfile]
	is_group: bool
	last_message: Optional[MessagePayload] = None
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_model(
		cls,
		chat: Chat,
		users: Dict[str, UserRecord],
		last_message: Optional[ChatMessage] = None,
	) -> "ChatSummary":
		return cls(
			id=chat.id,
			participants=[PublicProfile.from_user(users[p]) for p in chat.participants if p in users],
			is_group=chat.is_group,
			last_message=MessagePayload.from_model(last_message, users.get(last_message.sender_id)) if last_message else None,
			created_at=chat.created_at,
			updated_at=chat.updated_at,
		)


class Pagination(WireModel):
	current: int
	limit: int
	total: int
	pages: int


class MessagePage(WireModel):
	messages: List[MessagePayload]
	pagination: Pagination
