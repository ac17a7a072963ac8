"""Domain models for direct chats and their messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class MessageType(str, Enum):
	TEXT = "text"
	IMAGE = "image"
	FILE = "file"

	@property
	def requires_file(self) -> bool:
		return self in (MessageType.IMAGE, MessageType.FILE)


@dataclass(slots=True)
class Chat:
	"""A conversation. Direct chats carry exactly two participants."""

	id: str
	participants: Tuple[str, ...]
	created_at: datetime
	updated_at: datetime
	is_group: bool = False
	last_message_id: Optional[str] = None

	def has_participant(self, user_id: str) -> bool:
		return str(user_id) in self.participants

	def others(self, user_id: str) -> Tuple[str, ...]:
		return tuple(p for p in self.participants if p != str(user_id))


@dataclass(slots=True)
class ChatMessage:
	id: str
	chat_id: str
	sender_id: str
	content: str
	message_type: MessageType
	created_at: datetime
	read_by: Tuple[str, ...] = field(default_factory=tuple)
	file_url: Optional[str] = None
