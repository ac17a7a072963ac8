"""Domain-level exceptions for chat delivery."""

from __future__ import annotations


class ChatError(Exception):
	"""Base class for chat errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class EmptyMessage(ChatError):
	reason = "empty_message"


class NotAMember(ChatError):
	reason = "not_a_member"


class InvalidParticipant(ChatError):
	reason = "invalid_participant"
