"""Domain models for users, friendships and friend requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional


DEFAULT_PROFILE_PIC = "https://cdn.example.com/default-avatar.png"
SUGGESTIONS_LIMIT = 10


class FriendRequestStatus(str, Enum):
	PENDING = "pending"
	ACCEPTED = "accepted"
	REJECTED = "rejected"


class PresenceStatus(str, Enum):
	ONLINE = "online"
	OFFLINE = "offline"


@dataclass(slots=True)
class UserRecord:
	id: str
	username: str
	last_active: datetime
	profile_pic: str = DEFAULT_PROFILE_PIC
	is_online: bool = False
	friends: FrozenSet[str] = field(default_factory=frozenset)

	def is_friends_with(self, user_id: str) -> bool:
		return str(user_id) in self.friends


@dataclass(slots=True)
class FriendRequest:
	id: str
	sender_id: str
	receiver_id: str
	status: FriendRequestStatus
	created_at: datetime
	updated_at: Optional[datetime] = None
