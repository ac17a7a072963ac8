"""Pydantic schemas for profiles, friend requests and their socket events."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, field_validator

from dmchat.domain.common.wire import WireModel
from dmchat.domain.social.models import FriendRequest, FriendRequestStatus, UserRecord


class PublicProfile(WireModel):
	id: str
	username: str
	profile_pic: str
	is_online: bool

	@classmethod
	def from_user(cls, user: UserRecord) -> "PublicProfile":
		return cls(id=user.id, username=user.username, profile_pic=user.profile_pic, is_online=user.is_online)


class FriendProfile(PublicProfile):
	last_active: datetime

	@classmethod
	def from_user(cls, user: UserRecord) -> "FriendProfile":
		return cls(
			id=user.id,
			username=user.username,
			profile_pic=user.profile_pic,
			is_online=user.is_online,
			last_active=user.last_active,
		)


class FriendRequestSummary(WireModel):
	id: str
	sender: PublicProfile
	receiver_id: str
	status: Literal["pending", "accepted", "rejected"]
	created_at: datetime

	@classmethod
	def from_model(cls, request: FriendRequest, sender: UserRecord) -> "FriendRequestSummary":
		return cls(
			id=request.id,
			sender=PublicProfile.from_user(sender),
			receiver_id=request.receiver_id,
			status=request.status.value,
			created_at=request.created_at,
		)


class SendFriendRequest(WireModel):
	"""``sendFriendRequest`` payload; clients may send the bare receiver id."""

	receiver_id: str = Field(..., min_length=1)


class RespondToFriendRequest(WireModel):
	request_id: str = Field(..., min_length=1)
	action: FriendRequestStatus

	@field_validator("action", mode="before")
	def _normalise_action(cls, value):  # type: ignore[override]
		aliases = {"accept": "accepted", "reject": "rejected"}
		text = str(value or "").strip().lower()
		text = aliases.get(text, text)
		if text not in ("accepted", "rejected"):
			raise ValueError("action must be accept or reject")
		return text


class FriendRequestEvent(WireModel):
	"""``friendRequest`` delivered to the receiver."""

	id: str
	sender: PublicProfile


class FriendRequestAcceptedEvent(WireModel):
	"""``friendRequestAccepted``; ``user`` is the other party's profile."""

	user: PublicProfile


class FriendRequestRejectedEvent(WireModel):
	request_id: str


class UserStatusEvent(WireModel):
	user_id: str
	status: Literal["online", "offline"]


class RespondResult(WireModel):
	request: FriendRequestSummary
	friend: Optional[PublicProfile] = None
