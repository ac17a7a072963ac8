"""Friend request workflow: send, answer, and list friends and suggestions."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List

from dmchat.domain.social.exceptions import (
	AlreadyFriends,
	FriendRequestAlreadySent,
	FriendRequestForbidden,
	FriendRequestGone,
	FriendRequestNotFound,
	FriendRequestRateLimitExceeded,
	FriendRequestSelf,
)
from dmchat.domain.social.models import SUGGESTIONS_LIMIT, FriendRequestStatus
from dmchat.domain.social.relay import FriendEventRelay
from dmchat.domain.social.schemas import (
	FriendProfile,
	FriendRequestSummary,
	PublicProfile,
	RespondResult,
)
from dmchat.infra import rate_limit
from dmchat.infra.store import DocumentStore, StoreError, get_store
from dmchat.settings import settings

logger = logging.getLogger(__name__)


class FriendService:
	def __init__(self, relay: FriendEventRelay, stores: Callable[[], DocumentStore] = get_store) -> None:
		self._relay = relay
		self._stores = stores

	async def send_request(self, sender_id: str, receiver_id: str) -> FriendRequestSummary:
		sender_id, receiver_id = str(sender_id), str(receiver_id).strip()
		if sender_id == receiver_id:
			raise FriendRequestSelf()
		if not await rate_limit.allow(
			"friend_request",
			sender_id,
			limit=settings.rate_limit_friend_requests_per_minute,
		):
			raise FriendRequestRateLimitExceeded("rate_limited")

		store = self._stores()
		receiver = await store.get_user(receiver_id)
		if receiver is None:
			raise FriendRequestNotFound("user_not_found")
		sender = await store.get_user(sender_id)
		if sender is None:
			raise StoreError(f"unknown_user:{sender_id}")
		if receiver.is_friends_with(sender_id) or sender.is_friends_with(receiver_id):
			raise AlreadyFriends()
		existing = await store.find_friend_request_between(sender_id, receiver_id, status=FriendRequestStatus.PENDING)
		if existing is not None:
			raise FriendRequestAlreadySent()

		request = await store.create_friend_request(sender_id, receiver_id)
		logger.info("friend_request_sent request_id=%s sender_id=%s receiver_id=%s", request.id, sender_id, receiver_id)
		await self._relay.friend_request(request, PublicProfile.from_user(sender))
		return FriendRequestSummary.from_model(request, sender)

	async def respond(self, user_id: str, request_id: str, action: FriendRequestStatus) -> RespondResult:
		"""Accept or reject a pending request addressed to ``user_id``.

		Accepting links both users as friends and deletes the request record;
		rejecting keeps it with status ``rejected``.
		"""
		store = self._stores()
		request = await store.get_friend_request(request_id)
		if request is None:
			raise FriendRequestNotFound()
		if request.receiver_id != str(user_id):
			raise FriendRequestForbidden()
		if request.status is not FriendRequestStatus.PENDING:
			raise FriendRequestGone()

		if action is FriendRequestStatus.ACCEPTED:
			await store.add_friend(request.sender_id, request.receiver_id)
			await store.add_friend(request.receiver_id, request.sender_id)
			await store.delete_friend_request(request.id)
			sender = await store.get_user(request.sender_id)
			receiver = await store.get_user(request.receiver_id)
			if sender is None or receiver is None:
				raise StoreError(f"friend_request_orphaned:{request.id}")
			sender_profile = PublicProfile.from_user(sender)
			receiver_profile = PublicProfile.from_user(receiver)
			logger.info("friend_request_accepted request_id=%s sender_id=%s receiver_id=%s", request.id, sender.id, receiver.id)
			await self._relay.friend_request_accepted(sender_profile, receiver_profile)
			accepted = replace(request, status=FriendRequestStatus.ACCEPTED)
			return RespondResult(request=FriendRequestSummary.from_model(accepted, sender), friend=sender_profile)

		rejected = await store.set_friend_request_status(request.id, FriendRequestStatus.REJECTED)
		if rejected is None:
			raise FriendRequestGone()
		sender = await store.get_user(rejected.sender_id)
		if sender is None:
			raise StoreError(f"friend_request_orphaned:{request.id}")
		logger.info("friend_request_rejected request_id=%s sender_id=%s", rejected.id, rejected.sender_id)
		await self._relay.friend_request_rejected(rejected.sender_id, rejected.id)
		return RespondResult(request=FriendRequestSummary.from_model(rejected, sender))

	async def list_friends(self, user_id: str) -> List[FriendProfile]:
		store = self._stores()
		user = await store.get_user(user_id)
		if user is None:
			raise FriendRequestNotFound("user_not_found")
		friends = await store.get_users(sorted(user.friends))
		return [FriendProfile.from_user(friend) for friend in friends]

	async def list_pending(self, user_id: str) -> List[FriendRequestSummary]:
		store = self._stores()
		requests = await store.list_friend_requests(receiver_id=user_id, status=FriendRequestStatus.PENDING)
		senders = {user.id: user for user in await store.get_users(r.sender_id for r in requests)}
		return [
			FriendRequestSummary.from_model(request, senders[request.sender_id])
			for request in requests
			if request.sender_id in senders
		]

	async def list_suggestions(self, user_id: str, *, limit: int = SUGGESTIONS_LIMIT) -> List[FriendProfile]:
		"""Users who are neither friends nor on either end of a request with ``user_id``."""
		store = self._stores()
		user = await store.get_user(user_id)
		if user is None:
			raise FriendRequestNotFound("user_not_found")
		requests = await store.list_friend_requests(involving=user.id)
		excluded = {user.id, *user.friends}
		for request in requests:
			excluded.update((request.sender_id, request.receiver_id))
		candidates = await store.list_users_excluding(excluded, limit=limit)
		return [FriendProfile.from_user(candidate) for candidate in candidates]
