"""REST endpoints for the friend list and friend requests."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from dmchat.api.deps import get_realtime
from dmchat.domain.realtime.context import RealtimeContext
from dmchat.domain.social.exceptions import (
	FriendRequestConflict,
	FriendRequestForbidden,
	FriendRequestGone,
	FriendRequestNotFound,
	FriendRequestRateLimitExceeded,
	SocialError,
)
from dmchat.domain.social.schemas import (
	FriendProfile,
	FriendRequestSummary,
	RespondResult,
	RespondToFriendRequest,
	SendFriendRequest,
)
from dmchat.infra.auth import AuthenticatedUser, get_current_user
from dmchat.infra.store import StoreError

router = APIRouter(prefix="/api/friends", tags=["friends"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, FriendRequestRateLimitExceeded):
		return HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, detail=exc.reason)
	if isinstance(exc, FriendRequestConflict):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	if isinstance(exc, FriendRequestForbidden):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, FriendRequestGone):
		return HTTPException(status.HTTP_410_GONE, detail=exc.reason)
	if isinstance(exc, FriendRequestNotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, StoreError):
		return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="store_unavailable")
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=getattr(exc, "reason", str(exc)))


@router.get("", response_model=List[FriendProfile])
async def list_friends(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> List[FriendProfile]:
	try:
		return await realtime.friends.list_friends(auth_user.id)
	except (SocialError, StoreError) as exc:
		raise _map_error(exc) from None


@router.get("/requests", response_model=List[FriendRequestSummary])
async def pending_requests(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> List[FriendRequestSummary]:
	try:
		return await realtime.friends.list_pending(auth_user.id)
	except StoreError as exc:
		raise _map_error(exc) from None


@router.get("/suggestions", response_model=List[FriendProfile])
async def suggestions(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> List[FriendProfile]:
	try:
		return await realtime.friends.list_suggestions(auth_user.id)
	except (SocialError, StoreError) as exc:
		raise _map_error(exc) from None


@router.post("/request", response_model=FriendRequestSummary, status_code=status.HTTP_201_CREATED)
async def send_request(
	payload: SendFriendRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> FriendRequestSummary:
	try:
		return await realtime.friends.send_request(auth_user.id, payload.receiver_id)
	except (SocialError, FriendRequestRateLimitExceeded, StoreError) as exc:
		raise _map_error(exc) from None


@router.post("/request/{request_id}/{action}", response_model=RespondResult)
async def respond_to_request(
	request_id: str,
	action: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> RespondResult:
	try:
		decision = RespondToFriendRequest(request_id=request_id, action=action)
	except ValidationError:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_action") from None
	try:
		return await realtime.friends.respond(auth_user.id, decision.request_id, decision.action)
	except (SocialError, StoreError) as exc:
		raise _map_error(exc) from None
