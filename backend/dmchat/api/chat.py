"""REST endpoints for chat bootstrap and history."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from dmchat.api.deps import get_realtime
from dmchat.domain.chat.exceptions import ChatError, EmptyMessage, InvalidParticipant, NotAMember
from dmchat.domain.chat.schemas import (
	ChatSummary,
	CreateChatRequest,
	MessagePage,
	MessagePayload,
	SendMessageRequest,
)
from dmchat.domain.chat.service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from dmchat.domain.realtime.context import RealtimeContext
from dmchat.infra.auth import AuthenticatedUser, get_current_user
from dmchat.infra.store import StoreError

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, NotAMember):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail="chat_not_found")
	if isinstance(exc, InvalidParticipant) and exc.reason == "unknown_user":
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, (EmptyMessage, ChatError)):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	if isinstance(exc, StoreError):
		return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="store_unavailable")
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/chats", response_model=List[ChatSummary])
async def list_chats(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> List[ChatSummary]:
	try:
		return await realtime.chats.list_chats(auth_user.id)
	except StoreError as exc:
		raise _map_error(exc) from None


@router.post("/chat", response_model=ChatSummary)
async def open_chat(
	payload: CreateChatRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> ChatSummary:
	try:
		summary, created = await realtime.chats.open_chat(auth_user.id, payload.user_id)
	except (ChatError, StoreError) as exc:
		raise _map_error(exc) from None
	response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
	return summary


@router.get("/chat/{chat_id}/messages", response_model=MessagePage)
async def chat_messages(
	chat_id: str,
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> MessagePage:
	try:
		return await realtime.chats.get_messages(auth_user.id, chat_id, page=page, limit=limit)
	except (ChatError, StoreError) as exc:
		raise _map_error(exc) from None


@router.post("/message", response_model=MessagePayload, status_code=status.HTTP_201_CREATED)
async def send_message(
	payload: SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> MessagePayload:
	try:
		return await realtime.messages.send_message(auth_user.id, payload)
	except (ChatError, StoreError) as exc:
		raise _map_error(exc) from None
