"""Connection registry diagnostics."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from dmchat.api.deps import get_realtime
from dmchat.domain.common.wire import WireModel
from dmchat.domain.realtime.context import RealtimeContext
from dmchat.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/api/presence", tags=["presence"])


class OnlineSnapshot(WireModel):
	count: int
	user_ids: List[str]


@router.get("/online", response_model=OnlineSnapshot)
async def online_users(
	_: AuthenticatedUser = Depends(get_current_user),
	realtime: RealtimeContext = Depends(get_realtime),
) -> OnlineSnapshot:
	online = sorted(realtime.registry.all_online())
	return OnlineSnapshot(count=len(online), user_ids=online)
