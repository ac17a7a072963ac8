"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, status

from dmchat.domain.realtime.context import RealtimeContext, get_context


def get_realtime() -> RealtimeContext:
	context = get_context()
	if context is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="realtime_unavailable")
	return context
