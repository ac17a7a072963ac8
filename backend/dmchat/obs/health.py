"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from dmchat.infra.redis import redis_client
from dmchat.infra.store import StoreError, get_store

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


async def _store_status(timeout: float = 0.3) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(get_store().ping(), timeout=timeout)
	except (StoreError, asyncio.TimeoutError) as exc:
		LOGGER.warning("Store readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc) or exc.__class__.__name__}
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	"""Store is required; Redis only backs rate limiting, so it is reported but not gating."""
	redis_state = await _redis_status()
	store_state = await _store_status()
	ok = bool(store_state.get("ok"))
	return (
		200 if ok else 503,
		{"status": "ok" if ok else "degraded", "store": store_state, "redis": redis_state},
	)
