"""Simple Redis-backed rate limiting utilities."""

from __future__ import annotations

import logging
import math
import time
from typing import Optional

from redis.exceptions import RedisError

from dmchat.infra.redis import redis_client

logger = logging.getLogger(__name__)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget.

	Fixed-window counter keyed by ``kind``/``actor_id``. When Redis is
	unreachable the call is allowed and a warning is logged; limiting is
	abuse control, not a delivery precondition.
	"""
	if limit <= 0:
		return False
	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.incr(key)
			pipe.expire(key, window)
			count, _ = await pipe.execute()
	except (RedisError, OSError):
		logger.warning("rate_limit_unavailable kind=%s actor=%s", kind, actor_id, exc_info=True)
		return True
	return int(count) <= limit


class RateLimitExceeded(Exception):
	"""Raised when the rate limit has been hit."""

	def __init__(self, reason: str = "rate_limited") -> None:
		super().__init__(reason)
		self.reason = reason
