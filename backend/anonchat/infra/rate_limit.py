"""Fixed-window rate limiting for socket events, counted in Redis."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from redis.exceptions import RedisError

from anonchat.infra.redis import redis_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
	limit: int
	window_seconds: int = 60


async def allow(scope: str, actor_id: str, rule: RateLimit, *, now: Optional[float] = None) -> bool:
	"""Count one hit for ``actor_id`` and report whether it fits the rule.

	Fails open when Redis is unreachable so matching keeps working.
	"""
	if rule.limit <= 0:
		return False
	window = max(1, int(rule.window_seconds))
	slot = int((now if now is not None else time.time()) // window)
	key = f"rl:{scope}:{actor_id}:{window}:{slot}"
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.incr(key)
			pipe.expire(key, window)
			count, _ = await pipe.execute()
	except (RedisError, OSError) as exc:
		logger.warning("rate limit check skipped scope=%s error=%s", scope, exc)
		return True
	return int(count) <= rule.limit
