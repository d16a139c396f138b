"""Shared Redis client.

The rate limiter holds ``redis_client``, a proxy whose target can be replaced
(fakeredis in tests) without re-importing. The real client is built lazily so
importing the app never opens a connection.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from anonchat.settings import settings

logger = logging.getLogger(__name__)


class RedisProxy:
	def __init__(self, url: str) -> None:
		self._url = url
		self._client: Optional[redis.Redis] = None

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(self._url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client = RedisProxy(settings.redis_url)


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)


async def ping() -> bool:
	try:
		return bool(await redis_client.client.ping())
	except (RedisError, OSError) as exc:
		logger.warning("redis ping failed: %s", exc)
		return False
