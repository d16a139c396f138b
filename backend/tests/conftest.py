import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from anonchat.domain.matching.service import ChatCore
from anonchat.settings import settings


class RecordingNotifier:
	"""Collects every notification the core emits."""

	def __init__(self) -> None:
		self.events: List[Tuple[str, str, Dict[str, Any]]] = []

	async def notify(self, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
		self.events.append((participant_id, event, payload))

	def named(self, participant_id: str, event: str) -> List[Dict[str, Any]]:
		return [payload for pid, name, payload in self.events if pid == participant_id and name == event]

	def for_participant(self, participant_id: str) -> List[str]:
		return [name for pid, name, _ in self.events if pid == participant_id]

	def clear(self) -> None:
		self.events.clear()


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from anonchat.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture
def notifier() -> RecordingNotifier:
	return RecordingNotifier()


@pytest.fixture
def core_settings():
	return settings.model_copy(
		update={
			"environment": "test",
			"match_fallback_seconds": 0.05,
			"persona_reply_min_seconds": 0.01,
			"persona_reply_max_seconds": 0.03,
			"room_max_members": 3,
		}
	)


@pytest_asyncio.fixture
async def core(notifier, core_settings):
	chat = ChatCore(notifier=notifier, config=core_settings)
	try:
		yield chat
	finally:
		await chat.shutdown()


@pytest_asyncio.fixture
async def api_client():
	from httpx import ASGITransport, AsyncClient

	from anonchat.main import app

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
