"""Liveness and readiness probes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from anonchat.domain.matching.service import ChatCore
from anonchat.infra import redis as redis_infra
from anonchat.settings import settings

LOGGER = logging.getLogger(__name__)


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(core: Optional[ChatCore]) -> Tuple[int, Dict[str, Any]]:
	"""Ready once the core exists and, when enabled, the persona is registered.

	Redis only backs rate limiting, which fails open, so an outage is reported
	without failing the probe.
	"""
	if core is None:
		LOGGER.warning("readiness requested before the chat core started")
		return 503, {"status": "starting", "service": settings.service_name}
	persona_ok = True
	if core.config.persona_enabled:
		persona = core.registry.get(core.config.persona_id)
		persona_ok = persona is not None and persona.is_persona
	redis_ok = await redis_infra.ping()
	payload = {
		"status": "ok" if persona_ok else "degraded",
		"service": settings.service_name,
		"env": settings.environment,
		"persona": persona_ok,
		"redis": redis_ok,
		"core": core.stats(),
	}
	return (200 if persona_ok else 503), payload
