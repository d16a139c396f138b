"""Background sweeper removing participants whose connection went silent."""

from __future__ import annotations

import asyncio
import logging

from anonchat.domain.matching.service import ChatCore

logger = logging.getLogger(__name__)


async def run_presence_sweeper(core: ChatCore, interval_s: float = 30.0) -> None:
    """Periodically disconnect stale participants and audit the session table."""
    interval = max(0.01, float(interval_s))
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                trimmed = await core.sweep()
            except Exception:  # pragma: no cover - defensive logging
                logger.exception("presence sweeper iteration failed")
                continue
            if trimmed:
                logger.info("presence sweeper removed %s stale participants", trimmed)
    except asyncio.CancelledError:
        raise
