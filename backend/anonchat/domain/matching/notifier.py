"""Outbound notification seam between the matching core and its transport."""

from __future__ import annotations

from typing import Any, Dict, Protocol


class Notifier(Protocol):
    async def notify(self, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Deliver ``event`` to the participant's live connection, if any."""


class NullNotifier:
    """Drops every notification; used when no transport is attached."""

    async def notify(self, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
        return None
