"""Owned in-memory state shared by the matching components."""

from __future__ import annotations

from typing import Dict

from anonchat.domain.matching.models import Participant, Room, Session, WaitEntry
from anonchat.obs import metrics as obs_metrics


class MatchStore:
    """Presence, wait list, session and room maps for one server process.

    Only the registry, matchmaker, session table, room table and lifecycle
    manager write to these maps. Iteration order of ``waiting`` is insertion
    order, which is the matchmaker's tie-break.
    """

    def __init__(self) -> None:
        self.participants: Dict[str, Participant] = {}
        self.waiting: Dict[str, WaitEntry] = {}
        self.sessions: Dict[str, Session] = {}
        self.session_by_participant: Dict[str, str] = {}
        self.rooms: Dict[str, Room] = {}

    def stats(self) -> Dict[str, int]:
        online = sum(1 for p in self.participants.values() if not p.is_persona)
        return {
            "online": online,
            "waiting": len(self.waiting),
            "active_sessions": len(self.sessions),
            "rooms": len(self.rooms),
        }

    def publish_gauges(self) -> None:
        """Push current counts to the Prometheus gauges; called after every mutation."""
        stats = self.stats()
        obs_metrics.set_core_gauges(
            online=stats["online"],
            waiting=stats["waiting"],
            sessions=stats["active_sessions"],
        )

    def clear(self) -> None:
        self.participants.clear()
        self.waiting.clear()
        self.sessions.clear()
        self.session_by_participant.clear()
        self.rooms.clear()
        self.publish_gauges()
