"""Presence registry: every connected participant and its live state."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional

import ulid

from anonchat.domain.matching.models import Participant, ParticipantState, utcnow
from anonchat.domain.matching.store import MatchStore

logger = logging.getLogger(__name__)

ReleaseHook = Callable[[Participant], Awaitable[None]]


class PresenceRegistry:
    def __init__(self, store: MatchStore) -> None:
        self._store = store
        self._release: Optional[ReleaseHook] = None

    def set_release_hook(self, hook: ReleaseHook) -> None:
        """Install the callback that ends a participant's session or room before removal."""
        self._release = hook

    def add(self, participant: Participant) -> Participant:
        """Upsert a participant, generating an id when none is supplied.

        Re-joining with a known id refreshes the profile and connection but keeps
        the live state (search, session, room) and resume token untouched.
        Callers check ownership of an existing id before upserting.
        """
        if not participant.id:
            participant.id = str(ulid.new())
        if not participant.resume_token:
            participant.resume_token = secrets.token_urlsafe(24)
        existing = self._store.participants.get(participant.id)
        if existing is None:
            self._store.participants[participant.id] = participant
            self._store.publish_gauges()
            logger.info("participant joined id=%s persona=%s", participant.id, participant.is_persona)
            return participant
        existing.display_name = participant.display_name
        existing.attribute = participant.attribute
        existing.filter_enabled = participant.filter_enabled
        existing.sid = participant.sid
        existing.last_seen_at = utcnow()
        logger.info("participant rejoined id=%s", existing.id)
        return existing

    def get(self, participant_id: Optional[str]) -> Optional[Participant]:
        if not participant_id:
            return None
        return self._store.participants.get(participant_id)

    def by_sid(self, sid: str) -> Optional[Participant]:
        for participant in self._store.participants.values():
            if participant.sid == sid:
                return participant
        return None

    def list_online(self, predicate: Optional[Callable[[Participant], bool]] = None) -> List[Participant]:
        participants: Iterable[Participant] = self._store.participants.values()
        if predicate is None:
            return list(participants)
        return [p for p in participants if predicate(p)]

    def set_state(self, participant_id: str, state: ParticipantState) -> None:
        participant = self._store.participants.get(participant_id)
        if participant is None or participant.is_persona:
            return
        participant.state = state

    def touch(self, participant_id: str, *, now: Optional[datetime] = None) -> None:
        participant = self._store.participants.get(participant_id)
        if participant is not None:
            participant.last_seen_at = now or utcnow()

    def stale(self, cutoff: datetime) -> List[Participant]:
        return self.list_online(lambda p: not p.is_persona and p.last_seen_at < cutoff)

    async def remove(self, participant_id: str) -> bool:
        """Remove a participant, ending its search, session or room first.

        The persona is never removed. Returns False for unknown ids.
        """
        participant = self._store.participants.get(participant_id)
        if participant is None:
            return False
        if participant.is_persona:
            logger.debug("refusing to remove persona id=%s", participant_id)
            return False
        if self._release is not None:
            await self._release(participant)
        self._store.waiting.pop(participant_id, None)
        self._store.participants.pop(participant_id, None)
        self._store.publish_gauges()
        logger.info("participant removed id=%s", participant_id)
        return True
