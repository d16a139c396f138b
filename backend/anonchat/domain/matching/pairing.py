"""Session pairing table: the single choke point where 1:1 sessions are born."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import ulid

from anonchat.domain.matching.errors import AlreadyPaired, InvariantViolation
from anonchat.domain.matching.models import Session
from anonchat.domain.matching.store import MatchStore
from anonchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class SessionTable:
    """Active sessions keyed by id, with a participant index.

    Human participants own at most one session. The persona is exempt: it can
    sit in any number of sessions at once and is never indexed.
    """

    def __init__(self, store: MatchStore, *, strict: bool = False) -> None:
        self._store = store
        self._strict = strict

    def _is_persona(self, participant_id: str) -> bool:
        participant = self._store.participants.get(participant_id)
        return bool(participant and participant.is_persona)

    def create(self, a_id: str, b_id: str) -> Session:
        if a_id == b_id:
            raise InvariantViolation("cannot pair a participant with itself", participant_id=a_id)
        for participant_id in (a_id, b_id):
            if self._is_persona(participant_id):
                continue
            existing = self.find_by_participant(participant_id)
            if existing is not None:
                raise AlreadyPaired(existing, participant_id=participant_id)
        session = Session(id=str(ulid.new()), participant_a=a_id, participant_b=b_id)
        self._store.sessions[session.id] = session
        for participant_id in session.members():
            if not self._is_persona(participant_id):
                self._store.session_by_participant[participant_id] = session.id
        self._store.publish_gauges()
        logger.info("session created id=%s a=%s b=%s", session.id, a_id, b_id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._store.sessions.get(session_id)

    def find_by_participant(self, participant_id: str) -> Optional[Session]:
        session_id = self._store.session_by_participant.get(participant_id)
        if session_id is None:
            return None
        session = self._store.sessions.get(session_id)
        if session is None:
            # index outlived its session
            self._store.session_by_participant.pop(participant_id, None)
        return session

    def find(self, a_id: str, b_id: str) -> Optional[Session]:
        owner, other = (b_id, a_id) if self._is_persona(a_id) else (a_id, b_id)
        if self._is_persona(owner):
            return None
        session = self.find_by_participant(owner)
        if session is not None and session.other(owner) == other:
            return session
        return None

    def end(self, session_id: str) -> Optional[Session]:
        """End a session; unknown or already-ended ids are a no-op returning None."""
        session = self._store.sessions.pop(session_id, None)
        if session is None:
            return None
        for participant_id in session.members():
            if self._store.session_by_participant.get(participant_id) == session_id:
                self._store.session_by_participant.pop(participant_id, None)
        self._store.publish_gauges()
        logger.info("session ended id=%s", session_id)
        return session

    def end_for_participant(self, participant_id: str) -> Optional[str]:
        """End the participant's session and return the counterpart id."""
        session = self.find_by_participant(participant_id)
        if session is None:
            return None
        self.end(session.id)
        return session.other(participant_id)

    def active_count(self) -> int:
        return len(self._store.sessions)

    def audit(self) -> List[Tuple[Session, str]]:
        """Detect humans present in more than one session and repair.

        Keeps each participant's newest session and force-ends the older ones.
        Returns the ended sessions along with the participant that was doubled.
        In strict mode the violation raises instead.
        """
        seen: Dict[str, List[Session]] = {}
        for session in self._store.sessions.values():
            for participant_id in session.members():
                if self._is_persona(participant_id):
                    continue
                seen.setdefault(participant_id, []).append(session)
        repaired: List[Tuple[Session, str]] = []
        for participant_id, sessions in seen.items():
            if len(sessions) < 2:
                continue
            logger.error(
                "participant in multiple sessions id=%s sessions=%s",
                participant_id,
                [s.id for s in sessions],
            )
            if self._strict:
                raise InvariantViolation(
                    f"participant {participant_id} in {len(sessions)} sessions",
                    participant_id=participant_id,
                )
            ordered = sorted(sessions, key=lambda s: s.created_at)
            newest = ordered[-1]
            for stale in ordered[:-1]:
                if self.end(stale.id) is not None:
                    obs_metrics.SESSION_INVARIANT_REPAIRS.inc()
                    repaired.append((stale, participant_id))
            for member in newest.members():
                if not self._is_persona(member):
                    self._store.session_by_participant[member] = newest.id
        return repaired
