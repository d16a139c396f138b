"""Partner selection with symmetric filters and a bounded-wait persona fallback."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Dict, Iterable, Optional

from anonchat.domain.matching.errors import AlreadyPaired, UnknownParticipant
from anonchat.domain.matching.models import (
    Attribute,
    Participant,
    ParticipantState,
    Session,
    WaitEntry,
    utcnow,
)
from anonchat.domain.matching.notifier import Notifier
from anonchat.domain.matching.pairing import SessionTable
from anonchat.domain.matching.presence import PresenceRegistry
from anonchat.domain.matching.store import MatchStore
from anonchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def parse_filter(raw: object) -> Optional[Attribute]:
    """Normalise a requested filter; malformed or undisclosed values mean no filter."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, Attribute):
        value = raw
    else:
        try:
            value = Attribute(str(raw).strip().lower())
        except ValueError:
            logger.debug("ignoring invalid filter value=%r", raw)
            return None
    if value is Attribute.UNDISCLOSED:
        return None
    return value


def accepts(requested: Optional[Attribute], attribute: Attribute) -> bool:
    if requested is None:
        return True
    if attribute is Attribute.UNDISCLOSED:
        return True
    return attribute is requested


def compatible(
    requester: Participant,
    requester_filter: Optional[Attribute],
    candidate: Participant,
    candidate_filter: Optional[Attribute],
) -> bool:
    """Both sides' filters must accept the other's declared attribute."""
    return accepts(requester_filter, candidate.attribute) and accepts(candidate_filter, requester.attribute)


class Matchmaker:
    def __init__(
        self,
        store: MatchStore,
        registry: PresenceRegistry,
        sessions: SessionTable,
        notifier: Notifier,
        *,
        fallback_seconds: float,
        persona_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._sessions = sessions
        self._notifier = notifier
        self._fallback_seconds = max(0.0, float(fallback_seconds))
        self._persona_id = persona_id
        self._timers: Dict[str, asyncio.Task] = {}

    def _effective_filter(self, participant: Participant, raw: object) -> Optional[Attribute]:
        requested = parse_filter(raw)
        if requested is not None and not participant.filter_enabled:
            logger.debug("filter feature disabled, ignoring filter participant=%s", participant.id)
            return None
        return requested

    async def find_partner(
        self,
        requester_id: str,
        requested_filter: object = None,
        *,
        exclude: Iterable[str] = (),
    ) -> Optional[Participant]:
        """Pair the requester with a compatible waiting participant.

        Returns the partner when a session exists after the call, otherwise
        None with the requester left searching and the fallback timer armed.
        """
        requester = self._registry.get(requester_id)
        if requester is None or requester.is_persona:
            raise UnknownParticipant(f"unknown participant {requester_id}", participant_id=requester_id)

        existing = self._sessions.find_by_participant(requester_id)
        if existing is not None:
            partner = self._registry.get(existing.other(requester_id))
            if partner is not None:
                await self._notifier.notify(requester_id, "partner_found", partner.to_public())
            return partner

        entry = WaitEntry(
            participant_id=requester_id,
            requested_filter=self._effective_filter(requester, requested_filter),
            excluded=tuple(exclude),
        )
        previous = self._store.waiting.get(requester_id)
        if previous is not None:
            entry.enqueued_at = previous.enqueued_at
        self._store.waiting[requester_id] = entry
        self._registry.set_state(requester_id, ParticipantState.SEARCHING)

        # No suspension between the scan and the session creation.
        candidate = self._scan(requester, entry)
        if candidate is not None:
            session = self._pair(requester.id, candidate.id, kind="human")
            await self._announce(session)
            return candidate

        self._store.publish_gauges()
        await self._notifier.notify(requester_id, "searching", {})
        self._arm_fallback(requester_id)
        return None

    def _scan(self, requester: Participant, entry: WaitEntry) -> Optional[Participant]:
        for candidate_id, candidate_entry in self._store.waiting.items():
            if candidate_id == requester.id or candidate_id in entry.excluded:
                continue
            if requester.id in candidate_entry.excluded:
                continue
            candidate = self._registry.get(candidate_id)
            if candidate is None or candidate.is_persona:
                continue
            if self._sessions.find_by_participant(candidate_id) is not None:
                continue
            if compatible(requester, entry.requested_filter, candidate, candidate_entry.requested_filter):
                return candidate
        return None

    def _pair(self, a_id: str, b_id: str, *, kind: str) -> Session:
        now = utcnow()
        waits = [self._store.waiting.get(pid) for pid in (a_id, b_id)]
        session = self._sessions.create(a_id, b_id)
        for pid in (a_id, b_id):
            self._store.waiting.pop(pid, None)
            self._registry.set_state(pid, ParticipantState.PAIRED)
            self._cancel_timer(pid)
        for wait in waits:
            if wait is not None:
                obs_metrics.inc_match(kind, (now - wait.enqueued_at).total_seconds())
        self._store.publish_gauges()
        logger.info("participants paired kind=%s a=%s b=%s session=%s", kind, a_id, b_id, session.id)
        return session

    async def _announce(self, session: Session) -> None:
        a = self._registry.get(session.participant_a)
        b = self._registry.get(session.participant_b)
        if a is None or b is None:
            return
        for participant, partner in ((a, b), (b, a)):
            if not participant.is_persona:
                await self._notifier.notify(participant.id, "partner_found", partner.to_public())

    async def stop_searching(self, participant_id: str) -> bool:
        """Drop the participant's wait entry; safe to call repeatedly."""
        self._cancel_timer(participant_id)
        removed = self._store.waiting.pop(participant_id, None) is not None
        participant = self._registry.get(participant_id)
        if participant is not None and participant.state is ParticipantState.SEARCHING:
            self._registry.set_state(participant_id, ParticipantState.IDLE)
        if removed:
            logger.info("search cancelled participant=%s", participant_id)
            self._store.publish_gauges()
        return removed

    def is_searching(self, participant_id: str) -> bool:
        return participant_id in self._store.waiting

    def has_pending_fallback(self, participant_id: str) -> bool:
        task = self._timers.get(participant_id)
        return task is not None and not task.done()

    def _arm_fallback(self, participant_id: str) -> None:
        if self._persona_id is None or self._registry.get(self._persona_id) is None:
            return
        if self.has_pending_fallback(participant_id):
            return
        task = asyncio.create_task(
            self._fallback_after(participant_id, self._fallback_seconds),
            name=f"match-fallback:{participant_id}",
        )
        self._timers[participant_id] = task

    def _cancel_timer(self, participant_id: str) -> None:
        task = self._timers.pop(participant_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _fallback_after(self, participant_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            if self._timers.get(participant_id) is not asyncio.current_task():
                return
            self._timers.pop(participant_id, None)
            entry = self._store.waiting.get(participant_id)
            requester = self._registry.get(participant_id)
            persona = self._registry.get(self._persona_id)
            if entry is None or requester is None or persona is None:
                return
            if self._sessions.find_by_participant(participant_id) is not None:
                return
            if not compatible(requester, entry.requested_filter, persona, None):
                logger.debug("persona incompatible with filter participant=%s", participant_id)
                return
            try:
                session = self._pair(participant_id, persona.id, kind="persona")
            except AlreadyPaired:
                logger.debug("fallback raced with a match participant=%s", participant_id)
                return
            logger.info("persona fallback participant=%s session=%s", participant_id, session.id)
            await self._announce(session)
        except asyncio.CancelledError:
            raise
        except Exception:  # pragma: no cover - defensive logging
            logger.exception("persona fallback failed participant=%s", participant_id)

    async def shutdown(self) -> None:
        """Cancel every pending fallback timer."""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
