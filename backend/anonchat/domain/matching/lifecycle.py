"""Connection lifecycle: join, session teardown, rooms and disconnect cleanup."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta
from typing import Optional

from anonchat.domain.matching.errors import ParticipantIdTaken, RoomFull, UnknownParticipant
from anonchat.domain.matching.matchmaker import Matchmaker
from anonchat.domain.matching.models import (
    Participant,
    ParticipantState,
    Room,
    parse_attribute,
    utcnow,
)
from anonchat.domain.matching.notifier import Notifier
from anonchat.domain.matching.pairing import SessionTable
from anonchat.domain.matching.presence import PresenceRegistry
from anonchat.domain.matching.rooms import RoomTable
from anonchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class LifecycleManager:
    """State machine per participant.

    idle -> searching -> paired | in_room -> idle, and removed on disconnect.
    A survivor of an ended session goes back to idle and is not re-queued.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        matchmaker: Matchmaker,
        sessions: SessionTable,
        rooms: RoomTable,
        notifier: Notifier,
    ) -> None:
        self._registry = registry
        self._matchmaker = matchmaker
        self._sessions = sessions
        self._rooms = rooms
        self._notifier = notifier
        registry.set_release_hook(self.release)

    def _require(self, participant_id: str) -> Participant:
        participant = self._registry.get(participant_id)
        if participant is None:
            raise UnknownParticipant(f"unknown participant {participant_id}", participant_id=participant_id)
        return participant

    async def join(
        self,
        display_name: str,
        attribute: object = None,
        *,
        participant_id: Optional[str] = None,
        sid: Optional[str] = None,
        filter_enabled: bool = True,
        resume_token: Optional[str] = None,
    ) -> Participant:
        """Register a participant, or re-join a known id when the resume token matches."""
        existing = self._registry.get(participant_id)
        if existing is not None:
            if existing.is_persona:
                raise UnknownParticipant("participant id is reserved", participant_id=participant_id)
            if not resume_token or not hmac.compare_digest(resume_token.encode(), existing.resume_token.encode()):
                logger.warning("re-join refused, resume token mismatch participant=%s", participant_id)
                raise ParticipantIdTaken(f"participant {participant_id} is owned by another connection", participant_id=participant_id)
        participant = Participant(
            id=participant_id or "",
            display_name=display_name,
            attribute=parse_attribute(attribute),
            filter_enabled=filter_enabled,
            sid=sid,
        )
        return self._registry.add(participant)

    async def end_session(self, participant_id: str, *, reason: str = "left") -> Optional[str]:
        """End the participant's session, notify the survivor and return its id."""
        counterpart_id = self._sessions.end_for_participant(participant_id)
        if counterpart_id is None:
            return None
        participant = self._registry.get(participant_id)
        if participant is not None and participant.state is ParticipantState.PAIRED:
            self._registry.set_state(participant_id, ParticipantState.IDLE)
        survivor = self._registry.get(counterpart_id)
        if survivor is not None and not survivor.is_persona:
            self._registry.set_state(survivor.id, ParticipantState.IDLE)
            await self._notifier.notify(survivor.id, "partner_left", {})
        obs_metrics.inc_session_ended(reason)
        logger.info("session closed participant=%s partner=%s reason=%s", participant_id, counterpart_id, reason)
        return counterpart_id

    async def next_partner(self, participant_id: str, requested_filter: object = None) -> Optional[Participant]:
        """End the current session and immediately search again, skipping the old partner."""
        self._require(participant_id)
        previous = await self.end_session(participant_id, reason="next")
        exclude = (previous,) if previous else ()
        return await self._matchmaker.find_partner(participant_id, requested_filter, exclude=exclude)

    async def join_room(self, participant_id: str, room_id: Optional[str] = None, name: Optional[str] = None) -> Room:
        participant = self._require(participant_id)
        target = self._rooms.get(room_id)
        if target is not None and participant.id in target.members:
            return target
        if target is not None and target.is_full():
            raise RoomFull(f"room {room_id} is full", participant_id=participant_id)
        if participant.room_id and participant.room_id != room_id:
            await self.leave_room(participant_id)
        await self._matchmaker.stop_searching(participant_id)
        await self.end_session(participant_id, reason="room")
        room = self._rooms.join(participant, room_id, name)
        members = self._rooms.members(room.id)
        joined = {"roomId": room.id, "id": participant.id, "displayName": participant.display_name}
        for member in members:
            if member.id != participant.id:
                await self._notifier.notify(member.id, "participant_joined", joined)
        await self._notifier.notify(
            participant.id,
            "room_joined",
            {
                "roomId": room.id,
                "name": room.name,
                "participants": [{"id": m.id, "displayName": m.display_name} for m in members],
            },
        )
        return room

    async def leave_room(self, participant_id: str) -> Optional[Room]:
        participant = self._require(participant_id)
        result = self._rooms.leave(participant)
        if result is None:
            return None
        room, deleted = result
        if not deleted:
            left = {"roomId": room.id, "id": participant.id, "displayName": participant.display_name}
            for member in self._rooms.members(room.id):
                await self._notifier.notify(member.id, "participant_left", left)
        logger.info("room leave room=%s participant=%s deleted=%s", room.id, participant_id, deleted)
        return room

    async def release(self, participant: Participant) -> None:
        """Tear down everything the participant holds; used before removal."""
        await self._matchmaker.stop_searching(participant.id)
        await self.end_session(participant.id, reason="disconnect")
        if participant.room_id:
            await self.leave_room(participant.id)

    async def disconnect(self, participant_id: str) -> bool:
        removed = await self._registry.remove(participant_id)
        if removed:
            logger.info("participant disconnected id=%s", participant_id)
        return removed

    def heartbeat(self, participant_id: str) -> None:
        self._require(participant_id)
        self._registry.touch(participant_id)

    async def sweep(self, *, stale_after: timedelta, now: Optional[datetime] = None) -> int:
        """Disconnect silent participants and repair doubled sessions."""
        cutoff = (now or utcnow()) - stale_after
        trimmed = 0
        for participant in self._registry.stale(cutoff):
            if await self.disconnect(participant.id):
                trimmed += 1
        for session, doubled in self._sessions.audit():
            other_id = session.other(doubled)
            other = self._registry.get(other_id)
            if other is None or other.is_persona:
                continue
            if self._sessions.find_by_participant(other.id) is None:
                self._registry.set_state(other.id, ParticipantState.IDLE)
                await self._notifier.notify(other.id, "partner_left", {})
        if trimmed:
            obs_metrics.PRESENCE_SWEEPER_TRIMS.inc(trimmed)
        return trimmed
