"""Group room memberships."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import ulid

from anonchat.domain.matching.errors import RoomFull
from anonchat.domain.matching.models import Participant, ParticipantState, Room, utcnow
from anonchat.domain.matching.store import MatchStore

logger = logging.getLogger(__name__)


class RoomTable:
    def __init__(self, store: MatchStore, *, capacity: int) -> None:
        self._store = store
        self._capacity = max(1, int(capacity))

    def get(self, room_id: Optional[str]) -> Optional[Room]:
        if not room_id:
            return None
        return self._store.rooms.get(room_id)

    def members(self, room_id: str) -> List[Participant]:
        room = self._store.rooms.get(room_id)
        if room is None:
            return []
        participants = (self._store.participants.get(pid) for pid in room.members)
        return [p for p in participants if p is not None]

    def join(self, participant: Participant, room_id: Optional[str] = None, name: Optional[str] = None) -> Room:
        """Add the participant to a room, creating it on demand.

        The caller is expected to have left any previous room.
        """
        room_id = room_id or str(ulid.new())
        room = self._store.rooms.get(room_id)
        if room is not None and participant.id in room.members:
            return room
        if room is None:
            room = Room(id=room_id, name=name or f"Room {room_id}", capacity=self._capacity)
        elif room.is_full():
            raise RoomFull(f"room {room_id} is full", participant_id=participant.id)
        self._store.rooms[room.id] = room
        room.members[participant.id] = utcnow()
        participant.room_id = room.id
        participant.state = ParticipantState.IN_ROOM
        logger.info("room join room=%s participant=%s members=%s", room.id, participant.id, len(room.members))
        return room

    def leave(self, participant: Participant) -> Optional[Tuple[Room, bool]]:
        """Remove the participant from its room; returns (room, deleted) or None."""
        room = self.get(participant.room_id)
        participant.room_id = None
        if participant.state is ParticipantState.IN_ROOM:
            participant.state = ParticipantState.IDLE
        if room is None or participant.id not in room.members:
            return None
        room.members.pop(participant.id, None)
        deleted = room.is_empty()
        if deleted:
            self._store.rooms.pop(room.id, None)
            logger.info("room deleted (empty) room=%s", room.id)
        return room, deleted
