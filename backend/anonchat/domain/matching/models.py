"""Domain models for anonymous partner matching."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Attribute(str, Enum):
    """Declared, filterable participant attribute (gender)."""

    MALE = "male"
    FEMALE = "female"
    UNDISCLOSED = "undisclosed"


class ParticipantState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    PAIRED = "paired"
    IN_ROOM = "in_room"


class MessageKind(str, Enum):
    DIRECT = "direct"
    ROOM = "room"


@dataclass(slots=True)
class Participant:
    """One online entity, either a connected human or the scripted persona."""

    id: str
    display_name: str
    attribute: Attribute = Attribute.UNDISCLOSED
    state: ParticipantState = ParticipantState.IDLE
    is_persona: bool = False
    filter_enabled: bool = True
    sid: Optional[str] = None
    # handed only to the owning connection; required to re-join under this id
    resume_token: str = ""
    room_id: Optional[str] = None
    connected_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)

    def to_public(self) -> Dict[str, str]:
        return {
            "partnerId": self.id,
            "displayName": self.display_name,
            "attribute": self.attribute.value,
        }


@dataclass(slots=True)
class WaitEntry:
    participant_id: str
    requested_filter: Optional[Attribute]
    enqueued_at: datetime = field(default_factory=utcnow)
    excluded: Tuple[str, ...] = ()


@dataclass(slots=True)
class Session:
    """An exclusive, symmetric 1:1 pairing."""

    id: str
    participant_a: str
    participant_b: str
    created_at: datetime = field(default_factory=utcnow)

    def members(self) -> Tuple[str, str]:
        return (self.participant_a, self.participant_b)

    def involves(self, participant_id: str) -> bool:
        return participant_id in (self.participant_a, self.participant_b)

    def other(self, participant_id: str) -> Optional[str]:
        if participant_id == self.participant_a:
            return self.participant_b
        if participant_id == self.participant_b:
            return self.participant_a
        return None


@dataclass(slots=True)
class Room:
    id: str
    name: str
    capacity: int
    members: Dict[str, datetime] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def is_empty(self) -> bool:
        return not self.members

    def is_full(self) -> bool:
        return len(self.members) >= self.capacity


@dataclass(slots=True)
class Message:
    """Ephemeral relay payload; never persisted."""

    id: str
    sender: str
    recipient: str
    content: str
    kind: MessageKind
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "from": self.sender,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.kind is MessageKind.ROOM:
            payload["roomId"] = self.recipient
        return payload


def parse_attribute(raw: object) -> Attribute:
    """Coerce a declared attribute, falling back to undisclosed."""
    if isinstance(raw, Attribute):
        return raw
    try:
        return Attribute(str(raw).strip().lower())
    except ValueError:
        return Attribute.UNDISCLOSED
