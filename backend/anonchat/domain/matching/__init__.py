"""Matching domain exports."""

from .errors import (
    AlreadyPaired,
    InvariantViolation,
    MatchError,
    NoActiveSession,
    NotInRoom,
    ParticipantIdTaken,
    RoomFull,
    UnknownParticipant,
)
from .service import ChatCore

__all__ = [
    "ChatCore",
    "MatchError",
    "UnknownParticipant",
    "AlreadyPaired",
    "NoActiveSession",
    "NotInRoom",
    "ParticipantIdTaken",
    "RoomFull",
    "InvariantViolation",
]
