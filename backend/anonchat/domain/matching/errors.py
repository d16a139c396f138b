"""Recoverable matching errors, surfaced to clients as lightweight notifications."""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from anonchat.domain.matching.models import Session


class MatchError(RuntimeError):
    code = "match_error"

    def __init__(self, message: str | None = None, *, participant_id: Optional[str] = None) -> None:
        super().__init__(message or self.code)
        self.participant_id = participant_id
        self.detail = message or self.code


class UnknownParticipant(MatchError):
    code = "unknown_participant"


class AlreadyPaired(MatchError):
    code = "already_paired"

    def __init__(self, session: "Session", *, participant_id: Optional[str] = None) -> None:
        super().__init__(f"already paired in session {session.id}", participant_id=participant_id)
        self.session = session


class NoActiveSession(MatchError):
    code = "no_active_session"


class NotInRoom(NoActiveSession):
    code = "not_in_room"


class RoomFull(MatchError):
    code = "room_full"


class InvariantViolation(MatchError):
    code = "invariant_violation"


class ParticipantIdTaken(MatchError):
    """Re-join under a known participant id without its resume token."""

    code = "participant_id_taken"
