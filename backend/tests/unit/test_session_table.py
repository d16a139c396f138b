from datetime import timedelta

import pytest

from anonchat.domain.matching.errors import AlreadyPaired, InvariantViolation
from anonchat.domain.matching.models import Participant, Session, utcnow
from anonchat.domain.matching.pairing import SessionTable
from anonchat.domain.matching.store import MatchStore


def _store(*ids: str, persona: str | None = None) -> MatchStore:
    store = MatchStore()
    for pid in ids:
        store.participants[pid] = Participant(id=pid, display_name=pid)
    if persona:
        store.participants[persona] = Participant(id=persona, display_name=persona, is_persona=True)
    return store


def test_create_is_symmetric():
    table = SessionTable(_store("a", "b"))
    session = table.create("a", "b")

    assert table.find_by_participant("a") is session
    assert table.find_by_participant("b") is session
    assert table.find("a", "b") is session
    assert table.find("b", "a") is session


def test_create_rejects_participant_already_paired():
    table = SessionTable(_store("a", "b", "c"))
    first = table.create("a", "b")

    with pytest.raises(AlreadyPaired) as excinfo:
        table.create("c", "b")
    assert excinfo.value.session is first
    assert excinfo.value.participant_id == "b"
    assert table.active_count() == 1


def test_create_rejects_self_pairing():
    table = SessionTable(_store("a"))
    with pytest.raises(InvariantViolation):
        table.create("a", "a")


def test_find_requires_both_members():
    table = SessionTable(_store("a", "b", "c"))
    table.create("a", "b")
    assert table.find("a", "c") is None
    assert table.find("c", "a") is None


def test_end_is_idempotent():
    table = SessionTable(_store("a", "b"))
    session = table.create("a", "b")

    assert table.end(session.id) is session
    assert table.end(session.id) is None
    assert table.end("unknown") is None
    assert table.find_by_participant("a") is None
    assert table.find_by_participant("b") is None


@pytest.mark.parametrize("leaver,survivor", [("a", "b"), ("b", "a")])
def test_end_for_participant_returns_counterpart(leaver, survivor):
    table = SessionTable(_store("a", "b"))
    table.create("a", "b")

    assert table.end_for_participant(leaver) == survivor
    assert table.end_for_participant(leaver) is None
    assert table.active_count() == 0


def test_persona_can_hold_many_sessions():
    table = SessionTable(_store("a", "b", persona="bot"))
    first = table.create("a", "bot")
    second = table.create("b", "bot")

    assert table.find("a", "bot") is first
    assert table.find("bot", "b") is second
    assert table.find_by_participant("bot") is None
    assert table.active_count() == 2


def test_audit_force_ends_older_duplicate_session():
    store = _store("a", "b", "c")
    table = SessionTable(store)
    older = Session(id="s-old", participant_a="a", participant_b="b", created_at=utcnow() - timedelta(minutes=5))
    newer = Session(id="s-new", participant_a="a", participant_b="c")
    store.sessions[older.id] = older
    store.sessions[newer.id] = newer
    store.session_by_participant.update({"a": older.id, "b": older.id, "c": newer.id})

    repaired = table.audit()

    assert repaired == [(older, "a")]
    assert table.get("s-old") is None
    assert table.find_by_participant("a") is newer
    assert table.find_by_participant("b") is None


def test_audit_raises_in_strict_mode():
    store = _store("a", "b", "c")
    table = SessionTable(store, strict=True)
    store.sessions["s1"] = Session(id="s1", participant_a="a", participant_b="b")
    store.sessions["s2"] = Session(id="s2", participant_a="a", participant_b="c")

    with pytest.raises(InvariantViolation):
        table.audit()


def test_audit_is_quiet_when_consistent():
    table = SessionTable(_store("a", "b", persona="bot"))
    table.create("a", "bot")
    table.create("b", "bot")
    assert table.audit() == []
