import pytest

from anonchat.domain.matching.models import Attribute, Participant, ParticipantState
from anonchat.domain.matching.presence import PresenceRegistry
from anonchat.domain.matching.store import MatchStore


def test_add_generates_id_when_missing():
    registry = PresenceRegistry(MatchStore())
    participant = registry.add(Participant(id="", display_name="anon"))
    assert participant.id
    assert registry.get(participant.id) is participant
    assert participant.resume_token


def test_rejoin_with_same_id_upserts_profile_and_keeps_state():
    registry = PresenceRegistry(MatchStore())
    first = registry.add(Participant(id="p1", display_name="first", sid="sid-1"))
    token = first.resume_token
    first.state = ParticipantState.SEARCHING

    again = registry.add(Participant(id="p1", display_name="second", attribute=Attribute.FEMALE, sid="sid-2"))

    assert again is first
    assert again.display_name == "second"
    assert again.attribute is Attribute.FEMALE
    assert again.sid == "sid-2"
    assert again.state is ParticipantState.SEARCHING
    assert again.resume_token == token
    assert len(registry.list_online()) == 1


def test_list_online_with_predicate():
    registry = PresenceRegistry(MatchStore())
    registry.add(Participant(id="m", display_name="m", attribute=Attribute.MALE))
    registry.add(Participant(id="f", display_name="f", attribute=Attribute.FEMALE))
    registry.add(Participant(id="bot", display_name="bot", is_persona=True))

    humans = registry.list_online(lambda p: not p.is_persona)
    assert [p.id for p in humans] == ["m", "f"]
    assert registry.get("missing") is None
    assert registry.get(None) is None


@pytest.mark.asyncio
async def test_remove_refuses_persona_and_unknown_ids():
    registry = PresenceRegistry(MatchStore())
    registry.add(Participant(id="bot", display_name="bot", is_persona=True))

    assert await registry.remove("bot") is False
    assert registry.get("bot") is not None
    assert await registry.remove("ghost") is False


@pytest.mark.asyncio
async def test_remove_cascades_through_core(core, notifier):
    searching = await core.join("searcher")
    await core.find_partner(searching.id)
    assert core.matchmaker.has_pending_fallback(searching.id)

    assert await core.registry.remove(searching.id) is True

    assert core.registry.get(searching.id) is None
    assert searching.id not in core.store.waiting
    assert not core.matchmaker.has_pending_fallback(searching.id)


@pytest.mark.asyncio
async def test_remove_paired_participant_ends_session(core, notifier):
    a = await core.join("a")
    b = await core.join("b")
    await core.find_partner(a.id)
    await core.find_partner(b.id)
    assert core.sessions.find(a.id, b.id) is not None

    await core.registry.remove(a.id)

    assert core.sessions.find_by_participant(b.id) is None
    assert notifier.named(b.id, "partner_left") == [{}]
