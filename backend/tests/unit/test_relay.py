import asyncio
import random
from datetime import datetime

import pytest

from anonchat.domain.matching.errors import NoActiveSession, NotInRoom, UnknownParticipant
from anonchat.domain.matching.models import MessageKind
from anonchat.domain.matching.relay import MessageRelay


async def _pair(core):
    a = await core.join("A")
    b = await core.join("B")
    await core.find_partner(a.id)
    await core.find_partner(b.id)
    return a, b


@pytest.mark.asyncio
async def test_direct_message_reaches_partner_with_server_timestamp(core, notifier):
    a, b = await _pair(core)
    before = datetime.now().astimezone()

    message = await core.send_message(a.id, b.id, "hello")

    delivered = notifier.named(b.id, "message")
    assert delivered == [message.to_dict()]
    assert delivered[0]["from"] == a.id
    assert delivered[0]["content"] == "hello"
    assert datetime.fromisoformat(delivered[0]["timestamp"]) >= before
    assert message.kind is MessageKind.DIRECT
    assert notifier.named(a.id, "message") == []


@pytest.mark.asyncio
async def test_message_without_session_is_rejected(core, notifier):
    a, b = await _pair(core)
    c = await core.join("C")

    with pytest.raises(NoActiveSession):
        await core.send_message(a.id, c.id, "psst")
    with pytest.raises(NoActiveSession):
        await core.send_message(c.id, a.id, "psst")
    assert notifier.named(c.id, "message") == []
    assert notifier.named(a.id, "message") == []


@pytest.mark.asyncio
async def test_message_after_session_end_is_rejected(core):
    a, b = await _pair(core)
    await core.leave_chat(a.id)

    with pytest.raises(NoActiveSession):
        await core.send_message(b.id, a.id, "still there?")


@pytest.mark.asyncio
async def test_unknown_sender_is_rejected(core):
    with pytest.raises(UnknownParticipant):
        await core.relay.send_direct("ghost", "nobody", "hi")


@pytest.mark.asyncio
async def test_persona_replies_within_delay(core, notifier):
    a = await core.join("A")
    await core.find_partner(a.id)
    await asyncio.sleep(0.2)
    persona_id = core.config.persona_id
    assert core.sessions.find(a.id, persona_id) is not None

    await core.send_message(a.id, persona_id, "hello")
    assert notifier.named(a.id, "message") == []
    await asyncio.wait_for(core.relay.drain(), timeout=1.0)

    replies = notifier.named(a.id, "message")
    assert len(replies) == 1
    assert replies[0]["from"] == persona_id
    assert replies[0]["content"] == "Hey there! Nice to meet you. How's your day going?"
    assert notifier.for_participant(persona_id) == []


@pytest.mark.asyncio
async def test_persona_reply_dropped_after_session_ends(core, notifier):
    a = await core.join("A")
    await core.find_partner(a.id)
    await asyncio.sleep(0.2)
    persona_id = core.config.persona_id

    await core.send_message(a.id, persona_id, "hello")
    await core.leave_chat(a.id)
    await asyncio.wait_for(core.relay.drain(), timeout=1.0)

    assert notifier.named(a.id, "message") == []


@pytest.mark.asyncio
async def test_reply_delay_uses_configured_bounds(core, notifier):
    delays = []

    class RecordingRandom(random.Random):
        def uniform(self, a, b):
            delays.append((a, b))
            return a

    relay = MessageRelay(
        core.registry,
        core.sessions,
        core.rooms,
        notifier,
        responder=lambda text: "canned",
        reply_delay=(0.02, 0.01),
        rng=RecordingRandom(),
    )
    a = await core.join("A")
    core.sessions.create(a.id, core.config.persona_id)

    await relay.send_direct(a.id, core.config.persona_id, "anything")
    await relay.drain()

    assert delays == [(0.01, 0.02)]
    assert [p["content"] for p in notifier.named(a.id, "message")] == ["canned"]


@pytest.mark.asyncio
async def test_room_message_broadcasts_to_all_members(core, notifier):
    a = await core.join("A")
    b = await core.join("B")
    room = await core.join_room(a.id, "lobby")
    await core.join_room(b.id, "lobby")

    message = await core.send_room_message(a.id, room.id, "hi all")

    expected = message.to_dict()
    assert expected["roomId"] == room.id
    assert notifier.named(a.id, "room_message") == [expected]
    assert notifier.named(b.id, "room_message") == [expected]


@pytest.mark.asyncio
async def test_room_message_requires_membership(core):
    a = await core.join("A")
    b = await core.join("B")
    await core.join_room(a.id, "lobby")

    with pytest.raises(NotInRoom):
        await core.send_room_message(b.id, "lobby", "let me in")
    with pytest.raises(NoActiveSession):
        await core.send_room_message(a.id, "missing", "hello?")


@pytest.mark.asyncio
async def test_typing_forwarded_to_partner_only(core, notifier):
    a, b = await _pair(core)

    assert await core.typing(a.id, True) is True
    assert await core.typing(a.id, False) is True

    assert notifier.named(b.id, "partner_typing") == [{}]
    assert notifier.named(b.id, "partner_stopped_typing") == [{}]
    assert notifier.named(a.id, "partner_typing") == []


@pytest.mark.asyncio
async def test_typing_without_session_is_ignored(core, notifier):
    a = await core.join("A")
    assert await core.typing(a.id, True) is False
    assert notifier.events == []
