"""Messaging relay for paired participants and group rooms."""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import suppress
from typing import Callable, Optional, Set

import ulid

from anonchat.domain.matching import persona as persona_responder
from anonchat.domain.matching.errors import NoActiveSession, NotInRoom, UnknownParticipant
from anonchat.domain.matching.models import Message, MessageKind, Participant
from anonchat.domain.matching.notifier import Notifier
from anonchat.domain.matching.pairing import SessionTable
from anonchat.domain.matching.presence import PresenceRegistry
from anonchat.domain.matching.rooms import RoomTable
from anonchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Responder = Callable[[str], str]


class MessageRelay:
    """Validates, timestamps and forwards messages. Delivery is at-most-once."""

    def __init__(
        self,
        registry: PresenceRegistry,
        sessions: SessionTable,
        rooms: RoomTable,
        notifier: Notifier,
        *,
        responder: Responder = persona_responder.reply,
        reply_delay: tuple[float, float] = (1.0, 3.0),
        rng: Optional[random.Random] = None,
    ) -> None:
        self._registry = registry
        self._sessions = sessions
        self._rooms = rooms
        self._notifier = notifier
        self._responder = responder
        low, high = reply_delay
        self._reply_delay = (max(0.0, min(low, high)), max(0.0, max(low, high)))
        self._rng = rng or random.Random()
        self._reply_tasks: Set[asyncio.Task] = set()

    def _sender(self, from_id: str) -> Participant:
        sender = self._registry.get(from_id)
        if sender is None:
            obs_metrics.inc_message_dropped("unknown_participant")
            raise UnknownParticipant(f"unknown participant {from_id}", participant_id=from_id)
        return sender

    async def send_direct(self, from_id: str, to_id: str, content: str) -> Message:
        sender = self._sender(from_id)
        if self._sessions.find(from_id, to_id) is None:
            obs_metrics.inc_message_dropped("no_active_session")
            raise NoActiveSession(f"no active session between {from_id} and {to_id}", participant_id=from_id)
        message = Message(
            id=str(ulid.new()),
            sender=from_id,
            recipient=to_id,
            content=content,
            kind=MessageKind.DIRECT,
        )
        self._registry.touch(from_id)
        obs_metrics.inc_message_relayed(MessageKind.DIRECT.value)
        recipient = self._registry.get(to_id)
        if recipient is not None and recipient.is_persona:
            if not sender.is_persona:
                self._schedule_reply(recipient.id, from_id, content)
            return message
        await self._notifier.notify(to_id, "message", message.to_dict())
        return message

    async def send_room(self, from_id: str, room_id: str, content: str) -> Message:
        sender = self._sender(from_id)
        room = self._rooms.get(room_id)
        if room is None or sender.id not in room.members:
            obs_metrics.inc_message_dropped("not_in_room")
            raise NotInRoom(f"participant {from_id} is not in room {room_id}", participant_id=from_id)
        message = Message(
            id=str(ulid.new()),
            sender=from_id,
            recipient=room_id,
            content=content,
            kind=MessageKind.ROOM,
        )
        self._registry.touch(from_id)
        payload = message.to_dict()
        for member in self._rooms.members(room_id):
            await self._notifier.notify(member.id, "room_message", payload)
        obs_metrics.inc_message_relayed(MessageKind.ROOM.value)
        return message

    async def typing(self, from_id: str, on: bool) -> bool:
        """Forward a typing indicator to the partner; ignored without a session."""
        self._sender(from_id)
        session = self._sessions.find_by_participant(from_id)
        if session is None:
            return False
        partner_id = session.other(from_id)
        partner = self._registry.get(partner_id)
        if partner is None or partner.is_persona:
            return False
        event = "partner_typing" if on else "partner_stopped_typing"
        await self._notifier.notify(partner.id, event, {})
        return True

    def _schedule_reply(self, persona_id: str, to_id: str, incoming: str) -> None:
        task = asyncio.create_task(
            self._reply_later(persona_id, to_id, incoming),
            name=f"persona-reply:{to_id}",
        )
        self._reply_tasks.add(task)
        task.add_done_callback(self._reply_tasks.discard)

    async def _reply_later(self, persona_id: str, to_id: str, incoming: str) -> None:
        low, high = self._reply_delay
        await asyncio.sleep(self._rng.uniform(low, high))
        if self._sessions.find(persona_id, to_id) is None:
            logger.debug("persona reply dropped, session gone participant=%s", to_id)
            return
        text = self._responder(incoming)
        try:
            await self.send_direct(persona_id, to_id, text)
        except NoActiveSession:
            logger.debug("persona reply raced with session end participant=%s", to_id)

    async def shutdown(self) -> None:
        tasks = list(self._reply_tasks)
        self._reply_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def drain(self) -> None:
        """Wait for pending persona replies to be delivered."""
        if self._reply_tasks:
            await asyncio.gather(*list(self._reply_tasks), return_exceptions=True)
