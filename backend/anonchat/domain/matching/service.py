"""Matching core container wiring the registry, matchmaker, relay and lifecycle."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from anonchat.domain.matching.errors import UnknownParticipant
from anonchat.domain.matching.lifecycle import LifecycleManager
from anonchat.domain.matching.matchmaker import Matchmaker
from anonchat.domain.matching.models import Message, Participant, Room
from anonchat.domain.matching.notifier import Notifier, NullNotifier
from anonchat.domain.matching.pairing import SessionTable
from anonchat.domain.matching.presence import PresenceRegistry
from anonchat.domain.matching.relay import MessageRelay
from anonchat.domain.matching.rooms import RoomTable
from anonchat.domain.matching.store import MatchStore
from anonchat.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class NotifierProxy:
	"""Stable notifier handed to every component; the target can be swapped later."""

	def __init__(self, target: Notifier) -> None:
		self._target = target

	def set_target(self, target: Notifier) -> None:
		self._target = target

	async def notify(self, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
		await self._target.notify(participant_id, event, payload)


class ChatCore:
	def __init__(
		self,
		*,
		notifier: Optional[Notifier] = None,
		config: Optional[Settings] = None,
	) -> None:
		cfg = config or default_settings
		self.config = cfg
		self.store = MatchStore()
		self.notifier = NotifierProxy(notifier or NullNotifier())
		self.registry = PresenceRegistry(self.store)
		self.sessions = SessionTable(self.store, strict=cfg.is_dev())
		self.rooms = RoomTable(self.store, capacity=cfg.room_max_members)
		persona_id = cfg.persona_id if cfg.persona_enabled else None
		self.matchmaker = Matchmaker(
			self.store,
			self.registry,
			self.sessions,
			self.notifier,
			fallback_seconds=cfg.match_fallback_seconds,
			persona_id=persona_id,
		)
		self.relay = MessageRelay(
			self.registry,
			self.sessions,
			self.rooms,
			self.notifier,
			reply_delay=(cfg.persona_reply_min_seconds, cfg.persona_reply_max_seconds),
		)
		self.lifecycle = LifecycleManager(
			self.registry,
			self.matchmaker,
			self.sessions,
			self.rooms,
			self.notifier,
		)
		if persona_id is not None:
			self.registry.add(
				Participant(id=persona_id, display_name=cfg.persona_display_name, is_persona=True)
			)

	def attach_notifier(self, notifier: Notifier) -> None:
		self.notifier.set_target(notifier)

	def _require(self, participant_id: str) -> Participant:
		participant = self.registry.get(participant_id)
		if participant is None or participant.is_persona:
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
		return await self.lifecycle.join(
			display_name,
			attribute,
			participant_id=participant_id,
			sid=sid,
			filter_enabled=filter_enabled,
			resume_token=resume_token,
		)

	async def find_partner(self, participant_id: str, requested_filter: object = None) -> Optional[Participant]:
		participant = self._require(participant_id)
		self.registry.touch(participant_id)
		if participant.room_id:
			await self.lifecycle.leave_room(participant_id)
		return await self.matchmaker.find_partner(participant_id, requested_filter)

	async def leave_search(self, participant_id: str) -> bool:
		self._require(participant_id)
		return await self.matchmaker.stop_searching(participant_id)

	async def next_partner(self, participant_id: str, requested_filter: object = None) -> Optional[Participant]:
		participant = self._require(participant_id)
		if participant.room_id:
			await self.lifecycle.leave_room(participant_id)
		return await self.lifecycle.next_partner(participant_id, requested_filter)

	async def leave_chat(self, participant_id: str) -> Optional[str]:
		self._require(participant_id)
		return await self.lifecycle.end_session(participant_id, reason="left")

	async def send_message(self, participant_id: str, to_id: str, content: str) -> Message:
		self._require(participant_id)
		return await self.relay.send_direct(participant_id, to_id, content)

	async def typing(self, participant_id: str, on: bool) -> bool:
		self._require(participant_id)
		return await self.relay.typing(participant_id, on)

	async def join_room(self, participant_id: str, room_id: Optional[str] = None, name: Optional[str] = None) -> Room:
		self._require(participant_id)
		return await self.lifecycle.join_room(participant_id, room_id, name)

	async def leave_room(self, participant_id: str) -> Optional[Room]:
		self._require(participant_id)
		return await self.lifecycle.leave_room(participant_id)

	async def send_room_message(self, participant_id: str, room_id: str, content: str) -> Message:
		self._require(participant_id)
		return await self.relay.send_room(participant_id, room_id, content)

	def heartbeat(self, participant_id: str) -> None:
		self._require(participant_id)
		self.lifecycle.heartbeat(participant_id)

	async def disconnect(self, participant_id: str) -> bool:
		return await self.lifecycle.disconnect(participant_id)

	async def sweep(self) -> int:
		return await self.lifecycle.sweep(stale_after=timedelta(seconds=self.config.presence_stale_seconds))

	def stats(self) -> Dict[str, int]:
		return self.store.stats()

	async def shutdown(self) -> None:
		await self.matchmaker.shutdown()
		await self.relay.shutdown()
