"""Socket.IO namespace carrying the matching and chat event surface."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import socketio
from pydantic import BaseModel, ValidationError

from anonchat.domain.matching import schemas
from anonchat.domain.matching.errors import MatchError
from anonchat.domain.matching.service import ChatCore
from anonchat.infra.rate_limit import RateLimit, allow as rate_allow
from anonchat.obs import logging as obs_logging
from anonchat.obs import metrics as obs_metrics
from anonchat.settings import settings

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

SEARCH_LIMIT = RateLimit(limit=10, window_seconds=10)
MESSAGE_LIMIT = RateLimit(limit=30, window_seconds=10)


class SocketNotifier:
	"""Deliver core notifications to the participant's current connection."""

	def __init__(self, namespace: "ChatNamespace") -> None:
		self._namespace = namespace

	async def notify(self, participant_id: str, event: str, payload: Dict[str, Any]) -> None:
		participant = self._namespace.core.registry.get(participant_id)
		if participant is None or not participant.sid:
			logger.debug("dropping %s for unreachable participant=%s", event, participant_id)
			return
		obs_metrics.socket_event(self._namespace.namespace, event)
		await self._namespace.emit(event, payload, room=participant.sid)


class ChatNamespace(socketio.AsyncNamespace):
	"""Namespace mapping each connection to at most one participant."""

	def __init__(self, core: ChatCore, namespace: str = "/chat") -> None:
		super().__init__(namespace)
		self.core = core
		self.participants: Dict[str, str] = {}
		core.attach_notifier(SocketNotifier(self))

	async def trigger_event(self, event: str, *args):
		sid = args[0] if args else None
		with obs_logging.log_context(sid=sid, event=event, participant_id=self.participants.get(sid)):
			return await super().trigger_event(event, *args)

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		logger.info("chat connect sid=%s", sid)
		await self.emit("sys.ok", {}, room=sid)

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		participant_id = self.participants.pop(sid, None)
		if participant_id is None:
			return
		participant = self.core.registry.get(participant_id)
		if participant is not None and participant.sid not in (None, sid):
			# a newer connection owns this participant now
			return
		await self.core.disconnect(participant_id)
		logger.info("chat disconnect sid=%s participant=%s", sid, participant_id)

	async def on_join(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "join")
		payload = await self._parse(sid, schemas.JoinPayload, data)
		if payload is None:
			return
		previous = self.participants.get(sid)
		participant_id = payload.participant_id or previous
		resume_token = payload.resume_token
		if previous and participant_id == previous:
			# this connection already owns the id
			owned = self.core.registry.get(previous)
			if owned is not None:
				resume_token = owned.resume_token
		try:
			participant = await self.core.join(
				payload.display_name,
				payload.attribute,
				participant_id=participant_id,
				sid=sid,
				filter_enabled=payload.filter_enabled,
				resume_token=resume_token,
			)
		except MatchError as exc:
			await self._warn(sid, exc.code)
			return
		if previous and previous != participant.id:
			await self.core.disconnect(previous)
		for other_sid, owner in list(self.participants.items()):
			if owner == participant.id and other_sid != sid:
				logger.info("participant moved to a new connection old_sid=%s sid=%s", other_sid, sid)
				del self.participants[other_sid]
		self.participants[sid] = participant.id
		await self.emit(
			"joined",
			{
				"id": participant.id,
				"display_name": participant.display_name,
				"attribute": participant.attribute.value,
				"resume_token": participant.resume_token,
			},
			room=sid,
		)

	async def on_find_partner(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "find_partner")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		if not await self._check_limits("find_partner", sid, SEARCH_LIMIT):
			return
		payload = await self._parse(sid, schemas.FindPartnerPayload, data)
		if payload is None:
			return
		await self._run(sid, self.core.find_partner(participant_id, payload.filter))

	async def on_leave_search(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "leave_search")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		await self._run(sid, self.core.leave_search(participant_id))

	async def on_next_partner(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "next_partner")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		if not await self._check_limits("find_partner", sid, SEARCH_LIMIT):
			return
		payload = await self._parse(sid, schemas.FindPartnerPayload, data)
		if payload is None:
			return
		await self._run(sid, self.core.next_partner(participant_id, payload.filter))

	async def on_leave_chat(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "leave_chat")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		await self._run(sid, self.core.leave_chat(participant_id))

	async def on_message(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "message")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		if not await self._check_limits("message", sid, MESSAGE_LIMIT):
			return
		payload = await self._parse(sid, schemas.DirectMessagePayload, data)
		if payload is None:
			return
		try:
			message = await self.core.send_message(participant_id, payload.to, payload.content)
		except MatchError as exc:
			await self.emit("message_failed", {"to": payload.to, "code": exc.code}, room=sid)
			return
		await self.emit(
			"message_sent",
			{"id": message.id, "to": payload.to, "timestamp": message.timestamp.isoformat()},
			room=sid,
		)

	async def on_typing(self, sid: str, data: Optional[dict] = None) -> None:
		await self._typing(sid, True)

	async def on_stop_typing(self, sid: str, data: Optional[dict] = None) -> None:
		await self._typing(sid, False)

	async def on_join_room(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "join_room")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		payload = await self._parse(sid, schemas.JoinRoomPayload, data)
		if payload is None:
			return
		await self._run(sid, self.core.join_room(participant_id, payload.room_id, payload.name))

	async def on_leave_room(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "leave_room")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		await self._run(sid, self.core.leave_room(participant_id))

	async def on_room_message(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "room_message")
		participant_id = await self._participant(sid)
		if participant_id is None:
			return
		if not await self._check_limits("message", sid, MESSAGE_LIMIT):
			return
		payload = await self._parse(sid, schemas.RoomMessagePayload, data)
		if payload is None:
			return
		await self._run(sid, self.core.send_room_message(participant_id, payload.room_id, payload.content))

	async def on_hb(self, sid: str, data: Optional[dict] = None) -> None:
		participant_id = self.participants.get(sid)
		if participant_id is None:
			return
		try:
			self.core.heartbeat(participant_id)
		except MatchError:
			self.participants.pop(sid, None)

	async def _typing(self, sid: str, on: bool) -> None:
		obs_metrics.socket_event(self.namespace, "typing" if on else "stop_typing")
		participant_id = self.participants.get(sid)
		if participant_id is None:
			return
		self.core.registry.touch(participant_id)
		await self._run(sid, self.core.typing(participant_id, on))

	async def _run(self, sid: str, operation) -> None:
		try:
			await operation
		except MatchError as exc:
			logger.debug("chat operation rejected sid=%s code=%s", sid, exc.code)
			await self._warn(sid, exc.code)

	async def _participant(self, sid: str) -> Optional[str]:
		participant_id = self.participants.get(sid)
		if participant_id is None or self.core.registry.get(participant_id) is None:
			self.participants.pop(sid, None)
			await self._warn(sid, "unknown_participant")
			return None
		self.core.registry.touch(participant_id)
		return participant_id

	async def _parse(self, sid: str, model: Type[PayloadT], data: Optional[dict]) -> Optional[PayloadT]:
		try:
			return model.model_validate(data or {})
		except ValidationError:
			await self._warn(sid, "invalid_payload")
			return None

	async def _check_limits(self, kind: str, sid: str, rule: RateLimit) -> bool:
		if not settings.rate_limit_enabled:
			return True
		if await rate_allow(f"{kind}_socket", sid, rule):
			return True
		obs_metrics.RATE_LIMITED_EVENTS.labels(kind=kind).inc()
		await self._warn(sid, "rate_limited")
		return False

	async def _warn(self, sid: str, code: str) -> None:
		await self.emit("sys.warn", {"code": code}, room=sid)
