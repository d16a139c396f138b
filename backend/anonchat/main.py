"""FastAPI application entrypoint with the /chat Socket.IO namespace mounted."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import List

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from anonchat.api import ops
from anonchat.api.errors import install_error_handlers
from anonchat.domain.matching.service import ChatCore
from anonchat.domain.matching.sockets import ChatNamespace
from anonchat.domain.matching.sweeper import run_presence_sweeper
from anonchat.obs import init as obs_init
from anonchat.settings import settings

logger = logging.getLogger(__name__)

_DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]


def _cors_origins() -> List[str]:
	origins = [origin for origin in settings.cors_allow_origins if origin != "*"]
	if not origins and settings.is_dev():
		return list(_DEV_ORIGINS)
	return origins


chat_core = ChatCore()


@asynccontextmanager
async def lifespan(app: FastAPI):
	sweeper = asyncio.create_task(
		run_presence_sweeper(chat_core, settings.presence_sweep_interval_seconds),
		name="presence-sweeper",
	)
	logger.info("chat core started persona=%s fallback_s=%s", settings.persona_enabled, settings.match_fallback_seconds)
	try:
		yield
	finally:
		sweeper.cancel()
		with suppress(asyncio.CancelledError):
			await sweeper
		await chat_core.shutdown()


allow_origins = _cors_origins()

app = FastAPI(title="Anonymous Chat Core", lifespan=lifespan)
app.state.chat_core = chat_core
install_error_handlers(app)
app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["GET", "OPTIONS"],
	allow_headers=["*"],
)
obs_init(app)
app.include_router(ops.router, tags=["ops"])

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
chat_namespace = ChatNamespace(chat_core)
sio.register_namespace(chat_namespace)
# ASGI entrypoint: uvicorn anonchat.main:socket_app
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
