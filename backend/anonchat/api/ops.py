"""Operations endpoints providing health checks, statistics and metrics."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from anonchat.domain.matching.service import ChatCore
from anonchat.obs import health
from anonchat.settings import settings

router = APIRouter(prefix="", tags=["ops"])


class StatsResponse(BaseModel):
	online: int
	waiting: int
	active_sessions: int
	rooms: int


def _core(request: Request) -> Optional[ChatCore]:
	return getattr(request.app.state, "chat_core", None)


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_metrics_access(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	token = settings.obs_admin_token
	if not token:
		# Fail closed: if no token is configured, no admin access is allowed.
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	supplied = _resolve_token(X_Admin_Token, authorization) or ""
	if not hmac.compare_digest(supplied.encode(), token.encode()):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready(request: Request) -> Response:
	status_code, payload = await health.readiness(_core(request))
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/stats", response_model=StatsResponse)
async def stats(request: Request) -> StatsResponse:
	core = _core(request)
	if core is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="core_unavailable")
	return StatsResponse(**core.stats())


@router.get("/metrics", dependencies=[Depends(require_metrics_access)])
async def metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
