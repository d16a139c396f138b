"""JSON error envelopes carrying the request id."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from anonchat.api.request_id import get_request_id
from anonchat.domain.matching import errors as match_errors

logger = logging.getLogger(__name__)

_MATCH_STATUS = {
    match_errors.UnknownParticipant: 404,
    match_errors.InvariantViolation: 500,
}


def _match_status(exc: match_errors.MatchError) -> int:
    for error_type, status in _MATCH_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 409


def _envelope(request: Request, status: int, detail: object, **extra: object) -> JSONResponse:
    payload = {"detail": detail, "request_id": get_request_id(request), **extra}
    return JSONResponse(status_code=status, content=payload)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return _envelope(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return _envelope(request, 422, "validation_error", errors=jsonable_encoder(exc.errors()))

    @app.exception_handler(match_errors.MatchError)
    async def match_exc_handler(request: Request, exc: match_errors.MatchError):  # type: ignore[override]
        status = _match_status(exc)
        if status >= 500:
            logger.error("matching invariant broken code=%s detail=%s", exc.code, exc.detail)
        return _envelope(request, status, exc.code)
