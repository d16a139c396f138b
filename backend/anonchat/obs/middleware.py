"""Per-request id, access log and HTTP metrics."""

from __future__ import annotations

import time

import ulid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from anonchat.obs import logging as obs_logging
from anonchat.obs import metrics

REQUEST_ID_ATTR = "request_id"
REQUEST_ID_HEADER = "X-Request-Id"

_access_log = obs_logging.get_logger("anonchat.http")


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class RequestContextMiddleware(BaseHTTPMiddleware):
	"""Assign every request an id; record metrics and an access line when enabled."""

	def __init__(self, app, *, instrument: bool = True) -> None:
		super().__init__(app)
		self._instrument = instrument

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or str(ulid.new())
		setattr(request.state, REQUEST_ID_ATTR, request_id)
		client_ip = request.client.host if request.client else None
		with obs_logging.log_context(request_id=request_id, client_ip=client_ip):
			started = time.perf_counter()
			try:
				response = await call_next(request)
			except Exception:
				if self._instrument:
					metrics.observe_request(_route_template(request), request.method, 500, time.perf_counter() - started)
				_access_log.exception("http_request_error", extra={"method": request.method, "path": request.url.path})
				raise
			response.headers.setdefault(REQUEST_ID_HEADER, request_id)
			if self._instrument:
				route = _route_template(request)
				elapsed = time.perf_counter() - started
				metrics.observe_request(route, request.method, response.status_code, elapsed)
				_access_log.info(
					"http_request",
					extra={
						"method": request.method,
						"route": route,
						"status": response.status_code,
						"latency_ms": round(elapsed * 1000, 3),
					},
				)
		return response


def install(app, *, instrument: bool = True) -> None:
	app.add_middleware(RequestContextMiddleware, instrument=instrument)
