"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"anonchat_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"anonchat_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"anonchat_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"anonchat_socketio_events_total",
	"Socket.IO events handled per namespace",
	["namespace", "event"],
)

RATE_LIMITED_EVENTS = Counter(
	"anonchat_rate_limited_events_total",
	"Socket events dropped by rate limiting",
	["kind"],
)

PARTICIPANTS_ONLINE = Gauge(
	"anonchat_participants_online",
	"Human participants currently registered",
)

PARTICIPANTS_WAITING = Gauge(
	"anonchat_participants_waiting",
	"Participants holding a wait entry",
)

SESSIONS_ACTIVE = Gauge(
	"anonchat_sessions_active",
	"Active one-to-one sessions",
)

MATCHES_TOTAL = Counter(
	"anonchat_matches_total",
	"Sessions created by the matchmaker",
	["kind"],
)

MATCH_WAIT_SECONDS = Histogram(
	"anonchat_match_wait_seconds",
	"Time spent searching before a session was created",
	["kind"],
	buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0, 60.0),
)

SESSIONS_ENDED = Counter(
	"anonchat_sessions_ended_total",
	"Sessions torn down",
	["reason"],
)

MESSAGES_RELAYED = Counter(
	"anonchat_messages_relayed_total",
	"Messages accepted by the relay",
	["kind"],
)

MESSAGES_DROPPED = Counter(
	"anonchat_messages_dropped_total",
	"Messages rejected by the relay",
	["reason"],
)

PRESENCE_SWEEPER_TRIMS = Counter(
	"anonchat_presence_sweeper_trim_total",
	"Stale participants removed by the presence sweeper",
)

SESSION_INVARIANT_REPAIRS = Counter(
	"anonchat_session_invariant_repairs_total",
	"Sessions force-ended because a participant was paired twice",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_match(kind: str, waited_seconds: float) -> None:
	MATCHES_TOTAL.labels(kind=kind).inc()
	MATCH_WAIT_SECONDS.labels(kind=kind).observe(max(0.0, waited_seconds))


def inc_session_ended(reason: str) -> None:
	SESSIONS_ENDED.labels(reason=reason).inc()


def inc_message_relayed(kind: str) -> None:
	MESSAGES_RELAYED.labels(kind=kind).inc()


def inc_message_dropped(reason: str) -> None:
	MESSAGES_DROPPED.labels(reason=reason).inc()


def set_core_gauges(*, online: int, waiting: int, sessions: int) -> None:
	PARTICIPANTS_ONLINE.set(float(online))
	PARTICIPANTS_WAITING.set(float(waiting))
	SESSIONS_ACTIVE.set(float(sessions))
