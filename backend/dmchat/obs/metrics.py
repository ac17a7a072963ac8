"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"dmchat_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"dmchat_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"dmchat_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"dmchat_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

SOCKET_AUTH_FAILURES = Counter(
	"dmchat_socketio_auth_failures_total",
	"Socket.IO handshakes refused by the authentication gate",
)

SOCKET_EVENT_REJECTS = Counter(
	"dmchat_socketio_event_rejects_total",
	"Inbound events dropped at the boundary",
	["event", "reason"],
)

SOCKET_EVENT_FAILURES = Counter(
	"dmchat_socketio_event_failures_total",
	"Inbound events aborted by a persistence failure",
	["event"],
)

REGISTRY_ONLINE = Gauge(
	"dmchat_registry_online_users",
	"Users with a live connection in the registry",
)

CHAT_MESSAGES_SENT = Counter(
	"dmchat_chat_messages_sent_total",
	"Messages persisted and broadcast",
	["message_type"],
)

CHAT_MESSAGES_DROPPED = Counter(
	"dmchat_chat_messages_dropped_total",
	"Messages dropped before persistence",
	["reason"],
)

CHAT_OFFLINE_SIGNALS = Counter(
	"dmchat_chat_offline_participant_total",
	"Offline participant signals raised for new messages",
)

PRESENCE_BROADCASTS = Counter(
	"dmchat_presence_broadcasts_total",
	"userStatus events pushed to online friends",
	["status"],
)

FRIEND_EVENTS = Counter(
	"dmchat_friend_events_total",
	"Friend-request lifecycle events by delivery outcome",
	["event", "outcome"],
)

RATE_LIMITED_EVENTS = Counter(
	"dmchat_rate_limited_total",
	"Events dropped due to rate limiting",
	["kind"],
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


def socket_auth_failed() -> None:
	SOCKET_AUTH_FAILURES.inc()


def socket_event_rejected(event: str, reason: str) -> None:
	SOCKET_EVENT_REJECTS.labels(event=event, reason=reason).inc()


def socket_event_failed(event: str) -> None:
	SOCKET_EVENT_FAILURES.labels(event=event).inc()


def registry_online(count: int) -> None:
	REGISTRY_ONLINE.set(count)


def inc_chat_send(message_type: str) -> None:
	CHAT_MESSAGES_SENT.labels(message_type=message_type).inc()


def inc_chat_dropped(reason: str) -> None:
	CHAT_MESSAGES_DROPPED.labels(reason=reason).inc()


def inc_chat_offline_signal() -> None:
	CHAT_OFFLINE_SIGNALS.inc()


def inc_presence_broadcast(status: str, count: int = 1) -> None:
	if count > 0:
		PRESENCE_BROADCASTS.labels(status=status).inc(count)


def inc_friend_event(event: str, delivered: bool) -> None:
	FRIEND_EVENTS.labels(event=event, outcome="delivered" if delivered else "target_offline").inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()
