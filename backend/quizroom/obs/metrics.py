"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"quizroom_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"quizroom_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"quizroom_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"quizroom_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

ACTIVITIES_CREATED = Counter(
	"quizroom_activities_created_total",
	"Activities created by teachers",
)

ACTIVITY_TRANSITIONS = Counter(
	"quizroom_activity_transitions_total",
	"Successful activity lifecycle transitions",
	["transition"],
)

ANSWERS_SUBMITTED = Counter(
	"quizroom_answers_submitted_total",
	"Answers recorded, labelled by correctness",
	["result"],
)

NOTIFY_FAILURES = Counter(
	"quizroom_notify_failures_total",
	"Change notifications that failed or timed out",
	["sink"],
)

STORAGE_FAILURES = Counter(
	"quizroom_storage_failures_total",
	"Persistence operations that raised",
	["op"],
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


def inc_activity_created() -> None:
	ACTIVITIES_CREATED.inc()


def inc_activity_transition(transition: str) -> None:
	ACTIVITY_TRANSITIONS.labels(transition=transition).inc()


def inc_answer_submitted(is_correct: bool) -> None:
	ANSWERS_SUBMITTED.labels(result="correct" if is_correct else "incorrect").inc()


def inc_notify_failure(sink: str) -> None:
	NOTIFY_FAILURES.labels(sink=sink).inc()


def inc_storage_failure(op: str) -> None:
	STORAGE_FAILURES.labels(op=op).inc()
