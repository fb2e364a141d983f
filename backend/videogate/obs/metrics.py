"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

log = logging.getLogger(__name__)


REQUEST_COUNTER = Counter(
	"videogate_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"videogate_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 15.0, 60.0),
)

GATE_DECISIONS = Counter(
	"videogate_gate_decisions_total",
	"Admission decisions taken by the gate",
	["outcome"],
)

GATE_BANS = Counter(
	"videogate_bans_total",
	"Clients banned, by the quota that was crossed",
	["reason"],
)

BYTES_SERVED = Counter(
	"videogate_bytes_served_total",
	"Video bytes handed to clients",
)

PARTIAL_READS_FORCED = Counter(
	"videogate_partial_reads_forced_total",
	"Isolated small reads counted as full views",
)

STORE_FAILURES = Counter(
	"videogate_store_failures_total",
	"Counter store calls that failed",
	["operation"],
)

REDIS_UP = Gauge(
	"videogate_redis_up",
	"Redis readiness probe result (1=up)",
)

REDIS_LATENCY = Histogram(
	"videogate_redis_ping_seconds",
	"Redis readiness probe latency",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_decision(outcome: str) -> None:
	GATE_DECISIONS.labels(outcome=outcome).inc()


def inc_ban(reason: str) -> None:
	GATE_BANS.labels(reason=reason).inc()


def add_bytes_served(count: int) -> None:
	if count > 0:
		BYTES_SERVED.inc(count)


def inc_partial_read_forced() -> None:
	PARTIAL_READS_FORCED.inc()


def inc_store_failure(operation: str) -> None:
	STORE_FAILURES.labels(operation=operation).inc()


def mark_redis(ok: bool, latency_seconds: Optional[float] = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if ok and latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
