"""
Metrics for the league live-match services.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
MATCH_TRANSITIONS = Counter(
    "ll_match_transitions_total",
    "Phase state machine operations",
    ["operation", "outcome"],
)
STANDINGS_RECONCILIATIONS = Counter(
    "ll_standings_reconciliations_total",
    "Successful two-team aggregate reconciliations",
    ["bucket"],
)
STANDINGS_RECONCILIATION_FAILURES = Counter(
    "ll_standings_reconciliation_failures_total",
    "Aggregate reconciliations that failed on write",
    ["bucket"],
)
TICK_AUTO_TRANSITIONS = Counter(
    "ll_tick_auto_transitions_total",
    "Transitions fired by the tick driver",
    ["operation"],
)
TICK_ERRORS = Counter(
    "ll_tick_errors_total",
    "Per-match evaluation failures in the tick driver",
)

# ── Histograms ──────────────────────────────────────────────────────────
RECONCILIATION_LATENCY = Histogram(
    "ll_reconciliation_latency_seconds",
    "Time to load, recompute and persist a team aggregate pair",
    ["bucket"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# ── Gauges ──────────────────────────────────────────────────────────────
LIVE_MATCHES = Gauge(
    "ll_live_matches",
    "Number of live matches tracked by the tick driver",
)

# ── Info ────────────────────────────────────────────────────────────────
SERVICE_INFO = Info("ll_service", "Service build information")


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        histogram.labels(**labels).observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
