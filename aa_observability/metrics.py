"""
Prometheus metrics for the ingestion pipeline.

This module does NOT start a standalone HTTP server. The ops API mounts the
ASGI exporter:

    from prometheus_client import make_asgi_app
    app.mount("/metrics", make_asgi_app())

For the CLI, set METRICS_HTTP_SERVER=1 and call maybe_start_http_server().
"""
from __future__ import annotations

import os
import threading
from typing import Any, Dict, Tuple, Type

from prometheus_client import Counter, Histogram, start_http_server

# ----------------------------
# Optional standalone server
# ----------------------------
_METRICS_PORT = int(os.getenv("METRICS_PORT", "8001"))
_server_started = False
_server_lock = threading.Lock()


def maybe_start_http_server() -> None:
    """Start a sidecar metrics server once, only if METRICS_HTTP_SERVER=1."""
    global _server_started
    if _server_started or os.getenv("METRICS_HTTP_SERVER") != "1":
        return
    with _server_lock:
        if not _server_started:
            start_http_server(_METRICS_PORT)
            _server_started = True


# ----------------------------
# Registration helper (avoid duplicate collectors)
# ----------------------------
_METRICS: Dict[Tuple[Type[Any], str], Any] = {}


def get_metric(cls: Type[Any], name: str, *args, **kwargs):
    key = (cls, name)
    if key in _METRICS:
        return _METRICS[key]
    metric = cls(name, *args, **kwargs)
    _METRICS[key] = metric
    return metric


# ----------------------------
# AA client
# ----------------------------
aa_http_requests_total = get_metric(
    Counter,
    "aa_http_requests_total",
    "HTTP requests sent to the Account Aggregator",
    ["endpoint", "status"],
)

aa_http_latency_seconds = get_metric(
    Histogram,
    "aa_http_latency_seconds",
    "Latency of Account Aggregator requests in seconds",
    ["endpoint"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

aa_auth_logins_total = get_metric(
    Counter,
    "aa_auth_logins_total",
    "Login calls issued to obtain a bearer token",
    ["result"],
)

# ----------------------------
# Pipeline
# ----------------------------
aa_mapping_field_errors_total = get_metric(
    Counter,
    "aa_mapping_field_errors_total",
    "Provider fields that failed coercion and were stored as null",
    ["kind"],
)

aa_records_written_total = get_metric(
    Counter,
    "aa_records_written_total",
    "Canonical/derived rows processed by the persistence writer",
    ["table", "result"],
)

aa_plan_runs_total = get_metric(
    Counter,
    "aa_plan_runs_total",
    "Completed plan runs by outcome",
    ["plan", "status"],
)
