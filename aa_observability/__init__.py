"""Prometheus metrics for the AA ingestion services."""

from .metrics import (aa_auth_logins_total, aa_http_latency_seconds,
                      aa_http_requests_total, aa_mapping_field_errors_total,
                      aa_plan_runs_total, aa_records_written_total)

__all__ = [
    "aa_auth_logins_total",
    "aa_http_latency_seconds",
    "aa_http_requests_total",
    "aa_mapping_field_errors_total",
    "aa_plan_runs_total",
    "aa_records_written_total",
]
