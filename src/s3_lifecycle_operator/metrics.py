"""Prometheus metrics for the S3 Lifecycle Operator."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

reconcile_total = Counter(
    "s3lifecycle_reconcile_total",
    "Reconciliations by kind and result",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "s3lifecycle_reconcile_duration_seconds",
    "Duration of reconciliations",
    ["kind"],
)

lifecycle_operations_total = Counter(
    "s3lifecycle_lifecycle_operations_total",
    "Lifecycle configuration operations by type and result",
    ["operation", "result"],
)

api_call_total = Counter(
    "s3lifecycle_api_call_total",
    "Remote API calls by API type, operation and result",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "s3lifecycle_api_call_duration_seconds",
    "Duration of remote API calls",
    ["api_type", "operation"],
)

stabilization_attempts = Histogram(
    "s3lifecycle_stabilization_attempts",
    "Reads needed before the lifecycle configuration stabilized",
    buckets=(1, 2, 3, 4, 6, 8, 12, 16, 24, 32),
)

stabilization_timeouts_total = Counter(
    "s3lifecycle_stabilization_timeouts_total",
    "Stabilization waits that exhausted their budget",
)

drift_detected_total = Counter(
    "s3lifecycle_drift_detected_total",
    "Drift detections by kind and resource type",
    ["kind", "resource_type"],
)
