"""
Prometheus metrics for the entitlement service.

Custom metrics for business logic and performance monitoring.
"""

from prometheus_client import Counter, Histogram

# HTTP metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
)

# Verification metrics
activation_verifications_total = Counter(
    "activation_verifications_total",
    "Total activation verifications by outcome",
    ["outcome"],
)

activation_reconciliation_source_total = Counter(
    "activation_reconciliation_source_total",
    "Reconciliation source that decided a verification",
    ["source"],
)

device_bindings_total = Counter(
    "device_bindings_total",
    "Total first-use device bindings",
)

# Entitlement metrics
entitlements_created_total = Counter(
    "entitlements_created_total",
    "Total entitlement records created",
    ["plan"],
)

entitlement_cascade_updates_total = Counter(
    "entitlement_cascade_updates_total",
    "Entitlement records updated by lifecycle cascades",
    ["kind", "result"],
)

# Lifecycle metrics
lifecycle_transitions_total = Counter(
    "lifecycle_transitions_total",
    "Total lifecycle transitions",
    ["kind", "result"],
)

# Webhook metrics
webhook_events_total = Counter(
    "webhook_events_total",
    "Total billing webhook events",
    ["event_type", "result"],
)

# Billing provider metrics
billing_oracle_duration_seconds = Histogram(
    "billing_oracle_duration_seconds",
    "Billing oracle call duration in seconds",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

billing_oracle_errors_total = Counter(
    "billing_oracle_errors_total",
    "Total billing oracle errors",
    ["operation", "error_type"],
)

# Event handler metrics
event_handler_failures_total = Counter(
    "event_handler_failures_total",
    "Domain event handler failures",
    ["event_type", "handler"],
)

# Error metrics
errors_total = Counter(
    "errors_total",
    "Total errors",
    ["error_type", "endpoint"],
)
