"""Prometheus metrics for the CNWAN operator."""

from prometheus_client import Counter, Histogram, Gauge, Info

# Reconciliation metrics
RECONCILE_TOTAL = Counter(
    "cnwan_operator_reconcile_total",
    "Total number of service reconciliations",
    ["operation", "status"],
)

RECONCILE_DURATION = Histogram(
    "cnwan_operator_reconcile_duration_seconds",
    "Time spent in service reconciliation",
    ["operation"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

RECONCILE_IN_PROGRESS = Gauge(
    "cnwan_operator_reconcile_in_progress",
    "Number of reconciliations currently in progress",
)

# Per-endpoint operations issued during a reconciliation
ENDPOINT_OPERATIONS = Counter(
    "cnwan_operator_endpoint_operations_total",
    "Total number of endpoint operations",
    ["operation", "status"],
)

NAMESPACE_ROLLBACKS = Counter(
    "cnwan_operator_namespace_rollbacks_total",
    "Total number of namespaces removed after a failed service creation",
    ["status"],
)

# Service Directory API metrics
SD_API_CALLS = Counter(
    "cnwan_operator_servicedirectory_api_calls_total",
    "Total number of Service Directory API calls",
    ["operation", "status"],
)

SD_API_DURATION = Histogram(
    "cnwan_operator_servicedirectory_api_duration_seconds",
    "Time spent in Service Directory API calls",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Operator info
OPERATOR_INFO = Info(
    "cnwan_operator",
    "Information about the CNWAN operator",
)


def set_operator_info(version: str, project: str, region: str) -> None:
    """Set operator info labels."""
    OPERATOR_INFO.info({"version": version, "project": project, "region": region})


def init_metrics() -> None:
    """Initialize all metrics with zero values.

    Prometheus metrics with labels don't appear until used.
    This ensures all metrics are visible immediately at startup.
    """
    statuses = ["success", "error"]

    RECONCILE_IN_PROGRESS.set(0)
    for operation in ["create_or_update", "delete"]:
        RECONCILE_DURATION.labels(operation=operation)
        for status in statuses:
            RECONCILE_TOTAL.labels(operation=operation, status=status)

    for operation in ["create", "update", "delete"]:
        for status in statuses:
            ENDPOINT_OPERATIONS.labels(operation=operation, status=status)

    for status in statuses:
        NAMESPACE_ROLLBACKS.labels(status=status)
