from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "HTTP requests that ended in a 5xx",
    ["method", "path", "status"],
)

WEBHOOK_EVENTS = Counter(
    "billing_webhook_events_total",
    "Verified provider events by type and outcome",
    ["event_type", "outcome"],
)
ENTITLEMENT_WRITES = Counter(
    "billing_entitlement_writes_total",
    "Entitlement tuple writes, split into applied and skipped-as-stale",
    ["outcome"],
)
RECONCILE_RUNS = Counter(
    "billing_reconcile_customers_total",
    "Customers visited by the reconciliation sweep by outcome",
    ["outcome"],
)
