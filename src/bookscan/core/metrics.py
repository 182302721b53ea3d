from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
)

EXTERNAL_API_COUNT = Counter(
    "external_api_requests_total",
    "Total number of external lookup requests by outcome",
    ["source", "status"],
)

EXTERNAL_API_DURATION = Histogram(
    "external_api_duration_seconds",
    "Duration of external lookup requests in seconds",
    ["source"],
)

SCAN_EVENTS = Counter(
    "scan_events_total",
    "Raw decode events by controller outcome",
    ["outcome"],
)

SCAN_FEEDBACK = Counter(
    "scan_feedback_total",
    "Feedback signals emitted to the caller",
    ["kind"],
)

CATALOG_WRITES = Counter(
    "catalog_writes_total",
    "Catalog store writes by operation and result",
    ["operation", "status"],
)
