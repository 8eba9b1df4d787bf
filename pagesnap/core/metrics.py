from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Request-level counters
# ---------------------------------------------------------------------------
capture_requests_total = Counter(
    "capture_requests_total",
    "Total screenshot requests by outcome",
    ["status"],
)

# ---------------------------------------------------------------------------
# Attempt-level metrics
# ---------------------------------------------------------------------------
capture_attempts_total = Counter(
    "capture_attempts_total",
    "Capture attempts by protection tier, device class and outcome",
    ["tier", "device_class", "outcome"],
)
capture_duration_seconds = Histogram(
    "capture_duration_seconds",
    "Duration of a single capture attempt in seconds",
    ["tier"],
    buckets=[1, 2, 5, 10, 20, 30, 60, 120, 180, 300],
)
upload_attempts_total = Counter(
    "upload_attempts_total",
    "Storage upload attempts by outcome",
    ["outcome"],
)
challenge_outcomes_total = Counter(
    "challenge_outcomes_total",
    "Challenge pages seen during enhanced captures, by final state",
    ["state"],
)

# ---------------------------------------------------------------------------
# Browser sessions
# ---------------------------------------------------------------------------
active_browser_sessions = Gauge(
    "active_browser_sessions",
    "Browser sessions currently open (one per in-flight attempt)",
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
