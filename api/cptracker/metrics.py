from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

# Platform client metrics
platform_fetches = Counter(
    "cptracker_platform_fetches_total",
    "Total platform profile fetches",
    ["platform", "status"],  # status: success | not_found | error
)

platform_fetch_duration = Histogram(
    "cptracker_platform_fetch_duration_seconds",
    "Time to fetch one profile from one platform",
    ["platform"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0],
)

# Updater metrics
profile_updates = Counter(
    "cptracker_profile_updates_total",
    "Tracker refreshes by outcome",
    ["outcome"],  # outcome: updated | unchanged | missing | failed | error
)

# Scheduler metrics
scheduler_runs = Counter(
    "cptracker_scheduler_runs_total",
    "Scheduled job runs",
    ["job", "status"],  # status: success | error
)

leaderboard_cache = Counter(
    "cptracker_leaderboard_cache_total",
    "Leaderboard snapshot cache lookups",
    ["result"],  # result: hit | miss | error | bypass
)

# HTTP request metrics (from middleware)
http_requests = Counter(
    "cptracker_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration = Histogram(
    "cptracker_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


async def metrics_endpoint():
    """FastAPI endpoint handler that returns Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
