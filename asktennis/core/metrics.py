"""
Prometheus metrics for the AskTennis stats API.

Metrics exposed:
- Sync run counters, duration histogram and upserted-record counters
- Provider (Sportradar) request counters
- Query cache hit/miss/invalidation counters and size gauge
- Database connection pool gauges
- Scheduler status gauge
"""
from prometheus_client import Counter, Gauge, Histogram

# Sync Metrics
sync_runs_total = Counter(
    "sync_runs_total",
    "Total sync runs by trigger and final status",
    ["trigger", "status"]
)

sync_duration_seconds = Histogram(
    "sync_duration_seconds",
    "Duration of completed sync runs in seconds",
    ["trigger"]
)

sync_records_upserted_total = Counter(
    "sync_records_upserted_total",
    "Records upserted into the store by entity type",
    ["entity"]
)

sync_batches_failed_total = Counter(
    "sync_batches_failed_total",
    "Ingestion batches rolled back",
    ["batch_kind"]
)

# Provider Metrics
provider_requests_total = Counter(
    "provider_requests_total",
    "Sportradar requests by endpoint and outcome",
    ["endpoint", "outcome"]
)

# Query Cache Metrics
query_cache_requests_total = Counter(
    "query_cache_requests_total",
    "Query cache lookups by result",
    ["result"]
)

query_cache_invalidations_total = Counter(
    "query_cache_invalidations_total",
    "Full query cache invalidations"
)

query_cache_size = Gauge(
    "query_cache_size",
    "Number of live entries in the query cache"
)

# Database Metrics
db_pool_connections = Gauge(
    "db_pool_connections",
    "Number of database connections in the pool"
)

db_pool_connections_checked_out = Gauge(
    "db_pool_connections_checked_out",
    "Number of checked out database connections"
)

# Scheduler Metrics
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the background sync scheduler is running (1) or not (0)"
)


def update_db_pool_metrics():
    """
    Update database connection pool metrics from the SQLAlchemy engine.

    Pools without size accounting (SQLite StaticPool) are skipped.
    """
    from asktennis.core.database import engine

    pool = engine.pool
    try:
        db_pool_connections.set(pool.size())
        db_pool_connections_checked_out.set(pool.checkedout())
    except AttributeError:
        pass


def update_scheduler_metrics():
    """Update scheduler status gauge."""
    from asktennis.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    scheduler_running.set(1 if scheduler and scheduler.running else 0)


def record_provider_request(endpoint: str, outcome: str):
    """Record a Sportradar request outcome (success, http_error, timeout, ...)."""
    provider_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()


def record_cache_lookup(hit: bool):
    """Record a query cache hit or miss."""
    query_cache_requests_total.labels(result="hit" if hit else "miss").inc()


def record_sync_run(trigger: str, status: str, duration_seconds: float | None = None):
    """Record a finished sync run."""
    sync_runs_total.labels(trigger=trigger, status=status).inc()
    if duration_seconds is not None:
        sync_duration_seconds.labels(trigger=trigger).observe(duration_seconds)


def record_upserts(counts: dict[str, int]):
    """Record per-entity upsert counts from a committed batch."""
    for entity, count in counts.items():
        if count:
            sync_records_upserted_total.labels(entity=entity).inc(count)
