"""Prometheus metrics for Peddler."""

from prometheus_client import Counter, Gauge, Histogram, Info

from peddler import __version__

# Application info
app_info = Info("peddler", "Peddler application info")
app_info.info({"version": __version__, "name": "peddler"})

# Watcher run metrics
watcher_runs_total = Counter(
    "watcher_runs_total",
    "Total number of watcher executions",
    ["marketplace", "status"],
)

watcher_run_duration_seconds = Histogram(
    "watcher_run_duration_seconds",
    "Time spent executing a single watcher",
    ["marketplace"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

collector_retries_total = Counter(
    "collector_retries_total",
    "Source Collector calls retried after a transient failure",
    ["marketplace"],
)

# Item metrics
items_observed_total = Counter(
    "items_observed_total",
    "Items returned by collectors after filtering",
    ["watcher_id"],
)

item_events_total = Counter(
    "item_events_total",
    "Classified item events",
    ["kind"],
)

item_failures_total = Counter(
    "item_failures_total",
    "Items skipped because of a processing failure",
    ["watcher_id"],
)

# Notification metrics
notifications_total = Counter(
    "notifications_total",
    "Channel deliveries attempted",
    ["channel", "status"],
)

# Batch metrics
batch_runs_total = Counter(
    "batch_runs_total",
    "Total number of batch runs",
    ["trigger"],
)

batch_last_run_timestamp = Gauge(
    "batch_last_run_timestamp",
    "Timestamp of the last completed batch run",
)
