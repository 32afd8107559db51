"""
Prometheus metrics for the Syncer Service.

Provides metric instruments for batch outcomes, sync sweeps and
authentication state, plus a helper exposing them over HTTP.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

files_processed_total = Counter(
    "drivesync_files_processed_total",
    "Drive file records processed by the batch processor",
    ["status"],
)
users_processed_total = Counter(
    "drivesync_users_processed_total",
    "File records whose owner was resolved to a user row",
)
batch_duration = Histogram(
    "drivesync_batch_duration_seconds",
    "Time to process one sync batch",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
sync_cycles_total = Counter(
    "drivesync_sync_cycles_total",
    "Full sync sweeps by outcome",
    ["status"],
)
auth_transitions_total = Counter(
    "drivesync_auth_transitions_total",
    "Authentication state transitions by target state",
    ["state"],
)
queue_depth = Gauge(
    "drivesync_queue_depth",
    "Sync jobs waiting in the job queue",
)


def start_metrics_server(port: int) -> None:
    """
    Expose Prometheus metrics on a background HTTP server.

    Args:
        port: TCP port to listen on.
    """
    start_http_server(port)
