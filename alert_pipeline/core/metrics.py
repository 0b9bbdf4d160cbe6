"""
Prometheus metrics for the alert pipeline.

Metrics are module globals so every scheduler in the process reports into the
same series. Labels are bounded enums; alert and recipient ids never appear.
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)


SCHEDULED_ALERTS_TOTAL = Counter(
    "alert_pipeline_scheduled_alerts_total",
    "Scheduled alerts handled by the execution scheduler, by outcome",
    ["outcome"],
)
DELIVERIES_TOTAL = Counter(
    "alert_pipeline_deliveries_total",
    "Per-recipient notification outcomes, by status",
    ["status"],
)
SCHEDULER_RUNNING = Gauge(
    "alert_pipeline_scheduler_running",
    "1 while an execution tick is in progress",
)
TICK_DURATION_SECONDS = Histogram(
    "alert_pipeline_tick_duration_seconds",
    "Wall time of one execution tick",
    buckets=(0.1, 0.5, 1, 5, 15, 30, 60, 120, 300),
)
EXPIRED_DEACTIVATED_TOTAL = Counter(
    "alert_pipeline_expired_deactivated_total",
    "Scheduled alerts deactivated by the expiry sweep",
)


_server_started = False


def start_metrics_server(port: Optional[int]) -> bool:
    """Expose /metrics on ``port`` once per process. Returns whether a server was started."""
    global _server_started
    if not port or _server_started:
        return False
    start_http_server(port)
    _server_started = True
    logger.info("Prometheus metrics exposed on port %d", port)
    return True
