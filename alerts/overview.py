"""System overview: a derived read model over metrics, health, and alerts."""
from datetime import datetime, timezone


class SystemOverviewAggregator:
    """Recomputes the overview on every call; holds no state of its own."""

    def __init__(self, metrics, registry, health=None, clock=None):
        self.metrics = metrics
        self.registry = registry
        self.health = health
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_overview(self):
        snapshot = self.metrics.latest()
        counts = self.registry.counts_by_severity()
        status = self.health.current_status.value if self.health else "unknown"

        return {
            "status": status,
            "uptime": snapshot.uptime_seconds if snapshot else 0,
            "total_requests": snapshot.total_requests if snapshot else 0,
            "error_rate": snapshot.error_rate if snapshot else 0.0,
            "average_response_time": snapshot.avg_response_time if snapshot else 0.0,
            "system_load": {
                "cpu": snapshot.cpu_usage if snapshot else 0.0,
                "memory": snapshot.memory_usage if snapshot else 0.0,
                "db_pool": snapshot.db_pool_utilization if snapshot else 0.0,
            },
            "alerts": counts,
            "metrics_as_of": snapshot.timestamp.isoformat() if snapshot else None,
            "last_update": self._clock().isoformat(),
        }
