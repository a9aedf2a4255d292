"""Metric source contract and an in-memory snapshot store."""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, runtime_checkable

from models.metrics import MetricsSnapshot

logger = logging.getLogger("opsalert.monitor.metrics")


@runtime_checkable
class MetricSource(Protocol):
    def get_metric_value(self, name: str) -> Optional[float]: ...

    def latest(self) -> Optional[MetricsSnapshot]: ...


def _utcnow():
    return datetime.now(timezone.utc)


class MetricsStore:
    """Snapshots pushed by external collectors, kept for `retention_days`.

    Implements MetricSource over the most recent snapshot. Values older than
    `max_age_seconds` are reported as missing so stale data never triggers
    or resolves an alert.
    """

    def __init__(self, retention_days=7, max_age_seconds=300, clock=None):
        self.retention = timedelta(days=retention_days)
        self.max_age = timedelta(seconds=max_age_seconds) if max_age_seconds else None
        self._clock = clock or _utcnow
        self._snapshots = []
        self._lock = threading.Lock()

    def record(self, snapshot):
        cutoff = self._clock() - self.retention
        with self._lock:
            self._snapshots.append(snapshot)
            self._snapshots = [s for s in self._snapshots if s.timestamp > cutoff]
        logger.debug(
            f"Metrics: cpu={snapshot.cpu_usage:.1f}% mem={snapshot.memory_usage:.1f}% "
            f"err={snapshot.error_rate:.3f} latency={snapshot.avg_response_time:.0f}ms"
        )

    def latest(self):
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def is_fresh(self, snapshot):
        if snapshot is None:
            return False
        if self.max_age is None:
            return True
        return self._clock() - snapshot.timestamp <= self.max_age

    def get_metric_value(self, name):
        snapshot = self.latest()
        if not self.is_fresh(snapshot):
            return None
        return snapshot.value_of(name)

    def get_history(self, hours=24):
        """Snapshots from the last `hours` hours, oldest first."""
        cutoff = self._clock() - timedelta(hours=hours)
        with self._lock:
            return [s for s in self._snapshots if s.timestamp > cutoff]
