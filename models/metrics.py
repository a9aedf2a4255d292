"""Dataclass for operational metrics snapshots."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class MetricsSnapshot:
    cpu_usage: float = 0.0  # percent
    memory_usage: float = 0.0  # percent
    error_rate: float = 0.0  # fraction of requests, 0..1
    avg_response_time: float = 0.0  # milliseconds
    db_pool_utilization: float = 0.0  # percent
    uptime_seconds: float = 0.0
    total_requests: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    extra: dict = field(default_factory=dict)

    def value_of(self, metric_name) -> Optional[float]:
        """Look up a metric by name, falling back to the extra dict."""
        if metric_name in self.extra:
            return self.extra[metric_name]
        field_map = {
            "cpu_usage": self.cpu_usage,
            "memory_usage": self.memory_usage,
            "error_rate": self.error_rate,
            "avg_response_time": self.avg_response_time,
            "db_pool_utilization": self.db_pool_utilization,
        }
        return field_map.get(metric_name)

    def to_dict(self):
        d = {
            "timestamp": self.timestamp.isoformat(),
            "cpu_usage": self.cpu_usage,
            "memory_usage": self.memory_usage,
            "error_rate": self.error_rate,
            "avg_response_time": self.avg_response_time,
            "db_pool_utilization": self.db_pool_utilization,
            "uptime_seconds": self.uptime_seconds,
            "total_requests": self.total_requests,
        }
        d.update(self.extra)
        return d

    @classmethod
    def from_dict(cls, d):
        """Build a snapshot from a flat dict; unknown numeric keys land in extra."""
        ts = d.get("timestamp")
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        if isinstance(ts, datetime) and ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        elif ts is None:
            ts = datetime.now(timezone.utc)

        known = {"timestamp", "cpu_usage", "memory_usage", "error_rate", "avg_response_time",
                 "db_pool_utilization", "uptime_seconds", "total_requests"}
        extra = {k: float(v) for k, v in d.items() if k not in known and isinstance(v, (int, float))}

        return cls(
            cpu_usage=float(d.get("cpu_usage", 0)),
            memory_usage=float(d.get("memory_usage", 0)),
            error_rate=float(d.get("error_rate", 0)),
            avg_response_time=float(d.get("avg_response_time", 0)),
            db_pool_utilization=float(d.get("db_pool_utilization", 0)),
            uptime_seconds=float(d.get("uptime_seconds", 0)),
            total_requests=int(d.get("total_requests", 0)),
            timestamp=ts,
            extra=extra,
        )
