"""Metric intake, health feed, and the evaluation loop."""
from monitor.metrics import MetricSource, MetricsStore
from monitor.health import HealthMonitorFeed
from monitor.scheduler import EvaluationScheduler
