"""AlertingService - composition root and management surface for the alerting core."""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from alerts.channels import ChannelRegistry, default_transports
from alerts.dispatcher import NotificationDispatcher
from alerts.engine import AlertEngine
from alerts.errors import AlertingError
from alerts.escalation import EscalationPolicyRegistry, EscalationScheduler
from alerts.history import NotificationHistory
from alerts.overview import SystemOverviewAggregator
from alerts.registry import ActiveAlertRegistry
from alerts.rules_manager import RulesManager
from config import resolve_rules_path
from models.metrics import MetricsSnapshot
from monitor.health import HealthMonitorFeed
from monitor.metrics import MetricsStore
from monitor.scheduler import EvaluationScheduler
from notifications.email_sender import EmailSender

logger = logging.getLogger("opsalert.alerts.service")


def _utcnow():
    return datetime.now(timezone.utc)


class AlertingService:
    """Owns every alerting component; constructed once and passed by reference.

    Collaborators that tests usually replace (metrics store, health feed,
    transports, timer factory, executor, clock) can be injected.
    """

    def __init__(self, config, rules=None, metrics=None, health=None, transports=None,
                 timer_factory=None, executor=None, clock=None):
        self.config = config
        settings = config["alerting"]
        self._clock = clock or _utcnow

        self.metrics = metrics or MetricsStore(
            retention_days=settings.get("metrics_retention_days", 7),
            max_age_seconds=settings.get("metric_max_age_seconds", 300),
            clock=self._clock,
        )
        self.health = health or HealthMonitorFeed()
        self.rules = rules if rules is not None else RulesManager(
            resolve_rules_path(config), default_cooldown=settings.get("default_cooldown_minutes", 15),
        )
        self.registry = ActiveAlertRegistry(clock=self._clock)
        self.history = NotificationHistory(settings.get("history_capacity", 1000))
        self.channels = ChannelRegistry.from_config(config)
        self.policies = EscalationPolicyRegistry.from_config(config)

        self.email_sender = EmailSender(config)
        self.dispatcher = NotificationDispatcher(
            transports or default_transports(self.email_sender),
            self.history,
            settings=settings,
            clock=self._clock,
        )
        self.scheduler = EscalationScheduler(
            self.registry, self.policies, self.channels, self.dispatcher,
            timer_factory=timer_factory,
        )
        self.registry.on_close(lambda alert, reason: self.scheduler.cancel(alert.id))

        self.engine = AlertEngine(
            self.rules, self.registry, self.metrics,
            escalate=self._submit_escalation,
            clock=self._clock,
            eq_tolerance=settings.get("eq_tolerance", 1e-9),
        )
        self.overview = SystemOverviewAggregator(self.metrics, self.registry, self.health, clock=self._clock)
        self.evaluation_loop = EvaluationScheduler(
            self.evaluate, interval_seconds=settings.get("evaluation_interval_seconds", 60),
        )
        self.health.subscribe(self.handle_health_change)

        self._executor = executor
        self._owns_executor = executor is None
        self._dispatch_workers = settings.get("dispatch_workers", 4)

    # ── lifecycle ────────────────────────────────────

    def start(self):
        if not self.config["alerting"].get("enabled", True):
            logger.warning("Alerting disabled in config; evaluation loop not started")
            return
        self._get_executor()
        self.evaluation_loop.start()
        logger.info("Alerting service started")

    def stop(self):
        self.evaluation_loop.stop()
        self.scheduler.shutdown()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.info("Alerting service shutdown completed")

    def drain(self):
        """Wait for submitted escalation hand-offs to finish their immediate step."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _get_executor(self):
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._dispatch_workers, thread_name_prefix="alert-dispatch",
            )
        return self._executor

    def _submit_escalation(self, alert, rule):
        future = self._get_executor().submit(self.scheduler.start, alert, rule)
        future.add_done_callback(lambda f: self._log_escalation_failure(alert, f))

    @staticmethod
    def _log_escalation_failure(alert, future):
        error = future.exception()
        if error is not None:
            logger.error(f"Escalation for {alert.id} failed: {error}")

    # ── evaluation inputs ────────────────────────────

    def evaluate(self):
        return self.engine.evaluate_all()

    def evaluate_metric(self, metric, value):
        return self.engine.evaluate_metric(metric, value)

    def record_metrics(self, snapshot):
        if isinstance(snapshot, dict):
            snapshot = MetricsSnapshot.from_dict(snapshot)
        self.metrics.record(snapshot)
        return snapshot

    def handle_health_change(self, from_status, to_status):
        return self.engine.handle_health_change(from_status, to_status)

    # ── rules ────────────────────────────────────────

    def get_alert_rules(self):
        return self.rules.get_all_rules()

    def add_alert_rule(self, data):
        return self.rules.add_rule(data)

    def update_alert_rule(self, rule_id, updates):
        return self.rules.update_rule(rule_id, updates)

    def delete_alert_rule(self, rule_id):
        """Delete a rule; its open alert, if any, is resolved first."""
        self.rules.get_rule(rule_id)
        self.registry.resolve(rule_id)
        self.rules.delete_rule(rule_id)

    # ── alerts ───────────────────────────────────────

    def get_active_alerts(self):
        return self.registry.get_active_alerts()

    def get_alert(self, alert_id):
        return self.registry.get(alert_id)

    def acknowledge_alert(self, alert_id, acknowledged_by):
        return self.registry.acknowledge(alert_id, acknowledged_by)

    # ── channels ─────────────────────────────────────

    def get_notification_channels(self):
        return self.channels.get_all()

    def add_notification_channel(self, data):
        return self.channels.add_channel(data)

    def update_notification_channel(self, channel_id, updates):
        return self.channels.update_channel(channel_id, updates)

    def delete_notification_channel(self, channel_id):
        self.channels.delete_channel(channel_id)

    def test_notification_channel(self, channel_id):
        """Send a synthetic alert through one channel. Never raises."""
        try:
            channel = self.channels.get_channel(channel_id)
        except AlertingError as e:
            logger.warning(f"Channel test failed: {e}")
            return False
        return self.dispatcher.test_channel(channel)

    # ── read models ──────────────────────────────────

    def get_notification_history(self, limit=100):
        return self.history.recent(limit)

    def get_escalation_policies(self):
        return self.policies.get_all()

    def get_system_overview(self):
        return self.overview.get_overview()

    def get_metrics_history(self, hours=24):
        return self.metrics.get_history(hours)
