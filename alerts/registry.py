"""Active alert registry: lifecycle state machine for in-flight incidents.

An alert starts out triggered and ends resolved. Acknowledgement is a flag
on top of that, so an alert can be resolved with or without having been
acknowledged. At most one unresolved alert exists per rule id.

Every mutation on a single alert runs under that alert's lock. Close hooks
(acknowledge or resolve) run while the lock is still held, which is how the
escalation scheduler cancels pending timers before the call returns.
"""
import logging
import threading
import uuid
from datetime import datetime, timezone

from alerts.errors import Conflict, NotFound
from models.alerts import ActiveAlert
from models.enums import SEVERITY_RANK, Severity

logger = logging.getLogger("opsalert.alerts.registry")


def _utcnow():
    return datetime.now(timezone.utc)


class ActiveAlertRegistry:
    def __init__(self, clock=None):
        self._clock = clock or _utcnow
        self._alerts = {}
        self._open_by_rule = {}
        self._alert_locks = {}
        self._lock = threading.RLock()
        self._close_hooks = []

    def on_close(self, hook):
        """Register hook(alert, reason) run under the alert lock on acknowledge/resolve."""
        self._close_hooks.append(hook)

    def lock_for(self, alert_id):
        with self._lock:
            lock = self._alert_locks.get(alert_id)
            if lock is None:
                lock = threading.RLock()
                self._alert_locks[alert_id] = lock
            return lock

    # ── transitions ──────────────────────────────────

    def trigger(self, rule, value, message=None):
        """Open a new alert for rule. Raises Conflict if one is already open."""
        with self._lock:
            existing_id = self._open_by_rule.get(rule.id)
            if existing_id is not None:
                raise Conflict(rule.id, existing_id)

            alert = ActiveAlert(
                id=f"alert_{uuid.uuid4().hex[:12]}",
                rule_id=rule.id,
                rule_name=rule.name,
                metric=rule.metric,
                current_value=value,
                threshold=rule.threshold,
                severity=rule.severity,
                message=message or rule.description or rule.name,
                triggered_at=self._clock(),
            )
            self._alerts[alert.id] = alert
            self._open_by_rule[rule.id] = alert.id
            self._alert_locks[alert.id] = threading.RLock()

        logger.warning(
            f"Alert triggered: {alert.id} rule={rule.id} severity={alert.severity.value} "
            f"value={value} threshold={rule.threshold}"
        )
        return alert

    def acknowledge(self, alert_id, by):
        """Mark an alert acknowledged. Acknowledging twice is a no-op."""
        alert = self.get(alert_id)
        with self.lock_for(alert_id):
            if alert.acknowledged:
                return alert
            alert.acknowledged = True
            alert.acknowledged_by = by
            alert.acknowledged_at = self._clock()
            self._run_close_hooks(alert, "acknowledged")
        logger.info(f"Alert acknowledged: {alert_id} by {by}")
        return alert

    def resolve(self, rule_id):
        """Resolve the open alert for rule_id, if any. Returns it or None."""
        with self._lock:
            alert_id = self._open_by_rule.get(rule_id)
        if alert_id is None:
            return None
        return self.resolve_alert(alert_id)

    def resolve_alert(self, alert_id):
        alert = self.get(alert_id)
        with self.lock_for(alert_id):
            if alert.resolved:
                return alert
            alert.resolved = True
            alert.resolved_at = self._clock()
            with self._lock:
                if self._open_by_rule.get(alert.rule_id) == alert_id:
                    del self._open_by_rule[alert.rule_id]
            self._run_close_hooks(alert, "resolved")

        duration = (alert.resolved_at - alert.triggered_at).total_seconds()
        logger.info(f"Alert resolved: {alert_id} rule={alert.rule_id} after {duration:.0f}s")
        return alert

    def _run_close_hooks(self, alert, reason):
        for hook in self._close_hooks:
            try:
                hook(alert, reason)
            except Exception as e:
                logger.error(f"Close hook failed for {alert.id}: {e}")

    # ── queries ──────────────────────────────────────

    def get(self, alert_id):
        with self._lock:
            alert = self._alerts.get(alert_id)
        if alert is None:
            raise NotFound("alert", alert_id)
        return alert

    def get_open_for_rule(self, rule_id):
        with self._lock:
            alert_id = self._open_by_rule.get(rule_id)
            return self._alerts.get(alert_id) if alert_id else None

    def get_active_alerts(self):
        """Unresolved alerts, most severe first, newest first within a severity."""
        with self._lock:
            active = [a for a in self._alerts.values() if not a.resolved]
        active.sort(key=lambda a: a.triggered_at, reverse=True)
        active.sort(key=lambda a: SEVERITY_RANK[a.severity])
        return active

    def get_all(self):
        with self._lock:
            return list(self._alerts.values())

    def counts_by_severity(self):
        active = self.get_active_alerts()
        counts = {"active": len(active)}
        for sev in Severity:
            counts[sev.value] = sum(1 for a in active if a.severity == sev)
        return counts

    def clear(self):
        """Drop all alerts, resolved history included."""
        with self._lock:
            self._alerts.clear()
            self._open_by_rule.clear()
            self._alert_locks.clear()
