"""Alert evaluation engine."""
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from alerts.errors import Conflict
from models.alerts import AlertRule
from models.enums import HealthStatus, Operator, Severity

logger = logging.getLogger("opsalert.alerts.engine")

SYSTEM_HEALTH_RULE_ID = "system_health"

OPERATOR_SYMBOLS = {
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
    Operator.EQ: "==",
    Operator.NE: "!=",
}

OPERATOR_MAP = {
    Operator.GT: lambda v, t: v > t,
    Operator.GTE: lambda v, t: v >= t,
    Operator.LT: lambda v, t: v < t,
    Operator.LTE: lambda v, t: v <= t,
}

HEALTH_SEVERITY = {
    HealthStatus.UNHEALTHY: Severity.CRITICAL,
    HealthStatus.DEGRADED: Severity.WARNING,
}


def apply_operator(operator, value, threshold, tolerance=1e-9):
    """Evaluate `value <operator> threshold`; eq/ne compare within an absolute tolerance."""
    operator = Operator(operator)
    if operator == Operator.EQ:
        return math.isclose(value, threshold, rel_tol=0.0, abs_tol=tolerance)
    if operator == Operator.NE:
        return not math.isclose(value, threshold, rel_tol=0.0, abs_tol=tolerance)
    return OPERATOR_MAP[operator](value, threshold)


@dataclass
class EvaluationResult:
    triggered: List = field(default_factory=list)
    resolved: List = field(default_factory=list)
    errors: List = field(default_factory=list)


def _utcnow():
    return datetime.now(timezone.utc)


class AlertEngine:
    """Applies rules to current metric values and drives trigger/resolve transitions.

    `escalate(alert, rule)` is called once per newly triggered alert; the
    service passes a callable that hands off to an executor so the tick never
    waits on notification transports.
    """

    def __init__(self, rules_manager, registry, source, escalate=None, clock=None, eq_tolerance=1e-9):
        self.rules_manager = rules_manager
        self.registry = registry
        self.source = source
        self.escalate = escalate
        self.eq_tolerance = eq_tolerance
        self._clock = clock or _utcnow
        self._rule_locks = {}
        self._locks_guard = threading.Lock()

    def _rule_lock(self, rule_id):
        with self._locks_guard:
            return self._rule_locks.setdefault(rule_id, threading.Lock())

    def _in_cooldown(self, rule, now):
        if rule.last_triggered is None:
            return False
        last = rule.last_triggered
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return now < last + timedelta(minutes=rule.cooldown_minutes)

    def _format_message(self, rule, value):
        symbol = OPERATOR_SYMBOLS[rule.operator]
        msg = f"{rule.name}: {rule.metric} = {value:.2f} {symbol} {rule.threshold:g}"
        if rule.description:
            msg += f" | {rule.description}"
        return msg

    def evaluate_all(self):
        """One evaluation tick over every enabled rule with a fresh metric value."""
        result = EvaluationResult()
        for rule in self.rules_manager.get_enabled_rules():
            try:
                value = self.source.get_metric_value(rule.metric)
                if value is None:
                    continue
                self._evaluate_rule(rule, value, result)
            except Exception as e:
                logger.exception(f"Failed to evaluate rule {rule.id}: {e}")
                result.errors.append(rule.id)
        if result.triggered or result.resolved:
            logger.info(f"Evaluation: {len(result.triggered)} triggered, {len(result.resolved)} resolved")
        return result

    def evaluate_metric(self, metric, value):
        """Event-driven evaluation of the rules watching one metric."""
        result = EvaluationResult()
        for rule in self.rules_manager.get_rules_for_metric(metric):
            try:
                self._evaluate_rule(rule, value, result)
            except Exception as e:
                logger.exception(f"Failed to evaluate rule {rule.id}: {e}")
                result.errors.append(rule.id)
        return result

    def _evaluate_rule(self, rule, value, result):
        with self._rule_lock(rule.id):
            breach = apply_operator(rule.operator, value, rule.threshold, self.eq_tolerance)
            existing = self.registry.get_open_for_rule(rule.id)

            if breach and existing is None:
                now = self._clock()
                if self._in_cooldown(rule, now):
                    logger.debug(f"Rule {rule.id} in cooldown, not triggering")
                    return
                try:
                    alert = self.registry.trigger(rule, value, message=self._format_message(rule, value))
                except Conflict:
                    logger.debug(f"Rule {rule.id} already has an open alert")
                    return
                self.rules_manager.record_trigger(rule.id, alert.triggered_at)
                result.triggered.append(alert)
                self._hand_off(alert, rule)
            elif breach and existing is not None:
                with self.registry.lock_for(existing.id):
                    existing.current_value = value
            elif not breach and existing is not None:
                self.registry.resolve(rule.id)
                result.resolved.append(existing)

    def _hand_off(self, alert, rule):
        if self.escalate is None:
            return
        try:
            self.escalate(alert, rule)
        except Exception as e:
            logger.error(f"Escalation hand-off failed for {alert.id}: {e}")

    def handle_health_change(self, from_status, to_status):
        """Synthesize or resolve the system_health alert on a status transition."""
        to_status = HealthStatus(to_status)
        logger.debug(f"Health transition {HealthStatus(from_status).value} -> {to_status.value}")

        with self._rule_lock(SYSTEM_HEALTH_RULE_ID):
            existing = self.registry.get_open_for_rule(SYSTEM_HEALTH_RULE_ID)
            severity = HEALTH_SEVERITY.get(to_status)

            if severity is None:
                if existing is not None:
                    self.registry.resolve(SYSTEM_HEALTH_RULE_ID)
                return None
            if existing is not None:
                if existing.severity == severity:
                    return existing
                self.registry.resolve(SYSTEM_HEALTH_RULE_ID)

            rule = AlertRule(
                id=SYSTEM_HEALTH_RULE_ID,
                name="System Health",
                description=f"System health is {to_status.value}",
                metric=SYSTEM_HEALTH_RULE_ID,
                severity=severity,
                cooldown_minutes=0,
            )
            alert = self.registry.trigger(rule, 0.0, message=rule.description)
            self._hand_off(alert, rule)
            return alert

    def test_rules(self):
        """Evaluate ALL rules ignoring cooldowns and state, for testing/validation."""
        results = []
        for rule in self.rules_manager.get_all_rules():
            value = self.source.get_metric_value(rule.metric)
            would_fire = (apply_operator(rule.operator, value, rule.threshold, self.eq_tolerance)
                          if value is not None else False)
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "metric": rule.metric,
                "operator": rule.operator.value,
                "threshold": rule.threshold,
                "current_value": value,
                "would_fire": would_fire,
                "severity": rule.severity.value,
                "enabled": rule.enabled,
            })
        return results

    def format_alert_summary(self, alerts):
        """Format alerts for display."""
        if not alerts:
            return "All clear - no active alerts."
        lines = []
        for a in alerts:
            icon = {"critical": "!!!", "warning": "!!", "info": "i"}.get(a.severity.value, "?")
            ack = " (ack)" if a.acknowledged else ""
            lines.append(f"[{icon}] [{a.severity.value.upper()}] {a.message}{ack}")
        return "\n".join(lines)
