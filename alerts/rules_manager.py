"""Alert rules loading and management."""
import logging
import threading
import uuid
from pathlib import Path

import yaml

from alerts.errors import ConfigurationError, NotFound
from models.alerts import AlertRule
from models.enums import MetricName, Operator, Severity

logger = logging.getLogger("opsalert.alerts.rules")

# Fields a management update may change; bookkeeping is owned by the evaluator
UPDATABLE_FIELDS = {
    "name", "description", "metric", "operator", "threshold", "severity",
    "cooldown_minutes", "escalation_policy_id", "enabled",
}


def build_rule(data, rule_id=None, default_cooldown=15):
    """Validate a raw dict and turn it into an AlertRule."""
    try:
        operator = Operator(data.get("operator"))
    except ValueError:
        raise ConfigurationError(f"Invalid operator in rule {data.get('id')}: {data.get('operator')}")
    try:
        severity = Severity(str(data.get("severity", "info")).lower())
    except ValueError:
        raise ConfigurationError(f"Invalid severity in rule {data.get('id')}: {data.get('severity')}")

    if not data.get("metric"):
        raise ConfigurationError(f"Rule {data.get('id')} has no metric")
    try:
        threshold = float(data["threshold"])
    except (KeyError, TypeError, ValueError):
        raise ConfigurationError(f"Rule {data.get('id')} has an invalid threshold")

    cooldown = float(data.get("cooldown_minutes", default_cooldown))
    if cooldown < 0:
        raise ConfigurationError(f"Rule {data.get('id')} has a negative cooldown")

    rid = rule_id or data.get("id") or f"rule_{uuid.uuid4().hex[:12]}"
    if data["metric"] not in {m.value for m in MetricName}:
        logger.debug(f"Rule {rid} watches custom metric {data['metric']}")
    return AlertRule(
        id=rid,
        name=data.get("name", rid),
        description=data.get("description", ""),
        metric=data["metric"],
        operator=operator,
        threshold=threshold,
        severity=severity,
        cooldown_minutes=cooldown,
        escalation_policy_id=data.get("escalation_policy_id"),
        enabled=data.get("enabled", True),
    )


class RulesManager:
    """In-memory store of alert rules, seeded from a YAML file."""

    def __init__(self, rules_path=None, default_cooldown=15):
        self.rules_path = Path(rules_path) if rules_path else None
        self.default_cooldown = default_cooldown
        self._rules = {}
        self._lock = threading.RLock()
        if self.rules_path is not None:
            self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            return
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        loaded = 0
        for raw in data.get("rules", []):
            try:
                rule = build_rule(raw, default_cooldown=self.default_cooldown)
            except ConfigurationError as e:
                logger.warning(f"Skipping rule: {e}")
                continue
            with self._lock:
                self._rules[rule.id] = rule
            loaded += 1
        logger.info(f"Loaded {loaded} alert rules from {self.rules_path}")

    def add_rule(self, data):
        """Create a rule from a dict; returns the new rule."""
        rule = build_rule(data, default_cooldown=self.default_cooldown)
        with self._lock:
            if rule.id in self._rules:
                raise ConfigurationError(f"Rule id already exists: {rule.id}")
            self._rules[rule.id] = rule
        logger.info(f"Alert rule added: {rule.id} ({rule.name})")
        return rule

    def update_rule(self, rule_id, updates):
        """Apply a partial update; unknown fields are rejected."""
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ConfigurationError(f"Cannot update rule fields: {sorted(unknown)}")
        with self._lock:
            rule = self.get_rule(rule_id)
            merged = rule.to_dict()
            merged.update(updates)
            candidate = build_rule(merged, rule_id=rule_id)
            for key in updates:
                setattr(rule, key, getattr(candidate, key))
        logger.info(f"Alert rule updated: {rule_id} ({rule.name})")
        return rule

    def delete_rule(self, rule_id):
        with self._lock:
            if rule_id not in self._rules:
                raise NotFound("rule", rule_id)
            del self._rules[rule_id]
        logger.info(f"Alert rule deleted: {rule_id}")

    def record_trigger(self, rule_id, when):
        """Bump trigger bookkeeping after an alert fires."""
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return
            rule.last_triggered = when
            rule.trigger_count += 1

    def get_rule(self, rule_id):
        with self._lock:
            rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFound("rule", rule_id)
        return rule

    def find_rule(self, rule_id):
        with self._lock:
            return self._rules.get(rule_id)

    def get_enabled_rules(self):
        with self._lock:
            return [r for r in self._rules.values() if r.enabled]

    def get_all_rules(self):
        with self._lock:
            return list(self._rules.values())

    def get_rules_for_metric(self, metric):
        return [r for r in self.get_enabled_rules() if r.metric == metric]
