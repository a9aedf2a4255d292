"""Dataclasses for alert rules and active alerts."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.enums import Operator, Severity


@dataclass
class AlertRule:
    id: str = ""
    name: str = ""
    description: str = ""
    metric: str = ""
    operator: Operator = Operator.GT
    threshold: float = 0.0
    severity: Severity = Severity.INFO
    cooldown_minutes: float = 15
    escalation_policy_id: Optional[str] = None
    enabled: bool = True
    last_triggered: Optional[datetime] = None
    trigger_count: int = 0

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metric": self.metric,
            "operator": self.operator.value,
            "threshold": self.threshold,
            "severity": self.severity.value,
            "cooldown_minutes": self.cooldown_minutes,
            "escalation_policy_id": self.escalation_policy_id,
            "enabled": self.enabled,
            "last_triggered": self.last_triggered.isoformat() if self.last_triggered else None,
            "trigger_count": self.trigger_count,
        }


@dataclass
class ActiveAlert:
    id: str = ""
    rule_id: str = ""
    rule_name: str = ""
    metric: str = ""
    current_value: float = 0.0
    threshold: float = 0.0
    severity: Severity = Severity.INFO
    message: str = ""
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_notified: Optional[datetime] = None
    notification_count: int = 0
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self):
        """True while the alert should still escalate."""
        return not self.resolved and not self.acknowledged

    def to_dict(self):
        def _iso(dt):
            return dt.isoformat() if dt else None

        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "metric": self.metric,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "severity": self.severity.value,
            "message": self.message,
            "triggered_at": _iso(self.triggered_at),
            "last_notified": _iso(self.last_notified),
            "notification_count": self.notification_count,
            "acknowledged": self.acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _iso(self.acknowledged_at),
            "resolved": self.resolved,
            "resolved_at": _iso(self.resolved_at),
        }
