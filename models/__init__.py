"""Data models."""
from models.enums import Severity, Operator, ChannelType, HealthStatus, MetricName, SEVERITY_RANK
from models.metrics import MetricsSnapshot
from models.alerts import AlertRule, ActiveAlert
from models.channels import (
    EmailConfig, WebhookConfig, ChatConfig, SmsConfig, NotificationChannel,
    EscalationRule, EscalationPolicy, NotificationHistoryEntry,
)
