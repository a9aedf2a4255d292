"""Dataclasses for notification channels, escalation policies, and history."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from models.enums import ChannelType, Severity


@dataclass
class EmailConfig:
    recipients: List[str] = field(default_factory=list)
    from_address: str = ""


@dataclass
class WebhookConfig:
    url: str = ""
    method: str = "POST"
    headers: dict = field(default_factory=lambda: {"Content-Type": "application/json"})
    timeout_ms: int = 10000


@dataclass
class ChatConfig:
    webhook_url: str = ""
    channel: str = "#alerts"
    username: str = "Ops Alerts"
    icon_emoji: str = ":warning:"
    timeout_ms: int = 10000


@dataclass
class SmsConfig:
    pass


ChannelConfig = Union[EmailConfig, WebhookConfig, ChatConfig, SmsConfig]

CONFIG_TYPES = {
    ChannelType.EMAIL: EmailConfig,
    ChannelType.WEBHOOK: WebhookConfig,
    ChannelType.CHAT: ChatConfig,
    ChannelType.SMS: SmsConfig,
}


@dataclass
class NotificationChannel:
    id: str = ""
    name: str = ""
    type: ChannelType = ChannelType.EMAIL
    config: ChannelConfig = field(default_factory=EmailConfig)
    enabled: bool = True
    priority: int = 1

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "config": dict(vars(self.config)),
            "enabled": self.enabled,
            "priority": self.priority,
        }


@dataclass
class EscalationRule:
    delay_minutes: float = 0
    channel_ids: List[str] = field(default_factory=list)
    repeat_interval_minutes: Optional[float] = None
    max_repeats: Optional[int] = None

    @property
    def repeats(self):
        return bool(self.repeat_interval_minutes) and bool(self.max_repeats) and self.max_repeats > 0


@dataclass
class EscalationPolicy:
    id: str = ""
    name: str = ""
    description: str = ""
    enabled: bool = True
    rules: List[EscalationRule] = field(default_factory=list)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "rules": [
                {
                    "delay_minutes": r.delay_minutes,
                    "channel_ids": list(r.channel_ids),
                    "repeat_interval_minutes": r.repeat_interval_minutes,
                    "max_repeats": r.max_repeats,
                }
                for r in self.rules
            ],
        }


@dataclass
class NotificationHistoryEntry:
    id: str = ""
    alert_id: str = ""
    channel_id: str = ""
    channel_type: str = ""
    severity: Severity = Severity.INFO
    subject: str = ""
    body: str = ""
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    success: bool = False
    error: Optional[str] = None
    response_time_ms: int = 0

    def to_dict(self):
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "channel_id": self.channel_id,
            "channel_type": self.channel_type,
            "severity": self.severity.value,
            "subject": self.subject,
            "body": self.body,
            "sent_at": self.sent_at.isoformat(),
            "success": self.success,
            "error": self.error,
            "response_time_ms": self.response_time_ms,
        }
