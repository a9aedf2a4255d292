"""Notification channels: registry and per-type transports."""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import requests

from alerts.errors import ConfigurationError, NotFound, TransportFailure, UnsupportedChannel
from models.channels import CONFIG_TYPES, NotificationChannel
from models.enums import ChannelType
from notifications.chat_client import ChatWebhookClient

logger = logging.getLogger("opsalert.alerts.channels")

UPDATABLE_FIELDS = {"name", "enabled", "priority", "config"}


@runtime_checkable
class ChannelTransport(Protocol):
    def send(self, channel, content, alert) -> None: ...


# ── typed config ─────────────────────────────────────

def build_channel_config(channel_type, raw):
    """Turn a raw config dict into the dataclass for channel_type."""
    config_cls = CONFIG_TYPES[channel_type]
    raw = dict(raw or {})
    if channel_type == ChannelType.EMAIL and isinstance(raw.get("recipients"), str):
        raw["recipients"] = [r.strip() for r in raw["recipients"].split(",") if r.strip()]
    allowed = set(config_cls.__dataclass_fields__)
    unknown = set(raw) - allowed
    if unknown:
        logger.debug(f"Ignoring unknown {channel_type.value} config keys: {sorted(unknown)}")
    return config_cls(**{k: v for k, v in raw.items() if k in allowed})


def missing_config(channel):
    """Name of the first missing required config field, or None."""
    cfg = channel.config
    if channel.type == ChannelType.EMAIL:
        if not cfg.recipients:
            return "recipients"
        if not cfg.from_address:
            return "from_address"
    elif channel.type == ChannelType.WEBHOOK:
        if not cfg.url:
            return "url"
    elif channel.type == ChannelType.CHAT:
        if not cfg.webhook_url:
            return "webhook_url"
    return None


def build_channel(data, channel_id=None):
    try:
        channel_type = ChannelType(data.get("type"))
    except ValueError:
        raise ConfigurationError(f"Unknown channel type: {data.get('type')}")

    cid = channel_id or data.get("id") or f"channel_{uuid.uuid4().hex[:12]}"
    return NotificationChannel(
        id=cid,
        name=data.get("name", cid),
        type=channel_type,
        config=build_channel_config(channel_type, data.get("config")),
        enabled=bool(data.get("enabled", True)),
        priority=int(data.get("priority", 1)),
    )


class ChannelRegistry:
    """Notification channels keyed by id."""

    def __init__(self):
        self._channels = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config):
        """Load channels from config; enabled channels lacking an endpoint are disabled."""
        registry = cls()
        for raw in config.get("channels", []):
            try:
                channel = build_channel(raw)
            except ConfigurationError as e:
                logger.warning(f"Skipping channel {raw.get('id')}: {e}")
                continue
            missing = missing_config(channel)
            if channel.enabled and missing:
                logger.info(f"Channel {channel.id} disabled: no {missing} configured")
                channel.enabled = False
            registry._channels[channel.id] = channel
        enabled = sum(1 for c in registry._channels.values() if c.enabled)
        logger.info(f"Initialized {enabled} of {len(registry._channels)} notification channels")
        return registry

    def add_channel(self, data):
        channel = build_channel(data)
        missing = missing_config(channel)
        if channel.enabled and missing:
            raise ConfigurationError(f"Channel {channel.name} is missing required config: {missing}")
        with self._lock:
            if channel.id in self._channels:
                raise ConfigurationError(f"Channel id already exists: {channel.id}")
            self._channels[channel.id] = channel
        logger.info(f"Notification channel added: {channel.id} ({channel.name}, {channel.type.value})")
        return channel

    def update_channel(self, channel_id, updates):
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ConfigurationError(f"Cannot update channel fields: {sorted(unknown)}")
        with self._lock:
            channel = self.get_channel(channel_id)
            merged = channel.to_dict()
            if "config" in updates:
                merged["config"] = {**merged["config"], **(updates["config"] or {})}
            merged.update({k: v for k, v in updates.items() if k != "config"})
            candidate = build_channel(merged, channel_id=channel_id)
            missing = missing_config(candidate)
            if candidate.enabled and missing:
                raise ConfigurationError(f"Channel {candidate.name} is missing required config: {missing}")
            self._channels[channel_id] = candidate
        logger.info(f"Notification channel updated: {channel_id} ({candidate.name})")
        return candidate

    def delete_channel(self, channel_id):
        with self._lock:
            if channel_id not in self._channels:
                raise NotFound("channel", channel_id)
            del self._channels[channel_id]
        logger.info(f"Notification channel deleted: {channel_id}")

    def get_channel(self, channel_id):
        with self._lock:
            channel = self._channels.get(channel_id)
        if channel is None:
            raise NotFound("channel", channel_id)
        return channel

    def get_all(self):
        with self._lock:
            return sorted(self._channels.values(), key=lambda c: c.priority)

    def resolve(self, channel_ids):
        """Enabled channels among channel_ids, ordered by ascending priority."""
        with self._lock:
            found = [self._channels.get(cid) for cid in channel_ids]
        return sorted((c for c in found if c is not None and c.enabled), key=lambda c: c.priority)


# ── transports ───────────────────────────────────────

class EmailTransport:
    def __init__(self, sender):
        self.sender = sender

    def send(self, channel, content, alert):
        cfg = channel.config
        if not cfg.recipients:
            raise ConfigurationError(f"Email channel {channel.id} has no recipients")
        self.sender.send_alert(cfg.recipients, cfg.from_address, content.subject, content.body)


class WebhookTransport:
    """POST (or PUT) a JSON document describing the alert."""

    def send(self, channel, content, alert):
        cfg = channel.config
        if not cfg.url:
            raise ConfigurationError(f"Webhook channel {channel.id} has no url")

        payload = {
            "alert": {
                "id": alert.id,
                "rule_id": alert.rule_id,
                "metric": alert.metric,
                "severity": alert.severity.value,
                "message": alert.message,
                "current_value": alert.current_value,
                "threshold": alert.threshold,
                "triggered_at": alert.triggered_at.isoformat(),
            },
            "subject": content.subject,
            "body": content.body,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        headers = {k: v for k, v in (cfg.headers or {}).items() if v}
        timeout = (cfg.timeout_ms or 10000) / 1000

        try:
            resp = requests.request(cfg.method or "POST", cfg.url, json=payload,
                                    headers=headers, timeout=timeout)
        except requests.Timeout:
            raise TransportFailure(f"Webhook timed out after {timeout:.0f}s")
        except requests.RequestException as e:
            raise TransportFailure(f"Webhook request failed: {e}")

        if not 200 <= resp.status_code < 300:
            raise TransportFailure(
                f"Webhook responded with status {resp.status_code}",
                status_code=resp.status_code,
                response_body=resp.text,
            )


class ChatTransport:
    def send(self, channel, content, alert):
        cfg = channel.config
        if not cfg.webhook_url:
            raise ConfigurationError(f"Chat channel {channel.id} has no webhook_url")
        client = ChatWebhookClient(cfg.webhook_url, timeout=(cfg.timeout_ms or 10000) / 1000)
        payload = client.format_alert(content, alert, cfg.channel, cfg.username, cfg.icon_emoji)
        client.post_message(payload)


class SmsTransport:
    def send(self, channel, content, alert):
        raise UnsupportedChannel("SMS notifications are not implemented")


def default_transports(email_sender):
    return {
        ChannelType.EMAIL: EmailTransport(email_sender),
        ChannelType.WEBHOOK: WebhookTransport(),
        ChannelType.CHAT: ChatTransport(),
        ChannelType.SMS: SmsTransport(),
    }
