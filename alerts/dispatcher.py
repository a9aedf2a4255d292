"""Notification dispatcher: render, fan out to channels, record outcomes."""
import logging
import time
import uuid
from contextlib import nullcontext
from datetime import datetime, timezone

from alerts.errors import AlertingError
from alerts.templates import build_variables, render, template_for
from models.alerts import ActiveAlert
from models.channels import NotificationHistoryEntry
from models.enums import Severity

logger = logging.getLogger("opsalert.alerts.dispatcher")


def _utcnow():
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    def __init__(self, transports, history, settings=None, clock=None):
        self.transports = transports
        self.history = history
        self.settings = settings or {}
        self._clock = clock or _utcnow

    def render(self, alert):
        variables = build_variables(alert, self.settings, now=self._clock())
        return render(template_for(alert), variables)

    def dispatch(self, alert, channels, lock=None):
        """Send alert to every channel independently; returns the number of successes.

        Channels are expected in delivery order. A failure on one channel is
        recorded and logged, and delivery continues with the next. When `lock`
        is given it guards rendering and the alert bookkeeping, not the sends.
        """
        guard = lock if lock is not None else nullcontext()
        if not channels:
            logger.debug(f"No enabled channels for alert {alert.id}")
            return 0

        with guard:
            content = self.render(alert)
        sent = 0
        for channel in channels:
            if self.send_to_channel(alert, channel, content):
                sent += 1

        with guard:
            alert.last_notified = self._clock()
            alert.notification_count += 1
        return sent

    def send_to_channel(self, alert, channel, content=None):
        """One send attempt; always appends exactly one history entry."""
        start = time.monotonic()
        error = None
        try:
            if content is None:
                content = self.render(alert)
            transport = self.transports.get(channel.type)
            if transport is None:
                raise AlertingError(f"No transport for channel type {channel.type.value}")
            transport.send(channel, content, alert)
        except AlertingError as e:
            error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error sending via {channel.name}")
            error = f"{type(e).__name__}: {e}"

        response_time = int((time.monotonic() - start) * 1000)
        self.history.append(NotificationHistoryEntry(
            id=f"notification_{uuid.uuid4().hex[:12]}",
            alert_id=alert.id,
            channel_id=channel.id,
            channel_type=channel.type.value,
            severity=alert.severity,
            subject=content.subject if content else "",
            body=content.body if content else "",
            sent_at=self._clock(),
            success=error is None,
            error=error,
            response_time_ms=response_time,
        ))

        if error is None:
            logger.info(f"Notification sent: alert={alert.id} channel={channel.name} ({response_time}ms)")
            return True
        logger.error(f"Failed to send notification via {channel.name}: {error}")
        return False

    def test_channel(self, channel):
        """Send a synthetic info alert through one channel."""
        now = self._clock()
        test_alert = ActiveAlert(
            id="test-alert",
            rule_id="test-rule",
            rule_name="Test Alert",
            metric="test",
            current_value=100,
            threshold=80,
            severity=Severity.INFO,
            message="This is a test alert to verify notification channel functionality",
            triggered_at=now,
        )
        return self.send_to_channel(test_alert, channel)
