"""Chat incoming-webhook client (Slack-compatible payloads).

Uses raw HTTP POST via requests.
"""
import logging
import requests

from alerts.errors import TransportFailure

logger = logging.getLogger("opsalert.notifications.chat")

SEVERITY_COLORS = {
    "critical": "danger",
    "warning": "warning",
    "info": "good",
}


class ChatWebhookClient:
    """Thin wrapper around an incoming-webhook URL."""

    def __init__(self, webhook_url: str, timeout: float = 10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def post_message(self, payload: dict) -> None:
        """POST a message payload. Raises TransportFailure on timeout or non-2xx."""
        try:
            resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.Timeout:
            raise TransportFailure(f"Chat webhook timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise TransportFailure(f"Chat webhook request failed: {e}")

        if not 200 <= resp.status_code < 300:
            raise TransportFailure(
                f"Chat webhook responded with status {resp.status_code}",
                status_code=resp.status_code,
                response_body=resp.text,
            )
        logger.debug(f"Chat message posted ({resp.status_code})")

    # ── formatters ───────────────────────────────────

    @staticmethod
    def format_alert(content, alert, channel_name, username, icon_emoji):
        """Build an attachment-style message for one alert."""
        sev = alert.severity.value
        return {
            "channel": channel_name,
            "username": username,
            "icon_emoji": icon_emoji,
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(sev, "good"),
                    "title": content.subject,
                    "text": content.body,
                    "fields": [
                        {"title": "Metric", "value": alert.metric, "short": True},
                        {"title": "Current Value", "value": str(alert.current_value), "short": True},
                        {"title": "Threshold", "value": str(alert.threshold), "short": True},
                        {"title": "Severity", "value": sev.upper(), "short": True},
                    ],
                    "ts": int(alert.triggered_at.timestamp()),
                }
            ],
        }
