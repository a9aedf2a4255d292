"""Exception taxonomy for the alerting core."""


class AlertingError(Exception):
    """Base class for alerting errors."""


class ConfigurationError(AlertingError):
    """A rule, channel, or policy is missing required configuration."""


class NotFound(AlertingError):
    """Unknown rule, alert, channel, or policy id."""

    def __init__(self, kind, item_id):
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id


class Conflict(AlertingError):
    """An unresolved alert already exists for the rule."""

    def __init__(self, rule_id, alert_id=None):
        super().__init__(f"Rule {rule_id} already has an open alert ({alert_id})")
        self.rule_id = rule_id
        self.alert_id = alert_id


class TransportFailure(AlertingError):
    """Notification send timed out or returned an error status."""

    def __init__(self, message, status_code=None, response_body=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class UnsupportedChannel(AlertingError):
    """Channel type has no transport implementation."""
