"""Alert system module."""
from alerts.errors import (
    AlertingError, ConfigurationError, NotFound, Conflict, TransportFailure, UnsupportedChannel,
)
from alerts.engine import AlertEngine, apply_operator
from alerts.rules_manager import RulesManager
from alerts.registry import ActiveAlertRegistry
from alerts.escalation import EscalationPolicyRegistry, EscalationScheduler
from alerts.dispatcher import NotificationDispatcher
from alerts.history import NotificationHistory
from alerts.overview import SystemOverviewAggregator
