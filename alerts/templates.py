"""Notification templates and placeholder rendering."""
import os
import re
from dataclasses import dataclass

from utils.formatters import format_duration, format_timestamp, format_value

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class RenderedNotification:
    subject: str
    body: str


@dataclass
class NotificationTemplate:
    name: str
    subject: str
    body: str


TEMPLATES = {
    "critical": NotificationTemplate(
        name="Critical Alert",
        subject="\U0001f6a8 CRITICAL: {{alert_name}} - {{system_name}}",
        body="""
CRITICAL ALERT TRIGGERED

System: {{system_name}}
Alert: {{alert_name}}
Description: {{description}}
Current Value: {{current_value}}
Threshold: {{threshold}}
Triggered At: {{triggered_at}}
Duration: {{duration}}

Impact: This is a critical system issue that requires immediate attention.

Details:
- Metric: {{metric}}
- Severity: {{severity}}
- Environment: {{environment}}
- Server: {{hostname}}

View Dashboard: {{dashboard_url}}

This alert will continue to escalate until acknowledged and resolved.
""",
    ),
    "warning": NotificationTemplate(
        name="Warning Alert",
        subject="⚠️ WARNING: {{alert_name}} - {{system_name}}",
        body="""
WARNING ALERT TRIGGERED

System: {{system_name}}
Alert: {{alert_name}}
Description: {{description}}
Current Value: {{current_value}}
Threshold: {{threshold}}
Triggered At: {{triggered_at}}

This is a warning that system performance may be degraded.

Details:
- Metric: {{metric}}
- Severity: {{severity}}
- Environment: {{environment}}

View Dashboard: {{dashboard_url}}
""",
    ),
    "info": NotificationTemplate(
        name="Info Alert",
        subject="ℹ️ INFO: {{alert_name}} - {{system_name}}",
        body="""
INFORMATION ALERT

System: {{system_name}}
Alert: {{alert_name}}
Description: {{description}}
Current Value: {{current_value}}
Triggered At: {{triggered_at}}

This is an informational alert for your awareness.

Details:
- Metric: {{metric}}
- Environment: {{environment}}

View Dashboard: {{dashboard_url}}
""",
    ),
    "resolved": NotificationTemplate(
        name="Alert Resolved",
        subject="✅ RESOLVED: {{alert_name}} - {{system_name}}",
        body="""
ALERT RESOLVED

System: {{system_name}}
Alert: {{alert_name}}
Resolved At: {{resolved_at}}
Duration: {{duration}}

The alert has been automatically resolved.

Details:
- Original Trigger: {{triggered_at}}
- Total Duration: {{duration}}
- Environment: {{environment}}

View Dashboard: {{dashboard_url}}
""",
    ),
}


def template_for(alert):
    """Resolved alerts use the resolved template, others their severity's."""
    if alert.resolved:
        return TEMPLATES["resolved"]
    return TEMPLATES[alert.severity.value]


def build_variables(alert, settings, now=None):
    """Placeholder values for an alert. `settings` is the alerting config section."""
    end = alert.resolved_at if alert.resolved else now
    return {
        "alert_name": alert.rule_name or alert.metric,
        "system_name": settings.get("system_name", "System"),
        "description": alert.message,
        "current_value": format_value(alert.current_value),
        "threshold": format_value(alert.threshold),
        "triggered_at": format_timestamp(alert.triggered_at),
        "duration": format_duration(alert.triggered_at, end),
        "metric": alert.metric,
        "severity": alert.severity.value.upper(),
        "environment": settings.get("environment", "development"),
        "hostname": os.environ.get("HOSTNAME", "unknown"),
        "dashboard_url": settings.get("dashboard_url", ""),
        "resolved_at": format_timestamp(alert.resolved_at) if alert.resolved_at else "",
    }


def render(template, variables):
    """Substitute {{name}} placeholders; unknown names are left as-is."""
    def _sub(match):
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return RenderedNotification(
        subject=PLACEHOLDER.sub(_sub, template.subject).strip(),
        body=PLACEHOLDER.sub(_sub, template.body).strip(),
    )
