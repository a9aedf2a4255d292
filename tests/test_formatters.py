"""Tests for formatting utilities and notification templates."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from alerts.templates import TEMPLATES, NotificationTemplate, build_variables, render, template_for
from models.alerts import ActiveAlert
from models.enums import Severity
from utils.formatters import format_duration, format_pct, format_timestamp, format_value, time_ago

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_format_duration():
    assert format_duration(T0, T0 + timedelta(minutes=5, seconds=40)) == "5m"
    assert format_duration(T0, T0 + timedelta(hours=2, minutes=5)) == "2h 5m"
    assert format_duration(T0, T0 - timedelta(minutes=1)) == "0m"
    assert format_duration(None) == "N/A"


def test_format_timestamp():
    assert format_timestamp(T0) == "2024-06-01 12:00 UTC"
    assert format_timestamp(None) == "N/A"


def test_format_value():
    assert format_value(85.0) == "85"
    assert format_value(0.0512) == "0.05"
    assert format_value(None) == "N/A"


def test_format_pct():
    assert format_pct(5.44) == "5.4%"
    assert format_pct(None) == "N/A"


def test_time_ago():
    now = datetime.now(timezone.utc)
    assert time_ago(now - timedelta(seconds=30)).endswith("s ago")
    assert time_ago(now - timedelta(minutes=5)) == "5m ago"
    assert time_ago(now - timedelta(hours=3)) == "3h ago"
    assert time_ago(now - timedelta(days=2)) == "2d ago"
    assert time_ago(None) == "N/A"


# ── Templates ───────────────────────────────────────────

def _alert(**overrides):
    fields = dict(id="alert_1", rule_id="high_cpu", rule_name="High CPU", metric="cpu_usage",
                  current_value=91.5, threshold=80, severity=Severity.WARNING,
                  message="High CPU: cpu_usage = 91.50 > 80", triggered_at=T0)
    fields.update(overrides)
    return ActiveAlert(**fields)


SETTINGS = {"system_name": "Shop", "environment": "prod", "dashboard_url": "https://dash"}


def test_render_warning():
    alert = _alert()
    content = render(template_for(alert), build_variables(alert, SETTINGS, now=T0 + timedelta(minutes=7)))
    assert content.subject == "⚠️ WARNING: High CPU - Shop"
    assert "Current Value: 91.50" in content.body
    assert "Threshold: 80" in content.body
    assert "Environment: prod" in content.body
    assert "{{" not in content.body


def test_template_selected_by_severity():
    assert template_for(_alert(severity=Severity.CRITICAL)) is TEMPLATES["critical"]
    assert template_for(_alert(severity=Severity.INFO)) is TEMPLATES["info"]
    assert template_for(_alert(resolved=True, resolved_at=T0)) is TEMPLATES["resolved"]


def test_resolved_template_uses_resolution_time():
    alert = _alert(resolved=True, resolved_at=T0 + timedelta(hours=1, minutes=10))
    content = render(template_for(alert), build_variables(alert, SETTINGS, now=T0 + timedelta(days=1)))
    assert content.subject.startswith("✅ RESOLVED: High CPU")
    assert "Duration: 1h 10m" in content.body
    assert "Resolved At: 2024-06-01 13:10 UTC" in content.body


def test_unknown_placeholders_left_alone():
    template = NotificationTemplate(name="t", subject="  {{alert_name}} {{mystery}} ", body="x")
    content = render(template, {"alert_name": "CPU"})
    assert content.subject == "CPU {{mystery}}"
