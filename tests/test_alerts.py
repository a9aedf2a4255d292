"""Tests for the alert evaluation engine."""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alerts.engine import AlertEngine, apply_operator, SYSTEM_HEALTH_RULE_ID
from alerts.registry import ActiveAlertRegistry
from alerts.rules_manager import RulesManager
from models.enums import HealthStatus, Severity
from conftest import ManualClock, record


class StubSource:
    """Metric source backed by a plain dict."""
    def __init__(self, values=None):
        self.values = dict(values or {})

    def get_metric_value(self, name):
        return self.values.get(name)

    def latest(self):
        return None


class ExplodingSource(StubSource):
    def get_metric_value(self, name):
        if name == "memory_usage":
            raise RuntimeError("collector crashed")
        return super().get_metric_value(name)


def _engine(rules, values=None, source=None, escalate=None):
    clock = ManualClock()
    rm = RulesManager()
    for data in rules:
        rm.add_rule(data)
    registry = ActiveAlertRegistry(clock=clock)
    engine = AlertEngine(rm, registry, source or StubSource(values), escalate=escalate, clock=clock)
    return engine, rm, registry, clock


def _rule(**overrides):
    data = {"id": "r1", "name": "Rule", "metric": "cpu_usage", "operator": "gt",
            "threshold": 80, "severity": "warning", "cooldown_minutes": 15}
    data.update(overrides)
    return data


# ── Operators ───────────────────────────────────────────

@pytest.mark.parametrize("op,value,expected", [
    ("gt", 81, True), ("gt", 80, False),
    ("gte", 80, True), ("gte", 79.9, False),
    ("lt", 79, True), ("lt", 80, False),
    ("lte", 80, True), ("lte", 80.1, False),
    ("eq", 80, True), ("eq", 80.5, False),
    ("ne", 80.5, True), ("ne", 80, False),
])
def test_operators(op, value, expected):
    assert apply_operator(op, value, 80) is expected


def test_eq_uses_tolerance():
    assert apply_operator("eq", 0.1 + 0.2, 0.3)
    assert not apply_operator("ne", 0.1 + 0.2, 0.3)
    assert apply_operator("eq", 100.04, 100, tolerance=0.05)
    assert not apply_operator("eq", 100.06, 100, tolerance=0.05)


def test_unknown_operator_rejected():
    with pytest.raises(ValueError):
        apply_operator("approx", 1, 1)


# ── Trigger / resolve ───────────────────────────────────

def test_rule_triggers_on_breach():
    engine, rm, registry, _ = _engine([_rule()], {"cpu_usage": 91.5})
    result = engine.evaluate_all()
    assert len(result.triggered) == 1
    alert = result.triggered[0]
    assert alert.rule_id == "r1"
    assert alert.current_value == 91.5
    assert alert.severity == Severity.WARNING
    assert "cpu_usage = 91.50 > 80" in alert.message
    assert rm.get_rule("r1").trigger_count == 1


def test_rule_does_not_trigger_below_threshold():
    engine, _, registry, _ = _engine([_rule()], {"cpu_usage": 50})
    result = engine.evaluate_all()
    assert result.triggered == []
    assert registry.get_active_alerts() == []


def test_disabled_rule_skipped():
    engine, _, registry, _ = _engine([_rule(enabled=False)], {"cpu_usage": 99})
    assert engine.evaluate_all().triggered == []


def test_missing_metric_skipped():
    engine, _, registry, _ = _engine([_rule()], {})
    result = engine.evaluate_all()
    assert result.triggered == [] and result.errors == []


def test_breach_updates_open_alert_value():
    source = StubSource({"cpu_usage": 85})
    engine, _, registry, _ = _engine([_rule()], source=source)
    alert = engine.evaluate_all().triggered[0]
    source.values["cpu_usage"] = 93
    assert engine.evaluate_all().triggered == []
    assert alert.current_value == 93
    assert len(registry.get_active_alerts()) == 1


def test_scenario_cpu_trigger_hold_resolve():
    """Samples 70, 85, 90, 60 one minute apart: one alert, then resolved."""
    source = StubSource()
    engine, _, registry, clock = _engine([_rule()], source=source)

    source.values["cpu_usage"] = 70
    assert engine.evaluate_all().triggered == []

    clock.advance(minutes=1)
    source.values["cpu_usage"] = 85
    triggered = engine.evaluate_all().triggered
    assert len(triggered) == 1
    alert = triggered[0]
    assert alert.current_value == 85
    assert alert.triggered_at == clock.now

    clock.advance(minutes=1)
    source.values["cpu_usage"] = 90
    assert engine.evaluate_all().triggered == []
    assert len(registry.get_all()) == 1

    clock.advance(minutes=1)
    source.values["cpu_usage"] = 60
    result = engine.evaluate_all()
    assert result.resolved == [alert]
    assert alert.resolved is True
    assert alert.resolved_at == clock.now
    assert registry.get_active_alerts() == []


def test_cooldown_blocks_retrigger_after_resolve():
    source = StubSource({"cpu_usage": 90})
    engine, _, registry, clock = _engine([_rule(cooldown_minutes=15)], source=source)
    assert len(engine.evaluate_all().triggered) == 1

    clock.advance(minutes=1)
    source.values["cpu_usage"] = 50
    engine.evaluate_all()

    clock.advance(minutes=5)
    source.values["cpu_usage"] = 95
    assert engine.evaluate_all().triggered == []

    clock.advance(minutes=10)  # 16 minutes after the first trigger
    assert len(engine.evaluate_all().triggered) == 1
    assert len(registry.get_all()) == 2


def test_cooldown_boundary_is_inclusive():
    source = StubSource({"cpu_usage": 90})
    engine, _, _, clock = _engine([_rule(cooldown_minutes=10)], source=source)
    engine.evaluate_all()
    source.values["cpu_usage"] = 10
    engine.evaluate_all()
    source.values["cpu_usage"] = 90
    clock.advance(minutes=10)
    assert len(engine.evaluate_all().triggered) == 1


def test_zero_cooldown_allows_immediate_retrigger():
    source = StubSource({"cpu_usage": 90})
    engine, _, _, _ = _engine([_rule(cooldown_minutes=0)], source=source)
    engine.evaluate_all()
    source.values["cpu_usage"] = 10
    engine.evaluate_all()
    source.values["cpu_usage"] = 90
    assert len(engine.evaluate_all().triggered) == 1


def test_failing_rule_does_not_abort_tick():
    rules = [_rule(id="mem", metric="memory_usage"), _rule(id="cpu")]
    engine, _, registry, _ = _engine(rules, source=ExplodingSource({"cpu_usage": 99}))
    result = engine.evaluate_all()
    assert result.errors == ["mem"]
    assert [a.rule_id for a in result.triggered] == ["cpu"]


def test_escalate_called_once_per_new_alert():
    calls = []
    source = StubSource({"cpu_usage": 90})
    engine, _, _, _ = _engine([_rule()], source=source, escalate=lambda a, r: calls.append((a.id, r.id)))
    engine.evaluate_all()
    engine.evaluate_all()
    assert len(calls) == 1
    assert calls[0][1] == "r1"


def test_escalate_failure_is_contained():
    def boom(alert, rule):
        raise RuntimeError("executor gone")

    engine, _, registry, _ = _engine([_rule()], {"cpu_usage": 90}, escalate=boom)
    result = engine.evaluate_all()
    assert len(result.triggered) == 1
    assert result.errors == []


def test_evaluate_metric_only_touches_matching_rules():
    rules = [_rule(id="cpu"), _rule(id="mem", metric="memory_usage", threshold=50)]
    engine, _, registry, _ = _engine(rules)
    result = engine.evaluate_metric("memory_usage", 75)
    assert [a.rule_id for a in result.triggered] == ["mem"]
    assert registry.get_open_for_rule("cpu") is None


def test_test_rules_ignores_cooldown():
    source = StubSource({"cpu_usage": 90})
    engine, _, _, _ = _engine([_rule(), _rule(id="mem", metric="memory_usage")], source=source)
    engine.evaluate_all()
    results = {r["rule_id"]: r for r in engine.test_rules()}
    assert results["r1"]["would_fire"] is True
    assert results["mem"]["would_fire"] is False
    assert results["mem"]["current_value"] is None


def test_format_alert_summary():
    engine, _, _, _ = _engine([_rule()], {"cpu_usage": 90})
    assert "All clear" in engine.format_alert_summary([])
    alert = engine.evaluate_all().triggered[0]
    assert "[WARNING]" in engine.format_alert_summary([alert])


# ── Health transitions ──────────────────────────────────

def test_unhealthy_creates_critical_health_alert():
    engine, _, registry, _ = _engine([])
    alert = engine.handle_health_change(HealthStatus.HEALTHY, HealthStatus.UNHEALTHY)
    assert alert.rule_id == SYSTEM_HEALTH_RULE_ID
    assert alert.severity == Severity.CRITICAL
    assert registry.get_open_for_rule(SYSTEM_HEALTH_RULE_ID) is alert


def test_degraded_to_unhealthy_replaces_alert():
    engine, _, registry, _ = _engine([])
    first = engine.handle_health_change("healthy", "degraded")
    assert first.severity == Severity.WARNING
    second = engine.handle_health_change("degraded", "unhealthy")
    assert first.resolved is True
    assert second.severity == Severity.CRITICAL
    assert [a.id for a in registry.get_active_alerts()] == [second.id]


def test_recovery_resolves_health_alert():
    engine, _, registry, _ = _engine([])
    alert = engine.handle_health_change("healthy", "unhealthy")
    assert engine.handle_health_change("unhealthy", "healthy") is None
    assert alert.resolved is True
    assert registry.get_active_alerts() == []


# ── Through the service ─────────────────────────────────

def test_stale_metrics_are_ignored(service, clock, cpu_rule_data):
    service.add_alert_rule(cpu_rule_data)
    record(service, clock, cpu_usage=95)
    clock.advance(minutes=10)  # older than metric_max_age_seconds
    assert service.evaluate().triggered == []

    record(service, clock, cpu_usage=95)
    assert len(service.evaluate().triggered) == 1


def test_health_feed_drives_alerts(service):
    service.health.publish(HealthStatus.UNHEALTHY)
    active = service.get_active_alerts()
    assert len(active) == 1
    assert active[0].rule_id == SYSTEM_HEALTH_RULE_ID
    service.health.publish(HealthStatus.HEALTHY)
    assert service.get_active_alerts() == []
