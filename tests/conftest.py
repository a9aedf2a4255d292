"""Shared test fixtures."""
import os
import sys
import copy
import pytest
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import load_config
from alerts.rules_manager import RulesManager
from alerts.service import AlertingService
from alerts.errors import TransportFailure
from models.enums import ChannelType


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeTimer:
    def __init__(self, factory, seq, delay_seconds, callback):
        self.factory = factory
        self.seq = seq
        self.delay_seconds = delay_seconds
        self.callback = callback
        self.due = None
        self.cancelled = False
        self.fired = False

    def start(self):
        self.due = self.factory.clock.now + timedelta(seconds=self.delay_seconds)
        self.factory.timers.append(self)

    def cancel(self):
        self.cancelled = True


class FakeTimerFactory:
    """Stand-in for threading.Timer driven by a ManualClock."""

    def __init__(self, clock):
        self.clock = clock
        self.timers = []
        self._seq = 0

    def __call__(self, delay_seconds, callback):
        self._seq += 1
        return FakeTimer(self, self._seq, delay_seconds, callback)

    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, minutes=0, seconds=0):
        """Move the clock forward, firing due timers in order (including ones armed meanwhile)."""
        target = self.clock.now + timedelta(minutes=minutes, seconds=seconds)
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.now = max(self.clock.now, timer.due)
            timer.fired = True
            timer.callback()
        self.clock.now = target


class ImmediateExecutor:
    """Runs submitted work inline and returns a completed Future."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


class RecordingTransport:
    """Transport that records (minute offset, channel id, alert id) per send."""

    def __init__(self, clock=None, fail_for=()):
        self.clock = clock
        self.fail_for = set(fail_for)
        self.sent = []
        self._start = clock.now if clock else None

    def send(self, channel, content, alert):
        if channel.id in self.fail_for:
            raise TransportFailure(f"{channel.id} is down", status_code=503)
        minute = None
        if self.clock is not None:
            minute = round((self.clock.now - self._start).total_seconds() / 60)
        self.sent.append((minute, channel.id, alert.id))

    def channels_at(self, minute):
        return [cid for m, cid, _ in self.sent if m == minute]

    def minutes(self):
        return sorted({m for m, _, _ in self.sent})


def make_config():
    """Default config with three reachable channels A, B, C and one policy using them."""
    config = copy.deepcopy(load_config())
    config["channels"] = [
        {"id": "A", "name": "Ops webhook A", "type": "webhook", "priority": 1,
         "config": {"url": "https://hooks.example.com/a"}},
        {"id": "B", "name": "Ops webhook B", "type": "webhook", "priority": 2,
         "config": {"url": "https://hooks.example.com/b"}},
        {"id": "C", "name": "Team chat", "type": "chat", "priority": 3,
         "config": {"webhook_url": "https://chat.example.com/hook", "channel": "#ops"}},
    ]
    config["escalation"] = {
        "default_policy": "standard",
        "severity_policies": {"critical": "standard", "warning": "standard", "info": "standard"},
        "policies": [
            {
                "id": "standard",
                "name": "Standard",
                "rules": [
                    {"delay_minutes": 0, "channel_ids": ["A", "B"]},
                    {"delay_minutes": 15, "channel_ids": ["A", "B", "C"],
                     "repeat_interval_minutes": 30, "max_repeats": 2},
                ],
            },
        ],
    }
    return config


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def timers(clock):
    return FakeTimerFactory(clock)


@pytest.fixture
def transport(clock):
    return RecordingTransport(clock)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def service(config, clock, timers, transport):
    """Fully wired service with fake time, inline hand-off, and recording transports."""
    svc = AlertingService(
        config,
        rules=RulesManager(),
        transports={ChannelType.WEBHOOK: transport, ChannelType.CHAT: transport},
        timer_factory=timers,
        executor=ImmediateExecutor(),
        clock=clock,
    )
    yield svc
    svc.stop()


@pytest.fixture
def cpu_rule_data():
    return {
        "id": "high_cpu",
        "name": "High CPU",
        "description": "CPU above 80%",
        "metric": "cpu_usage",
        "operator": "gt",
        "threshold": 80,
        "severity": "warning",
        "cooldown_minutes": 15,
    }


def record(service, clock, **values):
    """Push one metrics snapshot stamped with the manual clock."""
    return service.record_metrics({"timestamp": clock.now.isoformat(), **values})
