"""Escalation policies and the per-alert timer scheduler."""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import List

from alerts.errors import ConfigurationError, NotFound
from models.channels import EscalationPolicy, EscalationRule
from models.enums import Severity

logger = logging.getLogger("opsalert.alerts.escalation")


def build_policy(data):
    """Validate a raw dict and turn it into an EscalationPolicy."""
    pid = data.get("id") or f"policy_{uuid.uuid4().hex[:12]}"
    rules = []
    for raw in data.get("rules", []):
        delay = float(raw.get("delay_minutes", 0))
        if delay < 0:
            raise ConfigurationError(f"Policy {pid}: delay_minutes must be >= 0")
        interval = raw.get("repeat_interval_minutes")
        max_repeats = raw.get("max_repeats")
        if interval is not None and float(interval) <= 0:
            raise ConfigurationError(f"Policy {pid}: repeat_interval_minutes must be > 0")
        if max_repeats is not None and int(max_repeats) < 0:
            raise ConfigurationError(f"Policy {pid}: max_repeats must be >= 0")
        rules.append(EscalationRule(
            delay_minutes=delay,
            channel_ids=list(raw.get("channel_ids", [])),
            repeat_interval_minutes=float(interval) if interval is not None else None,
            max_repeats=int(max_repeats) if max_repeats is not None else None,
        ))
    return EscalationPolicy(
        id=pid,
        name=data.get("name", pid),
        description=data.get("description", ""),
        enabled=data.get("enabled", True),
        rules=rules,
    )


class EscalationPolicyRegistry:
    """Escalation policies plus the explicit severity -> policy mapping."""

    def __init__(self, severity_policies=None, default_policy_id=None):
        self._policies = {}
        self._severity_policies = {}
        self.default_policy_id = default_policy_id
        self._lock = threading.RLock()
        for sev, pid in (severity_policies or {}).items():
            self.set_severity_policy(sev, pid)

    @classmethod
    def from_config(cls, config):
        esc = config.get("escalation", {})
        registry = cls(esc.get("severity_policies"), esc.get("default_policy"))
        for raw in esc.get("policies", []):
            registry.add_policy(build_policy(raw))
        logger.info(f"Initialized {len(registry._policies)} escalation policies")
        return registry

    def add_policy(self, policy):
        if isinstance(policy, dict):
            policy = build_policy(policy)
        with self._lock:
            self._policies[policy.id] = policy
        logger.info(f"Added escalation policy: {policy.id} ({policy.name})")
        return policy

    def remove_policy(self, policy_id):
        with self._lock:
            if policy_id not in self._policies:
                raise NotFound("policy", policy_id)
            del self._policies[policy_id]
        logger.info(f"Removed escalation policy: {policy_id}")

    def get_policy(self, policy_id):
        with self._lock:
            policy = self._policies.get(policy_id)
        if policy is None:
            raise NotFound("policy", policy_id)
        return policy

    def get_all(self):
        with self._lock:
            return list(self._policies.values())

    def set_severity_policy(self, severity, policy_id):
        with self._lock:
            self._severity_policies[Severity(severity)] = policy_id

    def policy_for(self, severity, rule=None):
        """Rule's own policy, then the severity mapping, then the default."""
        candidates = [
            getattr(rule, "escalation_policy_id", None),
            self._severity_policies.get(Severity(severity)),
            self.default_policy_id,
        ]
        with self._lock:
            for pid in candidates:
                if not pid:
                    continue
                policy = self._policies.get(pid)
                if policy is None:
                    logger.warning(f"Escalation policy {pid} not found")
                elif not policy.enabled:
                    logger.debug(f"Escalation policy {pid} is disabled")
                else:
                    return policy
        return None


def thread_timer(delay_seconds, callback):
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    return timer


@dataclass
class AlertTimers:
    """Timer handles owned by one alert."""

    alert_id: str
    timers: List = field(default_factory=list)
    cancelled: bool = False


class EscalationScheduler:
    """Turns a triggered alert into immediate and timed notification steps.

    Zero-delay steps are dispatched right away. Each delayed step is a
    one-shot timer; when it fires and the alert is still unresolved and
    unacknowledged, its channels are notified and, if the step repeats, a
    chain of repeat timers is armed. The open/cancelled check runs under the
    alert's lock but the transports run outside it, so acknowledge and
    resolve never wait on a send. A send already past the check may still
    finish after acknowledge returns; no new send starts after it.
    """

    def __init__(self, registry, policies, channels, dispatcher, timer_factory=None):
        self.registry = registry
        self.policies = policies
        self.channels = channels
        self.dispatcher = dispatcher
        self._timer_factory = timer_factory or thread_timer
        self._timers = {}
        self._lock = threading.Lock()

    def start(self, alert, rule=None):
        """Begin escalation for a newly triggered alert."""
        policy = self.policies.policy_for(alert.severity, rule)
        if policy is None:
            logger.warning(f"No escalation policy for alert {alert.id} ({alert.severity.value})")
            return None

        handles = AlertTimers(alert.id)
        with self._lock:
            self._timers[alert.id] = handles

        immediate = []
        with self.registry.lock_for(alert.id):
            if not handles.cancelled and alert.is_open:
                logger.info(f"Escalating alert {alert.id} with policy {policy.id}")
                for step in policy.rules:
                    if step.delay_minutes <= 0:
                        immediate.append(step)
                    else:
                        self._arm(handles, step.delay_minutes * 60,
                                  lambda step=step: self._fire_step(handles, alert, step))
        for step in immediate:
            if self._send(handles, alert, step) and step.repeats:
                self._arm_repeat(handles, alert, step, step.max_repeats)
        self._forget_if_idle(handles)
        return policy

    def cancel(self, alert_id):
        """Cancel every pending timer for alert_id. Returns how many were cancelled."""
        with self._lock:
            handles = self._timers.pop(alert_id, None)
            if handles is None:
                return 0
            handles.cancelled = True
            pending = list(handles.timers)
            handles.timers.clear()
        for timer in pending:
            timer.cancel()
        if pending:
            logger.info(f"Cancelled {len(pending)} pending escalation timer(s) for {alert_id}")
        return len(pending)

    def pending_count(self, alert_id):
        with self._lock:
            handles = self._timers.get(alert_id)
            return len(handles.timers) if handles else 0

    def shutdown(self):
        with self._lock:
            alert_ids = list(self._timers)
        for alert_id in alert_ids:
            self.cancel(alert_id)
        logger.info("Escalation scheduler shutdown completed")

    # ── internals ────────────────────────────────────

    def _send(self, handles, alert, step):
        """Notify the step's channels if the alert is still open.

        State is checked under the alert lock; the transports run after it
        is released. Returns False when the alert was closed or cancelled.
        """
        lock = self.registry.lock_for(alert.id)
        with lock:
            if handles.cancelled or not alert.is_open:
                logger.debug(f"Skipping escalation for {alert.id}: no longer open")
                return False
            channels = self.channels.resolve(step.channel_ids)
        self.dispatcher.dispatch(alert, channels, lock=lock)
        return True

    def _arm(self, handles, delay_seconds, callback):
        timer = None

        def _run():
            with self._lock:
                if timer in handles.timers:
                    handles.timers.remove(timer)
            callback()
            self._forget_if_idle(handles)

        timer = self._timer_factory(delay_seconds, _run)
        with self._lock:
            if handles.cancelled:
                return
            handles.timers.append(timer)
        timer.start()

    def _fire_step(self, handles, alert, step):
        logger.info(f"Escalation step ({step.delay_minutes:g}m) firing for {alert.id}")
        if self._send(handles, alert, step) and step.repeats:
            self._arm_repeat(handles, alert, step, step.max_repeats)

    def _arm_repeat(self, handles, alert, step, remaining):
        with self.registry.lock_for(alert.id):
            if handles.cancelled or not alert.is_open:
                return
            self._arm(handles, step.repeat_interval_minutes * 60,
                      lambda: self._fire_repeat(handles, alert, step, remaining))

    def _fire_repeat(self, handles, alert, step, remaining):
        if not self._send(handles, alert, step):
            return
        remaining -= 1
        logger.debug(f"Repeat notification for {alert.id}, {remaining} left")
        if remaining > 0:
            self._arm_repeat(handles, alert, step, remaining)

    def _forget_if_idle(self, handles):
        with self._lock:
            if not handles.timers and self._timers.get(handles.alert_id) is handles:
                del self._timers[handles.alert_id]
