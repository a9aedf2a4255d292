"""Health-status feed: explicit subscription to status transitions."""
import logging
import threading

from models.enums import HealthStatus

logger = logging.getLogger("opsalert.monitor.health")


class HealthMonitorFeed:
    """Tracks the current health status and notifies subscribers on change.

    An external health monitor calls publish(); subscribers receive
    (from_status, to_status) for every actual transition.
    """

    def __init__(self, initial=HealthStatus.HEALTHY):
        self._status = HealthStatus(initial)
        self._subscribers = []
        self._lock = threading.Lock()

    @property
    def current_status(self):
        return self._status

    def subscribe(self, callback):
        self._subscribers.append(callback)

    def unsubscribe(self, callback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, status):
        """Set the current status; returns True if it changed."""
        status = HealthStatus(status)
        with self._lock:
            previous = self._status
            if previous == status:
                return False
            self._status = status

        logger.info(f"Health status changed: {previous.value} -> {status.value}")
        for cb in list(self._subscribers):
            try:
                cb(previous, status)
            except Exception as e:
                logger.warning(f"Health subscriber error: {e}")
        return True
