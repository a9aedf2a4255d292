"""Bounded notification audit log."""
import threading
from collections import deque


class NotificationHistory:
    """Thread-safe ring buffer of NotificationHistoryEntry records.

    Once capacity is reached the oldest entry is evicted on every append.
    """

    def __init__(self, capacity=1000):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry):
        with self._lock:
            self._entries.append(entry)

    def recent(self, limit=100):
        """Newest entries first, at most `limit` of them (all when limit is None)."""
        with self._lock:
            entries = list(self._entries)
        if limit is None:
            return list(reversed(entries))
        if limit <= 0:
            return []
        return list(reversed(entries[-limit:]))

    def for_alert(self, alert_id):
        with self._lock:
            return [e for e in self._entries if e.alert_id == alert_id]

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)
