"""Alert management system."""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)

MAX_ALERTS = 100


@dataclass
class Alert:
    """A watchlist hit."""
    matched_value: str
    pattern: str
    label: str
    packet_index: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def format_short(self) -> str:
        return f"{self.matched_value}: {self.label}"

    def format_full(self) -> str:
        return (
            f"{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')} | {self.matched_value}"
            f" | Pattern: {self.pattern} | {self.label}"
        )


class AlertManager:
    """
    Keeps the most recent alerts, newest first, and appends each one to an
    optional plain-text log.

    The "new alerts" flag is set on every add and cleared by the single
    reader that calls has_new_alerts().
    """

    def __init__(self, max_alerts: int = MAX_ALERTS, log_file: str = ""):
        self.max_alerts = max_alerts
        self._alerts: Deque[Alert] = deque(maxlen=max_alerts)
        self._has_new = False
        self._log_file = log_file
        self._callbacks: List[Callable[[Alert], None]] = []
        self._lock = threading.Lock()
        self._log_lock = threading.Lock()

    def add_callback(self, callback: Callable[[Alert], None]) -> None:
        """Add notification callback."""
        self._callbacks.append(callback)

    def add_alert(self, alert: Alert) -> None:
        with self._lock:
            self._alerts.appendleft(alert)
            self._has_new = True
            log_file = self._log_file

        if log_file:
            self._write_log(log_file, alert)

        for callback in self._callbacks:
            try:
                callback(alert)
            except Exception:
                logger.exception("Alert callback failed")

    def get_recent_alerts(self, count: int = 10) -> List[Alert]:
        with self._lock:
            return list(self._alerts)[:count]

    def get_latest_alert(self) -> Optional[Alert]:
        with self._lock:
            return self._alerts[0] if self._alerts else None

    def alert_count(self) -> int:
        with self._lock:
            return len(self._alerts)

    def clear_alerts(self) -> None:
        with self._lock:
            self._alerts.clear()

    def has_new_alerts(self) -> bool:
        """Return whether alerts arrived since the last call, and reset."""
        with self._lock:
            has_new = self._has_new
            self._has_new = False
            return has_new

    def set_log_file(self, log_file: str) -> None:
        with self._lock:
            self._log_file = log_file

    @property
    def log_file(self) -> str:
        return self._log_file

    def _write_log(self, log_file: str, alert: Alert) -> None:
        with self._log_lock:
            try:
                with open(log_file, "a", encoding="utf-8") as f:
                    f.write(alert.format_full() + "\n")
            except OSError as e:
                logger.warning("Cannot write alert log %s: %s", log_file, e)
