"""Watchlist: user-defined patterns that raise alerts.

Each line is TYPE:PATTERN:LABEL where TYPE is one of exact, wildcard, regex,
ip or cidr. A packet matches an entry on its hostname first, then its source
address, then its destination address; the first entry in file order that
matches wins.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .. import config
from ..classification.patterns import MatchType, PatternEntry
from ..models.packet import DecodedPacket
from .alert_manager import Alert, AlertManager

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "watchlist.txt"

_TYPE_NAMES = {t.value: t for t in MatchType}


@dataclass(frozen=True)
class WatchlistEntry:
    entry: PatternEntry
    label: str

    @property
    def pattern(self) -> str:
        return self.entry.pattern

    @property
    def match_type(self) -> MatchType:
        return self.entry.match_type

    def matches_hostname(self, hostname: str) -> bool:
        return self.entry.matches_hostname(hostname)

    def matches_ip(self, address: str) -> bool:
        return self.entry.matches_address(address)

    def match(self, pkt: DecodedPacket) -> Optional[str]:
        """Return the packet value that matched, or None."""
        if pkt.hostname and self.matches_hostname(pkt.hostname):
            return pkt.hostname
        if pkt.src_ip and self.matches_ip(pkt.src_ip):
            return pkt.src_ip
        if pkt.dst_ip and self.matches_ip(pkt.dst_ip):
            return pkt.dst_ip
        return None

    def matches(self, pkt: DecodedPacket) -> bool:
        return self.match(pkt) is not None

    @classmethod
    def from_fields(cls, fields: Sequence[str]) -> Optional["WatchlistEntry"]:
        if len(fields) < 3:
            return None

        type_name = fields[0].strip(" \t").lower()
        pattern = fields[1].strip(" \t")
        label = fields[2].strip(" \t")

        match_type = _TYPE_NAMES.get(type_name)
        if match_type is None or not pattern:
            return None

        entry = PatternEntry.build(match_type, pattern)
        if entry is None:
            return None
        return cls(entry=entry, label=label)


@dataclass(frozen=True)
class WatchlistMatch:
    entry: WatchlistEntry
    matched_value: str


class Watchlist:
    """Thread-safe watchlist feeding an AlertManager."""

    def __init__(self, alert_manager: Optional[AlertManager] = None):
        self.alerts = alert_manager or AlertManager()
        self._entries: List[WatchlistEntry] = []
        self._filepath = ""
        self._loaded = False
        self._lock = threading.Lock()

    def load(self, filepath: str) -> int:
        """Replace all entries with those in filepath; return entries loaded."""
        count = self.load_lines(config.read_config_lines(filepath))
        with self._lock:
            self._filepath = filepath
        logger.info("Loaded %d watchlist entries from %s", count, filepath)
        return count

    def load_lines(self, lines: Sequence[str]) -> int:
        entries = []
        for line in lines:
            entry = WatchlistEntry.from_fields(config.parse_fields(line, ":"))
            if entry is None:
                logger.debug("Skipping watchlist line: %r", line)
                continue
            entries.append(entry)

        with self._lock:
            self._entries = entries
            self._loaded = True
        return len(entries)

    def load_default(self, install: bool = False) -> int:
        """Load from the config directory, optionally seeding it with the bundled file."""
        if install:
            config.install_default_config(DEFAULT_FILENAME)
        return self.load(config.get_config_path(DEFAULT_FILENAME))

    def reload(self) -> bool:
        with self._lock:
            filepath = self._filepath
        if not filepath:
            return False
        self.load(filepath)
        return True

    def check(self, pkt: DecodedPacket) -> Optional[WatchlistMatch]:
        with self._lock:
            entries = self._entries
        for entry in entries:
            value = entry.match(pkt)
            if value is not None:
                return WatchlistMatch(entry=entry, matched_value=value)
        return None

    def check_and_mark(self, pkt: DecodedPacket, packet_index: int = 0) -> Optional[Alert]:
        """
        Check a packet and, on a hit, flag it and raise an alert.

        Returns the alert that was raised.
        """
        match = self.check(pkt)
        if match is None:
            return None
        self.mark(pkt, match)
        return self.raise_alert(match, packet_index)

    @staticmethod
    def mark(pkt: DecodedPacket, match: WatchlistMatch) -> None:
        pkt.enrich(watchlist_match=True, watchlist_label=match.entry.label)

    def raise_alert(self, match: WatchlistMatch, packet_index: int = 0) -> Alert:
        alert = Alert(
            matched_value=match.matched_value,
            pattern=match.entry.pattern,
            label=match.entry.label,
            packet_index=packet_index,
        )
        self.alerts.add_alert(alert)
        return alert

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    # Alert passthroughs for the display layer

    def get_recent_alerts(self, count: int = 10) -> List[Alert]:
        return self.alerts.get_recent_alerts(count)

    def get_latest_alert(self) -> Optional[Alert]:
        return self.alerts.get_latest_alert()

    def has_new_alerts(self) -> bool:
        return self.alerts.has_new_alerts()

    def clear_alerts(self) -> None:
        self.alerts.clear_alerts()

    def alert_count(self) -> int:
        return self.alerts.alert_count()

    def set_log_file(self, log_file: str) -> None:
        self.alerts.set_log_file(log_file)
