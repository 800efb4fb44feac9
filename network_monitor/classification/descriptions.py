"""Traffic description database.

Maps hostnames to a category and a human-readable description, e.g.
``*.googleapis.com:Google:Google APIs``. Lines are PATTERN:CATEGORY:DESCRIPTION;
a pattern starting with ``~`` is a regex, one containing ``*`` or ``?`` is a
wildcard, anything else must match exactly. The first matching entry in file
order wins.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .. import config
from .patterns import MatchType, PatternEntry

logger = logging.getLogger(__name__)

REGEX_MARKER = "~"
DEFAULT_FILENAME = "descriptions.txt"


@dataclass(frozen=True)
class DescriptionEntry:
    entry: PatternEntry
    category: str
    description: str

    @property
    def pattern(self) -> str:
        return self.entry.pattern

    @property
    def match_type(self) -> MatchType:
        return self.entry.match_type

    def matches(self, hostname: str) -> bool:
        return self.entry.matches_hostname(hostname)

    @classmethod
    def from_fields(cls, fields: Sequence[str]) -> Optional["DescriptionEntry"]:
        if len(fields) < 3:
            return None

        pattern = fields[0].strip(" \t")
        category = fields[1].strip(" \t")
        description = fields[2].strip(" \t")
        if not pattern or not category:
            return None

        match_type = detect_match_type(pattern)
        compiled_from = pattern[1:] if match_type is MatchType.REGEX else None
        entry = PatternEntry.build(match_type, pattern, compiled_from=compiled_from)
        if entry is None:
            return None
        return cls(entry=entry, category=category, description=description)


@dataclass(frozen=True)
class LookupResult:
    category: str
    description: str


def detect_match_type(pattern: str) -> MatchType:
    if pattern.startswith(REGEX_MARKER):
        return MatchType.REGEX
    if "*" in pattern or "?" in pattern:
        return MatchType.WILDCARD
    return MatchType.EXACT


class DescriptionDatabase:
    """Thread-safe hostname -> (category, description) table."""

    def __init__(self):
        self._entries: List[DescriptionEntry] = []
        self._filepath = ""
        self._loaded = False
        self._lock = threading.Lock()

    def load(self, filepath: str) -> int:
        """Replace the table with the contents of filepath; return entries loaded."""
        count = self.load_lines(config.read_config_lines(filepath))
        with self._lock:
            self._filepath = filepath
        logger.info("Loaded %d descriptions from %s", count, filepath)
        return count

    def load_lines(self, lines: Sequence[str]) -> int:
        entries = []
        for line in lines:
            entry = DescriptionEntry.from_fields(config.parse_fields(line, ":"))
            if entry is None:
                logger.debug("Skipping description line: %r", line)
                continue
            entries.append(entry)

        with self._lock:
            self._entries = entries
            self._loaded = True
        return len(entries)

    def load_default(self, install: bool = True) -> int:
        """Load from the config directory, seeding it with the bundled file."""
        if install:
            config.install_default_config(DEFAULT_FILENAME)
        return self.load(config.get_config_path(DEFAULT_FILENAME))

    def lookup(self, hostname: str) -> Optional[LookupResult]:
        if not hostname:
            return None
        with self._lock:
            entries = self._entries
        for entry in entries:
            if entry.matches(hostname):
                return LookupResult(entry.category, entry.description)
        return None

    def reload(self) -> bool:
        with self._lock:
            filepath = self._filepath
        if not filepath:
            return False
        self.load(filepath)
        return True

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def is_loaded(self) -> bool:
        return self._loaded
