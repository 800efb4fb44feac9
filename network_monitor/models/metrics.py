"""Metrics data structures."""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

MAX_HISTORY = 60  # one sample per second


@dataclass
class InterfaceStats:
    """Running totals, rates and rate history for the capture interface."""
    name: str = ""

    # Counters (absolute values)
    packets_received: int = 0
    bytes_received: int = 0

    # Rate calculations (per second)
    packets_per_second: float = 0.0
    bytes_per_second: float = 0.0

    # Protocol breakdown
    protocol_counts: Dict[str, int] = field(default_factory=dict)
    protocol_bytes: Dict[str, int] = field(default_factory=dict)

    # Traffic history for graphing
    history_length: int = MAX_HISTORY
    pps_history: Deque[float] = field(default_factory=deque)
    bps_history: Deque[float] = field(default_factory=deque)

    # Bookkeeping for rate calculation
    last_rate_update: Optional[float] = None
    last_packets: int = 0
    last_bytes: int = 0

    def __post_init__(self):
        self.pps_history = deque(self.pps_history, maxlen=self.history_length)
        self.bps_history = deque(self.bps_history, maxlen=self.history_length)

    def record(self, protocol: str, wire_bytes: int) -> None:
        """Account for one stored packet."""
        self.packets_received += 1
        self.bytes_received += wire_bytes
        self.protocol_counts[protocol] = self.protocol_counts.get(protocol, 0) + 1
        self.protocol_bytes[protocol] = self.protocol_bytes.get(protocol, 0) + wire_bytes

    def calculate_rates(self, current_time: float, min_interval: float = 1.0) -> bool:
        """
        Compute packets/bytes per second over the window since the last sample.

        Returns False without touching anything when less than min_interval
        has elapsed.
        """
        if self.last_rate_update is None:
            self.last_rate_update = current_time
            return False

        elapsed = current_time - self.last_rate_update
        if elapsed < min_interval:
            return False

        self.packets_per_second = (self.packets_received - self.last_packets) / elapsed
        self.bytes_per_second = (self.bytes_received - self.last_bytes) / elapsed

        self.pps_history.append(self.packets_per_second)
        self.bps_history.append(self.bytes_per_second)

        self.last_rate_update = current_time
        self.last_packets = self.packets_received
        self.last_bytes = self.bytes_received
        return True

    @property
    def bandwidth_mbps(self) -> float:
        """Current bandwidth in Mbps."""
        return (self.bytes_per_second * 8) / 1_000_000

    def copy(self) -> "InterfaceStats":
        return InterfaceStats(
            name=self.name,
            packets_received=self.packets_received,
            bytes_received=self.bytes_received,
            packets_per_second=self.packets_per_second,
            bytes_per_second=self.bytes_per_second,
            protocol_counts=dict(self.protocol_counts),
            protocol_bytes=dict(self.protocol_bytes),
            history_length=self.history_length,
            pps_history=deque(self.pps_history),
            bps_history=deque(self.bps_history),
            last_rate_update=self.last_rate_update,
            last_packets=self.last_packets,
            last_bytes=self.last_bytes,
        )
