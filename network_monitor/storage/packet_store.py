"""Bounded, thread-safe store of enriched packets plus interface statistics."""

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, List, Optional

from ..models.metrics import MAX_HISTORY, InterfaceStats
from ..models.packet import DecodedPacket

MAX_PACKETS = 10000
RATE_INTERVAL = 1.0


class PacketStore:
    """
    Keeps the most recent packets in decode order.

    One thread pushes, any number of threads read. Every accessor hands out
    copies so callers never alias the live buffer. Statistics are updated
    under the same lock as the push, so a snapshot always accounts for
    exactly the packets stored up to that point.
    """

    def __init__(
        self,
        max_packets: int = MAX_PACKETS,
        history_length: int = MAX_HISTORY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_packets = max_packets
        self.history_length = history_length
        self._clock = clock
        self._packets: Deque[DecodedPacket] = deque(maxlen=max_packets)
        self._stats = InterfaceStats(history_length=history_length)
        self._stats.last_rate_update = clock()
        self._selected_index = 0
        self._total_pushed = 0
        self._lock = Lock()

    def push(self, pkt: DecodedPacket) -> int:
        """Append a packet, evicting the oldest when full. Returns its sequence number."""
        with self._lock:
            if len(self._packets) == self.max_packets:
                # The deque drops the head; keep the selection on the same packet.
                if self._selected_index > 0:
                    self._selected_index -= 1
            self._packets.append(pkt.copy())

            sequence = self._total_pushed
            self._total_pushed += 1
            self._stats.record(pkt.protocol_name(), pkt.original_length or pkt.length)
            return sequence

    def get_recent(self, n: int) -> List[DecodedPacket]:
        """Last n packets, oldest first."""
        with self._lock:
            if n <= 0:
                return []
            items = list(self._packets)[-n:]
        return [p.copy() for p in items]

    def get_all(self) -> List[DecodedPacket]:
        with self._lock:
            items = list(self._packets)
        return [p.copy() for p in items]

    def get(self, index: int) -> Optional[DecodedPacket]:
        with self._lock:
            if 0 <= index < len(self._packets):
                return self._packets[index].copy()
        return None

    def get_by_sequence(self, sequence: int) -> Optional[DecodedPacket]:
        """Fetch a packet by the number push() returned, if it is still stored."""
        with self._lock:
            first = self._total_pushed - len(self._packets)
            index = sequence - first
            if 0 <= index < len(self._packets):
                return self._packets[index].copy()
        return None

    def size(self) -> int:
        with self._lock:
            return len(self._packets)

    def __len__(self) -> int:
        return self.size()

    @property
    def total_pushed(self) -> int:
        with self._lock:
            return self._total_pushed

    def clear(self) -> None:
        """Drop all packets and reset statistics."""
        with self._lock:
            self._packets.clear()
            name = self._stats.name
            self._stats = InterfaceStats(name=name, history_length=self.history_length)
            self._stats.last_rate_update = self._clock()
            self._selected_index = 0

    def get_stats(self) -> InterfaceStats:
        with self._lock:
            return self._stats.copy()

    def update_rates(self) -> bool:
        """
        Recompute packet and byte rates.

        Safe to call as often as the caller likes; a sample is only taken once
        at least a second has passed since the previous one.
        """
        with self._lock:
            return self._stats.calculate_rates(self._clock(), RATE_INTERVAL)

    def set_interface_name(self, name: str) -> None:
        with self._lock:
            self._stats.name = name

    def set_selected_index(self, index: int) -> None:
        with self._lock:
            if 0 <= index < len(self._packets):
                self._selected_index = index

    def get_selected_index(self) -> int:
        with self._lock:
            return self._selected_index

    def get_selected_packet(self) -> Optional[DecodedPacket]:
        with self._lock:
            if 0 <= self._selected_index < len(self._packets):
                return self._packets[self._selected_index].copy()
        return None
