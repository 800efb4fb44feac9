"""Process attribution for captured packets.

Maps a connection 5-tuple to the local process owning the socket. The socket
tables are read from the kernel, the owning process is found by walking every
process's descriptor table, and the whole result is cached for a short TTL.
Only IPv4 connections can be attributed.
"""

import ipaddress
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from ..capture.platform_adapter import get_platform_adapter
from ..models.packet import PROTO_TCP, PROTO_UDP
from .procfs import ProcfsReader

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 0.5  # seconds


@dataclass(frozen=True)
class SocketKey:
    """Connection 5-tuple, addresses as host-order integers."""
    local_addr: int
    local_port: int
    remote_addr: int
    remote_port: int
    protocol: int

    def swapped(self) -> "SocketKey":
        """Return the key seen from the other end."""
        return SocketKey(
            local_addr=self.remote_addr,
            local_port=self.remote_port,
            remote_addr=self.local_addr,
            remote_port=self.local_port,
            protocol=self.protocol,
        )


@dataclass
class SocketEntry:
    inode: int
    cached_at: float


@dataclass
class ProcessInfo:
    pid: int = 0
    name: str = ""
    cached_at: float = 0.0

    def is_valid(self) -> bool:
        return self.pid > 0 and bool(self.name)


class ProcessNameCache:
    """pid -> process name; a name never changes for the life of a pid."""

    def __init__(self):
        self._names: Dict[int, str] = {}

    def get(self, pid: int, loader: Callable[[int], str]) -> str:
        name = self._names.get(pid)
        if name is None:
            name = loader(pid)
            if name:
                self._names[pid] = name
        return name

    def clear(self) -> None:
        self._names.clear()

    def __len__(self) -> int:
        return len(self._names)


def _ipv4_to_int(address: str) -> Optional[int]:
    try:
        return int(ipaddress.IPv4Address(address))
    except ValueError:
        return None


def _platform_supported(proc_root: str) -> bool:
    try:
        return get_platform_adapter(proc_root).supports_process_attribution()
    except RuntimeError:
        return False


class ProcessMapper:
    """
    Connection -> process lookup backed by a TTL cache.

    The socket table, the inode -> process map and the process name cache
    are rebuilt together once the TTL has expired; there is no per-entry
    expiry. The lock only serialises lookups against a refresh in progress.
    """

    def __init__(
        self,
        reader: Optional[ProcfsReader] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        protocols: Iterable[int] = (PROTO_TCP, PROTO_UDP),
        supported: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.reader = reader or ProcfsReader()
        self.protocols = tuple(protocols)
        self.supported = _platform_supported(self.reader.proc_root) if supported is None else supported
        self._clock = clock
        self._cache_ttl = cache_ttl

        self._socket_table: Dict[SocketKey, SocketEntry] = {}
        self._inode_to_process: Dict[int, ProcessInfo] = {}
        self._names = ProcessNameCache()

        # None means never populated
        self._last_refresh: Optional[float] = None
        self._refresh_count = 0
        self._lock = threading.Lock()

    @property
    def is_supported(self) -> bool:
        return self.supported

    def set_cache_ttl(self, seconds: float) -> None:
        self._cache_ttl = seconds

    def lookup(
        self,
        local_ip: str,
        local_port: int,
        remote_ip: str,
        remote_port: int,
        protocol: int,
    ) -> Optional[ProcessInfo]:
        """Find the process owning a connection, trying both orientations."""
        if not self.supported:
            return None

        local_addr = _ipv4_to_int(local_ip)
        remote_addr = _ipv4_to_int(remote_ip)
        if local_addr is None or remote_addr is None:
            return None

        key = SocketKey(local_addr, local_port, remote_addr, remote_port, protocol)

        with self._lock:
            if not self._is_cache_valid():
                self._refresh_unlocked()

            entry = self._socket_table.get(key)
            if entry is None:
                entry = self._socket_table.get(key.swapped())
            if entry is None:
                return None

            info = self._inode_to_process.get(entry.inode)
            if info is None:
                return None
            return ProcessInfo(pid=info.pid, name=info.name, cached_at=info.cached_at)

    def lookup_packet(
        self,
        src_ip: str,
        src_port: int,
        dst_ip: str,
        dst_port: int,
        protocol: int,
    ) -> Optional[ProcessInfo]:
        """Lookup for a captured packet whose direction is unknown."""
        result = self.lookup(src_ip, src_port, dst_ip, dst_port, protocol)
        if result is not None:
            return result
        return self.lookup(dst_ip, dst_port, src_ip, src_port, protocol)

    def refresh(self) -> None:
        """Rebuild all tables now."""
        if not self.supported:
            return
        with self._lock:
            self._refresh_unlocked()

    def clear(self) -> None:
        with self._lock:
            self._socket_table.clear()
            self._inode_to_process.clear()
            self._names.clear()
            self._last_refresh = None

    def cache_size(self) -> int:
        with self._lock:
            return len(self._inode_to_process)

    def socket_table_size(self) -> int:
        with self._lock:
            return len(self._socket_table)

    @property
    def refresh_count(self) -> int:
        """Number of table rebuilds performed so far."""
        return self._refresh_count

    def _is_cache_valid(self) -> bool:
        if self._last_refresh is None:
            return False
        return self._clock() - self._last_refresh < self._cache_ttl

    def _refresh_unlocked(self) -> None:
        now = self._clock()
        self._socket_table = {}
        self._inode_to_process = {}
        self._names.clear()

        for protocol in self.protocols:
            self._refresh_socket_table(protocol, now)
        self._refresh_inode_mapping(now)

        self._last_refresh = now
        self._refresh_count += 1
        logger.debug(
            "Attribution refresh: %d sockets, %d owned",
            len(self._socket_table), len(self._inode_to_process),
        )

    def _refresh_socket_table(self, protocol: int, now: float) -> None:
        for local_addr, local_port, remote_addr, remote_port, inode in \
                self.reader.read_socket_table(protocol):
            key = SocketKey(local_addr, local_port, remote_addr, remote_port, protocol)
            self._socket_table[key] = SocketEntry(inode=inode, cached_at=now)

    def _refresh_inode_mapping(self, now: float) -> None:
        wanted = {entry.inode for entry in self._socket_table.values()}
        if not wanted:
            return

        for pid in self.reader.iter_pids():
            for inode in self.reader.iter_socket_inodes(pid):
                if inode not in wanted:
                    continue
                name = self._names.get(pid, self.reader.read_process_name)
                self._inode_to_process[inode] = ProcessInfo(pid=pid, name=name, cached_at=now)
