"""Readers for the Linux /proc socket and descriptor tables."""

import logging
import os
from typing import Iterator, List, Optional, Tuple

from ..models.packet import PROTO_TCP, PROTO_UDP

logger = logging.getLogger(__name__)

SOCKET_TABLES = {
    PROTO_TCP: "net/tcp",
    PROTO_UDP: "net/udp",
}

MAX_LINK_TARGET = 255
SOCKET_LINK_PREFIX = "socket:["

# (local_addr, local_port, remote_addr, remote_port, inode)
SocketRow = Tuple[int, int, int, int, int]


def parse_hex(text: str) -> int:
    """Parse a hex field; malformed input reads as zero."""
    try:
        return int(text, 16)
    except ValueError:
        return 0


def parse_proc_ip(text: str) -> int:
    """
    Convert a /proc IPv4 address to host byte order.

    The kernel prints the address as a little-endian hex word, so
    "0100007F" is 127.0.0.1.
    """
    if len(text) != 8:
        return 0
    try:
        return int.from_bytes(bytes.fromhex(text), "little")
    except ValueError:
        return 0


def parse_socket_row(line: str) -> Optional[SocketRow]:
    """
    Parse one row of /proc/net/{tcp,udp}.

    Format: sl local_address rem_address st tx_queue:rx_queue tr:tm->when
    retrnsmt uid timeout inode ...
    """
    parts = line.split()
    if len(parts) < 10:
        return None

    local, remote = parts[1], parts[2]
    if ":" not in local or ":" not in remote:
        return None

    try:
        inode = int(parts[9])
    except ValueError:
        inode = 0
    if inode == 0:
        return None

    local_ip, local_port = local.split(":", 1)
    remote_ip, remote_port = remote.split(":", 1)
    return (
        parse_proc_ip(local_ip),
        parse_hex(local_port),
        parse_proc_ip(remote_ip),
        parse_hex(remote_port),
        inode,
    )


def parse_socket_link(target: str) -> Optional[int]:
    """Extract the inode from a "socket:[12345]" descriptor link."""
    if not target.startswith(SOCKET_LINK_PREFIX) or not target.endswith("]"):
        return None
    try:
        return int(target[len(SOCKET_LINK_PREFIX):-1])
    except ValueError:
        return None


class ProcfsReader:
    """
    Access to the kernel's socket and process tables under a proc root.

    Every method degrades to an empty result when a path is unreadable;
    processes come and go while they are being walked.
    """

    def __init__(self, proc_root: str = "/proc"):
        self.proc_root = proc_root

    def is_available(self) -> bool:
        return os.path.isdir(os.path.join(self.proc_root, "net"))

    def read_socket_table(self, protocol: int) -> List[SocketRow]:
        relative = SOCKET_TABLES.get(protocol)
        if relative is None:
            return []

        path = os.path.join(self.proc_root, relative)
        try:
            with open(path) as f:
                lines = f.readlines()
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            return []

        rows = []
        for line in lines[1:]:  # header
            row = parse_socket_row(line)
            if row is not None:
                rows.append(row)
        return rows

    def iter_pids(self) -> Iterator[int]:
        try:
            entries = os.listdir(self.proc_root)
        except OSError:
            return
        for entry in entries:
            if entry.isdigit() and int(entry) > 0:
                yield int(entry)

    def iter_socket_inodes(self, pid: int) -> Iterator[int]:
        fd_dir = os.path.join(self.proc_root, str(pid), "fd")
        try:
            fds = os.listdir(fd_dir)
        except OSError:
            return
        for fd in fds:
            try:
                target = os.readlink(os.path.join(fd_dir, fd))
            except OSError:
                continue
            if len(target) > MAX_LINK_TARGET:
                continue
            inode = parse_socket_link(target)
            if inode is not None:
                yield inode

    def read_process_name(self, pid: int) -> str:
        path = os.path.join(self.proc_root, str(pid), "comm")
        try:
            with open(path) as f:
                return f.readline().rstrip("\n")
        except OSError:
            return ""
