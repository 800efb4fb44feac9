import os

import pytest


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    """Point the per-user config directory into tmp_path."""
    home = tmp_path / "xdg"
    home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    return home / "network-monitor"


TCP_HEADER = (
    "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when "
    "retrnsmt   uid  timeout inode\n"
)
UDP_HEADER = (
    "   sl  local_address rem_address   st tx_queue rx_queue tr tm->when "
    "retrnsmt   uid  timeout inode ref pointer drops\n"
)


def proc_ip(address: str) -> str:
    """127.0.0.1 -> 0100007F, the way the kernel prints it."""
    return "".join(f"{int(octet):02X}" for octet in reversed(address.split(".")))


def socket_row(index: int, local: str, lport: int, remote: str, rport: int, inode: int) -> str:
    return (
        f"   {index}: {proc_ip(local)}:{lport:04X} {proc_ip(remote)}:{rport:04X} 01 "
        f"00000000:00000000 00:00000000 00000000  1000        0 {inode} 1 "
        f"0000000000000000 20 4 30 10 -1\n"
    )


class ProcTree:
    """A writable stand-in for /proc."""

    def __init__(self, root):
        self.root = root
        (root / "net").mkdir(parents=True)
        self.tcp_rows = []
        self.udp_rows = []
        self.write_tables()

    def write_tables(self) -> None:
        (self.root / "net" / "tcp").write_text(TCP_HEADER + "".join(self.tcp_rows))
        (self.root / "net" / "udp").write_text(UDP_HEADER + "".join(self.udp_rows))

    def add_socket(self, protocol: str, local: str, lport: int, remote: str, rport: int,
                   inode: int) -> None:
        rows = self.tcp_rows if protocol == "tcp" else self.udp_rows
        rows.append(socket_row(len(rows), local, lport, remote, rport, inode))
        self.write_tables()

    def add_process(self, pid: int, name: str, inodes=(), other_fds=()) -> None:
        proc = self.root / str(pid)
        fd_dir = proc / "fd"
        fd_dir.mkdir(parents=True)
        (proc / "comm").write_text(name + "\n")
        fd = 3
        for inode in inodes:
            os.symlink(f"socket:[{inode}]", fd_dir / str(fd))
            fd += 1
        for target in other_fds:
            os.symlink(target, fd_dir / str(fd))
            fd += 1


@pytest.fixture
def proc_tree(tmp_path):
    return ProcTree(tmp_path / "proc")
