"""Network interface enumeration."""

import socket
from dataclasses import dataclass
from typing import Dict, List, Optional

import psutil


@dataclass
class InterfaceInfo:
    """Information about a network interface."""
    name: str
    mac_address: Optional[str]
    ipv4_address: Optional[str]
    ipv4_netmask: Optional[str]
    ipv6_address: Optional[str]
    is_up: bool
    is_loopback: bool
    speed_mbps: Optional[int]
    mtu: Optional[int]

    def __str__(self) -> str:
        status = "UP" if self.is_up else "DOWN"
        addr = self.ipv4_address or "no address"
        return f"{self.name} ({addr}) [{status}]"


class InterfaceManager:
    """Lists capture-capable interfaces via psutil."""

    def __init__(self):
        self._interfaces: Dict[str, InterfaceInfo] = {}
        self.refresh()

    def refresh(self) -> None:
        self._interfaces.clear()

        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()

        for name, stat in stats.items():
            ipv4_addr = None
            ipv4_mask = None
            ipv6_addr = None
            mac_addr = None

            for addr in addrs.get(name, []):
                if addr.family == socket.AF_INET and ipv4_addr is None:
                    ipv4_addr = addr.address
                    ipv4_mask = addr.netmask
                elif addr.family == socket.AF_INET6 and ipv6_addr is None:
                    ipv6_addr = addr.address
                elif addr.family == psutil.AF_LINK:
                    mac_addr = addr.address

            is_loopback = name.lower().startswith("lo") or ipv4_addr == "127.0.0.1"

            self._interfaces[name] = InterfaceInfo(
                name=name,
                mac_address=mac_addr,
                ipv4_address=ipv4_addr,
                ipv4_netmask=ipv4_mask,
                ipv6_address=ipv6_addr,
                is_up=stat.isup,
                is_loopback=is_loopback,
                speed_mbps=stat.speed if stat.speed > 0 else None,
                mtu=stat.mtu or None,
            )

    def get_all(self) -> List[InterfaceInfo]:
        return sorted(self._interfaces.values(), key=lambda i: i.name)

    def get_active(self) -> List[InterfaceInfo]:
        """Get only active (UP) interfaces with IP addresses."""
        return [
            iface for iface in self.get_all()
            if iface.is_up and iface.ipv4_address and not iface.is_loopback
        ]

    def exists(self, name: str) -> bool:
        return name in self._interfaces

    def validate_interfaces(self, names: List[str]) -> List[str]:
        """Return the names that are not present on this host."""
        return [name for name in names if not self.exists(name)]

    def default_interface(self) -> Optional[str]:
        """First active non-loopback interface, if any."""
        active = self.get_active()
        return active[0].name if active else None
