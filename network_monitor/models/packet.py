"""Packet data structures."""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Optional


# IP protocol numbers
PROTO_ICMP = 1
PROTO_TCP = 6
PROTO_UDP = 17
PROTO_ICMPV6 = 58

# EtherTypes
ETHERTYPE_IPV4 = 0x0800
ETHERTYPE_ARP = 0x0806
ETHERTYPE_VLAN = 0x8100
ETHERTYPE_QINQ = 0x88A8
ETHERTYPE_IPV6 = 0x86DD

# TCP flags
TCP_FIN = 0x01
TCP_SYN = 0x02
TCP_RST = 0x04
TCP_PSH = 0x08
TCP_ACK = 0x10
TCP_URG = 0x20

EMPTY_MAC = bytes(6)


@dataclass(frozen=True)
class Frame:
    """A captured link-layer frame as delivered by a capture source."""
    timestamp: float
    captured_length: int
    wire_length: int
    data: bytes


@dataclass
class TCPFlags:
    """TCP flag decomposition."""
    syn: bool = False
    ack: bool = False
    fin: bool = False
    rst: bool = False
    psh: bool = False
    urg: bool = False
    ece: bool = False
    cwr: bool = False

    @classmethod
    def from_int(cls, flags: int) -> "TCPFlags":
        """Create TCPFlags from integer flag value."""
        return cls(
            fin=bool(flags & 0x01),
            syn=bool(flags & 0x02),
            rst=bool(flags & 0x04),
            psh=bool(flags & 0x08),
            ack=bool(flags & 0x10),
            urg=bool(flags & 0x20),
            ece=bool(flags & 0x40),
            cwr=bool(flags & 0x80),
        )

    def to_string(self) -> str:
        """Return string representation of flags."""
        flags = []
        if self.syn:
            flags.append("SYN")
        if self.ack:
            flags.append("ACK")
        if self.fin:
            flags.append("FIN")
        if self.rst:
            flags.append("RST")
        if self.psh:
            flags.append("PSH")
        if self.urg:
            flags.append("URG")
        if self.ece:
            flags.append("ECE")
        if self.cwr:
            flags.append("CWR")
        return ",".join(flags) if flags else "NONE"


_FLAG_LETTERS = (
    (TCP_SYN, "S"),
    (TCP_ACK, "A"),
    (TCP_FIN, "F"),
    (TCP_RST, "R"),
    (TCP_PSH, "P"),
    (TCP_URG, "U"),
)


@dataclass
class DecodedPacket:
    """
    A decoded frame plus everything learned about it afterwards.

    The decoder fills the layer fields; attribution and classification only
    add to it through enrich(). Once pushed to the store a record is never
    mutated again.
    """
    timestamp: float = 0.0
    length: int = 0
    original_length: int = 0

    # Ethernet layer
    src_mac: bytes = EMPTY_MAC
    dst_mac: bytes = EMPTY_MAC
    ether_type: int = 0

    # IP layer
    ip_version: int = 0
    src_ip: str = ""
    dst_ip: str = ""
    protocol: int = 0
    ttl: int = 0

    # Transport layer
    src_port: int = 0
    dst_port: int = 0
    tcp_flags: int = 0

    # Application layer
    hostname: str = ""
    app_protocol: str = ""
    app_info: str = ""

    # Classification
    category: str = ""
    description: str = ""
    watchlist_match: bool = False
    watchlist_label: str = ""

    # Process attribution
    process_name: str = ""
    pid: int = 0

    raw_data: bytes = field(default=b"", repr=False)

    def protocol_name(self) -> str:
        """Display label used for the per-protocol statistics."""
        if self.app_protocol:
            return self.app_protocol
        if self.ether_type == ETHERTYPE_ARP:
            return "ARP"
        if self.protocol == PROTO_ICMP:
            return "ICMP"
        if self.protocol == PROTO_TCP:
            return "TCP"
        if self.protocol == PROTO_UDP:
            return "UDP"
        if self.protocol == PROTO_ICMPV6:
            return "ICMPv6"
        if self.ip_version in (4, 6):
            return f"IP/{self.protocol}"
        return "ETH"

    def tcp_flags_str(self) -> str:
        if self.protocol != PROTO_TCP:
            return ""
        letters = "".join(ch for bit, ch in _FLAG_LETTERS if self.tcp_flags & bit)
        return f"[{letters}]" if letters else ""

    def get_tcp_flags(self) -> Optional[TCPFlags]:
        """Get parsed TCP flags."""
        if self.protocol == PROTO_TCP:
            return TCPFlags.from_int(self.tcp_flags)
        return None

    @staticmethod
    def format_mac(mac: bytes) -> str:
        return ":".join(f"{b:02x}" for b in mac)

    def timestamp_str(self) -> str:
        return datetime.fromtimestamp(self.timestamp).strftime("%H:%M:%S.%f")[:-3]

    def summary(self) -> str:
        """One-line description for list views."""
        if self.ether_type == ETHERTYPE_ARP:
            return "ARP"
        if self.ip_version == 0:
            return f"{self.format_mac(self.src_mac)} -> {self.format_mac(self.dst_mac)}"
        if self.protocol in (PROTO_TCP, PROTO_UDP):
            text = f"{self.src_port} -> {self.dst_port}"
            if self.protocol == PROTO_TCP and self.tcp_flags_str():
                text += " " + self.tcp_flags_str()
            if self.app_info:
                text += " " + self.app_info
            return text
        if self.protocol in (PROTO_ICMP, PROTO_ICMPV6):
            return "Echo request/reply"
        return ""

    def enrich(self, **values) -> None:
        """
        Set fields that are still at their default value.

        Fields that already carry a value are left untouched, so enrichment
        from several sources is additive and order-independent.
        """
        for name, value in values.items():
            if name not in _FIELD_DEFAULTS:
                raise AttributeError(f"DecodedPacket has no field {name!r}")
            if getattr(self, name) == _FIELD_DEFAULTS[name]:
                setattr(self, name, value)

    def copy(self) -> "DecodedPacket":
        return replace(self)


_FIELD_DEFAULTS = {f.name: f.default for f in fields(DecodedPacket)}
