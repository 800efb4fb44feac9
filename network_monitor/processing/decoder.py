"""Frame decoder: raw link-layer bytes to DecodedPacket.

The decoder never raises on malformed input. It fills in as many layers as
the captured bytes allow and stops descending at the first header that does
not fit.
"""

import socket
import struct
import time
from typing import Optional

from ..models.packet import (
    DecodedPacket,
    ETHERTYPE_ARP,
    ETHERTYPE_IPV4,
    ETHERTYPE_IPV6,
    ETHERTYPE_QINQ,
    ETHERTYPE_VLAN,
    PROTO_TCP,
    PROTO_UDP,
)
from .app_parsers import identify_app

ETH_HEADER_LEN = 14
VLAN_TAG_LEN = 4
ARP_LEN = 28
IPV4_MIN_HEADER_LEN = 20
IPV6_HEADER_LEN = 40
TCP_MIN_HEADER_LEN = 20
UDP_HEADER_LEN = 8

_IPV4 = struct.Struct("!BBHHHBBH4s4s")
_IPV6 = struct.Struct("!IHBB16s16s")
_TCP = struct.Struct("!HHIIBBHHH")
_UDP = struct.Struct("!HHHH")


def decode(
    data: bytes,
    captured_length: int,
    wire_length: int,
    timestamp: Optional[float] = None,
) -> DecodedPacket:
    """
    Decode one captured frame.

    Only the first captured_length bytes of data are ever read. The returned
    record keeps a copy of those bytes in raw_data.
    """
    caplen = max(0, min(captured_length, len(data)))
    buf = bytes(data[:caplen])

    pkt = DecodedPacket(
        timestamp=time.time() if timestamp is None else timestamp,
        length=caplen,
        original_length=wire_length,
        raw_data=buf,
    )

    if caplen < ETH_HEADER_LEN:
        return pkt

    pkt.dst_mac = buf[0:6]
    pkt.src_mac = buf[6:12]
    ether_type = struct.unpack("!H", buf[12:14])[0]
    offset = ETH_HEADER_LEN

    # 802.1Q / 802.1ad tags: the real ethertype follows each 4-byte tag
    while ether_type in (ETHERTYPE_VLAN, ETHERTYPE_QINQ) and caplen - offset >= VLAN_TAG_LEN:
        ether_type = struct.unpack("!H", buf[offset + 2:offset + 4])[0]
        offset += VLAN_TAG_LEN
    pkt.ether_type = ether_type

    if ether_type == ETHERTYPE_ARP:
        _decode_arp(pkt, buf, offset)
        return pkt

    if ether_type == ETHERTYPE_IPV4:
        offset = _decode_ipv4(pkt, buf, offset)
    elif ether_type == ETHERTYPE_IPV6:
        offset = _decode_ipv6(pkt, buf, offset)
    else:
        return pkt

    if offset is None:
        return pkt

    payload = None
    if pkt.protocol == PROTO_TCP:
        payload = _decode_tcp(pkt, buf, offset)
    elif pkt.protocol == PROTO_UDP:
        payload = _decode_udp(pkt, buf, offset)

    if payload:
        app = identify_app(pkt.src_port, pkt.dst_port, payload, is_tcp=pkt.protocol == PROTO_TCP)
        if app is not None:
            pkt.app_protocol = app.protocol
            pkt.hostname = app.hostname
            pkt.app_info = app.info

    return pkt


def _decode_arp(pkt: DecodedPacket, buf: bytes, offset: int) -> None:
    if len(buf) - offset < ARP_LEN:
        return
    # hw type, proto type, sizes, opcode (8) | sender mac (6) | sender ip (4)
    # | target mac (6) | target ip (4)
    pkt.src_ip = socket.inet_ntop(socket.AF_INET, buf[offset + 14:offset + 18])
    pkt.dst_ip = socket.inet_ntop(socket.AF_INET, buf[offset + 24:offset + 28])


def _decode_ipv4(pkt: DecodedPacket, buf: bytes, offset: int) -> Optional[int]:
    """Fill the IPv4 fields; return the transport offset or None to stop."""
    remaining = len(buf) - offset
    if remaining < IPV4_MIN_HEADER_LEN:
        return None

    (version_ihl, _tos, _total, _ident, _frag, ttl, proto, _csum,
     src, dst) = _IPV4.unpack_from(buf, offset)
    pkt.ip_version = 4
    pkt.protocol = proto
    pkt.ttl = ttl
    pkt.src_ip = socket.inet_ntop(socket.AF_INET, src)
    pkt.dst_ip = socket.inet_ntop(socket.AF_INET, dst)

    header_len = (version_ihl & 0x0F) * 4
    if header_len < IPV4_MIN_HEADER_LEN or header_len > remaining:
        return None
    return offset + header_len


def _decode_ipv6(pkt: DecodedPacket, buf: bytes, offset: int) -> Optional[int]:
    if len(buf) - offset < IPV6_HEADER_LEN:
        return None

    _vcf, _plen, next_header, hop_limit, src, dst = _IPV6.unpack_from(buf, offset)
    pkt.ip_version = 6
    pkt.protocol = next_header
    pkt.ttl = hop_limit
    pkt.src_ip = socket.inet_ntop(socket.AF_INET6, src)
    pkt.dst_ip = socket.inet_ntop(socket.AF_INET6, dst)
    return offset + IPV6_HEADER_LEN


def _decode_tcp(pkt: DecodedPacket, buf: bytes, offset: int) -> Optional[bytes]:
    remaining = len(buf) - offset
    if remaining < TCP_MIN_HEADER_LEN:
        return None

    (src_port, dst_port, _seq, _ack, data_offset, flags,
     _window, _csum, _urg) = _TCP.unpack_from(buf, offset)
    pkt.src_port = src_port
    pkt.dst_port = dst_port
    pkt.tcp_flags = flags

    header_len = (data_offset >> 4) * 4
    if header_len < TCP_MIN_HEADER_LEN or header_len > remaining:
        return None
    return buf[offset + header_len:]


def _decode_udp(pkt: DecodedPacket, buf: bytes, offset: int) -> Optional[bytes]:
    if len(buf) - offset < UDP_HEADER_LEN:
        return None

    src_port, dst_port, _length, _csum = _UDP.unpack_from(buf, offset)
    pkt.src_port = src_port
    pkt.dst_port = dst_port
    return buf[offset + UDP_HEADER_LEN:]
