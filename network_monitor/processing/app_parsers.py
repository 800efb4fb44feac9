"""Application-layer parsers for DNS, HTTP and TLS.

Every parser works on a single frame's payload, checks every length it reads
against the buffer and returns None instead of raising when the payload does
not look like its protocol.
"""

import struct
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class AppLayerInfo:
    """What an application parser learned from a payload."""
    protocol: str
    hostname: str = ""
    info: str = ""


# ---------------------------------------------------------------------------
# DNS

DNS_HEADER_LEN = 12
DNS_MAX_JUMPS = 50
DNS_MAX_LABEL = 63

DNS_TYPES = {
    1: "A",
    2: "NS",
    5: "CNAME",
    6: "SOA",
    12: "PTR",
    15: "MX",
    16: "TXT",
    28: "AAAA",
    33: "SRV",
    65: "HTTPS",
    255: "ANY",
}


def parse_dns_name(data: bytes, offset: int, length: Optional[int] = None) -> Tuple[str, int]:
    """
    Decode a (possibly compressed) domain name starting at offset.

    Returns (name, next_offset) where next_offset is the position right after
    the name as it appears at offset: after the terminating zero label, or
    after the first compression pointer. Parsing stops early, keeping the
    labels read so far, on truncation, reserved label types or more than
    DNS_MAX_JUMPS pointer jumps.
    """
    end = len(data) if length is None else min(length, len(data))
    labels = []
    pos = offset
    next_offset = None
    jumps = 0

    while pos < end:
        size = data[pos]

        if size == 0:
            pos += 1
            break

        if size & 0xC0 == 0xC0:
            if pos + 1 >= end:
                pos = end
                break
            target = ((size & 0x3F) << 8) | data[pos + 1]
            if next_offset is None:
                next_offset = pos + 2
            jumps += 1
            if jumps > DNS_MAX_JUMPS or target >= end:
                break
            pos = target
            continue

        if size & 0xC0 or size > DNS_MAX_LABEL:
            break

        start = pos + 1
        if start + size > end:
            pos = end
            break
        labels.append(data[start:start + size].decode("ascii", errors="replace"))
        pos = start + size

    if next_offset is None:
        next_offset = min(pos, end)
    return ".".join(labels), next_offset


def dns_type_name(qtype: int) -> str:
    return DNS_TYPES.get(qtype, f"TYPE{qtype}")


def _plausible_name(name: str, first: bytes) -> bool:
    """A question name is printable ASCII; an empty one must be the root label."""
    if not name:
        return first == b"\x00"
    return all(33 <= ord(ch) < 127 for ch in name)


def parse_dns(payload: bytes) -> Optional[AppLayerInfo]:
    """Extract the first question of a DNS message."""
    if len(payload) < DNS_HEADER_LEN:
        return None

    _, flags, qdcount, ancount = struct.unpack("!HHHH", payload[:8])
    is_response = bool(flags & 0x8000)
    kind = "Response" if is_response else "Query"

    if qdcount == 0:
        return AppLayerInfo(protocol="DNS", info=kind)

    name, pos = parse_dns_name(payload, DNS_HEADER_LEN)
    if not _plausible_name(name, payload[DNS_HEADER_LEN:DNS_HEADER_LEN + 1]):
        return None
    if pos + 4 > len(payload):
        return AppLayerInfo(protocol="DNS", hostname=name, info=f"{kind} {name}".rstrip())

    qtype = struct.unpack("!H", payload[pos:pos + 2])[0]
    info = f"{kind} {dns_type_name(qtype)} {name}".rstrip()
    if is_response:
        info += f" ({ancount} answers)"
    return AppLayerInfo(protocol="DNS", hostname=name, info=info)


# ---------------------------------------------------------------------------
# HTTP

HTTP_METHODS = (
    b"GET", b"POST", b"PUT", b"DELETE", b"HEAD",
    b"OPTIONS", b"PATCH", b"CONNECT", b"TRACE",
)
HTTP_SCAN_LIMIT = 2048
HTTP_PATH_MAX = 64


def _strip_port(host: str) -> str:
    if host.startswith("["):
        close = host.find("]")
        return host[1:close] if close > 0 else host
    if host.count(":") == 1:
        name, port = host.split(":", 1)
        if port.isdigit():
            return name
    return host


def parse_http(payload: bytes) -> Optional[AppLayerInfo]:
    """Recognise an HTTP request or response head and pull out Host."""
    is_request = any(payload.startswith(m + b" ") for m in HTTP_METHODS)
    if not is_request and not payload.startswith(b"HTTP/"):
        return None

    head = payload[:HTTP_SCAN_LIMIT]
    lines = head.split(b"\r\n")
    first = lines[0].decode("latin-1", errors="replace")

    if is_request:
        parts = first.split(" ")
        method = parts[0]
        path = parts[1] if len(parts) > 1 else ""
        if len(path) > HTTP_PATH_MAX:
            path = path[:HTTP_PATH_MAX] + "..."
        info = f"{method} {path}".rstrip()
    else:
        info = first.strip()

    hostname = ""
    for line in lines[1:]:
        if not line:
            break
        if line[:5].lower() == b"host:":
            host = line[5:].strip().decode("latin-1", errors="replace")
            hostname = _strip_port(host)
            break

    return AppLayerInfo(protocol="HTTP", hostname=hostname, info=info)


# ---------------------------------------------------------------------------
# TLS

TLS_CHANGE_CIPHER_SPEC = 0x14
TLS_ALERT = 0x15
TLS_HANDSHAKE = 0x16
TLS_APPLICATION_DATA = 0x17

TLS_RECORD_NAMES = {
    TLS_CHANGE_CIPHER_SPEC: "Change Cipher Spec",
    TLS_ALERT: "Alert",
    TLS_HANDSHAKE: "Handshake",
    TLS_APPLICATION_DATA: "Application Data",
}

HANDSHAKE_NAMES = {
    1: "Client Hello",
    2: "Server Hello",
    11: "Certificate",
    12: "Server Key Exchange",
    14: "Server Hello Done",
    16: "Client Key Exchange",
}

EXT_SERVER_NAME = 0


def _read_u8_prefixed(data: bytes, pos: int) -> Optional[int]:
    if pos + 1 > len(data):
        return None
    end = pos + 1 + data[pos]
    return end if end <= len(data) else None


def _read_u16_prefixed(data: bytes, pos: int) -> Optional[int]:
    if pos + 2 > len(data):
        return None
    end = pos + 2 + struct.unpack("!H", data[pos:pos + 2])[0]
    return end if end <= len(data) else None


def parse_tls_sni(payload: bytes) -> Optional[str]:
    """Return the server_name from a ClientHello, or None."""
    # record header (5) + handshake header (4)
    if len(payload) < 9 or payload[0] != TLS_HANDSHAKE or payload[5] != 1:
        return None

    # skip record header, handshake header, client version and random
    pos = 5 + 4 + 2 + 32

    pos = _read_u8_prefixed(payload, pos)        # session id
    if pos is None:
        return None
    pos = _read_u16_prefixed(payload, pos)       # cipher suites
    if pos is None:
        return None
    pos = _read_u8_prefixed(payload, pos)        # compression methods
    if pos is None:
        return None
    ext_end = _read_u16_prefixed(payload, pos)   # extensions
    if ext_end is None:
        return None
    pos += 2

    while pos + 4 <= ext_end:
        ext_type, ext_len = struct.unpack("!HH", payload[pos:pos + 4])
        pos += 4
        if pos + ext_len > ext_end:
            return None
        if ext_type == EXT_SERVER_NAME:
            # list length (2), name type (1), name length (2)
            if ext_len < 5:
                return None
            name_len = struct.unpack("!H", payload[pos + 3:pos + 5])[0]
            start = pos + 5
            if start + name_len > pos + ext_len:
                return None
            return payload[start:start + name_len].decode("ascii", errors="replace")
        pos += ext_len

    return None


def parse_tls(payload: bytes) -> Optional[AppLayerInfo]:
    """Identify a TLS record and, for a ClientHello, its SNI."""
    if len(payload) < 5 or payload[0] not in TLS_RECORD_NAMES:
        return None
    if payload[1] != 0x03:
        return None

    info = TLS_RECORD_NAMES[payload[0]]
    if payload[0] == TLS_HANDSHAKE and len(payload) >= 6:
        info = HANDSHAKE_NAMES.get(payload[5], info)

    hostname = parse_tls_sni(payload) or ""
    if hostname:
        info = f"{info} ({hostname})"
    return AppLayerInfo(protocol="TLS", hostname=hostname, info=info)


# ---------------------------------------------------------------------------
# Dispatch

PORT_DNS = 53
PORT_HTTP = 80
PORT_HTTPS = 443


def identify_app(
    src_port: int, dst_port: int, payload: bytes, is_tcp: bool = False
) -> Optional[AppLayerInfo]:
    """
    Dispatch a payload to a parser by well-known port.

    The destination port is checked before the source port so a request and
    its reply land on the same parser. When the destination port's parser
    rejects the payload the source port gets its turn.
    """
    if not payload:
        return None

    tried = set()
    for port in (dst_port, src_port):
        if port in tried:
            continue
        tried.add(port)
        info = None
        if port == PORT_DNS:
            # DNS over TCP carries a two-byte length prefix
            info = parse_dns(payload[2:] if is_tcp else payload)
        elif port == PORT_HTTP:
            info = parse_http(payload)
        elif port == PORT_HTTPS:
            info = parse_tls(payload)
        if info is not None:
            return info
    return None
