"""Data models for network monitor."""

from .packet import DecodedPacket, Frame, TCPFlags
from .metrics import InterfaceStats

__all__ = [
    "DecodedPacket",
    "Frame",
    "TCPFlags",
    "InterfaceStats",
]
