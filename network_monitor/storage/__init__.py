"""Packet storage."""

from .packet_store import PacketStore

__all__ = ["PacketStore"]
