"""Decoding and the ingestion pipeline."""

from .decoder import decode
from .packet_processor import PacketProcessor, ProcessorStats

__all__ = ["decode", "PacketProcessor", "ProcessorStats"]
