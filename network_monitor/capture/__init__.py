"""Packet capture layer."""

from .platform_adapter import get_platform_adapter, PlatformAdapter
from .interface_manager import InterfaceManager, InterfaceInfo
from .engine import CaptureError, FrameSource, LiveCapture, PcapFileSource

__all__ = [
    "get_platform_adapter",
    "PlatformAdapter",
    "InterfaceManager",
    "InterfaceInfo",
    "CaptureError",
    "FrameSource",
    "LiveCapture",
    "PcapFileSource",
]
