"""Process attribution layer."""

from .procfs import ProcfsReader
from .process_mapper import ProcessInfo, ProcessMapper, ProcessNameCache, SocketKey

__all__ = [
    "ProcfsReader",
    "ProcessInfo",
    "ProcessMapper",
    "ProcessNameCache",
    "SocketKey",
]
