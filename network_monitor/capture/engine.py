"""Frame sources built on Scapy: live interfaces and pcap files."""

import logging
import threading
from abc import ABC, abstractmethod
from itertools import islice
from typing import List, Optional

from scapy.all import PcapReader, conf, sniff
from scapy.error import Scapy_Exception

from ..models.packet import Frame
from .platform_adapter import PlatformAdapter, get_platform_adapter

logger = logging.getLogger(__name__)


class CaptureError(RuntimeError):
    """Raised when a frame source cannot be opened or read."""


def to_frame(pkt, snaplen: int = 0) -> Frame:
    """Convert a Scapy packet to the raw frame tuple the decoder works on."""
    data = bytes(pkt)
    wire_length = getattr(pkt, "wirelen", None) or len(data)
    if snaplen and len(data) > snaplen:
        data = data[:snaplen]
    return Frame(
        timestamp=float(pkt.time),
        captured_length=len(data),
        wire_length=wire_length,
        data=data,
    )


class FrameSource(ABC):
    """
    Delivers captured frames in batches.

    next_batch() waits at most `timeout` seconds and may return an empty list;
    the caller keeps polling until it is told to stop or `exhausted` is set.
    """

    def __init__(self, batch_size: int = 10):
        self.batch_size = batch_size
        self.exhausted = False

    @abstractmethod
    def open(self) -> None:
        ...

    @abstractmethod
    def next_batch(self, timeout: float) -> List[Frame]:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LiveCapture(FrameSource):
    """Capture frames from a network interface through a Scapy layer-2 socket."""

    def __init__(
        self,
        interface: str,
        bpf_filter: str = "",
        batch_size: int = 10,
        snaplen: int = 65535,
        promiscuous: Optional[bool] = None,
        platform_adapter: Optional[PlatformAdapter] = None,
    ):
        super().__init__(batch_size)
        self.interface = interface
        self.bpf_filter = bpf_filter
        self.snaplen = snaplen
        self.promiscuous = promiscuous
        self._adapter = platform_adapter
        self._socket = None
        self._lock = threading.Lock()

    @property
    def adapter(self) -> PlatformAdapter:
        if self._adapter is None:
            self._adapter = get_platform_adapter()
        return self._adapter

    def check_ready(self) -> List[str]:
        """
        Check if capture can start.
        Returns list of issues, empty if ready.
        """
        issues = []

        if not self.adapter.check_privileges():
            issues.append("Insufficient privileges. Run with sudo/administrator rights.")

        from .interface_manager import InterfaceManager
        mgr = InterfaceManager()
        invalid = mgr.validate_interfaces([self.interface])
        if invalid:
            issues.extend([f"Invalid interface: {iface}" for iface in invalid])

        return issues

    def open(self) -> None:
        with self._lock:
            if self._socket is not None:
                return

            conf.verb = 0
            promisc = self.promiscuous
            if promisc is None:
                promisc = self.adapter.get_capture_config().promiscuous
            try:
                self._socket = conf.L2listen(
                    iface=self.interface,
                    filter=self.bpf_filter or None,
                    promisc=promisc,
                )
            except (OSError, Scapy_Exception) as e:
                raise CaptureError(f"Cannot open {self.interface}: {e}") from e

        self.exhausted = False
        logger.info("Listening on %s", self.interface)

    def next_batch(self, timeout: float) -> List[Frame]:
        with self._lock:
            sock = self._socket
        if sock is None:
            raise CaptureError(f"Capture on {self.interface} is not open")

        try:
            packets = sniff(
                opened_socket=sock,
                count=self.batch_size,
                timeout=timeout,
                store=True,
            )
        except (OSError, Scapy_Exception) as e:
            raise CaptureError(f"Read error on {self.interface}: {e}") from e

        return [to_frame(pkt, self.snaplen) for pkt in packets]

    def close(self) -> None:
        with self._lock:
            sock = self._socket
            self._socket = None
        if sock is None:
            return
        try:
            sock.close()
        except OSError:
            logger.exception("Failed to close capture on %s", self.interface)
        logger.info("Stopped listening on %s", self.interface)


class PcapFileSource(FrameSource):
    """Replay frames from a pcap or pcapng file."""

    def __init__(self, path: str, batch_size: int = 100):
        super().__init__(batch_size)
        self.path = path
        self._reader = None

    def open(self) -> None:
        if self._reader is not None:
            return
        try:
            self._reader = PcapReader(self.path)
        except (OSError, Scapy_Exception) as e:
            raise CaptureError(f"Cannot read {self.path}: {e}") from e
        self.exhausted = False
        logger.info("Replaying %s", self.path)

    def next_batch(self, timeout: float) -> List[Frame]:
        if self._reader is None:
            raise CaptureError(f"{self.path} is not open")
        if self.exhausted:
            return []

        try:
            packets = list(islice(self._reader, self.batch_size))
        except (OSError, Scapy_Exception) as e:
            raise CaptureError(f"Read error in {self.path}: {e}") from e

        if len(packets) < self.batch_size:
            self.exhausted = True
        return [to_frame(pkt) for pkt in packets]

    def close(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()
