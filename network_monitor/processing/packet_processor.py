"""Ingestion pipeline: decode, attribute, classify, store."""

import logging
import time
from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Optional

from ..alerts.watchlist import Watchlist
from ..attribution.process_mapper import ProcessMapper
from ..capture.engine import CaptureError, FrameSource
from ..classification.descriptions import DescriptionDatabase
from ..models.packet import PROTO_TCP, PROTO_UDP, DecodedPacket, Frame
from ..storage.packet_store import PacketStore
from .decoder import decode

logger = logging.getLogger(__name__)

DEFAULT_BATCH_TIMEOUT = 0.1


@dataclass
class ProcessorStats:
    """Statistics for packet processor."""
    frames_processed: int = 0
    processing_errors: int = 0
    start_time: float = 0.0

    @property
    def duration(self) -> float:
        if self.start_time == 0:
            return 0.0
        return time.time() - self.start_time

    @property
    def packets_per_second(self) -> float:
        if self.duration == 0:
            return 0.0
        return self.frames_processed / self.duration


class PacketProcessor:
    """
    Runs the ingestion thread.

    Each frame is decoded, attributed to a local process, classified and only
    then pushed, so readers of the store never see a half-enriched packet.
    Packets reach the store in the order they were decoded.
    """

    def __init__(
        self,
        source: Optional[FrameSource],
        store: PacketStore,
        watchlist: Optional[Watchlist] = None,
        descriptions: Optional[DescriptionDatabase] = None,
        process_mapper: Optional[ProcessMapper] = None,
        process_enabled: bool = False,
        batch_timeout: float = DEFAULT_BATCH_TIMEOUT,
    ):
        self.source = source
        self.store = store
        self.watchlist = watchlist
        self.descriptions = descriptions
        self.process_mapper = process_mapper
        self.process_enabled = process_enabled
        self.batch_timeout = batch_timeout

        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._stats = ProcessorStats()
        self._stats_lock = Lock()
        self._error = ""

    def start(self) -> None:
        """Start the ingestion thread."""
        if self.is_running():
            return
        if self.source is None:
            raise ValueError("PacketProcessor has no frame source")

        self._stop_event.clear()
        self._error = ""
        with self._stats_lock:
            self._stats = ProcessorStats(start_time=time.time())

        self._thread = Thread(
            target=self._processing_loop,
            daemon=True,
            name="packet-processor",
        )
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """
        Ask the ingestion thread to finish and wait for it.

        The loop notices within one batch timeout. Packets already pushed
        stay in the store.
        """
        self._stop_event.set()
        self.join(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get_error(self) -> str:
        """Last capture error, empty if none."""
        return self._error

    def get_stats(self) -> ProcessorStats:
        with self._stats_lock:
            return ProcessorStats(
                frames_processed=self._stats.frames_processed,
                processing_errors=self._stats.processing_errors,
                start_time=self._stats.start_time,
            )

    def process_frame(self, frame: Frame) -> DecodedPacket:
        """Run one frame through the whole pipeline and store it."""
        pkt = decode(frame.data, frame.captured_length, frame.wire_length, frame.timestamp)
        self._attribute(pkt)

        match = None
        if self.descriptions is not None and pkt.hostname:
            result = self.descriptions.lookup(pkt.hostname)
            if result is not None:
                pkt.enrich(category=result.category, description=result.description)
        if self.watchlist is not None:
            match = self.watchlist.check(pkt)
            if match is not None:
                self.watchlist.mark(pkt, match)

        sequence = self.store.push(pkt)
        if match is not None:
            self.watchlist.raise_alert(match, sequence)

        with self._stats_lock:
            self._stats.frames_processed += 1
        return pkt

    def _attribute(self, pkt: DecodedPacket) -> None:
        if not self.process_enabled or self.process_mapper is None:
            return
        if pkt.ip_version != 4 or pkt.protocol not in (PROTO_TCP, PROTO_UDP):
            return

        info = self.process_mapper.lookup_packet(
            pkt.src_ip, pkt.src_port, pkt.dst_ip, pkt.dst_port, pkt.protocol,
        )
        if info is not None and info.is_valid():
            pkt.enrich(process_name=info.name, pid=info.pid)

    def _processing_loop(self) -> None:
        source = self.source
        try:
            source.open()
            while not self._stop_event.is_set():
                batch = source.next_batch(self.batch_timeout)
                for frame in batch:
                    try:
                        self.process_frame(frame)
                    except Exception:
                        logger.debug("Failed to process frame", exc_info=True)
                        with self._stats_lock:
                            self._stats.processing_errors += 1
                if not batch and source.exhausted:
                    break
        except CaptureError as e:
            self._error = str(e)
            logger.error("Capture error: %s", e)
        finally:
            source.close()
