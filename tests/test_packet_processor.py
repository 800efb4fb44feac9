import time

import pytest

from network_monitor.alerts.watchlist import Watchlist
from network_monitor.attribution.process_mapper import ProcessInfo
from network_monitor.capture.engine import CaptureError, FrameSource, PcapFileSource
from network_monitor.classification.descriptions import DescriptionDatabase
from network_monitor.processing.packet_processor import PacketProcessor
from network_monitor.storage.packet_store import PacketStore
from tests.builders import (
    dns_message,
    ethernet,
    frame,
    http_request,
    ipv6,
    tcp_frame,
    tls_client_hello,
    udp,
    udp_frame,
)


class FakeSource(FrameSource):
    def __init__(self, batches, fail_after=None, fail_on_open=False, endless=False):
        super().__init__()
        self.batches = list(batches)
        self.fail_after = fail_after
        self.fail_on_open = fail_on_open
        self.endless = endless
        self.opened = False
        self.closed = False
        self.calls = 0

    def open(self):
        if self.fail_on_open:
            raise CaptureError("no such device")
        self.opened = True

    def next_batch(self, timeout):
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise CaptureError("device went away")
        if self.batches:
            return self.batches.pop(0)
        if self.endless:
            time.sleep(timeout)
            return []
        self.exhausted = True
        return []

    def close(self):
        self.closed = True


class FakeMapper:
    def __init__(self):
        self.calls = []

    def lookup_packet(self, src_ip, src_port, dst_ip, dst_port, protocol):
        self.calls.append((src_ip, src_port, dst_ip, dst_port, protocol))
        return ProcessInfo(pid=321, name="curl", cached_at=0.0)


@pytest.fixture
def descriptions():
    db = DescriptionDatabase()
    db.load_lines([
        "*.example.com:Example:Example site",
        "example.com:Example:Example apex",
    ])
    return db


@pytest.fixture
def watchlist():
    wl = Watchlist()
    wl.load_lines([
        "wildcard:*.tracker.net:Tracker",
        "cidr:203.0.113.0/24:Test net",
    ])
    return wl


def _processor(source=None, **kwargs):
    store = kwargs.pop("store", None) or PacketStore()
    return PacketProcessor(source, store, batch_timeout=0.01, **kwargs)


def test_process_frame_classifies_before_push(descriptions, watchlist):
    proc = _processor(descriptions=descriptions, watchlist=watchlist)
    pkt = proc.process_frame(frame(udp_frame(dport=53, payload=dns_message("www.example.com"))))

    assert pkt.hostname == "www.example.com"
    stored = proc.store.get(0)
    assert stored.category == "Example"
    assert stored.description == "Example site"
    assert not stored.watchlist_match
    assert proc.get_stats().frames_processed == 1


def test_returned_record_is_detached_from_store(descriptions):
    proc = _processor(descriptions=descriptions)
    out = proc.process_frame(frame(udp_frame(dport=53, payload=dns_message("www.example.com"))))
    out.category = "mutated"
    assert proc.store.get(0).category == "Example"


def test_watchlist_hit_marks_packet_and_alerts(watchlist):
    proc = _processor(watchlist=watchlist)
    proc.process_frame(frame(udp_frame()))
    proc.process_frame(frame(tcp_frame(dport=443, payload=tls_client_hello("ads.tracker.net"))))

    stored = proc.store.get(1)
    assert stored.watchlist_match
    assert stored.watchlist_label == "Tracker"

    alert = watchlist.get_latest_alert()
    assert alert.matched_value == "ads.tracker.net"
    assert alert.pattern == "*.tracker.net"
    assert alert.packet_index == 1
    assert proc.store.get_by_sequence(alert.packet_index).hostname == "ads.tracker.net"


def test_watchlist_matches_destination_address(watchlist):
    proc = _processor(watchlist=watchlist)
    proc.process_frame(frame(udp_frame(src="10.0.0.1", dst="203.0.113.9", dport=9999)))
    assert watchlist.get_latest_alert().matched_value == "203.0.113.9"


def test_attribution_when_enabled():
    mapper = FakeMapper()
    proc = _processor(process_mapper=mapper, process_enabled=True)
    proc.process_frame(frame(tcp_frame(src="192.168.1.10", dst="1.1.1.1", sport=40000, dport=80,
                                       payload=http_request("one.one"))))
    stored = proc.store.get(0)
    assert stored.process_name == "curl"
    assert stored.pid == 321
    assert mapper.calls == [("192.168.1.10", 40000, "1.1.1.1", 80, 6)]


def test_attribution_skipped_when_disabled_or_not_ipv4():
    mapper = FakeMapper()
    proc = _processor(process_mapper=mapper, process_enabled=False)
    proc.process_frame(frame(udp_frame()))
    assert mapper.calls == []

    proc = _processor(process_mapper=mapper, process_enabled=True)
    proc.process_frame(frame(ethernet(0x86DD, ipv6("2001:db8::1", "2001:db8::2", 17, udp(1, 2)))))
    proc.process_frame(frame(ethernet(0x0806, b"")))
    assert mapper.calls == []
    assert proc.store.get(0).pid == 0


def test_thread_processes_in_decode_order(watchlist):
    batches = [
        [frame(udp_frame(sport=i)) for i in range(1000, 1005)],
        [],
        [frame(udp_frame(sport=i)) for i in range(1005, 1008)],
    ]
    source = FakeSource(batches)
    proc = _processor(source, watchlist=watchlist)
    proc.start()
    proc.join(timeout=5)

    assert not proc.is_running()
    assert source.opened and source.closed
    assert [p.src_port for p in proc.store.get_all()] == list(range(1000, 1008))
    assert proc.get_stats().frames_processed == 8
    assert proc.get_error() == ""


def test_stop_is_prompt_and_keeps_records():
    source = FakeSource([[frame(udp_frame(sport=7))]], endless=True)
    proc = _processor(source)
    proc.start()

    deadline = time.time() + 5
    while proc.store.size() == 0 and time.time() < deadline:
        time.sleep(0.01)

    started = time.time()
    proc.stop(timeout=2.0)
    assert time.time() - started < 1.0
    assert not proc.is_running()
    assert source.closed
    assert proc.store.get(0).src_port == 7


def test_capture_error_terminates_loop():
    source = FakeSource([[frame(udp_frame(sport=1))], [frame(udp_frame(sport=2))]], fail_after=2)
    proc = _processor(source)
    proc.start()
    proc.join(timeout=5)

    assert not proc.is_running()
    assert proc.get_error() == "device went away"
    assert proc.store.size() == 2
    assert source.closed


def test_open_failure_is_reported():
    proc = _processor(FakeSource([], fail_on_open=True))
    proc.start()
    proc.join(timeout=5)
    assert proc.get_error() == "no such device"
    assert proc.store.size() == 0


def test_start_without_source():
    with pytest.raises(ValueError):
        _processor(None).start()


def test_pcap_replay_end_to_end(tmp_path, descriptions, watchlist):
    pytest.importorskip("scapy.all")
    from scapy.all import Ether, wrpcap

    raw = [
        udp_frame(dport=53, payload=dns_message("example.com")),
        tcp_frame(dport=80, payload=http_request("www.example.com", "/x")),
        tcp_frame(dport=443, payload=tls_client_hello("cdn.tracker.net")),
    ]
    packets = []
    for i, data in enumerate(raw):
        pkt = Ether(data)
        pkt.time = 1700000000 + i
        packets.append(pkt)
    path = tmp_path / "capture.pcap"
    wrpcap(str(path), packets)

    proc = _processor(PcapFileSource(str(path), batch_size=2),
                      descriptions=descriptions, watchlist=watchlist)
    proc.start()
    proc.join(timeout=10)

    assert proc.get_error() == ""
    stored = proc.store.get_all()
    assert [p.app_protocol for p in stored] == ["DNS", "HTTP", "TLS"]
    assert stored[0].hostname == "example.com"
    assert "Query A" in stored[0].app_info
    assert stored[0].description == "Example apex"
    assert stored[1].category == "Example"
    assert stored[2].watchlist_match
    assert stored[0].timestamp == 1700000000.0
    assert watchlist.alert_count() == 1


def test_pcap_missing_file(tmp_path):
    pytest.importorskip("scapy.all")
    proc = _processor(PcapFileSource(str(tmp_path / "missing.pcap")))
    proc.start()
    proc.join(timeout=5)
    assert proc.get_error().startswith("Cannot read")
