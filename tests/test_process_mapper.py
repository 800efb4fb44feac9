from network_monitor.attribution.process_mapper import (
    ProcessMapper,
    ProcessNameCache,
    SocketKey,
)
from network_monitor.attribution.procfs import (
    ProcfsReader,
    parse_proc_ip,
    parse_socket_link,
    parse_socket_row,
)
from network_monitor.models.packet import PROTO_TCP, PROTO_UDP
from tests.conftest import socket_row

LOCALHOST = 0x7F000001


class TestProcfsParsing:
    def test_proc_ip_is_little_endian(self):
        assert parse_proc_ip("0100007F") == LOCALHOST
        assert parse_proc_ip("0101A8C0") == 0xC0A80101
        assert parse_proc_ip("zz") == 0
        assert parse_proc_ip("GGGGGGGG") == 0

    def test_socket_row(self):
        row = parse_socket_row(socket_row(0, "127.0.0.1", 8080, "10.0.0.5", 51000, 4242))
        assert row == (LOCALHOST, 8080, 0x0A000005, 51000, 4242)

    def test_socket_row_without_inode(self):
        assert parse_socket_row(socket_row(0, "127.0.0.1", 8080, "0.0.0.0", 0, 0)) is None
        assert parse_socket_row("   0: garbage") is None

    def test_socket_link(self):
        assert parse_socket_link("socket:[12345]") == 12345
        assert parse_socket_link("pipe:[12345]") is None
        assert parse_socket_link("socket:[abc]") is None
        assert parse_socket_link("/dev/null") is None


class TestProcfsReader:
    def test_socket_tables(self, proc_tree):
        proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
        proc_tree.add_socket("udp", "192.168.1.10", 5353, "224.0.0.251", 5353, 200)
        reader = ProcfsReader(str(proc_tree.root))
        assert reader.is_available()
        assert [r[4] for r in reader.read_socket_table(PROTO_TCP)] == [100]
        assert [r[4] for r in reader.read_socket_table(PROTO_UDP)] == [200]
        assert reader.read_socket_table(1) == []

    def test_process_walk(self, proc_tree):
        proc_tree.add_process(321, "curl", inodes=[100, 101], other_fds=["/dev/null", "pipe:[7]"])
        (proc_tree.root / "self").mkdir()
        reader = ProcfsReader(str(proc_tree.root))
        assert list(reader.iter_pids()) == [321]
        assert sorted(reader.iter_socket_inodes(321)) == [100, 101]
        assert reader.read_process_name(321) == "curl"
        assert reader.read_process_name(999) == ""
        assert list(reader.iter_socket_inodes(999)) == []

    def test_missing_root(self, tmp_path):
        reader = ProcfsReader(str(tmp_path / "nothing"))
        assert not reader.is_available()
        assert reader.read_socket_table(PROTO_TCP) == []
        assert list(reader.iter_pids()) == []


def test_socket_key_swapped():
    key = SocketKey(1, 2, 3, 4, PROTO_TCP)
    assert key.swapped() == SocketKey(3, 4, 1, 2, PROTO_TCP)
    assert key.swapped().swapped() == key


def test_name_cache_loads_once():
    calls = []

    def loader(pid):
        calls.append(pid)
        return "proc"

    cache = ProcessNameCache()
    assert cache.get(5, loader) == "proc"
    assert cache.get(5, loader) == "proc"
    assert calls == [5]
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def _mapper(proc_tree, clock):
    return ProcessMapper(
        reader=ProcfsReader(str(proc_tree.root)),
        cache_ttl=0.5,
        supported=True,
        clock=clock,
    )


def test_lookup_finds_owner(proc_tree, clock):
    proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
    proc_tree.add_process(321, "curl", inodes=[100])
    mapper = _mapper(proc_tree, clock)

    info = mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP)
    assert info.pid == 321
    assert info.name == "curl"
    assert info.is_valid()
    assert mapper.cache_size() == 1
    assert mapper.socket_table_size() == 1


def test_lookup_swapped_orientation(proc_tree, clock):
    proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
    proc_tree.add_process(321, "curl", inodes=[100])
    mapper = _mapper(proc_tree, clock)

    info = mapper.lookup("93.184.216.34", 443, "192.168.1.10", 40000, PROTO_TCP)
    assert info.pid == 321


def test_lookup_packet_tries_both_directions(proc_tree, clock):
    proc_tree.add_socket("udp", "10.0.0.2", 53000, "10.0.0.1", 53, 300)
    proc_tree.add_process(77, "resolver", inodes=[300])
    mapper = _mapper(proc_tree, clock)

    assert mapper.lookup_packet("10.0.0.1", 53, "10.0.0.2", 53000, PROTO_UDP).name == "resolver"
    assert mapper.lookup_packet("10.0.0.1", 53, "10.0.0.2", 53000, PROTO_TCP) is None


def test_lookup_within_ttl_refreshes_once(proc_tree, clock):
    proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
    proc_tree.add_process(321, "curl", inodes=[100])
    mapper = _mapper(proc_tree, clock)

    mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP)
    clock.advance(0.2)
    mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP)
    assert mapper.refresh_count == 1

    clock.advance(0.4)
    mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP)
    assert mapper.refresh_count == 2


def test_new_socket_visible_after_ttl(proc_tree, clock):
    mapper = _mapper(proc_tree, clock)
    assert mapper.lookup("192.168.1.10", 40001, "1.1.1.1", 443, PROTO_TCP) is None

    proc_tree.add_socket("tcp", "192.168.1.10", 40001, "1.1.1.1", 443, 101)
    proc_tree.add_process(400, "browser", inodes=[101])
    assert mapper.lookup("192.168.1.10", 40001, "1.1.1.1", 443, PROTO_TCP) is None

    clock.advance(0.5)
    assert mapper.lookup("192.168.1.10", 40001, "1.1.1.1", 443, PROTO_TCP).name == "browser"


def test_socket_without_owner(proc_tree, clock):
    proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
    proc_tree.add_process(321, "other", inodes=[999])
    mapper = _mapper(proc_tree, clock)
    assert mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP) is None
    assert mapper.cache_size() == 0


def test_non_ipv4_addresses(proc_tree, clock):
    mapper = _mapper(proc_tree, clock)
    assert mapper.lookup("2001:db8::1", 1, "2001:db8::2", 2, PROTO_TCP) is None
    assert mapper.refresh_count == 0


def test_unsupported_platform(proc_tree, clock):
    proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
    proc_tree.add_process(321, "curl", inodes=[100])
    mapper = ProcessMapper(reader=ProcfsReader(str(proc_tree.root)), supported=False, clock=clock)
    assert not mapper.is_supported
    assert mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP) is None
    mapper.refresh()
    assert mapper.refresh_count == 0


def test_support_follows_configured_proc_root(proc_tree, tmp_path, monkeypatch, clock):
    monkeypatch.setattr("platform.system", lambda: "Linux")
    assert ProcessMapper(reader=ProcfsReader(str(proc_tree.root)), clock=clock).is_supported

    missing = tmp_path / "no-proc"
    missing.mkdir()
    assert not ProcessMapper(reader=ProcfsReader(str(missing)), clock=clock).is_supported


def test_clear_forces_refresh(proc_tree, clock):
    proc_tree.add_socket("tcp", "192.168.1.10", 40000, "93.184.216.34", 443, 100)
    proc_tree.add_process(321, "curl", inodes=[100])
    mapper = _mapper(proc_tree, clock)
    mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP)
    mapper.clear()
    assert mapper.cache_size() == 0
    assert mapper.socket_table_size() == 0
    mapper.lookup("192.168.1.10", 40000, "93.184.216.34", 443, PROTO_TCP)
    assert mapper.refresh_count == 2


def test_set_cache_ttl(proc_tree, clock):
    mapper = _mapper(proc_tree, clock)
    mapper.set_cache_ttl(5.0)
    mapper.lookup("192.168.1.10", 1, "1.1.1.1", 2, PROTO_TCP)
    clock.advance(1.0)
    mapper.lookup("192.168.1.10", 1, "1.1.1.1", 2, PROTO_TCP)
    assert mapper.refresh_count == 1
