import pytest

from network_monitor.classification.patterns import (
    AddressMatcher,
    ExactMatcher,
    MatchType,
    NetworkMatcher,
    PatternEntry,
    RegexMatcher,
    build_matcher,
    parse_network,
    prefix_to_mask,
    wildcard_to_regex,
)


def test_wildcard_translation():
    assert wildcard_to_regex("*.example.com") == r"^.*\.example\.com$"
    assert wildcard_to_regex("host?.a+b") == r"^host.\.a\+b$"


@pytest.mark.parametrize("host", ["www.example.com", "a.b.example.com", "WWW.Example.COM"])
def test_wildcard_matches_subdomains(host):
    entry = PatternEntry.build(MatchType.WILDCARD, "*.example.com")
    assert entry.matches_hostname(host)


@pytest.mark.parametrize("host", ["example.com", "example.com.evil.com", "wwwexample.com"])
def test_wildcard_rejects(host):
    entry = PatternEntry.build(MatchType.WILDCARD, "*.example.com")
    assert not entry.matches_hostname(host)


def test_wildcard_question_mark_is_single_character():
    entry = PatternEntry.build(MatchType.WILDCARD, "ns?.example.com")
    assert entry.matches_hostname("ns1.example.com")
    assert not entry.matches_hostname("ns12.example.com")
    assert not entry.matches_hostname("ns.example.com")


def test_exact_hostname_is_case_insensitive():
    entry = PatternEntry.build(MatchType.EXACT, "Example.com")
    assert isinstance(entry.matcher, ExactMatcher)
    assert entry.matches_hostname("EXAMPLE.COM")
    assert not entry.matches_hostname("www.example.com")


def test_exact_address_is_literal():
    entry = PatternEntry.build(MatchType.EXACT, "10.0.0.1")
    assert entry.matches_address("10.0.0.1")
    assert not entry.matches_address("10.0.0.10")


def test_regex_is_case_insensitive_and_anchored_by_fullmatch():
    entry = PatternEntry.build(MatchType.REGEX, r"^ads?\d+\.tracker\.net$")
    assert isinstance(entry.matcher, RegexMatcher)
    assert entry.matches_hostname("AD42.tracker.net")
    assert not entry.matches_hostname("xad42.tracker.net")


def test_regex_against_address():
    entry = PatternEntry.build(MatchType.REGEX, r"192\.168\..*")
    assert entry.matches_address("192.168.4.2")
    assert not entry.matches_address("10.192.168.1")


def test_invalid_regex_is_rejected():
    assert PatternEntry.build(MatchType.REGEX, "([unclosed") is None
    assert build_matcher(MatchType.REGEX, "*bad") is None


def test_address_matcher():
    entry = PatternEntry.build(MatchType.ADDRESS, "203.0.113.7")
    assert isinstance(entry.matcher, AddressMatcher)
    assert entry.matches_address("203.0.113.7")
    assert not entry.matches_address("203.0.113.8")
    assert not entry.matches_address("not-an-ip")
    assert not entry.matches_hostname("203.0.113.7")


@pytest.mark.parametrize("pattern", ["300.1.1.1", "10.0.0", "example.com", ""])
def test_invalid_address(pattern):
    assert PatternEntry.build(MatchType.ADDRESS, pattern) is None


@pytest.mark.parametrize("address, expected", [
    ("10.0.0.1", True),
    ("10.255.255.255", True),
    ("11.0.0.1", False),
    ("192.168.1.1", False),
    ("2001:db8::1", False),
])
def test_network_range(address, expected):
    entry = PatternEntry.build(MatchType.NETWORK, "10.0.0.0/8")
    assert isinstance(entry.matcher, NetworkMatcher)
    assert entry.matches_address(address) is expected


def test_network_zero_prefix_matches_everything():
    entry = PatternEntry.build(MatchType.NETWORK, "0.0.0.0/0")
    assert entry.matches_address("1.2.3.4")
    assert entry.matches_address("255.255.255.255")


def test_network_host_prefix_matches_only_that_address():
    entry = PatternEntry.build(MatchType.NETWORK, "192.168.1.5/32")
    assert entry.matches_address("192.168.1.5")
    assert not entry.matches_address("192.168.1.4")


def test_network_uses_masked_network_address():
    entry = PatternEntry.build(MatchType.NETWORK, "10.1.2.3/16")
    assert entry.matches_address("10.1.200.1")
    assert not entry.matches_address("10.2.0.1")


@pytest.mark.parametrize("pattern", ["10.0.0.0/33", "10.0.0.0/-1", "10.0.0.0/x", "10.0.0.0", "10.0.0/8"])
def test_invalid_network(pattern):
    assert parse_network(pattern) is None
    assert PatternEntry.build(MatchType.NETWORK, pattern) is None


def test_prefix_to_mask():
    assert prefix_to_mask(0) == 0
    assert prefix_to_mask(8) == 0xFF000000
    assert prefix_to_mask(24) == 0xFFFFFF00
    assert prefix_to_mask(32) == 0xFFFFFFFF


def test_empty_inputs_never_match():
    entry = PatternEntry.build(MatchType.WILDCARD, "*")
    assert entry.matches_hostname("anything")
    assert not entry.matches_hostname("")
    assert not entry.matches_address("")


def test_compiled_from_keeps_display_pattern():
    entry = PatternEntry.build(MatchType.REGEX, "~^foo$", compiled_from="^foo$")
    assert entry.pattern == "~^foo$"
    assert entry.matches_hostname("foo")
