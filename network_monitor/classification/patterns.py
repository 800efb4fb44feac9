"""Pattern matchers shared by the watchlist and the description table.

A matcher is built once from its pattern text and never changes afterwards.
Builders return None for a pattern that cannot be compiled, so a bad rule
only ever drops itself.
"""

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern, Union

_REGEX_SPECIAL = set(".+^$()[]{}|\\")


class MatchType(Enum):
    """How a pattern is compared against a hostname or address."""
    EXACT = "exact"
    WILDCARD = "wildcard"
    REGEX = "regex"
    ADDRESS = "ip"
    NETWORK = "cidr"


def wildcard_to_regex(pattern: str) -> str:
    """
    Translate a glob into an anchored regex.

    "*" becomes ".*", "?" becomes ".", every other regex metacharacter is
    escaped. "*.example.com" therefore needs something before the dot and
    does not match "example.com".
    """
    out = ["^"]
    for ch in pattern:
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        elif ch in _REGEX_SPECIAL:
            out.append("\\" + ch)
        else:
            out.append(ch)
    out.append("$")
    return "".join(out)


def compile_regex(pattern: str) -> Optional[Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def parse_ipv4(text: str) -> Optional[int]:
    """Dotted-quad to integer, None if it is not an IPv4 address."""
    try:
        return int(ipaddress.IPv4Address(text.strip()))
    except ValueError:
        return None


def prefix_to_mask(prefix: int) -> int:
    if prefix == 0:
        return 0
    return (0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF


@dataclass(frozen=True)
class ExactMatcher:
    text: str

    def match_hostname(self, hostname: str) -> bool:
        return hostname.lower() == self.text.lower()

    def match_address(self, address: str) -> bool:
        return address == self.text


@dataclass(frozen=True)
class RegexMatcher:
    """Used for both wildcard and regex patterns."""
    regex: Pattern

    def match_hostname(self, hostname: str) -> bool:
        return self.regex.fullmatch(hostname.lower()) is not None

    def match_address(self, address: str) -> bool:
        return self.regex.fullmatch(address) is not None


@dataclass(frozen=True)
class AddressMatcher:
    address: int

    def match_hostname(self, hostname: str) -> bool:
        return False

    def match_address(self, address: str) -> bool:
        value = parse_ipv4(address)
        return value is not None and value == self.address


@dataclass(frozen=True)
class NetworkMatcher:
    network: int
    mask: int

    def match_hostname(self, hostname: str) -> bool:
        return False

    def match_address(self, address: str) -> bool:
        value = parse_ipv4(address)
        if value is None:
            return False
        return (value & self.mask) == (self.network & self.mask)


Matcher = Union[ExactMatcher, RegexMatcher, AddressMatcher, NetworkMatcher]


def parse_network(text: str) -> Optional[NetworkMatcher]:
    """Parse "address/prefix" with a prefix of 0-32."""
    if "/" not in text:
        return None
    addr_part, prefix_part = text.split("/", 1)

    network = parse_ipv4(addr_part)
    if network is None:
        return None
    prefix_part = prefix_part.strip()
    if not prefix_part.isdigit():
        return None
    prefix = int(prefix_part)
    if prefix > 32:
        return None
    return NetworkMatcher(network=network, mask=prefix_to_mask(prefix))


def build_matcher(match_type: MatchType, pattern: str) -> Optional[Matcher]:
    """Compile pattern for match_type; None when the pattern is invalid."""
    if not pattern:
        return None

    if match_type is MatchType.EXACT:
        return ExactMatcher(pattern)

    if match_type is MatchType.WILDCARD:
        regex = compile_regex(wildcard_to_regex(pattern))
        return RegexMatcher(regex) if regex is not None else None

    if match_type is MatchType.REGEX:
        regex = compile_regex(pattern)
        return RegexMatcher(regex) if regex is not None else None

    if match_type is MatchType.ADDRESS:
        address = parse_ipv4(pattern)
        return AddressMatcher(address) if address is not None else None

    if match_type is MatchType.NETWORK:
        return parse_network(pattern)

    return None


@dataclass(frozen=True)
class PatternEntry:
    """A pattern together with the matcher compiled from it."""
    match_type: MatchType
    pattern: str
    matcher: Matcher

    @classmethod
    def build(cls, match_type: MatchType, pattern: str,
              compiled_from: Optional[str] = None) -> Optional["PatternEntry"]:
        """
        Build an entry or return None if the pattern does not compile.

        compiled_from overrides the text handed to the compiler, for tables
        that mark regexes with a prefix character.
        """
        source = pattern if compiled_from is None else compiled_from
        matcher = build_matcher(match_type, source)
        if matcher is None:
            return None
        return cls(match_type=match_type, pattern=pattern, matcher=matcher)

    def matches_hostname(self, hostname: str) -> bool:
        if not hostname:
            return False
        return self.matcher.match_hostname(hostname)

    def matches_address(self, address: str) -> bool:
        if not address:
            return False
        return self.matcher.match_address(address)
