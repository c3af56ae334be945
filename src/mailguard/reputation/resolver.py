"""Sender IP reputation via a DNS blocklist, with a longest-prefix cache."""

import ipaddress
import logging
import re
import time
from typing import Callable, Iterable, List, Optional, Sequence

import requests

from ..errors import ConfigurationError, MailGuardError, ResolutionDegraded
from .dnsbl import NOT_LISTED, DnsTransport, decode_answers, reverse_name
from .iptree import IPTree

logger = logging.getLogger(__name__)

BOOTSTRAP_NAMESERVERS_V4 = ("8.8.8.8", "8.8.4.4")
BOOTSTRAP_NAMESERVERS_V6 = ("2001:4860:4860::8888", "2001:4860:4860::8844")

# "network/mask ; identifier" as used by the Spamhaus DROP lists
FEED_LINE_PATTERN = re.compile(r"^(.*)/([0-9]+) ; (.*)")


def _clock_ticks() -> int:
    return time.time_ns() // 100


class ReputationResolver:
    """Decide whether an IP address is listed on a DNSBL.

    Results, including "not listed", are cached for the lifetime of the
    resolver. Static allow/deny networks can be seeded into the same cache.
    The zone's authoritative name servers are discovered on first use.
    In quiet mode every DNS failure is logged and treated as "not listed".
    """

    def __init__(
        self,
        zone: str = "zen.spamhaus.org",
        transport: Optional[DnsTransport] = None,
        timeout: float = 10.0,
        quiet: bool = True,
        use_ipv6: bool = False,
        use_cache: bool = True,
        nameservers_v4: Sequence[str] = BOOTSTRAP_NAMESERVERS_V4,
        nameservers_v6: Sequence[str] = BOOTSTRAP_NAMESERVERS_V6,
        cache: Optional[IPTree] = None,
        clock: Callable[[], int] = _clock_ticks,
    ):
        self.zone = zone
        self.transport = transport or DnsTransport(timeout)
        self.timeout = timeout
        self.quiet = quiet
        self.use_ipv6 = use_ipv6
        self.use_cache = use_cache
        self.nameservers_v4 = list(nameservers_v4)
        self.nameservers_v6 = list(nameservers_v6)
        self.cache = cache if cache is not None else IPTree()
        self._clock = clock
        self._zone_servers_v4: List[str] = []
        self._zone_servers_v6: List[str] = []

    @property
    def zone_nameservers(self) -> List[str]:
        """Authoritative servers to query, preferring IPv6 when enabled."""
        if self.use_ipv6 and self._zone_servers_v6:
            return self._zone_servers_v6
        return self._zone_servers_v4

    def initialize(self) -> "ReputationResolver":
        """Discover the zone's authoritative name servers."""
        try:
            hosts = self.transport.name_servers(self.zone, self.nameservers_v4)
            if not hosts:
                logger.warning(f"No NS records found for {self.zone}")
                return self

            host = hosts[self._clock() % len(hosts)]
            v4: List[str] = []
            v6: List[str] = []
            for address in self.transport.addresses(host, self.nameservers_v4):
                if ipaddress.ip_address(address).version == 4:
                    v4.append(address)
                else:
                    v6.append(address)
            self._zone_servers_v4 = v4
            self._zone_servers_v6 = v6
            logger.info(f"Using {host} for {self.zone} ({', '.join(v4 + v6) or 'no addresses'})")
        except (MailGuardError, ValueError) as e:
            if not self.quiet:
                raise
            logger.warning(f"Could not discover name servers for {self.zone}: {e}")
        return self

    def reset(self) -> None:
        """Forget cached results and discovered servers."""
        self.cache.clear()
        self._zone_servers_v4 = []
        self._zone_servers_v6 = []

    def look_up(self, ip: str) -> List[str]:
        """Query the blocklist for one address, bypassing the cache."""
        nameservers = self.zone_nameservers
        if not nameservers:
            raise ResolutionDegraded(f"No name servers known for {self.zone}")
        answers = self.transport.a_records(reverse_name(ip, self.zone), nameservers)
        code, identifiers = decode_answers(answers)
        logger.debug(f"{ip} -> code {code} {identifiers}")
        return identifiers

    def is_blocked(self, ip: str) -> Optional[str]:
        """Blocklist identifier(s) for the address, or None if not listed or unknown."""
        try:
            if self.use_cache:
                cached = self.cache.get(ip)
                if cached is not None:
                    return cached if cached and cached != NOT_LISTED else None

            if not self.zone_nameservers:
                self.initialize()
            if not self.zone_nameservers:
                return None

            identifiers = self.look_up(ip)
            result = ",".join(identifiers) if identifiers else None

            if self.use_cache:
                self.add_ip_address(ip, result or NOT_LISTED)
            return result

        except (MailGuardError, ValueError) as e:
            if not self.quiet:
                raise
            logger.warning(f"Reputation of {ip} unknown: {e}")
            return None

    def add_network(self, network: str, mask: int, identifier: str = "") -> None:
        """Seed the cache with a whole network."""
        self.cache.set(network, identifier, mask)

    def add_ip_address(self, ip: str, identifier: str = "") -> None:
        """Seed the cache with a single address."""
        address = ipaddress.ip_address(ip)
        self.cache.set(str(address), identifier, address.max_prefixlen)

    def add_lines(self, lines: Iterable[str]) -> int:
        """Seed the cache from 'network/mask ; identifier' lines. Returns entries added."""
        added = 0
        for number, line in enumerate(lines, start=1):
            line = line.rstrip("\r\n")
            if not line or line.startswith(";"):
                continue
            match = FEED_LINE_PATTERN.match(line)
            if not match:
                continue
            network, mask, identifier = match.group(1).strip(), int(match.group(2)), match.group(3).strip()
            try:
                self.add_network(network, mask, identifier)
            except ValueError as e:
                if not self.quiet:
                    raise ConfigurationError(f"Invalid network in feed line {number}: {line} ({e})")
                logger.warning(f"Skipping feed line {number}: {e}")
                continue
            added += 1
        return added

    def add_file(self, path: str) -> int:
        """Seed the cache from a feed file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                added = self.add_lines(f)
        except IOError as e:
            if not self.quiet:
                raise ConfigurationError(f"Cannot read blocklist feed {path}: {e}")
            logger.warning(f"Cannot read blocklist feed {path}: {e}")
            return 0
        logger.info(f"Loaded {added} network(s) from {path}")
        return added

    def add_url(self, url: str) -> int:
        """Seed the cache from a feed downloaded over HTTP."""
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            if not self.quiet:
                raise ResolutionDegraded(f"Cannot download blocklist feed {url}: {e}")
            logger.warning(f"Cannot download blocklist feed {url}: {e}")
            return 0
        added = self.add_lines(response.text.splitlines())
        logger.info(f"Loaded {added} network(s) from {url}")
        return added

    def add_feed(self, source: str) -> int:
        """Seed from a URL or a file path."""
        if source.startswith(("http://", "https://")):
            return self.add_url(source)
        return self.add_file(source)
