"""DNSBL wire format and the DNS transport used to query it.

A DNSBL answers an A query for ``<reversed address>.<zone>``. Listed
addresses resolve to ``127.0.0.x`` where the last octet names the list;
unlisted addresses get NXDOMAIN.
"""

import ipaddress
import logging
from enum import IntEnum
from typing import Iterable, List, Sequence, Tuple

import dns.exception
import dns.resolver

from ..errors import ResolutionDegraded

logger = logging.getLogger(__name__)


class DnsblCode(IntEnum):
    """Return codes of the Spamhaus ZEN zone (last octet of 127.0.0.x)."""

    NL = 0  # not listed
    SBL = 2  # Spamhaus Block List
    SBLCSS = 3  # SBL CSS data
    XBL = 4  # Exploits Block List
    DROP = 9  # DROP/EDROP
    PBL_ISP = 10  # Policy Block List, ISP maintained
    PBL = 11  # Policy Block List, Spamhaus maintained


NOT_LISTED = DnsblCode.NL.name


def reverse_name(ip: str, zone: str) -> str:
    """Query name for an address: reversed octets (IPv4) or nibbles (IPv6)."""
    address = ipaddress.ip_address(ip)
    if address.version == 4:
        labels = reversed(str(address).split("."))
    else:
        labels = reversed(address.exploded.replace(":", ""))
    return ".".join(labels).lower() + "." + zone.strip(".")


def decode_answers(addresses: Iterable[str]) -> Tuple[int, List[str]]:
    """OR the last octets into a result code and name each returned code."""
    code = 0
    identifiers: List[str] = []
    for address in addresses:
        last_octet = ipaddress.ip_address(address).packed[-1]
        code |= last_octet
        if last_octet == DnsblCode.NL:
            continue
        try:
            name = DnsblCode(last_octet).name
        except ValueError:
            name = f"CODE{last_octet}"
        if name not in identifiers:
            identifiers.append(name)
    return code, identifiers


class DnsTransport:
    """Blocking DNS queries against explicit name servers (dnspython)."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def _resolver(self, nameservers: Sequence[str]) -> dns.resolver.Resolver:
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = list(nameservers)
        resolver.timeout = self.timeout
        resolver.lifetime = self.timeout
        resolver.cache = None
        return resolver

    def _query(self, name: str, rdtype: str, nameservers: Sequence[str]):
        try:
            return list(self._resolver(nameservers).resolve(name, rdtype))
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.Timeout as e:
            raise ResolutionDegraded(f"DNS query {name} {rdtype} timed out: {e}")
        except dns.exception.DNSException as e:
            raise ResolutionDegraded(f"DNS query {name} {rdtype} failed: {e}")

    def name_servers(self, zone: str, nameservers: Sequence[str]) -> List[str]:
        """Host names of the zone's NS records."""
        return [rdata.target.to_text() for rdata in self._query(zone, "NS", nameservers)]

    def addresses(self, hostname: str, nameservers: Sequence[str]) -> List[str]:
        """IPv4 and IPv6 addresses of a host."""
        found = [rdata.address for rdata in self._query(hostname, "A", nameservers)]
        found += [rdata.address for rdata in self._query(hostname, "AAAA", nameservers)]
        return found

    def a_records(self, name: str, nameservers: Sequence[str]) -> List[str]:
        """A record addresses for a name (empty on NXDOMAIN)."""
        return [rdata.address for rdata in self._query(name, "A", nameservers)]
