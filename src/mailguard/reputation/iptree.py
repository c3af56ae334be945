"""Longest-prefix-match store for IPv4 and IPv6 networks."""

import ipaddress
import threading
from typing import List, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class _Node:
    __slots__ = ("children", "identifier")

    def __init__(self):
        self.children: List[Optional["_Node"]] = [None, None]
        self.identifier: Optional[str] = None


def _bits(value: int, width: int, length: int):
    for position in range(length):
        yield (value >> (width - 1 - position)) & 1


def to_network(network: Union[str, IPAddress, IPNetwork], prefix: Optional[int] = None) -> IPNetwork:
    """Normalize an address/prefix pair into a network, dropping host bits."""
    if prefix is None:
        return ipaddress.ip_network(network, strict=False)
    return ipaddress.ip_network(f"{network}/{prefix}", strict=False)


class IPTree:
    """Binary trie keyed on address bits; lookups return the most specific entry.

    One trie per address family. Inserts and evictions take a lock so the
    tree stays consistent when several workers share it.
    """

    def __init__(self):
        self._roots = {4: _Node(), 6: _Node()}
        self._lock = threading.Lock()
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def set(self, network: Union[str, IPNetwork], identifier: str, prefix: Optional[int] = None) -> None:
        """Store `identifier` for a network (later sets overwrite)."""
        net = to_network(network, prefix)
        value = int(net.network_address)
        width = net.max_prefixlen
        with self._lock:
            node = self._roots[net.version]
            for bit in _bits(value, width, net.prefixlen):
                child = node.children[bit]
                if child is None:
                    child = _Node()
                    node.children[bit] = child
                node = child
            if node.identifier is None:
                self._size += 1
            node.identifier = identifier

    def get(self, address: Union[str, IPAddress]) -> Optional[str]:
        """Identifier of the longest matching network, or None."""
        ip = ipaddress.ip_address(address)
        value = int(ip)
        width = ip.max_prefixlen
        node = self._roots[ip.version]
        found = node.identifier
        for bit in _bits(value, width, width):
            node = node.children[bit]
            if node is None:
                break
            if node.identifier is not None:
                found = node.identifier
        return found

    def evict(self, network: Union[str, IPNetwork], prefix: Optional[int] = None) -> bool:
        """Remove the entry stored for exactly this network."""
        net = to_network(network, prefix)
        value = int(net.network_address)
        with self._lock:
            node = self._roots[net.version]
            for bit in _bits(value, net.max_prefixlen, net.prefixlen):
                node = node.children[bit]
                if node is None:
                    return False
            if node.identifier is None:
                return False
            node.identifier = None
            self._size -= 1
            return True

    def clear(self) -> None:
        with self._lock:
            self._roots = {4: _Node(), 6: _Node()}
            self._size = 0
