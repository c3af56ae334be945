"""Tests for the IP tree and the DNSBL resolver."""

import pytest

from mailguard.errors import ConfigurationError, ResolutionDegraded
from mailguard.reputation.dnsbl import decode_answers, reverse_name
from mailguard.reputation.iptree import IPTree
from mailguard.reputation.resolver import ReputationResolver


class FakeTransport:
    """DNS transport answering from dictionaries."""

    def __init__(self, listings=None, ns_hosts=("a.ns.example",), ns_addresses=("192.0.2.53",)):
        self.listings = listings or {}
        self.ns_hosts = list(ns_hosts)
        self.ns_addresses = list(ns_addresses)
        self.queries = []
        self.fail = False

    def name_servers(self, zone, nameservers):
        return list(self.ns_hosts)

    def addresses(self, hostname, nameservers):
        return list(self.ns_addresses)

    def a_records(self, name, nameservers):
        self.queries.append(name)
        if self.fail:
            raise ResolutionDegraded(f"DNS query {name} A timed out")
        return list(self.listings.get(name, []))


class TestIPTree:
    """Test longest-prefix matching."""

    def test_longest_prefix_wins(self):
        tree = IPTree()
        tree.set("10.0.0.0/8", "A")
        tree.set("10.1.0.0/16", "B")

        assert tree.get("10.1.2.3") == "B"
        assert tree.get("10.2.2.3") == "A"
        assert tree.get("11.0.0.1") is None

    def test_insert_order_does_not_matter(self):
        tree = IPTree()
        tree.set("10.1.0.0/16", "B")
        tree.set("10.0.0.0/8", "A")
        assert tree.get("10.1.2.3") == "B"

    def test_prefix_argument_drops_host_bits(self):
        tree = IPTree()
        tree.set("192.168.1.77", "LAN", prefix=24)
        assert tree.get("192.168.1.1") == "LAN"

    def test_single_address(self):
        tree = IPTree()
        tree.set("203.0.113.7/32", "SBL")
        assert tree.get("203.0.113.7") == "SBL"
        assert tree.get("203.0.113.8") is None

    def test_ipv6(self):
        tree = IPTree()
        tree.set("2001:db8::/32", "V6")
        assert tree.get("2001:db8::1") == "V6"
        assert tree.get("2001:db9::1") is None
        assert tree.get("32.1.13.184") is None

    def test_empty_identifier_is_stored(self):
        tree = IPTree()
        tree.set("10.0.0.1/32", "")
        assert tree.get("10.0.0.1") == ""

    def test_evict(self):
        tree = IPTree()
        tree.set("10.0.0.0/8", "A")
        tree.set("10.1.0.0/16", "B")

        assert tree.evict("10.1.0.0/16") is True
        assert tree.get("10.1.2.3") == "A"
        assert tree.evict("10.1.0.0/16") is False
        assert len(tree) == 1

    def test_clear(self):
        tree = IPTree()
        tree.set("10.0.0.0/8", "A")
        tree.clear()
        assert tree.get("10.1.2.3") is None
        assert len(tree) == 0


class TestWireFormat:
    """Test query names and answer decoding."""

    def test_reverse_name_ipv4(self):
        assert reverse_name("1.2.3.4", "zen.spamhaus.org") == "4.3.2.1.zen.spamhaus.org"

    def test_reverse_name_ipv6(self):
        name = reverse_name("2001:db8::1", "zen.spamhaus.org.")
        assert name.startswith("1.0.0.0.")
        assert name.endswith("8.b.d.0.1.0.0.2.zen.spamhaus.org")
        assert len(name.split(".")) == 32 + 3

    def test_decode_single_code(self):
        assert decode_answers(["127.0.0.2"]) == (2, ["SBL"])

    def test_decode_or_combines_codes(self):
        code, identifiers = decode_answers(["127.0.0.2", "127.0.0.4"])
        assert code == 6
        assert identifiers == ["SBL", "XBL"]

    def test_decode_unknown_code(self):
        assert decode_answers(["127.0.0.99"]) == (99, ["CODE99"])

    def test_decode_nothing(self):
        assert decode_answers([]) == (0, [])


class TestReputationResolver:
    """Test lookups, caching and degradation."""

    LISTED = "7.113.0.203.zen.spamhaus.org"

    @pytest.fixture
    def transport(self):
        return FakeTransport({self.LISTED: ["127.0.0.2", "127.0.0.4"]})

    def test_listed_address(self, transport):
        resolver = ReputationResolver(transport=transport)
        assert resolver.is_blocked("203.0.113.7") == "SBL,XBL"

    def test_unlisted_address(self, transport):
        resolver = ReputationResolver(transport=transport)
        assert resolver.is_blocked("198.51.100.1") is None

    def test_name_servers_discovered_lazily(self, transport):
        resolver = ReputationResolver(transport=transport)
        assert resolver.zone_nameservers == []
        resolver.is_blocked("203.0.113.7")
        assert resolver.zone_nameservers == ["192.0.2.53"]

    def test_results_are_cached(self, transport):
        resolver = ReputationResolver(transport=transport)
        resolver.is_blocked("203.0.113.7")
        resolver.is_blocked("203.0.113.7")
        assert transport.queries == [self.LISTED]

    def test_not_listed_is_cached(self, transport):
        resolver = ReputationResolver(transport=transport)
        assert resolver.is_blocked("198.51.100.1") is None
        assert resolver.is_blocked("198.51.100.1") is None
        assert len(transport.queries) == 1

    def test_cache_disabled(self, transport):
        resolver = ReputationResolver(transport=transport, use_cache=False)
        resolver.is_blocked("203.0.113.7")
        resolver.is_blocked("203.0.113.7")
        assert len(transport.queries) == 2

    def test_seeded_network_answers_without_dns(self, transport):
        resolver = ReputationResolver(transport=transport)
        resolver.add_network("198.51.100.0", 24, "DROP")
        assert resolver.is_blocked("198.51.100.9") == "DROP"
        assert transport.queries == []

    def test_seeded_allow_entry(self, transport):
        resolver = ReputationResolver(transport=transport)
        resolver.add_ip_address("203.0.113.7")
        assert resolver.is_blocked("203.0.113.7") is None
        assert transport.queries == []

    def test_quiet_mode_swallows_failures(self, transport):
        transport.fail = True
        resolver = ReputationResolver(transport=transport, quiet=True)
        assert resolver.is_blocked("203.0.113.7") is None

    def test_failures_raise_when_not_quiet(self, transport):
        transport.fail = True
        resolver = ReputationResolver(transport=transport, quiet=False)
        with pytest.raises(ResolutionDegraded):
            resolver.is_blocked("203.0.113.7")

    def test_failed_lookup_is_not_cached(self, transport):
        resolver = ReputationResolver(transport=transport)
        transport.fail = True
        resolver.is_blocked("203.0.113.7")
        transport.fail = False
        assert resolver.is_blocked("203.0.113.7") == "SBL,XBL"

    def test_no_name_servers_means_unknown(self):
        resolver = ReputationResolver(transport=FakeTransport(ns_hosts=()))
        assert resolver.is_blocked("203.0.113.7") is None

    def test_look_up_requires_name_servers(self, transport):
        resolver = ReputationResolver(transport=transport)
        with pytest.raises(ResolutionDegraded):
            resolver.look_up("203.0.113.7")

    def test_ipv6_servers_preferred_when_enabled(self):
        transport = FakeTransport(ns_addresses=("192.0.2.53", "2001:db8::53"))
        resolver = ReputationResolver(transport=transport, use_ipv6=True).initialize()
        assert resolver.zone_nameservers == ["2001:db8::53"]

    def test_reset_forgets_everything(self, transport):
        resolver = ReputationResolver(transport=transport)
        resolver.is_blocked("203.0.113.7")
        resolver.reset()
        assert resolver.zone_nameservers == []
        resolver.is_blocked("203.0.113.7")
        assert len(transport.queries) == 2


class TestFeeds:
    """Test seeding the cache from DROP-style lists."""

    def test_add_lines(self):
        resolver = ReputationResolver(transport=FakeTransport())
        added = resolver.add_lines([
            "; Spamhaus DROP List",
            "1.10.16.0/20 ; SBL256894",
            "",
            "garbage",
        ])
        assert added == 1
        assert resolver.is_blocked("1.10.17.1") == "SBL256894"

    def test_bad_network_quiet(self):
        resolver = ReputationResolver(transport=FakeTransport())
        assert resolver.add_lines(["999.1.1.0/24 ; SBL1"]) == 0

    def test_bad_network_not_quiet(self):
        resolver = ReputationResolver(transport=FakeTransport(), quiet=False)
        with pytest.raises(ConfigurationError):
            resolver.add_lines(["999.1.1.0/24 ; SBL1"])

    def test_add_file(self, tmp_path):
        feed = tmp_path / "drop.txt"
        feed.write_text("10.0.0.0/8 ; SBL1\n10.1.0.0/16 ; SBL2\n", encoding="utf-8")
        resolver = ReputationResolver(transport=FakeTransport())

        assert resolver.add_feed(str(feed)) == 2
        assert resolver.is_blocked("10.1.2.3") == "SBL2"

    def test_missing_file_quiet(self, tmp_path):
        resolver = ReputationResolver(transport=FakeTransport())
        assert resolver.add_file(str(tmp_path / "missing.txt")) == 0
