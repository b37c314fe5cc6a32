"""
Chain Registry Tests.

============================================================
PURPOSE
============================================================
Alias resolution, display names and the ordered chain lists.

============================================================
"""

import pytest

from tx_resolver.chains import (
    BSC,
    DEFAULT_SCAN_ORDER,
    ETH,
    OPTIMISM,
    POLYGON,
    ChainRegistry,
    default_chain_registry,
)
from tx_resolver.models import ALL_CHAINS, ChainDescriptor


class TestNormalize:
    """Tests for ChainRegistry.normalize."""

    def test_empty_is_ethereum(self):
        """Test missing chain defaults to Ethereum."""
        chains = ChainRegistry()
        assert chains.normalize(None) == ETH
        assert chains.normalize("  ") == ETH

    def test_all_sentinel(self):
        """Test 'all' passes through case-insensitively."""
        chains = ChainRegistry()
        assert chains.normalize("ALL") == ALL_CHAINS

    @pytest.mark.parametrize("alias,expected", [
        ("polygon", POLYGON),
        ("Matic", POLYGON),
        ("0x89", POLYGON),
        ("bnb", BSC),
        ("Ethereum", ETH),
    ])
    def test_aliases(self, alias, expected):
        """Test names, aliases and ids map to canonical ids."""
        assert ChainRegistry().normalize(alias) == expected

    def test_unknown_passes_through(self):
        """Test unrecognized chains are returned unchanged."""
        assert ChainRegistry().normalize("0xdeadbeef") == "0xdeadbeef"


class TestLookups:
    """Tests for descriptor lookups."""

    def test_display_name(self):
        """Test display names and unknown fallback."""
        chains = ChainRegistry()
        assert chains.display_name("0x2105") == "Base"
        assert chains.display_name("0x999") == "0x999"

    def test_endpoints_ordered(self):
        """Test endpoint lists keep their order."""
        endpoints = ChainRegistry().endpoints(ETH)
        assert endpoints[0] == "https://eth.llamarpc.com"
        assert len(endpoints) >= 2

    def test_testnet_without_endpoints(self):
        """Test chains without nodes report an empty list."""
        assert ChainRegistry().endpoints("0x5") == []

    def test_wrapped_native(self):
        """Test wrapped native lookup, None when unregistered."""
        chains = ChainRegistry()
        assert chains.wrapped_native(ETH).lower() == "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
        assert chains.wrapped_native(OPTIMISM) is None

    def test_reverse_lookup(self):
        """Test display name back to id."""
        assert ChainRegistry().chain_id_for_name("Polygon") == POLYGON

    def test_contains(self):
        """Test membership by alias."""
        chains = ChainRegistry()
        assert "arbitrum" in chains
        assert "dogechain" not in chains

    def test_duplicate_ids_rejected(self):
        """Test duplicate chain ids fail construction."""
        descriptor = ChainDescriptor(chain_id="0x1", display_name="Ethereum")
        with pytest.raises(ValueError, match="Duplicate"):
            ChainRegistry([descriptor, descriptor])


class TestOrders:
    """Tests for the scan and search orders."""

    def test_scan_order_default(self):
        """Test the multi-chain scan covers the eight major networks."""
        assert ChainRegistry().scan_order == DEFAULT_SCAN_ORDER
        assert len(DEFAULT_SCAN_ORDER) == 8

    def test_search_order_starts_with_ethereum(self):
        """Test the hash search starts on Ethereum."""
        chains = ChainRegistry()
        assert chains.search_order[0] == ETH
        assert chains.node_search_order[0] == ETH

    def test_orders_drop_unknown_ids(self):
        """Test custom orders are filtered to registered chains."""
        chains = ChainRegistry(
            [ChainDescriptor(chain_id="0x1", display_name="Ethereum")],
            scan_order=["0x1", "0x38"],
        )
        assert chains.scan_order == ("0x1",)
        assert chains.search_order == ("0x1",)

    def test_default_registry_is_shared(self):
        """Test the process-wide registry is created once."""
        assert default_chain_registry() is default_chain_registry()
