"""
Transaction Resolver Tests.

============================================================
PURPOSE
============================================================
Orchestration across providers and chains, using in-memory
adapters in place of upstream APIs.

TEST CATEGORIES:
- Wallet history: single chain, multi-chain fan-out, merge, errors
- Token transfers
- Hash lookup: chain search, auth abort, node fallback, enrichment
- Result cache

============================================================
"""

import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tx_resolver.chains import (
    ARBITRUM,
    AVAX,
    BASE,
    BSC,
    ETH,
    FANTOM,
    OPTIMISM,
    POLYGON,
    ChainRegistry,
)
from tx_resolver.exceptions import AuthenticationError, ProviderError, TransientNetworkError
from tx_resolver.models import (
    ErrorResult,
    InternalTransfer,
    NFTTransfer,
    NormalizedTransaction,
    Operation,
    ProviderKind,
    ProviderMetadata,
    ReceiptStatus,
    SingleTransactionResult,
    TokenTransfer,
    TokenTransferResult,
    WalletHistoryResult,
)
from tx_resolver.providers.base import BaseProviderAdapter
from tx_resolver.providers.node import NodeRpcAdapter
from tx_resolver.registry import ProviderRegistry
from tx_resolver.resolver import ResultCache, TransactionResolver, sort_newest_first


WALLET = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
OTHER = "0x2222222222222222222222222222222222222222"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
TX_HASH = "0x" + "ab" * 32


# ============================================================
# FAKES
# ============================================================

class FakeAdapter(BaseProviderAdapter):
    """In-memory adapter answering from per-chain tables."""

    def __init__(self, kind, name, operations, priority=1, api_key="key", chains=None):
        super().__init__(api_key=api_key, chains=chains)
        self._kind = kind
        self._name = name
        self._operations = frozenset(operations)
        self._priority = priority

        self.wallet = {}
        self.tokens = {}
        self.lookups = {}
        self.native_prices = {}
        self.token_prices = {}
        self.tx_token_transfers = []
        self.tx_nft_transfers = []
        self.internal = []

        self.wallet_calls = []
        self.lookup_calls = []

    @property
    def kind(self):
        return self._kind

    @property
    def name(self):
        return self._name

    def metadata(self):
        return ProviderMetadata(
            name=self._name,
            display_name=self._name,
            kind=self._kind,
            supported_operations=self._operations,
            requires_api_key=True,
            priority=self._priority,
        )

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    async def list_wallet_transactions(self, address, chain, limit, date_range=None):
        self.wallet_calls.append(chain)
        return [self._tag(tx, chain) for tx in self._answer(self.wallet.get(chain, []))]

    async def list_token_transfers(self, address, chain, limit):
        return self._answer(self.tokens.get(chain, []))

    async def get_transaction(self, tx_hash, chain):
        self.lookup_calls.append(chain)
        tx = self._answer(self.lookups.get(chain))
        return self._tag(tx, chain) if tx else None

    async def get_transaction_token_transfers(self, tx_hash, chain):
        return self._answer(self.tx_token_transfers)

    async def get_transaction_nft_transfers(self, tx_hash, chain):
        return self._answer(self.tx_nft_transfers)

    async def get_internal_transfers(self, tx_hash, chain):
        return self._answer(self.internal)

    async def get_native_price(self, chain):
        return self.native_prices.get(chain, Decimal(0))

    async def get_token_price(self, contract, chain):
        return self.token_prices.get(contract, Decimal(0))


MORALIS_OPS = {
    Operation.WALLET_TRANSACTIONS,
    Operation.TOKEN_TRANSFERS,
    Operation.TRANSACTION,
    Operation.TRANSACTION_TOKEN_TRANSFERS,
    Operation.TRANSACTION_NFT_TRANSFERS,
    Operation.NATIVE_PRICE,
    Operation.TOKEN_PRICE,
    Operation.MULTI_CHAIN_SCAN,
}

ETHERSCAN_OPS = {
    Operation.WALLET_TRANSACTIONS,
    Operation.TOKEN_TRANSFERS,
    Operation.TRANSACTION,
    Operation.INTERNAL_TRANSFERS,
    Operation.MULTI_CHAIN_SCAN,
}


def make_tx(tx_hash, day, value="1000"):
    return NormalizedTransaction(
        hash=tx_hash,
        from_address=WALLET,
        to_address=OTHER,
        value=value,
        receipt_status=ReceiptStatus.SUCCESS,
        block_timestamp=datetime(2024, 5, day, tzinfo=timezone.utc),
    )


def make_transfer(tx_hash, value="5000000"):
    return TokenTransfer(
        address=USDC,
        from_address=OTHER,
        to_address=WALLET,
        value=value,
        token_symbol="USDC",
        token_decimals="6",
        transaction_hash=tx_hash,
        block_timestamp=datetime(2024, 5, 2, tzinfo=timezone.utc),
        log_index="0",
    )


class Harness:
    """A resolver wired to fake Moralis/Etherscan and a real node adapter."""

    def __init__(self, moralis_key="key", etherscan_key="key", cache_ttl=0):
        self.chains = ChainRegistry()
        self.moralis = FakeAdapter(
            ProviderKind.MORALIS, "Moralis", MORALIS_OPS, priority=1,
            api_key=moralis_key, chains=self.chains,
        )
        self.etherscan = FakeAdapter(
            ProviderKind.ETHERSCAN, "Etherscan", ETHERSCAN_OPS, priority=2,
            api_key=etherscan_key, chains=self.chains,
        )
        self.node = NodeRpcAdapter(chains=self.chains)
        self.node.find_transaction = AsyncMock(return_value=None)

        registry = ProviderRegistry()
        registry.register(self.moralis)
        registry.register(self.etherscan)
        registry.register(self.node)

        self.resolver = TransactionResolver(
            providers=registry,
            chains=self.chains,
            cache=ResultCache(ttl_seconds=cache_ttl),
        )


# ============================================================
# WALLET HISTORY TESTS
# ============================================================

class TestWalletHistory:
    """Tests for get_wallet_transactions on one chain."""

    @pytest.mark.asyncio
    async def test_single_chain_result(self):
        """Test result shape, price and echoed filters."""
        h = Harness()
        h.moralis.wallet[ETH] = [make_tx("0x01", 1), make_tx("0x02", 3)]
        h.moralis.native_prices[ETH] = Decimal("3000")

        result = await h.resolver.get_wallet_transactions(WALLET, direction="out", stablecoins_only=True)

        assert isinstance(result, WalletHistoryResult)
        data = result.to_dict()
        assert [tx["hash"] for tx in data["transactions"]] == ["0x02", "0x01"]
        assert data["_chain"] == "Ethereum"
        assert data["_searchedAddress"] == WALLET
        assert data["_priceMap"] == {"Ethereum": 3000.0}
        assert data["_nativePrice"] == 3000.0
        assert data["_provider"] == "Moralis"
        assert data["_filters"] == {"from": None, "to": None, "direction": "out", "stablecoinsOnly": True}
        assert data["transactions"][0]["_detected_chain"] == "Ethereum"

    @pytest.mark.asyncio
    async def test_chain_alias(self):
        """Test chain names resolve to canonical ids."""
        h = Harness()
        h.moralis.wallet[POLYGON] = [make_tx("0x01", 1)]

        result = await h.resolver.get_wallet_transactions(WALLET, chain="matic")

        assert h.moralis.wallet_calls == [POLYGON]
        assert result.chain_label == "Polygon"

    @pytest.mark.asyncio
    async def test_token_transfers_merged(self):
        """Test zero-value promotion and orphan synthesis."""
        h = Harness()
        h.moralis.wallet[ETH] = [make_tx("0xaa", 1, value="0")]
        h.moralis.tokens[ETH] = [make_transfer("0xaa"), make_transfer("0xbb", value="7")]

        result = await h.resolver.get_wallet_transactions(WALLET)

        by_hash = {tx["hash"]: tx for tx in result.to_dict()["transactions"]}
        assert by_hash["0xaa"]["value"] == "5000000"
        assert by_hash["0xaa"]["token_symbol"] == "USDC"
        assert by_hash["0xbb"]["_synthesized"] is True
        assert by_hash["0xbb"]["_provider"] == "Moralis"

    @pytest.mark.asyncio
    async def test_token_failure_is_soft(self):
        """Test a token transfer failure still returns native history."""
        h = Harness()
        h.moralis.wallet[ETH] = [make_tx("0x01", 1)]
        h.moralis.tokens[ETH] = ProviderError("token endpoint down", status_code=500)

        result = await h.resolver.get_wallet_transactions(WALLET)

        assert isinstance(result, WalletHistoryResult)
        assert len(result.transactions) == 1

    @pytest.mark.asyncio
    async def test_token_transfers_date_filtered(self):
        """Test token transfers outside the date range are not merged."""
        h = Harness()
        h.moralis.tokens[ETH] = [make_transfer("0xbb")]

        result = await h.resolver.get_wallet_transactions(WALLET, from_date="2024-06-01")

        assert result.transactions == []
        assert result.filters.from_date == "2024-06-01"

    @pytest.mark.asyncio
    async def test_native_failure_is_error_result(self):
        """Test an upstream failure becomes a short error message."""
        h = Harness()
        h.moralis.wallet[ETH] = ProviderError("upstream exploded", status_code=500)

        result = await h.resolver.get_wallet_transactions(WALLET)

        assert isinstance(result, ErrorResult)
        assert result.to_dict() == {
            "error": "Could not fetch wallet transactions on Ethereum: upstream exploded"
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs,fragment", [
        ({"address": "0x123"}, "Invalid wallet address"),
        ({"address": WALLET, "limit": 0}, "limit"),
        ({"address": WALLET, "direction": "sideways"}, "direction"),
        ({"address": WALLET, "from_date": "May 1st"}, "isoformat"),
        ({"address": WALLET, "provider": "covalent"}, "Unknown provider"),
    ])
    async def test_invalid_input(self, kwargs, fragment):
        """Test bad input becomes an ErrorResult, never an exception."""
        h = Harness()

        result = await h.resolver.get_wallet_transactions(**kwargs)

        assert isinstance(result, ErrorResult)
        assert fragment in result.message

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """Test an unconfigured provider yields a configuration message."""
        h = Harness(moralis_key=None)

        result = await h.resolver.get_wallet_transactions(WALLET)

        assert isinstance(result, ErrorResult)
        assert "API key is not configured" in result.message
        assert h.moralis.wallet_calls == []

    @pytest.mark.asyncio
    async def test_rpc_cannot_scan_wallets(self):
        """Test the node provider is refused for wallet history."""
        h = Harness()

        single = await h.resolver.get_wallet_transactions(WALLET, provider="rpc")
        multi = await h.resolver.get_wallet_transactions(WALLET, chain="all", provider="rpc")

        assert single.message == "Public RPC does not support wallet transactions."
        assert "across all chains" in multi.message

    @pytest.mark.asyncio
    async def test_multi_chain_needs_scan_capability(self):
        """Test chain="all" is refused by an adapter without the scan capability."""
        h = Harness()
        h.etherscan._operations = frozenset(ETHERSCAN_OPS - {Operation.MULTI_CHAIN_SCAN})
        h.etherscan.wallet[ETH] = [make_tx("0x01", 1)]

        multi = await h.resolver.get_wallet_transactions(WALLET, chain="all", provider="etherscan")
        single = await h.resolver.get_wallet_transactions(WALLET, chain="eth", provider="etherscan")

        assert isinstance(multi, ErrorResult)
        assert multi.message.startswith("Etherscan cannot scan a wallet across all chains")
        assert h.etherscan.wallet_calls == [ETH]
        assert [tx["hash"] for tx in single.to_dict()["transactions"]] == ["0x01"]

    @pytest.mark.asyncio
    async def test_unregistered_provider(self):
        """Test a provider missing from the registry is reported."""
        h = Harness()
        h.resolver.providers.unregister(ProviderKind.ETHERSCAN)

        result = await h.resolver.get_wallet_transactions(WALLET, chain="all", provider="etherscan")

        assert result.message == "Provider 'etherscan' is not available."

    @pytest.mark.asyncio
    async def test_etherscan_provider(self):
        """Test an explicit provider choice is honored."""
        h = Harness()
        h.etherscan.wallet[ETH] = [make_tx("0x01", 1)]

        result = await h.resolver.get_wallet_transactions(WALLET, provider="ETHERSCAN")

        assert result.provider == "Etherscan"
        assert h.moralis.wallet_calls == []


class TestMultiChainHistory:
    """Tests for chain="all" fan-out."""

    @pytest.mark.asyncio
    async def test_partial_failures_are_absorbed(self):
        """Test 5 of 8 chains empty or failing, 3 returning data."""
        h = Harness()
        h.moralis.wallet.update({
            ETH: [make_tx("0xeth", 3)],
            POLYGON: [make_tx("0xpoly", 1)],
            BASE: [make_tx("0xbase", 5)],
            BSC: TransientNetworkError("timeout"),
            ARBITRUM: ProviderError("bad gateway", status_code=502),
            AVAX: RuntimeError("unexpected"),
            OPTIMISM: [],
            FANTOM: [],
        })
        h.moralis.native_prices.update({ETH: Decimal("3000"), POLYGON: Decimal("0.7"), BASE: Decimal("3000")})

        result = await h.resolver.get_wallet_transactions(WALLET, chain="all")

        assert isinstance(result, WalletHistoryResult)
        assert [tx.hash for tx in result.transactions] == ["0xbase", "0xeth", "0xpoly"]
        assert result.chain_label == "Multi-Chain"
        assert set(result.price_map) == {"Ethereum", "Polygon", "Base"}
        assert result.native_price is None
        assert sorted(h.moralis.wallet_calls) == sorted(h.chains.scan_order)

        data = result.to_dict()
        assert data["_chain"] == "Multi-Chain"
        assert {tx["_detected_chain"] for tx in data["transactions"]} == {"Ethereum", "Polygon", "Base"}

    @pytest.mark.asyncio
    async def test_everything_failing_is_empty_not_error(self):
        """Test an all-failing scan still returns a result."""
        h = Harness()
        for chain in h.chains.scan_order:
            h.moralis.wallet[chain] = TransientNetworkError("down")

        result = await h.resolver.get_wallet_transactions(WALLET, chain="all")

        assert isinstance(result, WalletHistoryResult)
        assert result.transactions == []
        assert result.price_map == {}


# ============================================================
# TOKEN TRANSFER TESTS
# ============================================================

class TestTokenTransfers:
    """Tests for get_token_transfers."""

    @pytest.mark.asyncio
    async def test_transfers(self):
        """Test transfers come back unmerged from the first capable provider."""
        h = Harness()
        h.moralis.tokens[BSC] = [make_transfer("0x01"), make_transfer("0x02")]

        result = await h.resolver.get_token_transfers(WALLET, chain="bsc")

        assert isinstance(result, TokenTransferResult)
        data = result.to_dict()
        assert len(data["transfers"]) == 2
        assert data["_chain"] == "BSC"
        assert data["_provider"] == "Moralis"

    @pytest.mark.asyncio
    async def test_falls_to_etherscan_without_moralis_key(self):
        """Test the next configured provider is used."""
        h = Harness(moralis_key=None)
        h.etherscan.tokens[ETH] = [make_transfer("0x01")]

        result = await h.resolver.get_token_transfers(WALLET)

        assert result.provider == "Etherscan"

    @pytest.mark.asyncio
    async def test_no_provider(self):
        """Test a missing capable provider is reported."""
        h = Harness(moralis_key=None, etherscan_key=None)

        result = await h.resolver.get_token_transfers(WALLET)

        assert isinstance(result, ErrorResult)
        assert "MORALIS_API_KEY" in result.message

    @pytest.mark.asyncio
    async def test_all_chains_rejected(self):
        """Test token transfers need one chain."""
        h = Harness()

        result = await h.resolver.get_token_transfers(WALLET, chain="all")

        assert isinstance(result, ErrorResult)


# ============================================================
# HASH LOOKUP TESTS
# ============================================================

class TestHashLookup:
    """Tests for get_transaction_by_hash."""

    @pytest.mark.asyncio
    async def test_end_to_end_hit_on_third_chain(self):
        """Test search, tagging and enrichment for a hit on Polygon."""
        h = Harness()
        h.moralis.lookups[POLYGON] = make_tx(TX_HASH, 4, value="0")
        h.moralis.tx_token_transfers = [make_transfer(TX_HASH)]
        h.moralis.tx_nft_transfers = [NFTTransfer(
            token_address=OTHER, token_id="7", from_address=OTHER, to_address=WALLET,
        )]
        h.etherscan.internal = [InternalTransfer(from_address=OTHER, to_address=WALLET, value="42")]
        h.moralis.native_prices[POLYGON] = Decimal("0.5")
        h.moralis.token_prices[USDC] = Decimal("1.0")

        result = await h.resolver.get_transaction_by_hash(TX_HASH)

        assert isinstance(result, SingleTransactionResult)
        assert h.moralis.lookup_calls == [ETH, BSC, POLYGON]
        data = result.to_dict()
        assert data["_detected_chain"] == "Polygon"
        assert data["_chain"] == "Polygon"
        assert data["_searchedAddress"] == TX_HASH
        assert data["_provider"] == "Moralis"
        assert len(data["erc20_transfers"]) == 1
        assert len(data["nft_transfers"]) == 1
        assert data["internal_transfers"][0]["value"] == "42"
        assert data["_nativePrice"] == 0.5
        assert data["_tokenPrice"] == 1.0
        h.node.find_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_auth_failure_stops_search(self):
        """Test an auth failure on the first chain ends the provider search."""
        h = Harness()
        h.moralis.lookups[ETH] = AuthenticationError("Invalid API Key", provider="Moralis", status_code=401)

        result = await h.resolver.get_transaction_by_hash(TX_HASH)

        assert h.moralis.lookup_calls == [ETH]
        h.node.find_transaction.assert_awaited_once()
        assert isinstance(result, ErrorResult)
        assert result.message == "Transaction not found. Moralis error: Invalid API Key"

    @pytest.mark.asyncio
    async def test_transient_errors_continue_search(self):
        """Test non-fatal errors move on to the next chain."""
        h = Harness()
        h.moralis.lookups[ETH] = TransientNetworkError("timeout")
        h.moralis.lookups[BSC] = make_tx(TX_HASH, 1)

        result = await h.resolver.get_transaction_by_hash(TX_HASH)

        assert result.transaction.detected_chain == "BSC"

    @pytest.mark.asyncio
    async def test_missing_key_falls_back_to_nodes(self):
        """Test an unconfigured provider still reaches the node search."""
        h = Harness(moralis_key=None)
        h.node.find_transaction.return_value = make_tx(TX_HASH, 2)

        result = await h.resolver.get_transaction_by_hash(TX_HASH)

        assert isinstance(result, SingleTransactionResult)
        assert h.moralis.lookup_calls == []
        assert result.transaction.detected_chain == "Ethereum"

    @pytest.mark.asyncio
    async def test_exact_chain_then_nodes(self):
        """Test a given chain is tried alone, then first in the node search."""
        h = Harness()

        result = await h.resolver.get_transaction_by_hash(TX_HASH, chain="polygon")

        assert h.moralis.lookup_calls == [POLYGON]
        chains_searched = h.node.find_transaction.call_args.args[1]
        assert chains_searched[0] == POLYGON
        assert chains_searched.count(POLYGON) == 1
        assert result.message == "Transaction not found."

    @pytest.mark.asyncio
    async def test_rpc_only(self):
        """Test provider=rpc skips the provider path."""
        h = Harness()

        result = await h.resolver.get_transaction_by_hash(TX_HASH, provider="rpc")

        assert h.moralis.lookup_calls == []
        assert result.message == "Transaction not found on any public RPC node."

    @pytest.mark.asyncio
    async def test_node_hit_keeps_decoded_transfers(self):
        """Test enrichment only fills lists the source left empty."""
        h = Harness()
        tx = make_tx(TX_HASH, 2)
        tx.chain_id = BSC
        tx.token_transfers = []
        tx.nft_transfers = []
        h.node.find_transaction.return_value = tx
        h.moralis.tx_token_transfers = [make_transfer(TX_HASH)]
        h.etherscan.internal = [InternalTransfer(from_address=OTHER, to_address=WALLET, value="1")]

        result = await h.resolver.get_transaction_by_hash(TX_HASH, provider="rpc")

        assert result.transaction.token_transfers == []
        assert len(result.transaction.internal_transfers) == 1
        assert result.transaction.detected_chain == "BSC"

    @pytest.mark.asyncio
    async def test_enrichment_failure_is_soft(self):
        """Test a failing enrichment call leaves the list unset."""
        h = Harness()
        h.moralis.lookups[ETH] = make_tx(TX_HASH, 1)
        h.etherscan.internal = ProviderError("trace api down", status_code=500)

        result = await h.resolver.get_transaction_by_hash(TX_HASH)

        assert isinstance(result, SingleTransactionResult)
        assert result.transaction.internal_transfers is None
        assert "internal_transfers" not in result.to_dict()

    @pytest.mark.asyncio
    async def test_invalid_hash(self):
        """Test malformed hashes are rejected up front."""
        h = Harness()

        result = await h.resolver.get_transaction_by_hash("0x1234")

        assert isinstance(result, ErrorResult)
        assert "Invalid transaction hash" in result.message


# ============================================================
# CACHE TESTS
# ============================================================

class TestResultCache:
    """Tests for ResultCache and its use by the resolver."""

    @pytest.mark.asyncio
    async def test_repeat_lookup_served_from_cache(self):
        """Test a repeated request does not hit the provider again."""
        h = Harness(cache_ttl=60)
        h.moralis.lookups[ETH] = make_tx(TX_HASH, 1)

        first = await h.resolver.get_transaction_by_hash(TX_HASH)
        second = await h.resolver.get_transaction_by_hash(TX_HASH)

        assert h.moralis.lookup_calls == [ETH]
        assert second.to_dict() == first.to_dict()
        assert second is not first
        assert h.resolver.cache.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_errors_not_cached(self):
        """Test error results are recomputed."""
        h = Harness(cache_ttl=60)
        h.moralis.wallet[ETH] = ProviderError("down", status_code=500)

        await h.resolver.get_wallet_transactions(WALLET)
        await h.resolver.get_wallet_transactions(WALLET)

        assert h.moralis.wallet_calls == [ETH, ETH]
        assert len(h.resolver.cache) == 0

    def test_expiry(self):
        """Test entries expire after the TTL."""
        now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
        cache = ResultCache(ttl_seconds=60, clock=lambda: now[0])
        result = ErrorResult("x")
        key = cache.make_key("tx", "0x1")
        stored = SingleTransactionResult(transaction=make_tx(TX_HASH, 1), searched_hash=TX_HASH)

        cache.put(key, result)
        assert cache.get(key) is None

        cache.put(key, stored)
        assert cache.get(key) is not None

        now[0] += timedelta(seconds=61)
        assert cache.get(key) is None
        assert len(cache) == 0

    def test_entry_cap(self):
        """Test the oldest entries are evicted past the cap."""
        now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
        cache = ResultCache(ttl_seconds=60, max_entries=2, clock=lambda: now[0])

        for i in range(3):
            now[0] += timedelta(seconds=1)
            cache.put(("k", i), SingleTransactionResult(transaction=make_tx(TX_HASH, 1), searched_hash=TX_HASH))

        assert len(cache) == 2
        assert cache.get(("k", 0)) is None

    def test_disabled(self):
        """Test a zero TTL stores nothing."""
        cache = ResultCache(ttl_seconds=0)
        cache.put(("k",), SingleTransactionResult(transaction=make_tx(TX_HASH, 1), searched_hash=TX_HASH))

        assert not cache.enabled
        assert len(cache) == 0


class TestSorting:
    """Tests for sort_newest_first."""

    def test_unknown_timestamps_last(self):
        """Test transactions without a timestamp sort after dated ones."""
        undated = make_tx("0x00", 1)
        undated.block_timestamp = None

        ordered = sort_newest_first([make_tx("0x01", 1), undated, make_tx("0x02", 9)])

        assert [tx.hash for tx in ordered] == ["0x02", "0x01", "0x00"]
