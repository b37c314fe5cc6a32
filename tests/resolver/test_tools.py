"""
Tool Surface Tests.

============================================================
PURPOSE
============================================================
LLM tool declarations and dispatch of tool calls onto the
resolver.

============================================================
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tx_resolver.cli import create_parser, main
from tx_resolver.models import ErrorResult
from tx_resolver.registry import ProviderRegistry
from tx_resolver.resolver import TransactionResolver
from tx_resolver.tools import TOOL_DEFINITIONS, ToolDispatcher


WALLET = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
TX_HASH = "0x" + "ab" * 32


def make_resolver(payload=None):
    result = MagicMock()
    result.to_dict.return_value = payload or {"ok": True}

    resolver = MagicMock()
    resolver.get_wallet_transactions = AsyncMock(return_value=result)
    resolver.get_token_transfers = AsyncMock(return_value=result)
    resolver.get_transaction_by_hash = AsyncMock(return_value=result)
    return resolver


class TestToolDefinitions:
    """Tests for TOOL_DEFINITIONS."""

    def test_three_tools(self):
        """Test the exposed tool names."""
        assert [t["name"] for t in TOOL_DEFINITIONS] == [
            "get_wallet_transactions",
            "get_token_transfers",
            "get_transaction_by_hash",
        ]

    def test_required_arguments(self):
        """Test required argument lists."""
        required = {t["name"]: t["parameters"]["required"] for t in TOOL_DEFINITIONS}
        assert required["get_wallet_transactions"] == ["address"]
        assert required["get_token_transfers"] == ["address"]
        assert required["get_transaction_by_hash"] == ["hash", "provider"]

    def test_wallet_arguments(self):
        """Test wallet tool argument names."""
        wallet = TOOL_DEFINITIONS[0]["parameters"]["properties"]
        assert set(wallet) == {
            "address", "chain", "limit", "fromDate", "toDate",
            "direction", "stablecoins_only", "provider",
        }

    def test_serializable(self):
        """Test declarations are plain JSON."""
        assert json.loads(json.dumps(TOOL_DEFINITIONS)) == TOOL_DEFINITIONS


class TestToolDispatcher:
    """Tests for ToolDispatcher."""

    @pytest.mark.asyncio
    async def test_wallet_arguments_coerced(self):
        """Test tool arguments are mapped and coerced."""
        resolver = make_resolver({"transactions": []})
        dispatcher = ToolDispatcher(resolver)

        payload = await dispatcher.dispatch("get_wallet_transactions", {
            "address": WALLET,
            "chain": "all",
            "limit": 25.0,
            "fromDate": "2024-01-01",
            "direction": "in",
            "stablecoins_only": "true",
        })

        assert payload == {"transactions": []}
        resolver.get_wallet_transactions.assert_awaited_once_with(
            address=WALLET,
            chain="all",
            limit=25,
            from_date="2024-01-01",
            to_date=None,
            direction="in",
            stablecoins_only=True,
            provider=None,
        )

    @pytest.mark.asyncio
    async def test_hash_lookup(self):
        """Test the hash tool maps 'hash' to the resolver argument."""
        resolver = make_resolver()
        dispatcher = ToolDispatcher(resolver)

        await dispatcher.dispatch("get_transaction_by_hash", {"hash": TX_HASH, "provider": "rpc"})

        resolver.get_transaction_by_hash.assert_awaited_once_with(tx_hash=TX_HASH, chain=None, provider="rpc")

    @pytest.mark.asyncio
    async def test_token_transfers(self):
        """Test the token tool."""
        resolver = make_resolver()
        dispatcher = ToolDispatcher(resolver)

        await dispatcher.dispatch("get_token_transfers", {"address": WALLET, "limit": "10"})

        resolver.get_token_transfers.assert_awaited_once_with(address=WALLET, chain=None, limit=10)

    @pytest.mark.asyncio
    async def test_error_result_passes_through(self):
        """Test resolver error results keep the error shape."""
        resolver = make_resolver()
        resolver.get_transaction_by_hash.return_value = ErrorResult("Transaction not found.")
        dispatcher = ToolDispatcher(resolver)

        payload = await dispatcher.dispatch("get_transaction_by_hash", {"hash": TX_HASH, "provider": "moralis"})

        assert payload == {"error": "Transaction not found."}

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test unknown tool names return an error."""
        dispatcher = ToolDispatcher(make_resolver())

        payload = await dispatcher.dispatch("send_transaction", {})

        assert payload == {"error": "Unknown tool: send_transaction"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,args", [
        ("get_wallet_transactions", {}),
        ("get_wallet_transactions", {"address": WALLET, "limit": "lots"}),
        ("get_token_transfers", {"address": WALLET, "limit": 2.5}),
        ("get_transaction_by_hash", {"provider": "rpc"}),
    ])
    async def test_bad_arguments(self, name, args):
        """Test missing or malformed arguments return an error."""
        resolver = make_resolver()
        dispatcher = ToolDispatcher(resolver)

        payload = await dispatcher.dispatch(name, args)

        assert payload["error"].startswith(f"Invalid arguments for {name}")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,args,message", [
        ("get_token_transfers", {"address": 123}, "Invalid wallet address: 123"),
        ("get_wallet_transactions", {"address": ["0xabc"]}, "Invalid wallet address: ['0xabc']"),
        ("get_transaction_by_hash", {"hash": 42, "provider": "rpc"}, "Invalid transaction hash: 42"),
    ])
    async def test_non_string_identifiers(self, name, args, message):
        """Test non-string addresses and hashes come back as error payloads."""
        dispatcher = ToolDispatcher(TransactionResolver(ProviderRegistry()))

        payload = await dispatcher.dispatch(name, args)

        assert payload == {"error": message}

    def test_tool_names(self):
        """Test every declared tool has a handler."""
        dispatcher = ToolDispatcher(make_resolver())
        assert dispatcher.tool_names == [t["name"] for t in TOOL_DEFINITIONS]


class TestCli:
    """Tests for the command-line parser."""

    def test_wallet_command(self):
        """Test wallet sub-command options."""
        args = create_parser().parse_args([
            "wallet", WALLET, "--chain", "all", "--limit", "5", "--direction", "out", "--apply-filters",
        ])

        assert args.command == "wallet"
        assert args.chain == "all"
        assert args.limit == 5
        assert args.apply_filters is True

    def test_provider_choices(self):
        """Test unknown providers are rejected by the parser."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["tx", TX_HASH, "--provider", "covalent"])

    def test_tools_command_prints_definitions(self, capsys):
        """Test the tools sub-command prints declarations without config."""
        assert main(["tools"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed == TOOL_DEFINITIONS
