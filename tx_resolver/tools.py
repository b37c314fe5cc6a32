"""
Tool surface for the LLM layer.

``TOOL_DEFINITIONS`` are JSON-schema function declarations the model is
given; ``ToolDispatcher`` turns a (name, arguments) call back into a
resolver operation and returns the result's wire dictionary.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from tx_resolver.resolver import TransactionResolver


logger = logging.getLogger(__name__)


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "get_wallet_transactions",
        "description": (
            "Get the transaction history for a wallet. Supports date filtering, "
            "direction filtering, and scanning ALL chains."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "address": {"type": "string", "description": "The wallet address (e.g., 0x...)"},
                "chain": {
                    "type": "string",
                    "description": (
                        "Optional. The blockchain ID (e.g., 0x1) or name, OR 'all' to scan "
                        "all major networks. Defaults to Ethereum."
                    ),
                },
                "limit": {
                    "type": "number",
                    "description": "Number of transactions to fetch per chain. Default 50.",
                },
                "fromDate": {"type": "string", "description": "Optional. Start date in 'YYYY-MM-DD' format."},
                "toDate": {"type": "string", "description": "Optional. End date in 'YYYY-MM-DD' format."},
                "direction": {"type": "string", "description": "Optional. 'in', 'out', or 'all'. Defaults to 'all'."},
                "stablecoins_only": {
                    "type": "boolean",
                    "description": "Optional. If true, the caller wants USDT, USDC, DAI, etc. only.",
                },
                "provider": {
                    "type": "string",
                    "description": "The API provider: 'moralis' (default, best for multi-chain), 'etherscan' or 'rpc'.",
                },
            },
            "required": ["address"],
        },
    },
    {
        "name": "get_token_transfers",
        "description": "Get ERC20 token transfers for a specific wallet address.",
        "parameters": {
            "type": "object",
            "properties": {
                "address": {"type": "string", "description": "The wallet address"},
                "chain": {"type": "string", "description": "Optional. The blockchain ID or name."},
                "limit": {"type": "number", "description": "Number of transfers to fetch. Default 20."},
            },
            "required": ["address"],
        },
    },
    {
        "name": "get_transaction_by_hash",
        "description": (
            "Get details of a specific transaction using its hash. Searches every "
            "supported chain when none is given, falling back to public RPC nodes."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "hash": {"type": "string", "description": "The transaction hash (0x...)"},
                "chain": {"type": "string", "description": "Optional. The blockchain ID or name."},
                "provider": {
                    "type": "string",
                    "description": "The API provider to use. Must be 'moralis', 'etherscan', or 'rpc'.",
                },
            },
            "required": ["hash", "provider"],
        },
    },
]


def _as_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{name}' must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"'{name}' must be a whole number")
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"'{name}' must be a number")


def _as_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ToolDispatcher:
    """
    Routes LLM tool calls to a resolver.

    Usage:
        dispatcher = ToolDispatcher(resolver)
        payload = await dispatcher.dispatch("get_transaction_by_hash", {"hash": "0x...", "provider": "rpc"})
    """

    def __init__(self, resolver: TransactionResolver) -> None:
        self._resolver = resolver
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[Any]]] = {
            "get_wallet_transactions": self._wallet_transactions,
            "get_token_transfers": self._token_transfers,
            "get_transaction_by_hash": self._transaction_by_hash,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, name: str, args: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Run one tool call and return its wire dictionary."""
        handler = self._handlers.get(name)
        if handler is None:
            return {"error": f"Unknown tool: {name}"}

        args = args or {}
        try:
            result = await handler(args)
        except (KeyError, ValueError) as e:
            logger.warning(f"Bad arguments for {name}: {e}")
            return {"error": f"Invalid arguments for {name}: {e}"}

        return result.to_dict()

    async def _wallet_transactions(self, args: dict[str, Any]):
        return await self._resolver.get_wallet_transactions(
            address=args["address"],
            chain=_as_str(args.get("chain")),
            limit=_as_int(args.get("limit"), "limit"),
            from_date=_as_str(args.get("fromDate")),
            to_date=_as_str(args.get("toDate")),
            direction=_as_str(args.get("direction")),
            stablecoins_only=_as_bool(args.get("stablecoins_only")),
            provider=_as_str(args.get("provider")),
        )

    async def _token_transfers(self, args: dict[str, Any]):
        return await self._resolver.get_token_transfers(
            address=args["address"],
            chain=_as_str(args.get("chain")),
            limit=_as_int(args.get("limit"), "limit"),
        )

    async def _transaction_by_hash(self, args: dict[str, Any]):
        return await self._resolver.get_transaction_by_hash(
            tx_hash=args["hash"],
            chain=_as_str(args.get("chain")),
            provider=_as_str(args.get("provider")),
        )
