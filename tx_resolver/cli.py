"""
Transaction Resolver - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface over the three resolver operations.

- Provides argparse-based CLI
- Loads configuration from .env and environment
- Prints the wire dictionary of each result as JSON

============================================================
USAGE
============================================================
tx-resolver wallet 0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045 --chain all
tx-resolver tokens 0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045 --limit 10
tx-resolver tx 0x5c504ed432cb51138bcf09aa5e8a410dd4a1e204ef84bfed1be16dfba1b22060 --provider rpc

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from tx_resolver.config import LOG_LEVELS, ResolverConfig, load_config
from tx_resolver.filters import apply_filters
from tx_resolver.models import ProviderKind, WalletHistoryResult
from tx_resolver.resolver import TransactionResolver, create_resolver
from tx_resolver.tools import TOOL_DEFINITIONS


LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="tx-resolver",
        description="Resolve EVM wallet histories and transaction hashes across chains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  wallet    - Wallet transaction history on one chain or all scan chains
  tokens    - ERC-20 transfers of a wallet on one chain
  tx        - One transaction by hash, searching chains when none is given
  tools     - Print the LLM tool declarations as JSON

Examples:
  %(prog)s wallet 0xabc... --chain all             # Scan all major networks
  %(prog)s wallet 0xabc... --direction out --apply-filters
  %(prog)s tx 0x123... --provider rpc              # Public nodes only
        """
    )

    providers = [k.value for k in ProviderKind]

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------
    sub = parser.add_subparsers(dest="command", required=True)

    wallet = sub.add_parser("wallet", help="Wallet transaction history")
    wallet.add_argument("address", help="Wallet address (0x...)")
    wallet.add_argument("--chain", "-c", help="Chain id, name, or 'all' (default: Ethereum)")
    wallet.add_argument("--limit", "-n", type=int, help="Transactions per chain (default: 50)")
    wallet.add_argument("--from-date", metavar="YYYY-MM-DD", help="Start date, inclusive")
    wallet.add_argument("--to-date", metavar="YYYY-MM-DD", help="End date, inclusive")
    wallet.add_argument("--direction", choices=["in", "out", "all"], help="Transfer direction")
    wallet.add_argument("--stablecoins-only", action="store_true", help="Stablecoin transfers only")
    wallet.add_argument("--provider", "-p", choices=providers, help="Data provider (default: moralis)")
    wallet.add_argument(
        "--apply-filters",
        action="store_true",
        help="Apply direction/stablecoin/date filters to the output instead of only echoing them",
    )

    tokens = sub.add_parser("tokens", help="ERC-20 transfers of a wallet")
    tokens.add_argument("address", help="Wallet address (0x...)")
    tokens.add_argument("--chain", "-c", help="Chain id or name (default: Ethereum)")
    tokens.add_argument("--limit", "-n", type=int, help="Transfers to fetch (default: 20)")

    tx = sub.add_parser("tx", help="Transaction by hash")
    tx.add_argument("hash", help="Transaction hash (0x...)")
    tx.add_argument("--chain", "-c", help="Chain id or name (default: search all)")
    tx.add_argument("--provider", "-p", choices=providers, help="Data provider (default: moralis)")

    sub.add_parser("tools", help="Print LLM tool declarations")

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=list(LOG_LEVELS),
        help="Logging level (default: from TX_RESOLVER_LOG_LEVEL, else INFO)",
    )

    # --------------------------------------------------------
    # System Options
    # --------------------------------------------------------
    system_group = parser.add_argument_group("System Options")

    system_group.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path to a .env file (default: ./.env if present)",
    )

    system_group.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indent for output (default: 2)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# COMMAND EXECUTION
# ============================================================

async def run_command(resolver: TransactionResolver, args: argparse.Namespace) -> dict:
    """Run one parsed command against a resolver and return its wire dictionary."""
    if args.command == "wallet":
        result = await resolver.get_wallet_transactions(
            address=args.address,
            chain=args.chain,
            limit=args.limit,
            from_date=args.from_date,
            to_date=args.to_date,
            direction=args.direction,
            stablecoins_only=args.stablecoins_only or None,
            provider=args.provider,
        )
        if args.apply_filters and isinstance(result, WalletHistoryResult):
            result = apply_filters(result)
        return result.to_dict()

    if args.command == "tokens":
        result = await resolver.get_token_transfers(args.address, args.chain, args.limit)
        return result.to_dict()

    if args.command == "tx":
        result = await resolver.get_transaction_by_hash(args.hash, args.chain, args.provider)
        return result.to_dict()

    raise ValueError(f"Unknown command: {args.command}")


async def async_main(args: argparse.Namespace, config: ResolverConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code (1 when the result is an error)
    """
    async with create_resolver(config) as resolver:
        try:
            payload = await run_command(resolver, args)
        except Exception as e:
            logging.error(f"Fatal error: {e}", exc_info=True)
            return 1

    print(json.dumps(payload, indent=args.indent))
    return 1 if "error" in payload else 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "tools":
        print(json.dumps(TOOL_DEFINITIONS, indent=args.indent))
        return 0

    try:
        config = load_config(args.env_file)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, args.log_level or config.log_level),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    logging.getLogger(__name__).debug(f"Configuration: {config.masked()}")

    return asyncio.run(async_main(args, config))


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
