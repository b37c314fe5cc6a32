"""
Resolver Configuration.

============================================================
PURPOSE
============================================================
Credentials, endpoints, timeouts and limits for the resolver.

Sources, in order of precedence:
- Explicit ResolverConfig(...) arguments
- Environment variables (MORALIS_API_KEY, ETHERSCAN_API_KEY,
  TX_RESOLVER_* overrides)
- A .env file, loaded by load_config()

============================================================
"""

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from dotenv import load_dotenv


ENV_PREFIX = "TX_RESOLVER_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ============================================================
# RESOLVER CONFIGURATION
# ============================================================

@dataclass
class ResolverConfig:
    """Configuration for the transaction resolver."""

    # Credentials
    moralis_api_key: Optional[str] = None
    """Moralis Web3 Data API key (hosted indexer)."""

    etherscan_api_key: Optional[str] = None
    """Etherscan V2 API key (block explorer)."""

    # Endpoints
    moralis_base_url: str = "https://deep-index.moralis.io/api/v2.2"
    """Moralis API root."""

    etherscan_base_url: str = "https://api.etherscan.io/v2/api"
    """Etherscan unified V2 endpoint."""

    # Timeouts
    request_timeout_seconds: float = 30.0
    """Total timeout for one indexer/explorer HTTP request."""

    rpc_timeout_seconds: float = 6.0
    """Timeout for one JSON-RPC call against one node endpoint."""

    # Limits
    moralis_page_size: int = 100
    """Records per Moralis page."""

    max_wallet_records: int = 2000
    """Hard cap on auto-paginated wallet history."""

    default_wallet_limit: int = 50
    """Wallet history limit when the caller gives none."""

    default_token_limit: int = 20
    """Token transfer limit when the caller gives none."""

    # Caching
    cache_ttl_seconds: int = 60
    """Result cache lifetime; 0 disables the cache."""

    # Logging
    log_level: str = "INFO"
    """Logging level."""

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("Invalid resolver configuration: " + "; ".join(errors))

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ResolverConfig":
        """Load configuration from environment variables."""
        env = os.environ if env is None else env

        def get(name: str, default: str) -> str:
            return env.get(f"{ENV_PREFIX}{name}", default)

        return cls(
            moralis_api_key=env.get("MORALIS_API_KEY") or None,
            etherscan_api_key=env.get("ETHERSCAN_API_KEY") or None,
            moralis_base_url=get("MORALIS_BASE_URL", "https://deep-index.moralis.io/api/v2.2"),
            etherscan_base_url=get("ETHERSCAN_BASE_URL", "https://api.etherscan.io/v2/api"),
            request_timeout_seconds=float(get("REQUEST_TIMEOUT_SECONDS", "30")),
            rpc_timeout_seconds=float(get("RPC_TIMEOUT_SECONDS", "6")),
            moralis_page_size=int(get("MORALIS_PAGE_SIZE", "100")),
            max_wallet_records=int(get("MAX_WALLET_RECORDS", "2000")),
            default_wallet_limit=int(get("DEFAULT_WALLET_LIMIT", "50")),
            default_token_limit=int(get("DEFAULT_TOKEN_LIMIT", "20")),
            cache_ttl_seconds=int(get("CACHE_TTL_SECONDS", "60")),
            log_level=get("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        if self.rpc_timeout_seconds <= 0:
            errors.append("rpc_timeout_seconds must be positive")

        if not 1 <= self.moralis_page_size <= 100:
            errors.append("moralis_page_size must be between 1 and 100")

        if self.max_wallet_records < 1:
            errors.append("max_wallet_records must be at least 1")

        if self.default_wallet_limit < 1 or self.default_token_limit < 1:
            errors.append("default limits must be at least 1")

        if self.cache_ttl_seconds < 0:
            errors.append("cache_ttl_seconds cannot be negative")

        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        return errors

    def masked(self) -> dict:
        """Configuration with credentials masked, safe to log."""
        def mask(value: Optional[str]) -> Optional[str]:
            if not value:
                return None
            return value[:4] + "****" if len(value) > 8 else "****"

        return {
            "moralis_api_key": mask(self.moralis_api_key),
            "etherscan_api_key": mask(self.etherscan_api_key),
            "moralis_base_url": self.moralis_base_url,
            "etherscan_base_url": self.etherscan_base_url,
            "request_timeout_seconds": self.request_timeout_seconds,
            "rpc_timeout_seconds": self.rpc_timeout_seconds,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "log_level": self.log_level,
        }


def load_config(dotenv_path: Optional[str] = None) -> ResolverConfig:
    """Load a .env file (if present) into the environment, then read it."""
    load_dotenv(dotenv_path)
    return ResolverConfig.from_env()
