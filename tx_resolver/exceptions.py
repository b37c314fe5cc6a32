"""
Resolver Exceptions - Custom exception hierarchy.

NotFound is never an exception: a well-formed query without data is an
empty list or None. Everything below describes a call that could not be
answered.

ResolverError (base)
├── ConfigurationError
├── ProviderError
│   ├── AuthenticationError
│   └── RateLimitError
├── TransientNetworkError
├── DecodeError
├── ChainNotSupportedError
├── UnsupportedOperationError
└── NoAvailableProviderError
"""

from datetime import datetime, timezone
from typing import Any, Optional


class ResolverError(Exception):
    """Base exception for all resolver errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.chain = chain
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "provider": self.provider,
            "chain": self.chain,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.provider:
            parts.append(f"[provider={self.provider}]")
        if self.chain:
            parts.append(f"[chain={self.chain}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ConfigurationError(ResolverError):
    """A provider that needs a credential has none. Never retried."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider, None, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


class ProviderError(ResolverError):
    """Upstream rejected the call (bad request, server error, API error text)."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        chain: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider, chain, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data


class AuthenticationError(ProviderError):
    """Upstream refused the credential. Retrying on another chain cannot help."""


class RateLimitError(ProviderError):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        chain: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            provider,
            chain,
            status_code=status_code,
            response_body=response_body,
            request_url=request_url,
            original_error=original_error,
            context=context,
        )
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class TransientNetworkError(ResolverError):
    """Timeout or connection failure against a single endpoint."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        chain: Optional[str] = None,
        endpoint: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider, chain, original_error, context)
        self.endpoint = endpoint

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["endpoint"] = self.endpoint
        return data


class DecodeError(ResolverError):
    """A single record (log, hex field) could not be decoded."""

    def __init__(
        self,
        message: str,
        raw_data: Optional[Any] = None,
        field_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, None, None, original_error, context)
        self.raw_data = raw_data
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,
            "field_name": self.field_name,
        })
        return data


class ChainNotSupportedError(ResolverError):
    """Requested chain cannot be addressed by the provider."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        chain: Optional[str] = None,
        supported_chains: Optional[list[str]] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider, chain, original_error, context)
        self.supported_chains = supported_chains or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["supported_chains"] = self.supported_chains
        return data


class UnsupportedOperationError(ResolverError):
    """The provider does not offer the requested operation."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider, None, original_error, context)
        self.operation = operation

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["operation"] = self.operation
        return data


class NoAvailableProviderError(ResolverError):
    """No registered provider can fulfill the request."""

    def __init__(
        self,
        message: str,
        attempted_providers: Optional[list[str]] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, None, chain, original_error, context)
        self.attempted_providers = attempted_providers or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["attempted_providers"] = self.attempted_providers
        return data
