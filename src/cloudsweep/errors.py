"""Error taxonomy for provider calls.

Every failure a provider adapter can report maps onto one of these classes.
The execution engine decides retry/skip/fail behaviour purely from the class,
never from provider-specific error text.

Exception Hierarchy::

    CloudSweepError (base)
    ├── ProviderError              generic, non-retryable provider failure
    │   ├── TransientError         throttling, propagation lag, timeouts
    │   ├── PermissionDeniedError  caller lacks IAM permission
    │   ├── NotFoundError          resource already gone
    │   ├── ProtectedError         provider-side lock or policy veto
    │   ├── DiscoveryError         a listing call failed
    │   └── ProviderUnavailableError  CLI missing or not authenticated
    └── ConfigError                invalid configuration
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CloudSweepError(Exception):
    """Base exception for all cloudsweep errors.

    Args:
        message: Human-readable error message
        details: Additional context about the error
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ProviderError(CloudSweepError):
    """Non-retryable failure reported by a cloud provider.

    Args:
        message: Human-readable error message
        provider: Provider name ("gcp", "azure")
        kind: Resource kind value involved, if any
        resource_id: Resource identifier involved, if any
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        kind: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.provider = provider
        self.kind = kind
        self.resource_id = resource_id
        full_details = details or {}
        if provider:
            full_details["provider"] = provider
        if kind:
            full_details["kind"] = kind
        if resource_id:
            full_details["resource_id"] = resource_id
        super().__init__(message, full_details)


class TransientError(ProviderError):
    """Retryable failure: rate limiting, eventual consistency, timeouts."""


class PermissionDeniedError(ProviderError):
    """The caller is not allowed to perform the operation. Never retried."""


class NotFoundError(ProviderError):
    """The resource does not exist. Deleting it is already satisfied."""


class ProtectedError(ProviderError):
    """Deletion vetoed by a lock or protection policy."""


class DiscoveryError(ProviderError):
    """A listing call failed; the kind degrades to an empty result."""


class ProviderUnavailableError(ProviderError):
    """The provider CLI is missing or not authenticated."""


class ConfigError(CloudSweepError):
    """Invalid configuration file or value."""
