"""Provider adapters.

Functions:
    get_adapter: Build the adapter for a provider name
"""

from __future__ import annotations

from typing import Any

from .azure import AzureAdapter
from .base import ProviderAdapter
from .gcp import GCPAdapter

ADAPTERS = {
    "gcp": GCPAdapter,
    "azure": AzureAdapter,
}


def get_adapter(provider: str, scope_id: str, **kwargs: Any) -> ProviderAdapter:
    """Create the adapter for ``provider`` scoped to one project/subscription.

    Raises:
        ValueError: If the provider is unknown
    """
    try:
        adapter_class = ADAPTERS[provider.lower()]
    except KeyError:
        raise ValueError(f"Unknown provider '{provider}'. Must be one of: {', '.join(sorted(ADAPTERS))}")
    return adapter_class(scope_id, **kwargs)


__all__ = [
    "ADAPTERS",
    "AzureAdapter",
    "GCPAdapter",
    "ProviderAdapter",
    "get_adapter",
]
