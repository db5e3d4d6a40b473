"""Base class for provider adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

from ..models.resource import Binding, ResourceDescriptor, ResourceFilter, ResourceKind


class ProviderAdapter(ABC):
    """Uniform discovery and deletion capability of one cloud provider.

    The engine only ever talks to this interface. Implementations translate
    each call into native provider calls and every native failure into the
    error taxonomy in ``cloudsweep.errors``:

    - ``delete`` raises TransientError, PermissionDeniedError, NotFoundError
      or ProtectedError (anything else is treated as a non-retryable failure)
    - ``list_resources`` and ``list_iam_bindings`` raise DiscoveryError (or a
      more specific ProviderError) when listing fails
    - ``check_access`` raises ProviderUnavailableError when the provider
      cannot be reached or the caller is not authenticated
    """

    def __init__(self, scope_id: str) -> None:
        """Initialize the adapter.

        Args:
            scope_id: Project id (GCP) or subscription id (Azure)
        """
        self.scope_id = scope_id
        self.logger = logging.getLogger(self.__class__.__module__)

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short provider name (e.g., "gcp")."""
        pass

    @property
    @abstractmethod
    def supported_kinds(self) -> Tuple[ResourceKind, ...]:
        """Kinds this adapter can list and delete, in declared kind order."""
        pass

    @abstractmethod
    def check_access(self) -> None:
        """Verify the provider is reachable with valid credentials."""
        pass

    def begin_discovery(self) -> None:
        """Forget listings cached during an earlier discovery pass.

        Called once per pass, before the first listing. Adapters that cache
        nothing ignore it.
        """
        pass

    @abstractmethod
    def list_resources(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        """List resources of one kind matching the filter.

        Args:
            kind: Resource kind to list
            resource_filter: Prefix/label/region criteria

        Returns:
            Matching descriptors (possibly empty)
        """
        pass

    @abstractmethod
    def delete(self, descriptor: ResourceDescriptor) -> None:
        """Delete one resource."""
        pass

    def list_iam_bindings(self, descriptor: ResourceDescriptor) -> List[Binding]:
        """List role bindings attached to the resource itself.

        Adapters without resource-level IAM return an empty list.
        """
        return []

    def list_scopes(self) -> List[str]:
        """List every project/subscription visible to the caller."""
        return [self.scope_id]

    def supports(self, kind: ResourceKind) -> bool:
        return kind in self.supported_kinds

    def describe(self, descriptor: ResourceDescriptor) -> str:
        """Human-readable preview of the delete call (used in dry-run logs)."""
        return f"delete {descriptor.kind.value} {descriptor.id}"
