"""Test fixtures: an in-memory provider adapter and descriptor factories."""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from cloudsweep.errors import ProviderUnavailableError
from cloudsweep.models.resource import Binding, ResourceDescriptor, ResourceFilter, ResourceKey, ResourceKind
from cloudsweep.providers.base import ProviderAdapter


def make_resource(
    kind: ResourceKind,
    name: str,
    provider: str = "gcp",
    region: Optional[str] = None,
    labels: Optional[Dict[str, str]] = None,
    depends_on: Optional[List[ResourceKey]] = None,
    resource_id: Optional[str] = None,
    **metadata: Any,
) -> ResourceDescriptor:
    """Create a descriptor for testing.

    Args:
        kind: Resource kind
        name: Display name (also the id unless resource_id is given)
        provider: Provider name
        region: Region, None for global
        labels: Resource labels
        depends_on: Keys of resources this one must be deleted before
        resource_id: Explicit id
        **metadata: Extra metadata fields

    Returns:
        ResourceDescriptor
    """
    metadata["name"] = name
    metadata["depends_on"] = list(depends_on or [])
    return ResourceDescriptor(
        provider=provider,
        kind=kind,
        id=resource_id or f"{kind.value}/{name}",
        display_name=name,
        region=region,
        labels=labels or {},
        metadata=metadata,
    )


def make_buckets(count: int, prefix: str = "dspm-bucket") -> List[ResourceDescriptor]:
    """Create ``count`` storage bucket descriptors."""
    return [make_resource(ResourceKind.STORAGE_BUCKET, f"{prefix}-{i:03d}") for i in range(count)]


class InMemoryAdapter(ProviderAdapter):
    """Provider adapter backed by a list of descriptors.

    Attributes:
        resources: Resources the adapter reports
        bindings: Resource-level bindings by owner key
        delete_errors: Exceptions raised by successive delete calls, by key
        list_errors: Exceptions raised when listing a kind
        deleted: Descriptors passed to delete, in call order
        max_in_flight: Highest number of concurrent delete calls observed
    """

    def __init__(
        self,
        resources: Optional[Iterable[ResourceDescriptor]] = None,
        scope_id: str = "test-project",
        provider: str = "gcp",
        bindings: Optional[Dict[ResourceKey, List[Tuple[str, str]]]] = None,
        delete_errors: Optional[Dict[ResourceKey, Sequence[Exception]]] = None,
        list_errors: Optional[Dict[ResourceKind, Exception]] = None,
        unavailable: bool = False,
        delete_delay: float = 0.0,
    ) -> None:
        super().__init__(scope_id)
        self._provider = provider
        self.resources = list(resources or [])
        self.bindings = bindings or {}
        self.delete_errors = {key: list(errors) for key, errors in (delete_errors or {}).items()}
        self.list_errors = dict(list_errors or {})
        self.unavailable = unavailable
        self.delete_delay = delete_delay

        self.deleted: List[ResourceDescriptor] = []
        self.delete_calls: Dict[ResourceKey, int] = defaultdict(int)
        self.list_calls: List[ResourceKind] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return self._provider

    @property
    def supported_kinds(self) -> Tuple[ResourceKind, ...]:
        return tuple(ResourceKind)

    def check_access(self) -> None:
        if self.unavailable:
            raise ProviderUnavailableError("Not logged in", provider=self._provider)

    def list_resources(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        self.list_calls.append(kind)
        if kind in self.list_errors:
            raise self.list_errors[kind]
        return [
            r
            for r in self.resources
            if r.kind == kind and resource_filter.matches(r.display_name, r.labels, kind.supports_labels)
        ]

    def list_iam_bindings(self, descriptor: ResourceDescriptor) -> List[Binding]:
        return [
            Binding(role=role, member=member, resource=descriptor)
            for role, member in self.bindings.get(descriptor.key, [])
        ]

    def delete(self, descriptor: ResourceDescriptor) -> None:
        with self._lock:
            self.delete_calls[descriptor.key] += 1
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
            errors = self.delete_errors.get(descriptor.key)
            error = errors.pop(0) if errors else None

        try:
            if self.delete_delay:
                time.sleep(self.delete_delay)
            if error is not None:
                raise error
            with self._lock:
                self.deleted.append(descriptor)
        finally:
            with self._lock:
                self._in_flight -= 1
