"""Resource descriptor, kind and filter models.

A ResourceDescriptor identifies one cloud resource independently of the
provider CLI that reported it. Its identity is ``(provider, kind, id)``;
labels and raw metadata ride along but never take part in equality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

ResourceKey = Tuple[str, str, str]


class ResourceKind(Enum):
    """Known resource kinds, declared in teardown order."""

    IAM_ROLE_BINDING = "iam_role_binding"
    SCHEDULER_JOB = "scheduler_job"
    EVENTARC_TRIGGER = "eventarc_trigger"
    CLOUD_FUNCTION = "cloud_function"
    CLOUD_RUN_SERVICE = "cloud_run_service"
    CLOUD_RUN_JOB = "cloud_run_job"
    WORKFLOW = "workflow"
    ALERT_POLICY = "alert_policy"
    NOTIFICATION_CHANNEL = "notification_channel"
    DASHBOARD = "dashboard"
    METRIC_DESCRIPTOR = "metric_descriptor"
    PUBSUB_SUBSCRIPTION = "pubsub_subscription"
    PUBSUB_TOPIC = "pubsub_topic"
    COMPUTE_INSTANCE = "compute_instance"
    DISK = "disk"
    SNAPSHOT = "snapshot"
    RESOURCE_POLICY = "resource_policy"
    STORAGE_BUCKET = "storage_bucket"
    ARTIFACT_REPOSITORY = "artifact_repository"
    SECRET = "secret"
    LOG_SINK = "log_sink"
    VPC_CONNECTOR = "vpc_connector"
    FIREWALL_RULE = "firewall_rule"
    NAT = "nat"
    ROUTER = "router"
    SUBNET = "subnet"
    COMPUTE_NETWORK = "compute_network"
    WORKLOAD_IDENTITY_POOL = "workload_identity_pool"
    TAG_VALUE = "tag_value"
    TAG_KEY = "tag_key"
    CUSTOM_ROLE = "custom_role"
    APP_REGISTRATION = "app_registration"
    SERVICE_PRINCIPAL = "service_principal"
    RESOURCE_GROUP = "resource_group"
    SERVICE_ACCOUNT = "service_account"

    @property
    def rank(self) -> int:
        """Dependency rank: higher ranks are deleted earlier."""
        return DEPENDENCY_RANKS[self]

    @property
    def order(self) -> int:
        """Declaration index, used to break rank ties deterministically."""
        return _DECLARED_ORDER[self]

    @property
    def has_resource_iam(self) -> bool:
        return self in RESOURCE_IAM_KINDS

    @property
    def supports_labels(self) -> bool:
        return self not in UNLABELED_KINDS

    @classmethod
    def from_value(cls, value: str) -> "ResourceKind":
        """Look up a kind by value, accepting dashes and any case."""
        normalized = value.strip().lower().replace("-", "_")
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise ValueError(f"Unknown resource kind: {value}")


# Rank table: a resource must be gone before anything with a lower rank is
# deleted. IAM bindings go first, service accounts last.
DEPENDENCY_RANKS: Dict[ResourceKind, int] = {
    ResourceKind.IAM_ROLE_BINDING: 100,
    ResourceKind.SCHEDULER_JOB: 90,
    ResourceKind.EVENTARC_TRIGGER: 85,
    ResourceKind.CLOUD_FUNCTION: 80,
    ResourceKind.CLOUD_RUN_SERVICE: 75,
    ResourceKind.CLOUD_RUN_JOB: 75,
    ResourceKind.WORKFLOW: 72,
    ResourceKind.ALERT_POLICY: 70,
    ResourceKind.NOTIFICATION_CHANNEL: 69,
    ResourceKind.DASHBOARD: 68,
    ResourceKind.METRIC_DESCRIPTOR: 67,
    ResourceKind.PUBSUB_SUBSCRIPTION: 65,
    ResourceKind.PUBSUB_TOPIC: 60,
    ResourceKind.COMPUTE_INSTANCE: 55,
    ResourceKind.DISK: 50,
    ResourceKind.SNAPSHOT: 49,
    ResourceKind.RESOURCE_POLICY: 48,
    ResourceKind.STORAGE_BUCKET: 45,
    ResourceKind.ARTIFACT_REPOSITORY: 40,
    ResourceKind.SECRET: 35,
    ResourceKind.LOG_SINK: 30,
    ResourceKind.VPC_CONNECTOR: 28,
    ResourceKind.FIREWALL_RULE: 25,
    ResourceKind.NAT: 22,
    ResourceKind.ROUTER: 20,
    ResourceKind.SUBNET: 15,
    ResourceKind.COMPUTE_NETWORK: 10,
    ResourceKind.WORKLOAD_IDENTITY_POOL: 9,
    ResourceKind.TAG_VALUE: 8,
    ResourceKind.TAG_KEY: 7,
    ResourceKind.CUSTOM_ROLE: 6,
    ResourceKind.APP_REGISTRATION: 5,
    ResourceKind.SERVICE_PRINCIPAL: 4,
    ResourceKind.RESOURCE_GROUP: 3,
    ResourceKind.SERVICE_ACCOUNT: 1,
}

_DECLARED_ORDER: Dict[ResourceKind, int] = {kind: index for index, kind in enumerate(ResourceKind)}

# Kinds whose IAM policy lives on the resource itself rather than the project
RESOURCE_IAM_KINDS = frozenset(
    {
        ResourceKind.STORAGE_BUCKET,
        ResourceKind.SECRET,
        ResourceKind.PUBSUB_TOPIC,
        ResourceKind.ARTIFACT_REPOSITORY,
        ResourceKind.CLOUD_RUN_SERVICE,
    }
)

# GCP does not accept labels on these; they can only be matched by name
UNLABELED_KINDS = frozenset(
    {
        ResourceKind.IAM_ROLE_BINDING,
        ResourceKind.METRIC_DESCRIPTOR,
        ResourceKind.COMPUTE_NETWORK,
        ResourceKind.SUBNET,
        ResourceKind.ROUTER,
        ResourceKind.NAT,
        ResourceKind.FIREWALL_RULE,
        ResourceKind.VPC_CONNECTOR,
        ResourceKind.SERVICE_ACCOUNT,
        ResourceKind.LOG_SINK,
        ResourceKind.CUSTOM_ROLE,
        ResourceKind.TAG_KEY,
        ResourceKind.TAG_VALUE,
        ResourceKind.WORKLOAD_IDENTITY_POOL,
        ResourceKind.APP_REGISTRATION,
        ResourceKind.SERVICE_PRINCIPAL,
    }
)


@dataclass(frozen=True)
class ResourceDescriptor:
    """Immutable identity of one discovered cloud resource.

    Attributes:
        provider: Provider name ("gcp", "azure")
        kind: Resource kind
        id: Provider-unique identifier (full resource name, ARM id, email, ...)
        display_name: Short human-readable name
        region: Region or location, None for global resources
        labels: Resource labels/tags
        metadata: Raw provider fields the adapter needs to delete the resource
    """

    provider: str
    kind: ResourceKind
    id: str
    display_name: str = field(compare=False)
    region: Optional[str] = field(default=None, compare=False)
    labels: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> ResourceKey:
        return (self.provider, self.kind.value, self.id)

    @property
    def sort_key(self) -> Tuple[int, int, str, str]:
        """Deterministic planning order: rank desc, kind order, provider, id."""
        return (-self.kind.rank, self.kind.order, self.provider, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "kind": self.kind.value,
            "id": self.id,
            "display_name": self.display_name,
            "region": self.region,
            "labels": dict(self.labels),
        }

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.display_name}"


@dataclass(frozen=True)
class Binding:
    """One role granted to one member on a resource."""

    role: str
    member: str
    resource: ResourceDescriptor
    condition: Optional[str] = None

    def to_descriptor(self) -> ResourceDescriptor:
        """Materialize the binding as a deletable IAM_ROLE_BINDING resource."""
        return ResourceDescriptor(
            provider=self.resource.provider,
            kind=ResourceKind.IAM_ROLE_BINDING,
            id=f"{self.resource.id}#{self.role}#{self.member}",
            display_name=f"{self.role} {self.member}",
            region=self.resource.region,
            metadata={
                "role": self.role,
                "member": self.member,
                "condition": self.condition,
                "owner": self.resource.key,
                "owner_kind": self.resource.kind.value,
                "owner_id": self.resource.id,
                "owner_name": self.resource.display_name,
                "owner_region": self.resource.region,
                "owner_labels": dict(self.resource.labels),
            },
        )


@dataclass(frozen=True)
class DependencyEdge:
    """Hard ordering constraint: ``before`` is deleted in an earlier batch than ``after``."""

    before: ResourceKey
    after: ResourceKey


@dataclass(frozen=True)
class ResourceFilter:
    """Criteria identifying the resources that belong to one deployment.

    A resource matches when its name starts with any prefix, or (for kinds
    that carry labels) when every key/value of the label selector matches.
    At least one criterion is required.

    Attributes:
        name_prefixes: Accepted name prefixes
        label_selector: Required label key/value pairs
        regions: Region scope; empty means every region
    """

    name_prefixes: Tuple[str, ...] = ()
    label_selector: Mapping[str, str] = field(default_factory=dict, hash=False)
    regions: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        prefixes = tuple(p for p in self.name_prefixes if p)
        object.__setattr__(self, "name_prefixes", prefixes)
        object.__setattr__(self, "regions", tuple(r.lower() for r in self.regions if r))
        if not prefixes and not self.label_selector:
            raise ValueError("Resource filter requires at least one name prefix or label selector")

    def matches_name(self, name: Optional[str]) -> bool:
        if not name:
            return False
        return any(name.startswith(prefix) for prefix in self.name_prefixes)

    def matches_labels(self, labels: Optional[Mapping[str, str]]) -> bool:
        if not self.label_selector or not labels:
            return False
        return all(labels.get(key) == value for key, value in self.label_selector.items())

    def matches(
        self,
        name: Optional[str],
        labels: Optional[Mapping[str, str]] = None,
        supports_labels: bool = True,
    ) -> bool:
        if self.matches_name(name):
            return True
        return supports_labels and self.matches_labels(labels)

    def in_region(self, region: Optional[str]) -> bool:
        """Global resources (no region) are always in scope."""
        if not self.regions or not region or region.lower() == "global":
            return True
        return region.lower() in self.regions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name_prefixes": list(self.name_prefixes),
            "label_selector": dict(self.label_selector),
            "regions": list(self.regions),
        }
