"""GCP provider adapter.

Drives ``gcloud`` with ``--format=json`` and turns its output into
ResourceDescriptors. Filtering happens on the parsed documents, never on
text output.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..errors import ProviderError, ProviderUnavailableError
from ..models.resource import Binding, ResourceDescriptor, ResourceFilter, ResourceKey, ResourceKind
from .base import ProviderAdapter
from .runner import CommandRunner

PROVIDER = "gcp"

# Listing commands for kinds that need no per-parent iteration: kind -> gcloud args
LIST_COMMANDS: Dict[ResourceKind, Tuple[str, ...]] = {
    ResourceKind.EVENTARC_TRIGGER: ("eventarc", "triggers", "list", "--location=-"),
    ResourceKind.CLOUD_FUNCTION: ("functions", "list"),
    ResourceKind.CLOUD_RUN_SERVICE: ("run", "services", "list", "--platform=managed"),
    ResourceKind.CLOUD_RUN_JOB: ("run", "jobs", "list"),
    ResourceKind.WORKFLOW: ("workflows", "list", "--location=-"),
    ResourceKind.ALERT_POLICY: ("alpha", "monitoring", "policies", "list"),
    ResourceKind.NOTIFICATION_CHANNEL: ("alpha", "monitoring", "channels", "list"),
    ResourceKind.DASHBOARD: ("monitoring", "dashboards", "list"),
    ResourceKind.METRIC_DESCRIPTOR: ("monitoring", "metrics-descriptors", "list"),
    ResourceKind.PUBSUB_SUBSCRIPTION: ("pubsub", "subscriptions", "list"),
    ResourceKind.PUBSUB_TOPIC: ("pubsub", "topics", "list"),
    ResourceKind.COMPUTE_INSTANCE: ("compute", "instances", "list"),
    ResourceKind.DISK: ("compute", "disks", "list"),
    ResourceKind.SNAPSHOT: ("compute", "snapshots", "list"),
    ResourceKind.RESOURCE_POLICY: ("compute", "resource-policies", "list"),
    ResourceKind.STORAGE_BUCKET: ("storage", "buckets", "list"),
    ResourceKind.ARTIFACT_REPOSITORY: ("artifacts", "repositories", "list", "--location=all"),
    ResourceKind.SECRET: ("secrets", "list"),
    ResourceKind.LOG_SINK: ("logging", "sinks", "list"),
    ResourceKind.FIREWALL_RULE: ("compute", "firewall-rules", "list"),
    ResourceKind.ROUTER: ("compute", "routers", "list"),
    ResourceKind.SUBNET: ("compute", "networks", "subnets", "list"),
    ResourceKind.COMPUTE_NETWORK: ("compute", "networks", "list"),
    ResourceKind.WORKLOAD_IDENTITY_POOL: ("iam", "workload-identity-pools", "list", "--location=global"),
    ResourceKind.CUSTOM_ROLE: ("iam", "roles", "list"),
    ResourceKind.SERVICE_ACCOUNT: ("iam", "service-accounts", "list"),
}

# Deletion mapping: kind -> (gcloud args, location flag or None)
DELETE_COMMANDS: Dict[ResourceKind, Tuple[Tuple[str, ...], Optional[str]]] = {
    ResourceKind.SCHEDULER_JOB: (("scheduler", "jobs", "delete"), "--location"),
    ResourceKind.EVENTARC_TRIGGER: (("eventarc", "triggers", "delete"), "--location"),
    ResourceKind.CLOUD_FUNCTION: (("functions", "delete"), "--region"),
    ResourceKind.CLOUD_RUN_SERVICE: (("run", "services", "delete"), "--region"),
    ResourceKind.CLOUD_RUN_JOB: (("run", "jobs", "delete"), "--region"),
    ResourceKind.WORKFLOW: (("workflows", "delete"), "--location"),
    ResourceKind.ALERT_POLICY: (("alpha", "monitoring", "policies", "delete"), None),
    ResourceKind.NOTIFICATION_CHANNEL: (("alpha", "monitoring", "channels", "delete"), None),
    ResourceKind.DASHBOARD: (("monitoring", "dashboards", "delete"), None),
    ResourceKind.METRIC_DESCRIPTOR: (("monitoring", "metrics-descriptors", "delete"), None),
    ResourceKind.PUBSUB_SUBSCRIPTION: (("pubsub", "subscriptions", "delete"), None),
    ResourceKind.PUBSUB_TOPIC: (("pubsub", "topics", "delete"), None),
    ResourceKind.COMPUTE_INSTANCE: (("compute", "instances", "delete"), "--zone"),
    ResourceKind.DISK: (("compute", "disks", "delete"), "--zone"),
    ResourceKind.SNAPSHOT: (("compute", "snapshots", "delete"), None),
    ResourceKind.RESOURCE_POLICY: (("compute", "resource-policies", "delete"), "--region"),
    ResourceKind.ARTIFACT_REPOSITORY: (("artifacts", "repositories", "delete"), "--location"),
    ResourceKind.SECRET: (("secrets", "delete"), None),
    ResourceKind.LOG_SINK: (("logging", "sinks", "delete"), None),
    ResourceKind.VPC_CONNECTOR: (("compute", "networks", "vpc-access", "connectors", "delete"), "--region"),
    ResourceKind.FIREWALL_RULE: (("compute", "firewall-rules", "delete"), None),
    ResourceKind.ROUTER: (("compute", "routers", "delete"), "--region"),
    ResourceKind.SUBNET: (("compute", "networks", "subnets", "delete"), "--region"),
    ResourceKind.COMPUTE_NETWORK: (("compute", "networks", "delete"), None),
    ResourceKind.WORKLOAD_IDENTITY_POOL: (("iam", "workload-identity-pools", "delete"), "--location"),
    ResourceKind.CUSTOM_ROLE: (("iam", "roles", "delete"), None),
    ResourceKind.SERVICE_ACCOUNT: (("iam", "service-accounts", "delete"), None),
}

# Resource-level IAM: owner kind -> (gcloud command group, location flag or None)
IAM_COMMAND_GROUPS: Dict[ResourceKind, Tuple[Tuple[str, ...], Optional[str]]] = {
    ResourceKind.STORAGE_BUCKET: (("storage", "buckets"), None),
    ResourceKind.SECRET: (("secrets",), None),
    ResourceKind.PUBSUB_TOPIC: (("pubsub", "topics"), None),
    ResourceKind.CLOUD_RUN_SERVICE: (("run", "services"), "--region"),
    ResourceKind.ARTIFACT_REPOSITORY: (("artifacts", "repositories"), "--location"),
}

# Tag commands are parent-scoped and reject --project
TAG_KINDS = (ResourceKind.TAG_KEY, ResourceKind.TAG_VALUE)

DELETED_MEMBER_PREFIX = "deleted:"

# Only user-defined metrics can be deleted; built-in descriptors are never candidates
CUSTOM_METRIC_DOMAINS = ("custom.googleapis.com/", "logging.googleapis.com/user/", "workload.googleapis.com/")

# Cloud Asset Inventory types searched by label: kind -> asset types
ASSET_TYPES: Dict[ResourceKind, Tuple[str, ...]] = {
    ResourceKind.EVENTARC_TRIGGER: ("eventarc.googleapis.com/Trigger",),
    ResourceKind.CLOUD_FUNCTION: ("cloudfunctions.googleapis.com/CloudFunction", "cloudfunctions.googleapis.com/Function"),
    ResourceKind.CLOUD_RUN_SERVICE: ("run.googleapis.com/Service",),
    ResourceKind.CLOUD_RUN_JOB: ("run.googleapis.com/Job",),
    ResourceKind.WORKFLOW: ("workflows.googleapis.com/Workflow",),
    ResourceKind.ALERT_POLICY: ("monitoring.googleapis.com/AlertPolicy",),
    ResourceKind.PUBSUB_SUBSCRIPTION: ("pubsub.googleapis.com/Subscription",),
    ResourceKind.PUBSUB_TOPIC: ("pubsub.googleapis.com/Topic",),
    ResourceKind.COMPUTE_INSTANCE: ("compute.googleapis.com/Instance",),
    ResourceKind.DISK: ("compute.googleapis.com/Disk",),
    ResourceKind.SNAPSHOT: ("compute.googleapis.com/Snapshot",),
    ResourceKind.STORAGE_BUCKET: ("storage.googleapis.com/Bucket",),
    ResourceKind.ARTIFACT_REPOSITORY: ("artifactregistry.googleapis.com/Repository",),
    ResourceKind.SECRET: ("secretmanager.googleapis.com/Secret",),
}

# Monitoring objects are keyed by generated ids; operators know them by display name
DISPLAY_NAMED_KINDS = (ResourceKind.ALERT_POLICY, ResourceKind.NOTIFICATION_CHANNEL, ResourceKind.DASHBOARD)


def short_name(path: Optional[str]) -> str:
    """Last segment of a resource path or URL."""
    if not path:
        return ""
    return path.rstrip("/").rsplit("/", 1)[-1]


def location_of(item: Dict[str, Any]) -> Optional[str]:
    """Best-effort region/location of a gcloud document."""
    if item.get("region"):
        return short_name(item["region"])
    if item.get("zone"):
        return short_name(item["zone"]).rsplit("-", 1)[0]
    labels = (item.get("metadata") or {}).get("labels") or {}
    if labels.get("cloud.googleapis.com/location"):
        return labels["cloud.googleapis.com/location"]
    name = item.get("name") or ""
    if "/locations/" in name:
        return name.split("/locations/", 1)[1].split("/", 1)[0]
    if item.get("location"):
        return str(item["location"]).lower()
    return None


def member_principal(member: str) -> str:
    """Local part of an IAM member ("serviceAccount:dspm-sa@p.iam..." -> "dspm-sa").

    Members of principals that no longer exist keep their binding as
    ``deleted:serviceAccount:dspm-sa@p.iam...?uid=123``.
    """
    if member.startswith(DELETED_MEMBER_PREFIX):
        member = member[len(DELETED_MEMBER_PREFIX) :]
    principal = member.split(":", 1)[-1]
    return principal.split("@", 1)[0]


class GCPAdapter(ProviderAdapter):
    """Provider adapter for one GCP project.

    Attributes:
        scope_id: Project id
        runner: CLI runner for ``gcloud``
    """

    def __init__(self, scope_id: str, timeout: float = 300.0, runner: Optional[CommandRunner] = None) -> None:
        super().__init__(scope_id)
        self.runner = runner or CommandRunner(PROVIDER, timeout=timeout)
        # Per discovery pass, keyed by filter
        self._routers: Dict[ResourceFilter, List[ResourceDescriptor]] = {}
        self._labeled_assets: Dict[ResourceFilter, Dict[str, Set[str]]] = {}

    def begin_discovery(self) -> None:
        self._routers.clear()
        self._labeled_assets.clear()

    @property
    def provider_name(self) -> str:
        return PROVIDER

    @property
    def supported_kinds(self) -> Tuple[ResourceKind, ...]:
        kinds = set(LIST_COMMANDS) | {
            ResourceKind.IAM_ROLE_BINDING,
            ResourceKind.SCHEDULER_JOB,
            ResourceKind.VPC_CONNECTOR,
            ResourceKind.NAT,
            ResourceKind.TAG_KEY,
            ResourceKind.TAG_VALUE,
        }
        return tuple(sorted(kinds, key=lambda k: k.order))

    def check_access(self) -> None:
        accounts = self._gcloud(("auth", "list", "--filter=status:ACTIVE"), project=False)
        if not accounts:
            raise ProviderUnavailableError("No active gcloud account. Run: gcloud auth login", provider=PROVIDER)

    def list_scopes(self) -> List[str]:
        projects = self._gcloud(("projects", "list", "--filter=lifecycleState=ACTIVE"), project=False)
        return [p["projectId"] for p in projects if p.get("projectId")]

    def enabled_services(self) -> List[str]:
        """Service APIs enabled on the project (e.g., "run.googleapis.com")."""
        services = self._gcloud(("services", "list", "--enabled"))
        return [short_name((s.get("config") or {}).get("name") or s.get("name")) for s in services]

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_resources(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        if kind == ResourceKind.IAM_ROLE_BINDING:
            return self._list_project_bindings(resource_filter)
        if kind == ResourceKind.NAT:
            return self._list_nats(resource_filter)
        if kind == ResourceKind.SCHEDULER_JOB:
            items = self._list_per_location(kind, ("scheduler", "jobs", "list"), self._scheduler_locations(resource_filter))
            return self._matching(kind, items, resource_filter)
        if kind == ResourceKind.VPC_CONNECTOR:
            items = self._list_per_location(
                kind,
                ("compute", "networks", "vpc-access", "connectors", "list"),
                self._connector_regions(resource_filter),
                flag="--region",
            )
            return self._matching(kind, items, resource_filter)
        if kind == ResourceKind.ROUTER:
            return list(self._list_routers(resource_filter))
        if kind == ResourceKind.METRIC_DESCRIPTOR:
            items = self._gcloud(LIST_COMMANDS[kind], kind=kind)
            custom = [i for i in items if str(i.get("type", "")).startswith(CUSTOM_METRIC_DOMAINS)]
            return self._matching(kind, custom, resource_filter)
        if kind in TAG_KINDS:
            return self._list_tags(kind, resource_filter)
        if kind not in LIST_COMMANDS:
            raise ProviderError(f"Unsupported resource kind: {kind.value}", provider=PROVIDER, kind=kind.value)

        items = self._gcloud(LIST_COMMANDS[kind], kind=kind)
        return self._matching(kind, items, resource_filter)

    def list_iam_bindings(self, descriptor: ResourceDescriptor) -> List[Binding]:
        if descriptor.kind not in IAM_COMMAND_GROUPS:
            return []

        group, location_flag = IAM_COMMAND_GROUPS[descriptor.kind]
        args = [*group, "get-iam-policy", self._target(descriptor)]
        if location_flag:
            args.append(f"{location_flag}={descriptor.metadata.get('location', descriptor.region)}")
        policy = self._gcloud(args, kind=descriptor.kind, project=descriptor.kind != ResourceKind.STORAGE_BUCKET)
        if isinstance(policy, list):
            policy = policy[0] if policy else {}

        bindings = []
        for binding in policy.get("bindings", []):
            condition = (binding.get("condition") or {}).get("expression")
            for member in binding.get("members", []):
                bindings.append(Binding(role=binding["role"], member=member, resource=descriptor, condition=condition))
        return bindings

    def _matching(
        self,
        kind: ResourceKind,
        items: Iterable[Dict[str, Any]],
        resource_filter: ResourceFilter,
    ) -> List[ResourceDescriptor]:
        labeled = self._labeled_names(kind, resource_filter)
        resources = []
        for item in items:
            if item.get("deleted"):
                continue
            descriptor = self._to_descriptor(kind, item)
            names = (descriptor.display_name, item.get("title"))
            if any(resource_filter.matches(n, descriptor.labels, kind.supports_labels) for n in names if n):
                resources.append(descriptor)
            elif short_name(descriptor.id) in labeled:
                resources.append(descriptor)
        self.logger.debug(f"Matched {len(resources)} {kind.value} resources in {self.scope_id}")
        return resources

    def search_labeled_assets(self, resource_filter: ResourceFilter) -> Dict[str, Set[str]]:
        """Search Cloud Asset Inventory for resources carrying the filter's labels.

        The asset index sees labels that some list commands leave out of their
        output. An unavailable Cloud Asset API leaves matching to the labels
        in the listings.

        Returns:
            Short resource names by asset type (e.g., "pubsub.googleapis.com/Topic")
        """
        if not resource_filter.label_selector:
            return {}
        if resource_filter in self._labeled_assets:
            return self._labeled_assets[resource_filter]

        query = " AND ".join(f"labels.{key}={value}" for key, value in sorted(resource_filter.label_selector.items()))
        if len(resource_filter.regions) == 1:
            query = f"{query} AND location={resource_filter.regions[0]}"

        names: Dict[str, Set[str]] = {}
        try:
            assets = self._gcloud(("asset", "search-all-resources", f"--query={query}"))
        except ProviderError as e:
            self.logger.warning(f"Cloud Asset search failed in {self.scope_id}, using listed labels only: {e}")
            assets = []
        for asset in assets:
            names.setdefault(asset.get("assetType", ""), set()).add(short_name(asset.get("name")))

        self._labeled_assets[resource_filter] = names
        return names

    def _labeled_names(self, kind: ResourceKind, resource_filter: ResourceFilter) -> Set[str]:
        if kind not in ASSET_TYPES or not resource_filter.label_selector:
            return set()
        assets = self.search_labeled_assets(resource_filter)
        return set().union(*(assets.get(asset_type, set()) for asset_type in ASSET_TYPES[kind]))

    def _to_descriptor(self, kind: ResourceKind, item: Dict[str, Any]) -> ResourceDescriptor:
        """Normalize one gcloud document."""
        metadata_block = item.get("metadata") or {}
        location = location_of(item)
        depends_on: List[ResourceKey] = []

        if kind == ResourceKind.SERVICE_ACCOUNT:
            resource_id = item["email"]
            name = member_principal(resource_id)
            target = resource_id
        elif kind in (ResourceKind.CLOUD_RUN_SERVICE, ResourceKind.CLOUD_RUN_JOB):
            name = metadata_block.get("name") or short_name(item.get("name"))
            noun = "services" if kind == ResourceKind.CLOUD_RUN_SERVICE else "jobs"
            resource_id = f"projects/{self.scope_id}/locations/{location}/{noun}/{name}"
            target = name
        elif kind == ResourceKind.STORAGE_BUCKET:
            name = item.get("name") or short_name(item.get("storage_url"))
            resource_id = f"gs://{name}"
            target = resource_id
        elif kind == ResourceKind.LOG_SINK:
            name = short_name(item.get("name"))
            resource_id = f"projects/{self.scope_id}/sinks/{name}"
            target = name
        elif kind in DISPLAY_NAMED_KINDS:
            resource_id = item["name"]
            name = item.get("displayName") or short_name(resource_id)
            target = resource_id
        elif kind == ResourceKind.METRIC_DESCRIPTOR:
            resource_id = item.get("name") or item["type"]
            name = short_name(item["type"])
            target = item["type"]
        else:
            name = short_name(item.get("name"))
            resource_id = item.get("selfLink") or item.get("name") or name
            target = name

        # Concrete parents discovered in the listing itself
        if item.get("network") and kind in (ResourceKind.SUBNET, ResourceKind.ROUTER, ResourceKind.FIREWALL_RULE):
            depends_on.append((PROVIDER, ResourceKind.COMPUTE_NETWORK.value, item["network"]))
        if kind == ResourceKind.PUBSUB_SUBSCRIPTION and item.get("topic"):
            depends_on.append((PROVIDER, ResourceKind.PUBSUB_TOPIC.value, item["topic"]))
        if kind == ResourceKind.COMPUTE_INSTANCE:
            for disk in item.get("disks", []):
                if disk.get("source"):
                    depends_on.append((PROVIDER, ResourceKind.DISK.value, disk["source"]))
        if kind == ResourceKind.DISK:
            for policy in item.get("resourcePolicies", []):
                depends_on.append((PROVIDER, ResourceKind.RESOURCE_POLICY.value, policy))
        if kind == ResourceKind.ALERT_POLICY:
            for channel in item.get("notificationChannels", []):
                depends_on.append((PROVIDER, ResourceKind.NOTIFICATION_CHANNEL.value, channel))

        labels = item.get("labels") or item.get("userLabels") or metadata_block.get("labels") or {}
        metadata: Dict[str, Any] = {"name": target, "location": location, "depends_on": depends_on}
        if item.get("zone"):
            metadata["zone"] = short_name(item["zone"])

        return ResourceDescriptor(
            provider=PROVIDER,
            kind=kind,
            id=resource_id,
            display_name=name,
            region=location,
            labels={str(k): str(v) for k, v in labels.items()},
            metadata=metadata,
        )

    def _list_project_bindings(self, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        """Project-level bindings held by matching principals or granting matching custom roles."""
        policy = self._gcloud(("projects", "get-iam-policy", self.scope_id), kind=ResourceKind.IAM_ROLE_BINDING, project=False)
        if isinstance(policy, list):
            policy = policy[0] if policy else {}

        resources = []
        for binding in policy.get("bindings", []):
            role = binding["role"]
            custom_role = role.startswith("projects/")
            for member in binding.get("members", []):
                principal = member_principal(member)
                if not (resource_filter.matches_name(principal) or (custom_role and resource_filter.matches_name(short_name(role)))):
                    continue

                depends_on: List[ResourceKey] = []
                if member.startswith("serviceAccount:"):
                    depends_on.append((PROVIDER, ResourceKind.SERVICE_ACCOUNT.value, member.split(":", 1)[1]))
                if custom_role:
                    depends_on.append((PROVIDER, ResourceKind.CUSTOM_ROLE.value, role))

                resources.append(
                    ResourceDescriptor(
                        provider=PROVIDER,
                        kind=ResourceKind.IAM_ROLE_BINDING,
                        id=f"projects/{self.scope_id}#{role}#{member}",
                        display_name=f"{role} {member}",
                        metadata={
                            "role": role,
                            "member": member,
                            "condition": (binding.get("condition") or {}).get("expression"),
                            "owner": None,
                            "depends_on": depends_on,
                        },
                    )
                )
        return resources

    def _list_routers(self, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        """Matching routers, listed once per discovery pass (NATs are enumerated from them)."""
        if resource_filter not in self._routers:
            items = self._gcloud(LIST_COMMANDS[ResourceKind.ROUTER], kind=ResourceKind.ROUTER)
            self._routers[resource_filter] = self._matching(ResourceKind.ROUTER, items, resource_filter)
        return self._routers[resource_filter]

    def _list_nats(self, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        """NATs hang off routers: enumerate them from every matching router."""
        resources = []
        for router in self._list_routers(resource_filter):
            nats = self._gcloud(
                ("compute", "routers", "nats", "list", f"--router={router.display_name}", f"--router-region={router.region}"),
                kind=ResourceKind.NAT,
            )
            for nat in nats:
                resources.append(
                    ResourceDescriptor(
                        provider=PROVIDER,
                        kind=ResourceKind.NAT,
                        id=f"{router.id}/nats/{nat['name']}",
                        display_name=nat["name"],
                        region=router.region,
                        metadata={
                            "name": nat["name"],
                            "router": router.display_name,
                            "location": router.region,
                            "depends_on": [router.key],
                        },
                    )
                )
        return resources

    def _list_per_location(
        self,
        kind: ResourceKind,
        command: Tuple[str, ...],
        locations: Sequence[str],
        flag: str = "--location",
    ) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for location in locations:
            items.extend(self._gcloud((*command, f"{flag}={location}"), kind=kind))
        return items

    def _list_tags(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        keys = self._gcloud(("resource-manager", "tags", "keys", "list", f"--parent=projects/{self.scope_id}"), kind=kind, project=False)
        matching_keys = [k for k in keys if resource_filter.matches_name(k.get("shortName"))]

        resources = []
        for key in matching_keys:
            if kind == ResourceKind.TAG_KEY:
                resources.append(
                    ResourceDescriptor(
                        provider=PROVIDER,
                        kind=kind,
                        id=key["name"],
                        display_name=key["shortName"],
                        metadata={"name": key["name"], "depends_on": []},
                    )
                )
                continue

            values = self._gcloud(("resource-manager", "tags", "values", "list", f"--parent={key['name']}"), kind=kind, project=False)
            for value in values:
                resources.append(
                    ResourceDescriptor(
                        provider=PROVIDER,
                        kind=kind,
                        id=value["name"],
                        display_name=f"{key['shortName']}/{value.get('shortName', short_name(value['name']))}",
                        metadata={"name": value["name"], "depends_on": [(PROVIDER, ResourceKind.TAG_KEY.value, key["name"])]},
                    )
                )
        return resources

    def _scheduler_locations(self, resource_filter: ResourceFilter) -> List[str]:
        if resource_filter.regions:
            return list(resource_filter.regions)
        locations = self._gcloud(("scheduler", "locations", "list"), kind=ResourceKind.SCHEDULER_JOB)
        return [loc["locationId"] for loc in locations if loc.get("locationId")]

    def _connector_regions(self, resource_filter: ResourceFilter) -> List[str]:
        if resource_filter.regions:
            return list(resource_filter.regions)
        regions = self._gcloud(("compute", "regions", "list"), kind=ResourceKind.VPC_CONNECTOR)
        return [r["name"] for r in regions if r.get("name")]

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete(self, descriptor: ResourceDescriptor) -> None:
        self.runner.run(self.delete_command(descriptor), kind=descriptor.kind.value, resource_id=descriptor.id)
        self.logger.info(f"Deleted {descriptor.kind.value}: {descriptor.display_name}")

    def describe(self, descriptor: ResourceDescriptor) -> str:
        return " ".join(self.delete_command(descriptor))

    def delete_command(self, descriptor: ResourceDescriptor) -> List[str]:
        """Build the gcloud argv that deletes a resource."""
        kind = descriptor.kind
        project = f"--project={self.scope_id}"

        if kind == ResourceKind.STORAGE_BUCKET:
            # Removes every object first; a bucket with contents cannot be deleted
            return ["gcloud", "storage", "rm", "-r", descriptor.id, project, "--quiet"]

        if kind == ResourceKind.NAT:
            return [
                "gcloud", "compute", "routers", "nats", "delete", descriptor.metadata["name"],
                f"--router={descriptor.metadata['router']}",
                f"--router-region={descriptor.metadata['location']}",
                project, "--quiet",
            ]

        if kind in TAG_KINDS:
            noun = "keys" if kind == ResourceKind.TAG_KEY else "values"
            return ["gcloud", "resource-manager", "tags", noun, "delete", descriptor.metadata["name"], "--quiet"]

        if kind == ResourceKind.IAM_ROLE_BINDING:
            return self._remove_binding_command(descriptor)

        if kind not in DELETE_COMMANDS:
            raise ProviderError(f"Unsupported resource kind: {kind.value}", provider=PROVIDER, kind=kind.value)

        args, location_flag = DELETE_COMMANDS[kind]
        argv = ["gcloud", *args, self._target(descriptor)]
        if location_flag == "--zone":
            argv.append(f"--zone={descriptor.metadata.get('zone')}")
        elif location_flag:
            argv.append(f"{location_flag}={descriptor.metadata.get('location') or descriptor.region}")
        argv.extend([project, "--quiet"])
        return argv

    def _remove_binding_command(self, descriptor: ResourceDescriptor) -> List[str]:
        metadata = descriptor.metadata
        member_args = [f"--member={metadata['member']}", f"--role={metadata['role']}"]
        condition = [f"--condition=expression={metadata['condition']}"] if metadata.get("condition") else []

        owner_kind = metadata.get("owner_kind")
        if not owner_kind:
            return [
                "gcloud", "projects", "remove-iam-policy-binding", self.scope_id,
                *member_args, *(condition or ["--condition=None"]), "--quiet",
            ]

        kind = ResourceKind(owner_kind)
        group, location_flag = IAM_COMMAND_GROUPS[kind]
        target = metadata["owner_id"] if kind == ResourceKind.STORAGE_BUCKET else metadata["owner_name"]
        argv = ["gcloud", *group, "remove-iam-policy-binding", target, *member_args, *condition]
        if location_flag:
            argv.append(f"{location_flag}={metadata.get('owner_region')}")
        if kind != ResourceKind.STORAGE_BUCKET:
            argv.append(f"--project={self.scope_id}")
        argv.append("--quiet")
        return argv

    # ------------------------------------------------------------------

    def _target(self, descriptor: ResourceDescriptor) -> str:
        return descriptor.metadata.get("name") or descriptor.display_name

    def _gcloud(
        self,
        args: Sequence[str],
        kind: Optional[ResourceKind] = None,
        project: bool = True,
    ) -> Any:
        argv = ["gcloud", *args, "--format=json"]
        if project:
            argv.append(f"--project={self.scope_id}")
        return self.runner.run_json(argv, kind=kind.value if kind else None)
