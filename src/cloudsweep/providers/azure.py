"""Azure provider adapter.

Drives ``az`` with ``-o json``. Covers the identities and role plumbing a
deployment leaves behind in a tenant (role assignments, custom roles, app
registrations, service principals) plus its resource groups, and the
prerequisite lookups preflight needs (roles, DENY policies, Functions quota,
Terraform state leases).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ..errors import NotFoundError, ProviderError, ProviderUnavailableError
from ..models.resource import ResourceDescriptor, ResourceFilter, ResourceKey, ResourceKind
from .base import ProviderAdapter
from .runner import CommandRunner

PROVIDER = "azure"

SUPPORTED_KINDS = (
    ResourceKind.IAM_ROLE_BINDING,
    ResourceKind.CUSTOM_ROLE,
    ResourceKind.APP_REGISTRATION,
    ResourceKind.SERVICE_PRINCIPAL,
    ResourceKind.RESOURCE_GROUP,
)

ARM_URL = "https://management.azure.com"
GRAPH_MEMBER_OF_URL = "https://graph.microsoft.com/v1.0/me/memberOf?$select=displayName"
# Newest first; older API versions still answer in some clouds
WEB_USAGE_API_VERSIONS = ("2024-11-01", "2018-02-01", "2016-06-01")

STATE_CONTAINER_PREFIX = "camtfstate"
STATE_BLOB = "terraform.tfstate"


class AzureAdapter(ProviderAdapter):
    """Provider adapter for one Azure subscription.

    Attributes:
        scope_id: Subscription id
        no_wait: Return from resource group deletion without waiting
        runner: CLI runner for ``az``
    """

    def __init__(
        self,
        scope_id: str,
        timeout: float = 300.0,
        no_wait: bool = True,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        super().__init__(scope_id)
        self.no_wait = no_wait
        self.runner = runner or CommandRunner(PROVIDER, timeout=timeout)

    @property
    def provider_name(self) -> str:
        return PROVIDER

    @property
    def supported_kinds(self) -> Tuple[ResourceKind, ...]:
        return SUPPORTED_KINDS

    def check_access(self) -> None:
        account = self._az(("account", "show"))
        if not account:
            raise ProviderUnavailableError("Not logged in. Run: az login", provider=PROVIDER)

    def list_scopes(self) -> List[str]:
        return [sub["id"] for sub in self._az(("account", "list")) if sub.get("id")]

    def list_resources(self, kind: ResourceKind, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        if kind == ResourceKind.RESOURCE_GROUP:
            return self._list_resource_groups(resource_filter)
        if kind == ResourceKind.CUSTOM_ROLE:
            return self._list_custom_roles(resource_filter)
        if kind == ResourceKind.APP_REGISTRATION:
            return self._list_directory_objects(kind, ("ad", "app", "list"), "appId", resource_filter)
        if kind == ResourceKind.SERVICE_PRINCIPAL:
            return self._list_directory_objects(kind, ("ad", "sp", "list"), "id", resource_filter)
        if kind == ResourceKind.IAM_ROLE_BINDING:
            return self._list_role_assignments(resource_filter)
        raise ProviderError(f"Unsupported resource kind: {kind.value}", provider=PROVIDER, kind=kind.value)

    def _list_resource_groups(self, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        resources = []
        for group in self._az(("group", "list"), subscription=True):
            tags = group.get("tags") or {}
            if not resource_filter.matches(group["name"], tags):
                continue
            resources.append(
                ResourceDescriptor(
                    provider=PROVIDER,
                    kind=ResourceKind.RESOURCE_GROUP,
                    id=group["id"],
                    display_name=group["name"],
                    region=group.get("location"),
                    labels={str(k): str(v) for k, v in tags.items()},
                    metadata={"name": group["name"]},
                )
            )
        return resources

    def _list_custom_roles(self, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        resources = []
        for role in self._az(("role", "definition", "list", "--custom-role-only", "true"), subscription=True):
            if not resource_filter.matches_name(role.get("roleName")):
                continue
            resources.append(
                ResourceDescriptor(
                    provider=PROVIDER,
                    kind=ResourceKind.CUSTOM_ROLE,
                    id=role["id"],
                    display_name=role["roleName"],
                    metadata={"name": role["name"]},
                )
            )
        return resources

    def _list_directory_objects(
        self,
        kind: ResourceKind,
        command: Tuple[str, ...],
        id_field: str,
        resource_filter: ResourceFilter,
    ) -> List[ResourceDescriptor]:
        """Apps and service principals, queried once per prefix (Graph startswith filter)."""
        resources: Dict[str, ResourceDescriptor] = {}
        for prefix in resource_filter.name_prefixes:
            for item in self._az((*command, "--display-name", prefix)):
                name = item.get("displayName")
                if not resource_filter.matches_name(name) or item[id_field] in resources:
                    continue
                resources[item[id_field]] = ResourceDescriptor(
                    provider=PROVIDER,
                    kind=kind,
                    id=item[id_field],
                    display_name=name,
                    metadata={"name": item[id_field], "app_id": item.get("appId")},
                )
        return list(resources.values())

    def _list_role_assignments(self, resource_filter: ResourceFilter) -> List[ResourceDescriptor]:
        """Assignments of matching roles, or held by matching service principals."""
        principals = {sp.id for sp in self.list_resources(ResourceKind.SERVICE_PRINCIPAL, resource_filter)}

        resources = []
        for assignment in self._az(("role", "assignment", "list", "--all"), subscription=True):
            role_name = assignment.get("roleDefinitionName")
            principal_id = assignment.get("principalId")
            if not (resource_filter.matches_name(role_name) or principal_id in principals):
                continue

            depends_on: List[ResourceKey] = []
            if principal_id in principals:
                depends_on.append((PROVIDER, ResourceKind.SERVICE_PRINCIPAL.value, principal_id))
            if resource_filter.matches_name(role_name) and assignment.get("roleDefinitionId"):
                depends_on.append((PROVIDER, ResourceKind.CUSTOM_ROLE.value, assignment["roleDefinitionId"]))

            member = assignment.get("principalName") or principal_id or ""
            resources.append(
                ResourceDescriptor(
                    provider=PROVIDER,
                    kind=ResourceKind.IAM_ROLE_BINDING,
                    id=assignment["id"],
                    display_name=f"{role_name} {member}",
                    metadata={
                        "name": assignment["id"],
                        "role": role_name,
                        "member": member,
                        "scope": assignment.get("scope"),
                        "depends_on": depends_on,
                    },
                )
            )
        return resources

    def delete(self, descriptor: ResourceDescriptor) -> None:
        self.runner.run(self.delete_command(descriptor), kind=descriptor.kind.value, resource_id=descriptor.id)
        self.logger.info(f"Deleted {descriptor.kind.value}: {descriptor.display_name}")

    def describe(self, descriptor: ResourceDescriptor) -> str:
        return " ".join(self.delete_command(descriptor))

    def delete_command(self, descriptor: ResourceDescriptor) -> List[str]:
        """Build the az argv that deletes a resource."""
        kind = descriptor.kind
        name = descriptor.metadata.get("name", descriptor.id)
        subscription = ["--subscription", self.scope_id]

        if kind == ResourceKind.IAM_ROLE_BINDING:
            return ["az", "role", "assignment", "delete", "--ids", descriptor.id]
        if kind == ResourceKind.CUSTOM_ROLE:
            return ["az", "role", "definition", "delete", "--name", name, "--scope", f"/subscriptions/{self.scope_id}"]
        if kind == ResourceKind.APP_REGISTRATION:
            return ["az", "ad", "app", "delete", "--id", name]
        if kind == ResourceKind.SERVICE_PRINCIPAL:
            return ["az", "ad", "sp", "delete", "--id", name]
        if kind == ResourceKind.RESOURCE_GROUP:
            argv = ["az", "group", "delete", "--name", name, *subscription, "--yes"]
            if self.no_wait:
                argv.append("--no-wait")
            return argv
        raise ProviderError(f"Unsupported resource kind: {kind.value}", provider=PROVIDER, kind=kind.value)

    def provider_registration_states(self, namespaces: Sequence[str]) -> Dict[str, str]:
        """Registration state per resource provider namespace ("Registered", "NotRegistered", ...)."""
        states = {}
        for namespace in namespaces:
            provider = self._az(("provider", "show", "--namespace", namespace), subscription=True)
            states[namespace] = provider.get("registrationState", "Unknown") if provider else "Unknown"
        return states

    # ------------------------------------------------------------------
    # Deployment prerequisites
    # ------------------------------------------------------------------

    def signed_in_object_id(self) -> str:
        """Object id of the signed-in user or service principal."""
        user = (self._az(("account", "show")) or {}).get("user") or {}
        if user.get("type") == "servicePrincipal":
            principal = self._az(("ad", "sp", "show", "--id", user.get("name", "")))
        else:
            principal = self._az(("ad", "signed-in-user", "show"))
        if not principal or not principal.get("id"):
            raise ProviderError("Cannot resolve the signed-in principal", provider=PROVIDER)
        return principal["id"]

    def role_names(self, object_id: str) -> Set[str]:
        """RBAC role names held by a principal on the subscription, inherited ones included."""
        assignments = self._az(
            (
                "role",
                "assignment",
                "list",
                "--assignee-object-id",
                object_id,
                "--scope",
                f"/subscriptions/{self.scope_id}",
                "--include-inherited",
            )
        )
        return {a["roleDefinitionName"] for a in assignments if a.get("roleDefinitionName")}

    def directory_role_names(self) -> Optional[Set[str]]:
        """Entra ID roles and groups of the signed-in user, or None when Graph cannot be queried."""
        try:
            data = self._az(("rest", "--method", "GET", "--url", GRAPH_MEMBER_OF_URL))
        except ProviderError as e:
            self.logger.warning(f"Cannot query Entra ID memberships: {e.message}")
            return None
        return {item["displayName"] for item in (data or {}).get("value", []) if item.get("displayName")}

    def deny_policy_assignments(self) -> List[Dict[str, Any]]:
        """Policy assignments with a DENY effect on the subscription."""
        assignments = self._az(("policy", "assignment", "list"), subscription=True)
        return [a for a in assignments if str(a.get("policyDefinitionAction") or "").lower() == "deny"]

    def function_quota(self, region: str) -> Optional[int]:
        """Linux consumption (Y1) plan limit in a region, or None when no API version reports it."""
        base = f"{ARM_URL}/subscriptions/{self.scope_id}/providers/Microsoft.Web/locations/{region}/usages"
        for api_version in WEB_USAGE_API_VERSIONS:
            try:
                data = self._az(("rest", "--method", "get", "--url", f"{base}?api-version={api_version}"))
            except ProviderError as e:
                self.logger.debug(f"Usage query {api_version} failed in {region}: {e.message}")
                continue
            for usage in (data or {}).get("value", []):
                name = (usage.get("name") or {}).get("value") or ""
                if "dynamic" in name and "Linux" in name and isinstance(usage.get("limit"), int):
                    return usage["limit"]
        return None

    def elastic_premium_available(self, region: str) -> bool:
        """Whether Elastic Premium (EP1) plans can be created in a region."""
        url = (
            f"{ARM_URL}/subscriptions/{self.scope_id}/providers/Microsoft.Web/locations/{region}"
            "/capabilities?api-version=2022-09-01"
        )
        try:
            data = self._az(("rest", "--method", "get", "--url", url))
        except ProviderError as e:
            self.logger.debug(f"Capability query failed in {region}: {e.message}")
            return False
        return any(c.get("name") == "ElasticPremium" and c.get("available") for c in (data or {}).get("value", []))

    def release_state_locks(
        self,
        storage_account: str,
        container_prefix: str = STATE_CONTAINER_PREFIX,
        blob_name: str = STATE_BLOB,
        dry_run: bool = False,
    ) -> List[str]:
        """Break the lease on locked Terraform state blobs.

        Args:
            storage_account: Storage account holding the state containers
            container_prefix: Only containers whose name starts with this are checked
            blob_name: State blob inside each container
            dry_run: Report locked containers without breaking their leases

        Returns:
            Names of the containers whose state blob was locked
        """
        account = ("--account-name", storage_account)
        locked = []
        for container in self._az(("storage", "container", "list", *account)):
            name = container.get("name") or ""
            if not name.startswith(container_prefix):
                continue
            blob_args = (*account, "--container-name", name)
            try:
                blob = self._az(("storage", "blob", "show", *blob_args, "--name", blob_name))
            except NotFoundError:
                self.logger.debug(f"No {blob_name} in container {name}")
                continue

            lease = ((blob or {}).get("properties") or {}).get("lease") or {}
            if lease.get("status") != "locked":
                self.logger.info(f"No lock on {name}/{blob_name}")
                continue

            if not dry_run:
                self.runner.run(
                    ["az", "storage", "blob", "lease", "break", *blob_args, "--blob-name", blob_name],
                    kind="state_lock",
                    resource_id=f"{name}/{blob_name}",
                )
                self.logger.info(f"Released lease on {name}/{blob_name}")
            locked.append(name)
        return locked

    def _az(self, args: Sequence[str], subscription: bool = False) -> Any:
        argv = ["az", *args, "-o", "json"]
        if subscription:
            argv.extend(["--subscription", self.scope_id])
        return self.runner.run_json(argv)
