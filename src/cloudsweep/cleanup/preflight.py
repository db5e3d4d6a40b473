"""Pre-deployment validation.

Checks that a subscription/project is ready for a deployment before anything
is created in it: required resource providers or service APIs, and on Azure
the caller's roles, blocking DENY policies and Functions plan quota.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from ..errors import ProviderError
from ..providers.azure import AzureAdapter
from ..providers.base import ProviderAdapter
from ..providers.gcp import GCPAdapter

logger = logging.getLogger(__name__)

REQUIRED_AZURE_PROVIDERS = (
    "Microsoft.Web",
    "Microsoft.KeyVault",
    "Microsoft.Storage",
    "Microsoft.EventHub",
    "Microsoft.OperationalInsights",
    "Microsoft.Insights",
    "Microsoft.OperationsManagement",
)

REQUIRED_GCP_SERVICES = (
    "artifactregistry.googleapis.com",
    "cloudbuild.googleapis.com",
    "cloudfunctions.googleapis.com",
    "cloudscheduler.googleapis.com",
    "compute.googleapis.com",
    "eventarc.googleapis.com",
    "iam.googleapis.com",
    "logging.googleapis.com",
    "pubsub.googleapis.com",
    "run.googleapis.com",
    "secretmanager.googleapis.com",
    "storage.googleapis.com",
    "vpcaccess.googleapis.com",
    "workflows.googleapis.com",
)

ASSIGNMENT_ROLES = ("Owner", "User Access Administrator")
DEPLOYMENT_ROLE = "Contributor"
SECRETS_ROLE = "Key Vault Secrets Officer"
DIRECTORY_ROLES = ("Application Administrator", "Privileged Role Administrator")

# DENY policies on these definitions usually break Terraform/ARM deployments
BLOCKING_POLICY = re.compile(r"Storage|Web|Authorization|ManagedIdentity|Network|Compute", re.IGNORECASE)

MAIN_REGION = "eastus"
MIN_Y1_QUOTA = 50


@dataclass(frozen=True)
class PreflightResult:
    """Outcome of one requirement check.

    Attributes:
        name: Requirement checked
        state: Observed state
        ok: Whether the requirement is met
        advisory: A failure is reported as a warning and does not block
    """

    name: str
    state: str
    ok: bool
    advisory: bool = False

    @property
    def blocking(self) -> bool:
        return not self.ok and not self.advisory


def run_preflight(adapter: ProviderAdapter, regions: Sequence[str] = ()) -> list[PreflightResult]:
    """Check the requirements of the adapter's scope.

    Args:
        adapter: Adapter bound to the project or subscription
        regions: Azure regions whose Functions quota is checked; the first one is
            the main region (default: eastus)

    Raises:
        ProviderError: If the provider has no preflight checks
    """
    if isinstance(adapter, AzureAdapter):
        states = adapter.provider_registration_states(REQUIRED_AZURE_PROVIDERS)
        results = [
            PreflightResult(name, states.get(name, "Unknown"), states.get(name) == "Registered")
            for name in REQUIRED_AZURE_PROVIDERS
        ]
        results.extend(check_azure_roles(adapter))
        results.extend(check_deny_policies(adapter))
        results.extend(check_function_quota(adapter, regions or (MAIN_REGION,)))
    elif isinstance(adapter, GCPAdapter):
        enabled = set(adapter.enabled_services())
        results = [
            PreflightResult(name, "Enabled" if name in enabled else "Disabled", name in enabled)
            for name in REQUIRED_GCP_SERVICES
        ]
    else:
        raise ProviderError(f"No preflight checks for provider {adapter.provider_name}", provider=adapter.provider_name)

    missing = [r.name for r in results if r.blocking]
    if missing:
        logger.warning(f"{len(missing)} requirement(s) missing in {adapter.scope_id}: {', '.join(missing)}")
    return results


def check_azure_roles(adapter: AzureAdapter) -> list[PreflightResult]:
    """RBAC and Entra ID roles of the signed-in principal.

    Owner or User Access Administrator can also create the deployment's role
    assignments; Contributor alone can deploy but not assign roles.
    """
    roles = adapter.role_names(adapter.signed_in_object_id())

    held = [role for role in ASSIGNMENT_ROLES if role in roles]
    if held:
        rbac = PreflightResult("RBAC deployment role", ", ".join(held), True)
    elif DEPLOYMENT_ROLE in roles:
        rbac = PreflightResult("RBAC deployment role", "Contributor only (cannot assign roles)", False, advisory=True)
    else:
        rbac = PreflightResult("RBAC deployment role", "None", False)

    results = [rbac, PreflightResult(f"RBAC {SECRETS_ROLE}", _held(SECRETS_ROLE in roles), SECRETS_ROLE in roles, advisory=True)]

    directory_roles = adapter.directory_role_names()
    for role in DIRECTORY_ROLES:
        if directory_roles is None:
            results.append(PreflightResult(f"Entra ID {role}", "Unknown", False, advisory=True))
        else:
            results.append(PreflightResult(f"Entra ID {role}", _held(role in directory_roles), role in directory_roles, advisory=True))
    return results


def check_deny_policies(adapter: AzureAdapter) -> list[PreflightResult]:
    """DENY policy assignments; those on storage, web, identity, network or compute definitions block."""
    assignments = adapter.deny_policy_assignments()
    if not assignments:
        return [PreflightResult("DENY policy assignments", "None", True)]

    results = []
    for assignment in assignments:
        definition = assignment.get("policyDefinitionId") or ""
        name = assignment.get("displayName") or assignment.get("name") or definition
        blocking = bool(BLOCKING_POLICY.search(definition))
        results.append(PreflightResult(f"Policy {name}", f"DENY at {assignment.get('scope', '-')}", False, advisory=not blocking))
    return results


def check_function_quota(adapter: AzureAdapter, regions: Sequence[str]) -> list[PreflightResult]:
    """Y1 plan quota per region and Elastic Premium availability in the main region."""
    results = []
    for region in regions:
        limit = adapter.function_quota(region)
        state = "Unknown" if limit is None else str(limit)
        results.append(PreflightResult(f"Y1 quota {region}", state, limit is not None and limit >= MIN_Y1_QUOTA))

    main_region = regions[0]
    available = adapter.elastic_premium_available(main_region)
    results.append(PreflightResult(f"EP1 {main_region}", "Available" if available else "Unavailable", available))
    return results


def _held(held: bool) -> str:
    return "Assigned" if held else "Not assigned"
