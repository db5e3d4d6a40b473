"""Safety checks and protection rule evaluation.

Evaluates resources against protection rules to prevent deletion of anything
a deployment did not create: provider-managed defaults, service agents and
user-configured never-delete patterns.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..models.protection_rule import ProtectionRule, RuleType
from ..models.resource import ResourceDescriptor, ResourceKind

# Google-managed service agents: never ours, whatever their name looks like
GCP_SERVICE_AGENT_REGEX = r"(^|:)service-\d+@gcp-sa-|@cloudbuild\.gserviceaccount\.com$|@cloudservices\.gserviceaccount\.com$"

BUILTIN_RULES: dict[str, list[ProtectionRule]] = {
    "gcp": [
        ProtectionRule(
            rule_id="gcp-default-network",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^default$"},
            kinds=(ResourceKind.COMPUTE_NETWORK,),
            provider="gcp",
            priority=1,
            description="Project default network",
        ),
        ProtectionRule(
            rule_id="gcp-app-engine-firewall",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^aet-"},
            kinds=(ResourceKind.FIREWALL_RULE,),
            provider="gcp",
            priority=1,
            description="Auto-generated App Engine firewall rule",
        ),
        ProtectionRule(
            rule_id="gcp-vpc-connector-firewall",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^vpc-connector-"},
            kinds=(ResourceKind.FIREWALL_RULE,),
            provider="gcp",
            priority=1,
            description="Firewall rule managed by Serverless VPC Access",
        ),
        ProtectionRule(
            rule_id="gcp-gcf-artifacts",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "gcf-artifacts"},
            kinds=(ResourceKind.ARTIFACT_REPOSITORY, ResourceKind.STORAGE_BUCKET),
            provider="gcp",
            priority=1,
            description="Cloud Functions build artifacts",
        ),
        ProtectionRule(
            rule_id="gcp-service-agent",
            rule_type=RuleType.NAME,
            patterns={"name_regex": GCP_SERVICE_AGENT_REGEX},
            kinds=(ResourceKind.SERVICE_ACCOUNT,),
            provider="gcp",
            priority=1,
            description="Google-managed service agent",
        ),
        ProtectionRule(
            rule_id="gcp-service-agent-binding",
            rule_type=RuleType.MEMBER,
            patterns={"member_regex": GCP_SERVICE_AGENT_REGEX},
            kinds=(ResourceKind.IAM_ROLE_BINDING,),
            provider="gcp",
            priority=1,
            description="Role granted to a Google-managed service agent",
        ),
    ],
    "azure": [
        ProtectionRule(
            rule_id="azure-network-watcher",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^NetworkWatcherRG$"},
            kinds=(ResourceKind.RESOURCE_GROUP,),
            provider="azure",
            priority=1,
            description="Network Watcher resource group",
        ),
        ProtectionRule(
            rule_id="azure-default-resource-group",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^DefaultResourceGroup-"},
            kinds=(ResourceKind.RESOURCE_GROUP,),
            provider="azure",
            priority=1,
            description="Azure default resource group",
        ),
        ProtectionRule(
            rule_id="azure-cloud-shell-storage",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^cloud-shell-storage-"},
            kinds=(ResourceKind.RESOURCE_GROUP,),
            provider="azure",
            priority=1,
            description="Cloud Shell storage",
        ),
        ProtectionRule(
            rule_id="azure-aks-node-group",
            rule_type=RuleType.NAME,
            patterns={"name_regex": "^MC_"},
            kinds=(ResourceKind.RESOURCE_GROUP,),
            provider="azure",
            priority=1,
            description="AKS-managed node resource group",
        ),
    ],
}


class ProtectionPolicy:
    """Protection policy for resource deletion.

    Evaluates resources against protection rules in priority order. Rules only
    ever add protection; nothing overrides a matching rule.

    Attributes:
        rules: List of protection rules sorted by priority
    """

    def __init__(self, rules: Optional[Iterable[ProtectionRule]] = None) -> None:
        """Initialize protection policy.

        Args:
            rules: Protection rules (sorted by priority, 1=highest)
        """
        self.rules = sorted(rules or [], key=lambda r: r.priority)

    @classmethod
    def for_provider(cls, provider: str, extra_rules: Optional[Iterable[ProtectionRule]] = None) -> "ProtectionPolicy":
        """Built-in deny-list for ``provider`` plus user-supplied rules."""
        rules = list(BUILTIN_RULES.get(provider, []))
        rules.extend(extra_rules or [])
        return cls(rules)

    @staticmethod
    def name_rule(regex: str, rule_id: Optional[str] = None) -> ProtectionRule:
        """Protect any resource whose name matches ``regex`` (CLI ``--protect``)."""
        rule = ProtectionRule(
            rule_id=rule_id or f"protect-{regex}",
            rule_type=RuleType.NAME,
            patterns={"name_regex": regex},
            priority=10,
            description=f"Name matches {regex}",
        )
        rule.validate()
        return rule

    def is_protected(self, resource: ResourceDescriptor) -> tuple[bool, Optional[str]]:
        """Check if resource is protected by any rule.

        Returns on the first matching rule (highest priority wins). A role
        binding is also protected when the resource it is attached to is.

        Args:
            resource: Resource to evaluate

        Returns:
            Tuple of (is_protected, reason)
        """
        for rule in self.rules:
            if rule.matches(resource):
                return True, self._get_protection_reason(rule, resource)

        owner = self.owner_of(resource)
        if owner is not None:
            is_protected, reason = self.is_protected(owner)
            if is_protected:
                return True, f"Attached to protected {owner}: {reason}"

        return False, None

    def matching_rules(self, resource: ResourceDescriptor) -> list[ProtectionRule]:
        """All rules that protect a resource (or its binding owner), in priority order."""
        owner = self.owner_of(resource)
        return [
            rule for rule in self.rules if rule.matches(resource) or (owner is not None and rule.matches(owner))
        ]

    @staticmethod
    def owner_of(resource: ResourceDescriptor) -> Optional[ResourceDescriptor]:
        """Rebuild the resource a materialized role binding is attached to.

        Returns:
            The owner descriptor, or None for anything that is not a
            resource-level binding
        """
        if resource.kind != ResourceKind.IAM_ROLE_BINDING:
            return None
        metadata = resource.metadata
        if not metadata.get("owner_kind") or not metadata.get("owner_id"):
            return None
        return ResourceDescriptor(
            provider=resource.provider,
            kind=ResourceKind(metadata["owner_kind"]),
            id=metadata["owner_id"],
            display_name=metadata.get("owner_name") or metadata["owner_id"],
            region=metadata.get("owner_region"),
            labels=metadata.get("owner_labels") or {},
        )

    def _get_protection_reason(self, rule: ProtectionRule, resource: ResourceDescriptor) -> str:
        if rule.description:
            return f"{rule.description} (rule: {rule.rule_id})"

        if rule.rule_type == RuleType.LABEL:
            key = rule.patterns.get("label_key", "")
            return f"Label {key}={resource.labels.get(key, '')} (rule: {rule.rule_id})"

        if rule.rule_type == RuleType.MEMBER:
            return f"Member {resource.metadata.get('member')} protected (rule: {rule.rule_id})"

        return f"Protected by rule {rule.rule_id}"
