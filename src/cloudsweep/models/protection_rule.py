"""Protection rule model.

Pattern that marks resources as never-delete, whatever the cleanup filter says.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .resource import ResourceDescriptor, ResourceKind


class RuleType(Enum):
    """What part of the resource a rule looks at."""

    NAME = "name"
    LABEL = "label"
    MEMBER = "member"


@dataclass(frozen=True)
class ProtectionRule:
    """Protection rule entity.

    Patterns by rule type:
        name:   {"name_regex": "^aet-"}           searched in display name and id
        label:  {"label_key": "protected", "label_values": ["true"]}
                (empty label_values means "key present")
        member: {"member_regex": "@gcp-sa-"}      searched in an IAM binding's member

    Attributes:
        rule_id: Unique rule identifier
        rule_type: Rule type
        patterns: Type-specific pattern definition
        kinds: Kinds the rule applies to; empty applies to every kind
        provider: Provider the rule applies to; None applies to every provider
        enabled: Disabled rules never match
        priority: 1 (highest) to 100 (lowest)
        description: Human-readable explanation shown in reports
    """

    rule_id: str
    rule_type: RuleType
    patterns: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    kinds: Tuple[ResourceKind, ...] = ()
    provider: Optional[str] = None
    enabled: bool = True
    priority: int = 50
    description: Optional[str] = None

    def validate(self) -> bool:
        """Validate rule configuration.

        Raises:
            ValueError: If the rule is malformed
        """
        if not self.patterns:
            raise ValueError("Rule patterns cannot be empty")

        if not 1 <= self.priority <= 100:
            raise ValueError("Priority must be 1-100")

        if self.rule_type == RuleType.NAME:
            self._compile("name_regex")
        elif self.rule_type == RuleType.MEMBER:
            self._compile("member_regex")
        elif self.rule_type == RuleType.LABEL and not self.patterns.get("label_key"):
            raise ValueError("Label rule requires label_key")

        return True

    def applies_to(self, resource: ResourceDescriptor) -> bool:
        if self.provider and self.provider != resource.provider:
            return False
        return not self.kinds or resource.kind in self.kinds

    def matches(self, resource: ResourceDescriptor) -> bool:
        """Check whether the rule protects a resource."""
        if not self.enabled or not self.applies_to(resource):
            return False

        if self.rule_type == RuleType.NAME:
            pattern = self._compile("name_regex")
            return bool(pattern.search(resource.display_name) or pattern.search(resource.id.rsplit("/", 1)[-1]))

        if self.rule_type == RuleType.LABEL:
            key = self.patterns.get("label_key", "")
            if key not in resource.labels:
                return False
            values = self.patterns.get("label_values") or []
            return not values or resource.labels[key] in values

        if self.rule_type == RuleType.MEMBER:
            member = resource.metadata.get("member")
            return bool(member) and bool(self._compile("member_regex").search(member))

        return False

    def _compile(self, pattern_key: str) -> "re.Pattern[str]":
        regex = self.patterns.get(pattern_key)
        if not regex:
            raise ValueError(f"{self.rule_type.value} rule requires {pattern_key}")
        try:
            return re.compile(regex)
        except re.error as e:
            raise ValueError(f"Invalid {pattern_key} '{regex}': {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_type": self.rule_type.value,
            "patterns": dict(self.patterns),
            "kinds": [kind.value for kind in self.kinds],
            "provider": self.provider,
            "enabled": self.enabled,
            "priority": self.priority,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtectionRule":
        """Create a rule from a configuration dictionary.

        Raises:
            ValueError: If the dictionary does not describe a valid rule
        """
        try:
            rule = cls(
                rule_id=data["rule_id"],
                rule_type=RuleType(data.get("rule_type", "name")),
                patterns=dict(data.get("patterns") or {}),
                kinds=tuple(ResourceKind.from_value(k) for k in data.get("kinds") or ()),
                provider=data.get("provider"),
                enabled=data.get("enabled", True),
                priority=int(data.get("priority", 50)),
                description=data.get("description"),
            )
        except KeyError as e:
            raise ValueError(f"Protection rule missing field: {e}") from e
        rule.validate()
        return rule
