"""Data-driven compliance rules evaluated generically against cached resources.

A rule is a record, not code: which resource type it applies to, which
property to read, how to compare it, and what finding to raise when the
comparison fails. Rule sets are usually loaded from YAML::

    - rule_id: storage-https-only
      control_id: SC-8
      resource_type: Microsoft.Storage/storageAccounts
      property_path: supportsHttpsTrafficOnly
      operator: equals
      expected: true
      severity: high
      title: Storage account allows plain HTTP
      finding_type: encryption
      auto_remediable: true
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from conmon.cache import ResourceCache
from conmon.errors.exceptions import ValidationError
from conmon.integrations.base import Scanner
from conmon.models.enums import FindingType, RemediationActionType, Severity
from conmon.models.finding import Control, Finding, RemediationAction, Resource

logger = logging.getLogger(__name__)

_MISSING = object()


def _resolve(properties: dict[str, Any], path: str) -> Any:
    value: Any = properties
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda actual, expected: actual is not _MISSING and _lower(actual) == _lower(expected),
    "not_equals": lambda actual, expected: actual is _MISSING or _lower(actual) != _lower(expected),
    "exists": lambda actual, _: actual is not _MISSING and actual not in (None, "", [], {}),
    "absent": lambda actual, _: actual is _MISSING or actual in (None, "", [], {}),
    "in": lambda actual, expected: actual is not _MISSING
    and _lower(actual) in [_lower(e) for e in expected],
    "not_in": lambda actual, expected: actual is _MISSING
    or _lower(actual) not in [_lower(e) for e in expected],
    "gte": lambda actual, expected: isinstance(actual, (int, float)) and actual >= expected,
    "lte": lambda actual, expected: isinstance(actual, (int, float)) and actual <= expected,
    "contains": lambda actual, expected: isinstance(actual, (list, str)) and expected in actual,
}


@dataclass(frozen=True)
class RuleDefinition:
    rule_id: str
    control_id: str
    resource_type: str
    property_path: str
    operator: str
    severity: Severity
    title: str
    expected: Any = None
    description: str = ""
    finding_type: FindingType = FindingType.COMPLIANCE
    auto_remediable: bool = False
    remediation_guidance: str | None = None
    remediation_actions: tuple[RemediationAction, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValidationError(
                f"Rule '{self.rule_id}' uses unknown operator '{self.operator}'",
                {"allowed": sorted(OPERATORS)},
            )
        if self.operator in ("in", "not_in") and not isinstance(self.expected, (list, tuple, set)):
            raise ValidationError(
                f"Rule '{self.rule_id}' operator '{self.operator}' needs a list of expected values"
            )
        if self.operator == "contains" and self.expected is None:
            raise ValidationError(f"Rule '{self.rule_id}' operator 'contains' needs an expected value")
        if self.operator in ("gte", "lte") and (
            isinstance(self.expected, bool) or not isinstance(self.expected, (int, float))
        ):
            raise ValidationError(
                f"Rule '{self.rule_id}' operator '{self.operator}' needs a numeric expected value"
            )

    def applies_to(self, resource: Resource) -> bool:
        return self.resource_type == "*" or resource.resource_type.lower() == self.resource_type.lower()

    def passes(self, resource: Resource) -> bool:
        actual = _resolve(resource.properties, self.property_path)
        return OPERATORS[self.operator](actual, self.expected)

    def to_finding(self, subscription_id: str, resource: Resource) -> Finding:
        digest = hashlib.sha1(f"{self.rule_id}|{resource.resource_id}".encode()).hexdigest()[:16]
        return Finding(
            finding_id=f"find_{digest}",
            title=self.title,
            description=self.description or None,
            affected_controls=[self.control_id],
            severity=self.severity,
            finding_type=self.finding_type,
            subscription_id=subscription_id,
            resource_id=resource.resource_id,
            resource_type=resource.resource_type,
            resource_name=resource.name,
            resource_group=resource.resource_group,
            rule_id=self.rule_id,
            remediation_actions=list(self.remediation_actions),
            remediation_guidance=self.remediation_guidance,
            is_auto_remediable=self.auto_remediable,
        )


def rule_from_dict(data: dict[str, Any]) -> RuleDefinition:
    try:
        actions = tuple(
            RemediationAction(
                action_id=a.get("action_id", f"{data['rule_id']}-{i + 1}"),
                name=a["name"],
                description=a.get("description", a["name"]),
                action_type=RemediationActionType(
                    a.get("action_type", RemediationActionType.UPDATE_CONFIGURATION)
                ),
                parameters=a.get("parameters", {}),
                command=a.get("command"),
                script_path=a.get("script_path"),
            )
            for i, a in enumerate(data.get("remediation_actions", []))
        )
        return RuleDefinition(
            rule_id=data["rule_id"],
            control_id=data["control_id"],
            resource_type=data["resource_type"],
            property_path=data["property_path"],
            operator=data.get("operator", "equals"),
            expected=data.get("expected"),
            severity=Severity(str(data.get("severity", "medium")).lower()),
            title=data["title"],
            description=data.get("description", ""),
            finding_type=FindingType(data.get("finding_type", FindingType.COMPLIANCE)),
            auto_remediable=bool(data.get("auto_remediable", False)),
            remediation_guidance=data.get("remediation_guidance"),
            remediation_actions=actions,
        )
    except KeyError as exc:
        raise ValidationError(f"Rule definition missing field {exc}", data) from exc
    except ValueError as exc:
        raise ValidationError(f"Invalid rule definition: {exc}", data) from exc


def load_rules(path: str | Path) -> list[RuleDefinition]:
    """Load rule definitions from a YAML list (or a mapping with a ``rules`` key)."""
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or []
    if isinstance(raw, dict):
        raw = raw.get("rules", [])
    rules = [rule_from_dict(entry) for entry in raw]
    logger.info("Loaded %d rules from %s", len(rules), path)
    return rules


class RuleBasedScanner(Scanner):
    """Scanner that evaluates every rule bound to a control over cached resources."""

    def __init__(self, cache: ResourceCache, rules: list[RuleDefinition]) -> None:
        self._cache = cache
        self._rules_by_control: dict[str, list[RuleDefinition]] = {}
        for rule in rules:
            self._rules_by_control.setdefault(rule.control_id.upper(), []).append(rule)

    def rules_for(self, control_id: str) -> list[RuleDefinition]:
        return self._rules_by_control.get(control_id.upper(), [])

    async def scan_control(self, subscription_id: str, control: Control) -> list[Finding]:
        return await self._scan(subscription_id, None, control)

    async def scan_control_in_resource_group(
        self, subscription_id: str, resource_group: str, control: Control
    ) -> list[Finding]:
        return await self._scan(subscription_id, resource_group, control)

    async def _scan(
        self, subscription_id: str, resource_group: str | None, control: Control
    ) -> list[Finding]:
        rules = self.rules_for(control.control_id)
        if not rules:
            return []
        resources = await self._cache.get_resources(subscription_id, resource_group)
        findings = []
        for rule in rules:
            for resource in resources:
                if rule.applies_to(resource) and not rule.passes(resource):
                    findings.append(rule.to_finding(subscription_id, resource))
        return findings
