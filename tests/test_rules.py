"""Tests for data-driven rule evaluation, rule loading and the static control catalog."""

import pytest

from conmon.errors.exceptions import ValidationError
from conmon.models.enums import FindingType, Severity
from conmon.models.finding import Control, Resource
from conmon.scanning.catalog import StaticControlCatalog
from conmon.scanning.rules import RuleBasedScanner, RuleDefinition, load_rules, rule_from_dict

HTTPS_RULE = {
    "rule_id": "storage-https-only",
    "control_id": "SC-8",
    "resource_type": "Microsoft.Storage/storageAccounts",
    "property_path": "supportsHttpsTrafficOnly",
    "operator": "equals",
    "expected": True,
    "severity": "high",
    "title": "Storage account allows plain HTTP",
    "finding_type": "encryption",
    "auto_remediable": True,
    "remediation_actions": [
        {"name": "Enable HTTPS only", "command": "az storage account update --https-only true"},
    ],
}


def _resource(**properties) -> Resource:
    return Resource(
        resource_id="/subscriptions/s/resourceGroups/rg/providers/Microsoft.Storage/storageAccounts/x",
        resource_type="Microsoft.Storage/storageAccounts",
        name="x",
        resource_group="rg",
        properties=properties,
    )


class TestRuleDefinition:
    def test_failing_property_raises_finding(self):
        rule = rule_from_dict(HTTPS_RULE)
        resource = _resource(supportsHttpsTrafficOnly=False)
        assert rule.applies_to(resource)
        assert not rule.passes(resource)
        finding = rule.to_finding("s", resource)
        assert finding.affected_controls == ["SC-8"]
        assert finding.severity == Severity.HIGH
        assert finding.finding_type == FindingType.ENCRYPTION
        assert finding.is_auto_remediable
        assert finding.remediation_actions[0].action_id == "storage-https-only-1"

    def test_finding_id_is_stable(self):
        rule = rule_from_dict(HTTPS_RULE)
        resource = _resource()
        assert rule.to_finding("s", resource).finding_id == rule.to_finding("s", resource).finding_id

    def test_missing_property_fails_equals(self):
        assert not rule_from_dict(HTTPS_RULE).passes(_resource())

    @pytest.mark.parametrize("operator,expected,properties,passes", [
        ("exists", None, {"a": {"b": "x"}}, True),
        ("exists", None, {"a": {"b": ""}}, False),
        ("absent", None, {}, True),
        ("in", ["TLS1_2", "TLS1_3"], {"a": {"b": "tls1_2"}}, True),
        ("not_in", ["TLS1_0"], {"a": {"b": "TLS1_2"}}, True),
        ("gte", 90, {"a": {"b": 30}}, False),
        ("lte", 90, {"a": {"b": 30}}, True),
        ("contains", "AzureAD", {"a": {"b": ["AzureAD", "Local"]}}, True),
        ("not_equals", "Allow", {"a": {"b": "Deny"}}, True),
    ])
    def test_operators(self, operator, expected, properties, passes):
        rule = RuleDefinition(
            rule_id="r", control_id="AC-1", resource_type="*", property_path="a.b",
            operator=operator, expected=expected, severity=Severity.LOW, title="t",
        )
        assert rule.passes(_resource(**properties)) is passes

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            rule_from_dict({**HTTPS_RULE, "operator": "matches"})

    @pytest.mark.parametrize("operator,expected", [
        ("in", None),
        ("not_in", "TLS1_2"),
        ("contains", None),
        ("gte", "90"),
        ("lte", True),
    ])
    def test_expected_value_checked_against_operator(self, operator, expected):
        data = {**HTTPS_RULE, "operator": operator}
        if expected is None:
            del data["expected"]
        else:
            data["expected"] = expected
        with pytest.raises(ValidationError):
            rule_from_dict(data)

    def test_missing_field_rejected(self):
        data = dict(HTTPS_RULE)
        del data["control_id"]
        with pytest.raises(ValidationError):
            rule_from_dict(data)


class TestRuleBasedScanner:
    async def test_scans_only_rules_for_control(self, cache):
        scanner = RuleBasedScanner(cache, [rule_from_dict(HTTPS_RULE)])
        sc8 = Control(control_id="SC-8", family="SC")
        ac2 = Control(control_id="AC-2", family="AC")
        assert len(await scanner.scan_control("sub-0001", sc8)) == 1
        assert await scanner.scan_control("sub-0001", ac2) == []

    async def test_resource_group_variant(self, cache):
        scanner = RuleBasedScanner(cache, [rule_from_dict(HTTPS_RULE)])
        sc8 = Control(control_id="SC-8", family="SC")
        assert len(await scanner.scan_control_in_resource_group("sub-0001", "rg-app", sc8)) == 1
        assert await scanner.scan_control_in_resource_group("sub-0001", "rg-other", sc8) == []


class TestLoading:
    def test_load_rules_from_yaml(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "rules:\n"
            "  - rule_id: kv-purge\n"
            "    control_id: SC-28\n"
            "    resource_type: Microsoft.KeyVault/vaults\n"
            "    property_path: enablePurgeProtection\n"
            "    expected: true\n"
            "    severity: Medium\n"
            "    title: Key vault purge protection disabled\n",
            encoding="utf-8",
        )
        rules = load_rules(path)
        assert len(rules) == 1
        assert rules[0].operator == "equals"
        assert rules[0].severity == Severity.MEDIUM

    async def test_catalog_from_yaml_keeps_order(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "AC:\n  - AC-2\n  - control_id: AC-3\n    title: Access Enforcement\nAU:\n  - AU-6\n",
            encoding="utf-8",
        )
        catalog = StaticControlCatalog.from_yaml(path)
        assert [c.control_id for c in await catalog.get_controls("ac")] == ["AC-2", "AC-3"]
        assert await catalog.get_controls("SC") == []

    def test_catalog_rejects_misfiled_control(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text("AC:\n  - AU-2\n", encoding="utf-8")
        with pytest.raises(ValidationError):
            StaticControlCatalog.from_yaml(path)
