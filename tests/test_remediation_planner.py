"""Tests for RemediationPlanner."""

from datetime import datetime, timedelta, timezone

import pytest

from conmon.errors.exceptions import ValidationError
from conmon.models.enums import FindingType, Severity
from conmon.models.finding import RemediationAction
from conmon.models.remediation import RemediationPlanOptions
from conmon.remediation.planner import (
    DEFAULT_PRIORITY,
    ROLLBACK_STEPS,
    VALIDATION_STEPS,
    RemediationPlanner,
    build_steps,
    estimate_effort,
    is_automatable,
    priority_for,
)

from fakes import make_finding

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
VM = "Microsoft.Compute/virtualMachines"


def _planner() -> RemediationPlanner:
    return RemediationPlanner(clock=lambda: NOW)


def _res(name: str) -> str:
    return f"/subscriptions/sub-0001/resourceGroups/rg/providers/{VM}/{name}"


class TestItemBuildingBlocks:
    def test_priority_labels(self):
        assert priority_for(Severity.CRITICAL) == "P0 - Immediate"
        assert priority_for(Severity.HIGH) == "P1 - Within 24 hours"
        assert priority_for(Severity.MEDIUM) == "P2 - Within 7 days"
        assert priority_for(Severity.LOW) == "P3 - Within 30 days"
        assert priority_for(Severity.INFORMATIONAL) == DEFAULT_PRIORITY

    def test_automation_from_flag_or_type(self):
        assert is_automatable(make_finding(auto=True))
        assert is_automatable(make_finding(finding_type=FindingType.ENCRYPTION))
        assert not is_automatable(make_finding(finding_type=FindingType.ACCESS_CONTROL))

    def test_effort_estimates(self):
        assert estimate_effort(make_finding(severity=Severity.CRITICAL, auto=True)) == timedelta(minutes=30)
        assert estimate_effort(make_finding(severity=Severity.HIGH, auto=True)) == timedelta(minutes=20)
        assert estimate_effort(make_finding(severity=Severity.LOW, auto=True)) == timedelta(minutes=10)
        assert estimate_effort(make_finding(resource_type=VM)) == timedelta(hours=4)
        assert estimate_effort(make_finding()) == timedelta(hours=2)
        assert estimate_effort(make_finding(resource_type="Microsoft.Web/sites")) == timedelta(hours=1)

    def test_steps_from_actions_plus_verification(self):
        actions = [
            RemediationAction(action_id="a1", name="tls", description="Set minimum TLS 1.2", command="az ..."),
            RemediationAction(action_id="a2", name="https", description="Enable HTTPS only"),
        ]
        steps = build_steps(make_finding(auto=True, actions=actions))
        assert [s.description for s in steps] == [
            "Set minimum TLS 1.2", "Enable HTTPS only", "Verify automated remediation",
        ]
        assert [s.order for s in steps] == [1, 2, 3]
        assert steps[-1].command == "Run compliance validation scan"

    def test_generic_step_for_manual_finding(self):
        steps = build_steps(make_finding(finding_type=FindingType.ACCESS_CONTROL, resource_type=VM))
        assert len(steps) == 1
        assert steps[0].description == f"Remediate access_control issue for {VM}"


class TestGeneratePlan:
    def test_filters(self):
        findings = [
            make_finding("info", severity=Severity.INFORMATIONAL),
            make_finding("ac", severity=Severity.HIGH, controls=("AC-2",)),
            make_finding("au", severity=Severity.HIGH, controls=("AU-6",)),
            make_finding("sc", severity=Severity.MEDIUM, controls=("SC-8",), auto=True),
        ]
        planner = _planner()
        default = planner.generate_plan("sub-0001", findings)
        assert {i.finding_id for i in default.items} == {"ac", "au", "sc"}

        included = planner.generate_plan("sub-0001", findings, RemediationPlanOptions(include_families=["ac", "SC"]))
        assert {i.finding_id for i in included.items} == {"ac", "sc"}

        excluded = planner.generate_plan("sub-0001", findings, {"exclude_families": ["AU"]})
        assert {i.finding_id for i in excluded.items} == {"ac", "sc"}

        auto_only = planner.generate_plan("sub-0001", findings, {"automatable_only": True})
        assert [i.finding_id for i in auto_only.items] == ["sc"]

        high_only = planner.generate_plan("sub-0001", findings, {"minimum_severity": "high"})
        assert {i.finding_id for i in high_only.items} == {"ac", "au"}

    def test_prioritization_severity_then_automation_then_effort(self):
        findings = [
            make_finding("med", severity=Severity.MEDIUM, resource_id=_res("a")),
            make_finding("high-manual-vm", severity=Severity.HIGH, resource_type=VM, resource_id=_res("b")),
            make_finding("high-manual", severity=Severity.HIGH, resource_type="x", resource_id=_res("c")),
            make_finding("high-auto", severity=Severity.HIGH, auto=True, resource_id=_res("d")),
            make_finding("crit", severity=Severity.CRITICAL, resource_id=_res("e")),
        ]
        plan = _planner().generate_plan("sub-0001", findings)
        assert [i.finding_id for i in plan.items] == [
            "crit", "high-auto", "high-manual", "high-manual-vm", "med",
        ]

    def test_dependency_count_reorders_before_priority(self):
        shared = _res("shared")
        findings = [
            make_finding("crit-a", severity=Severity.CRITICAL, resource_id=shared),
            make_finding("crit-b", severity=Severity.LOW, resource_id=shared),
            make_finding("low-alone", severity=Severity.LOW, resource_id=_res("alone")),
        ]
        plan = _planner().generate_plan("sub-0001", findings)
        assert [i.finding_id for i in plan.items] == ["low-alone", "crit-a", "crit-b"]
        assert plan.items[1].dependencies == ["crit-b"]
        assert plan.items[2].dependencies == ["crit-a"]

    def test_dependencies_ordered_by_severity(self):
        shared = _res("shared")
        findings = [
            make_finding("x", severity=Severity.MEDIUM, resource_id=shared),
            make_finding("low", severity=Severity.LOW, resource_id=shared),
            make_finding("crit", severity=Severity.CRITICAL, resource_id=shared),
        ]
        plan = _planner().generate_plan("sub-0001", findings)
        item = next(i for i in plan.items if i.finding_id == "x")
        assert item.dependencies == ["crit", "low"]

    def test_items_carry_templates(self):
        plan = _planner().generate_plan("sub-0001", [make_finding()])
        item = plan.items[0]
        assert item.validation_steps == list(VALIDATION_STEPS)
        assert item.rollback_plan.steps == list(ROLLBACK_STEPS)
        assert item.rollback_plan.estimated_duration == timedelta(minutes=30)

    def test_effort_sum_and_timeline(self):
        findings = [
            make_finding("c1", severity=Severity.CRITICAL, auto=True, resource_id=_res("1")),
            make_finding("c2", severity=Severity.CRITICAL, resource_type=VM, resource_id=_res("2")),
            make_finding("l1", severity=Severity.LOW, resource_type="x", resource_id=_res("3")),
        ]
        plan = _planner().generate_plan("sub-0001", findings)
        assert plan.estimated_effort == sum((i.estimated_effort for i in plan.items), timedelta(0))
        assert plan.estimated_effort == timedelta(hours=5, minutes=30)

        phases = plan.timeline.phases
        assert [p.name for p in phases] == ["P0 - Immediate Remediations", "P3 - Within 30 days Remediations"]
        assert phases[0].start == NOW
        assert phases[0].duration == timedelta(hours=4, minutes=30)
        assert phases[1].start == phases[0].end
        assert plan.timeline.end == NOW + plan.estimated_effort

    def test_risk_reduction(self):
        findings = [
            make_finding("h", severity=Severity.HIGH, resource_id=_res("1")),
            make_finding("l", severity=Severity.LOW, resource_id=_res("2")),
        ]
        plan = _planner().generate_plan("sub-0001", findings, {"minimum_severity": "high"})
        assert plan.projected_risk_reduction == pytest.approx(75.0)
        assert plan.total_findings == 2

    def test_empty_input(self):
        plan = _planner().generate_plan("sub-0001", [])
        assert plan.items == []
        assert plan.projected_risk_reduction == 0.0
        assert plan.timeline.phases == []

    def test_executive_summary(self):
        findings = [
            make_finding("c", severity=Severity.CRITICAL, auto=True, resource_id=_res("1")),
            make_finding("h", severity=Severity.HIGH, resource_type="x", resource_id=_res("2")),
        ]
        plan = _planner().generate_plan("sub-0001", findings)
        assert plan.executive_summary == (
            "Remediation plan contains 2 items: 1 critical, 1 high priority. "
            "1 items can be automated. Estimated effort: 1.5 hours. "
            "Projected risk reduction: 100.0%."
        )

    def test_invalid_options_rejected(self):
        with pytest.raises(ValidationError):
            _planner().generate_plan("sub-0001", [], {"minimum_severity": "severe"})


class TestImpactAnalysis:
    def test_projection_assumes_automated_fixes_applied(self):
        findings = [
            make_finding("auto", severity=Severity.CRITICAL, auto=True, resource_id=_res("1")),
            make_finding("manual", severity=Severity.LOW, resource_type="x", resource_id=_res("1")),
        ]
        impact = _planner().analyze_impact("sub-0001", findings)
        assert impact.current_risk_score == 12.5
        assert impact.projected_risk_score == 2.5
        assert impact.risk_reduction_percentage == pytest.approx(80.0)
        assert impact.affected_resource_count == 1
        assert impact.recommendations[0] == "Apply automated remediation to 1 findings first"
