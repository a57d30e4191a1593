"""Tests for AssessmentOrchestrator."""

import asyncio

import pytest

from conmon.assessment.orchestrator import AssessmentOrchestrator
from conmon.cache import ResourceCache
from conmon.errors.exceptions import CollaboratorError, OperationCancelledError, ValidationError
from conmon.models.assessment import AssessmentScope
from conmon.models.enums import RiskLevel, Severity
from conmon.scanning.catalog import StaticControlCatalog
from conmon.scanning.registry import CapabilityRegistry

from fakes import FailingCatalog, FailingStore, FakeInventory, ScriptedScanner, make_controls, make_finding


def _orchestrator(catalog, scanner, cache, store=None, families=("AC", "AU")):
    registry = CapabilityRegistry("scanner", scanner)
    return AssessmentOrchestrator(catalog, registry, cache, store=store, families=families)


class TestRunAssessment:
    async def test_scores_and_aggregates(self, catalog, cache, store):
        scanner = ScriptedScanner({
            "AC-2": [make_finding("f1", severity=Severity.HIGH, controls=("AC-2",))],
            "AC-3": [make_finding("f2", severity=Severity.MEDIUM, controls=("AC-3",))],
            "AU-1": [make_finding("f3", severity=Severity.LOW, controls=("AU-1",))],
        })
        assessment = await _orchestrator(catalog, scanner, cache, store).run_assessment("sub-0001")

        ac = assessment.family_results["AC"]
        assert (ac.total_controls, ac.passed_controls, ac.compliance_score) == (10, 8, 80.0)
        assert ac.family_name == "Access Control"
        au = assessment.family_results["AU"]
        assert (au.total_controls, au.passed_controls) == (4, 3)
        assert assessment.overall_score == pytest.approx(11 / 14 * 100)
        assert (assessment.high_findings, assessment.medium_findings, assessment.low_findings) == (1, 1, 1)
        assert assessment.total_findings == 3
        assert assessment.risk_profile.risk_level == RiskLevel.LOW
        assert assessment.risk_profile.risk_score == 15.0
        assert assessment.executive_summary.startswith("ATO Compliance Assessment completed")
        assert assessment.completed_at is not None and assessment.error is None
        assert list(store.assessments) == [assessment.assessment_id]
        assert len(store.findings["sub-0001"]) == 3

    async def test_families_run_in_fixed_order(self, catalog, cache):
        scanner = ScriptedScanner()
        assessment = await _orchestrator(catalog, scanner, cache, families=("AU", "AC")).run_assessment("sub-0001")
        assert list(assessment.family_results) == ["AU", "AC"]
        assert scanner.scanned[:4] == ["AU-1", "AU-2", "AU-3", "AU-4"]

    async def test_unmapped_family_uses_default_scanner(self, catalog, cache):
        default = ScriptedScanner()
        au = ScriptedScanner({"AU-2": [make_finding("f", controls=("AU-2",))]})
        registry = CapabilityRegistry("scanner", default)
        registry.register("AU", au)
        orchestrator = AssessmentOrchestrator(catalog, registry, cache, families=("AC", "AU"))
        assessment = await orchestrator.run_assessment("sub-0001")
        assert len(default.scanned) == 10
        assert assessment.family_results["AU"].passed_controls == 3

    async def test_multi_family_finding_is_counted_in_each_family(self, catalog, cache):
        shared = make_finding("shared", controls=("AC-1", "AU-1"))
        scanner = ScriptedScanner({"AC-1": [shared], "AU-1": [shared]})
        assessment = await _orchestrator(catalog, scanner, cache).run_assessment("sub-0001")
        assert assessment.family_results["AC"].passed_controls == 9
        assert assessment.family_results["AU"].passed_controls == 3
        assert assessment.total_findings == 2

    async def test_resource_group_scope_uses_group_scan(self, catalog, cache):
        scanner = ScriptedScanner()
        await _orchestrator(catalog, scanner, cache, families=("AU",)).run_assessment(
            AssessmentScope(subscription_id="sub-0001", resource_group="rg-app")
        )
        assert scanner.rg_scanned[0] == ("rg-app", "AU-1")

    async def test_empty_family_scores_zero(self, cache):
        catalog = StaticControlCatalog(make_controls("AC", 2))
        assessment = await _orchestrator(catalog, ScriptedScanner(), cache).run_assessment("sub-0001")
        assert assessment.family_results["AU"].compliance_score == 0.0
        assert assessment.family_results["AU"].total_controls == 0
        assert assessment.overall_score == 100.0

    async def test_critical_finding_sets_critical_risk(self, catalog, cache):
        scanner = ScriptedScanner({"AC-1": [make_finding("c", severity=Severity.CRITICAL, controls=("AC-1",))]})
        assessment = await _orchestrator(catalog, scanner, cache).run_assessment("sub-0001")
        assert assessment.risk_profile.risk_level == RiskLevel.CRITICAL


class TestProgress:
    async def test_reports_initialization_and_each_family(self, catalog, cache):
        reports = []
        scanner = ScriptedScanner({"AC-2": [make_finding("f1", controls=("AC-2",))]})
        await _orchestrator(catalog, scanner, cache).run_assessment("sub-0001", progress=reports.append)

        assert reports[0].current_family == "Initialization"
        assert len(reports) == 5
        done = [r for r in reports if r.family_score is not None]
        assert [r.completed_families for r in done] == [1, 2]
        assert done[0].message == "Completed AC: 90.0% compliant, 1 findings"
        assert all(r.total_families == 2 for r in reports)

    async def test_sink_failure_does_not_abort(self, catalog, cache):
        def broken(progress):
            raise RuntimeError("ui disconnected")

        assessment = await _orchestrator(catalog, ScriptedScanner(), cache).run_assessment(
            "sub-0001", progress=broken
        )
        assert assessment.error is None


class TestFailures:
    async def test_empty_subscription_rejected(self, catalog, cache):
        with pytest.raises(ValidationError):
            await _orchestrator(catalog, ScriptedScanner(), cache).run_assessment("  ")

    async def test_failed_control_scan_is_skipped(self, catalog, cache):
        scanner = ScriptedScanner(
            {"AC-4": [make_finding("f", controls=("AC-4",))]}, failing={"AC-2"}
        )
        assessment = await _orchestrator(catalog, scanner, cache).run_assessment("sub-0001")
        ac = assessment.family_results["AC"]
        assert ac.passed_controls == 9
        assert len(ac.errors) == 1 and ac.errors[0].startswith("AC-2")
        assert "AC-3" in scanner.scanned

    async def test_catalog_failure_aborts(self, cache):
        with pytest.raises(CollaboratorError):
            await _orchestrator(FailingCatalog(), ScriptedScanner(), cache).run_assessment("sub-0001")

    async def test_inventory_failure_propagates(self, catalog):
        class BrokenInventory(FakeInventory):
            async def list_resources(self, subscription_id, resource_group=None):
                raise ConnectionError("provider unreachable")

        cache = ResourceCache(BrokenInventory(), ttl_seconds=60)
        with pytest.raises(ConnectionError):
            await _orchestrator(catalog, ScriptedScanner(), cache).run_assessment("sub-0001")

    async def test_storage_failure_keeps_result(self, catalog, cache):
        assessment = await _orchestrator(catalog, ScriptedScanner(), cache, store=FailingStore()).run_assessment(
            "sub-0001"
        )
        assert assessment.completed_at is not None
        assert assessment.error is None


class TestCancellation:
    async def test_cancel_between_families_keeps_partial_results(self, catalog, cache):
        cancel = asyncio.Event()

        def stop_after_first(progress):
            if progress.family_score is not None:
                cancel.set()

        scanner = ScriptedScanner({"AC-1": [make_finding("f", controls=("AC-1",))]})
        with pytest.raises(OperationCancelledError) as exc_info:
            await _orchestrator(catalog, scanner, cache).run_assessment(
                "sub-0001", progress=stop_after_first, cancel=cancel
            )
        partial = exc_info.value.partial
        assert list(partial.family_results) == ["AC"]
        assert partial.total_findings == 1
        assert not any(c.startswith("AU") for c in scanner.scanned)


class TestLatestAssessment:
    async def test_latest_from_store(self, catalog, cache, store):
        orchestrator = _orchestrator(catalog, ScriptedScanner(), cache, store=store)
        await orchestrator.run_assessment("sub-0001")
        second = await orchestrator.run_assessment("sub-0001")
        latest = await orchestrator.get_latest_assessment("sub-0001")
        assert latest.assessment_id == second.assessment_id
        assert await orchestrator.get_latest_assessment("sub-other") is None
