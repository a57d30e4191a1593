"""AssessmentOrchestrator: runs control families in order and aggregates a scored assessment.

Usage::

    orchestrator = AssessmentOrchestrator(catalog, scanners, cache, store=store)
    assessment = await orchestrator.run_assessment(
        AssessmentScope(subscription_id="sub-123"),
        progress=lambda p: print(p.message),
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from conmon.assessment import scoring
from conmon.cache import ResourceCache
from conmon.errors.exceptions import CollaboratorError, OperationCancelledError, ValidationError
from conmon.families import CONTROL_FAMILIES, family_name
from conmon.ids import generate_id
from conmon.integrations.base import ControlCatalog, PersistentStore, ProgressSink, Scanner
from conmon.logging_config import operation_context
from conmon.models.assessment import (
    AssessmentProgress,
    AssessmentScope,
    ComplianceAssessment,
    ControlFamilyAssessment,
)
from conmon.models.enums import Severity
from conmon.models.finding import Finding
from conmon.scanning.registry import CapabilityRegistry

logger = logging.getLogger(__name__)


def report_progress(sink: ProgressSink | None, progress: AssessmentProgress) -> None:
    """Deliver a progress notification; sink failures never affect the operation."""
    if sink is None:
        return
    try:
        sink(progress)
    except Exception:
        logger.warning("Progress sink raised while reporting '%s'", progress.message, exc_info=True)


def coerce_scope(scope: AssessmentScope | str, resource_group: str | None = None) -> AssessmentScope:
    if isinstance(scope, str):
        if not scope.strip():
            raise ValidationError("subscription_id is required")
        return AssessmentScope(subscription_id=scope, resource_group=resource_group)
    if resource_group is not None:
        return scope.model_copy(update={"resource_group": resource_group})
    return scope


class AssessmentOrchestrator:
    """Drives the sequential control-family loop of a compliance assessment."""

    def __init__(
        self,
        catalog: ControlCatalog,
        scanners: CapabilityRegistry[Scanner],
        cache: ResourceCache,
        store: PersistentStore | None = None,
        families: Sequence[str] = CONTROL_FAMILIES,
    ) -> None:
        self._catalog = catalog
        self._scanners = scanners
        self._cache = cache
        self._store = store
        self._families = tuple(f.upper() for f in families)

    @property
    def families(self) -> tuple[str, ...]:
        return self._families

    async def run_assessment(
        self,
        scope: AssessmentScope | str,
        resource_group: str | None = None,
        progress: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ComplianceAssessment:
        """Assess every control family for a scope.

        Args:
            scope: Subscription scope, or a bare subscription id.
            resource_group: Restrict scanning to one resource group.
            progress: Receives one report before the loop and two per family.
            cancel: Checked between families. When set, completed family
                results are kept on the partial assessment carried by the
                raised :class:`OperationCancelledError`.

        Returns:
            The aggregated, scored assessment.

        Raises:
            ValidationError: The scope is invalid.
            OperationCancelledError: ``cancel`` was set.
        """
        scope = coerce_scope(scope, resource_group)
        assessment = ComplianceAssessment(
            assessment_id=generate_id("asmt_"),
            subscription_id=scope.subscription_id,
            resource_group=scope.resource_group,
            started_at=datetime.now(timezone.utc),
        )
        total = len(self._families)

        with operation_context(
            assessment_id=assessment.assessment_id, subscription_id=scope.subscription_id
        ):
            logger.info(
                "Starting assessment %s for %s across %d families",
                assessment.assessment_id, scope.subscription_id, total,
            )
            report_progress(progress, AssessmentProgress(
                total_families=total,
                completed_families=0,
                current_family="Initialization",
                message="Initializing compliance assessment",
            ))

            try:
                await self._cache.warm(scope.subscription_id, scope.resource_group)

                for index, family in enumerate(self._families):
                    if cancel is not None and cancel.is_set():
                        self._finalize(assessment)
                        logger.warning(
                            "Assessment %s cancelled after %d of %d families",
                            assessment.assessment_id, index, total,
                        )
                        raise OperationCancelledError("assessment", partial=assessment)

                    report_progress(progress, AssessmentProgress(
                        total_families=total,
                        completed_families=index,
                        current_family=family,
                        message=f"Assessing {family_name(family)} ({family})",
                    ))

                    result = await self._assess_family(scope, family)
                    assessment.family_results[family] = result

                    report_progress(progress, AssessmentProgress(
                        total_families=total,
                        completed_families=index + 1,
                        current_family=family,
                        message=(
                            f"Completed {family}: {result.compliance_score:.1f}% compliant, "
                            f"{len(result.findings)} findings"
                        ),
                        family_score=result.compliance_score,
                        family_findings=len(result.findings),
                    ))
            except OperationCancelledError:
                raise
            except Exception as exc:
                assessment.error = str(exc)
                self._finalize(assessment)
                logger.exception("Assessment %s failed", assessment.assessment_id)
                raise

            self._finalize(assessment)
            logger.info(
                "Assessment %s completed: %.1f%% compliant, %d findings, risk %s",
                assessment.assessment_id, assessment.overall_score,
                assessment.total_findings, assessment.risk_profile.risk_level,
            )
            await self._persist(assessment)

        return assessment

    async def get_latest_assessment(self, subscription_id: str) -> ComplianceAssessment | None:
        if self._store is None:
            return None
        return await self._store.get_latest_assessment(subscription_id)

    # ── Internals ──────────────────────────────────────────────────────────

    async def _assess_family(self, scope: AssessmentScope, family: str) -> ControlFamilyAssessment:
        scanner = self._scanners.resolve(family)
        try:
            controls = await self._catalog.get_controls(family)
        except Exception as exc:
            raise CollaboratorError("control catalog", f"failed to load {family} controls: {exc}") from exc

        findings: list[Finding] = []
        errors: list[str] = []
        for control in controls:
            try:
                if scope.resource_group:
                    found = await scanner.scan_control_in_resource_group(
                        scope.subscription_id, scope.resource_group, control
                    )
                else:
                    found = await scanner.scan_control(scope.subscription_id, control)
            except Exception as exc:
                logger.warning("Scan of control %s failed: %s", control.control_id, exc)
                errors.append(f"{control.control_id}: {exc}")
                continue
            findings.extend(found)

        total, passed = scoring.family_counts(findings, controls)
        return ControlFamilyAssessment(
            family_code=family,
            family_name=family_name(family),
            findings=findings,
            total_controls=total,
            passed_controls=passed,
            compliance_score=scoring.compliance_score(passed, total),
            assessed_at=datetime.now(timezone.utc),
            errors=errors,
        )

    @staticmethod
    def _finalize(assessment: ComplianceAssessment) -> None:
        families = list(assessment.family_results.values())
        findings = assessment.findings
        counts = scoring.severity_counts(findings)

        assessment.total_findings = len(findings)
        assessment.critical_findings = counts[Severity.CRITICAL]
        assessment.high_findings = counts[Severity.HIGH]
        assessment.medium_findings = counts[Severity.MEDIUM]
        assessment.low_findings = counts[Severity.LOW]
        assessment.informational_findings = counts[Severity.INFORMATIONAL]
        assessment.overall_score = scoring.overall_score(families)
        assessment.risk_profile = scoring.build_risk_profile(families, findings)
        assessment.executive_summary = scoring.executive_summary(
            assessment.overall_score, counts, assessment.risk_profile.risk_level
        )
        assessment.completed_at = datetime.now(timezone.utc)
        assessment.duration = assessment.completed_at - assessment.started_at

    async def _persist(self, assessment: ComplianceAssessment) -> None:
        if self._store is None:
            return
        try:
            await self._store.save_assessment(assessment)
            await self._store.save_findings(assessment.subscription_id, assessment.findings)
        except Exception:
            logger.exception("Failed to persist assessment %s", assessment.assessment_id)
