"""RemediationPlanner: filter, prioritize, itemize and phase remediation work.

Pipeline::

    filter -> prioritize -> build items -> reorder by dependencies
           -> timeline phases -> projected risk reduction
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError

from conmon.assessment.orchestrator import coerce_scope
from conmon.assessment.scoring import calculate_risk_score, finding_risk
from conmon.errors.exceptions import ValidationError
from conmon.families import family_of
from conmon.ids import generate_id
from conmon.models.assessment import AssessmentScope
from conmon.models.enums import FindingType, Severity
from conmon.models.finding import Finding
from conmon.models.remediation import (
    ImplementationTimeline,
    RemediationImpactAnalysis,
    RemediationItem,
    RemediationPlan,
    RemediationPlanOptions,
    RemediationStep,
    RollbackPlan,
    TimelinePhase,
)

logger = logging.getLogger(__name__)

# Finding types with a known automated fix even when the finding itself
# does not carry the auto-remediable flag.
AUTO_REMEDIABLE_TYPES: frozenset[FindingType] = frozenset({
    FindingType.CONFIGURATION,
    FindingType.ENCRYPTION,
    FindingType.LOGGING,
    FindingType.MONITORING,
    FindingType.NETWORK_SECURITY,
})

PRIORITY_LABELS: dict[Severity, str] = {
    Severity.CRITICAL: "P0 - Immediate",
    Severity.HIGH: "P1 - Within 24 hours",
    Severity.MEDIUM: "P2 - Within 7 days",
    Severity.LOW: "P3 - Within 30 days",
}
DEFAULT_PRIORITY = "P4 - Best effort"
PRIORITY_ORDER: tuple[str, ...] = (*PRIORITY_LABELS.values(), DEFAULT_PRIORITY)

# Manual effort by resource type (matched case-insensitively).
RESOURCE_EFFORT: dict[str, timedelta] = {
    "microsoft.storage/storageaccounts": timedelta(hours=2),
    "microsoft.compute/virtualmachines": timedelta(hours=4),
    "microsoft.network/networksecuritygroups": timedelta(hours=3),
    "microsoft.keyvault/vaults": timedelta(hours=2),
}
DEFAULT_EFFORT = timedelta(hours=1)

AUTOMATED_EFFORT: dict[Severity, timedelta] = {
    Severity.CRITICAL: timedelta(minutes=30),
    Severity.HIGH: timedelta(minutes=20),
}
DEFAULT_AUTOMATED_EFFORT = timedelta(minutes=10)

VALIDATION_STEPS: tuple[str, ...] = (
    "Verify remediation has been applied successfully",
    "Run compliance scan to confirm finding is resolved",
    "Document remediation in change management system",
    "Update compliance tracking dashboard",
)

ROLLBACK_STEPS: tuple[str, ...] = (
    "Take snapshot/backup before applying remediation",
    "Document current configuration",
    "If issues occur, restore from backup",
    "Notify compliance team of rollback",
)
ROLLBACK_DURATION = timedelta(minutes=30)


# ── Item building blocks ──────────────────────────────────────────────────


def is_automatable(finding: Finding) -> bool:
    return finding.is_auto_remediable or finding.finding_type in AUTO_REMEDIABLE_TYPES


def priority_for(severity: Severity) -> str:
    return PRIORITY_LABELS.get(severity, DEFAULT_PRIORITY)


def priority_rank(label: str) -> int:
    return PRIORITY_ORDER.index(label) if label in PRIORITY_ORDER else len(PRIORITY_ORDER)


def estimate_effort(finding: Finding) -> timedelta:
    if is_automatable(finding):
        return AUTOMATED_EFFORT.get(finding.severity, DEFAULT_AUTOMATED_EFFORT)
    return RESOURCE_EFFORT.get(finding.resource_type.lower(), DEFAULT_EFFORT)


def build_steps(finding: Finding) -> list[RemediationStep]:
    """Steps from the finding's own actions, else one generic step.

    Automatable findings get a trailing verification step.
    """
    automated = is_automatable(finding)
    if finding.remediation_actions:
        steps = [
            RemediationStep(
                order=i,
                description=action.description,
                command=action.command,
                script=action.script_path,
                automated=automated,
            )
            for i, action in enumerate(finding.remediation_actions, start=1)
        ]
    else:
        steps = [RemediationStep(
            order=1,
            description=(
                f"Remediate {finding.finding_type.value} issue for "
                f"{finding.resource_type or 'resource'}"
            ),
            automated=automated,
        )]
    if automated:
        steps.append(RemediationStep(
            order=len(steps) + 1,
            description="Verify automated remediation",
            command="Run compliance validation scan",
            automated=True,
        ))
    return steps


def rollback_plan() -> RollbackPlan:
    return RollbackPlan(
        description="Restore the resource to its pre-remediation configuration",
        steps=list(ROLLBACK_STEPS),
        estimated_duration=ROLLBACK_DURATION,
    )


def dependencies_for(finding: Finding, all_findings: Sequence[Finding]) -> list[str]:
    """Other findings on the same resource, most severe first."""
    siblings = [
        f for f in all_findings
        if f.resource_id == finding.resource_id and f.finding_id != finding.finding_id
    ]
    siblings.sort(key=lambda f: -f.severity.rank)
    return [f.finding_id for f in siblings]


def _prioritize_key(finding: Finding):
    return (-finding.severity.rank, 0 if is_automatable(finding) else 1, estimate_effort(finding))


class RemediationPlanner:
    def __init__(self, clock=None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def generate_plan(
        self,
        scope: AssessmentScope | str,
        findings: Sequence[Finding],
        options: RemediationPlanOptions | dict | None = None,
    ) -> RemediationPlan:
        scope = coerce_scope(scope)
        options = _coerce_options(options)
        now = self._clock()

        selected = self.filter_findings(findings, options)
        selected.sort(key=_prioritize_key)
        items = [self._build_item(f, findings) for f in selected]
        items.sort(key=lambda item: (len(item.dependencies), priority_rank(item.priority)))

        plan = RemediationPlan(
            plan_id=generate_id("plan_"),
            subscription_id=scope.subscription_id,
            created_at=now,
            items=items,
            total_findings=len(findings),
            estimated_effort=sum((i.estimated_effort for i in items), timedelta(0)),
            timeline=build_timeline(items, now),
            projected_risk_reduction=projected_risk_reduction(findings, selected),
        )
        plan.executive_summary = plan_summary(plan)
        logger.info(
            "Remediation plan %s: %d of %d findings, effort %s",
            plan.plan_id, len(items), len(findings), plan.estimated_effort,
        )
        return plan

    @staticmethod
    def filter_findings(findings: Sequence[Finding], options: RemediationPlanOptions) -> list[Finding]:
        include = {f.upper() for f in options.include_families}
        exclude = {f.upper() for f in options.exclude_families}
        selected = []
        for finding in findings:
            if finding.severity.rank < options.minimum_severity.rank:
                continue
            families = {family_of(c) for c in finding.affected_controls}
            if include and not families & include:
                continue
            if exclude and families & exclude:
                continue
            if options.automatable_only and not is_automatable(finding):
                continue
            selected.append(finding)
        return selected

    @staticmethod
    def _build_item(finding: Finding, all_findings: Sequence[Finding]) -> RemediationItem:
        return RemediationItem(
            item_id=generate_id("rem_"),
            finding_id=finding.finding_id,
            control_id=finding.affected_controls[0] if finding.affected_controls else None,
            resource_id=finding.resource_id,
            title=finding.title,
            severity=finding.severity,
            priority=priority_for(finding.severity),
            automation_available=is_automatable(finding),
            estimated_effort=estimate_effort(finding),
            steps=build_steps(finding),
            validation_steps=list(VALIDATION_STEPS),
            rollback_plan=rollback_plan(),
            dependencies=dependencies_for(finding, all_findings),
        )

    def analyze_impact(
        self, scope: AssessmentScope | str, findings: Sequence[Finding]
    ) -> RemediationImpactAnalysis:
        """Project the effect of applying every automated fix."""
        scope = coerce_scope(scope)
        automatable = [f for f in findings if is_automatable(f)]
        manual = [f for f in findings if not is_automatable(f)]
        current = calculate_risk_score(findings)
        projected = calculate_risk_score(manual)

        recommendations = []
        if automatable:
            recommendations.append(
                f"Apply automated remediation to {len(automatable)} findings first"
            )
        critical = sum(1 for f in findings if f.severity == Severity.CRITICAL)
        if critical:
            recommendations.append(f"Address {critical} critical findings immediately")
        if manual:
            recommendations.append(f"Schedule manual remediation for {len(manual)} findings")

        return RemediationImpactAnalysis(
            subscription_id=scope.subscription_id,
            total_findings=len(findings),
            automatable_findings=len(automatable),
            manual_findings=len(manual),
            estimated_effort=sum((estimate_effort(f) for f in findings), timedelta(0)),
            current_risk_score=current,
            projected_risk_score=projected,
            risk_reduction_percentage=(current - projected) / current * 100.0 if current else 0.0,
            affected_resource_count=len({f.resource_id for f in findings}),
            recommendations=recommendations,
        )


def _coerce_options(options: RemediationPlanOptions | dict | None) -> RemediationPlanOptions:
    if options is None:
        return RemediationPlanOptions()
    if isinstance(options, RemediationPlanOptions):
        return options
    try:
        return RemediationPlanOptions.model_validate(options)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid remediation plan options", exc.errors()) from exc


def build_timeline(items: Sequence[RemediationItem], start: datetime) -> ImplementationTimeline:
    """One phase per priority label, chained back to back from ``start``."""
    groups: dict[str, list[RemediationItem]] = {}
    for item in items:
        groups.setdefault(item.priority, []).append(item)

    phases = []
    cursor = start
    for label in sorted(groups, key=priority_rank):
        group = groups[label]
        end = cursor + sum((i.estimated_effort for i in group), timedelta(0))
        phases.append(TimelinePhase(
            name=f"{label} Remediations",
            priority=label,
            start=cursor,
            end=end,
            item_ids=[i.item_id for i in group],
        ))
        cursor = end
    return ImplementationTimeline(start=start, end=cursor, phases=phases)


def projected_risk_reduction(all_findings: Sequence[Finding], covered: Sequence[Finding]) -> float:
    total = calculate_risk_score(all_findings)
    if total <= 0:
        return 0.0
    covered_ids = {f.finding_id for f in covered}
    reduced = sum(finding_risk(f.severity) for f in all_findings if f.finding_id in covered_ids)
    return min(100.0, reduced / total * 100.0)


def plan_summary(plan: RemediationPlan) -> str:
    critical = sum(1 for i in plan.items if i.severity == Severity.CRITICAL)
    high = sum(1 for i in plan.items if i.severity == Severity.HIGH)
    automated = sum(1 for i in plan.items if i.automation_available)
    hours = plan.estimated_effort.total_seconds() / 3600
    return (
        f"Remediation plan contains {len(plan.items)} items: {critical} critical, "
        f"{high} high priority. {automated} items can be automated. "
        f"Estimated effort: {hours:.1f} hours. "
        f"Projected risk reduction: {plan.projected_risk_reduction:.1f}%."
    )
