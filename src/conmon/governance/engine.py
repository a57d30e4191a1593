"""GovernancePolicyEngine: pre-flight decisions and post-flight violation checks.

Pre-flight evaluation order:

1. Resolve a resource context from the request arguments. No context
   means the action touches nothing governed: Allow.
2. With a resource id, query the policy source (cached per resource) and
   turn every non-compliant policy into a violation rated by its effect.
   Without one, apply the static fallback heuristics.
3. Decide: no violations Allow, any Critical Deny, any High
   RequiresApproval (with a workflow), otherwise AuditOnly.

Any exception while evaluating resolves to Deny.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from conmon.cache import TTLCache
from conmon.config import settings
from conmon.governance.approvals import ApprovalWorkflowStore
from conmon.ids import generate_id
from conmon.integrations.base import PolicySource
from conmon.models.enums import GovernanceDecision, PolicyComplianceState, PolicyEffect, Severity
from conmon.models.governance import (
    ActionRequest,
    ActionResult,
    ComplianceViolation,
    PolicyState,
    PolicyViolation,
    PostFlightResult,
    PreFlightResult,
    effect_of,
)

logger = logging.getLogger(__name__)

EFFECT_SEVERITY: dict[PolicyEffect, Severity] = {
    PolicyEffect.DENY: Severity.CRITICAL,
    PolicyEffect.DEPLOY_IF_NOT_EXISTS: Severity.HIGH,
    PolicyEffect.MODIFY: Severity.MEDIUM,
    PolicyEffect.AUDIT: Severity.LOW,
    PolicyEffect.AUDIT_IF_NOT_EXISTS: Severity.LOW,
}
UNKNOWN_EFFECT_SEVERITY = Severity.MEDIUM

RECOMMENDED_ACTIONS: dict[PolicyEffect, str] = {
    PolicyEffect.DENY: "Modify the request to comply with the policy or request a policy exemption",
    PolicyEffect.DEPLOY_IF_NOT_EXISTS: "Deploy the required companion resource or let the policy remediation task run",
    PolicyEffect.MODIFY: "Apply the configuration changes the policy requires",
    PolicyEffect.AUDIT: "Review the audit finding and remediate in the next maintenance window",
    PolicyEffect.AUDIT_IF_NOT_EXISTS: "Review the audit finding and remediate in the next maintenance window",
}
DEFAULT_RECOMMENDED_ACTION = "Review the policy requirements for this resource"

DEFAULT_APPROVERS: dict[Severity, list[str]] = {
    Severity.CRITICAL: ["security-admin@company.com", "compliance-officer@company.com"],
    Severity.HIGH: ["resource-owner@company.com"],
}
FALLBACK_APPROVERS = ["team-lead@company.com"]

ERROR_REMEDIATION_STEPS = [
    "Review error details",
    "Check security logs",
    "Validate tool permissions",
]

_ARGUMENT_KEYS = {
    "resource_id": ("resource_id", "resourceId"),
    "resource_type": ("resource_type", "resourceType"),
    "subscription_id": ("subscription_id", "subscriptionId"),
    "resource_group": ("resource_group", "resourceGroup", "resourceGroupName"),
}


@dataclass(frozen=True)
class ResourceContext:
    resource_id: str = ""
    resource_type: str = ""
    subscription_id: str = ""
    resource_group: str = ""


def _argument(arguments: dict, field_name: str) -> str:
    for key in _ARGUMENT_KEYS[field_name]:
        value = arguments.get(key)
        if value:
            return str(value)
    return ""


def _segment_after(parts: list[str], marker: str, width: int = 1) -> str:
    lowered = [p.lower() for p in parts]
    if marker in lowered:
        index = lowered.index(marker)
        tail = parts[index + 1:index + 1 + width]
        if len(tail) == width:
            return "/".join(tail)
    return ""


def resolve_context(arguments: dict) -> ResourceContext | None:
    """Best-effort resource context from request arguments or result content."""
    resource_id = _argument(arguments, "resource_id")
    resource_type = _argument(arguments, "resource_type")
    subscription_id = _argument(arguments, "subscription_id")
    resource_group = _argument(arguments, "resource_group")
    if not (resource_id or resource_type or subscription_id or resource_group):
        return None

    if resource_id:
        parts = [p for p in resource_id.split("/") if p]
        resource_type = resource_type or _segment_after(parts, "providers", 2)
        subscription_id = subscription_id or _segment_after(parts, "subscriptions")
        resource_group = resource_group or _segment_after(parts, "resourcegroups")
    return ResourceContext(resource_id, resource_type, subscription_id, resource_group)


def policy_name(policy_id: str) -> str:
    last = policy_id.rstrip("/").split("/")[-1]
    return last.replace("-", " ").replace("_", " ")


def violation_from_state(state: PolicyState, resource_id: str) -> PolicyViolation:
    effect = effect_of(state.effect)
    severity = EFFECT_SEVERITY.get(effect, UNKNOWN_EFFECT_SEVERITY)
    name = policy_name(state.policy_definition_id)
    return PolicyViolation(
        policy_id=state.policy_definition_id,
        policy_name=name,
        severity=severity,
        description=f"Resource is non-compliant with policy '{name}' (effect: {state.effect})",
        recommended_action=RECOMMENDED_ACTIONS.get(effect, DEFAULT_RECOMMENDED_ACTION),
        effect=state.effect,
        resource_id=resource_id,
    )


def fallback_violations(request: ActionRequest, context: ResourceContext) -> list[PolicyViolation]:
    """Static checks used when no concrete resource id is known."""
    violations = []
    if "delete" in request.action_name.lower():
        violations.append(PolicyViolation(
            policy_id="prevent-deletion-policy",
            policy_name="Prevent Resource Deletion",
            severity=Severity.HIGH,
            description="Deletion operations require manual approval",
            recommended_action="Request approval from resource owner",
        ))
    if "microsoft.storage" in context.resource_type.lower():
        violations.append(PolicyViolation(
            policy_id="storage-security-policy",
            policy_name="Storage Account Security",
            severity=Severity.MEDIUM,
            description="Storage operations must keep encryption and secure transfer enabled",
            recommended_action="Confirm secure transfer and encryption settings before proceeding",
        ))
    return violations


def decide(violations: list[PolicyViolation]) -> GovernanceDecision:
    if not violations:
        return GovernanceDecision.ALLOW
    if any(v.severity == Severity.CRITICAL for v in violations):
        return GovernanceDecision.DENY
    if any(v.severity.rank >= Severity.HIGH.rank for v in violations):
        return GovernanceDecision.REQUIRES_APPROVAL
    return GovernanceDecision.AUDIT_ONLY


def workflow_priority(violations: list[PolicyViolation]) -> int:
    if any(v.severity == Severity.CRITICAL for v in violations):
        return 5
    if any(v.severity == Severity.HIGH for v in violations):
        return 4
    return 3


class GovernancePolicyEngine:
    def __init__(
        self,
        policy_source: PolicySource,
        approvals: ApprovalWorkflowStore | None = None,
        cache_ttl_seconds: float | None = None,
        approvers: dict[Severity, list[str]] | None = None,
    ) -> None:
        self._source = policy_source
        self.approvals = approvals or ApprovalWorkflowStore()
        self._cache: TTLCache[list[PolicyState]] = TTLCache(
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.policy_cache_ttl_seconds
        )
        self._approvers = approvers or DEFAULT_APPROVERS

    # ── Pre-flight ────────────────────────────────────────────────────────

    async def evaluate_pre_flight(self, request: ActionRequest) -> PreFlightResult:
        """Decide whether ``request`` may proceed. Never fails open."""
        now = datetime.now(timezone.utc)
        try:
            context = resolve_context(request.arguments)
            if context is None:
                return PreFlightResult(
                    request_id=request.request_id,
                    decision=GovernanceDecision.ALLOW,
                    is_approved=True,
                    reason="No resource context found",
                    evaluated_at=now,
                )

            if context.resource_id:
                violations = await self._policy_violations(context.resource_id)
            else:
                violations = fallback_violations(request, context)

            decision = decide(violations)
            workflow = None
            if decision == GovernanceDecision.REQUIRES_APPROVAL:
                workflow = self.approvals.create(
                    request,
                    violations,
                    required_approvers=self.required_approvers(violations),
                    priority=workflow_priority(violations),
                    justification=(
                        f"Tool call '{request.action_name}' requires approval due to policy "
                        f"violations: {', '.join(v.policy_name for v in violations)}"
                    ),
                )
        except Exception as exc:
            # A policy source failure denies outright; the static heuristics only
            # cover requests that carry no concrete resource id.
            logger.exception("Pre-flight evaluation of %s failed; denying", request.request_id)
            return PreFlightResult(
                request_id=request.request_id,
                decision=GovernanceDecision.DENY,
                is_approved=False,
                reason=f"Policy evaluation failed: {exc}",
                evaluated_at=now,
            )

        result = PreFlightResult(
            request_id=request.request_id,
            decision=decision,
            is_approved=decision in (GovernanceDecision.ALLOW, GovernanceDecision.AUDIT_ONLY),
            reason=_reason(decision, violations),
            violations=violations,
            approval_workflow=workflow,
            resource_id=context.resource_id or None,
            evaluated_at=now,
        )
        log = logger.warning if decision != GovernanceDecision.ALLOW else logger.info
        log(
            "Pre-flight %s for %s: %s (%d violations)",
            request.request_id, request.action_name, decision, len(violations),
        )
        return result

    def required_approvers(self, violations: list[PolicyViolation]) -> list[str]:
        top = max((v.severity for v in violations), key=lambda s: s.rank, default=Severity.LOW)
        return list(self._approvers.get(top, FALLBACK_APPROVERS))

    async def _policy_states(self, resource_id: str) -> list[PolicyState]:
        return await self._cache.get_or_load(
            resource_id.lower(), lambda: self._source.get_policy_states(resource_id)
        )

    async def _policy_violations(self, resource_id: str) -> list[PolicyViolation]:
        states = await self._policy_states(resource_id)
        return [
            violation_from_state(s, resource_id)
            for s in states
            if s.compliance_state == PolicyComplianceState.NON_COMPLIANT
        ]

    # ── Post-flight ───────────────────────────────────────────────────────

    async def evaluate_post_flight(self, request: ActionRequest, result: ActionResult) -> PostFlightResult:
        """Check what an action left behind."""
        violations: list[ComplianceViolation] = []

        if not result.success or result.error:
            violations.append(ComplianceViolation(
                violation_id=generate_id("viol_"),
                framework="ATO",
                control_id="SI-2",
                description="Tool execution resulted in error - may indicate security issue",
                severity=Severity.MEDIUM,
                evidence=result.error or "Action reported failure",
                remediation_steps=list(ERROR_REMEDIATION_STEPS),
            ))

        context = resolve_context(result.content) or resolve_context(request.arguments)
        if context is not None and context.resource_id:
            # The action may have changed the resource; drop the cached state.
            self._cache.invalidate(context.resource_id.lower())
            try:
                policy_violations = await self._policy_violations(context.resource_id)
            except Exception as exc:
                logger.warning("Post-flight policy lookup for %s failed: %s", context.resource_id, exc)
                policy_violations = []
                violations.append(ComplianceViolation(
                    violation_id=generate_id("viol_"),
                    framework="Policy",
                    description="Post-flight policy evaluation could not complete",
                    severity=Severity.MEDIUM,
                    evidence=str(exc),
                    remediation_steps=["Re-run policy evaluation for the resource"],
                ))
            for pv in policy_violations:
                violations.append(ComplianceViolation(
                    violation_id=generate_id("viol_"),
                    framework="Policy",
                    description=pv.description,
                    severity=pv.severity,
                    evidence=pv.policy_id,
                    remediation_steps=[pv.recommended_action],
                ))

        actions: list[str] = []
        for violation in violations:
            for step in violation.remediation_steps:
                if step not in actions:
                    actions.append(step)

        outcome = PostFlightResult(
            request_id=request.request_id,
            violations=violations,
            requires_remediation=any(v.severity.rank >= Severity.HIGH.rank for v in violations),
            remediation_actions=actions,
            evaluated_at=datetime.now(timezone.utc),
        )
        if violations:
            logger.warning(
                "Post-flight %s: %d violations, remediation required=%s",
                request.request_id, len(violations), outcome.requires_remediation,
            )
        return outcome


def _reason(decision: GovernanceDecision, violations: list[PolicyViolation]) -> str:
    if decision == GovernanceDecision.ALLOW:
        return "No policy violations detected"
    names = ", ".join(v.policy_name for v in violations)
    if decision == GovernanceDecision.DENY:
        return f"Blocked by critical policy violations: {names}"
    if decision == GovernanceDecision.REQUIRES_APPROVAL:
        return f"Approval required due to policy violations: {names}"
    return f"Allowed with audit: {names}"
