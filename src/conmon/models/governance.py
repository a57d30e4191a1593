"""Pydantic models for governance decisions and approval workflows."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from conmon.models.enums import (
    ApprovalStatus,
    GovernanceDecision,
    PolicyComplianceState,
    PolicyEffect,
    Severity,
)


class ActionRequest(BaseModel):
    """A risky operation about to be performed (a tool call, an API write)."""

    model_config = ConfigDict(extra="forbid")

    request_id: str
    action_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    requested_by: str | None = None


class ActionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    error: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)


class PolicyState(BaseModel):
    """Compliance state of one external policy assignment for one resource."""

    model_config = ConfigDict(extra="forbid")

    policy_definition_id: str
    policy_assignment_id: str | None = None
    compliance_state: PolicyComplianceState
    effect: str
    evaluated_at: datetime | None = None


class PolicyViolation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    policy_id: str
    policy_name: str
    severity: Severity
    description: str
    recommended_action: str
    effect: str | None = None
    resource_id: str | None = None


class ComplianceViolation(BaseModel):
    """Violation detected after an action ran."""

    model_config = ConfigDict(extra="forbid")

    violation_id: str
    framework: str = "ATO"
    control_id: str | None = None
    description: str
    severity: Severity
    evidence: str | None = None
    remediation_steps: list[str] = Field(default_factory=list)


class ApprovalWorkflow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workflow_id: str = Field(..., pattern=r"^apwf_[A-Za-z0-9_-]+$")
    request_id: str
    action_name: str
    requested_by: str | None = None
    required_approvers: list[str]
    priority: int = Field(..., ge=3, le=5)
    status: ApprovalStatus = ApprovalStatus.PENDING
    justification: str
    violations: list[PolicyViolation] = Field(default_factory=list)
    created_at: datetime
    expires_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_comments: str | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None


class PreFlightResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    request_id: str
    decision: GovernanceDecision
    is_approved: bool
    reason: str
    violations: list[PolicyViolation] = Field(default_factory=list)
    approval_workflow: ApprovalWorkflow | None = None
    resource_id: str | None = None
    evaluated_at: datetime


class PostFlightResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    request_id: str
    violations: list[ComplianceViolation] = Field(default_factory=list)
    requires_remediation: bool = False
    remediation_actions: list[str] = Field(default_factory=list)
    evaluated_at: datetime


def effect_of(raw: str) -> PolicyEffect | None:
    """Parse an enforcement effect case-insensitively; unknown effects yield None."""
    try:
        return PolicyEffect(raw.strip().lower())
    except ValueError:
        return None
