"""Pydantic models for remediation plans, executions and batch runs."""

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from conmon.config import settings
from conmon.models.enums import RemediationStatus, Severity
from conmon.models.finding import Finding


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class RemediationPlanOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    minimum_severity: Severity = Severity.LOW
    include_families: list[str] = Field(default_factory=list)
    exclude_families: list[str] = Field(default_factory=list)
    automatable_only: bool = False


class RemediationStep(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order: int = Field(..., ge=1)
    description: str
    command: str | None = None
    script: str | None = None
    automated: bool = False


class RollbackPlan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str
    steps: list[str]
    estimated_duration: timedelta


class RemediationItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_id: str
    finding_id: str
    control_id: str | None = None
    resource_id: str
    title: str
    severity: Severity
    priority: str
    automation_available: bool
    estimated_effort: timedelta
    steps: list[RemediationStep] = Field(default_factory=list)
    validation_steps: list[str] = Field(default_factory=list)
    rollback_plan: RollbackPlan | None = None
    dependencies: list[str] = Field(default_factory=list)


class TimelinePhase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    priority: str
    start: datetime
    end: datetime
    item_ids: list[str] = Field(default_factory=list)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class ImplementationTimeline(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start: datetime
    end: datetime
    phases: list[TimelinePhase] = Field(default_factory=list)


class RemediationPlan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plan_id: str = Field(..., pattern=r"^plan_[A-Za-z0-9_-]+$")
    subscription_id: str
    created_at: datetime
    items: list[RemediationItem] = Field(default_factory=list)
    total_findings: int = 0
    estimated_effort: timedelta = timedelta(0)
    timeline: ImplementationTimeline | None = None
    projected_risk_reduction: float = Field(0.0, ge=0.0, le=100.0)
    executive_summary: str = ""


class RemediationImpactAnalysis(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subscription_id: str
    total_findings: int
    automatable_findings: int
    manual_findings: int
    estimated_effort: timedelta
    current_risk_score: float
    projected_risk_score: float
    risk_reduction_percentage: float
    affected_resource_count: int
    recommendations: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dry_run: bool = False
    require_approval: bool = False
    capture_snapshots: bool = True
    auto_validate: bool = True
    auto_rollback_on_failure: bool = True
    requested_by: str | None = None


class ResourceSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    snapshot_id: str
    resource_id: str
    captured_at: datetime
    state: dict[str, Any] = Field(default_factory=dict)


class ValidationCheck(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    passed: bool
    detail: str = ""


class ValidationResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_valid: bool
    checks: list[ValidationCheck] = Field(default_factory=list)
    failure_reason: str | None = None
    validated_at: datetime


class RemediationExecution(BaseModel):
    """Lifecycle record for remediating one finding.

    ``status`` only moves along the edges in
    :mod:`conmon.remediation.state_machine`.
    """

    model_config = ConfigDict(extra="forbid")

    execution_id: str = Field(..., pattern=r"^exec_[A-Za-z0-9_-]+$")
    subscription_id: str
    finding_id: str
    resource_id: str
    finding_severity: Severity
    finding_type: str
    control_families: list[str] = Field(default_factory=list)
    status: RemediationStatus = RemediationStatus.PENDING
    success: bool = False
    dry_run: bool = False
    message: str | None = None
    error: str | None = None
    steps: list[RemediationStep] = Field(default_factory=list)
    steps_executed: int = 0
    changes_applied: list[str] = Field(default_factory=list)
    backup_id: str | None = None
    before_snapshot: ResourceSnapshot | None = None
    after_snapshot: ResourceSnapshot | None = None
    validation: ValidationResult | None = None
    requested_by: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_comments: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    duration: timedelta | None = None
    rolled_back_at: datetime | None = None


class BatchRemediationOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_concurrency: int = Field(default_factory=lambda: settings.batch_max_concurrency, ge=1)
    fail_fast: bool = False
    execution: ExecutionOptions = Field(default_factory=ExecutionOptions)


class BatchRemediationSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success_rate: float = 0.0
    critical_remediated: int = 0
    high_remediated: int = 0
    medium_remediated: int = 0
    low_remediated: int = 0
    control_families_affected: list[str] = Field(default_factory=list)
    by_finding_type: dict[str, int] = Field(default_factory=dict)


class BatchRemediationResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    batch_id: str = Field(..., pattern=r"^batch_[A-Za-z0-9_-]+$")
    subscription_id: str
    started_at: datetime
    completed_at: datetime
    duration: timedelta
    executions: list[RemediationExecution] = Field(default_factory=list)
    successful: int = 0
    failed: int = 0
    pending: int = 0
    summary: BatchRemediationSummary = Field(default_factory=BatchRemediationSummary)


class RemediationProgress(BaseModel):
    """Execution counts for one subscription since a point in time."""

    model_config = ConfigDict(extra="forbid")

    subscription_id: str
    since: datetime
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    completion_rate: float = 0.0


def execution_for(finding: Finding, *, execution_id: str, subscription_id: str,
                  started_at: datetime, dry_run: bool = False,
                  requested_by: str | None = None) -> RemediationExecution:
    """Fresh Pending execution record for ``finding``."""
    return RemediationExecution(
        execution_id=execution_id,
        subscription_id=subscription_id,
        finding_id=finding.finding_id,
        resource_id=finding.resource_id,
        finding_severity=finding.severity,
        finding_type=str(finding.finding_type),
        control_families=finding.control_families,
        dry_run=dry_run,
        requested_by=requested_by,
        started_at=started_at,
    )
