"""RemediationExecutor: applies one finding's remediation through the execution state machine.

Every status change goes through :func:`conmon.remediation.state_machine.transition`.
Errors while applying a remediation are caught here and recorded as a
Failed execution; they never escape to a plan or batch caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError

from conmon.assessment.orchestrator import coerce_scope
from conmon.config import settings
from conmon.errors.exceptions import ValidationError
from conmon.ids import backup_reference, generate_id
from conmon.integrations.base import InfrastructureRemediator, PersistentStore, SnapshotProvider
from conmon.logging_config import operation_context
from conmon.models.assessment import AssessmentScope
from conmon.models.enums import RemediationStatus
from conmon.models.finding import Finding
from conmon.models.remediation import (
    ExecutionOptions,
    RemediationExecution,
    RemediationProgress,
    RemediationStep,
    ResourceSnapshot,
    ValidationCheck,
    ValidationResult,
    execution_for,
)
from conmon.remediation.actions import ActionHandlerRegistry
from conmon.remediation.history import ExecutionHistory
from conmon.remediation.planner import build_steps
from conmon.remediation.state_machine import transition

logger = logging.getLogger(__name__)

MANUAL_REQUIRED = "Manual remediation required"
NO_AUTOMATED_METHOD = "Manual remediation required - no automated method available"


def coerce_execution_options(options: ExecutionOptions | dict | None) -> ExecutionOptions:
    if options is None:
        return ExecutionOptions()
    if isinstance(options, ExecutionOptions):
        return options
    try:
        return ExecutionOptions.model_validate(options)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid execution options", exc.errors()) from exc


class RemediationExecutor:
    def __init__(
        self,
        remediator: InfrastructureRemediator | None = None,
        actions: ActionHandlerRegistry | None = None,
        snapshots: SnapshotProvider | None = None,
        store: PersistentStore | None = None,
        history: ExecutionHistory | None = None,
        automation_enabled: bool | None = None,
    ) -> None:
        self._remediator = remediator
        self._actions = actions or ActionHandlerRegistry()
        self._snapshots = snapshots
        self._store = store
        self.history = history or ExecutionHistory()
        self._automation_enabled = (
            settings.enable_automated_remediation if automation_enabled is None else automation_enabled
        )

    # ── Public operations ─────────────────────────────────────────────────

    async def execute(
        self,
        scope: AssessmentScope | str,
        finding: Finding,
        options: ExecutionOptions | dict | None = None,
    ) -> RemediationExecution:
        """Remediate one finding.

        Returns a Pending record when approval is required, a Completed
        no-op record for dry runs, and otherwise the outcome of a real run.
        """
        scope = coerce_scope(scope)
        options = coerce_execution_options(options)
        execution = execution_for(
            finding,
            execution_id=generate_id("exec_"),
            subscription_id=scope.subscription_id,
            started_at=datetime.now(timezone.utc),
            dry_run=options.dry_run,
            requested_by=options.requested_by,
        )

        with operation_context(execution_id=execution.execution_id, finding_id=finding.finding_id):
            if options.require_approval:
                execution.message = "Remediation awaiting approval"
                logger.info("Execution %s pending approval", execution.execution_id)
            elif options.dry_run:
                self._dry_run(execution, finding)
            else:
                await self._run(scope, finding, options, execution)
            await self._record(execution)
        return execution

    async def process_approval(
        self,
        execution_id: str,
        approved: bool,
        approver: str,
        comments: str | None = None,
    ) -> RemediationExecution:
        """Decide a Pending execution. Approval does not start the run; call :meth:`resume`."""
        if not approver:
            raise ValidationError("approver is required")
        execution = self.history.get(execution_id)
        transition(execution, RemediationStatus.APPROVED if approved else RemediationStatus.REJECTED)
        execution.approved_by = approver
        execution.approved_at = datetime.now(timezone.utc)
        execution.approval_comments = comments
        execution.message = "Remediation approved" if approved else "Remediation rejected"
        logger.info("Execution %s %s by %s", execution_id, execution.status, approver)
        await self._record(execution)
        return execution

    async def resume(
        self,
        execution_id: str,
        finding: Finding,
        options: ExecutionOptions | dict | None = None,
    ) -> RemediationExecution:
        """Run an Approved execution for real."""
        options = coerce_execution_options(options)
        execution = self.history.get(execution_id)
        if execution.finding_id != finding.finding_id:
            raise ValidationError(
                f"Execution {execution_id} belongs to finding {execution.finding_id}, "
                f"not {finding.finding_id}"
            )
        if execution.status != RemediationStatus.APPROVED:
            raise ValidationError(f"Execution {execution_id} is {execution.status}, not approved")

        scope = AssessmentScope(subscription_id=execution.subscription_id)
        with operation_context(execution_id=execution_id, finding_id=finding.finding_id):
            await self._run(scope, finding, options, execution)
            await self._record(execution)
        return execution

    def get_execution(self, execution_id: str) -> RemediationExecution:
        return self.history.get(execution_id)

    def get_history(
        self,
        subscription_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[RemediationExecution]:
        return self.history.query(subscription_id, since, until)

    def get_progress(self, subscription_id: str, since: datetime | None = None) -> RemediationProgress:
        since = since or datetime.now(timezone.utc) - timedelta(days=30)
        executions = self.history.query(subscription_id, since=since)
        by_status: dict[str, int] = {}
        for execution in executions:
            by_status[execution.status.value] = by_status.get(execution.status.value, 0) + 1
        completed = by_status.get(RemediationStatus.COMPLETED.value, 0)
        return RemediationProgress(
            subscription_id=subscription_id,
            since=since,
            total=len(executions),
            by_status=by_status,
            completion_rate=completed / len(executions) * 100.0 if executions else 0.0,
        )

    # ── Execution paths ───────────────────────────────────────────────────

    def _dry_run(self, execution: RemediationExecution, finding: Finding) -> None:
        execution.steps = build_steps(finding)
        execution.changes_applied = [step.description for step in execution.steps]
        execution.message = (
            f"DRY RUN: Would apply {len(execution.changes_applied)} changes to {finding.resource_id}"
        )
        transition(execution, RemediationStatus.COMPLETED)

    def _fail(self, execution: RemediationExecution, error: str) -> None:
        if execution.status == RemediationStatus.APPROVED:
            transition(execution, RemediationStatus.IN_PROGRESS)
        execution.error = error
        transition(execution, RemediationStatus.FAILED)
        logger.warning("Execution %s failed: %s", execution.execution_id, error)

    async def _run(
        self,
        scope: AssessmentScope,
        finding: Finding,
        options: ExecutionOptions,
        execution: RemediationExecution,
    ) -> None:
        if not finding.is_auto_remediable:
            self._fail(execution, MANUAL_REQUIRED)
            return
        if not self._automation_enabled:
            self._fail(execution, "Automated remediation is disabled")
            return

        transition(execution, RemediationStatus.IN_PROGRESS)
        execution.backup_id = backup_reference()
        try:
            if options.capture_snapshots:
                execution.before_snapshot = await self._capture(finding.resource_id)
            applied = await self._apply(scope, finding, execution)
            if applied and options.capture_snapshots:
                execution.after_snapshot = await self._capture(finding.resource_id)
        except Exception as exc:
            logger.exception("Execution %s raised while applying remediation", execution.execution_id)
            self._fail(execution, str(exc))
            return

        if not applied:
            self._fail(execution, execution.error or NO_AUTOMATED_METHOD)
            return

        if not options.auto_validate:
            execution.message = f"Applied {execution.steps_executed} changes to {finding.resource_id}"
            transition(execution, RemediationStatus.COMPLETED)
            return

        transition(execution, RemediationStatus.VALIDATING)
        execution.validation = self._validate(execution)
        if execution.validation.is_valid:
            execution.message = f"Applied {execution.steps_executed} changes to {finding.resource_id}"
            transition(execution, RemediationStatus.COMPLETED)
        elif options.auto_rollback_on_failure and execution.before_snapshot is not None:
            await self._rollback(execution)
        else:
            self._fail(execution, f"Post-remediation validation failed: {execution.validation.failure_reason}")

    async def _apply(
        self, scope: AssessmentScope, finding: Finding, execution: RemediationExecution
    ) -> bool:
        if self._remediator is not None and await self._remediator.can_auto_remediate(finding):
            plan = await self._remediator.generate_plan(finding)
            result = await self._remediator.execute(plan, dry_run=False)
            for order, outcome in enumerate(result.outcomes, start=1):
                execution.steps.append(RemediationStep(
                    order=order, description=outcome.description, automated=True
                ))
                if outcome.success:
                    execution.changes_applied.append(outcome.description)
                    execution.steps_executed += 1
            if not result.success:
                execution.error = "; ".join(result.errors) or "Infrastructure remediation failed"
            return result.success

        if finding.remediation_actions:
            for order, action in enumerate(finding.remediation_actions, start=1):
                change = await self._actions.apply(scope.subscription_id, finding, action)
                execution.steps.append(RemediationStep(
                    order=order,
                    description=action.description,
                    command=action.command,
                    script=action.script_path,
                    automated=True,
                ))
                execution.changes_applied.append(change)
                execution.steps_executed += 1
            return True

        execution.error = NO_AUTOMATED_METHOD
        return False

    @staticmethod
    def _validate(execution: RemediationExecution) -> ValidationResult:
        checks = [
            ValidationCheck(
                name="Execution Status",
                passed=execution.error is None,
                detail=execution.error or "Remediation applied",
            ),
            ValidationCheck(
                name="Steps Completed",
                passed=execution.steps_executed > 0,
                detail=f"{execution.steps_executed} steps executed",
            ),
        ]
        failed = [c.name for c in checks if not c.passed]
        return ValidationResult(
            is_valid=not failed,
            checks=checks,
            failure_reason=", ".join(failed) if failed else None,
            validated_at=datetime.now(timezone.utc),
        )

    async def _capture(self, resource_id: str) -> ResourceSnapshot:
        state = await self._snapshots.capture(resource_id) if self._snapshots is not None else {}
        return ResourceSnapshot(
            snapshot_id=generate_id("snap_"),
            resource_id=resource_id,
            captured_at=datetime.now(timezone.utc),
            state=state,
        )

    async def _rollback(self, execution: RemediationExecution) -> None:
        snapshot = execution.before_snapshot
        try:
            if self._snapshots is not None:
                await self._snapshots.restore(snapshot.resource_id, snapshot.state)
        except Exception as exc:
            logger.exception("Rollback of execution %s failed", execution.execution_id)
            self._fail(execution, f"Validation failed and rollback failed: {exc}")
            return
        execution.rolled_back_at = datetime.now(timezone.utc)
        execution.error = f"Validation failed ({execution.validation.failure_reason}); rolled back"
        transition(execution, RemediationStatus.ROLLED_BACK)
        logger.warning("Execution %s rolled back to snapshot %s", execution.execution_id, snapshot.snapshot_id)

    async def _record(self, execution: RemediationExecution) -> None:
        self.history.record(execution)
        if self._store is None:
            return
        try:
            await self._store.save_execution(execution)
        except Exception:
            logger.exception("Failed to persist execution %s", execution.execution_id)
