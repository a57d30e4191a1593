"""BatchRemediationCoordinator: bounded-concurrency fan-out over the executor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError

from conmon.assessment.orchestrator import coerce_scope
from conmon.errors.exceptions import ValidationError
from conmon.families import family_of
from conmon.ids import generate_id
from conmon.logging_config import operation_context
from conmon.models.assessment import AssessmentScope
from conmon.models.enums import RemediationStatus, Severity
from conmon.models.finding import Finding
from conmon.models.remediation import (
    BatchRemediationOptions,
    BatchRemediationResult,
    BatchRemediationSummary,
    RemediationExecution,
    execution_for,
)
from conmon.remediation.executor import RemediationExecutor
from conmon.remediation.state_machine import transition

logger = logging.getLogger(__name__)


def _coerce_options(options: BatchRemediationOptions | dict | None) -> BatchRemediationOptions:
    if options is None:
        return BatchRemediationOptions()
    if isinstance(options, BatchRemediationOptions):
        return options
    try:
        return BatchRemediationOptions.model_validate(options)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid batch remediation options", exc.errors()) from exc


class BatchRemediationCoordinator:
    def __init__(self, executor: RemediationExecutor) -> None:
        self._executor = executor

    async def execute_batch(
        self,
        scope: AssessmentScope | str,
        findings: Sequence[Finding],
        options: BatchRemediationOptions | dict | None = None,
    ) -> BatchRemediationResult:
        """Remediate ``findings`` with at most ``max_concurrency`` in flight.

        With ``fail_fast`` the first unit that raises cancels the rest and
        the exception propagates. Otherwise a raising unit is replaced by a
        synthesized Failed record, so there is exactly one execution per
        input finding, in input order.
        """
        scope = coerce_scope(scope)
        options = _coerce_options(options)
        batch_id = generate_id("batch_")
        started = datetime.now(timezone.utc)
        semaphore = asyncio.Semaphore(options.max_concurrency)

        async def run_one(finding: Finding) -> RemediationExecution:
            async with semaphore:
                try:
                    return await self._executor.execute(scope, finding, options.execution)
                except Exception as exc:
                    if options.fail_fast:
                        raise
                    logger.warning("Batch %s: remediation of %s raised: %s", batch_id, finding.finding_id, exc)
                    return _failed_execution(scope, finding, exc)

        with operation_context(batch_id=batch_id, subscription_id=scope.subscription_id):
            logger.info(
                "Batch %s: remediating %d findings (max %d concurrent)",
                batch_id, len(findings), options.max_concurrency,
            )
            tasks = [asyncio.ensure_future(run_one(f)) for f in findings]
            try:
                executions = list(await asyncio.gather(*tasks))
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        completed = datetime.now(timezone.utc)
        result = BatchRemediationResult(
            batch_id=batch_id,
            subscription_id=scope.subscription_id,
            started_at=started,
            completed_at=completed,
            duration=completed - started,
            executions=executions,
            successful=sum(1 for e in executions if e.success),
            failed=sum(
                1 for e in executions
                if not e.success and e.status in (RemediationStatus.FAILED, RemediationStatus.ROLLED_BACK)
            ),
            pending=sum(1 for e in executions if e.status == RemediationStatus.PENDING),
            summary=summarize(findings, executions),
        )
        logger.info(
            "Batch %s finished: %d succeeded, %d failed, %d pending",
            batch_id, result.successful, result.failed, result.pending,
        )
        return result


def _failed_execution(scope: AssessmentScope, finding: Finding, exc: Exception) -> RemediationExecution:
    execution = execution_for(
        finding,
        execution_id=generate_id("exec_"),
        subscription_id=scope.subscription_id,
        started_at=datetime.now(timezone.utc),
    )
    execution.error = str(exc) or type(exc).__name__
    return transition(execution, RemediationStatus.FAILED)


def summarize(findings: Sequence[Finding], executions: Sequence[RemediationExecution]) -> BatchRemediationSummary:
    remediated = {e.finding_id for e in executions if e.success}
    by_severity = {s: 0 for s in Severity}
    families: list[str] = []
    by_type: dict[str, int] = {}
    for finding in findings:
        by_type[finding.finding_type.value] = by_type.get(finding.finding_type.value, 0) + 1
        for control_id in finding.affected_controls:
            family = family_of(control_id)
            if family not in families:
                families.append(family)
        if finding.finding_id in remediated:
            by_severity[finding.severity] += 1

    return BatchRemediationSummary(
        success_rate=len([e for e in executions if e.success]) / len(executions) * 100.0 if executions else 0.0,
        critical_remediated=by_severity[Severity.CRITICAL],
        high_remediated=by_severity[Severity.HIGH],
        medium_remediated=by_severity[Severity.MEDIUM],
        low_remediated=by_severity[Severity.LOW],
        control_families_affected=sorted(families),
        by_finding_type=by_type,
    )
