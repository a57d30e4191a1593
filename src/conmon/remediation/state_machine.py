"""Remediation execution state machine.

::

    Pending ──> Approved ──> InProgress ──> Validating ──> Completed
       │  └──> Rejected          │              ├──────> Failed
       │                         │              └──────> RolledBack
       ├──> InProgress           ├──> Completed   (no post-validation)
       ├──> Completed (dry run)  └──> Failed
       └──> Failed (manual only)

RolledBack is only reachable from Validating, i.e. after a run finished
and its post-validation failed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from conmon.errors.exceptions import InvalidTransitionError
from conmon.models.enums import RemediationStatus as S
from conmon.models.remediation import RemediationExecution

TRANSITIONS: dict[S, frozenset[S]] = {
    S.PENDING: frozenset({S.APPROVED, S.REJECTED, S.IN_PROGRESS, S.COMPLETED, S.FAILED}),
    S.APPROVED: frozenset({S.IN_PROGRESS}),
    S.REJECTED: frozenset(),
    S.IN_PROGRESS: frozenset({S.VALIDATING, S.COMPLETED, S.FAILED}),
    S.VALIDATING: frozenset({S.COMPLETED, S.FAILED, S.ROLLED_BACK}),
    S.COMPLETED: frozenset(),
    S.FAILED: frozenset(),
    S.ROLLED_BACK: frozenset(),
}

TERMINAL: frozenset[S] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: S, target: S) -> bool:
    return target in TRANSITIONS[current]


def transition(execution: RemediationExecution, target: S) -> RemediationExecution:
    """Move ``execution`` to ``target`` in place.

    Entering a terminal state stamps completion time and duration.

    Raises:
        InvalidTransitionError: ``target`` is not reachable from the current state.
    """
    if not can_transition(execution.status, target):
        raise InvalidTransitionError("remediation execution", execution.status, target)
    execution.status = target
    if target in TERMINAL:
        execution.completed_at = datetime.now(timezone.utc)
        execution.duration = execution.completed_at - execution.started_at
        execution.success = target == S.COMPLETED
    return execution
