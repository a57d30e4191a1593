"""Approval workflow table: Pending -> Approved | Rejected, decided exactly once."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone

from conmon.config import settings
from conmon.errors.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from conmon.ids import generate_id
from conmon.models.enums import ApprovalStatus
from conmon.models.governance import ActionRequest, ApprovalWorkflow, PolicyViolation

logger = logging.getLogger(__name__)


class ApprovalWorkflowStore:
    """Thread-safe in-memory table of approval workflows."""

    def __init__(self, ttl_hours: int | None = None) -> None:
        self._ttl = timedelta(hours=ttl_hours if ttl_hours is not None else settings.approval_ttl_hours)
        self._lock = threading.Lock()
        self._workflows: dict[str, ApprovalWorkflow] = {}

    def create(
        self,
        request: ActionRequest,
        violations: list[PolicyViolation],
        required_approvers: list[str],
        priority: int,
        justification: str,
    ) -> ApprovalWorkflow:
        now = datetime.now(timezone.utc)
        workflow = ApprovalWorkflow(
            workflow_id=generate_id("apwf_"),
            request_id=request.request_id,
            action_name=request.action_name,
            requested_by=request.requested_by,
            required_approvers=required_approvers,
            priority=priority,
            justification=justification,
            violations=violations,
            created_at=now,
            expires_at=now + self._ttl,
        )
        with self._lock:
            self._workflows[workflow.workflow_id] = workflow
        logger.info(
            "Approval workflow %s created for request %s (priority %d)",
            workflow.workflow_id, request.request_id, priority,
        )
        return workflow

    def get(self, workflow_id: str) -> ApprovalWorkflow:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError("Approval workflow", workflow_id)
        return workflow

    def list_pending(self) -> list[ApprovalWorkflow]:
        with self._lock:
            pending = [w for w in self._workflows.values() if w.status == ApprovalStatus.PENDING]
        return sorted(pending, key=lambda w: (-w.priority, w.created_at))

    def approve(self, workflow_id: str, approver: str, comments: str | None = None) -> ApprovalWorkflow:
        if not approver:
            raise ValidationError("approver is required")
        with self._lock:
            workflow = self._pending(workflow_id, ApprovalStatus.APPROVED)
            workflow.status = ApprovalStatus.APPROVED
            workflow.approved_by = approver
            workflow.approved_at = datetime.now(timezone.utc)
            workflow.approval_comments = comments
        logger.info("Approval workflow %s approved by %s", workflow_id, approver)
        return workflow

    def reject(self, workflow_id: str, rejector: str, reason: str) -> ApprovalWorkflow:
        if not rejector:
            raise ValidationError("rejector is required")
        with self._lock:
            workflow = self._pending(workflow_id, ApprovalStatus.REJECTED)
            workflow.status = ApprovalStatus.REJECTED
            workflow.rejected_by = rejector
            workflow.rejected_at = datetime.now(timezone.utc)
            workflow.rejection_reason = reason
        logger.info("Approval workflow %s rejected by %s", workflow_id, rejector)
        return workflow

    def _pending(self, workflow_id: str, target: ApprovalStatus) -> ApprovalWorkflow:
        # caller holds the lock
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError("Approval workflow", workflow_id)
        if workflow.status != ApprovalStatus.PENDING:
            raise InvalidTransitionError("approval workflow", workflow.status, target)
        return workflow
