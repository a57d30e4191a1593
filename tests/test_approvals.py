"""Tests for the approval workflow sub-state-machine."""

import pytest

from conmon.errors.exceptions import ConflictError, NotFoundError, ValidationError
from conmon.governance.approvals import ApprovalWorkflowStore
from conmon.models.enums import ApprovalStatus
from conmon.models.governance import ActionRequest


@pytest.fixture
def approvals() -> ApprovalWorkflowStore:
    return ApprovalWorkflowStore(ttl_hours=24)


def _create(store: ApprovalWorkflowStore, priority: int = 4):
    request = ActionRequest(request_id="req-9", action_name="delete_vm", requested_by="agent")
    return store.create(request, [], ["resource-owner@company.com"], priority, "needs sign-off")


class TestApprovalWorkflow:
    def test_created_pending_with_expiry(self, approvals):
        workflow = _create(approvals)
        assert workflow.status == ApprovalStatus.PENDING
        assert (workflow.expires_at - workflow.created_at).total_seconds() == 24 * 3600
        assert approvals.list_pending() == [workflow]

    def test_approve_records_approver(self, approvals):
        workflow = _create(approvals)
        approved = approvals.approve(workflow.workflow_id, "owner@corp", "looks fine")
        assert approved.status == ApprovalStatus.APPROVED
        assert approved.approved_by == "owner@corp"
        assert approved.approval_comments == "looks fine"
        assert approved.approved_at is not None
        assert approvals.list_pending() == []

    def test_reject_records_reason(self, approvals):
        workflow = _create(approvals)
        rejected = approvals.reject(workflow.workflow_id, "owner@corp", "outside change window")
        assert rejected.status == ApprovalStatus.REJECTED
        assert rejected.rejected_by == "owner@corp"
        assert rejected.rejection_reason == "outside change window"

    def test_decided_exactly_once(self, approvals):
        workflow = _create(approvals)
        approvals.approve(workflow.workflow_id, "owner@corp")
        with pytest.raises(ConflictError):
            approvals.reject(workflow.workflow_id, "other@corp", "too late")
        with pytest.raises(ConflictError):
            approvals.approve(workflow.workflow_id, "other@corp")
        assert approvals.get(workflow.workflow_id).approved_by == "owner@corp"

    def test_pending_sorted_by_priority(self, approvals):
        low = _create(approvals, priority=3)
        high = _create(approvals, priority=5)
        assert approvals.list_pending() == [high, low]

    def test_unknown_and_anonymous(self, approvals):
        with pytest.raises(NotFoundError):
            approvals.approve("apwf_missing", "owner@corp")
        workflow = _create(approvals)
        with pytest.raises(ValidationError):
            approvals.approve(workflow.workflow_id, "")
