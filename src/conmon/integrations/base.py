"""Abstract collaborators the engines orchestrate.

Cloud enumeration, rule checks, evidence gathering, infrastructure changes,
durable storage and policy lookups all live behind these interfaces; the
engines only sequence calls to them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from conmon.models.assessment import AssessmentProgress, ComplianceAssessment
from conmon.models.evidence import EvidenceItem, EvidencePackage
from conmon.models.finding import Control, Finding, RemediationAction, Resource
from conmon.models.governance import PolicyState
from conmon.models.remediation import RemediationExecution

ProgressSink = Callable[[AssessmentProgress], Any]
"""Fire-and-forget progress callback. Return values are ignored."""


class ResourceInventory(ABC):
    """Enumerates resources from the cloud provider."""

    @abstractmethod
    async def list_resources(
        self, subscription_id: str, resource_group: str | None = None
    ) -> list[Resource]:
        """List resources in a subscription, optionally limited to one group.

        Args:
            subscription_id: Subscription to enumerate.
            resource_group: Only return resources in this group.

        Returns:
            List of resources.
        """
        ...

    async def list_resource_groups(self, subscription_id: str) -> list[str]:
        resources = await self.list_resources(subscription_id)
        return sorted({r.resource_group for r in resources if r.resource_group})


class ControlCatalog(ABC):
    @abstractmethod
    async def get_controls(self, family: str) -> list[Control]:
        """Return the ordered controls to scan for a family code."""
        ...


class Scanner(ABC):
    """Evaluates one control against a subscription's resources."""

    @abstractmethod
    async def scan_control(self, subscription_id: str, control: Control) -> list[Finding]:
        ...

    async def scan_control_in_resource_group(
        self, subscription_id: str, resource_group: str, control: Control
    ) -> list[Finding]:
        """Resource-group scoped scan.

        The base implementation scans the subscription and keeps findings
        raised in ``resource_group``.
        """
        findings = await self.scan_control(subscription_id, control)
        wanted = resource_group.lower()
        return [f for f in findings if (f.resource_group or "").lower() == wanted]


class EvidenceCollector(ABC):
    """Gathers typed evidence for one control family."""

    @abstractmethod
    async def collect_configuration_evidence(
        self, subscription_id: str, family: str
    ) -> list[EvidenceItem]: ...

    @abstractmethod
    async def collect_log_evidence(self, subscription_id: str, family: str) -> list[EvidenceItem]: ...

    @abstractmethod
    async def collect_metric_evidence(
        self, subscription_id: str, family: str
    ) -> list[EvidenceItem]: ...

    @abstractmethod
    async def collect_policy_evidence(
        self, subscription_id: str, family: str
    ) -> list[EvidenceItem]: ...

    @abstractmethod
    async def collect_access_control_evidence(
        self, subscription_id: str, family: str
    ) -> list[EvidenceItem]: ...


# ── Infrastructure remediation ─────────────────────────────────────────────


@dataclass
class InfrastructurePlan:
    finding_id: str
    resource_id: str
    actions: list[RemediationAction] = field(default_factory=list)


@dataclass
class ActionOutcome:
    action_id: str
    description: str
    success: bool
    error: str | None = None


@dataclass
class InfrastructureResult:
    success: bool
    outcomes: list[ActionOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class InfrastructureRemediator(ABC):
    """External engine that knows how to change infrastructure for a finding."""

    @abstractmethod
    async def can_auto_remediate(self, finding: Finding) -> bool: ...

    @abstractmethod
    async def generate_plan(self, finding: Finding) -> InfrastructurePlan: ...

    @abstractmethod
    async def execute(self, plan: InfrastructurePlan, dry_run: bool = False) -> InfrastructureResult:
        """Apply a plan.

        Returns:
            Overall success plus one outcome per attempted action.
        """
        ...


class SnapshotProvider(ABC):
    """Captures and restores resource state around a remediation."""

    @abstractmethod
    async def capture(self, resource_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def restore(self, resource_id: str, state: dict[str, Any]) -> None: ...


# ── Persistence ────────────────────────────────────────────────────────────


class PersistentStore(ABC):
    """Durable store for assessments, findings and executions."""

    @abstractmethod
    async def save_assessment(self, assessment: ComplianceAssessment) -> None: ...

    @abstractmethod
    async def list_assessments(
        self, subscription_id: str, since: datetime | None = None, until: datetime | None = None
    ) -> list[ComplianceAssessment]: ...

    async def get_latest_assessment(self, subscription_id: str) -> ComplianceAssessment | None:
        assessments = await self.list_assessments(subscription_id)
        if not assessments:
            return None
        return max(assessments, key=lambda a: a.started_at)

    @abstractmethod
    async def save_findings(self, subscription_id: str, findings: list[Finding]) -> None: ...

    @abstractmethod
    async def list_findings(
        self, subscription_id: str, since: datetime | None = None, until: datetime | None = None
    ) -> list[Finding]: ...

    @abstractmethod
    async def save_execution(self, execution: RemediationExecution) -> None: ...

    @abstractmethod
    async def list_executions(
        self, subscription_id: str, since: datetime | None = None, until: datetime | None = None
    ) -> list[RemediationExecution]: ...


class EvidenceStore(ABC):
    @abstractmethod
    async def save_evidence_package(self, package: EvidencePackage) -> None: ...


# ── Governance ─────────────────────────────────────────────────────────────


class PolicySource(ABC):
    @abstractmethod
    async def get_policy_states(self, resource_id: str) -> list[PolicyState]:
        """Return compliance states of every policy assigned to a resource."""
        ...
