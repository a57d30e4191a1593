"""In-memory persistent store, for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from datetime import datetime

from conmon.integrations.base import EvidenceStore, PersistentStore
from conmon.models.assessment import ComplianceAssessment
from conmon.models.evidence import EvidencePackage
from conmon.models.finding import Finding
from conmon.models.remediation import RemediationExecution


def _within(ts: datetime, since: datetime | None, until: datetime | None) -> bool:
    return (since is None or ts >= since) and (until is None or ts <= until)


class InMemoryStore(PersistentStore, EvidenceStore):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.assessments: dict[str, ComplianceAssessment] = {}
        self.findings: dict[str, dict[str, Finding]] = {}
        self.executions: dict[str, RemediationExecution] = {}
        self.evidence_packages: dict[str, EvidencePackage] = {}

    async def save_assessment(self, assessment: ComplianceAssessment) -> None:
        async with self._lock:
            self.assessments[assessment.assessment_id] = assessment.model_copy(deep=True)

    async def list_assessments(self, subscription_id, since=None, until=None):
        async with self._lock:
            return sorted(
                (
                    a for a in self.assessments.values()
                    if a.subscription_id == subscription_id and _within(a.started_at, since, until)
                ),
                key=lambda a: a.started_at,
            )

    async def save_findings(self, subscription_id: str, findings: list[Finding]) -> None:
        async with self._lock:
            bucket = self.findings.setdefault(subscription_id, {})
            for finding in findings:
                bucket[finding.finding_id] = finding

    async def list_findings(self, subscription_id, since=None, until=None):
        async with self._lock:
            return [
                f for f in self.findings.get(subscription_id, {}).values()
                if _within(f.detected_at, since, until)
            ]

    async def save_execution(self, execution: RemediationExecution) -> None:
        async with self._lock:
            self.executions[execution.execution_id] = execution.model_copy(deep=True)

    async def list_executions(self, subscription_id, since=None, until=None):
        async with self._lock:
            return sorted(
                (
                    e for e in self.executions.values()
                    if e.subscription_id == subscription_id and _within(e.started_at, since, until)
                ),
                key=lambda e: e.started_at,
            )

    async def save_evidence_package(self, package: EvidencePackage) -> None:
        async with self._lock:
            self.evidence_packages[package.package_id] = package.model_copy(deep=True)
