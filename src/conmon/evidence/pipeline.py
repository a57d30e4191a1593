"""EvidencePipeline: typed evidence collection for one control family."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from conmon.assessment.orchestrator import coerce_scope, report_progress
from conmon.errors.exceptions import OperationCancelledError, ValidationError
from conmon.evidence.scoring import (
    EVIDENCE_TYPES,
    attestation_statement,
    completeness_score,
    evidence_summary,
)
from conmon.families import ALL_FAMILIES, evidence_target
from conmon.ids import generate_id
from conmon.integrations.base import EvidenceCollector, EvidenceStore, ProgressSink
from conmon.logging_config import operation_context
from conmon.models.assessment import AssessmentProgress, AssessmentScope
from conmon.models.enums import EvidenceType
from conmon.models.evidence import EvidenceItem, EvidencePackage
from conmon.scanning.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

_COLLECTOR_METHODS: dict[EvidenceType, str] = {
    EvidenceType.CONFIGURATION: "collect_configuration_evidence",
    EvidenceType.LOGS: "collect_log_evidence",
    EvidenceType.METRICS: "collect_metric_evidence",
    EvidenceType.POLICIES: "collect_policy_evidence",
    EvidenceType.ACCESS_CONTROL: "collect_access_control_evidence",
}


class EvidencePipeline:
    def __init__(
        self,
        collectors: CapabilityRegistry[EvidenceCollector],
        store: EvidenceStore | None = None,
    ) -> None:
        self._collectors = collectors
        self._store = store

    def _collectors_for(self, family: str) -> list[EvidenceCollector]:
        if family == ALL_FAMILIES:
            specialized = list(self._collectors.specialized().values())
            return specialized or [self._collectors.default]
        return [self._collectors.resolve(family)]

    async def collect_evidence(
        self,
        scope: AssessmentScope | str,
        family: str,
        progress: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> EvidencePackage:
        """Collect the five evidence types for ``family`` and score completeness.

        A failing sub-collector is logged and recorded in ``failed_types``;
        the remaining types are still collected. ``family`` may be ``"All"``
        to gather from every specialized collector.
        """
        scope = coerce_scope(scope)
        if not family or not family.strip():
            raise ValidationError("control family is required")
        family = family.strip()
        family = ALL_FAMILIES if family.upper() == ALL_FAMILIES.upper() else family.upper()

        started = datetime.now(timezone.utc)
        package = EvidencePackage(
            package_id=generate_id("evp_"),
            subscription_id=scope.subscription_id,
            control_family=family,
            collection_started_at=started,
        )
        collectors = self._collectors_for(family)
        total = len(EVIDENCE_TYPES)

        with operation_context(package_id=package.package_id, subscription_id=scope.subscription_id):
            for index, evidence_type in enumerate(EVIDENCE_TYPES):
                if cancel is not None and cancel.is_set():
                    self._finalize(package, family)
                    raise OperationCancelledError("evidence collection", partial=package)

                items = await self._collect_type(collectors, evidence_type, scope, family, package)
                package.evidence.extend(items)
                report_progress(progress, AssessmentProgress(
                    total_families=total,
                    completed_families=index + 1,
                    current_family=family,
                    message=f"Collected {len(items)} {evidence_type.value} evidence items",
                ))

            self._finalize(package, family)
            logger.info(
                "Evidence package %s for %s: %d items, %.1f%% complete",
                package.package_id, family, len(package.evidence), package.completeness_score,
            )
            await self._persist(package)
        return package

    async def _collect_type(
        self,
        collectors: list[EvidenceCollector],
        evidence_type: EvidenceType,
        scope: AssessmentScope,
        family: str,
        package: EvidencePackage,
    ) -> list[EvidenceItem]:
        method = _COLLECTOR_METHODS[evidence_type]
        items: list[EvidenceItem] = []
        for collector in collectors:
            try:
                items.extend(await getattr(collector, method)(scope.subscription_id, family))
            except Exception as exc:
                logger.warning("%s evidence collection failed for %s: %s", evidence_type.value, family, exc)
                if evidence_type not in package.failed_types:
                    package.failed_types.append(evidence_type)
        return items

    @staticmethod
    def _finalize(package: EvidencePackage, family: str) -> None:
        completed = datetime.now(timezone.utc)
        package.collection_completed_at = completed
        package.duration = completed - package.collection_started_at
        package.completeness_score = completeness_score(package.evidence, evidence_target(family))
        package.summary = evidence_summary(package)
        package.attestation_statement = attestation_statement(package, completed)
        if package.failed_types:
            package.error = "Failed to collect: " + ", ".join(t.value for t in package.failed_types)

    async def _persist(self, package: EvidencePackage) -> None:
        if self._store is None:
            return
        try:
            await self._store.save_evidence_package(package)
        except Exception:
            logger.exception("Failed to store evidence package %s", package.package_id)
