"""Evidence completeness scoring and attestation text."""

from collections.abc import Iterable
from datetime import datetime

from conmon.models.enums import EvidenceType
from conmon.models.evidence import EvidenceItem, EvidencePackage

# Collection order for typed sub-collectors.
EVIDENCE_TYPES: tuple[EvidenceType, ...] = (
    EvidenceType.CONFIGURATION,
    EvidenceType.LOGS,
    EvidenceType.METRICS,
    EvidenceType.POLICIES,
    EvidenceType.ACCESS_CONTROL,
)


def completeness_score(evidence: Iterable[EvidenceItem], target: int) -> float:
    """min(100, distinct types / target * 100), rounded to 2 places; 0 with no evidence."""
    distinct = {item.evidence_type for item in evidence}
    if not distinct or target <= 0:
        return 0.0
    return round(min(100.0, len(distinct) / target * 100.0), 2)


def evidence_summary(package: EvidencePackage) -> str:
    counts = package.count_by_type()
    parts = ", ".join(f"{count} {etype.value}" for etype, count in counts.items())
    summary = f"Collected {len(package.evidence)} pieces of evidence"
    return f"{summary}: {parts}" if parts else summary


def attestation_statement(package: EvidencePackage, collected_on: datetime) -> str:
    return (
        f"Evidence package {package.package_id} collected on {collected_on:%Y-%m-%d} "
        f"for control family {package.control_family} with "
        f"{package.completeness_score:.1f}% completeness. This evidence supports compliance "
        f"attestation for subscription {package.subscription_id}."
    )
