"""Pure scoring functions: family compliance, overall score and risk profile."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from conmon.models.assessment import ControlFamilyAssessment, RiskProfile
from conmon.models.enums import RiskLevel, Severity
from conmon.models.finding import Control, Finding

SEVERITY_RISK_WEIGHTS: dict[Severity, float] = {
    Severity.CRITICAL: 10.0,
    Severity.HIGH: 7.5,
    Severity.MEDIUM: 5.0,
    Severity.LOW: 2.5,
}
# Weight for severities outside the table when scoring individual findings.
UNWEIGHTED_FINDING_RISK = 1.0

TOP_RISK_THRESHOLD = 70.0
MAX_TOP_RISKS = 5


def failed_control_ids(findings: Iterable[Finding], controls: Sequence[Control]) -> set[str]:
    """Controls of this family named by at least one finding (case-insensitive)."""
    family_ids = {c.control_id.upper() for c in controls}
    failed: set[str] = set()
    for finding in findings:
        for control_id in finding.affected_controls:
            if control_id.upper() in family_ids:
                failed.add(control_id.upper())
    return failed


def family_counts(findings: Iterable[Finding], controls: Sequence[Control]) -> tuple[int, int]:
    """Return ``(total, passed)`` control counts for one family."""
    total = len(controls)
    passed = max(0, total - len(failed_control_ids(findings, controls)))
    return total, passed


def compliance_score(passed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, passed / total * 100.0))


def overall_score(families: Iterable[ControlFamilyAssessment]) -> float:
    """Σpassed / Σtotal across families, not a mean of family percentages."""
    total = passed = 0
    for family in families:
        total += family.total_controls
        passed += family.passed_controls
    return compliance_score(passed, total)


def severity_counts(findings: Iterable[Finding]) -> dict[Severity, int]:
    counts = {s: 0 for s in Severity}
    for finding in findings:
        counts[finding.severity] += 1
    return counts


def finding_risk(severity: Severity) -> float:
    return SEVERITY_RISK_WEIGHTS.get(severity, UNWEIGHTED_FINDING_RISK)


def calculate_risk_score(findings: Iterable[Finding]) -> float:
    """Σ per-finding risk: Critical 10, High 7.5, Medium 5, Low 2.5, other 1."""
    return sum(finding_risk(f.severity) for f in findings)


def average_risk_score(findings: Sequence[Finding]) -> float:
    if not findings:
        return 0.0
    return calculate_risk_score(findings) / len(findings)


def risk_level_for_score(score: float) -> RiskLevel:
    """Band an average per-finding risk score."""
    if score >= 8:
        return RiskLevel.CRITICAL
    if score >= 6:
        return RiskLevel.HIGH
    if score >= 4:
        return RiskLevel.MEDIUM
    if score >= 2:
        return RiskLevel.LOW
    return RiskLevel.MINIMAL


def risk_level_for_counts(counts: dict[Severity, int]) -> RiskLevel:
    if counts.get(Severity.CRITICAL, 0) > 0:
        return RiskLevel.CRITICAL
    if counts.get(Severity.HIGH, 0) > 5:
        return RiskLevel.HIGH
    if counts.get(Severity.MEDIUM, 0) > 10:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def weighted_count_score(counts: dict[Severity, int]) -> float:
    """Critical*10 + High*7.5 + Medium*5 + Low*2.5; informational findings add nothing."""
    return sum(counts.get(s, 0) * w for s, w in SEVERITY_RISK_WEIGHTS.items())


def top_risks(families: Iterable[ControlFamilyAssessment]) -> list[str]:
    weak = sorted(
        (f for f in families if f.compliance_score < TOP_RISK_THRESHOLD),
        key=lambda f: f.compliance_score,
    )
    return [f"{f.family_name}: {f.compliance_score:.1f}% compliant" for f in weak[:MAX_TOP_RISKS]]


def build_risk_profile(
    families: Sequence[ControlFamilyAssessment], findings: Sequence[Finding]
) -> RiskProfile:
    counts = severity_counts(findings)
    return RiskProfile(
        risk_level=risk_level_for_counts(counts),
        risk_score=weighted_count_score(counts),
        average_risk_score=average_risk_score(findings),
        top_risks=top_risks(families),
    )


def executive_summary(score: float, counts: dict[Severity, int], level: RiskLevel) -> str:
    return (
        f"ATO Compliance Assessment completed with {score:.1f}% compliance. "
        f"Found {counts.get(Severity.CRITICAL, 0)} critical, {counts.get(Severity.HIGH, 0)} high, "
        f"{counts.get(Severity.MEDIUM, 0)} medium, and {counts.get(Severity.LOW, 0)} low "
        f"severity findings. Risk level: {level.value.capitalize()}"
    )
