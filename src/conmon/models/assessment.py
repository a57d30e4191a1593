"""Pydantic models for control-family and overall compliance assessments."""

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from conmon.models.enums import RiskLevel
from conmon.models.finding import Finding


class AssessmentScope(BaseModel):
    """Subscription (and optional resource group) an operation runs against."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    subscription_id: str = Field(..., min_length=1)
    resource_group: str | None = None


class ControlFamilyAssessment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    family_code: str
    family_name: str
    findings: list[Finding] = Field(default_factory=list)
    total_controls: int = Field(0, ge=0)
    passed_controls: int = Field(0, ge=0)
    compliance_score: float = Field(0.0, ge=0.0, le=100.0)
    assessed_at: datetime
    errors: list[str] = Field(default_factory=list)


class RiskProfile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    risk_level: RiskLevel
    risk_score: float = Field(0.0, ge=0.0)
    average_risk_score: float = Field(0.0, ge=0.0)
    top_risks: list[str] = Field(default_factory=list)


class ComplianceAssessment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assessment_id: str = Field(..., pattern=r"^asmt_[A-Za-z0-9_-]+$")
    subscription_id: str
    resource_group: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    duration: timedelta | None = None
    family_results: dict[str, ControlFamilyAssessment] = Field(default_factory=dict)
    overall_score: float = Field(0.0, ge=0.0, le=100.0)
    total_findings: int = 0
    critical_findings: int = 0
    high_findings: int = 0
    medium_findings: int = 0
    low_findings: int = 0
    informational_findings: int = 0
    risk_profile: RiskProfile | None = None
    executive_summary: str | None = None
    error: str | None = None

    @property
    def findings(self) -> list[Finding]:
        return [f for fam in self.family_results.values() for f in fam.findings]


class AssessmentProgress(BaseModel):
    """Progress notification emitted while an assessment or collection runs."""

    model_config = ConfigDict(extra="forbid")

    total_families: int
    completed_families: int
    current_family: str
    message: str
    family_score: float | None = None
    family_findings: int | None = None
