"""Pydantic models for collected compliance evidence."""

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from conmon.models.enums import EvidenceType


class EvidenceItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    evidence_id: str
    evidence_type: EvidenceType
    control_id: str | None = None
    resource_id: str | None = None
    collected_at: datetime
    data: dict[str, Any] = Field(default_factory=dict)
    log_excerpt: str | None = None


class EvidencePackage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    package_id: str = Field(..., pattern=r"^evp_[A-Za-z0-9_-]+$")
    subscription_id: str
    control_family: str
    collected_by: str = "conmon"
    collection_started_at: datetime
    collection_completed_at: datetime | None = None
    duration: timedelta | None = None
    evidence: list[EvidenceItem] = Field(default_factory=list)
    completeness_score: float = Field(0.0, ge=0.0, le=100.0)
    summary: str = ""
    attestation_statement: str = ""
    failed_types: list[EvidenceType] = Field(default_factory=list)
    error: str | None = None

    def count_by_type(self) -> dict[EvidenceType, int]:
        counts: dict[EvidenceType, int] = {}
        for item in self.evidence:
            counts[item.evidence_type] = counts.get(item.evidence_type, 0) + 1
        return counts
