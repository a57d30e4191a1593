"""Pydantic models for findings, controls and the resources they are raised against."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from conmon.families import family_of
from conmon.models.enums import (
    ComplianceStatus,
    FindingType,
    RemediationActionType,
    Severity,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Resource(BaseModel):
    """One enumerated cloud resource, as returned by a resource inventory."""

    model_config = ConfigDict(extra="forbid")

    resource_id: str = Field(..., min_length=1)
    resource_type: str
    name: str
    location: str | None = None
    resource_group: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)


class Control(BaseModel):
    model_config = ConfigDict(extra="forbid")

    control_id: str = Field(..., pattern=r"^[A-Za-z]{2}-\d+(\(\d+\))?$")
    family: str = Field(..., min_length=2, max_length=2)
    title: str = ""
    description: str | None = None


class RemediationAction(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action_id: str
    name: str
    description: str
    action_type: RemediationActionType = RemediationActionType.UPDATE_CONFIGURATION
    parameters: dict[str, Any] = Field(default_factory=dict)
    command: str | None = None
    script_path: str | None = None


class Finding(BaseModel):
    """A detected deviation from one or more controls on one resource.

    Findings are immutable once created; resolution is recorded externally
    by setting ``resolved_at`` on a copy.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    finding_id: str
    title: str
    description: str | None = None
    affected_controls: list[str] = Field(default_factory=list)
    severity: Severity
    compliance_status: ComplianceStatus = ComplianceStatus.NON_COMPLIANT
    finding_type: FindingType = FindingType.COMPLIANCE
    subscription_id: str | None = None
    resource_id: str
    resource_type: str = ""
    resource_name: str | None = None
    resource_group: str | None = None
    rule_id: str | None = None
    remediation_actions: list[RemediationAction] = Field(default_factory=list)
    remediation_guidance: str | None = None
    is_auto_remediable: bool = False
    detected_at: datetime = Field(default_factory=_utcnow)
    resolved_at: datetime | None = None

    @property
    def control_families(self) -> list[str]:
        """Distinct family prefixes of the affected controls, in first-seen order."""
        families: list[str] = []
        for control_id in self.affected_controls:
            family = family_of(control_id)
            if family and family not in families:
                families.append(family)
        return families
