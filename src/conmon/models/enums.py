"""String enums shared by assessment, remediation and governance records."""

from enum import StrEnum


class Severity(StrEnum):
    INFORMATIONAL = "informational"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordering key: Critical > High > Medium > Low > Informational."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFORMATIONAL: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class ComplianceStatus(StrEnum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    PARTIALLY_COMPLIANT = "partially_compliant"
    UNKNOWN = "unknown"
    NOT_APPLICABLE = "not_applicable"
    MANUAL_REVIEW_REQUIRED = "manual_review_required"


class FindingType(StrEnum):
    SECURITY = "security"
    COMPLIANCE = "compliance"
    CONFIGURATION = "configuration"
    ACCESS_CONTROL = "access_control"
    DATA_PROTECTION = "data_protection"
    NETWORK_SECURITY = "network_security"
    MONITORING = "monitoring"
    LOGGING = "logging"
    BACKUP = "backup"
    ENCRYPTION = "encryption"
    PATCH_MANAGEMENT = "patch_management"
    RESOURCE_MANAGEMENT = "resource_management"
    CONTINGENCY_PLANNING = "contingency_planning"
    IDENTITY_MANAGEMENT = "identity_management"
    CONFIGURATION_MANAGEMENT = "configuration_management"
    INCIDENT_RESPONSE = "incident_response"
    RISK_ASSESSMENT = "risk_assessment"
    SECURITY_ASSESSMENT = "security_assessment"


class EvidenceType(StrEnum):
    CONFIGURATION = "configuration"
    LOGS = "logs"
    METRICS = "metrics"
    POLICIES = "policies"
    ACCESS_CONTROL = "access_control"


class RemediationActionType(StrEnum):
    UPDATE_CONFIGURATION = "update_configuration"
    ENABLE_FEATURE = "enable_feature"
    DISABLE_FEATURE = "disable_feature"
    UPDATE_POLICY = "update_policy"
    CREATE_RESOURCE = "create_resource"
    DELETE_RESOURCE = "delete_resource"
    UPDATE_ACCESS = "update_access"
    RUN_SCRIPT = "run_script"
    MANUAL = "manual"


class RemediationStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class GovernanceDecision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"
    REQUIRES_APPROVAL = "requires_approval"
    AUDIT_ONLY = "audit_only"


class PolicyEffect(StrEnum):
    DENY = "deny"
    DEPLOY_IF_NOT_EXISTS = "deployifnotexists"
    MODIFY = "modify"
    AUDIT = "audit"
    AUDIT_IF_NOT_EXISTS = "auditifnotexists"
    APPEND = "append"
    DISABLED = "disabled"


class PolicyComplianceState(StrEnum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "noncompliant"
    UNKNOWN = "unknown"
    EXEMPT = "exempt"


class RiskLevel(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MINIMAL = "minimal"
