"""conmon: continuous ATO compliance assessment, remediation and governance."""

from conmon.assessment.orchestrator import AssessmentOrchestrator
from conmon.evidence.pipeline import EvidencePipeline
from conmon.governance.engine import GovernancePolicyEngine
from conmon.remediation.batch import BatchRemediationCoordinator
from conmon.remediation.executor import RemediationExecutor
from conmon.remediation.planner import RemediationPlanner

__version__ = "0.1.0"

__all__ = [
    "AssessmentOrchestrator",
    "BatchRemediationCoordinator",
    "EvidencePipeline",
    "GovernancePolicyEngine",
    "RemediationExecutor",
    "RemediationPlanner",
]
