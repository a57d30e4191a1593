"""Exception hierarchy for compliance, remediation and governance operations."""


class ConmonError(Exception):
    """Base exception for conmon."""

    def __init__(self, code: str, message: str, details=None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(ConmonError):
    """Bad scope or options, rejected before any work starts."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details)


class CollaboratorError(ConmonError):
    """An external collaborator (inventory, scanner, collector, policy source) failed."""

    def __init__(self, collaborator: str, message: str, details=None):
        self.collaborator = collaborator
        super().__init__("COLLABORATOR_ERROR", f"{collaborator}: {message}", details)


class PersistenceError(ConmonError):
    """Writing to or reading from the durable store failed."""

    def __init__(self, message: str, details=None):
        super().__init__("PERSISTENCE_ERROR", message, details)


class RemediationError(ConmonError):
    """A single remediation item could not be applied."""

    def __init__(self, message: str, finding_id: str | None = None):
        self.finding_id = finding_id
        super().__init__("REMEDIATION_ERROR", message, {"finding_id": finding_id})


class GovernanceError(ConmonError):
    """Policy evaluation could not complete."""

    def __init__(self, message: str, details=None):
        super().__init__("GOVERNANCE_ERROR", message, details)


class NotFoundError(ConmonError):
    """Record not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__("NOT_FOUND", f"{resource} '{resource_id}' not found")


class ConflictError(ConmonError):
    """Record state conflict, e.g. deciding an already decided approval."""

    def __init__(self, message: str):
        super().__init__("CONFLICT", message)


class InvalidTransitionError(ConflictError):
    """A state machine was asked to move along an edge it does not have."""

    def __init__(self, machine: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"{machine}: illegal transition {current} -> {target}")


class OperationCancelledError(ConmonError):
    """The caller cancelled a long-running operation.

    ``partial`` holds whatever result had been built when cancellation was
    observed, so completed work is not lost.
    """

    def __init__(self, operation: str, partial=None):
        self.partial = partial
        super().__init__("CANCELLED", f"{operation} was cancelled")
