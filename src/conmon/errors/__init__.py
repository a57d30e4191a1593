from conmon.errors.exceptions import (
    CollaboratorError,
    ConflictError,
    ConmonError,
    GovernanceError,
    InvalidTransitionError,
    NotFoundError,
    OperationCancelledError,
    PersistenceError,
    RemediationError,
    ValidationError,
)

__all__ = [
    "CollaboratorError",
    "ConflictError",
    "ConmonError",
    "GovernanceError",
    "InvalidTransitionError",
    "NotFoundError",
    "OperationCancelledError",
    "PersistenceError",
    "RemediationError",
    "ValidationError",
]
