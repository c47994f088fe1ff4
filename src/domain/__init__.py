"""Domain layer: errors and schemas."""

from .errors import (
    CompensationFailureError,
    ConcurrentModificationError,
    ConflictAtDestinationError,
    ErrorCategory,
    ErrorCodes,
    InfrastructureError,
    IntegrityError,
    InvalidInputError,
    RetryAdvice,
    TerminalStateError,
    UpdateError,
)
from .schemas import (
    AuditAction,
    AuditEvent,
    FieldChanges,
    MaterializedFields,
    MoveResult,
    TemplateFields,
    TemplateSnapshot,
    TemplateStatus,
    TransitionDecision,
    UpdateRequest,
    VersionConflict,
    WriteCommitted,
)

__all__ = [
    # errors
    "UpdateError",
    "ErrorCategory",
    "ErrorCodes",
    "RetryAdvice",
    "InvalidInputError",
    "TerminalStateError",
    "ConcurrentModificationError",
    "ConflictAtDestinationError",
    "IntegrityError",
    "InfrastructureError",
    "CompensationFailureError",
    # schemas
    "TemplateStatus",
    "TemplateFields",
    "MaterializedFields",
    "TemplateSnapshot",
    "WriteCommitted",
    "VersionConflict",
    "FieldChanges",
    "UpdateRequest",
    "TransitionDecision",
    "AuditAction",
    "AuditEvent",
    "MoveResult",
]
