"""Error taxonomy for the workflow engine."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow engine errors."""


class NotFoundError(WorkflowError, LookupError):
    """Raised when a candidate, template or phase reference is unknown."""


class ValidationError(WorkflowError, ValueError):
    """Raised for malformed requests such as an unknown target phase."""


class StateConflictError(WorkflowError):
    """Raised when the caller's view of a candidate state is stale."""


class ExternalSyncError(WorkflowError):
    """Raised by collaborators; never surfaced to callers of a primary mutation."""


__all__ = [
    "WorkflowError",
    "NotFoundError",
    "ValidationError",
    "StateConflictError",
    "ExternalSyncError",
]
