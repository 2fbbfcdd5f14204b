"""Pydantic schema definitions for the workflow engine."""

from __future__ import annotations

from .board import BoardCard, BoardColumn, CandidateFlag, NextAction
from .candidate import CandidateRecord
from .metrics import (
    BottleneckAnalysis,
    SLABreach,
    SLAMetrics,
    TimeToCompletion,
    WorkflowMetrics,
)
from .workflow import (
    AutoAdvanceRule,
    BulkMoveResult,
    CandidateWorkflowState,
    Decision,
    EventType,
    MoveError,
    MoveRequest,
    MoveResult,
    PhaseHistoryEntry,
    PhaseKind,
    Priority,
    RuleCondition,
    WorkflowEvent,
    WorkflowMetadata,
    WorkflowPhase,
    WorkflowStatus,
    WorkflowTemplate,
)

__all__ = [
    "AutoAdvanceRule",
    "BoardCard",
    "BoardColumn",
    "BottleneckAnalysis",
    "BulkMoveResult",
    "CandidateFlag",
    "CandidateRecord",
    "CandidateWorkflowState",
    "Decision",
    "EventType",
    "MoveError",
    "MoveRequest",
    "MoveResult",
    "NextAction",
    "PhaseHistoryEntry",
    "PhaseKind",
    "Priority",
    "RuleCondition",
    "SLABreach",
    "SLAMetrics",
    "TimeToCompletion",
    "WorkflowEvent",
    "WorkflowMetadata",
    "WorkflowMetrics",
    "WorkflowPhase",
    "WorkflowStatus",
    "WorkflowTemplate",
]
