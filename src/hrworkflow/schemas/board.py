"""Read-optimised board projection schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .workflow import PhaseHistoryEntry, Priority, UTCDateTime, WorkflowStatus, utcnow

FlagType = Literal["urgent", "sla_warning", "missing_documents", "high_potential", "at_risk"]
Severity = Literal["info", "warning", "error"]
ActionType = Literal[
    "schedule_interview",
    "send_assessment",
    "review_feedback",
    "make_decision",
    "send_offer",
]


class CandidateFlag(BaseModel):
    type: FlagType
    message: str
    severity: Severity = "info"
    created_at: UTCDateTime = Field(default_factory=utcnow)


class NextAction(BaseModel):
    type: ActionType
    description: str
    due_date: datetime | None = None
    assigned_to: str | None = None
    automated: bool = False


class BoardCard(BaseModel):
    """A candidate as rendered in a board column."""

    id: str
    candidate_id: str
    name: str
    email: str
    position: str
    current_phase: str
    status: WorkflowStatus
    priority: Priority
    ai_score: int | None = None
    days_in_phase: int = 0
    next_action: NextAction | None = None
    flags: list[CandidateFlag] = Field(default_factory=list)
    timeline: list[PhaseHistoryEntry] = Field(default_factory=list)


class BoardColumn(BaseModel):
    id: str
    title: str
    phase_id: str
    color: str
    sla_warning_hours: float | None = None
    max_items: int | None = None
    cards: list[BoardCard] = Field(default_factory=list)
