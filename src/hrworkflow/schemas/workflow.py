"""Workflow templates, candidate state and event schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

import pendulum
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return pendulum.now("UTC")


def _ensure_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(_ensure_aware)]


class PhaseKind(str, Enum):
    SCREENING = "screening"
    TECHNICAL = "technical"
    CULTURAL = "cultural"
    FINAL = "final"
    CUSTOM = "custom"


class WorkflowStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    ON_HOLD = "on_hold"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.REJECTED)

    @property
    def is_mutable(self) -> bool:
        """False once the pipeline is closed, withdrawn included."""
        return self in (WorkflowStatus.ACTIVE, WorkflowStatus.ON_HOLD)


class Decision(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    SKIPPED = "skipped"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RuleCondition(str, Enum):
    SCORE_THRESHOLD = "score_threshold"
    MANUAL_APPROVAL = "manual_approval"
    TIME_PASSED = "time_passed"
    EXTERNAL_TRIGGER = "external_trigger"


class EventType(str, Enum):
    CANDIDATE_MOVED = "candidate_moved"
    CANDIDATE_SYNCED = "candidate_synced"
    PHASE_COMPLETED = "phase_completed"
    SLA_WARNING = "sla_warning"
    BOTTLENECK_DETECTED = "bottleneck_detected"
    WORKFLOW_UPDATED = "workflow_updated"


class AutoAdvanceRule(BaseModel):
    """Threshold condition that advances a candidate when an external score arrives."""

    condition: RuleCondition = RuleCondition.SCORE_THRESHOLD
    operator: str = ">="
    value: float
    next_phase: str

    model_config = ConfigDict(extra="forbid")

    @field_validator("condition", mode="before")
    @classmethod
    def _normalize_condition(cls, value: Any) -> Any:
        # "ai_score" and "score-threshold" are accepted spellings of the same rule.
        if isinstance(value, str):
            lowered = value.strip().lower().replace("-", "_")
            if lowered == "ai_score":
                return RuleCondition.SCORE_THRESHOLD.value
            return lowered
        return value

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, value: str) -> str:
        if value not in {">", ">=", "<", "<=", "==", "!="}:
            raise ValueError(f"Unsupported operator: {value!r}")
        return value


class WorkflowPhase(BaseModel):
    """One stage of a hiring pipeline."""

    id: str
    name: str
    description: str = ""
    order: int
    kind: PhaseKind = PhaseKind.CUSTOM
    color: str = "#9E9E9E"
    duration_minutes: int = 0
    required_documents: list[str] = Field(default_factory=list)
    required_interviewers: list[str] = Field(default_factory=list)
    auto_advance_rules: list[AutoAdvanceRule] = Field(default_factory=list)
    sla_hours: float | None = None
    is_active: bool = True

    model_config = ConfigDict(extra="forbid")


class WorkflowTemplate(BaseModel):
    """Ordered collection of phases applicable to a category of positions."""

    id: str
    name: str
    description: str = ""
    phases: list[WorkflowPhase]
    position_types: list[str] = Field(default_factory=list)
    is_default: bool = False
    created_at: UTCDateTime = Field(default_factory=utcnow)
    updated_at: UTCDateTime = Field(default_factory=utcnow)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_phases(self) -> "WorkflowTemplate":
        if not self.phases:
            raise ValueError("A workflow template needs at least one phase")
        ids = [phase.id for phase in self.phases]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate phase ids in template {self.id!r}")
        orders = [phase.order for phase in self.phases]
        if len(set(orders)) != len(orders):
            raise ValueError(f"Duplicate phase orders in template {self.id!r}")
        known = set(ids)
        for phase in self.phases:
            for rule in phase.auto_advance_rules:
                if rule.next_phase not in known:
                    raise ValueError(
                        f"Rule on phase {phase.id!r} targets unknown phase {rule.next_phase!r}"
                    )
        return self

    def ordered_phases(self) -> list[WorkflowPhase]:
        return sorted(self.phases, key=lambda phase: phase.order)

    def active_phases(self) -> list[WorkflowPhase]:
        return [phase for phase in self.ordered_phases() if phase.is_active]

    def phase_ids(self) -> list[str]:
        return [phase.id for phase in self.ordered_phases()]

    def first_phase(self) -> WorkflowPhase:
        return self.ordered_phases()[0]

    def get_phase(self, phase_id: str) -> WorkflowPhase | None:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None


class PhaseHistoryEntry(BaseModel):
    """Audit record of a candidate's stay in one phase."""

    phase_id: str
    phase_name: str
    entered_at: UTCDateTime
    exited_at: UTCDateTime | None = None
    decision: Decision = Decision.PENDING
    score: float | None = None
    notes: str | None = None
    interviewer_id: str | None = None
    duration_minutes: float | None = None
    automated_transition: bool = False
    next_phase: str | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_open(self) -> bool:
        return self.exited_at is None

    def duration_hours(self) -> float | None:
        if self.exited_at is None:
            return None
        return (self.exited_at - self.entered_at).total_seconds() / 3600


class WorkflowMetadata(BaseModel):
    position_id: str = ""
    position_title: str = ""
    priority: Priority = Priority.MEDIUM
    assigned_recruiter: str = ""
    expected_completion_date: UTCDateTime | None = None
    tags: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class CandidateWorkflowState(BaseModel):
    """Position and history of a single candidate within a workflow template."""

    id: str
    candidate_id: str
    template_id: str
    current_phase: str
    previous_phase: str | None = None
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    started_at: UTCDateTime
    updated_at: UTCDateTime
    completed_at: UTCDateTime | None = None
    history: list[PhaseHistoryEntry] = Field(default_factory=list)
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)

    model_config = ConfigDict(extra="forbid")

    def open_entry(self) -> PhaseHistoryEntry | None:
        for entry in reversed(self.history):
            if entry.is_open:
                return entry
        return None

    def reached(self, phase_id: str) -> bool:
        return any(entry.phase_id == phase_id for entry in self.history)


class WorkflowEvent(BaseModel):
    """Ephemeral notification fanned out to listeners and the broadcaster."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: EventType
    candidate_id: str | None = None
    workflow_id: str | None = None
    phase_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    actor: str = "system"

    model_config = ConfigDict(extra="forbid")


class MoveRequest(BaseModel):
    candidate_id: str
    from_phase: str
    to_phase: str
    decision: Decision | None = None
    score: float | None = Field(default=None, ge=0, le=100)
    notes: str | None = None
    interviewer_id: str | None = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("decision")
    @classmethod
    def _decisive(cls, value: Decision | None) -> Decision | None:
        if value in (Decision.PENDING, Decision.SKIPPED):
            raise ValueError("A move decision must be 'passed' or 'failed'")
        return value


class MoveResult(BaseModel):
    candidate_id: str
    success: bool = True
    state: CandidateWorkflowState


class MoveError(BaseModel):
    candidate_id: str
    error: str
    error_type: str


class BulkMoveResult(BaseModel):
    results: list[MoveResult] = Field(default_factory=list)
    errors: list[MoveError] = Field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.results) + len(self.errors),
            "successful": len(self.results),
            "failed": len(self.errors),
        }
