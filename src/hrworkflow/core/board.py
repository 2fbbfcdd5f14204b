"""Board projection of active candidates grouped by current phase."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

import pendulum
import structlog

from ..errors import ExternalSyncError
from ..schemas import (
    BoardCard,
    BoardColumn,
    CandidateFlag,
    CandidateWorkflowState,
    NextAction,
    Priority,
    WorkflowPhase,
    WorkflowStatus,
    WorkflowTemplate,
)
from .store import StateRepository
from .templates import TemplateRegistry

if TYPE_CHECKING:
    from ..adapters import CandidateRecordService, ScoringService

SLA_WARNING_RATIO = 0.8
HIGH_POTENTIAL_SCORE = 85


@dataclass(frozen=True)
class _ActionSpec:
    type: str
    description: str
    due_in_days: int | None
    assignee: str  # "recruiter", "interviewer" or a literal role


NEXT_ACTIONS: dict[str, _ActionSpec] = {
    "cv_review": _ActionSpec("review_feedback", "Review CV and decide", None, "recruiter"),
    "phone_screening": _ActionSpec("schedule_interview", "Schedule phone screening", 2, "recruiter"),
    "technical_interview": _ActionSpec(
        "schedule_interview", "Schedule technical interview", 3, "interviewer"
    ),
    "cultural_fit": _ActionSpec("schedule_interview", "Schedule cultural fit interview", 2, "hr_manager"),
    "final_decision": _ActionSpec("make_decision", "Make final decision", 1, "hiring_manager"),
}


def weighted_score(scores: list[float]) -> int | None:
    """Weighted average where the i-th chronological score has weight i."""
    if not scores:
        return None
    total_weight = len(scores) * (len(scores) + 1) / 2
    weighted = sum(score * index for index, score in enumerate(scores, start=1))
    return round(weighted / total_weight)


def heuristic_score(state: CandidateWorkflowState, now: datetime) -> int:
    """Priority and seniority based estimate used when no scores exist."""
    adjustments = {
        Priority.URGENT: 15,
        Priority.HIGH: 10,
        Priority.MEDIUM: 5,
        Priority.LOW: 0,
    }[state.metadata.priority]

    title = state.metadata.position_title.lower()
    if "senior" in title or "lead" in title:
        adjustments += 8
    if "full stack" in title or "fullstack" in title:
        adjustments += 5

    days_in_process = math.floor((now - state.started_at).total_seconds() / 86400)
    if days_in_process > 14:
        adjustments -= 5
    elif days_in_process > 7:
        adjustments -= 2

    return max(0, min(100, 70 + adjustments))


class BoardProjector:
    """Builds board columns and cards from the state store and a template."""

    def __init__(
        self,
        *,
        repository: StateRepository,
        templates: TemplateRegistry,
        records: "CandidateRecordService | None" = None,
        scoring: "ScoringService | None" = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._templates = templates
        self._records = records
        self._scoring = scoring
        self._clock = clock or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def build(self, template_id: str) -> list[BoardColumn]:
        template = self._templates.get(template_id)
        now = self._clock()

        columns: dict[str, BoardColumn] = {}
        for phase in template.active_phases():
            columns[phase.id] = BoardColumn(
                id=phase.id,
                title=phase.name,
                phase_id=phase.id,
                color=phase.color,
                sla_warning_hours=(
                    phase.sla_hours * SLA_WARNING_RATIO if phase.sla_hours else None
                ),
            )

        for state in self._repository.list(template_id):
            if state.status is not WorkflowStatus.ACTIVE:
                continue
            column = columns.get(state.current_phase)
            if column is None:
                continue
            phase = template.get_phase(state.current_phase)
            column.cards.append(self._build_card(state, template, phase, now))

        for column in columns.values():
            column.cards.sort(key=lambda card: (-card.days_in_phase, card.candidate_id))

        self._logger.debug(
            "board.built",
            template_id=template_id,
            columns=len(columns),
            cards=sum(len(column.cards) for column in columns.values()),
        )
        return list(columns.values())

    def _build_card(
        self,
        state: CandidateWorkflowState,
        template: WorkflowTemplate,
        phase: WorkflowPhase,
        now: datetime,
    ) -> BoardCard:
        entry = state.open_entry()
        days_in_phase = (
            math.floor((now - entry.entered_at).total_seconds() / 86400) if entry else 0
        )
        ai_score = self.score_for(state, now)
        name, email = self._contact(state.candidate_id)

        return BoardCard(
            id=state.id,
            candidate_id=state.candidate_id,
            name=name,
            email=email,
            position=state.metadata.position_title,
            current_phase=state.current_phase,
            status=state.status,
            priority=state.metadata.priority,
            ai_score=ai_score,
            days_in_phase=days_in_phase,
            next_action=self.next_action(state, phase, now),
            flags=self.flags(state, phase, days_in_phase, ai_score, now),
            timeline=state.history,
        )

    def score_for(self, state: CandidateWorkflowState, now: datetime) -> int | None:
        scores = [
            entry.score
            for entry in state.history
            if entry.score is not None and not entry.is_open
        ]
        if scores:
            return weighted_score(scores)
        if self._scoring is not None:
            try:
                external = self._scoring.score(state.candidate_id, state.current_phase)
            except ExternalSyncError as exc:
                self._logger.warning(
                    "board.scoring_failed", candidate_id=state.candidate_id, error=str(exc)
                )
                external = None
            if external is not None:
                return round(external)
        return heuristic_score(state, now)

    @staticmethod
    def flags(
        state: CandidateWorkflowState,
        phase: WorkflowPhase | None,
        days_in_phase: int,
        ai_score: int | None,
        now: datetime,
    ) -> list[CandidateFlag]:
        flags: list[CandidateFlag] = []
        if phase is not None and phase.sla_hours and days_in_phase * 24 > phase.sla_hours * SLA_WARNING_RATIO:
            flags.append(
                CandidateFlag(
                    type="sla_warning",
                    message=f"Close to SLA ({phase.sla_hours:g}h)",
                    severity="warning",
                    created_at=now,
                )
            )
        if state.metadata.priority in (Priority.HIGH, Priority.URGENT):
            flags.append(
                CandidateFlag(type="urgent", message="Priority candidate", created_at=now)
            )
        if ai_score is not None and ai_score >= HIGH_POTENTIAL_SCORE:
            flags.append(
                CandidateFlag(
                    type="high_potential",
                    message=f"High score ({ai_score})",
                    created_at=now,
                )
            )
        return flags

    @staticmethod
    def next_action(
        state: CandidateWorkflowState,
        phase: WorkflowPhase | None,
        now: datetime,
    ) -> NextAction | None:
        action = NEXT_ACTIONS.get(state.current_phase)
        if action is None or phase is None:
            return None
        if action.assignee == "recruiter":
            assignee = state.metadata.assigned_recruiter or None
        elif action.assignee == "interviewer":
            assignee = phase.required_interviewers[0] if phase.required_interviewers else None
        else:
            assignee = action.assignee
        due = now + timedelta(days=action.due_in_days) if action.due_in_days is not None else None
        return NextAction(
            type=action.type,
            description=action.description,
            due_date=due,
            assigned_to=assignee,
        )

    def _contact(self, candidate_id: str) -> tuple[str, str]:
        if self._records is not None:
            try:
                record = self._records.fetch(candidate_id)
            except ExternalSyncError as exc:
                self._logger.warning(
                    "board.record_lookup_failed", candidate_id=candidate_id, error=str(exc)
                )
                record = None
            if record is not None:
                return record.full_name or candidate_id, record.email
        return "Unknown candidate", ""


__all__ = ["BoardProjector", "NEXT_ACTIONS", "heuristic_score", "weighted_score"]
