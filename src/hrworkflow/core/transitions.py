"""Transition engine: the single mutation path for candidate workflow state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable
from uuid import uuid4

import pendulum
import structlog
from structlog.contextvars import bound_contextvars

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..schemas import (
    CandidateWorkflowState,
    Decision,
    EventType,
    MoveRequest,
    PhaseHistoryEntry,
    PhaseKind,
    WorkflowEvent,
    WorkflowMetadata,
    WorkflowPhase,
    WorkflowStatus,
    WorkflowTemplate,
)
from .store import KeyedLock, StateRepository
from .templates import TemplateRegistry

if TYPE_CHECKING:
    from ..events import Outbox, OutboxDispatcher

Clock = Callable[[], datetime]

PHASE_STATUS_CODES: dict[str, str] = {
    "cv_review": "NEW",
    "phone_screening": "IN_PROCESS",
    "technical_interview": "IN_PROCESS",
    "cultural_fit": "IN_PROCESS",
    "final_decision": "IN_PROCESS",
    "hired": "HIRED",
    "rejected": "REJECTED",
}


def status_code_for(phase_id: str, status: WorkflowStatus = WorkflowStatus.ACTIVE) -> str:
    """Map a workflow position onto the candidate record service status code."""
    if status is WorkflowStatus.COMPLETED:
        return "HIRED"
    if status is WorkflowStatus.REJECTED:
        return "REJECTED"
    return PHASE_STATUS_CODES.get(phase_id, "NEW")


@dataclass
class TransitionPolicy:
    """Which (from, to) phase pairs are admissible beyond template membership."""

    allow_backward: bool = True
    allow_skip: bool = True


@dataclass(slots=True)
class StatusSyncEffect:
    candidate_id: str
    phase_id: str
    status_code: str
    decision: str | None = None


@dataclass(slots=True)
class PublishEffect:
    event: WorkflowEvent


class TransitionEngine:
    """Validates and applies phase moves under a per-candidate lock.

    Every mutation is computed on a copy of the stored state and written back
    with a single ``put``; validation failures therefore leave the store
    untouched. Side effects are recorded on the outbox while the lock is held
    and handed to the dispatcher once it is released.
    """

    def __init__(
        self,
        *,
        repository: StateRepository,
        templates: TemplateRegistry,
        outbox: "Outbox",
        dispatcher: "OutboxDispatcher | None" = None,
        locks: KeyedLock | None = None,
        policy: TransitionPolicy | None = None,
        clock: Clock | None = None,
        actor: str = "system",
    ) -> None:
        self._repository = repository
        self._templates = templates
        self._outbox = outbox
        self._dispatcher = dispatcher
        self._locks = locks or KeyedLock()
        self._policy = policy or TransitionPolicy()
        self._clock = clock or (lambda: pendulum.now("UTC"))
        self._actor = actor
        self._logger = structlog.get_logger(__name__)

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    def now(self) -> datetime:
        return self._clock()

    def move(self, request: MoveRequest, *, automated: bool = False) -> CandidateWorkflowState:
        with bound_contextvars(candidate_id=request.candidate_id):
            state, target, decision = self._apply_move(request, automated)
            self._logger.info(
                "workflow.candidate_moved",
                template_id=state.template_id,
                from_phase=request.from_phase,
                to_phase=target.id,
                decision=decision.value,
                status=state.status.value,
                automated=automated,
            )
        self._dispatch()
        return state

    def _apply_move(
        self, request: MoveRequest, automated: bool
    ) -> tuple[CandidateWorkflowState, WorkflowPhase, Decision]:
        with self._locks.hold(request.candidate_id):
            state = self._require_state(request.candidate_id)
            template = self._templates.get(state.template_id)
            target = self._validate_move(state, template, request)

            now = self._clock()
            decision = request.decision or Decision.PASSED

            self._close_open_entry(
                state,
                now,
                decision=decision,
                score=request.score,
                notes=request.notes,
                interviewer_id=request.interviewer_id,
                next_phase=request.to_phase,
            )
            state.history.append(
                PhaseHistoryEntry(
                    phase_id=target.id,
                    phase_name=target.name,
                    entered_at=now,
                    decision=Decision.PENDING,
                    automated_transition=automated,
                )
            )
            state.previous_phase = request.from_phase
            state.current_phase = target.id
            state.updated_at = now

            if decision is Decision.FAILED:
                state.status = WorkflowStatus.REJECTED
                state.completed_at = now
            elif target.kind is PhaseKind.FINAL and decision is Decision.PASSED:
                state.status = WorkflowStatus.COMPLETED
                state.completed_at = now

            self._repository.put(state)
            self._record_effects(
                state,
                EventType.CANDIDATE_MOVED,
                {
                    "candidate_id": state.candidate_id,
                    "workflow_id": state.template_id,
                    "from_phase": request.from_phase,
                    "to_phase": target.id,
                    "decision": decision.value,
                    "timestamp": now.isoformat(),
                },
                phase_id=target.id,
                decision=decision.value,
            )
        return state, target, decision

    def start(
        self,
        candidate_id: str,
        template: WorkflowTemplate,
        *,
        metadata: WorkflowMetadata | None = None,
        started_at: datetime | None = None,
    ) -> CandidateWorkflowState:
        with bound_contextvars(candidate_id=candidate_id):
            with self._locks.hold(candidate_id):
                if self._repository.exists(candidate_id):
                    raise StateConflictError(f"Workflow already started for candidate {candidate_id!r}")
                state = self._new_state(
                    candidate_id,
                    template,
                    template.first_phase().id,
                    metadata=metadata,
                    started_at=started_at,
                )
                self._repository.put(state)
                self._record_effects(
                    state,
                    EventType.WORKFLOW_UPDATED,
                    {
                        "candidate_id": candidate_id,
                        "workflow_id": template.id,
                        "phase": state.current_phase,
                        "action": "started",
                    },
                    phase_id=state.current_phase,
                )
            self._logger.info(
                "workflow.candidate_started",
                template_id=template.id,
                phase=state.current_phase,
            )
        self._dispatch()
        return state

    def record_score(self, candidate_id: str, phase_id: str, score: float) -> CandidateWorkflowState:
        """Attach a score to the candidate's open entry without leaving the phase."""
        with self._locks.hold(candidate_id):
            state = self._require_state(candidate_id)
            if state.current_phase != phase_id:
                raise StateConflictError(
                    f"Candidate {candidate_id!r} is at {state.current_phase!r}, not {phase_id!r}"
                )
            entry = state.open_entry()
            if entry is None:
                raise StateConflictError(f"Candidate {candidate_id!r} has no open phase")
            entry.score = score
            state.updated_at = self._clock()
            self._repository.put(state)
        return state

    def set_status(
        self,
        candidate_id: str,
        status: WorkflowStatus,
        *,
        notes: str | None = None,
    ) -> CandidateWorkflowState:
        """Put a candidate on hold, withdraw it, or resume it."""
        if status.is_terminal:
            raise ValidationError("Use a move with a decision to complete or reject a candidate")
        with bound_contextvars(candidate_id=candidate_id):
            with self._locks.hold(candidate_id):
                state = self._require_state(candidate_id)
                if not state.status.is_mutable:
                    raise StateConflictError(
                        f"Candidate {candidate_id!r} is {state.status.value} and cannot change status"
                    )
                previous = state.status
                if previous is status:
                    return state
                now = self._clock()
                if status is WorkflowStatus.WITHDRAWN:
                    self._close_open_entry(state, now, decision=Decision.SKIPPED, notes=notes)
                    state.completed_at = now
                elif notes:
                    entry = state.open_entry()
                    if entry is not None:
                        entry.notes = notes
                state.status = status
                state.updated_at = now
                self._repository.put(state)
                self._record_effects(
                    state,
                    EventType.WORKFLOW_UPDATED,
                    {
                        "candidate_id": candidate_id,
                        "workflow_id": state.template_id,
                        "from_status": previous.value,
                        "to_status": status.value,
                        "timestamp": now.isoformat(),
                    },
                    phase_id=state.current_phase,
                    sync_status=status is WorkflowStatus.WITHDRAWN,
                )
            self._logger.info(
                "workflow.status_changed",
                from_status=previous.value,
                to_status=status.value,
            )
        self._dispatch()
        return state

    def reconcile(
        self,
        candidate_id: str,
        template: WorkflowTemplate,
        target_phase: str,
        *,
        outcome: WorkflowStatus = WorkflowStatus.ACTIVE,
        metadata: WorkflowMetadata | None = None,
        started_at: datetime | None = None,
    ) -> CandidateWorkflowState:
        """Bring a candidate's state in line with an externally observed position.

        Creates the state when absent. Otherwise a changed phase closes the
        open entry and appends an automated one, and a terminal outcome
        closes the open entry with the matching decision. Completed, rejected
        and withdrawn states keep their history and only get metadata.
        """
        if template.get_phase(target_phase) is None:
            raise ValidationError(
                f"Phase {target_phase!r} is not defined on template {template.id!r}"
            )
        with bound_contextvars(candidate_id=candidate_id):
            with self._locks.hold(candidate_id):
                now = self._clock()
                state = self._repository.get(candidate_id)
                if state is None:
                    state = self._new_state(
                        candidate_id,
                        template,
                        target_phase,
                        metadata=metadata,
                        started_at=started_at,
                    )
                else:
                    if metadata is not None:
                        state.metadata = metadata
                    state.updated_at = now
                    if not state.status.is_mutable:
                        self._logger.info("sync.closed_state_kept", status=state.status.value)
                    elif state.current_phase != target_phase:
                        self._close_open_entry(
                            state, now, decision=Decision.PASSED, next_phase=target_phase
                        )
                        phase = template.get_phase(target_phase)
                        state.history.append(
                            PhaseHistoryEntry(
                                phase_id=target_phase,
                                phase_name=phase.name if phase else target_phase,
                                entered_at=now,
                                automated_transition=True,
                            )
                        )
                        state.previous_phase = state.current_phase
                        state.current_phase = target_phase

                if outcome.is_terminal and state.status.is_mutable:
                    decision = Decision.PASSED if outcome is WorkflowStatus.COMPLETED else Decision.FAILED
                    self._close_open_entry(state, now, decision=decision)
                    state.status = outcome
                    state.completed_at = now

                self._repository.put(state)
                self._record_effects(
                    state,
                    EventType.CANDIDATE_SYNCED,
                    {
                        "candidate_id": candidate_id,
                        "workflow_id": template.id,
                        "phase": state.current_phase,
                        "status": state.status.value,
                        "timestamp": now.isoformat(),
                    },
                    phase_id=state.current_phase,
                    sync_status=False,
                )
            self._logger.info(
                "sync.candidate_reconciled",
                phase=state.current_phase,
                status=state.status.value,
            )
        self._dispatch()
        return state

    def _dispatch(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.pump()

    def _record_effects(
        self,
        state: CandidateWorkflowState,
        event_type: EventType,
        payload: dict,
        *,
        phase_id: str | None = None,
        decision: str | None = None,
        sync_status: bool = True,
    ) -> None:
        if sync_status:
            self._outbox.enqueue(
                StatusSyncEffect(
                    candidate_id=state.candidate_id,
                    phase_id=state.current_phase,
                    status_code=status_code_for(state.current_phase, state.status),
                    decision=decision,
                )
            )
        self._outbox.enqueue(
            PublishEffect(
                WorkflowEvent(
                    type=event_type,
                    candidate_id=state.candidate_id,
                    workflow_id=state.template_id,
                    phase_id=phase_id,
                    payload=payload,
                    actor=self._actor,
                )
            )
        )

    def _require_state(self, candidate_id: str) -> CandidateWorkflowState:
        state = self._repository.get(candidate_id)
        if state is None:
            raise NotFoundError(f"Candidate workflow state not found: {candidate_id!r}")
        return state

    def _validate_move(
        self,
        state: CandidateWorkflowState,
        template: WorkflowTemplate,
        request: MoveRequest,
    ) -> WorkflowPhase:
        if state.current_phase != request.from_phase:
            raise StateConflictError(
                f"Candidate {state.candidate_id!r} is at {state.current_phase!r}, "
                f"not {request.from_phase!r}"
            )
        if state.status is not WorkflowStatus.ACTIVE:
            raise StateConflictError(
                f"Candidate {state.candidate_id!r} is {state.status.value}; only active candidates move"
            )
        target = template.get_phase(request.to_phase)
        if target is None:
            raise ValidationError(
                f"Phase {request.to_phase!r} is not defined on template {template.id!r}"
            )
        if request.to_phase == request.from_phase:
            raise ValidationError("A move must target a different phase")

        source = template.get_phase(request.from_phase)
        if source is None:
            return target
        ordered = template.phase_ids()
        step = ordered.index(target.id) - ordered.index(source.id)
        if step < 0 and not self._policy.allow_backward:
            raise ValidationError(
                f"Backward move {request.from_phase!r} -> {request.to_phase!r} is not allowed"
            )
        if step > 1 and not self._policy.allow_skip:
            raise ValidationError(
                f"Move {request.from_phase!r} -> {request.to_phase!r} skips phases"
            )
        return target

    @staticmethod
    def _close_open_entry(
        state: CandidateWorkflowState,
        now: datetime,
        *,
        decision: Decision,
        score: float | None = None,
        notes: str | None = None,
        interviewer_id: str | None = None,
        next_phase: str | None = None,
    ) -> None:
        for entry in state.history:
            if entry.is_open and entry.phase_id == state.current_phase:
                entry.exited_at = now
                entry.decision = decision
                entry.duration_minutes = (now - entry.entered_at).total_seconds() / 60
                if score is not None:
                    entry.score = score
                if notes is not None:
                    entry.notes = notes
                if interviewer_id is not None:
                    entry.interviewer_id = interviewer_id
                if next_phase is not None:
                    entry.next_phase = next_phase

    def _new_state(
        self,
        candidate_id: str,
        template: WorkflowTemplate,
        phase_id: str,
        *,
        metadata: WorkflowMetadata | None,
        started_at: datetime | None,
    ) -> CandidateWorkflowState:
        now = self._clock()
        start = started_at or now
        phase = template.get_phase(phase_id)
        return CandidateWorkflowState(
            id=f"cs-{uuid4().hex[:12]}",
            candidate_id=candidate_id,
            template_id=template.id,
            current_phase=phase_id,
            status=WorkflowStatus.ACTIVE,
            started_at=start,
            updated_at=now,
            history=[
                PhaseHistoryEntry(
                    phase_id=phase_id,
                    phase_name=phase.name if phase else phase_id,
                    entered_at=start,
                )
            ],
            metadata=metadata or WorkflowMetadata(),
        )


__all__ = [
    "PHASE_STATUS_CODES",
    "PublishEffect",
    "StatusSyncEffect",
    "TransitionEngine",
    "TransitionPolicy",
    "status_code_for",
]
