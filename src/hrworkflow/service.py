"""Engine API consumed by transport layers."""

from __future__ import annotations

from typing import Any, Iterable

import structlog
from pydantic import ValidationError as PydanticValidationError

from .adapters import CandidateRecordService
from .core import (
    AutoAdvanceEvaluator,
    BoardProjector,
    MetricsEngine,
    StateRepository,
    TemplateRegistry,
    TransitionEngine,
)
from .errors import (
    ExternalSyncError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    WorkflowError,
)
from .events import EventPublisher, Listener
from .schemas import (
    BoardColumn,
    BulkMoveResult,
    CandidateRecord,
    CandidateWorkflowState,
    MoveError,
    MoveRequest,
    MoveResult,
    WorkflowMetadata,
    WorkflowMetrics,
    WorkflowStatus,
    WorkflowTemplate,
)

IN_PROCESS_PHASES = ("phone_screening", "technical_interview", "cultural_fit", "final_decision")


def phase_for_record(record: CandidateRecord, template: WorkflowTemplate) -> str:
    """Map a candidate record's status and interview count onto a phase id.

    Falls back to the template's own ordering when it does not use the
    standard phase ids.
    """
    ordered = template.phase_ids()
    completed = max(0, record.completed_interviews)

    if record.current_status == "NEW":
        wanted = "cv_review"
        index = 0
    elif record.current_status == "HIRED":
        final = [p.id for p in template.ordered_phases() if p.kind.value == "final"]
        return final[-1] if final else ordered[-1]
    elif record.current_status == "REJECTED":
        # Rejected after n interviews: the phase in which the n-th interview happened.
        if completed == 0:
            wanted = "cv_review"
        else:
            wanted = IN_PROCESS_PHASES[min(completed - 1, len(IN_PROCESS_PHASES) - 1)]
        index = min(completed, len(ordered) - 1)
    else:
        wanted = IN_PROCESS_PHASES[min(completed, len(IN_PROCESS_PHASES) - 1)]
        index = min(completed + 1, len(ordered) - 1)

    if wanted in ordered:
        return wanted
    return ordered[index]


def outcome_for_record(record: CandidateRecord) -> WorkflowStatus:
    if record.current_status == "HIRED":
        return WorkflowStatus.COMPLETED
    if record.current_status == "REJECTED":
        return WorkflowStatus.REJECTED
    return WorkflowStatus.ACTIVE


class WorkflowService:
    """Facade tying templates, state, transitions and projections together."""

    def __init__(
        self,
        *,
        templates: TemplateRegistry,
        repository: StateRepository,
        engine: TransitionEngine,
        evaluator: AutoAdvanceEvaluator,
        board: BoardProjector,
        metrics: MetricsEngine,
        publisher: EventPublisher,
        records: CandidateRecordService | None = None,
    ) -> None:
        self._templates = templates
        self._repository = repository
        self._engine = engine
        self._evaluator = evaluator
        self._board = board
        self._metrics = metrics
        self._publisher = publisher
        self._records = records
        self._logger = structlog.get_logger(__name__)

    @property
    def templates(self) -> TemplateRegistry:
        return self._templates

    # Transitions

    def move_candidate(
        self,
        candidate_id: str,
        from_phase: str,
        to_phase: str,
        decision: str | None = None,
        score: float | None = None,
        notes: str | None = None,
        interviewer_id: str | None = None,
    ) -> CandidateWorkflowState:
        try:
            request = MoveRequest(
                candidate_id=candidate_id,
                from_phase=from_phase,
                to_phase=to_phase,
                decision=decision,
                score=score,
                notes=notes,
                interviewer_id=interviewer_id,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid move request: {exc}") from exc
        return self._engine.move(request)

    def bulk_move(self, moves: Iterable[MoveRequest | dict[str, Any]]) -> BulkMoveResult:
        outcome = BulkMoveResult()
        for raw in moves:
            candidate_id = _candidate_id_of(raw)
            try:
                request = raw if isinstance(raw, MoveRequest) else MoveRequest.model_validate(raw)
                state = self._engine.move(request)
            except PydanticValidationError as exc:
                outcome.errors.append(
                    MoveError(candidate_id=candidate_id, error=str(exc), error_type="ValidationError")
                )
                continue
            except WorkflowError as exc:
                outcome.errors.append(
                    MoveError(candidate_id=candidate_id, error=str(exc), error_type=type(exc).__name__)
                )
                continue
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "workflow.bulk_move_item_failed",
                    candidate_id=candidate_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                outcome.errors.append(
                    MoveError(candidate_id=candidate_id, error=str(exc), error_type=type(exc).__name__)
                )
                continue
            outcome.results.append(MoveResult(candidate_id=candidate_id, state=state))

        self._logger.info("workflow.bulk_move", **outcome.summary)
        return outcome

    def start_candidate(
        self,
        candidate_id: str,
        template_id: str | None = None,
        metadata: WorkflowMetadata | dict[str, Any] | None = None,
        position_type: str | None = None,
    ) -> CandidateWorkflowState:
        """Start a candidate at the first phase.

        An explicit ``template_id`` wins; otherwise ``position_type`` picks the
        template listing it, falling back to the default template.
        """
        if template_id is None and position_type:
            template = self._templates.for_position(position_type)
        else:
            template = self._templates.resolve(template_id)
        parsed = (
            metadata
            if metadata is None or isinstance(metadata, WorkflowMetadata)
            else WorkflowMetadata.model_validate(metadata)
        )
        return self._engine.start(candidate_id, template, metadata=parsed)

    def set_status(
        self,
        candidate_id: str,
        status: WorkflowStatus | str,
        notes: str | None = None,
    ) -> CandidateWorkflowState:
        try:
            parsed = WorkflowStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown workflow status: {status!r}") from exc
        return self._engine.set_status(candidate_id, parsed, notes=notes)

    def process_score(
        self,
        candidate_id: str,
        score: float,
        phase_id: str | None = None,
    ) -> CandidateWorkflowState | None:
        """Feed an external score; returns the new state when a rule advanced the candidate."""
        if not 0 <= score <= 100:
            raise ValidationError(f"Score must be between 0 and 100, got {score!r}")
        state = self.get_state(candidate_id)
        if phase_id is not None and phase_id != state.current_phase:
            self._logger.info(
                "rules.stale_score_ignored",
                candidate_id=candidate_id,
                phase_id=phase_id,
                current_phase=state.current_phase,
            )
            return None

        template = self._templates.get(state.template_id)
        match = self._evaluator.evaluate(state, template, score)
        try:
            if match is None:
                if state.status is WorkflowStatus.ACTIVE:
                    self._engine.record_score(candidate_id, state.current_phase, score)
                return None
            request = MoveRequest(
                candidate_id=candidate_id,
                from_phase=match.phase_id,
                to_phase=match.rule.next_phase,
                decision="passed",
                score=score,
                notes=match.notes,
            )
            return self._engine.move(request, automated=True)
        except StateConflictError as exc:
            self._logger.info(
                "rules.auto_advance_superseded", candidate_id=candidate_id, error=str(exc)
            )
            return None

    # Reads

    def get_state(self, candidate_id: str) -> CandidateWorkflowState:
        state = self._repository.get(candidate_id)
        if state is None:
            raise NotFoundError(f"Candidate workflow state not found: {candidate_id!r}")
        return state

    def list_states(self, template_id: str | None = None) -> list[CandidateWorkflowState]:
        return self._repository.list(template_id)

    def get_board(self, template_id: str | None = None) -> list[BoardColumn]:
        return self._board.build(self._templates.resolve(template_id).id)

    def get_metrics(self, template_id: str | None = None) -> WorkflowMetrics:
        return self._metrics.compute(self._templates.resolve(template_id).id)

    # Candidate record synchronisation

    def sync_from_candidate_record(self, candidate_id: str) -> CandidateWorkflowState | None:
        if self._records is None:
            self._logger.warning("sync.no_record_service", candidate_id=candidate_id)
            return None
        try:
            record = self._records.fetch(candidate_id)
        except ExternalSyncError as exc:
            self._logger.warning("sync.fetch_failed", candidate_id=candidate_id, error=str(exc))
            return None
        if record is None:
            self._logger.info("sync.candidate_unknown", candidate_id=candidate_id)
            return None

        existing = self._repository.get(candidate_id)
        template = (
            self._templates.get(existing.template_id)
            if existing is not None
            else self._templates.default()
        )
        outcome = outcome_for_record(record)
        if existing is not None and outcome is WorkflowStatus.REJECTED:
            target_phase = existing.current_phase
        else:
            target_phase = phase_for_record(record, template)
        metadata = existing.metadata.model_copy() if existing else WorkflowMetadata(
            position_id=f"pos-{candidate_id}",
            assigned_recruiter="",
        )
        if record.position_applied:
            metadata.position_title = record.position_applied

        return self._engine.reconcile(
            candidate_id,
            template,
            target_phase,
            outcome=outcome,
            metadata=metadata,
            started_at=record.application_date,
        )

    def sync_all(self, candidate_ids: Iterable[str] | None = None) -> list[CandidateWorkflowState]:
        if candidate_ids is None:
            if self._records is None:
                return []
            try:
                candidate_ids = self._records.list_ids()
            except ExternalSyncError as exc:
                self._logger.warning("sync.list_failed", error=str(exc))
                return []
        synced = [self.sync_from_candidate_record(cid) for cid in candidate_ids]
        states = [state for state in synced if state is not None]
        self._logger.info("sync.completed", synced=len(states), requested=len(synced))
        return states

    # Templates

    def register_template(self, template: WorkflowTemplate | dict[str, Any]) -> WorkflowTemplate:
        return self._templates.register(template)

    def update_template(self, template_id: str, changes: dict[str, Any]) -> WorkflowTemplate:
        return self._templates.update(template_id, changes)

    def list_templates(self) -> list[WorkflowTemplate]:
        return self._templates.list_templates()

    def delete_template(self, template_id: str) -> None:
        in_use = self._repository.list(template_id)
        if in_use:
            raise StateConflictError(
                f"Template {template_id!r} is referenced by {len(in_use)} candidate states"
            )
        self._templates.remove(template_id)

    # Listeners

    def add_listener(self, listener: Listener) -> None:
        self._publisher.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._publisher.remove_listener(listener)


def _candidate_id_of(raw: MoveRequest | dict[str, Any]) -> str:
    if isinstance(raw, MoveRequest):
        return raw.candidate_id
    if isinstance(raw, dict):
        return str(raw.get("candidate_id", ""))
    return ""


__all__ = ["WorkflowService", "outcome_for_record", "phase_for_record"]
