from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from hrworkflow.adapters import InMemoryCandidateRecordService, StaticScoringService
from hrworkflow.container import create_container
from hrworkflow.core.board import heuristic_score, weighted_score
from hrworkflow.schemas import (
    CandidateWorkflowState,
    PhaseHistoryEntry,
    Priority,
    WorkflowMetadata,
)
from hrworkflow.service import WorkflowService

START = datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def build_service(clock: FixedClock, **overrides: Any) -> WorkflowService:
    return create_container(clock=clock, **overrides).service()


def build_state(**kwargs: Any) -> CandidateWorkflowState:
    defaults: dict[str, Any] = {
        "id": "cs-1",
        "candidate_id": "C-001",
        "template_id": "default-workflow",
        "current_phase": "cv_review",
        "started_at": START,
        "updated_at": START,
        "history": [PhaseHistoryEntry(phase_id="cv_review", phase_name="CV Review", entered_at=START)],
    }
    defaults.update(kwargs)
    return CandidateWorkflowState(**defaults)


def cards_by_column(service: WorkflowService) -> dict[str, list[str]]:
    return {column.phase_id: [card.candidate_id for card in column.cards] for column in service.get_board()}


def test_board_has_one_column_per_active_phase():
    service = build_service(FixedClock())

    columns = service.get_board()

    assert [column.phase_id for column in columns] == [
        "cv_review",
        "phone_screening",
        "technical_interview",
        "cultural_fit",
        "final_decision",
    ]
    assert columns[0].title == "CV Review"
    assert columns[0].sla_warning_hours == pytest.approx(19.2)
    assert all(column.cards == [] for column in columns)


def test_cards_are_grouped_and_sorted_by_days_in_phase():
    clock = FixedClock()
    service = build_service(clock)
    service.start_candidate("C-002")
    clock.advance(days=2)
    service.start_candidate("C-003")
    service.start_candidate("C-001")
    service.start_candidate("C-004")
    service.move_candidate("C-004", "cv_review", "phone_screening")
    service.start_candidate("C-009")
    service.move_candidate("C-009", "cv_review", "phone_screening", decision="failed")
    clock.advance(days=1)

    columns = cards_by_column(service)

    assert columns["cv_review"] == ["C-002", "C-001", "C-003"]
    assert columns["phone_screening"] == ["C-004"]
    cv_cards = service.get_board()[0].cards
    assert [card.days_in_phase for card in cv_cards] == [3, 1, 1]


def test_card_uses_record_contact_details():
    clock = FixedClock()
    records = InMemoryCandidateRecordService(
        [{"candidate_id": "C-001", "first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"}]
    )
    service = build_service(clock, record_service=records)
    service.start_candidate("C-001", metadata={"position_title": "Backend Engineer"})
    service.start_candidate("C-002")

    cards = service.get_board()[0].cards

    assert (cards[0].name, cards[0].email, cards[0].position) == ("Ada Lovelace", "ada@example.com", "Backend Engineer")
    assert (cards[1].name, cards[1].email) == ("Unknown candidate", "")


def test_card_score_prefers_recorded_history_scores():
    clock = FixedClock()
    scoring = StaticScoringService({("C-001", "technical_interview"): 40, ("C-002", "cv_review"): 72.6})
    service = build_service(clock, scoring_service=scoring)
    service.start_candidate("C-001")
    service.move_candidate("C-001", "cv_review", "phone_screening", score=60)
    service.move_candidate("C-001", "phone_screening", "technical_interview", score=90)
    service.start_candidate("C-002")

    board = {card.candidate_id: card for column in service.get_board() for card in column.cards}

    assert board["C-001"].ai_score == 80
    assert board["C-002"].ai_score == 73


def test_flags_for_sla_priority_and_high_score():
    clock = FixedClock()
    service = build_service(clock)
    service.start_candidate(
        "C-001",
        metadata={"priority": "urgent", "position_title": "Senior Full Stack Developer"},
    )
    clock.advance(days=1)

    card = service.get_board()[0].cards[0]

    assert card.ai_score == 98
    assert {flag.type for flag in card.flags} == {"sla_warning", "urgent", "high_potential"}
    sla_flag = next(flag for flag in card.flags if flag.type == "sla_warning")
    assert sla_flag.severity == "warning"


def test_next_action_follows_phase():
    clock = FixedClock()
    service = build_service(clock)
    service.start_candidate("C-001", metadata={"assigned_recruiter": "rita"})
    service.start_candidate("C-002", metadata={"assigned_recruiter": "rita"})
    service.move_candidate("C-002", "cv_review", "phone_screening")
    service.start_candidate("C-003")
    service.move_candidate("C-003", "cv_review", "technical_interview")

    board = {card.candidate_id: card for column in service.get_board() for card in column.cards}

    review = board["C-001"].next_action
    assert (review.type, review.due_date, review.assigned_to) == ("review_feedback", None, "rita")
    screening = board["C-002"].next_action
    assert screening.type == "schedule_interview"
    assert screening.due_date == clock.now + timedelta(days=2)
    assert screening.assigned_to == "rita"
    technical = board["C-003"].next_action
    assert technical.assigned_to == "tech_lead"
    assert technical.due_date == clock.now + timedelta(days=3)


def test_weighted_score_favours_recent_scores():
    assert weighted_score([]) is None
    assert weighted_score([70]) == 70
    assert weighted_score([60, 90]) == 80
    assert weighted_score([80, 85]) == 83


def test_heuristic_score_adjustments():
    urgent = build_state(
        metadata=WorkflowMetadata(priority=Priority.URGENT, position_title="Lead Fullstack Engineer"),
    )
    stale = build_state(metadata=WorkflowMetadata(priority=Priority.LOW))

    assert heuristic_score(urgent, START + timedelta(days=10)) == 96
    assert heuristic_score(stale, START + timedelta(days=20)) == 65
    assert heuristic_score(stale, START) == 70
