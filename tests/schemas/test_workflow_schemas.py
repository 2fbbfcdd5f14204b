from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from hrworkflow.schemas import (
    AutoAdvanceRule,
    BulkMoveResult,
    CandidateRecord,
    MoveError,
    MoveRequest,
    RuleCondition,
    WorkflowEvent,
    WorkflowPhase,
    WorkflowStatus,
    WorkflowTemplate,
)


def test_template_requires_unique_phases():
    phases = [
        {"id": "cv_review", "name": "CV Review", "order": 1},
        {"id": "cv_review", "name": "Again", "order": 2},
    ]

    with pytest.raises(ValidationError):
        WorkflowTemplate(id="t", name="T", phases=phases)
    with pytest.raises(ValidationError):
        WorkflowTemplate(
            id="t",
            name="T",
            phases=[{"id": "a", "name": "A", "order": 1}, {"id": "b", "name": "B", "order": 1}],
        )
    with pytest.raises(ValidationError):
        WorkflowTemplate(id="t", name="T", phases=[])


def test_rule_targets_must_exist_on_template():
    phase = {
        "id": "cv_review",
        "name": "CV Review",
        "order": 1,
        "auto_advance_rules": [{"operator": ">=", "value": 80, "next_phase": "onsite"}],
    }

    with pytest.raises(ValidationError):
        WorkflowTemplate(id="t", name="T", phases=[phase])


def test_phases_are_ordered_by_order_field():
    template = WorkflowTemplate(
        id="t",
        name="T",
        phases=[
            {"id": "offer", "name": "Offer", "order": 3, "kind": "final"},
            {"id": "screen", "name": "Screen", "order": 1, "is_active": False},
            {"id": "panel", "name": "Panel", "order": 2},
        ],
    )

    assert template.phase_ids() == ["screen", "panel", "offer"]
    assert [p.id for p in template.active_phases()] == ["panel", "offer"]
    assert template.get_phase("missing") is None
    assert template.created_at.tzinfo is not None


def test_phase_defaults():
    phase = WorkflowPhase(id="cv_review", name="CV Review", order=1)

    assert phase.kind.value == "custom"
    assert phase.sla_hours is None
    assert phase.auto_advance_rules == []
    assert phase.is_active


@pytest.mark.parametrize("condition", ["ai_score", "score-threshold", "SCORE_THRESHOLD"])
def test_rule_condition_spellings(condition: str):
    rule = AutoAdvanceRule(condition=condition, value=80, next_phase="phone_screening")

    assert rule.condition is RuleCondition.SCORE_THRESHOLD


def test_rule_rejects_unknown_operator():
    with pytest.raises(ValidationError):
        AutoAdvanceRule(operator="=>", value=80, next_phase="phone_screening")


def test_move_request_bounds():
    with pytest.raises(ValidationError):
        MoveRequest(candidate_id="C-001", from_phase="a", to_phase="b", score=101)
    with pytest.raises(ValidationError):
        MoveRequest(candidate_id="C-001", from_phase="a", to_phase="b", decision="pending")
    with pytest.raises(ValidationError):
        MoveRequest(candidate_id="C-001", from_phase="a", to_phase="b", priority="high")

    request = MoveRequest(candidate_id="C-001", from_phase="a", to_phase="b", decision="failed", score=0)
    assert request.decision.value == "failed"


def test_naive_datetimes_are_treated_as_utc():
    record = CandidateRecord(candidate_id="C-001", application_date=datetime(2024, 1, 2, 3, 4))

    assert record.application_date == datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)


def test_candidate_record_keeps_unknown_fields():
    record = CandidateRecord(candidate_id="C-001", first_name="Ada", source="referral")

    assert record.full_name == "Ada"
    assert record.model_extra == {"source": "referral"}
    with pytest.raises(ValidationError):
        CandidateRecord(candidate_id="C-001", current_status="ARCHIVED")


def test_workflow_status_terminality():
    assert WorkflowStatus.COMPLETED.is_terminal
    assert WorkflowStatus.REJECTED.is_terminal
    assert not WorkflowStatus.WITHDRAWN.is_terminal
    assert not WorkflowStatus.ON_HOLD.is_terminal
    assert WorkflowStatus.ON_HOLD.is_mutable
    assert not WorkflowStatus.WITHDRAWN.is_mutable
    assert not WorkflowStatus.REJECTED.is_mutable


def test_events_get_unique_ids():
    first = WorkflowEvent(type="candidate_moved")
    second = WorkflowEvent(type="candidate_moved")

    assert first.id != second.id
    assert first.actor == "system"


def test_bulk_move_summary():
    result = BulkMoveResult(errors=[MoveError(candidate_id="C-9", error="missing", error_type="NotFoundError")])

    assert result.summary == {"total": 1, "successful": 0, "failed": 1}
