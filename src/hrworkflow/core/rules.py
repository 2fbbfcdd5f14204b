"""Auto-advance rule evaluation."""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Callable

import structlog

from ..schemas import (
    AutoAdvanceRule,
    CandidateWorkflowState,
    RuleCondition,
    WorkflowStatus,
    WorkflowTemplate,
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}


def compare(score: float, op: str, value: float) -> bool:
    try:
        fn = _OPERATORS[op]
    except KeyError as exc:
        raise ValueError(f"Unsupported operator: {op!r}") from exc
    return fn(float(score), float(value))


@dataclass(slots=True)
class RuleMatch:
    """First rule that held for a score."""

    phase_id: str
    rule_index: int
    rule: AutoAdvanceRule
    score: float

    @property
    def notes(self) -> str:
        return (
            f"auto-advance: score {self.score:g} {self.rule.operator} "
            f"{self.rule.value:g} -> {self.rule.next_phase} (rule #{self.rule_index + 1})"
        )


class AutoAdvanceEvaluator:
    """Evaluate a phase's rules in declared order; only the first match fires."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    def evaluate(
        self,
        state: CandidateWorkflowState,
        template: WorkflowTemplate,
        score: float,
    ) -> RuleMatch | None:
        if state.status is not WorkflowStatus.ACTIVE:
            return None
        phase = template.get_phase(state.current_phase)
        if phase is None:
            return None

        for index, rule in enumerate(phase.auto_advance_rules):
            if rule.condition is not RuleCondition.SCORE_THRESHOLD:
                continue
            if rule.next_phase == phase.id:
                continue
            if compare(score, rule.operator, rule.value):
                self._logger.debug(
                    "rules.matched",
                    candidate_id=state.candidate_id,
                    phase_id=phase.id,
                    rule_index=index,
                    next_phase=rule.next_phase,
                    score=score,
                )
                return RuleMatch(phase_id=phase.id, rule_index=index, rule=rule, score=score)
        return None


__all__ = ["AutoAdvanceEvaluator", "RuleMatch", "compare"]
