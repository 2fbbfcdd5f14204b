"""Consistency checks for candidate workflow states."""

from __future__ import annotations

from ..schemas import CandidateWorkflowState, Decision, WorkflowStatus, WorkflowTemplate


def check_state_invariants(
    state: CandidateWorkflowState,
    template: WorkflowTemplate | None = None,
) -> list[str]:
    """Return human-readable violations; an empty list means the state is consistent."""
    violations: list[str] = []

    open_entries = [entry for entry in state.history if entry.is_open]
    if state.status is WorkflowStatus.ACTIVE:
        if len(open_entries) != 1:
            violations.append(f"active state has {len(open_entries)} open history entries")
        elif open_entries[0].phase_id != state.current_phase:
            violations.append(
                f"open entry is for {open_entries[0].phase_id!r}, "
                f"current phase is {state.current_phase!r}"
            )

    for earlier, later in zip(state.history, state.history[1:]):
        if later.entered_at < earlier.entered_at:
            violations.append(
                f"history entry {later.phase_id!r} entered before {earlier.phase_id!r}"
            )

    if state.status.is_terminal:
        if state.completed_at is None:
            violations.append(f"{state.status.value} state has no completed_at")
        expected = Decision.PASSED if state.status is WorkflowStatus.COMPLETED else Decision.FAILED
        closed = [entry for entry in state.history if not entry.is_open]
        if not closed or closed[-1].decision is not expected:
            violations.append(
                f"{state.status.value} state's last closed entry is not {expected.value}"
            )

    if template is not None and template.get_phase(state.current_phase) is None:
        violations.append(
            f"current phase {state.current_phase!r} is not on template {template.id!r}"
        )

    return violations


__all__ = ["check_state_invariants"]
