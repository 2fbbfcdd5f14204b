"""Aggregate pipeline analytics over all candidate states of a template."""

from __future__ import annotations

import math
import statistics
from datetime import timedelta

import structlog

from ..schemas import (
    BottleneckAnalysis,
    CandidateWorkflowState,
    PhaseHistoryEntry,
    SLABreach,
    SLAMetrics,
    TimeToCompletion,
    WorkflowMetrics,
    WorkflowPhase,
    WorkflowStatus,
    WorkflowTemplate,
)
from .store import StateRepository
from .templates import TemplateRegistry

DEFAULT_SLA_HOURS = 48.0
HIGH_RISK_FACTOR = 1.5
OUTCOME_BUCKETS = (("hired", WorkflowStatus.COMPLETED), ("rejected", WorkflowStatus.REJECTED))

ClosedEntry = tuple[CandidateWorkflowState, PhaseHistoryEntry, float]


def median(values: list[float]) -> float:
    if not values:
        return 0.0
    return float(statistics.median(values))


def percentile(values: list[float], pct: float) -> float:
    """Nearest-rank percentile."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((pct / 100) * len(ordered)) - 1
    return ordered[max(0, min(index, len(ordered) - 1))]


def _breach_severity(delay_hours: float, sla_hours: float) -> str:
    ratio = delay_hours / sla_hours if sla_hours else float("inf")
    if ratio <= 0.25:
        return "minor"
    if ratio <= 1.0:
        return "major"
    return "critical"


class MetricsEngine:
    """Computes bottlenecks, SLA compliance, conversion and time-to-completion."""

    def __init__(self, *, repository: StateRepository, templates: TemplateRegistry) -> None:
        self._repository = repository
        self._templates = templates
        self._logger = structlog.get_logger(__name__)

    def compute(self, template_id: str) -> WorkflowMetrics:
        template = self._templates.get(template_id)
        states = self._repository.list(template_id)
        phases = template.ordered_phases()

        closed = self._closed_entries_by_phase(states, template)
        by_phase = self.candidates_by_phase(states, phases)
        outcomes = self.candidates_by_outcome(states)
        averages = {
            phase.id: (
                sum(h for _, _, h in closed[phase.id]) / len(closed[phase.id])
                if closed[phase.id]
                else 0.0
            )
            for phase in phases
        }

        metrics = WorkflowMetrics(
            template_id=template.id,
            total_candidates=len(states),
            candidates_by_phase=self._with_outcomes(by_phase, outcomes, template.id),
            candidates_by_outcome=outcomes,
            average_time_per_phase=averages,
            conversion_rates=self.conversion_rates(states, phases),
            bottlenecks=self.bottlenecks(phases, closed, averages, by_phase),
            sla_compliance=self.sla_compliance(phases, closed),
            time_to_completion=self.time_to_completion(states),
        )
        self._logger.debug(
            "metrics.computed",
            template_id=template.id,
            total_candidates=metrics.total_candidates,
            bottlenecks=[b.phase_id for b in metrics.bottlenecks],
        )
        return metrics

    @staticmethod
    def _closed_entries_by_phase(
        states: list[CandidateWorkflowState],
        template: WorkflowTemplate,
    ) -> dict[str, list[ClosedEntry]]:
        grouped: dict[str, list[ClosedEntry]] = {phase.id: [] for phase in template.phases}
        for state in states:
            for entry in state.history:
                hours = entry.duration_hours()
                if hours is None or entry.phase_id not in grouped:
                    continue
                grouped[entry.phase_id].append((state, entry, hours))
        return grouped

    @staticmethod
    def candidates_by_phase(
        states: list[CandidateWorkflowState],
        phases: list[WorkflowPhase],
    ) -> dict[str, int]:
        counts = {phase.id: 0 for phase in phases}
        for state in states:
            if state.status is WorkflowStatus.ACTIVE and state.current_phase in counts:
                counts[state.current_phase] += 1
        return counts

    @staticmethod
    def candidates_by_outcome(states: list[CandidateWorkflowState]) -> dict[str, int]:
        return {
            bucket: sum(1 for state in states if state.status is status)
            for bucket, status in OUTCOME_BUCKETS
        }

    def _with_outcomes(
        self,
        by_phase: dict[str, int],
        outcomes: dict[str, int],
        template_id: str,
    ) -> dict[str, int]:
        """Phase counts plus outcome buckets whose name no phase uses."""
        merged = dict(by_phase)
        for bucket, count in outcomes.items():
            if bucket in merged:
                self._logger.warning(
                    "metrics.outcome_bucket_shadowed", template_id=template_id, bucket=bucket
                )
                continue
            merged[bucket] = count
        return merged

    @staticmethod
    def conversion_rates(
        states: list[CandidateWorkflowState],
        phases: list[WorkflowPhase],
    ) -> dict[str, float]:
        # Cumulative "ever reached" ratio between adjacent phases, not a strict funnel.
        rates: dict[str, float] = {}
        for current, following in zip(phases, phases[1:]):
            reached_current = sum(1 for state in states if state.reached(current.id))
            reached_next = sum(1 for state in states if state.reached(following.id))
            key = f"{current.id}_to_{following.id}"
            rates[key] = reached_next / reached_current * 100 if reached_current else 0.0
        return rates

    @staticmethod
    def bottlenecks(
        phases: list[WorkflowPhase],
        closed: dict[str, list[ClosedEntry]],
        averages: dict[str, float],
        by_phase: dict[str, int],
    ) -> list[BottleneckAnalysis]:
        found: list[BottleneckAnalysis] = []
        for phase in phases:
            sla = phase.sla_hours or DEFAULT_SLA_HOURS
            average = averages[phase.id]
            if average <= sla:
                continue
            durations = [hours for _, _, hours in closed[phase.id]]
            deviation = statistics.pstdev(durations) if len(durations) > 1 else 0.0
            risk = "high" if average > sla * HIGH_RISK_FACTOR else "medium"
            suggestions = [
                f"Streamline the {phase.name} process",
                "Assign more interviewers or recruiters to this phase",
            ]
            if phase.required_interviewers:
                suggestions.append(
                    "Check availability of " + ", ".join(phase.required_interviewers)
                )
            found.append(
                BottleneckAnalysis(
                    phase_id=phase.id,
                    phase_name=phase.name,
                    average_time=average,
                    standard_deviation=deviation,
                    candidates_in_phase=by_phase.get(phase.id, 0),
                    risk_level=risk,
                    suggestions=suggestions,
                )
            )
        return found

    @staticmethod
    def sla_compliance(
        phases: list[WorkflowPhase],
        closed: dict[str, list[ClosedEntry]],
    ) -> SLAMetrics:
        phase_compliance: dict[str, float] = {}
        breaches: list[SLABreach] = []
        total = 0
        compliant_total = 0
        for phase in phases:
            sla = phase.sla_hours or DEFAULT_SLA_HOURS
            entries = closed[phase.id]
            compliant = 0
            for state, entry, hours in entries:
                if hours <= sla:
                    compliant += 1
                    continue
                delay = hours - sla
                breaches.append(
                    SLABreach(
                        candidate_id=state.candidate_id,
                        phase_id=phase.id,
                        phase_name=phase.name,
                        expected_completion_at=entry.entered_at + timedelta(hours=sla),
                        actual_time=hours,
                        delay=delay,
                        severity=_breach_severity(delay, sla),
                    )
                )
            phase_compliance[phase.id] = compliant / len(entries) * 100 if entries else 100.0
            total += len(entries)
            compliant_total += compliant
        overall = compliant_total / total * 100 if total else 100.0
        return SLAMetrics(
            overall_compliance=overall,
            phase_compliance=phase_compliance,
            breached_slas=breaches,
        )

    @staticmethod
    def time_to_completion(states: list[CandidateWorkflowState]) -> TimeToCompletion:
        days = [
            (state.completed_at - state.started_at).total_seconds() / 86400
            for state in states
            if state.status is WorkflowStatus.COMPLETED and state.completed_at is not None
        ]
        if not days:
            return TimeToCompletion()
        return TimeToCompletion(
            average=sum(days) / len(days),
            median=median(days),
            p90=percentile(days, 90),
        )


__all__ = ["DEFAULT_SLA_HOURS", "MetricsEngine", "median", "percentile"]
