"""Pipeline analytics schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class BottleneckAnalysis(BaseModel):
    phase_id: str
    phase_name: str
    average_time: float
    standard_deviation: float
    candidates_in_phase: int
    risk_level: Literal["low", "medium", "high"]
    suggestions: list[str] = Field(default_factory=list)


class SLABreach(BaseModel):
    candidate_id: str
    phase_id: str
    phase_name: str
    expected_completion_at: datetime
    actual_time: float
    delay: float
    severity: Literal["minor", "major", "critical"]


class SLAMetrics(BaseModel):
    overall_compliance: float
    phase_compliance: dict[str, float] = Field(default_factory=dict)
    breached_slas: list[SLABreach] = Field(default_factory=list)


class TimeToCompletion(BaseModel):
    """Elapsed days from pipeline start to completion."""

    average: float = 0.0
    median: float = 0.0
    p90: float = 0.0


class WorkflowMetrics(BaseModel):
    template_id: str
    total_candidates: int
    candidates_by_phase: dict[str, int]
    candidates_by_outcome: dict[str, int] = Field(default_factory=dict)
    average_time_per_phase: dict[str, float]
    conversion_rates: dict[str, float]
    bottlenecks: list[BottleneckAnalysis]
    sla_compliance: SLAMetrics
    time_to_completion: TimeToCompletion
