"""External collaborator contracts and implementations."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ..schemas import CandidateRecord
from .broadcast import NullBroadcaster, RecordingBroadcaster
from .records import HTTPCandidateRecordClient, InMemoryCandidateRecordService
from .scoring import StaticScoringService


@runtime_checkable
class CandidateRecordService(Protocol):
    """Source of truth for candidate status outside the workflow engine."""

    def fetch(self, candidate_id: str) -> CandidateRecord | None:
        """Return the candidate record, or None when unknown."""

    def list_ids(self) -> list[str]:
        """Return ids of every candidate known to the service."""

    def update_status(self, candidate_id: str, status_code: str) -> None:
        """Write the mapped status code (NEW, IN_PROCESS, HIRED, REJECTED)."""


@runtime_checkable
class ScoringService(Protocol):
    """Supplies a 0-100 score per candidate and phase."""

    def score(self, candidate_id: str, phase_id: str) -> float | None:
        """Return the latest score, or None when not scored yet."""


@runtime_checkable
class RealtimeBroadcaster(Protocol):
    """Delivers events to connected subscribers; fire-and-forget."""

    def emit(self, channel: str | None, event_name: str, payload: dict[str, Any]) -> None:
        """Send ``payload`` to ``channel``; a None channel addresses every subscriber."""


__all__ = [
    "CandidateRecordService",
    "HTTPCandidateRecordClient",
    "InMemoryCandidateRecordService",
    "NullBroadcaster",
    "RealtimeBroadcaster",
    "RecordingBroadcaster",
    "ScoringService",
    "StaticScoringService",
]
