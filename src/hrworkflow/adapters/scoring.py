"""Scoring service implementations."""

from __future__ import annotations


class StaticScoringService:
    """Scores supplied up front, keyed by candidate and phase."""

    def __init__(self, scores: dict[tuple[str, str], float] | None = None):
        self._scores = dict(scores or {})

    def set(self, candidate_id: str, phase_id: str, score: float) -> None:
        self._scores[(candidate_id, phase_id)] = score

    def score(self, candidate_id: str, phase_id: str) -> float | None:
        return self._scores.get((candidate_id, phase_id))
