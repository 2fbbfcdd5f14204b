"""Candidate workflow state repositories and per-candidate locking."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

import structlog

from ..schemas import CandidateWorkflowState


@runtime_checkable
class StateRepository(Protocol):
    """Storage contract for candidate workflow states, keyed by candidate id."""

    def get(self, candidate_id: str) -> CandidateWorkflowState | None:
        """Return a copy of the stored state, or None."""

    def put(self, state: CandidateWorkflowState) -> None:
        """Insert or replace the state for ``state.candidate_id``."""

    def list(self, template_id: str | None = None) -> list[CandidateWorkflowState]:
        """Return copies of all states, optionally filtered by template."""

    def exists(self, candidate_id: str) -> bool:
        """Return True when a state is stored for the candidate."""


class InMemoryStateRepository:
    """Dictionary-backed repository handing out deep copies."""

    def __init__(self, states: list[CandidateWorkflowState] | None = None):
        self._states: dict[str, CandidateWorkflowState] = {}
        self._lock = threading.Lock()
        for state in states or []:
            self.put(state)

    def get(self, candidate_id: str) -> CandidateWorkflowState | None:
        with self._lock:
            state = self._states.get(candidate_id)
            return state.model_copy(deep=True) if state else None

    def put(self, state: CandidateWorkflowState) -> None:
        with self._lock:
            self._states[state.candidate_id] = state.model_copy(deep=True)

    def list(self, template_id: str | None = None) -> list[CandidateWorkflowState]:
        with self._lock:
            return [
                state.model_copy(deep=True)
                for state in self._states.values()
                if template_id is None or state.template_id == template_id
            ]

    def exists(self, candidate_id: str) -> bool:
        with self._lock:
            return candidate_id in self._states


class JsonFileStateRepository(InMemoryStateRepository):
    """In-memory repository persisted to a JSON document on each write.

    The document is written before the in-memory copy changes, so a failed
    write leaves both untouched.
    """

    def __init__(self, path: Path):
        super().__init__()
        self._path = path
        self._logger = structlog.get_logger(__name__)
        if path.exists():
            self._load()

    def put(self, state: CandidateWorkflowState) -> None:
        stored = state.model_copy(deep=True)
        with self._lock:
            states = {**self._states, stored.candidate_id: stored}
            self._write(states)
            self._states = states

    def _load(self) -> None:
        raw = self._path.read_text(encoding="utf-8").strip()
        if not raw:
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid state file {self._path}: {exc}") from exc
        records = data.get("states", []) if isinstance(data, dict) else data
        for record in records:
            state = CandidateWorkflowState.model_validate(record)
            self._states[state.candidate_id] = state
        self._logger.debug("store.loaded", path=str(self._path), count=len(self._states))

    def _write(self, states: dict[str, CandidateWorkflowState]) -> None:
        # Caller holds self._lock; the shared tmp path relies on it.
        payload = {"states": [state.model_dump(mode="json") for state in states.values()]}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)


class KeyedLock:
    """Mutual exclusion per key; unrelated keys never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refcounts: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refcounts[key] = self._refcounts.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refcounts[key] -= 1
                if self._refcounts[key] == 0:
                    del self._refcounts[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = [
    "StateRepository",
    "InMemoryStateRepository",
    "JsonFileStateRepository",
    "KeyedLock",
]
