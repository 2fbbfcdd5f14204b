"""Core workflow engine components."""

from __future__ import annotations

# NOTE: keep imports explicit for export clarity.
from .board import BoardProjector
from .invariants import check_state_invariants
from .metrics import MetricsEngine
from .rules import AutoAdvanceEvaluator, RuleMatch
from .store import InMemoryStateRepository, JsonFileStateRepository, KeyedLock, StateRepository
from .templates import DEFAULT_TEMPLATE_ID, TemplateRegistry, default_template
from .transitions import (
    PublishEffect,
    StatusSyncEffect,
    TransitionEngine,
    TransitionPolicy,
    status_code_for,
)

__all__ = [
    "AutoAdvanceEvaluator",
    "BoardProjector",
    "DEFAULT_TEMPLATE_ID",
    "InMemoryStateRepository",
    "JsonFileStateRepository",
    "KeyedLock",
    "MetricsEngine",
    "PublishEffect",
    "RuleMatch",
    "StateRepository",
    "StatusSyncEffect",
    "TemplateRegistry",
    "TransitionEngine",
    "TransitionPolicy",
    "check_state_invariants",
    "default_template",
    "status_code_for",
]
