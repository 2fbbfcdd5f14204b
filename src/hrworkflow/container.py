"""Dependency injection container for the workflow engine."""

from __future__ import annotations

import copy
from typing import Any, Callable

from dependency_injector import containers, providers

from .adapters import (
    HTTPCandidateRecordClient,
    InMemoryCandidateRecordService,
    NullBroadcaster,
)
from .core import (
    AutoAdvanceEvaluator,
    BoardProjector,
    InMemoryStateRepository,
    KeyedLock,
    MetricsEngine,
    TemplateRegistry,
    TransitionEngine,
    TransitionPolicy,
    default_template,
)
from .events import EventPublisher, Outbox, OutboxDispatcher
from .service import WorkflowService

DEFAULT_SETTINGS: dict[str, Any] = {
    "engine": {
        "allow_backward": True,
        "allow_skip": True,
        "actor": "system",
        "default_template_id": None,
    },
    "dispatch": {
        "mode": "background",
        "max_attempts": 3,
        "backoff_seconds": 0.0,
        "timeout_seconds": 5.0,
        "max_workers": 4,
    },
}


class WorkflowContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    config = providers.Configuration()

    clock = providers.Object(None)

    template_registry = providers.Singleton(
        TemplateRegistry,
        default_id=config.engine.default_template_id,
    )
    repository = providers.Singleton(InMemoryStateRepository)
    locks = providers.Singleton(KeyedLock)

    broadcaster = providers.Singleton(NullBroadcaster)
    record_service = providers.Singleton(InMemoryCandidateRecordService)
    scoring_service = providers.Object(None)

    publisher = providers.Singleton(EventPublisher, broadcaster=broadcaster)
    outbox = providers.Singleton(Outbox)
    dispatcher = providers.Singleton(
        OutboxDispatcher,
        outbox=outbox,
        publisher=publisher,
        records=record_service,
        mode=config.dispatch.mode,
        max_attempts=config.dispatch.max_attempts,
        backoff_seconds=config.dispatch.backoff_seconds,
        timeout_seconds=config.dispatch.timeout_seconds,
        max_workers=config.dispatch.max_workers,
    )

    policy = providers.Singleton(
        TransitionPolicy,
        allow_backward=config.engine.allow_backward,
        allow_skip=config.engine.allow_skip,
    )

    transition_engine = providers.Singleton(
        TransitionEngine,
        repository=repository,
        templates=template_registry,
        outbox=outbox,
        dispatcher=dispatcher,
        locks=locks,
        policy=policy,
        clock=clock,
        actor=config.engine.actor,
    )

    evaluator = providers.Singleton(AutoAdvanceEvaluator)

    board_projector = providers.Singleton(
        BoardProjector,
        repository=repository,
        templates=template_registry,
        records=record_service,
        scoring=scoring_service,
        clock=clock,
    )

    metrics_engine = providers.Singleton(
        MetricsEngine,
        repository=repository,
        templates=template_registry,
    )

    service = providers.Singleton(
        WorkflowService,
        templates=template_registry,
        repository=repository,
        engine=transition_engine,
        evaluator=evaluator,
        board=board_projector,
        metrics=metrics_engine,
        publisher=publisher,
        records=record_service,
    )


def create_container(
    *,
    settings: dict | None = None,
    repository: Any = None,
    broadcaster: Any = None,
    record_service: Any = None,
    scoring_service: Any = None,
    clock: Callable | None = None,
) -> WorkflowContainer:
    """Instantiate container with optional overrides."""

    container = WorkflowContainer()
    settings = settings if isinstance(settings, dict) else {}

    merged = copy.deepcopy(DEFAULT_SETTINGS)
    for section in ("engine", "dispatch"):
        merged[section].update(settings.get(section) or {})
    container.config.from_dict(merged)

    templates = settings.get("templates") or []
    if templates:
        container.template_registry.override(
            providers.Singleton(
                TemplateRegistry,
                templates=[default_template(), *templates],
                default_id=container.config.engine.default_template_id,
            )
        )

    record_settings = settings.get("record_service") or {}
    if record_service is not None:
        container.record_service.override(providers.Object(record_service))
    elif record_settings.get("endpoint"):
        container.record_service.override(
            providers.Singleton(
                HTTPCandidateRecordClient,
                record_settings["endpoint"],
                record_settings.get("api_key"),
                timeout=record_settings.get("timeout_seconds", 10.0),
            )
        )

    if repository is not None:
        container.repository.override(providers.Object(repository))
    if broadcaster is not None:
        container.broadcaster.override(providers.Object(broadcaster))
    if scoring_service is not None:
        container.scoring_service.override(providers.Object(scoring_service))
    if clock is not None:
        container.clock.override(providers.Object(clock))

    return container
