from __future__ import annotations

import threading
from typing import Any

import pytest

from hrworkflow.adapters import InMemoryCandidateRecordService, RecordingBroadcaster
from hrworkflow.core import PublishEffect, StatusSyncEffect
from hrworkflow.errors import ExternalSyncError
from hrworkflow.events import EventPublisher, Outbox, OutboxDispatcher
from hrworkflow.schemas import EventType, WorkflowEvent


class FlakyBroadcaster:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0
        self.delivered: list[tuple[str | None, str]] = []

    def emit(self, channel: str | None, event_name: str, payload: dict[str, Any]) -> None:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("socket closed")
        self.delivered.append((channel, event_name))


class BlockingRecords(InMemoryCandidateRecordService):
    def __init__(self, release: threading.Event):
        super().__init__()
        self._release = release

    def update_status(self, candidate_id: str, status_code: str) -> None:
        self._release.wait(timeout=2)


def build_event(**kwargs: Any) -> WorkflowEvent:
    defaults: dict[str, Any] = {
        "type": EventType.CANDIDATE_MOVED,
        "candidate_id": "C-001",
        "workflow_id": "default-workflow",
        "phase_id": "phone_screening",
        "payload": {
            "candidate_id": "C-001",
            "workflow_id": "default-workflow",
            "from_phase": "cv_review",
            "to_phase": "phone_screening",
            "decision": "passed",
        },
    }
    defaults.update(kwargs)
    return WorkflowEvent(**defaults)


def test_broadcast_reaches_workflow_candidate_and_global_channels():
    broadcaster = RecordingBroadcaster()
    publisher = EventPublisher(broadcaster)
    event = build_event()

    publisher.publish(event)

    assert [(m.channel, m.event_name) for m in broadcaster.messages] == [
        ("workflow-default-workflow", "workflow_update"),
        ("candidate-C-001", "candidate_update"),
        (None, "global_update"),
    ]
    assert broadcaster.messages[0].payload["data"] == event.payload
    assert broadcaster.messages[2].payload["data"] == {
        "candidate_id": "C-001",
        "from_phase": "cv_review",
        "to_phase": "phone_screening",
        "decision": "passed",
    }


def test_listener_failure_does_not_stop_other_listeners():
    publisher = EventPublisher()
    received: list[str] = []

    def broken(event: WorkflowEvent) -> None:
        raise RuntimeError("listener bug")

    publisher.add_listener(broken)
    publisher.add_listener(lambda event: received.append(event.id))
    event = build_event()

    publisher.publish(event)
    publisher.remove_listener(broken)
    publisher.publish(event)

    assert received == [event.id, event.id]


def test_publish_swallows_broadcaster_failures():
    publisher = EventPublisher(FlakyBroadcaster(failures=10))

    publisher.publish(build_event())

    with pytest.raises(ExternalSyncError):
        publisher.broadcast(build_event())


def test_dispatcher_retries_until_delivered():
    broadcaster = FlakyBroadcaster(failures=1)
    sleeps: list[float] = []
    outbox = Outbox()
    publisher = EventPublisher(broadcaster)
    dispatcher = OutboxDispatcher(
        outbox,
        publisher,
        max_attempts=3,
        backoff_seconds=0.5,
        timeout_seconds=None,
        sleep=sleeps.append,
    )
    received: list[WorkflowEvent] = []
    publisher.add_listener(received.append)

    outbox.enqueue(PublishEffect(build_event()))
    dispatcher.pump()

    assert len(outbox) == 0
    assert dispatcher.delivered == 1
    assert dispatcher.dropped == 0
    assert sleeps == [0.5]
    assert len(received) == 1
    assert broadcaster.calls == 6
    assert broadcaster.delivered[-3:] == [
        ("workflow-default-workflow", "workflow_update"),
        ("candidate-C-001", "candidate_update"),
        (None, "global_update"),
    ]


def test_dispatcher_drops_effect_after_max_attempts():
    broadcaster = FlakyBroadcaster(failures=100)
    sleeps: list[float] = []
    dispatcher = OutboxDispatcher(
        Outbox(),
        EventPublisher(broadcaster),
        max_attempts=3,
        backoff_seconds=1.0,
        timeout_seconds=None,
        sleep=sleeps.append,
    )

    dispatcher.dispatch([PublishEffect(build_event())])

    assert dispatcher.dropped == 1
    assert dispatcher.delivered == 0
    assert sleeps == [1.0, 2.0]


def test_status_sync_effects_reach_record_service():
    records = InMemoryCandidateRecordService([{"candidate_id": "C-001", "current_status": "NEW"}])
    dispatcher = OutboxDispatcher(Outbox(), EventPublisher(), records, timeout_seconds=None)

    dispatcher.dispatch([StatusSyncEffect("C-001", "technical_interview", "IN_PROCESS", "passed")])

    assert records.status_updates == [("C-001", "IN_PROCESS")]
    assert records.fetch("C-001").current_status == "IN_PROCESS"


def test_status_sync_is_skipped_without_record_service():
    dispatcher = OutboxDispatcher(Outbox(), EventPublisher(), None, timeout_seconds=None)

    dispatcher.dispatch([StatusSyncEffect("C-001", "cv_review", "NEW")])

    assert dispatcher.delivered == 0
    assert dispatcher.dropped == 0


def test_slow_collaborator_times_out_and_is_dropped():
    release = threading.Event()
    dispatcher = OutboxDispatcher(
        Outbox(),
        EventPublisher(),
        BlockingRecords(release),
        max_attempts=1,
        timeout_seconds=0.05,
    )
    try:
        dispatcher.dispatch([StatusSyncEffect("C-001", "cv_review", "NEW")])
    finally:
        release.set()
        dispatcher.shutdown()

    assert dispatcher.dropped == 1


def test_background_mode_delivers_after_flush():
    broadcaster = RecordingBroadcaster()
    outbox = Outbox()
    dispatcher = OutboxDispatcher(
        outbox,
        EventPublisher(broadcaster),
        mode="background",
        timeout_seconds=None,
    )

    outbox.enqueue(PublishEffect(build_event()))
    dispatcher.pump()
    dispatcher.flush(timeout=2)
    dispatcher.shutdown()

    assert len(broadcaster.messages) == 3
    assert dispatcher.delivered == 1


def test_dispatcher_requires_at_least_one_attempt():
    with pytest.raises(ValueError):
        OutboxDispatcher(Outbox(), EventPublisher(), max_attempts=0)
