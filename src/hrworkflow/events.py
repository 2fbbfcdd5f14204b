"""Event publication and the side-effect outbox."""

from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Literal, Union

import structlog

from .adapters import CandidateRecordService, NullBroadcaster, RealtimeBroadcaster
from .core.transitions import PublishEffect, StatusSyncEffect
from .errors import ExternalSyncError
from .schemas import WorkflowEvent

Listener = Callable[[WorkflowEvent], None]
Effect = Union[StatusSyncEffect, PublishEffect]

GLOBAL_PAYLOAD_KEYS = ("candidate_id", "from_phase", "to_phase", "decision", "phase", "timestamp")


class EventPublisher:
    """Fans events out to in-process listeners and the realtime broadcaster.

    Each event reaches three audiences: the workflow channel, the candidate
    channel and the global feed (which receives a trimmed payload).
    """

    def __init__(self, broadcaster: RealtimeBroadcaster | None = None):
        self._broadcaster = broadcaster or NullBroadcaster()
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._logger = structlog.get_logger(__name__)

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: WorkflowEvent) -> None:
        """Deliver to listeners and broadcaster; failures are logged, never raised."""
        self.notify_listeners(event)
        try:
            self.broadcast(event)
        except ExternalSyncError as exc:
            self._logger.warning("events.broadcast_failed", event_id=event.id, error=str(exc))

    def notify_listeners(self, event: WorkflowEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "events.listener_failed",
                    event_id=event.id,
                    event_type=event.type.value,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(exc),
                )

    def broadcast(self, event: WorkflowEvent) -> None:
        """Emit to every channel; raises ExternalSyncError if any channel failed."""
        message = {"type": event.type.value, "event_id": event.id, "data": event.payload}
        targets: list[tuple[str | None, str, dict[str, Any]]] = []
        if event.workflow_id:
            targets.append((f"workflow-{event.workflow_id}", "workflow_update", message))
        if event.candidate_id:
            targets.append((f"candidate-{event.candidate_id}", "candidate_update", message))
        trimmed = {key: event.payload[key] for key in GLOBAL_PAYLOAD_KEYS if key in event.payload}
        targets.append(
            (None, "global_update", {"type": event.type.value, "event_id": event.id, "data": trimmed})
        )

        failures: list[str] = []
        for channel, name, payload in targets:
            try:
                self._broadcaster.emit(channel, name, payload)
            except Exception as exc:  # noqa: BLE001
                failures.append(f"{channel or 'global'}: {exc}")
        if failures:
            raise ExternalSyncError("; ".join(failures))
        self._logger.debug("events.broadcast", event_id=event.id, event_type=event.type.value)


class Outbox:
    """Thread-safe queue of side effects recorded alongside state mutations."""

    def __init__(self) -> None:
        self._items: deque[Effect] = deque()
        self._lock = threading.Lock()

    def enqueue(self, effect: Effect) -> None:
        with self._lock:
            self._items.append(effect)

    def drain(self) -> list[Effect]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class OutboxDispatcher:
    """Drains the outbox and delivers effects with bounded retry and timeout.

    Effects that still fail after ``max_attempts`` are logged and dropped;
    they never affect the mutation that recorded them.
    """

    def __init__(
        self,
        outbox: Outbox,
        publisher: EventPublisher,
        records: CandidateRecordService | None = None,
        *,
        mode: Literal["sync", "background"] = "sync",
        max_attempts: int = 3,
        backoff_seconds: float = 0.0,
        timeout_seconds: float | None = 5.0,
        max_workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._outbox = outbox
        self._publisher = publisher
        self._records = records
        self._mode = mode
        self._max_attempts = max_attempts
        self._backoff = backoff_seconds
        self._timeout = timeout_seconds
        self._sleep = sleep
        # One delivery thread keeps effects in commit order.
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="outbox")
            if mode == "background"
            else None
        )
        self._calls = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="outbox-call")
            if timeout_seconds
            else None
        )
        self._pending: list[Future] = []
        self._lock = threading.Lock()
        self.delivered = 0
        self.dropped = 0
        self._logger = structlog.get_logger(__name__)

    @property
    def outbox(self) -> Outbox:
        return self._outbox

    def pump(self) -> None:
        """Hand queued effects over; returns immediately in background mode."""
        if self._executor is None:
            effects = self._outbox.drain()
            if effects:
                self.dispatch(effects)
            return
        with self._lock:
            effects = self._outbox.drain()
            if not effects:
                return
            future = self._executor.submit(self.dispatch, effects)
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def dispatch(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, PublishEffect):
                self._publisher.notify_listeners(effect.event)
                self._deliver(effect, lambda e=effect: self._publisher.broadcast(e.event))
            elif isinstance(effect, StatusSyncEffect):
                if self._records is None:
                    continue
                self._deliver(
                    effect,
                    lambda e=effect: self._records.update_status(e.candidate_id, e.status_code),
                )

    def flush(self, timeout: float | None = None) -> None:
        """Wait for background deliveries submitted so far."""
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
        for future in pending:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.pump()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
        if self._calls is not None:
            self._calls.shutdown(wait=wait)

    def _deliver(self, effect: Effect, send: Callable[[], None]) -> bool:
        kind = type(effect).__name__
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._call(send)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "outbox.effect_failed",
                    effect=kind,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc) or type(exc).__name__,
                )
                if attempt < self._max_attempts and self._backoff:
                    self._sleep(self._backoff * attempt)
                continue
            with self._lock:
                self.delivered += 1
            return True

        with self._lock:
            self.dropped += 1
        self._logger.error(
            "outbox.effect_dropped",
            effect=kind,
            error_type=ExternalSyncError.__name__,
            detail=_describe(effect),
        )
        return False

    def _call(self, send: Callable[[], None]) -> None:
        if self._calls is None:
            send()
            return
        future = self._calls.submit(send)
        try:
            future.result(timeout=self._timeout)
        except FutureTimeout as exc:
            future.cancel()
            raise ExternalSyncError(f"timed out after {self._timeout}s") from exc


def _describe(effect: Effect) -> dict[str, Any]:
    if isinstance(effect, PublishEffect):
        return {
            "event_id": effect.event.id,
            "event_type": effect.event.type.value,
            "candidate_id": effect.event.candidate_id,
        }
    return {"candidate_id": effect.candidate_id, "status_code": effect.status_code}


__all__ = ["EventPublisher", "Outbox", "OutboxDispatcher"]
