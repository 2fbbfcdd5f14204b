"""Realtime broadcaster implementations."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any


class NullBroadcaster:
    """Broadcaster used when no realtime transport is wired."""

    def emit(self, channel: str | None, event_name: str, payload: dict[str, Any]) -> None:
        return None


@dataclass
class BroadcastMessage:
    channel: str | None
    event_name: str
    payload: dict[str, Any] = field(default_factory=dict)


class RecordingBroadcaster:
    """Keeps emitted messages in memory."""

    def __init__(self) -> None:
        self.messages: list[BroadcastMessage] = []
        self._lock = threading.Lock()

    def emit(self, channel: str | None, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.messages.append(BroadcastMessage(channel, event_name, dict(payload)))

    def channels(self) -> list[str | None]:
        with self._lock:
            return [message.channel for message in self.messages]
