#!/usr/bin/env python3
"""
KUSTOMIZEPB LIFECYCLE EVENTS
----------------------------
Structured messages from the engine (producer) to whatever presents them
(consumer). The engine only ever calls EventQueue.emit(); it never prints.

The queue may be bounded. A full queue blocks the engine until the consumer
catches up; events are never dropped.

Author: KustomizePB Team
Date: 2026-10-17
"""

import queue
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional


class EventKind(Enum):
    COMPONENT_STARTED = "component started"
    TESTING_APPLY_CONDITIONS = "testing apply conditions"
    APPLY_CONDITIONS_NOT_FULFILLED = "conditions not fulfilled"
    APPLYING = "applying"
    APPLY_RETRY = "retry"
    TESTING_READINESS = "testing readiness"
    READY = "ready"


@dataclass(frozen=True)
class RunEvent:
    kind: EventKind
    component: str
    attempt: int = 0
    error: Optional[str] = None


_CLOSED = object()


class EventQueue:
    """Single-producer / single-consumer channel for RunEvents."""

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)

    def emit(self, event: RunEvent) -> None:
        self._queue.put(event)

    def close(self) -> None:
        """Signals the consumer that no more events follow."""
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[RunEvent]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item

    def drain(self) -> List[RunEvent]:
        """Everything emitted so far, without waiting. Mostly useful in tests."""
        events = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return events
            if item is not _CLOSED:
                events.append(item)
