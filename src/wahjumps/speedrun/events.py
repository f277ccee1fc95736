from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, TypeAlias

from ..debug_log import debug_log
from .types import Checkpoint, Record, SpeedrunState, Template


@dataclass(frozen=True, slots=True)
class StateChanged:
    state: SpeedrunState
    previous: SpeedrunState


@dataclass(frozen=True, slots=True)
class TimeUpdated:
    elapsed: float


@dataclass(frozen=True, slots=True)
class CountdownTick:
    remaining: int


@dataclass(frozen=True, slots=True)
class SplitCompleted:
    index: int
    checkpoint: Checkpoint


@dataclass(frozen=True, slots=True)
class RunCompleted:
    record: Record


@dataclass(frozen=True, slots=True)
class TemplateChanged:
    template: Template | None


SpeedrunEvent: TypeAlias = StateChanged | TimeUpdated | CountdownTick | SplitCompleted | RunCompleted | TemplateChanged
EventHandler = Callable[[Any], None]


@dataclass(slots=True)
class EventBus:
    """Queue of session notifications.

    Producers only `emit`; nothing is delivered until the owner calls `flush`
    (or pulls the queue with `drain`). Handlers that call back into the session
    queue new events, which the running flush delivers after the current ones.
    """

    _pending: deque[SpeedrunEvent] = field(default_factory=deque)
    _handlers: dict[type, list[EventHandler]] = field(default_factory=dict)
    _flushing: bool = False

    def subscribe(self, event_type: type, handler: EventHandler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            try:
                handlers.remove(handler)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, event: SpeedrunEvent) -> None:
        self._pending.append(event)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def drain(self) -> list[SpeedrunEvent]:
        events = list(self._pending)
        self._pending.clear()
        return events

    def flush(self) -> int:
        if self._flushing:
            return 0
        self._flushing = True
        delivered = 0
        try:
            while self._pending:
                event = self._pending.popleft()
                for handler in list(self._handlers.get(type(event), ())):
                    try:
                        handler(event)
                    except Exception as exc:
                        debug_log("handler_error", event=type(event).__name__, error=repr(exc))
                delivered += 1
        finally:
            self._flushing = False
        return delivered


__all__ = [
    "CountdownTick",
    "EventBus",
    "EventHandler",
    "RunCompleted",
    "SpeedrunEvent",
    "SplitCompleted",
    "StateChanged",
    "TemplateChanged",
    "TimeUpdated",
]
