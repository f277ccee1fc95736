from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass, field
import time
from typing import Callable

from ..debug_log import debug_log, set_debug_context
from .events import (
    CountdownTick,
    EventBus,
    RunCompleted,
    SplitCompleted,
    StateChanged,
    TemplateChanged,
    TimeUpdated,
)
from .types import (
    Checkpoint,
    PuzzleIdentity,
    Record,
    SpeedrunState,
    Template,
    new_id,
    sort_checkpoints,
    utc_now,
)

DEFAULT_COUNTDOWN_SECONDS = 3

Clock = Callable[[], float]
WallClock = Callable[[], dt.datetime]

_RETARGET_STATES = (SpeedrunState.IDLE, SpeedrunState.FINISHED)


@dataclass(slots=True)
class SpeedrunSession:
    """Timing state machine for one attempt at a time.

    `Idle -> Countdown -> Running -> Finished -> Idle`, with `reset_timer` going
    back to `Idle` from anywhere. Calls made in the wrong state are rejected as
    no-ops (falsy return) and never raise.

    `clock` is a monotonic seconds source; every operation that needs "now"
    also accepts it explicitly so a host frame loop can pass its own tick time.
    Notifications are queued on `events` and delivered when the owner flushes.
    """

    clock: Clock = time.monotonic
    wall_clock: WallClock = utc_now
    countdown_seconds: int = DEFAULT_COUNTDOWN_SECONDS
    auto_stop_on_final_split: bool = False
    events: EventBus = field(default_factory=EventBus)

    _state: SpeedrunState = SpeedrunState.IDLE
    _puzzle: PuzzleIdentity | None = None
    _template: Template | None = None
    _checkpoints: list[Checkpoint] = field(default_factory=list)
    _split_index: int = -1
    _elapsed: float = 0.0
    _countdown_start: float = 0.0
    _countdown_remaining: int = 0
    _run_start: float = 0.0
    _custom_fields: dict[str, str] = field(default_factory=dict)
    _last_record: Record | None = None
    # Becomes the record id; also tags debug log lines while the attempt is live.
    _run_id: str = ""

    # -- accessors ---------------------------------------------------------

    @property
    def state(self) -> SpeedrunState:
        return self._state

    @property
    def elapsed(self) -> float:
        return float(self._elapsed)

    @property
    def countdown_remaining(self) -> int:
        return int(self._countdown_remaining)

    @property
    def split_index(self) -> int:
        """Index of the last marked checkpoint, -1 before the first mark."""

        return int(self._split_index)

    @property
    def puzzle(self) -> PuzzleIdentity | None:
        return self._puzzle

    @property
    def template(self) -> Template | None:
        template = self._template
        if template is None:
            return None
        return template.copy()

    @property
    def template_id(self) -> str:
        template = self._template
        if template is None:
            return ""
        return template.id

    @property
    def run_id(self) -> str:
        """Id of the live attempt (and of its eventual record); empty outside `Running`."""

        return self._run_id

    @property
    def custom_fields(self) -> dict[str, str]:
        return dict(self._custom_fields)

    @property
    def last_record(self) -> Record | None:
        record = self._last_record
        if record is None:
            return None
        return record.copy()

    def checkpoints(self) -> list[Checkpoint]:
        return [cp.snapshot() for cp in self._checkpoints]

    def current_checkpoint(self) -> Checkpoint | None:
        idx = self._split_index
        if idx < 0 or idx >= len(self._checkpoints):
            return None
        return self._checkpoints[idx].snapshot()

    def next_checkpoint(self) -> Checkpoint | None:
        idx = self._split_index + 1
        if idx >= len(self._checkpoints):
            return None
        return self._checkpoints[idx].snapshot()

    # -- selection ---------------------------------------------------------

    def select_puzzle(self, puzzle: PuzzleIdentity | None) -> bool:
        if self._state not in _RETARGET_STATES:
            self._reject("select_puzzle")
            return False
        self._puzzle = puzzle
        return True

    def select_template(self, template: Template | None) -> bool:
        if self._state not in _RETARGET_STATES:
            self._reject("select_template")
            return False
        # Bind a private copy so later edits to the caller's template can't leak in.
        self._template = template.copy() if template is not None else None
        if self._state == SpeedrunState.IDLE:
            self._load_checkpoints()
            self._split_index = -1
        self.events.emit(TemplateChanged(template=self.template))
        return True

    # -- timer control -----------------------------------------------------

    def start_countdown(self, custom_fields: Mapping[str, str] | None = None, *, now: float | None = None) -> bool:
        if self._state != SpeedrunState.IDLE:
            self._reject("start_countdown")
            return False
        if self._puzzle is None:
            self._reject("start_countdown", reason="no_puzzle")
            return False
        now_s = self._now(now)
        self._custom_fields = {str(key): str(value) for key, value in (custom_fields or {}).items()}
        self._countdown_start = now_s
        self._countdown_remaining = max(0, int(self.countdown_seconds))
        self._elapsed = 0.0
        self._load_checkpoints()
        self._split_index = -1
        self._transition(SpeedrunState.COUNTDOWN)
        return True

    def skip_countdown(self, *, now: float | None = None) -> bool:
        if self._state != SpeedrunState.COUNTDOWN:
            self._reject("skip_countdown")
            return False
        self._begin_run(self._now(now))
        return True

    def update(self, now: float | None = None) -> None:
        state = self._state
        if state == SpeedrunState.COUNTDOWN:
            self._update_countdown(self._now(now))
        elif state == SpeedrunState.RUNNING:
            self._refresh_elapsed(self._now(now))
            self.events.emit(TimeUpdated(elapsed=float(self._elapsed)))

    def mark_split(self, *, now: float | None = None) -> Checkpoint | None:
        if self._state != SpeedrunState.RUNNING:
            self._reject("mark_split")
            return None
        index = self._split_index + 1
        if index >= len(self._checkpoints):
            return None

        self._refresh_elapsed(self._now(now))
        elapsed = float(self._elapsed)
        previous = 0.0
        if index > 0:
            prev_cumulative = self._checkpoints[index - 1].cumulative_duration
            previous = float(prev_cumulative) if prev_cumulative is not None else 0.0

        checkpoint = self._checkpoints[index]
        checkpoint.cumulative_duration = elapsed
        checkpoint.split_duration = elapsed - previous
        checkpoint.is_completed = True
        self._split_index = index

        marked = checkpoint.snapshot()
        self.events.emit(SplitCompleted(index=index, checkpoint=marked))
        debug_log("split", index=index, name=marked.name, cumulative=f"{elapsed:.3f}")

        if self.auto_stop_on_final_split and index == len(self._checkpoints) - 1:
            self.stop_timer(now=self._run_start + elapsed)
        return marked

    def stop_timer(self, *, now: float | None = None) -> Record | None:
        if self._state != SpeedrunState.RUNNING:
            self._reject("stop_timer")
            return None
        puzzle = self._puzzle
        assert puzzle is not None, "running without a puzzle"

        self._refresh_elapsed(self._now(now))
        record = Record(
            id=self._run_id or new_id(),
            puzzle=puzzle,
            total_duration=float(self._elapsed),
            completed_at=self.wall_clock(),
            checkpoints=tuple(cp.snapshot() for cp in self._checkpoints),
            custom_fields=dict(self._custom_fields),
            template_id=self.template_id,
        )
        self._last_record = record
        self._transition(SpeedrunState.FINISHED)
        self.events.emit(RunCompleted(record=record.copy()))
        debug_log(
            "run_completed",
            record=record.id,
            puzzle=puzzle.name,
            total=f"{record.total_duration:.3f}",
            splits=sum(1 for cp in record.checkpoints if cp.is_completed),
        )
        self._end_run()
        return record.copy()

    def reset_timer(self) -> None:
        self._elapsed = 0.0
        self._split_index = -1
        self._countdown_start = 0.0
        self._countdown_remaining = 0
        self._run_start = 0.0
        self._custom_fields = {}
        self._load_checkpoints()
        self._end_run()
        self._transition(SpeedrunState.IDLE)

    # -- internals ---------------------------------------------------------

    def _now(self, now: float | None) -> float:
        if now is None:
            return float(self.clock())
        return float(now)

    def _load_checkpoints(self) -> None:
        template = self._template
        if template is None:
            self._checkpoints = []
            return
        self._checkpoints = [cp.clone() for cp in sort_checkpoints(template.checkpoints)]

    def _begin_run(self, now: float) -> None:
        self._run_start = now
        self._run_id = new_id()
        set_debug_context(run=self._run_id[:8])
        self._elapsed = 0.0
        self._countdown_remaining = 0
        self._load_checkpoints()
        self._split_index = -1
        self._transition(SpeedrunState.RUNNING)

    def _end_run(self) -> None:
        self._run_id = ""
        set_debug_context(run=None)

    def _update_countdown(self, now: float) -> None:
        waited = max(0.0, now - self._countdown_start)
        remaining = int(self.countdown_seconds) - int(waited)
        if remaining <= 0:
            self._begin_run(now)
            return
        if remaining != self._countdown_remaining:
            self._countdown_remaining = remaining
            self.events.emit(CountdownTick(remaining=remaining))

    def _refresh_elapsed(self, now: float) -> None:
        # A late or repeated clock sample must not move a mark backwards.
        self._elapsed = max(float(self._elapsed), now - self._run_start)

    def _transition(self, state: SpeedrunState) -> None:
        previous = self._state
        self._state = state
        self.events.emit(StateChanged(state=state, previous=previous))
        debug_log("state", previous=previous.name.lower(), state=state.name.lower())

    def _reject(self, op: str, *, reason: str = "wrong_state") -> None:
        debug_log("rejected", op=op, reason=reason, state=self._state.name.lower())


__all__ = [
    "Clock",
    "DEFAULT_COUNTDOWN_SECONDS",
    "SpeedrunSession",
    "WallClock",
]
