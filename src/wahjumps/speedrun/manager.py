from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
import time
from typing import Callable

from .. import __version__
from ..config import SpeedrunConfig, ensure_speedrun_config
from ..debug_log import close_debug_log, debug_log, init_debug_log
from ..paths import custom_puzzles_path, records_path, templates_path
from .custom_puzzles import CustomPuzzleRegistry, open_custom_puzzle_registry
from .events import EventHandler, RunCompleted
from .records import RecordStore, open_record_store, split_deltas
from .session import Clock, SpeedrunSession, WallClock
from .templates import TemplateManager, open_template_manager
from .types import (
    FINISH_CHECKPOINT_NAME,
    Checkpoint,
    CustomPuzzle,
    PuzzleIdentity,
    Record,
    SpeedrunState,
    Template,
    new_template,
    utc_now,
)


@dataclass(slots=True)
class SpeedrunManager:
    """What the host UI talks to: one session plus its persisted collections.

    Every public timer call flushes queued notifications before returning, so
    subscribers run after the state change is complete.
    """

    base_dir: Path
    config: SpeedrunConfig
    session: SpeedrunSession
    templates: TemplateManager
    records: RecordStore
    custom_puzzles: CustomPuzzleRegistry
    _unsubscribe: list[Callable[[], None]] = field(default_factory=list)

    @classmethod
    def open(
        cls,
        base_dir: Path,
        *,
        clock: Clock = time.monotonic,
        wall_clock: WallClock = utc_now,
    ) -> SpeedrunManager:
        base_dir = Path(base_dir)
        base_dir.mkdir(parents=True, exist_ok=True)
        config = ensure_speedrun_config(base_dir)
        settings = config.settings
        if settings.enable_logging:
            init_debug_log(base_dir=base_dir, build_id=str(__version__))

        session = SpeedrunSession(
            clock=clock,
            wall_clock=wall_clock,
            countdown_seconds=int(settings.countdown_seconds),
            auto_stop_on_final_split=bool(settings.auto_stop_on_final_split),
        )
        manager = cls(
            base_dir=base_dir,
            config=config,
            session=session,
            templates=open_template_manager(templates_path(base_dir)),
            records=open_record_store(records_path(base_dir)),
            custom_puzzles=open_custom_puzzle_registry(custom_puzzles_path(base_dir)),
        )
        manager._unsubscribe.append(session.events.subscribe(RunCompleted, manager._on_run_completed))
        return manager

    def close(self) -> None:
        self.session.events.flush()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        if self.config.settings.enable_logging:
            close_debug_log()

    @property
    def load_errors(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        for name, error in (
            ("config", self.config.load_error),
            ("templates", self.templates.load_error),
            ("records", self.records.load_error),
            ("custom_puzzles", self.custom_puzzles.load_error),
        ):
            if error is not None:
                errors[name] = error
        return errors

    # -- notifications -----------------------------------------------------

    def subscribe(self, event_type: type, handler: EventHandler) -> Callable[[], None]:
        return self.session.events.subscribe(event_type, handler)

    def flush(self) -> int:
        return self.session.events.flush()

    def _on_run_completed(self, event: RunCompleted) -> None:
        self.records.append(event.record)
        if self.config.settings.auto_save_records:
            self.records.save()

    # -- session state -----------------------------------------------------

    @property
    def state(self) -> SpeedrunState:
        return self.session.state

    @property
    def elapsed(self) -> float:
        return self.session.elapsed

    @property
    def current_puzzle(self) -> PuzzleIdentity | None:
        return self.session.puzzle

    @property
    def current_template(self) -> Template | None:
        return self.session.template

    def current_checkpoints(self) -> list[Checkpoint]:
        return self.session.checkpoints()

    # -- puzzle selection --------------------------------------------------

    def set_puzzle(self, puzzle: PuzzleIdentity | None) -> bool:
        """Select a puzzle and bind its first dedicated template.

        Without one, a "<name> Template" with a single "Finish" checkpoint is
        created when `create_default_templates` is on; otherwise the current
        template binding is left alone.
        """

        if not self.session.select_puzzle(puzzle):
            return False
        if puzzle is not None:
            dedicated = [t for t in self.templates.find_applicable(puzzle) if t.puzzle is not None]
            if dedicated:
                self.session.select_template(dedicated[0])
            elif self.config.settings.create_default_templates:
                self.session.select_template(self._create_default_template(puzzle))
        self.flush()
        return True

    def set_custom_puzzle(self, puzzle_id: str) -> bool:
        identity = self.custom_puzzles.identity_for(puzzle_id)
        if identity is None:
            return False
        return self.set_puzzle(identity)

    def _create_default_template(self, puzzle: PuzzleIdentity) -> Template:
        name = f"{puzzle.name} Template" if puzzle.name else "Template"
        template = new_template(name, puzzle)
        template.add_checkpoint(FINISH_CHECKPOINT_NAME, 0)
        return self.templates.add(template)

    # -- templates ---------------------------------------------------------

    def set_template(self, template_id: str | None) -> bool:
        template: Template | None = None
        if template_id is not None:
            template = self.templates.get(template_id)
            if template is None:
                return False
        ok = self.session.select_template(template)
        self.flush()
        return ok

    def create_template(self, name: str, puzzle: PuzzleIdentity | None = None) -> Template:
        return self.templates.create(name, puzzle)

    def update_template(self, template: Template) -> bool:
        if not self.templates.update(template):
            return False
        if self.session.template_id == template.id:
            # Refused mid-run; the live attempt keeps the definition it started with.
            self.session.select_template(self.templates.get(template.id))
            self.flush()
        return True

    def duplicate_template(self, template_id: str) -> Template | None:
        return self.templates.duplicate(template_id)

    def remove_template(self, template_id: str) -> bool:
        if not self.templates.remove(template_id):
            return False
        if self.session.template_id == template_id:
            self.session.select_template(None)
            self.flush()
        return True

    def create_template_from_record(self, record_id: str, name: str | None = None) -> Template | None:
        template = self.records.create_template_from(record_id, name)
        if template is None:
            return None
        return self.templates.add(template)

    # -- custom puzzles ----------------------------------------------------

    def create_custom_puzzle(self, name: str, description: str = "", creator: str = "") -> CustomPuzzle:
        puzzle = self.custom_puzzles.create(name, description, creator)
        debug_log("custom_puzzle_created", puzzle=puzzle.id, name=puzzle.name)
        return puzzle

    def update_custom_puzzle(self, puzzle: CustomPuzzle) -> bool:
        return self.custom_puzzles.update(puzzle)

    def remove_custom_puzzle(self, puzzle_id: str, *, remove_templates: bool = True) -> bool:
        removed = self.custom_puzzles.remove(puzzle_id)
        if removed is None:
            return False
        if remove_templates:
            self.templates.remove_for_puzzle(removed.identity())
        return True

    # -- timer -------------------------------------------------------------

    def start_countdown(self, custom_fields: Mapping[str, str] | None = None) -> bool:
        ok = self.session.start_countdown(custom_fields)
        self.flush()
        return ok

    def skip_countdown(self) -> bool:
        ok = self.session.skip_countdown()
        self.flush()
        return ok

    def start_immediately(self, custom_fields: Mapping[str, str] | None = None) -> bool:
        ok = self.session.start_countdown(custom_fields) and self.session.skip_countdown()
        self.flush()
        return ok

    def update(self, now: float | None = None) -> None:
        self.session.update(now)
        self.flush()

    def mark_split(self) -> Checkpoint | None:
        checkpoint = self.session.mark_split()
        self.flush()
        return checkpoint

    def stop_timer(self) -> Record | None:
        record = self.session.stop_timer()
        self.flush()
        return record

    def reset_timer(self) -> None:
        self.session.reset_timer()
        self.flush()

    # -- records -----------------------------------------------------------

    def remove_record(self, record_id: str) -> bool:
        return self.records.remove(record_id)

    def records_for_puzzle(self, puzzle: PuzzleIdentity) -> list[Record]:
        return self.records.records_for_puzzle(puzzle)

    def personal_best(self, puzzle: PuzzleIdentity | None = None) -> Record | None:
        target = puzzle if puzzle is not None else self.session.puzzle
        if target is None:
            return None
        return self.records.personal_best(target)

    def split_comparison(self) -> list[float | None]:
        """Deltas of the live checkpoints against the personal best run."""

        if not self.config.settings.show_split_comparison:
            return []
        puzzle = self.session.puzzle
        if puzzle is None:
            return []
        exclude_id = ""
        last = self.session.last_record
        if self.session.state == SpeedrunState.FINISHED and last is not None:
            # Compare a finished run against the best before it, not itself.
            exclude_id = last.id
        best = self.records.personal_best(puzzle, exclude_id=exclude_id)
        if best is None:
            return []
        return split_deltas(self.session.checkpoints(), best.checkpoints)


__all__ = ["SpeedrunManager"]
