from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from enum import IntEnum
from typing import TypeAlias
import uuid

import msgspec

# Catalog ids are nonnegative; this is what a custom puzzle reports where a
# catalog-shaped integer id is unavoidable (e.g. the records CSV).
CUSTOM_PUZZLE_CATALOG_ID = -1

DEFAULT_CHECKPOINT_NAME = "New Split"
DEFAULT_TEMPLATE_NAME = "New Template"
DEFAULT_CUSTOM_PUZZLE_NAME = "New Custom Puzzle"
FINISH_CHECKPOINT_NAME = "Finish"


class SpeedrunDataError(ValueError):
    pass


class SpeedrunState(IntEnum):
    IDLE = 0
    COUNTDOWN = 1
    RUNNING = 2
    FINISHED = 3


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _require_name(name: str, *, what: str) -> str:
    text = str(name).strip()
    if not text:
        raise SpeedrunDataError(f"{what} name must not be empty")
    return text


# Stored data is decoded as-is; a negative catalog id is reported by the
# `*_warnings` helpers at load time and refused by `catalog_puzzle`.
class CatalogPuzzleRef(msgspec.Struct, tag_field="kind", tag="catalog", frozen=True):
    puzzle_id: int


class CustomPuzzleRef(msgspec.Struct, tag_field="kind", tag="custom", frozen=True):
    custom_id: str


PuzzleRef: TypeAlias = CatalogPuzzleRef | CustomPuzzleRef


class PuzzleIdentity(msgspec.Struct, frozen=True):
    """Which puzzle a template or record belongs to.

    `name` and `world` are denormalized for display; custom puzzles also match
    on `name` since older data may lack a stable custom id.
    """

    ref: PuzzleRef
    name: str = ""
    world: str = ""

    @property
    def is_custom(self) -> bool:
        return isinstance(self.ref, CustomPuzzleRef)

    @property
    def catalog_id(self) -> int:
        ref = self.ref
        if isinstance(ref, CatalogPuzzleRef):
            return int(ref.puzzle_id)
        return CUSTOM_PUZZLE_CATALOG_ID

    @property
    def custom_id(self) -> str:
        ref = self.ref
        if isinstance(ref, CustomPuzzleRef):
            return str(ref.custom_id)
        return ""

    def matches(self, other: PuzzleIdentity | None) -> bool:
        """True when both identities name the same puzzle.

        Catalog and custom identities never match each other, even when the
        display names agree.
        """

        if other is None:
            return False
        mine = self.ref
        theirs = other.ref
        if isinstance(mine, CatalogPuzzleRef):
            return isinstance(theirs, CatalogPuzzleRef) and int(mine.puzzle_id) == int(theirs.puzzle_id)
        if not isinstance(theirs, CustomPuzzleRef):
            return False
        if mine.custom_id and theirs.custom_id:
            return mine.custom_id == theirs.custom_id
        return bool(self.name) and self.name == other.name


def catalog_puzzle(puzzle_id: int, name: str = "", world: str = "") -> PuzzleIdentity:
    if int(puzzle_id) < 0:
        raise SpeedrunDataError(f"catalog puzzle id must be nonnegative, got {puzzle_id}")
    return PuzzleIdentity(ref=CatalogPuzzleRef(puzzle_id=int(puzzle_id)), name=str(name), world=str(world))


def custom_puzzle_identity(custom_id: str, name: str = "", world: str = "Custom") -> PuzzleIdentity:
    return PuzzleIdentity(ref=CustomPuzzleRef(custom_id=str(custom_id)), name=str(name), world=str(world))


class Checkpoint(msgspec.Struct, kw_only=True):
    name: str = DEFAULT_CHECKPOINT_NAME
    order: int = 0
    # Elapsed seconds from run start when marked.
    cumulative_duration: float | None = None
    # Seconds since the previous mark; equals cumulative_duration for the first one.
    split_duration: float | None = None
    is_completed: bool = False

    def clone(self) -> Checkpoint:
        """Copy the definition only; timing results are never carried over."""

        return Checkpoint(name=self.name, order=int(self.order))

    def snapshot(self) -> Checkpoint:
        return Checkpoint(
            name=self.name,
            order=int(self.order),
            cumulative_duration=self.cumulative_duration,
            split_duration=self.split_duration,
            is_completed=bool(self.is_completed),
        )


def new_checkpoint(name: str, order: int = 0) -> Checkpoint:
    return Checkpoint(name=_require_name(name, what="checkpoint"), order=int(order))


def sort_checkpoints(checkpoints: Iterable[Checkpoint]) -> list[Checkpoint]:
    # `sorted` is stable: equal `order` values keep their input order.
    return sorted(checkpoints, key=lambda cp: int(cp.order))


class Template(msgspec.Struct, kw_only=True):
    id: str = msgspec.field(default_factory=new_id)
    name: str = DEFAULT_TEMPLATE_NAME
    # None marks a generic template, applicable to any puzzle.
    puzzle: PuzzleIdentity | None = None
    is_custom_puzzle: bool = False
    checkpoints: list[Checkpoint] = msgspec.field(default_factory=list)
    created_at: dt.datetime = msgspec.field(default_factory=utc_now)
    modified_at: dt.datetime = msgspec.field(default_factory=utc_now)

    @property
    def is_generic(self) -> bool:
        return self.puzzle is None

    def sorted_checkpoints(self) -> list[Checkpoint]:
        return sort_checkpoints(self.checkpoints)

    def touch(self, now: dt.datetime | None = None) -> None:
        self.modified_at = now if now is not None else utc_now()

    def copy(self) -> Template:
        return Template(
            id=self.id,
            name=self.name,
            puzzle=self.puzzle,
            is_custom_puzzle=bool(self.is_custom_puzzle),
            checkpoints=[cp.snapshot() for cp in self.checkpoints],
            created_at=self.created_at,
            modified_at=self.modified_at,
        )

    def duplicate(self, now: dt.datetime | None = None) -> Template:
        stamp = now if now is not None else utc_now()
        return Template(
            name=f"{self.name} (Copy)",
            puzzle=self.puzzle,
            is_custom_puzzle=bool(self.is_custom_puzzle),
            checkpoints=[cp.clone() for cp in self.checkpoints],
            created_at=stamp,
            modified_at=stamp,
        )

    def add_checkpoint(self, name: str, order: int | None = None) -> Checkpoint:
        if order is None:
            order = max((int(cp.order) for cp in self.checkpoints), default=-1) + 1
        checkpoint = new_checkpoint(name, int(order))
        self.checkpoints.append(checkpoint)
        self.touch()
        return checkpoint

    def remove_checkpoint(self, index: int) -> bool:
        ordered = self.sorted_checkpoints()
        if index < 0 or index >= len(ordered):
            return False
        target = ordered[index]
        self.checkpoints = [cp for cp in self.checkpoints if cp is not target]
        self.touch()
        return True

    def rename_checkpoint(self, index: int, name: str) -> bool:
        ordered = self.sorted_checkpoints()
        if index < 0 or index >= len(ordered):
            return False
        ordered[index].name = _require_name(name, what="checkpoint")
        self.touch()
        return True

    def move_checkpoint(self, index: int, new_index: int) -> bool:
        """Move a checkpoint within the display order and renumber `order` as 0..n-1."""

        ordered = self.sorted_checkpoints()
        if index < 0 or index >= len(ordered):
            return False
        new_index = max(0, min(int(new_index), len(ordered) - 1))
        moved = ordered.pop(index)
        ordered.insert(new_index, moved)
        for order, checkpoint in enumerate(ordered):
            checkpoint.order = order
        self.checkpoints = ordered
        self.touch()
        return True


def new_template(name: str, puzzle: PuzzleIdentity | None = None) -> Template:
    return Template(
        name=_require_name(name, what="template"),
        puzzle=puzzle,
        is_custom_puzzle=bool(puzzle is not None and puzzle.is_custom),
    )


def _puzzle_warnings(label: str, puzzle: PuzzleIdentity | None) -> list[str]:
    if puzzle is None:
        return []
    ref = puzzle.ref
    if isinstance(ref, CatalogPuzzleRef) and int(ref.puzzle_id) < 0:
        return [f"{label} references negative catalog puzzle id {ref.puzzle_id}"]
    return []


def template_warnings(template: Template) -> list[str]:
    warnings: list[str] = []
    label = f"template {template.id} ({template.name!r})"
    puzzle = template.puzzle
    warnings.extend(_puzzle_warnings(label, puzzle))
    if template.is_custom_puzzle:
        if puzzle is None:
            warnings.append(f"{label} is flagged custom but has no puzzle")
        elif not puzzle.is_custom:
            warnings.append(f"{label} is flagged custom but references catalog puzzle {puzzle.catalog_id}")
    elif puzzle is not None and puzzle.is_custom:
        warnings.append(f"{label} references custom puzzle {puzzle.custom_id!r} but is not flagged custom")
    for idx, checkpoint in enumerate(template.checkpoints):
        if not str(checkpoint.name).strip():
            warnings.append(f"{label} checkpoint {idx} has an empty name")
        if checkpoint.is_completed or checkpoint.cumulative_duration is not None:
            warnings.append(f"{label} checkpoint {idx} carries timing data")
    return warnings


class Record(msgspec.Struct, kw_only=True, frozen=True):
    id: str = msgspec.field(default_factory=new_id)
    puzzle: PuzzleIdentity
    total_duration: float
    completed_at: dt.datetime = msgspec.field(default_factory=utc_now)
    checkpoints: tuple[Checkpoint, ...] = ()
    custom_fields: dict[str, str] = msgspec.field(default_factory=dict)
    # Empty when the run used no template.
    template_id: str = ""

    @property
    def is_custom_puzzle(self) -> bool:
        return self.puzzle.is_custom

    def copy(self) -> Record:
        return Record(
            id=self.id,
            puzzle=self.puzzle,
            total_duration=float(self.total_duration),
            completed_at=self.completed_at,
            checkpoints=tuple(cp.snapshot() for cp in self.checkpoints),
            custom_fields=dict(self.custom_fields),
            template_id=self.template_id,
        )


def record_warnings(record: Record) -> list[str]:
    label = f"record {record.id}"
    warnings = _puzzle_warnings(label, record.puzzle)
    if float(record.total_duration) < 0.0:
        warnings.append(f"{label} has a negative total duration {record.total_duration}")
    return warnings


class CustomPuzzle(msgspec.Struct, kw_only=True):
    id: str = msgspec.field(default_factory=new_id)
    name: str = DEFAULT_CUSTOM_PUZZLE_NAME
    description: str = ""
    creator: str = ""
    # Display defaults mirroring the catalog columns.
    world: str = "Custom"
    address: str = "N/A"
    rating: str = "Custom"
    created_at: dt.datetime = msgspec.field(default_factory=utc_now)
    modified_at: dt.datetime = msgspec.field(default_factory=utc_now)

    @property
    def catalog_id(self) -> int:
        return CUSTOM_PUZZLE_CATALOG_ID

    def identity(self) -> PuzzleIdentity:
        return custom_puzzle_identity(self.id, self.name, self.world)

    def copy(self) -> CustomPuzzle:
        return CustomPuzzle(
            id=self.id,
            name=self.name,
            description=self.description,
            creator=self.creator,
            world=self.world,
            address=self.address,
            rating=self.rating,
            created_at=self.created_at,
            modified_at=self.modified_at,
        )


__all__ = [
    "CUSTOM_PUZZLE_CATALOG_ID",
    "CatalogPuzzleRef",
    "Checkpoint",
    "CustomPuzzle",
    "CustomPuzzleRef",
    "FINISH_CHECKPOINT_NAME",
    "PuzzleIdentity",
    "PuzzleRef",
    "Record",
    "SpeedrunDataError",
    "SpeedrunState",
    "Template",
    "catalog_puzzle",
    "custom_puzzle_identity",
    "new_checkpoint",
    "new_id",
    "new_template",
    "record_warnings",
    "sort_checkpoints",
    "template_warnings",
    "utc_now",
]
