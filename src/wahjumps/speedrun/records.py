from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..debug_log import debug_log
from .storage import JsonListStore, LoadResult
from .types import Checkpoint, PuzzleIdentity, Record, Template, record_warnings, sort_checkpoints, utc_now


def record_store(path: Path) -> JsonListStore[Record]:
    return JsonListStore(path=Path(path), item_type=Record, label="records", validate=record_warnings)


def template_from_record(record: Record, name: str | None = None) -> Template:
    """Build a timing-free template from a finished run's checkpoints."""

    puzzle = record.puzzle
    stamp = utc_now()
    label = str(name).strip() if name else ""
    if not label:
        label = f"{puzzle.name} Template" if puzzle.name else "Template"
    return Template(
        name=label,
        puzzle=puzzle,
        is_custom_puzzle=puzzle.is_custom,
        checkpoints=[cp.clone() for cp in sort_checkpoints(record.checkpoints)],
        created_at=stamp,
        modified_at=stamp,
    )


def split_deltas(current: Sequence[Checkpoint], best: Sequence[Checkpoint]) -> list[float | None]:
    """Per-checkpoint `current - best` cumulative deltas; negative means ahead.

    Checkpoints pair up by position when the names agree, otherwise by name.
    Unmarked checkpoints on either side yield None.
    """

    best_ordered = sort_checkpoints(best)
    best_by_name: dict[str, Checkpoint] = {}
    for checkpoint in best_ordered:
        best_by_name.setdefault(checkpoint.name, checkpoint)

    deltas: list[float | None] = []
    for idx, checkpoint in enumerate(sort_checkpoints(current)):
        other: Checkpoint | None = None
        if idx < len(best_ordered) and best_ordered[idx].name == checkpoint.name:
            other = best_ordered[idx]
        else:
            other = best_by_name.get(checkpoint.name)
        if (
            other is None
            or not checkpoint.is_completed
            or checkpoint.cumulative_duration is None
            or other.cumulative_duration is None
        ):
            deltas.append(None)
            continue
        deltas.append(float(checkpoint.cumulative_duration) - float(other.cumulative_duration))
    return deltas


@dataclass(slots=True)
class RecordStore:
    """Completed runs in insertion order.

    `append` only updates memory; the caller decides when to `save`.
    """

    store: JsonListStore[Record]
    _records: list[Record] = field(default_factory=list)
    load_error: str | None = None

    def load(self) -> LoadResult[Record]:
        result = self.store.load()
        self._records = list(result.items)
        self.load_error = result.error
        return result

    def save(self) -> bool:
        return self.store.save(self._records)

    def append(self, record: Record) -> None:
        self._records.append(record.copy())

    def remove(self, record_id: str) -> bool:
        before = len(self._records)
        self._records = [record for record in self._records if record.id != record_id]
        if len(self._records) == before:
            return False
        self.save()
        debug_log("record_removed", record=record_id)
        return True

    def list_all(self) -> list[Record]:
        return [record.copy() for record in self._records]

    def get(self, record_id: str) -> Record | None:
        for record in self._records:
            if record.id == record_id:
                return record.copy()
        return None

    def records_for_puzzle(self, puzzle: PuzzleIdentity) -> list[Record]:
        return [record.copy() for record in self._records if puzzle.matches(record.puzzle)]

    def personal_best(self, puzzle: PuzzleIdentity, *, exclude_id: str = "") -> Record | None:
        best: Record | None = None
        for record in self._records:
            if not puzzle.matches(record.puzzle) or (exclude_id and record.id == exclude_id):
                continue
            if best is None or float(record.total_duration) < float(best.total_duration):
                best = record
        if best is None:
            return None
        return best.copy()

    def create_template_from(self, record_id: str, name: str | None = None) -> Template | None:
        record = self.get(record_id)
        if record is None:
            return None
        return template_from_record(record, name)


def open_record_store(path: Path) -> RecordStore:
    store = RecordStore(store=record_store(path))
    store.load()
    return store


__all__ = [
    "RecordStore",
    "open_record_store",
    "record_store",
    "split_deltas",
    "template_from_record",
]
