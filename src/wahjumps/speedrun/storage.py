from __future__ import annotations

import csv
import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Callable, Generic, TypeVar

import msgspec

from ..debug_log import debug_log
from .types import Record, sort_checkpoints, utc_now

_ItemT = TypeVar("_ItemT")

JSON_INDENT = 2


@dataclass(frozen=True, slots=True)
class LoadResult(Generic[_ItemT]):
    items: list[_ItemT]
    error: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + f".tmp.{os.getpid()}")
    try:
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass


def corrupt_backup_path(path: Path, now: dt.datetime | None = None) -> Path:
    stamp = (now if now is not None else utc_now()).strftime("%Y%m%dT%H%M%S.%fZ")
    return path.with_name(f"{path.name}.corrupt-{stamp}")


@dataclass(slots=True)
class JsonListStore(Generic[_ItemT]):
    """One JSON file holding a flat list of `item_type` structs.

    Loading never raises and never loses data:

    - a missing file is an empty list;
    - a file that is not a JSON list is moved aside to `<name>.corrupt-<ts>`
      and loads as an empty list plus `error`;
    - a file that cannot be read at all is left in place and saving is
      refused until the next successful `load`;
    - list entries that don't decode are reported in `warnings`, kept out of
      the result and written back unchanged by the next `save`.

    Saving replaces the file atomically, so a reader sees either the old list
    or the new one.
    """

    path: Path
    item_type: type[_ItemT]
    label: str
    validate: Callable[[_ItemT], list[str]] | None = None
    _undecoded: list[msgspec.Raw] = field(default_factory=list)
    _read_only: bool = False

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def undecoded_count(self) -> int:
        return len(self._undecoded)

    def load(self) -> LoadResult[_ItemT]:
        path = Path(self.path)
        self._undecoded = []
        self._read_only = False
        if not path.exists():
            return LoadResult(items=[])
        try:
            raw = path.read_bytes()
        except OSError as exc:
            self._read_only = True
            debug_log("load_failed", store=self.label, path=str(path), error=str(exc), saving="disabled")
            return LoadResult(items=[], error=f"failed to read {self.label} from {path}: {exc}; saving is disabled")
        try:
            entries = msgspec.json.decode(raw, type=list[msgspec.Raw])
        except msgspec.DecodeError as exc:
            return LoadResult(items=[], error=self._quarantine(path, exc))

        items: list[_ItemT] = []
        warnings: list[str] = []
        for idx, entry in enumerate(entries):
            try:
                item = msgspec.json.decode(entry, type=self.item_type)
            except msgspec.DecodeError as exc:
                # msgspec.ValidationError is a DecodeError subclass.
                self._undecoded.append(entry)
                warnings.append(f"{self.label} entry {idx} could not be loaded and is kept as-is: {exc}")
                continue
            items.append(item)
            if self.validate is not None:
                warnings.extend(self.validate(item))
        for warning in warnings:
            debug_log("data_warning", store=self.label, warning=warning)
        return LoadResult(items=items, warnings=tuple(warnings))

    def save(self, items: Sequence[_ItemT]) -> bool:
        path = Path(self.path)
        if self._read_only:
            debug_log("save_refused", store=self.label, path=str(path))
            return False
        try:
            encoded = msgspec.json.encode([*items, *self._undecoded])
            payload = msgspec.json.format(encoded, indent=JSON_INDENT)
            atomic_write_bytes(path, payload + b"\n")
        except (OSError, TypeError, msgspec.EncodeError) as exc:
            debug_log("save_failed", store=self.label, path=str(path), error=str(exc))
            return False
        return True

    def _quarantine(self, path: Path, exc: Exception) -> str:
        backup = corrupt_backup_path(path)
        try:
            path.replace(backup)
        except OSError as move_exc:
            self._read_only = True
            debug_log("load_failed", store=self.label, path=str(path), error=str(exc), saving="disabled")
            return f"failed to load {self.label} from {path}: {exc}; could not move it aside ({move_exc}), saving is disabled"
        debug_log("load_failed", store=self.label, path=str(path), error=str(exc), moved_to=str(backup))
        return f"failed to load {self.label} from {path}: {exc}; moved the unreadable file to {backup}"


RECORDS_CSV_BASE_COLUMNS = (
    "Id",
    "PuzzleId",
    "PuzzleName",
    "World",
    "TimeInSeconds",
    "Date",
    "IsCustomPuzzle",
    "CustomPuzzleId",
    "TemplateId",
)


def records_csv_rows(records: Sequence[Record]) -> list[list[str]]:
    """Flatten records into the spreadsheet layout, header row first.

    Split columns are sized to the longest record; custom field columns are
    the union of keys in first-seen order.
    """

    max_splits = max((len(record.checkpoints) for record in records), default=0)
    field_names: list[str] = []
    for record in records:
        for key in record.custom_fields:
            if key not in field_names:
                field_names.append(key)

    header = list(RECORDS_CSV_BASE_COLUMNS)
    for idx in range(max_splits):
        header.append(f"Split_{idx}_Name")
        header.append(f"Split_{idx}_TimeSeconds")
    header.extend(f"Custom_{key}" for key in field_names)

    rows: list[list[str]] = [header]
    for record in records:
        puzzle = record.puzzle
        row = [
            record.id,
            str(puzzle.catalog_id),
            puzzle.name,
            puzzle.world,
            repr(float(record.total_duration)),
            record.completed_at.isoformat(),
            "True" if puzzle.is_custom else "False",
            puzzle.custom_id,
            record.template_id,
        ]
        ordered = sort_checkpoints(record.checkpoints)
        for idx in range(max_splits):
            if idx < len(ordered):
                checkpoint = ordered[idx]
                row.append(checkpoint.name)
                cumulative = checkpoint.cumulative_duration
                row.append("" if cumulative is None else repr(float(cumulative)))
            else:
                row.extend(("", ""))
        row.extend(record.custom_fields.get(key, "") for key in field_names)
        rows.append(row)
    return rows


def export_records_csv(records: Sequence[Record], path: Path) -> int:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = records_csv_rows(records)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerows(rows)
    return len(rows) - 1


__all__ = [
    "JsonListStore",
    "LoadResult",
    "RECORDS_CSV_BASE_COLUMNS",
    "atomic_write_bytes",
    "corrupt_backup_path",
    "export_records_csv",
    "records_csv_rows",
]
