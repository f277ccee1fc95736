from __future__ import annotations

from .custom_puzzles import CustomPuzzleRegistry
from .events import (
    CountdownTick,
    EventBus,
    RunCompleted,
    SplitCompleted,
    StateChanged,
    TemplateChanged,
    TimeUpdated,
)
from .records import RecordStore, split_deltas, template_from_record
from .session import DEFAULT_COUNTDOWN_SECONDS, SpeedrunSession
from .storage import JsonListStore, LoadResult, export_records_csv
from .templates import TemplateManager
from .timefmt import format_delta, format_time
from .types import (
    CUSTOM_PUZZLE_CATALOG_ID,
    CatalogPuzzleRef,
    Checkpoint,
    CustomPuzzle,
    CustomPuzzleRef,
    PuzzleIdentity,
    Record,
    SpeedrunDataError,
    SpeedrunState,
    Template,
    catalog_puzzle,
    custom_puzzle_identity,
    sort_checkpoints,
)

# `manager` is not re-exported here: it depends on `wahjumps.config`, which in
# turn imports from this package.

__all__ = [
    "CUSTOM_PUZZLE_CATALOG_ID",
    "CatalogPuzzleRef",
    "Checkpoint",
    "CountdownTick",
    "CustomPuzzle",
    "CustomPuzzleRef",
    "CustomPuzzleRegistry",
    "DEFAULT_COUNTDOWN_SECONDS",
    "EventBus",
    "JsonListStore",
    "LoadResult",
    "PuzzleIdentity",
    "Record",
    "RecordStore",
    "RunCompleted",
    "SpeedrunDataError",
    "SpeedrunSession",
    "SpeedrunState",
    "SplitCompleted",
    "StateChanged",
    "Template",
    "TemplateChanged",
    "TemplateManager",
    "TimeUpdated",
    "catalog_puzzle",
    "custom_puzzle_identity",
    "export_records_csv",
    "format_delta",
    "format_time",
    "sort_checkpoints",
    "split_deltas",
    "template_from_record",
]
