from __future__ import annotations

import csv
import datetime as dt
import json
from pathlib import Path

from wahjumps.speedrun.custom_puzzles import custom_puzzle_store
from wahjumps.speedrun.records import record_store
from wahjumps.speedrun.storage import RECORDS_CSV_BASE_COLUMNS, atomic_write_bytes, export_records_csv
from wahjumps.speedrun.templates import template_store
from wahjumps.speedrun.types import (
    Checkpoint,
    CustomPuzzle,
    Record,
    catalog_puzzle,
    custom_puzzle_identity,
    new_template,
    sort_checkpoints,
)

_WHEN = dt.datetime(2024, 3, 9, 18, 30, 15, tzinfo=dt.timezone.utc)


def _record(name: str, total: float, *, puzzle=None, fields=None) -> Record:
    return Record(
        puzzle=puzzle or catalog_puzzle(3, name, "Gilgamesh"),
        total_duration=total,
        completed_at=_WHEN,
        checkpoints=(
            Checkpoint(name="Top", order=0, cumulative_duration=total, split_duration=total, is_completed=True),
        ),
        custom_fields=dict(fields or {}),
    )


def test_records_roundtrip_preserves_order_and_fields(tmp_path: Path) -> None:
    store = record_store(tmp_path / "records.json")
    records = [
        _record("b", 2.5, fields={"Attempt": "2"}),
        _record("a", 1.25),
        _record("c", 9.0, puzzle=custom_puzzle_identity("cid", "Frog")),
    ]
    assert store.save(records)

    loaded = store.load()
    assert loaded.ok
    assert loaded.items == records
    assert [r.puzzle.name for r in loaded.items] == ["b", "a", "Frog"]
    assert loaded.items[2].is_custom_puzzle


def test_templates_and_custom_puzzles_roundtrip(tmp_path: Path) -> None:
    templates = template_store(tmp_path / "templates.json")
    template = new_template("Route", custom_puzzle_identity("cid", "Frog"))
    template.add_checkpoint("Start ledge")
    generic = new_template("Any")
    assert templates.save([template, generic])
    assert templates.load().items == [template, generic]

    puzzles = custom_puzzle_store(tmp_path / "custom.json")
    puzzle = CustomPuzzle(name="Frog", description="lily pads", creator="me")
    assert puzzles.save([puzzle])
    assert puzzles.load().items == [puzzle]


def test_missing_file_loads_empty_without_error(tmp_path: Path) -> None:
    result = record_store(tmp_path / "nope.json").load()
    assert result.items == []
    assert result.error is None


def test_corrupt_file_is_moved_aside_and_survives_next_save(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    path.write_text("{not json", encoding="utf-8")
    store = record_store(path)
    result = store.load()

    assert result.items == []
    assert not result.ok
    assert str(path) in (result.error or "")
    backups = list(tmp_path.glob("records.json.corrupt-*"))
    assert len(backups) == 1
    assert backups[0].name in (result.error or "")

    assert store.save([_record("a", 1.0)])
    assert backups[0].read_text(encoding="utf-8") == "{not json"
    assert len(store.load().items) == 1


def test_unreadable_file_disables_saving(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "records.json"
    path.write_text("[]", encoding="utf-8")
    original_read_bytes = Path.read_bytes

    def _read_bytes(self: Path) -> bytes:
        if self == path:
            raise PermissionError("denied")
        return original_read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", _read_bytes)
    store = record_store(path)
    result = store.load()

    assert result.error is not None
    assert store.read_only
    assert store.save([_record("a", 1.0)]) is False
    monkeypatch.undo()
    assert path.read_text(encoding="utf-8") == "[]"


def test_undecodable_entry_is_reported_and_written_back(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    store = record_store(path)
    store.save([_record("a", 1.0), _record("b", 2.0), _record("c", 3.0)])
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw[1]["total_duration"] = "fast"
    path.write_text(json.dumps(raw), encoding="utf-8")

    result = store.load()
    assert result.ok
    assert [r.puzzle.name for r in result.items] == ["a", "c"]
    assert len(result.warnings) == 1
    assert "kept as-is" in result.warnings[0]
    assert store.undecoded_count == 1

    assert store.save(result.items)
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert len(saved) == 3
    assert saved[2] == raw[1]


def test_negative_catalog_id_loads_with_warning(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    store = record_store(path)
    store.save([_record("a", 1.0), _record("b", 2.0), _record("c", 3.0)])
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw[0]["puzzle"]["ref"]["puzzle_id"] = -1
    path.write_text(json.dumps(raw), encoding="utf-8")

    result = store.load()
    assert result.ok
    assert len(result.items) == 3
    assert result.items[0].puzzle.catalog_id == -1
    assert any("negative catalog puzzle id" in warning for warning in result.warnings)


def test_unknown_fields_are_ignored_on_load(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    store = template_store(path)
    template = new_template("Route", catalog_puzzle(2, "Tower"))
    store.save([template])
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw[0]["puzzle"]["added_later"] = True
    raw[0]["puzzle"]["ref"]["region"] = "EU"
    path.write_text(json.dumps(raw), encoding="utf-8")

    result = store.load()
    assert result.ok
    assert result.items == [template]


def test_equal_order_checkpoints_keep_input_order_after_reload(tmp_path: Path) -> None:
    template = new_template("Route", catalog_puzzle(2, "Tower"))
    template.add_checkpoint("zeta", 1)
    template.add_checkpoint("alpha", 1)
    template.add_checkpoint("first", 0)
    record = Record(
        puzzle=catalog_puzzle(2, "Tower"),
        total_duration=3.0,
        checkpoints=(
            Checkpoint(name="mid-b", order=1, cumulative_duration=2.0, split_duration=1.0, is_completed=True),
            Checkpoint(name="mid-a", order=1, cumulative_duration=3.0, split_duration=1.0, is_completed=True),
            Checkpoint(name="start", order=0, cumulative_duration=1.0, split_duration=1.0, is_completed=True),
        ),
    )
    templates = template_store(tmp_path / "templates.json")
    records = record_store(tmp_path / "records.json")
    templates.save([template])
    records.save([record])

    loaded_template = templates.load().items[0]
    loaded_record = records.load().items[0]
    assert [cp.name for cp in sort_checkpoints(loaded_template.checkpoints)] == ["first", "zeta", "alpha"]
    assert [cp.name for cp in sort_checkpoints(loaded_record.checkpoints)] == ["start", "mid-b", "mid-a"]


def test_template_warnings_are_reported_on_load(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    template = new_template("Route")
    template.checkpoints.append(Checkpoint(name="A", cumulative_duration=3.0, is_completed=True))
    store = template_store(path)
    store.save([template])

    result = store.load()
    assert result.ok
    assert len(result.items) == 1
    assert len(result.warnings) == 1


def test_save_writes_indented_json_and_leaves_no_temp_files(tmp_path: Path) -> None:
    store = record_store(tmp_path / "records.json")
    store.save([_record("a", 1.0)])

    text = (tmp_path / "records.json").read_text(encoding="utf-8")
    assert text.startswith("[\n  {")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["records.json"]


def test_atomic_write_replaces_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "data.json"
    atomic_write_bytes(path, b"old")
    atomic_write_bytes(path, b"new")
    assert path.read_bytes() == b"new"
    assert [p.name for p in path.parent.iterdir()] == ["data.json"]


def test_save_failure_returns_false(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = record_store(blocker / "records.json")
    assert store.save([_record("a", 1.0)]) is False


def test_export_records_csv_layout(tmp_path: Path) -> None:
    custom = custom_puzzle_identity("cid", "Frog")
    records = [
        _record("Tower", 12.5, fields={"Attempt": "3"}),
        Record(
            puzzle=custom,
            total_duration=4.0,
            completed_at=_WHEN,
            checkpoints=(
                Checkpoint(name="A", order=0, cumulative_duration=1.0, split_duration=1.0, is_completed=True),
                Checkpoint(name="B", order=1),
            ),
            custom_fields={"Route": "skip"},
            template_id="tpl",
        ),
    ]
    out = tmp_path / "out" / "records.csv"
    assert export_records_csv(records, out) == 2

    with out.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    header = rows[0]
    assert header[: len(RECORDS_CSV_BASE_COLUMNS)] == list(RECORDS_CSV_BASE_COLUMNS)
    assert header[len(RECORDS_CSV_BASE_COLUMNS) :] == [
        "Split_0_Name",
        "Split_0_TimeSeconds",
        "Split_1_Name",
        "Split_1_TimeSeconds",
        "Custom_Attempt",
        "Custom_Route",
    ]

    tower = dict(zip(header, rows[1]))
    assert tower["PuzzleId"] == "3"
    assert tower["World"] == "Gilgamesh"
    assert tower["TimeInSeconds"] == "12.5"
    assert tower["IsCustomPuzzle"] == "False"
    assert tower["Split_1_Name"] == ""
    assert tower["Custom_Attempt"] == "3"
    assert tower["Custom_Route"] == ""

    frog = dict(zip(header, rows[2]))
    assert frog["PuzzleId"] == "-1"
    assert frog["IsCustomPuzzle"] == "True"
    assert frog["CustomPuzzleId"] == "cid"
    assert frog["TemplateId"] == "tpl"
    assert frog["Split_1_Name"] == "B"
    assert frog["Split_1_TimeSeconds"] == ""
    assert frog["Custom_Route"] == "skip"


def test_export_empty_records_writes_header_only(tmp_path: Path) -> None:
    out = tmp_path / "records.csv"
    assert export_records_csv([], out) == 0
    assert out.read_text(encoding="utf-8").strip() == ",".join(RECORDS_CSV_BASE_COLUMNS)
