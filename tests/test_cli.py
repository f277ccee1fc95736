from __future__ import annotations

import csv
from pathlib import Path

from typer.testing import CliRunner

from wahjumps.cli import app
from wahjumps.paths import RECORDS_CSV_NAME
from wahjumps.speedrun.manager import SpeedrunManager
from wahjumps.speedrun.types import catalog_puzzle


def _invoke(tmp_path: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(app, [*args, "--base-dir", str(tmp_path)])


def _finish_run(tmp_path: Path, clock, seconds: float, *, puzzle_id: int = 4, name: str = "Moonfire Tower") -> str:
    manager = SpeedrunManager.open(tmp_path, clock=clock)
    manager.set_puzzle(catalog_puzzle(puzzle_id, name, "Gilgamesh"))
    manager.start_immediately({"Attempt": "1"})
    clock.advance(seconds)
    manager.mark_split()
    record = manager.stop_timer()
    manager.close()
    assert record is not None
    return record.id


def test_records_list_sorted_by_time(tmp_path: Path, clock) -> None:
    _finish_run(tmp_path, clock, 30.0)
    _finish_run(tmp_path, clock, 12.5)

    result = _invoke(tmp_path, "records", "list", "--sort", "time")
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "00:12.50" in lines[0]
    assert "00:30.00" in lines[1]
    assert "Moonfire Tower [#4]" in lines[0]
    assert "Attempt: 1" in lines[0]
    assert lines[-1] == "2 record(s)"


def test_records_list_rejects_unknown_sort(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "records", "list", "--sort", "fastest")
    assert result.exit_code != 0


def test_records_list_filters_by_puzzle(tmp_path: Path, clock) -> None:
    _finish_run(tmp_path, clock, 30.0)
    _finish_run(tmp_path, clock, 5.0, puzzle_id=9, name="Goblin Fort")

    result = _invoke(tmp_path, "records", "list", "--puzzle", "goblin")
    assert result.exit_code == 0, result.output
    assert "Goblin Fort" in result.output
    assert "Moonfire" not in result.output


def test_records_best_shows_fastest_run(tmp_path: Path, clock) -> None:
    _finish_run(tmp_path, clock, 30.0)
    _finish_run(tmp_path, clock, 12.5)

    result = _invoke(tmp_path, "records", "best", "Moonfire Tower")
    assert result.exit_code == 0, result.output
    assert "00:12.50" in result.output.splitlines()[0]
    assert "Finish" in result.output

    missing = _invoke(tmp_path, "records", "best", "Nowhere")
    assert missing.exit_code == 1


def test_records_remove_by_prefix(tmp_path: Path, clock) -> None:
    record_id = _finish_run(tmp_path, clock, 30.0)

    result = _invoke(tmp_path, "records", "remove", record_id[:6])
    assert result.exit_code == 0, result.output
    assert record_id in result.output
    listed = _invoke(tmp_path, "records", "list")
    assert listed.output.strip() == "0 record(s)"

    again = _invoke(tmp_path, "records", "remove", record_id[:6])
    assert again.exit_code == 1


def test_records_export_csv_default_path(tmp_path: Path, clock) -> None:
    _finish_run(tmp_path, clock, 30.0)

    result = _invoke(tmp_path, "records", "export-csv")
    assert result.exit_code == 0, result.output
    with (tmp_path / RECORDS_CSV_NAME).open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 1
    assert rows[0]["PuzzleName"] == "Moonfire Tower"
    assert rows[0]["Custom_Attempt"] == "1"


def test_templates_workflow(tmp_path: Path) -> None:
    created = _invoke(tmp_path, "templates", "create", "Tower route", "--puzzle-id", "4", "--puzzle-name", "Tower")
    assert created.exit_code == 0, created.output
    template_id = created.output.split()[2]

    added = _invoke(tmp_path, "templates", "add-checkpoint", template_id[:8], "First ledge")
    assert added.exit_code == 0, added.output
    dup = _invoke(tmp_path, "templates", "duplicate", template_id)
    assert dup.exit_code == 0, dup.output
    assert "Tower route (Copy)" in dup.output

    listed = _invoke(tmp_path, "templates", "list")
    assert listed.exit_code == 0, listed.output
    assert listed.output.count("First ledge") == 2
    assert "Tower [#4]" in listed.output

    removed = _invoke(tmp_path, "templates", "remove", template_id)
    assert removed.exit_code == 0, removed.output
    assert "1 template(s)" in _invoke(tmp_path, "templates", "list").output


def test_templates_create_rejects_empty_name(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "templates", "create", " ")
    assert result.exit_code == 1


def test_templates_from_record(tmp_path: Path, clock) -> None:
    record_id = _finish_run(tmp_path, clock, 30.0)

    result = _invoke(tmp_path, "templates", "from-record", record_id, "--name", "Copied")
    assert result.exit_code == 0, result.output
    assert "(Copied) with 1 checkpoint(s)" in result.output


def test_puzzles_and_custom_templates(tmp_path: Path) -> None:
    created = _invoke(tmp_path, "puzzles", "create", "Frog Jump", "--creator", "Alisaie", "--description", "lily pads")
    assert created.exit_code == 0, created.output
    puzzle_id = created.output.split()[3]

    listed = _invoke(tmp_path, "puzzles", "list")
    assert "Frog Jump by Alisaie  - lily pads" in listed.output

    template = _invoke(tmp_path, "templates", "create", "Frog route", "--custom-puzzle", puzzle_id[:5])
    assert template.exit_code == 0, template.output
    assert "Frog Jump [custom]" in _invoke(tmp_path, "templates", "list").output

    removed = _invoke(tmp_path, "puzzles", "remove", puzzle_id)
    assert removed.exit_code == 0, removed.output
    assert "0 custom puzzle(s)" in _invoke(tmp_path, "puzzles", "list").output
    assert "0 template(s)" in _invoke(tmp_path, "templates", "list").output


def test_empty_id_prefix_is_rejected(tmp_path: Path) -> None:
    _invoke(tmp_path, "templates", "create", "one")
    _invoke(tmp_path, "templates", "create", "two")

    result = _invoke(tmp_path, "templates", "remove", "")
    assert result.exit_code == 1


def test_config_show(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "config", "show")
    assert result.exit_code == 0, result.output
    assert "countdown_seconds: 3" in result.output
    assert "auto_stop_on_final_split: False" in result.output
