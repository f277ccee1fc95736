from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import typer

from .paths import RECORDS_CSV_NAME, default_runtime_dir
from .speedrun.manager import SpeedrunManager
from .speedrun.storage import export_records_csv
from .speedrun.timefmt import format_time
from .speedrun.types import PuzzleIdentity, Record, SpeedrunDataError, catalog_puzzle


app = typer.Typer(add_completion=False)
records_app = typer.Typer(add_completion=False)
templates_app = typer.Typer(add_completion=False)
puzzles_app = typer.Typer(add_completion=False)
config_app = typer.Typer(add_completion=False)
app.add_typer(records_app, name="records")
app.add_typer(templates_app, name="templates")
app.add_typer(puzzles_app, name="puzzles")
app.add_typer(config_app, name="config")

_SORT_KEYS = ("date", "time", "puzzle")


def _base_dir_option() -> Path:
    return typer.Option(
        default_runtime_dir(),
        "--base-dir",
        help="directory holding records, templates and settings (override with WAHJUMPS_BASE_DIR)",
    )


def _open(base_dir: Path) -> SpeedrunManager:
    manager = SpeedrunManager.open(Path(base_dir))
    for name, error in manager.load_errors.items():
        typer.echo(f"warning: {name}: {error}", err=True)
    return manager


def _resolve_id(kind: str, ids: Iterable[str], wanted: str) -> str:
    """Accept a full id or a unique prefix of one."""

    wanted = str(wanted).strip().lower()
    candidates = [item for item in ids if item == wanted]
    if not candidates:
        candidates = [item for item in ids if item.startswith(wanted)]
    if not wanted or not candidates:
        typer.echo(f"no {kind} matches {wanted!r}", err=True)
        raise typer.Exit(code=1)
    if len(candidates) > 1:
        typer.echo(f"{kind} id {wanted!r} is ambiguous ({len(candidates)} matches)", err=True)
        raise typer.Exit(code=1)
    return candidates[0]


def _puzzle_label(puzzle: PuzzleIdentity | None) -> str:
    if puzzle is None:
        return "(generic)"
    kind = "custom" if puzzle.is_custom else f"#{puzzle.catalog_id}"
    return f"{puzzle.name or '?'} [{kind}]"


def _sorted_records(records: list[Record], sort: str) -> list[Record]:
    if sort == "time":
        return sorted(records, key=lambda r: float(r.total_duration))
    if sort == "puzzle":
        return sorted(records, key=lambda r: (r.puzzle.name.lower(), float(r.total_duration)))
    return sorted(records, key=lambda r: r.completed_at, reverse=True)


@records_app.command("list")
def cmd_records_list(
    puzzle: str | None = typer.Option(None, "--puzzle", help="only records whose puzzle name contains this text"),
    sort: str = typer.Option("date", "--sort", help="date|time|puzzle"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """List completed runs."""
    sort_key = str(sort).strip().lower()
    if sort_key not in _SORT_KEYS:
        raise typer.BadParameter(f"unsupported sort {sort!r}; expected one of: {', '.join(_SORT_KEYS)}", param_hint="--sort")
    manager = _open(base_dir)
    records = manager.records.list_all()
    if puzzle:
        needle = puzzle.lower()
        records = [r for r in records if needle in r.puzzle.name.lower()]
    for record in _sorted_records(records, sort_key):
        fields = ", ".join(f"{key}: {value}" for key, value in record.custom_fields.items())
        line = (
            f"{record.id[:8]}  {format_time(record.total_duration)}  "
            f"{record.completed_at:%Y-%m-%d %H:%M}  {_puzzle_label(record.puzzle)}"
        )
        if record.puzzle.world:
            line += f" @ {record.puzzle.world}"
        if fields:
            line += f"  ({fields})"
        typer.echo(line)
    typer.echo(f"{len(records)} record(s)")


@records_app.command("remove")
def cmd_records_remove(
    record_id: str = typer.Argument(..., help="record id or unique prefix"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Delete one record."""
    manager = _open(base_dir)
    resolved = _resolve_id("record", [r.id for r in manager.records.list_all()], record_id)
    manager.remove_record(resolved)
    typer.echo(f"removed record {resolved}")


@records_app.command("best")
def cmd_records_best(
    name: str = typer.Argument(..., help="puzzle name"),
    puzzle_id: int | None = typer.Option(None, "--puzzle-id", min=0, help="catalog puzzle id"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Show the personal best for a puzzle, with its splits."""
    manager = _open(base_dir)
    identity: PuzzleIdentity | None
    if puzzle_id is not None:
        identity = catalog_puzzle(puzzle_id, name)
    else:
        identity = next((p.identity() for p in manager.custom_puzzles.list_all() if p.name == name), None)
        if identity is None:
            catalog = next(
                (r.puzzle for r in manager.records.list_all() if r.puzzle.name == name and not r.puzzle.is_custom),
                None,
            )
            identity = catalog
    best = manager.personal_best(identity) if identity is not None else None
    if best is None:
        typer.echo(f"no records for {name!r}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{_puzzle_label(best.puzzle)}  {format_time(best.total_duration)}  ({best.completed_at:%Y-%m-%d})")
    for checkpoint in best.checkpoints:
        typer.echo(
            f"  {checkpoint.name:<24} {format_time(checkpoint.split_duration)}  {format_time(checkpoint.cumulative_duration)}"
        )


@records_app.command("export-csv")
def cmd_records_export_csv(
    out: Path | None = typer.Argument(None, help=f"output path (default: <base-dir>/{RECORDS_CSV_NAME})"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Write all records as a spreadsheet-friendly CSV."""
    manager = _open(base_dir)
    target = Path(out) if out is not None else Path(base_dir) / RECORDS_CSV_NAME
    count = export_records_csv(manager.records.list_all(), target)
    typer.echo(f"wrote {count} record(s) to {target}")


@templates_app.command("list")
def cmd_templates_list(base_dir: Path = _base_dir_option()) -> None:
    """List split templates and their checkpoints."""
    manager = _open(base_dir)
    templates = manager.templates.list_all()
    for template in templates:
        typer.echo(f"{template.id[:8]}  {template.name}  {_puzzle_label(template.puzzle)}")
        for checkpoint in template.sorted_checkpoints():
            typer.echo(f"    {checkpoint.order:>3}  {checkpoint.name}")
    typer.echo(f"{len(templates)} template(s)")


@templates_app.command("create")
def cmd_templates_create(
    name: str = typer.Argument(..., help="template name"),
    puzzle_id: int | None = typer.Option(None, "--puzzle-id", min=0, help="catalog puzzle id"),
    puzzle_name: str = typer.Option("", "--puzzle-name", help="catalog puzzle name (display only)"),
    custom_puzzle: str | None = typer.Option(None, "--custom-puzzle", help="custom puzzle id or unique prefix"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Create an empty template, generic unless a puzzle is given."""
    if puzzle_id is not None and custom_puzzle is not None:
        raise typer.BadParameter("use either --puzzle-id or --custom-puzzle", param_hint="--custom-puzzle")
    manager = _open(base_dir)
    puzzle: PuzzleIdentity | None = None
    if puzzle_id is not None:
        puzzle = catalog_puzzle(puzzle_id, puzzle_name)
    elif custom_puzzle is not None:
        resolved = _resolve_id("custom puzzle", [p.id for p in manager.custom_puzzles.list_all()], custom_puzzle)
        puzzle = manager.custom_puzzles.identity_for(resolved)
    try:
        template = manager.create_template(name, puzzle)
    except SpeedrunDataError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"created template {template.id} ({template.name})")


@templates_app.command("duplicate")
def cmd_templates_duplicate(
    template_id: str = typer.Argument(..., help="template id or unique prefix"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Copy a template's checkpoints into a new "<name> (Copy)" template."""
    manager = _open(base_dir)
    resolved = _resolve_id("template", [t.id for t in manager.templates.list_all()], template_id)
    copy = manager.duplicate_template(resolved)
    assert copy is not None
    typer.echo(f"created template {copy.id} ({copy.name})")


@templates_app.command("remove")
def cmd_templates_remove(
    template_id: str = typer.Argument(..., help="template id or unique prefix"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Delete a template; records made with it are kept."""
    manager = _open(base_dir)
    resolved = _resolve_id("template", [t.id for t in manager.templates.list_all()], template_id)
    manager.remove_template(resolved)
    typer.echo(f"removed template {resolved}")


@templates_app.command("add-checkpoint")
def cmd_templates_add_checkpoint(
    template_id: str = typer.Argument(..., help="template id or unique prefix"),
    name: str = typer.Argument(..., help="checkpoint name"),
    order: int | None = typer.Option(None, "--order", help="sort position (default: after the last one)"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Append a checkpoint to a template."""
    manager = _open(base_dir)
    resolved = _resolve_id("template", [t.id for t in manager.templates.list_all()], template_id)
    template = manager.templates.get(resolved)
    assert template is not None
    try:
        checkpoint = template.add_checkpoint(name, order)
    except SpeedrunDataError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    manager.update_template(template)
    typer.echo(f"added checkpoint {checkpoint.name!r} (order {checkpoint.order}) to {template.name}")


@templates_app.command("from-record")
def cmd_templates_from_record(
    record_id: str = typer.Argument(..., help="record id or unique prefix"),
    name: str | None = typer.Option(None, "--name", help="template name (default: '<puzzle> Template')"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Turn a finished run's checkpoints into a reusable template."""
    manager = _open(base_dir)
    resolved = _resolve_id("record", [r.id for r in manager.records.list_all()], record_id)
    template = manager.create_template_from_record(resolved, name)
    assert template is not None
    typer.echo(f"created template {template.id} ({template.name}) with {len(template.checkpoints)} checkpoint(s)")


@puzzles_app.command("list")
def cmd_puzzles_list(base_dir: Path = _base_dir_option()) -> None:
    """List custom puzzles."""
    manager = _open(base_dir)
    puzzles = manager.custom_puzzles.list_all()
    for puzzle in puzzles:
        line = f"{puzzle.id[:8]}  {puzzle.name}"
        if puzzle.creator:
            line += f" by {puzzle.creator}"
        if puzzle.description:
            line += f"  - {puzzle.description}"
        typer.echo(line)
    typer.echo(f"{len(puzzles)} custom puzzle(s)")


@puzzles_app.command("create")
def cmd_puzzles_create(
    name: str = typer.Argument(..., help="puzzle name"),
    description: str = typer.Option("", "--description", help="free text"),
    creator: str = typer.Option("", "--creator", help="who built it"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Register a custom puzzle for timing homebrew content."""
    manager = _open(base_dir)
    try:
        puzzle = manager.create_custom_puzzle(name, description, creator)
    except SpeedrunDataError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"created custom puzzle {puzzle.id} ({puzzle.name})")


@puzzles_app.command("remove")
def cmd_puzzles_remove(
    puzzle_id: str = typer.Argument(..., help="custom puzzle id or unique prefix"),
    keep_templates: bool = typer.Option(False, "--keep-templates", help="keep templates bound to the puzzle"),
    base_dir: Path = _base_dir_option(),
) -> None:
    """Delete a custom puzzle (and, by default, its templates)."""
    manager = _open(base_dir)
    resolved = _resolve_id("custom puzzle", [p.id for p in manager.custom_puzzles.list_all()], puzzle_id)
    manager.remove_custom_puzzle(resolved, remove_templates=not keep_templates)
    typer.echo(f"removed custom puzzle {resolved}")


@config_app.command("show")
def cmd_config_show(base_dir: Path = _base_dir_option()) -> None:
    """Print the speedrun settings."""
    manager = _open(base_dir)
    settings = manager.config.settings
    typer.echo(f"path: {manager.config.path}")
    for name in settings.__struct_fields__:
        typer.echo(f"{name}: {getattr(settings, name)}")


def main(argv: list[str] | None = None) -> None:
    app(prog_name="wahjumps", args=argv)


if __name__ == "__main__":
    main()
