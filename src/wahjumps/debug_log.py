from __future__ import annotations

import datetime as dt
import os
from pathlib import Path
from threading import Lock
import uuid


_LOG_LOCK = Lock()
_LOG_PATH: Path | None = None
# Fields stamped on every line: `session` for the open log, `run` while an attempt is live.
_CONTEXT: dict[str, str] = {}

_QUOTE_CHARS = frozenset(' ="')


def _format_value(value: object) -> str:
    text = str(value).replace("\n", "\\n")
    if text and not _QUOTE_CHARS.intersection(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _format_line(event: str, fields: dict[str, object]) -> str:
    timestamp = dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds")
    parts = [timestamp, f"event={str(event).strip()}"]
    parts.extend(f"{key}={_format_value(fields[key])}" for key in sorted(fields))
    return " ".join(parts) + "\n"


def debug_log_path() -> Path | None:
    with _LOG_LOCK:
        return _LOG_PATH


def debug_log_context() -> dict[str, str]:
    with _LOG_LOCK:
        return dict(_CONTEXT)


def set_debug_context(**fields: object) -> None:
    """Add fields to every following line; passing None for a key drops it."""

    with _LOG_LOCK:
        for key, value in fields.items():
            if value is None:
                _CONTEXT.pop(key, None)
            else:
                _CONTEXT[key] = str(value)


def init_debug_log(*, base_dir: Path, build_id: str = "") -> Path:
    timestamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%S.%fZ")
    path = Path(base_dir) / "logs" / f"wahjumps-pid{os.getpid()}-{timestamp}.log"
    path.parent.mkdir(parents=True, exist_ok=True)

    with _LOG_LOCK:
        global _LOG_PATH
        _LOG_PATH = path
        _CONTEXT.clear()
        _CONTEXT["session"] = uuid.uuid4().hex[:8]

    debug_log("init", base_dir=str(base_dir), build_id=str(build_id), pid=int(os.getpid()))
    return path


def debug_log(event: str, **fields: object) -> None:
    """Append one `event=<name> key=value ...` line to the open log.

    Context fields are included unless the call passes the same key. Does
    nothing until `init_debug_log` has been called.
    """

    with _LOG_LOCK:
        path = _LOG_PATH
        if path is None:
            return
        line = _format_line(event, {**_CONTEXT, **fields})
        try:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        except OSError:
            return


def close_debug_log() -> None:
    with _LOG_LOCK:
        global _LOG_PATH
        _LOG_PATH = None
        _CONTEXT.clear()


__all__ = [
    "close_debug_log",
    "debug_log",
    "debug_log_context",
    "debug_log_path",
    "init_debug_log",
    "set_debug_context",
]
