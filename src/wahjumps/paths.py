from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "wahjumps"
BASE_DIR_ENV = "WAHJUMPS_BASE_DIR"

RECORDS_FILE_NAME = "speedrun_records.json"
TEMPLATES_FILE_NAME = "split_templates.json"
CUSTOM_PUZZLES_FILE_NAME = "custom_puzzles.json"
RECORDS_CSV_NAME = "speedrun_records.csv"


def _app_dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def default_runtime_dir() -> Path:
    raw = os.environ.get(BASE_DIR_ENV)
    if raw:
        return Path(raw).expanduser()
    return Path(_app_dirs().user_data_path)


def records_path(base_dir: Path) -> Path:
    return Path(base_dir) / RECORDS_FILE_NAME


def templates_path(base_dir: Path) -> Path:
    return Path(base_dir) / TEMPLATES_FILE_NAME


def custom_puzzles_path(base_dir: Path) -> Path:
    return Path(base_dir) / CUSTOM_PUZZLES_FILE_NAME


__all__ = [
    "APP_NAME",
    "BASE_DIR_ENV",
    "CUSTOM_PUZZLES_FILE_NAME",
    "RECORDS_CSV_NAME",
    "RECORDS_FILE_NAME",
    "TEMPLATES_FILE_NAME",
    "custom_puzzles_path",
    "default_runtime_dir",
    "records_path",
    "templates_path",
]
