from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import msgspec

from .debug_log import debug_log
from .speedrun.storage import JSON_INDENT, atomic_write_bytes

SPEEDRUN_CONFIG_NAME = "speedrun.json"
SPEEDRUN_CONFIG_VERSION = 1
MAX_COUNTDOWN_SECONDS = 10


class SpeedrunSettings(msgspec.Struct, kw_only=True):
    version: int = SPEEDRUN_CONFIG_VERSION
    countdown_seconds: int = 3
    auto_save_records: bool = True
    show_split_comparison: bool = True
    # The engine has no audio; this is read by the host UI.
    play_sound_on_countdown: bool = True
    auto_stop_on_final_split: bool = False
    create_default_templates: bool = True
    enable_logging: bool = False


def _encode_settings(settings: SpeedrunSettings) -> bytes:
    return msgspec.json.format(msgspec.json.encode(settings), indent=JSON_INDENT) + b"\n"


@dataclass(slots=True)
class SpeedrunConfig:
    path: Path
    settings: SpeedrunSettings = field(default_factory=SpeedrunSettings)
    load_error: str | None = None

    @property
    def countdown_seconds(self) -> int:
        return int(self.settings.countdown_seconds)

    @countdown_seconds.setter
    def countdown_seconds(self, value: int) -> None:
        self.settings.countdown_seconds = max(0, min(int(value), MAX_COUNTDOWN_SECONDS))

    def save(self) -> bool:
        try:
            atomic_write_bytes(self.path, _encode_settings(self.settings))
        except OSError as exc:
            debug_log("save_failed", store="config", path=str(self.path), error=str(exc))
            return False
        return True


def load_speedrun_config(path: Path) -> SpeedrunConfig:
    settings = msgspec.json.decode(Path(path).read_bytes(), type=SpeedrunSettings)
    return SpeedrunConfig(path=Path(path), settings=settings)


def ensure_speedrun_config(base_dir: Path) -> SpeedrunConfig:
    path = Path(base_dir) / SPEEDRUN_CONFIG_NAME
    if not path.exists():
        config = SpeedrunConfig(path=path)
        config.save()
        return config

    try:
        config = load_speedrun_config(path)
    except (OSError, msgspec.DecodeError) as exc:
        # Keep the broken file for the user to inspect; run on defaults.
        debug_log("load_failed", store="config", path=str(path), error=str(exc))
        return SpeedrunConfig(path=path, load_error=f"failed to load settings from {path}: {exc}")

    patched = False
    countdown = int(config.settings.countdown_seconds)
    if countdown < 0 or countdown > MAX_COUNTDOWN_SECONDS:
        config.countdown_seconds = countdown
        patched = True
    if int(config.settings.version) != SPEEDRUN_CONFIG_VERSION:
        config.settings.version = SPEEDRUN_CONFIG_VERSION
        patched = True
    if patched:
        config.save()
    return config


__all__ = [
    "MAX_COUNTDOWN_SECONDS",
    "SPEEDRUN_CONFIG_NAME",
    "SpeedrunConfig",
    "SpeedrunSettings",
    "ensure_speedrun_config",
    "load_speedrun_config",
]
