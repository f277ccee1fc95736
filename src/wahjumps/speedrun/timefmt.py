from __future__ import annotations


def _split_ms(ms: int) -> tuple[int, int, int]:
    minutes = ms // 60_000
    seconds = (ms // 1_000) % 60
    centiseconds = (ms % 1_000) // 10
    return minutes, seconds, centiseconds


def format_time(seconds: float | None) -> str:
    """Format a duration as `mm:ss.cc`; missing or negative values render as zero."""

    if seconds is None:
        return "--:--.--"
    ms = int(round(float(seconds) * 1000.0))
    if ms < 0:
        ms = 0
    minutes, secs, centis = _split_ms(ms)
    return f"{minutes:02d}:{secs:02d}.{centis:02d}"


def format_delta(seconds: float | None) -> str:
    # Negative means ahead of the comparison run.
    if seconds is None:
        return ""
    value = float(seconds)
    sign = "-" if value < 0 else "+"
    ms = int(round(abs(value) * 1000.0))
    minutes, secs, centis = _split_ms(ms)
    return f"{sign}{minutes:02d}:{secs:02d}.{centis:02d}"


__all__ = ["format_delta", "format_time"]
