from __future__ import annotations

"""Builds Discord <t:...> timestamp tags so every viewer sees their own local time."""

from datetime import datetime, timezone


DISCORD_TIMESTAMP_STYLES = {"t", "T", "d", "D", "f", "F", "R"}


def _validate_style(style: str) -> str:
    clean = str(style or "").strip() or "f"
    if clean not in DISCORD_TIMESTAMP_STYLES:
        raise ValueError(f"Invalid Discord timestamp style: {clean}")
    return clean


def format_discord_timestamp(dt: datetime, style: str = "f") -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return f"<t:{int(dt.timestamp())}:{_validate_style(style)}>"


def format_when(dt: datetime) -> str:
    """Absolute plus relative, e.g. `<t:..:F> (<t:..:R>)`."""
    return f"{format_discord_timestamp(dt, 'F')} ({format_discord_timestamp(dt, 'R')})"
