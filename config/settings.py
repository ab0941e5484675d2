from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from config.defaults import DEFAULT_ACTIVITY_REFRESH_HOURS
from config.defaults import DEFAULT_CONFIG_PATH
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_INACTIVITY_DAYS
from config.defaults import DEFAULT_MANAGER_ROLE_NAME
from config.defaults import DEFAULT_MEETING_CRON
from config.defaults import DEFAULT_TIMEZONE
from config.defaults import DEFAULT_WIKI_URL


ENV_PREFIX = "OCTOBOT_"


@dataclass(slots=True)
class Settings:
    discord_token: str = ""
    db_path: str = DEFAULT_DB_PATH
    server_id: int = 0
    member_role_id: int = 0
    apprentice_role_id: int = 0
    manager_role_name: str = DEFAULT_MANAGER_ROLE_NAME
    summary_channel_id: int = 0
    meeting_channel_id: int = 0
    meeting_cron: str = DEFAULT_MEETING_CRON
    timezone: str = DEFAULT_TIMEZONE
    inactivity_days: int = DEFAULT_INACTIVITY_DAYS
    activity_refresh_hours: int = DEFAULT_ACTIVITY_REFRESH_HOURS
    wiki_enabled: bool = False
    wiki_url: str = DEFAULT_WIKI_URL
    wiki_token: str = ""
    wiki_member_group_id: int = 0
    wiki_apprentice_group_id: int = 0
    warnings: list[str] = field(default_factory=list)


def _coerce(value: Any, target: Any) -> Any:
    if isinstance(target, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(target, int):
        return int(str(value).strip() or "0")
    return str(value).strip()


def _read_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("config file must contain a top-level mapping")
    # nested sections (`wiki: {url: ...}`) flatten to `wiki_url`
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat[f"{key}_{sub_key}"] = sub_value
        else:
            flat[str(key)] = value
    return flat


def load_settings(path: str | None = None, env: dict[str, str] | None = None) -> Settings:
    """Build settings from the YAML file, then let OCTOBOT_* env vars win.

    A missing or broken file is not fatal; the problem is recorded in
    `settings.warnings` and defaults are used instead.
    """
    env = dict(os.environ) if env is None else env
    settings = Settings()
    cfg_path = Path(path or env.get(f"{ENV_PREFIX}CONFIG_PATH") or DEFAULT_CONFIG_PATH)

    raw: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            raw = _read_yaml(cfg_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            settings.warnings.append(f"could not read {cfg_path}: {e}")
    else:
        settings.warnings.append(f"config file {cfg_path} not found, using defaults")

    for f in fields(Settings):
        if f.name == "warnings":
            continue
        current = getattr(settings, f.name)
        env_key = f"{ENV_PREFIX}{f.name.upper()}"
        value = env.get(env_key)
        source = env_key
        if value is None and f.name in raw and raw[f.name] is not None:
            value = raw[f.name]
            source = f"{cfg_path}:{f.name}"
        if value is None:
            continue
        try:
            setattr(settings, f.name, _coerce(value, current))
        except ValueError:
            settings.warnings.append(f"ignoring {source}={value!r}: expected {type(current).__name__}")

    if not settings.discord_token:
        settings.discord_token = env.get("DISCORD_TOKEN", "")
    return settings


def describe_settings(settings: Settings) -> str:
    return (
        f"db={settings.db_path} server={settings.server_id} "
        f"summary_channel={settings.summary_channel_id} meeting_channel={settings.meeting_channel_id} "
        f"cron='{settings.meeting_cron}' tz={settings.timezone} "
        f"inactivity_days={settings.inactivity_days} wiki={'on' if settings.wiki_enabled else 'off'}"
    )
