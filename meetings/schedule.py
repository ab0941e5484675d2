from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

from misc.errors import InvalidSchedule


# 1=SUN .. 7=SAT in the seconds-first (6/7 field) form
QUARTZ_DOW = {1: "sun", 2: "mon", 3: "tue", 4: "wed", 5: "thu", 6: "fri", 7: "sat"}
# 0/7=SUN in the classic 5 field form
UNIX_DOW = {0: "sun", 1: "mon", 2: "tue", 3: "wed", 4: "thu", 5: "fri", 6: "sat", 7: "sun"}

_DOW_RANGE_RE = re.compile(r"(?<![/\d])(\d+)-(\d+)(?![/\d])")
_DOW_ATOM_RE = re.compile(r"(?<![/\d])(\d+)")


@dataclass(frozen=True)
class MeetingSchedule:
    expr: str
    trigger: CronTrigger
    tz: ZoneInfo

    def describe(self) -> str:
        return f"`{self.expr}` ({self.tz.key})"


def _dow_name(n: int, table: dict[int, str]) -> str:
    if n not in table:
        raise ValueError(f"day-of-week {n} out of range")
    return table[n]


def _map_dow(field: str, table: dict[int, str]) -> str:
    # numeric ranges are expanded to name lists since sunday sorts last for the trigger
    def expand(m: re.Match) -> str:
        lo, hi = int(m.group(1)), int(m.group(2))
        if lo > hi:
            raise ValueError(f"day-of-week range {lo}-{hi} is reversed")
        names: list[str] = []
        for n in range(lo, hi + 1):
            name = _dow_name(n, table)
            if name not in names:
                names.append(name)
        return ",".join(names)

    field = _DOW_RANGE_RE.sub(expand, field)
    return _DOW_ATOM_RE.sub(lambda m: _dow_name(int(m.group(1)), table), field)


def _normalize(expr: str) -> str:
    return " ".join((expr or "").split())


def parse_schedule(expr: str, tz_name: str = "UTC") -> MeetingSchedule:
    """Parse a cron expression into a MeetingSchedule.

    Accepts the classic 5 field form (`min hour dom month dow`) and the
    seconds-first 6/7 field form (`sec min hour dom month dow [year]`).
    """
    canonical = _normalize(expr)
    parts = canonical.lower().replace("?", "*").split(" ") if canonical else []
    try:
        tz = ZoneInfo(tz_name or "UTC")
    except Exception as e:
        raise InvalidSchedule(canonical, f"unknown timezone {tz_name}") from e

    if len(parts) == 5:
        second, (minute, hour, day, month, dow), year = "0", parts, None
        table = UNIX_DOW
    elif len(parts) in (6, 7):
        second, minute, hour, day, month, dow = parts[:6]
        year = parts[6] if len(parts) == 7 else None
        table = QUARTZ_DOW
    else:
        raise InvalidSchedule(canonical, f"expected 5, 6 or 7 fields, got {len(parts)}")

    try:
        trigger = CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_map_dow(dow, table),
            year=year,
            timezone=tz,
        )
    except ValueError as e:
        raise InvalidSchedule(canonical, str(e)) from e

    schedule = MeetingSchedule(expr=canonical, trigger=trigger, tz=tz)
    # an exhausted schedule (e.g. a past year) is as useless as a malformed one
    next_occurrence(schedule, datetime.now(timezone.utc))
    return schedule


def next_occurrence(schedule: MeetingSchedule, now: datetime) -> datetime:
    """First fire time strictly after `now`, in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    fire = schedule.trigger.get_next_fire_time(None, now + timedelta(microseconds=1))
    if fire is None:
        raise InvalidSchedule(schedule.expr, "no upcoming occurrence")
    return fire.astimezone(timezone.utc)
