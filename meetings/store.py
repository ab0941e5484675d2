from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from misc.errors import AlreadyInMeeting
from summaries.store import insert_summary_sync


@dataclass(slots=True)
class Meeting:
    id: str
    start_date: datetime
    end_date: datetime | None
    summary_id: str
    channel_id: str
    scheduled_cron: str

    @property
    def ended(self) -> bool:
        return self.end_date is not None


MEETING_COLUMNS = "id, start_date_utc, end_date_utc, summary_id, channel_id, scheduled_cron"


def _row_to_meeting(row: sqlite3.Row | tuple[Any, ...] | None) -> Meeting | None:
    if row is None:
        return None
    return Meeting(
        id=str(row[0]),
        start_date=datetime.fromisoformat(str(row[1])),
        end_date=datetime.fromisoformat(str(row[2])) if row[2] else None,
        summary_id=str(row[3]),
        channel_id=str(row[4]),
        scheduled_cron=str(row[5]),
    )


def create_meeting_sync(
    conn: sqlite3.Connection,
    *,
    start_date: datetime,
    channel_id: str,
    scheduled_cron: str,
    summary_date: date,
) -> Meeting:
    """Insert a meeting together with its (empty) summary in one transaction."""
    meeting_id = uuid.uuid4().hex
    try:
        summary = insert_summary_sync(conn, create_date=summary_date, commit=False)
        cur = conn.cursor()
        cur.execute(
            f"""
            INSERT INTO meetings ({MEETING_COLUMNS})
            VALUES (?, ?, NULL, ?, ?, ?)
            """,
            (meeting_id, start_date.isoformat(), summary.id, str(channel_id), scheduled_cron),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return fetch_meeting_sync(conn, meeting_id)


def fetch_meeting_sync(conn: sqlite3.Connection, meeting_id: str) -> Meeting | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {MEETING_COLUMNS} FROM meetings WHERE id = ?", (str(meeting_id),))
    return _row_to_meeting(cur.fetchone())


def fetch_meeting_by_summary_sync(conn: sqlite3.Connection, summary_id: str) -> Meeting | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {MEETING_COLUMNS} FROM meetings WHERE summary_id = ?", (str(summary_id),))
    return _row_to_meeting(cur.fetchone())


def fetch_current_meeting_sync(conn: sqlite3.Connection) -> Meeting | None:
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {MEETING_COLUMNS} FROM meetings
        WHERE end_date_utc IS NULL
        ORDER BY start_date_utc DESC, rowid DESC
        LIMIT 1
        """
    )
    return _row_to_meeting(cur.fetchone())


def update_meeting_sync(
    conn: sqlite3.Connection,
    meeting_id: str,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    channel_id: str | None = None,
    scheduled_cron: str | None = None,
) -> Meeting | None:
    sets: list[str] = []
    params: list[Any] = []
    if start_date is not None:
        sets.append("start_date_utc = ?")
        params.append(start_date.isoformat())
    if end_date is not None:
        sets.append("end_date_utc = ?")
        params.append(end_date.isoformat())
    if channel_id is not None:
        sets.append("channel_id = ?")
        params.append(str(channel_id))
    if scheduled_cron is not None:
        sets.append("scheduled_cron = ?")
        params.append(scheduled_cron)
    if sets:
        cur = conn.cursor()
        cur.execute(f"UPDATE meetings SET {', '.join(sets)} WHERE id = ?", (*params, str(meeting_id)))
        conn.commit()
    return fetch_meeting_sync(conn, meeting_id)


def list_meetings_sync(
    conn: sqlite3.Connection,
    *,
    page: int = 1,
    page_size: int = 10,
    ended_only: bool = True,
) -> tuple[list[Meeting], int]:
    where = "WHERE end_date_utc IS NOT NULL" if ended_only else ""
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM meetings {where}")
    total = int(cur.fetchone()[0])
    size = max(1, int(page_size))
    offset = (max(1, int(page)) - 1) * size
    cur.execute(
        f"SELECT {MEETING_COLUMNS} FROM meetings {where} ORDER BY start_date_utc DESC, rowid DESC LIMIT ? OFFSET ?",
        (size, offset),
    )
    return [_row_to_meeting(r) for r in cur.fetchall()], (total + size - 1) // size


# ---- attendance ----


def insert_attendance_sync(conn: sqlite3.Connection, *, meeting_id: str, member_id: str, member_name: str = "") -> str:
    row_id = uuid.uuid4().hex
    cur = conn.cursor()
    try:
        cur.execute(
            "INSERT INTO meeting_members (id, meeting_id, member_id) VALUES (?, ?, ?)",
            (row_id, str(meeting_id), str(member_id)),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        if "UNIQUE" in str(e).upper():
            raise AlreadyInMeeting(member_name or str(member_id)) from e
        raise
    return row_id


def delete_attendance_sync(conn: sqlite3.Connection, *, meeting_id: str, member_id: str) -> int:
    cur = conn.cursor()
    cur.execute(
        "DELETE FROM meeting_members WHERE meeting_id = ? AND member_id = ?",
        (str(meeting_id), str(member_id)),
    )
    deleted = cur.rowcount
    conn.commit()
    return int(deleted)


def list_attendance_sync(conn: sqlite3.Connection, meeting_id: str) -> list[str]:
    cur = conn.cursor()
    cur.execute(
        "SELECT member_id FROM meeting_members WHERE meeting_id = ? ORDER BY rowid ASC",
        (str(meeting_id),),
    )
    return [str(r[0]) for r in cur.fetchall()]
