from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any


@dataclass(slots=True)
class Summary:
    id: str
    note: str
    create_date: date
    messages_id: list[str] | None

    @property
    def sent(self) -> bool:
        return bool(self.messages_id)


SUMMARY_COLUMNS = "id, note, create_date, messages_id_json"


def _loads_ids(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(value, list):
        return None
    return [str(v) for v in value]


def _row_to_summary(row: sqlite3.Row | tuple[Any, ...] | None) -> Summary | None:
    if row is None:
        return None
    return Summary(
        id=str(row[0]),
        note=str(row[1] or ""),
        create_date=date.fromisoformat(str(row[2])),
        messages_id=_loads_ids(row[3]),
    )


def insert_summary_sync(conn: sqlite3.Connection, *, create_date: date, note: str = "", commit: bool = True) -> Summary:
    summary_id = uuid.uuid4().hex
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO summaries (id, note, create_date, messages_id_json) VALUES (?, ?, ?, NULL)",
        (summary_id, note or "", create_date.isoformat()),
    )
    if commit:
        conn.commit()
    return Summary(id=summary_id, note=note or "", create_date=create_date, messages_id=None)


def fetch_summary_sync(conn: sqlite3.Connection, summary_id: str) -> Summary | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {SUMMARY_COLUMNS} FROM summaries WHERE id = ?", (str(summary_id),))
    return _row_to_summary(cur.fetchone())


def set_note_sync(conn: sqlite3.Connection, summary_id: str, note: str) -> Summary | None:
    cur = conn.cursor()
    cur.execute("UPDATE summaries SET note = ? WHERE id = ?", (note or "", str(summary_id)))
    conn.commit()
    return fetch_summary_sync(conn, summary_id)


def set_messages_sync(conn: sqlite3.Connection, summary_id: str, message_ids: list[str]) -> Summary | None:
    cur = conn.cursor()
    # message ids are written once; resends edit in place
    cur.execute(
        "UPDATE summaries SET messages_id_json = ? WHERE id = ? AND messages_id_json IS NULL",
        (json.dumps([str(m) for m in message_ids]), str(summary_id)),
    )
    conn.commit()
    return fetch_summary_sync(conn, summary_id)


def list_summaries_sync(conn: sqlite3.Connection, *, page: int = 1, page_size: int = 10) -> tuple[list[Summary], int]:
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM summaries")
    total = int(cur.fetchone()[0])
    size = max(1, int(page_size))
    offset = (max(1, int(page)) - 1) * size
    cur.execute(
        f"SELECT {SUMMARY_COLUMNS} FROM summaries ORDER BY create_date DESC, rowid DESC LIMIT ? OFFSET ?",
        (size, offset),
    )
    return [_row_to_summary(r) for r in cur.fetchall()], (total + size - 1) // size
