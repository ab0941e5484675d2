from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any


@dataclass(slots=True)
class Report:
    id: str
    member_id: str
    content: str
    create_date: date
    published: bool
    summary_id: str | None


REPORT_COLUMNS = "id, member_id, content, create_date, published, summary_id"
PATCHABLE = {"member_id", "content"}


def _row_to_report(row: sqlite3.Row | tuple[Any, ...] | None) -> Report | None:
    if row is None:
        return None
    return Report(
        id=str(row[0]),
        member_id=str(row[1]),
        content=str(row[2]),
        create_date=date.fromisoformat(str(row[3])),
        published=bool(row[4]),
        summary_id=str(row[5]) if row[5] is not None else None,
    )


def insert_report_sync(conn: sqlite3.Connection, *, member_id: str, content: str, create_date: date) -> Report:
    report_id = uuid.uuid4().hex
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO reports (id, member_id, content, create_date, published, summary_id)
        VALUES (?, ?, ?, ?, 0, NULL)
        """,
        (report_id, str(member_id), content, create_date.isoformat()),
    )
    conn.commit()
    return fetch_report_sync(conn, report_id)


def fetch_report_sync(conn: sqlite3.Connection, report_id: str) -> Report | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {REPORT_COLUMNS} FROM reports WHERE id = ?", (str(report_id),))
    return _row_to_report(cur.fetchone())


def update_report_sync(conn: sqlite3.Connection, report_id: str, patch: dict[str, Any]) -> Report | None:
    unknown = set(patch) - PATCHABLE
    if unknown:
        raise ValueError(f"Unknown report field(s): {', '.join(sorted(unknown))}")
    if patch:
        keys = sorted(patch)
        assignments = ", ".join(f"{k} = ?" for k in keys)
        cur = conn.cursor()
        cur.execute(
            f"UPDATE reports SET {assignments} WHERE id = ?",
            (*[str(patch[k]) for k in keys], str(report_id)),
        )
        conn.commit()
    return fetch_report_sync(conn, report_id)


def delete_report_sync(conn: sqlite3.Connection, report_id: str) -> int:
    cur = conn.cursor()
    cur.execute("DELETE FROM reports WHERE id = ?", (str(report_id),))
    deleted = cur.rowcount
    conn.commit()
    return int(deleted)


def list_reports_sync(
    conn: sqlite3.Connection,
    *,
    page: int = 1,
    page_size: int = 10,
    member_id: str | None = None,
    published: bool | None = None,
) -> tuple[list[Report], int]:
    clauses: list[str] = []
    params: list[Any] = []
    if member_id is not None:
        clauses.append("member_id = ?")
        params.append(str(member_id))
    if published is not None:
        clauses.append("published = ?")
        params.append(1 if published else 0)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM reports {where}", params)
    total = int(cur.fetchone()[0])
    size = max(1, int(page_size))
    offset = (max(1, int(page)) - 1) * size
    cur.execute(
        f"SELECT {REPORT_COLUMNS} FROM reports {where} ORDER BY create_date DESC, rowid DESC LIMIT ? OFFSET ?",
        (*params, size, offset),
    )
    return [_row_to_report(r) for r in cur.fetchall()], (total + size - 1) // size


def fetch_unpublished_sync(conn: sqlite3.Connection, cutoff: date) -> list[Report]:
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {REPORT_COLUMNS} FROM reports
        WHERE published = 0 AND summary_id IS NULL AND create_date <= ?
        ORDER BY create_date ASC, rowid ASC
        """,
        (cutoff.isoformat(),),
    )
    return [_row_to_report(r) for r in cur.fetchall()]


def fetch_by_summary_sync(conn: sqlite3.Connection, summary_id: str) -> list[Report]:
    cur = conn.cursor()
    cur.execute(
        f"SELECT {REPORT_COLUMNS} FROM reports WHERE summary_id = ? ORDER BY create_date ASC, rowid ASC",
        (str(summary_id),),
    )
    return [_row_to_report(r) for r in cur.fetchall()]


def publish_reports_sync(conn: sqlite3.Connection, report_ids: list[str], summary_id: str) -> int:
    if not report_ids:
        return 0
    cur = conn.cursor()
    cur.executemany(
        "UPDATE reports SET published = 1, summary_id = ? WHERE id = ? AND (summary_id IS NULL OR summary_id = ?)",
        [(str(summary_id), str(rid), str(summary_id)) for rid in report_ids],
    )
    conn.commit()
    return int(cur.rowcount)


def attach_report_sync(conn: sqlite3.Connection, report_id: str, summary_id: str, *, published: bool) -> Report | None:
    cur = conn.cursor()
    cur.execute(
        "UPDATE reports SET published = ?, summary_id = ? WHERE id = ? AND summary_id IS NULL",
        (1 if published else 0, str(summary_id), str(report_id)),
    )
    conn.commit()
    return fetch_report_sync(conn, report_id)
