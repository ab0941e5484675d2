from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import IntEnum
from typing import Any


class MemberRole(IntEnum):
    EX_MEMBER = 0
    MEMBER = 1
    APPRENTICE = 2

    @classmethod
    def parse(cls, token: str) -> "MemberRole":
        key = (token or "").strip().lower().replace("-", "_")
        aliases = {
            "ex": cls.EX_MEMBER,
            "ex_member": cls.EX_MEMBER,
            "exmember": cls.EX_MEMBER,
            "member": cls.MEMBER,
            "apprentice": cls.APPRENTICE,
        }
        if key not in aliases:
            raise ValueError(f"Unknown role: {token}")
        return aliases[key]

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


class ActivityBucket(IntEnum):
    ACTIVE = 1
    INACTIVE = 2


@dataclass(slots=True)
class Member:
    id: str
    name: str
    discord_id: str | None
    trello_id: str | None
    trello_report_card_id: str | None
    role: MemberRole
    wiki_id: int | None
    last_activity: date | None

    def mention(self) -> str:
        if self.discord_id:
            return f"<@{self.discord_id}>"
        return self.name


MEMBER_COLUMNS = (
    "id, name, discord_id, trello_id, trello_report_card_id, role, wiki_id, last_activity"
)

# columns a patch may touch
PATCHABLE = {"name", "discord_id", "trello_id", "trello_report_card_id", "role", "wiki_id", "last_activity"}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def _row_to_member(row: sqlite3.Row | tuple[Any, ...] | None) -> Member | None:
    if row is None:
        return None
    last = row[7]
    return Member(
        id=str(row[0]),
        name=str(row[1]),
        discord_id=str(row[2]) if row[2] is not None else None,
        trello_id=str(row[3]) if row[3] is not None else None,
        trello_report_card_id=str(row[4]) if row[4] is not None else None,
        role=MemberRole(int(row[5])),
        wiki_id=int(row[6]) if row[6] is not None else None,
        last_activity=date.fromisoformat(str(last)) if last else None,
    )


def _to_db(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key == "role":
        return int(value)
    if key == "last_activity":
        return value.isoformat()
    if key == "wiki_id":
        return int(value)
    return str(value)


def insert_member_sync(
    conn: sqlite3.Connection,
    *,
    name: str,
    discord_id: str | None = None,
    trello_id: str | None = None,
    trello_report_card_id: str | None = None,
    role: MemberRole = MemberRole.MEMBER,
    wiki_id: int | None = None,
) -> Member:
    member_id = new_id()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO members (
            id, name, discord_id, trello_id, trello_report_card_id, role, wiki_id, last_activity, created_at_utc
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?)
        """,
        (
            member_id,
            name,
            _to_db("discord_id", discord_id),
            _to_db("trello_id", trello_id),
            _to_db("trello_report_card_id", trello_report_card_id),
            int(role),
            _to_db("wiki_id", wiki_id),
            _utc_now_iso(),
        ),
    )
    conn.commit()
    return fetch_member_sync(conn, member_id)


def fetch_member_sync(conn: sqlite3.Connection, member_id: str) -> Member | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {MEMBER_COLUMNS} FROM members WHERE id = ?", (str(member_id),))
    return _row_to_member(cur.fetchone())


def fetch_member_by_discord_id_sync(conn: sqlite3.Connection, discord_id: str) -> Member | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {MEMBER_COLUMNS} FROM members WHERE discord_id = ?", (str(discord_id),))
    return _row_to_member(cur.fetchone())


def fetch_member_by_trello_id_sync(conn: sqlite3.Connection, trello_id: str) -> Member | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {MEMBER_COLUMNS} FROM members WHERE trello_id = ?", (str(trello_id),))
    return _row_to_member(cur.fetchone())


def fetch_members_by_ids_sync(conn: sqlite3.Connection, member_ids: list[str]) -> dict[str, Member]:
    ids = [str(x) for x in member_ids]
    if not ids:
        return {}
    placeholders = ",".join("?" for _ in ids)
    cur = conn.cursor()
    cur.execute(f"SELECT {MEMBER_COLUMNS} FROM members WHERE id IN ({placeholders})", ids)
    out: dict[str, Member] = {}
    for row in cur.fetchall():
        m = _row_to_member(row)
        out[m.id] = m
    return out


def update_member_sync(conn: sqlite3.Connection, member_id: str, patch: dict[str, Any]) -> Member | None:
    fields = [k for k in patch if k in PATCHABLE]
    unknown = set(patch) - PATCHABLE
    if unknown:
        raise ValueError(f"Unknown member field(s): {', '.join(sorted(unknown))}")
    if fields:
        assignments = ", ".join(f"{k} = ?" for k in fields)
        values = [_to_db(k, patch[k]) for k in fields]
        cur = conn.cursor()
        cur.execute(f"UPDATE members SET {assignments} WHERE id = ?", (*values, str(member_id)))
        conn.commit()
    return fetch_member_sync(conn, member_id)


def delete_member_sync(conn: sqlite3.Connection, member_id: str) -> int:
    cur = conn.cursor()
    cur.execute("DELETE FROM meeting_members WHERE member_id = ?", (str(member_id),))
    cur.execute("DELETE FROM reports WHERE member_id = ?", (str(member_id),))
    cur.execute("DELETE FROM members WHERE id = ?", (str(member_id),))
    deleted = cur.rowcount
    conn.commit()
    return int(deleted)


def _list_where(
    *,
    role: MemberRole | None,
    exclude_role: MemberRole | None,
    bucket: ActivityBucket | None,
    active_since: date | None,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if role is not None:
        clauses.append("role = ?")
        params.append(int(role))
    if exclude_role is not None:
        clauses.append("role != ?")
        params.append(int(exclude_role))
    if bucket is not None and active_since is not None:
        if bucket == ActivityBucket.ACTIVE:
            clauses.append("last_activity IS NOT NULL AND last_activity >= ?")
        else:
            clauses.append("(last_activity IS NULL OR last_activity < ?)")
        params.append(active_since.isoformat())
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def list_members_sync(
    conn: sqlite3.Connection,
    *,
    page: int = 1,
    page_size: int = 10,
    role: MemberRole | None = None,
    exclude_role: MemberRole | None = None,
    bucket: ActivityBucket | None = None,
    active_since: date | None = None,
) -> tuple[list[Member], int]:
    where, params = _list_where(role=role, exclude_role=exclude_role, bucket=bucket, active_since=active_since)
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM members {where}", params)
    total = int(cur.fetchone()[0])
    size = max(1, int(page_size))
    offset = (max(1, int(page)) - 1) * size
    cur.execute(
        f"SELECT {MEMBER_COLUMNS} FROM members {where} ORDER BY name COLLATE NOCASE ASC, id ASC LIMIT ? OFFSET ?",
        (*params, size, offset),
    )
    members = [_row_to_member(r) for r in cur.fetchall()]
    total_pages = (total + size - 1) // size
    return members, total_pages


def list_member_ids_sync(conn: sqlite3.Connection) -> list[str]:
    cur = conn.cursor()
    cur.execute("SELECT id FROM members ORDER BY name COLLATE NOCASE ASC")
    return [str(r[0]) for r in cur.fetchall()]


def latest_report_date_sync(conn: sqlite3.Connection, member_id: str) -> date | None:
    cur = conn.cursor()
    cur.execute("SELECT MAX(create_date) FROM reports WHERE member_id = ?", (str(member_id),))
    row = cur.fetchone()
    return date.fromisoformat(str(row[0])) if row and row[0] else None


def latest_attended_end_sync(conn: sqlite3.Connection, member_id: str) -> str | None:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT MAX(m.end_date_utc)
        FROM meeting_members mm
        JOIN meetings m ON m.id = mm.meeting_id
        WHERE mm.member_id = ? AND m.end_date_utc IS NOT NULL
        """,
        (str(member_id),),
    )
    row = cur.fetchone()
    return str(row[0]) if row and row[0] else None


def set_last_activity_if_newer_sync(conn: sqlite3.Connection, member_id: str, day: date) -> bool:
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE members SET last_activity = ?
        WHERE id = ? AND (last_activity IS NULL OR last_activity < ?)
        """,
        (day.isoformat(), str(member_id), day.isoformat()),
    )
    changed = cur.rowcount > 0
    conn.commit()
    return changed
