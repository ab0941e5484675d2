from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    # keep the earliest row of any duplicated (meeting, member) pair
    cur.execute(
        """
        DELETE FROM meeting_members
        WHERE rowid NOT IN (
            SELECT MIN(rowid) FROM meeting_members GROUP BY meeting_id, member_id
        )
        """
    )
    dropped = cur.rowcount
    cur.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_meeting_members_pair
        ON meeting_members(meeting_id, member_id)
        """
    )
    conn.commit()
    if dropped and dropped > 0:
        print(f"[DB] meeting_members: dropped {dropped} duplicate attendance row(s)")
