from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _checksum_file(path: Path) -> str:
    data = path.read_bytes()
    return hashlib.sha256(data).hexdigest()


def _ensure_migration_table(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _load_applied(conn: sqlite3.Connection) -> dict[str, tuple[str, str, str]]:
    cur = conn.cursor()
    cur.execute("SELECT version, name, checksum, applied_at_utc FROM schema_migrations")
    out: dict[str, tuple[str, str, str]] = {}
    for version, name, checksum, applied_at_utc in cur.fetchall():
        out[str(version)] = (str(name), str(checksum), str(applied_at_utc))
    return out


def _run_sql(conn: sqlite3.Connection, path: Path) -> None:
    sql = path.read_text(encoding="utf-8")
    # one transaction per file so a half-applied schema is never recorded
    try:
        conn.executescript(f"BEGIN;\n{sql}\nCOMMIT;")
    except sqlite3.Error:
        conn.rollback()
        raise


def _run_py(conn: sqlite3.Connection, path: Path) -> None:
    spec = importlib.util.spec_from_file_location(f"octobot_migration_{path.stem}", str(path))
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Could not load migration module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise RuntimeError(f"Python migration missing upgrade(conn): {path}")
    upgrade(conn)


RUNNERS = {"sql": _run_sql, "py": _run_py}


@dataclass(frozen=True)
class MigrationFile:
    version: str
    name: str
    path: Path

    @property
    def label(self) -> str:
        return self.path.name


def discover_migrations(migrations_dir: str) -> list[MigrationFile]:
    base = Path(migrations_dir)
    if not base.is_dir():
        raise RuntimeError(f"Migrations directory not found: {migrations_dir}")
    found: list[MigrationFile] = []
    for p in sorted(base.iterdir()):
        m = MIGRATION_RE.match(p.name)
        if p.is_file() and m:
            found.append(MigrationFile(version=m.group(1), name=m.group(2), path=p))
    return found


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str) -> list[str]:
    """Apply pending migrations in version order; returns the versions applied now."""
    _ensure_migration_table(conn)
    applied = _load_applied(conn)
    done: list[str] = []

    for mig in discover_migrations(migrations_dir):
        checksum = _checksum_file(mig.path)
        existing = applied.get(mig.version)
        if existing is not None:
            old_name, old_checksum, _applied_at = existing
            if (old_name, old_checksum) != (mig.name, checksum):
                raise RuntimeError(
                    f"Migration {mig.version} was applied as {old_name} with different content; "
                    f"refusing to run {mig.label}"
                )
            continue

        print(f"[DB] Applying migration {mig.label}")
        RUNNERS[mig.path.suffix.lstrip(".")](conn, mig.path)
        conn.execute(
            "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
            (mig.version, mig.name, checksum, _utc_now_iso()),
        )
        conn.commit()
        done.append(mig.version)

    return done


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 200) -> list[tuple[str, str, str]]:
    cur = conn.cursor()
    try:
        cur.execute(
            """
            SELECT version, name, applied_at_utc
            FROM schema_migrations
            ORDER BY version DESC
            LIMIT ?
            """,
            (max(1, min(int(limit), 500)),),
        )
        return [tuple(r) for r in cur.fetchall()]
    except sqlite3.OperationalError:
        return []


def default_migrations_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "migrations")


def init_db(db_path: str, migrations_dir: str | None = None) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    cur = conn.cursor()
    if db_path != ":memory:":
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA synchronous=NORMAL;")
    cur.execute("PRAGMA foreign_keys=ON;")
    applied = apply_sqlite_migrations(conn, migrations_dir or default_migrations_dir())
    if applied:
        print(f"[DB] applied {len(applied)} migration(s): {', '.join(applied)}")
    conn.commit()
    return conn
