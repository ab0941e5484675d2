from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    send_chunked: Callable | None = None
    page_size: int = 10
    max_page_size: int = 50

    # Services
    members: Any = None
    reports: Any = None
    summaries: Any = None
    meetings: Any = None

    db_lock: Any = None
    db_conn: Any = None
    list_schema_migrations_sync: Callable | None = None


@dataclass(frozen=True)
class CommandGates:
    user_is_manager: Callable[[Any], bool] = _default_false
    user_is_member: Callable[[Any], bool] = _default_false
