from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    meetings: Any
    members: Any


@dataclass(frozen=True)
class RuntimeBootDeps:
    activity_refresh_enabled: bool
    activity_loop_func: Callable
