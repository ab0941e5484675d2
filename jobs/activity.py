from __future__ import annotations

import asyncio


async def activity_refresh_loop(
    *,
    member_directory,
    interval_hours: int = 24,
) -> None:
    while True:
        try:
            await member_directory.refresh_all()
        except Exception as e:
            print(f"[Activity] refresh loop error: {e}")
        await asyncio.sleep(max(1, int(interval_hours)) * 3600)
