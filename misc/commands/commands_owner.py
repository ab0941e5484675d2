from __future__ import annotations

import asyncio

from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.common import MANAGER_ONLY


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="dbmigrations")
    async def cmd_dbmigrations(ctx: commands.Context, limit: int = 30):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return

        lim = max(1, min(int(limit or 30), 200))
        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.list_schema_migrations_sync, deps.db_conn, lim)

        if not rows:
            await ctx.send("No schema migrations found.")
            return

        lines = [f"Applied schema migrations (latest {len(rows)}):"]
        for version, name, applied_at in rows:
            lines.append(f"- {version}_{name} @ {applied_at}")

        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:1900] + "\n```")
