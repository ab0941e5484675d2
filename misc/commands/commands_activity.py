from __future__ import annotations

from discord.ext import commands
from members.store import ActivityBucket
from misc.commands.arg_parsing import page_footer
from misc.commands.arg_parsing import parse_page_args
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.common import MANAGER_ONLY
from misc.commands.common import format_member_line
from misc.commands.common import resolve_member
from misc.errors import OctobotError


BUCKETS = {"active": ActivityBucket.ACTIVE, "inactive": ActivityBucket.INACTIVE}


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="activity.refresh")
    @commands.guild_only()
    async def activity_refresh(ctx: commands.Context, token: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        try:
            if token:
                member = await resolve_member(deps.members, token)
                last = await deps.members.refresh_activity(member.id)
                await ctx.send(f"**{member.name}** last activity: {last.isoformat() if last else 'never'}")
                return
            changed = await deps.members.refresh_all()
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Activity refreshed, {changed} member(s) changed.")

    @bot.command(name="activity.list")
    @commands.guild_only()
    async def activity_list(ctx: commands.Context, *args: str):
        if not (gates.user_is_member(ctx.author) or gates.user_is_manager(ctx.author)):
            return
        tokens = list(args)
        bucket = ActivityBucket.INACTIVE
        if tokens and tokens[0].lower() in BUCKETS:
            bucket = BUCKETS[tokens.pop(0).lower()]
        page, size, _rest = parse_page_args(tokens, default_size=deps.page_size, max_size=deps.max_page_size)
        members, total_pages = await deps.members.list(page=page, page_size=size, bucket=bucket, include_ex=False)
        label = "Active" if bucket == ActivityBucket.ACTIVE else "Inactive"
        since = deps.members.active_since().isoformat()
        if not members:
            await ctx.send(f"No {label.lower()} members (threshold {since}).")
            return
        lines = [f"**{label} members** (threshold {since})"]
        lines.extend(format_member_line(m) for m in members)
        lines.append(page_footer(page, total_pages))
        await deps.send_chunked(ctx.channel, "\n".join(lines))
