from __future__ import annotations

from discord.ext import commands
from misc.commands.arg_parsing import page_footer
from misc.commands.arg_parsing import parse_channel_id_token
from misc.commands.arg_parsing import parse_page_args
from misc.commands.arg_parsing import split_pipe
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.common import MANAGER_ONLY
from misc.commands.common import format_meeting_line
from misc.commands.common import resolve_member
from misc.errors import OctobotError


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    def require_manager(ctx: commands.Context) -> bool:
        return gates.user_is_manager(ctx.author)

    @bot.command(name="meeting.status")
    @commands.guild_only()
    async def meeting_status(ctx: commands.Context):
        try:
            view = await deps.meetings.status()
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await deps.send_chunked(ctx.channel, view.render())

    @bot.command(name="meeting.end")
    @commands.guild_only()
    async def meeting_end(ctx: commands.Context, *, note: str = ""):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        try:
            await deps.meetings.end_meeting(note.strip())
            view = await deps.meetings.status()
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Meeting ended and summary posted. Next meeting `{view.meeting_id}` is planned.")

    @bot.command(name="meeting.list")
    @commands.guild_only()
    async def meeting_list(ctx: commands.Context, *args: str):
        if not (gates.user_is_member(ctx.author) or require_manager(ctx)):
            return
        page, size, _rest = parse_page_args(list(args), default_size=deps.page_size, max_size=deps.max_page_size)
        meetings, total_pages = await deps.meetings.list_meetings(page=page, page_size=size)
        if not meetings:
            await ctx.send("No past meetings.")
            return
        lines = [format_meeting_line(m) for m in meetings]
        lines.append(page_footer(page, total_pages))
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="meeting.schedule")
    @commands.guild_only()
    async def meeting_schedule(ctx: commands.Context, *, cron: str = ""):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        if not cron.strip():
            await ctx.send("Usage: `!meeting.schedule <cron>` e.g. `!meeting.schedule 0 0 18 * * FRI`")
            return
        try:
            view = await deps.meetings.replan_schedule(cron.strip().strip("`"))
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await deps.send_chunked(ctx.channel, "Schedule updated.\n" + view.render())

    @bot.command(name="meeting.channel")
    @commands.guild_only()
    async def meeting_channel(ctx: commands.Context, token: str = ""):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        channel_id = parse_channel_id_token(token)
        if channel_id is None:
            await ctx.send("Usage: `!meeting.channel <#voice-channel>`")
            return
        try:
            view = await deps.meetings.replan_channel(channel_id)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await deps.send_chunked(ctx.channel, "Channel updated.\n" + view.render())

    @bot.command(name="meeting.skip")
    @commands.guild_only()
    async def meeting_skip(ctx: commands.Context):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        try:
            await deps.meetings.skip_next()
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send("The next meeting occurrence will be skipped.")

    @bot.command(name="meeting.note")
    @commands.guild_only()
    async def meeting_note(ctx: commands.Context, *, raw: str = ""):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        meeting_id, note = split_pipe(raw)
        if "|" not in raw:
            meeting_id, note = "", raw.strip()
        if not note:
            await ctx.send("Usage: `!meeting.note [meeting_id] | <note>`")
            return
        try:
            out = await deps.meetings.set_note(note, meeting_id or None)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(out)

    @bot.command(name="meeting.add")
    @commands.guild_only()
    async def meeting_add(ctx: commands.Context, token: str = "", meeting_id: str = ""):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        if not token:
            await ctx.send("Usage: `!meeting.add <member> [meeting_id]`")
            return
        try:
            member = await resolve_member(deps.members, token)
            out = await deps.meetings.add_member(member.id, meeting_id or None)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(out)

    @bot.command(name="meeting.remove")
    @commands.guild_only()
    async def meeting_remove(ctx: commands.Context, token: str = "", meeting_id: str = ""):
        if not require_manager(ctx):
            await ctx.send(MANAGER_ONLY)
            return
        if not token:
            await ctx.send("Usage: `!meeting.remove <member> [meeting_id]`")
            return
        try:
            member = await resolve_member(deps.members, token)
            out = await deps.meetings.remove_member(member.id, meeting_id or None)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(out)
