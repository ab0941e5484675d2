from __future__ import annotations

from discord.ext import commands
from misc.commands.arg_parsing import page_footer
from misc.commands.arg_parsing import parse_page_args
from misc.commands.arg_parsing import split_pipe
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.common import MANAGER_ONLY
from misc.errors import OctobotError


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="summary.list")
    @commands.guild_only()
    async def summary_list(ctx: commands.Context, *args: str):
        if not (gates.user_is_member(ctx.author) or gates.user_is_manager(ctx.author)):
            return
        page, size, _rest = parse_page_args(list(args), default_size=deps.page_size, max_size=deps.max_page_size)
        summaries, total_pages = await deps.summaries.list(page=page, page_size=size)
        if not summaries:
            await ctx.send("No summaries yet.")
            return
        lines = []
        for s in summaries:
            state = f"sent ({len(s.messages_id)} msg)" if s.sent else "not sent"
            note = (s.note[:60] + "...") if len(s.note) > 60 else s.note
            lines.append(f"`{s.id}` {s.create_date.isoformat()} {state}" + (f" note: {note}" if note else ""))
        lines.append(page_footer(page, total_pages))
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="summary.preview")
    @commands.guild_only()
    async def summary_preview(ctx: commands.Context, *, raw: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        summary_id, note = split_pipe(raw)
        try:
            if not summary_id:
                summary_id = (await deps.meetings.status()).summary_id
            text = await deps.summaries.preview(summary_id, note=note or None)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await deps.send_chunked(ctx.channel, text)

    @bot.command(name="summary.resend")
    @commands.guild_only()
    async def summary_resend(ctx: commands.Context, summary_id: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        if not summary_id:
            await ctx.send("Usage: `!summary.resend <summary_id>`")
            return
        try:
            await deps.summaries.send_summary(summary_id, resend=True)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Summary `{summary_id}` re-sent.")
