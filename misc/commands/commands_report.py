from __future__ import annotations

from discord.ext import commands
from misc.commands.arg_parsing import page_footer
from misc.commands.arg_parsing import parse_page_args
from misc.commands.arg_parsing import split_pipe
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.common import MANAGER_ONLY
from misc.commands.common import resolve_member
from misc.errors import OctobotError


def format_report_line(report, member_name: str) -> str:
    state = f"published in `{report.summary_id}`" if report.published else "unpublished"
    return f"`{report.id}` {report.create_date.isoformat()} **{member_name}** ({state}): {report.content}"


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    async def owner_or_manager(ctx: commands.Context, report) -> bool:
        if gates.user_is_manager(ctx.author):
            return True
        author = await deps.members.get_by_discord_id(str(ctx.author.id))
        return author is not None and author.id == report.member_id

    @bot.command(name="report.add")
    @commands.guild_only()
    async def report_add(ctx: commands.Context, *, content: str = ""):
        if not content.strip():
            await ctx.send("Usage: `!report.add <what you did this week>`")
            return
        try:
            member = await deps.members.require_by_discord_id(str(ctx.author.id))
            report = await deps.reports.insert(member.id, content)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Report saved (`{report.id}`).")

    @bot.command(name="report.add_for")
    @commands.guild_only()
    async def report_add_for(ctx: commands.Context, token: str = "", *, content: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        if not token or not content.strip():
            await ctx.send("Usage: `!report.add_for <member> <content>`")
            return
        try:
            member = await resolve_member(deps.members, token)
            report = await deps.reports.insert(member.id, content)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Report for **{member.name}** saved (`{report.id}`).")

    @bot.command(name="report.attach")
    @commands.guild_only()
    async def report_attach(ctx: commands.Context, summary_id: str = "", *, raw: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        token, content = split_pipe(raw)
        if not summary_id or not token or not content:
            await ctx.send("Usage: `!report.attach <summary_id> <member> | <content>`")
            return
        try:
            await deps.summaries.get(summary_id)
            member = await resolve_member(deps.members, token)
            report = await deps.reports.insert(member.id, content)
            resent = await deps.summaries.attach_report(report.id, summary_id)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        out = f"Report for **{member.name}** added to summary `{summary_id}` (`{report.id}`)."
        if resent:
            out += " Posted summary updated."
        await ctx.send(out)

    @bot.command(name="report.update")
    @commands.guild_only()
    async def report_update(ctx: commands.Context, *, raw: str = ""):
        report_id, content = split_pipe(raw)
        if not report_id or not content:
            await ctx.send("Usage: `!report.update <report_id> | <new content>`")
            return
        try:
            report = await deps.reports.get(report_id)
            if not await owner_or_manager(ctx, report):
                await ctx.send("You can only edit your own reports.")
                return
            updated = await deps.reports.update(report.id, {"content": content})
            resent = False
            if updated.published and updated.summary_id:
                resent = await deps.summaries.resend_if_sent(updated.summary_id)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Report `{updated.id}` updated." + (" Posted summary updated." if resent else ""))

    @bot.command(name="report.move")
    @commands.guild_only()
    async def report_move(ctx: commands.Context, report_id: str = "", token: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        if not report_id or not token:
            await ctx.send("Usage: `!report.move <report_id> <member>`")
            return
        try:
            member = await resolve_member(deps.members, token)
            updated = await deps.reports.update(report_id, {"member_id": member.id})
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Report `{updated.id}` now belongs to **{member.name}**.")

    @bot.command(name="report.remove")
    @commands.guild_only()
    async def report_remove(ctx: commands.Context, report_id: str = ""):
        if not report_id:
            await ctx.send("Usage: `!report.remove <report_id>`")
            return
        try:
            report = await deps.reports.get(report_id)
            if not await owner_or_manager(ctx, report):
                await ctx.send("You can only remove your own reports.")
                return
            await deps.reports.delete(report.id)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Report `{report_id}` removed.")

    @bot.command(name="report.list")
    @commands.guild_only()
    async def report_list(ctx: commands.Context, *args: str):
        if not (gates.user_is_member(ctx.author) or gates.user_is_manager(ctx.author)):
            return
        page, size, rest = parse_page_args(list(args), default_size=deps.page_size, max_size=deps.max_page_size)
        published = None
        member_id = None
        try:
            for tok in rest:
                low = tok.lower()
                if low in ("published", "unpublished"):
                    published = low == "published"
                else:
                    member_id = (await resolve_member(deps.members, tok)).id
            reports, total_pages = await deps.reports.list(
                page=page, page_size=size, member_id=member_id, published=published
            )
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        if not reports:
            await ctx.send("No reports found.")
            return
        names = await deps.members.get_many(sorted({r.member_id for r in reports}))
        lines = [format_report_line(r, names[r.member_id].name if r.member_id in names else r.member_id) for r in reports]
        lines.append(page_footer(page, total_pages))
        await deps.send_chunked(ctx.channel, "\n".join(lines))
