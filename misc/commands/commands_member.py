from __future__ import annotations

from discord.ext import commands
from members.store import MemberRole
from misc.commands.arg_parsing import page_footer
from misc.commands.arg_parsing import parse_kv
from misc.commands.arg_parsing import parse_page_args
from misc.commands.arg_parsing import parse_user_token
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.common import MANAGER_ONLY
from misc.commands.common import format_member_line
from misc.commands.common import resolve_member
from misc.errors import OctobotError


# option key -> member field
MEMBER_OPTION_FIELDS = {
    "name": "name",
    "trello": "trello_id",
    "card": "trello_report_card_id",
    "discord": "discord_id",
}


def build_member_patch(options: dict[str, str]) -> dict:
    patch: dict = {}
    for key, value in options.items():
        if key == "role":
            patch["role"] = MemberRole.parse(value)
            continue
        field = MEMBER_OPTION_FIELDS.get(key)
        if field is None:
            raise ValueError(f"Unknown option `{key}`")
        if field == "discord_id":
            discord_id = parse_user_token(value)
            if discord_id is None:
                raise ValueError(f"`{value}` is not a Discord user")
            value = discord_id
        patch[field] = value or None
    return patch


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="member.add")
    @commands.guild_only()
    async def member_add(ctx: commands.Context, *, raw: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        positional, options = parse_kv(raw)
        usage = "Usage: `!member.add <@user> [name=..] [trello=..] [card=..] [email=..] [apprentice]`"
        if not positional:
            await ctx.send(usage)
            return
        discord_id = parse_user_token(positional[0])
        if discord_id is None:
            await ctx.send(usage)
            return

        name = options.pop("name", "")
        if not name:
            guild_member = ctx.guild.get_member(int(discord_id)) if ctx.guild else None
            name = guild_member.display_name if guild_member else discord_id
        role = MemberRole.APPRENTICE if "apprentice" in [p.lower() for p in positional[1:]] else MemberRole.MEMBER

        try:
            change = await deps.members.add(
                name=name,
                discord_id=discord_id,
                trello_id=options.get("trello") or None,
                trello_report_card_id=options.get("card") or None,
                role=role,
                email=options.get("email") or None,
            )
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        m = change.member
        await deps.send_chunked(ctx.channel, change.render(f"Added **{m.name}** as {m.role.label} (`{m.id}`)."))

    @bot.command(name="member.update")
    @commands.guild_only()
    async def member_update(ctx: commands.Context, token: str = "", *, raw: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        _positional, options = parse_kv(raw)
        if not token or not options:
            await ctx.send("Usage: `!member.update <member> [name=..] [trello=..] [card=..] [discord=..] [role=..]`")
            return
        try:
            patch = build_member_patch(options)
            member = await resolve_member(deps.members, token)
            change = await deps.members.update(member.id, patch)
        except (ValueError, OctobotError) as e:
            await ctx.send(f"Error: {e}")
            return
        await deps.send_chunked(ctx.channel, change.render(f"Updated {format_member_line(change.member)}"))

    @bot.command(name="member.remove")
    @commands.guild_only()
    async def member_remove(ctx: commands.Context, token: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        if not token:
            await ctx.send("Usage: `!member.remove <member>`")
            return
        try:
            member = await resolve_member(deps.members, token)
            change = await deps.members.soft_delete(member.id)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await deps.send_chunked(ctx.channel, change.render(f"**{member.name}** is now an ex-member."))

    @bot.command(name="member.purge")
    @commands.guild_only()
    async def member_purge(ctx: commands.Context, member_id: str = ""):
        if not gates.user_is_manager(ctx.author):
            await ctx.send(MANAGER_ONLY)
            return
        if not member_id:
            await ctx.send("Usage: `!member.purge <member_id>` (removes the member with their reports and attendance)")
            return
        try:
            member = await resolve_member(deps.members, member_id)
            await deps.members.hard_delete(member.id)
        except OctobotError as e:
            await ctx.send(f"Error: {e}")
            return
        await ctx.send(f"Purged **{member.name}** (`{member.id}`).")

    @bot.command(name="member.list")
    @commands.guild_only()
    async def member_list(ctx: commands.Context, *, raw: str = ""):
        if not (gates.user_is_member(ctx.author) or gates.user_is_manager(ctx.author)):
            return
        positional, options = parse_kv(raw)
        page, size, _rest = parse_page_args(positional, default_size=deps.page_size, max_size=deps.max_page_size)
        role = None
        if options.get("role"):
            try:
                role = MemberRole.parse(options["role"])
            except ValueError as e:
                await ctx.send(f"Error: {e}")
                return
        members, total_pages = await deps.members.list(page=page, page_size=size, role=role, include_ex=False)
        if not members:
            await ctx.send("No members found.")
            return
        lines = [format_member_line(m) for m in members]
        lines.append(page_footer(page, total_pages))
        await deps.send_chunked(ctx.channel, "\n".join(lines))
