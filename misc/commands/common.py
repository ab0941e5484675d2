from __future__ import annotations

from members.store import Member
from misc.commands.arg_parsing import parse_user_token
from misc.discord_timestamps import format_discord_timestamp
from misc.errors import NotFoundError

MANAGER_ONLY = "Only managers can do that."


async def resolve_member(members, token: str) -> Member:
    """Accepts a user mention, a raw Discord id, or a member id."""
    token = (token or "").strip()
    if not token:
        raise NotFoundError("Member", "<empty>")
    discord_id = parse_user_token(token)
    if discord_id is not None:
        member = await members.get_by_discord_id(discord_id)
        if member is not None:
            return member
        if token.isdigit():
            return await members.get(token)
        raise NotFoundError("Member with Discord id", discord_id)
    return await members.get(token)


def format_member_line(member: Member) -> str:
    last = member.last_activity.isoformat() if member.last_activity else "never"
    who = f" {member.mention()}" if member.discord_id else ""
    return f"`{member.id}` **{member.name}**{who} [{member.role.label}] last activity: {last}"


def format_meeting_line(meeting) -> str:
    when = format_discord_timestamp(meeting.start_date, "f")
    state = "ended" if meeting.end_date is not None else "open"
    return f"`{meeting.id}` {when} channel <#{meeting.channel_id}> ({state}) summary `{meeting.summary_id}`"
