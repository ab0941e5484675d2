from __future__ import annotations

import discord

from members.store import MemberRole
from misc.errors import ExternalServiceError


class DiscordRoleSync:
    """Adds/removes the guild role that matches a member's MemberRole."""

    def __init__(self, *, bot, server_id: int, member_role_id: int, apprentice_role_id: int) -> None:
        self.bot = bot
        self.server_id = int(server_id or 0)
        self.member_role_id = int(member_role_id or 0)
        self.apprentice_role_id = int(apprentice_role_id or 0)

    def role_id_for(self, role: MemberRole) -> int | None:
        if role == MemberRole.MEMBER:
            return self.member_role_id or None
        if role == MemberRole.APPRENTICE:
            return self.apprentice_role_id or None
        return None

    async def _guild_member(self, discord_id: str) -> discord.Member:
        guild = self.bot.get_guild(self.server_id)
        if guild is None:
            raise ExternalServiceError("discord", f"guild {self.server_id} unavailable")
        member = guild.get_member(int(discord_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(discord_id))
        except discord.HTTPException as e:
            raise ExternalServiceError("discord", f"cannot fetch user {discord_id}: {e}") from e

    async def add_role(self, discord_id: str, role: MemberRole) -> None:
        role_id = self.role_id_for(role)
        if role_id is None:
            return
        member = await self._guild_member(discord_id)
        try:
            await member.add_roles(discord.Object(id=role_id), reason="octobot role sync")
        except discord.HTTPException as e:
            raise ExternalServiceError("discord", f"cannot add role {role_id}: {e}") from e

    async def remove_role(self, discord_id: str, role: MemberRole) -> None:
        role_id = self.role_id_for(role)
        if role_id is None:
            return
        member = await self._guild_member(discord_id)
        try:
            await member.remove_roles(discord.Object(id=role_id), reason="octobot role sync")
        except discord.HTTPException as e:
            raise ExternalServiceError("discord", f"cannot remove role {role_id}: {e}") from e
