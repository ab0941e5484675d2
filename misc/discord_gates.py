from __future__ import annotations

import discord


def user_is_manager(member, manager_role_name: str) -> bool:
    if not isinstance(member, discord.Member):
        return False
    perms = getattr(member, "guild_permissions", None)
    if perms is not None and perms.administrator:
        return True
    wanted = (manager_role_name or "").strip().lower()
    if not wanted:
        return False
    return any(role.name.lower() == wanted for role in member.roles)


def user_has_any_role(member, role_ids: set[int]) -> bool:
    if not isinstance(member, discord.Member):
        return False
    ids = {int(r) for r in role_ids if r}
    return any(int(role.id) in ids for role in member.roles)
