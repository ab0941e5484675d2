from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from members.store import ActivityBucket
from members.store import Member
from members.store import MemberRole
from members.store import delete_member_sync
from members.store import fetch_member_by_discord_id_sync
from members.store import fetch_member_by_trello_id_sync
from members.store import fetch_member_sync
from members.store import fetch_members_by_ids_sync
from members.store import insert_member_sync
from members.store import latest_attended_end_sync
from members.store import latest_report_date_sync
from members.store import list_member_ids_sync
from members.store import list_members_sync
from members.store import set_last_activity_if_newer_sync
from members.store import update_member_sync
from misc.errors import DuplicateMember
from misc.errors import ExternalServiceError
from misc.errors import NotFoundError


@dataclass(slots=True)
class MemberChange:
    member: Member
    warnings: list[str] = field(default_factory=list)

    def render(self, headline: str) -> str:
        if not self.warnings:
            return headline
        lines = [headline, "Warnings:"]
        lines.extend(f"- {w}" for w in self.warnings)
        return "\n".join(lines)


class MemberDirectory:
    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        role_sync=None,
        wiki=None,
        timezone_name: str = "UTC",
        inactivity_days: int = 30,
        now_func: Callable[[], datetime] | None = None,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.role_sync = role_sync
        self.wiki = wiki
        self.timezone_name = (timezone_name or "UTC").strip() or "UTC"
        self.inactivity_days = max(1, int(inactivity_days))
        self._now = now_func or (lambda: datetime.now(timezone.utc))

    def _tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone_name)
        except Exception:
            return ZoneInfo("UTC")

    def today(self) -> date:
        return self._now().astimezone(self._tzinfo()).date()

    def local_date(self, utc_iso: str) -> date:
        return datetime.fromisoformat(utc_iso).astimezone(self._tzinfo()).date()

    def active_since(self) -> date:
        return self.today() - timedelta(days=self.inactivity_days)

    # ---- lookups ----

    async def get(self, member_id: str) -> Member:
        async with self.db_lock:
            member = await asyncio.to_thread(fetch_member_sync, self.db_conn, str(member_id))
        if member is None:
            raise NotFoundError("Member", member_id)
        return member

    async def get_by_discord_id(self, discord_id: str) -> Member | None:
        async with self.db_lock:
            return await asyncio.to_thread(fetch_member_by_discord_id_sync, self.db_conn, str(discord_id))

    async def require_by_discord_id(self, discord_id: str) -> Member:
        member = await self.get_by_discord_id(discord_id)
        if member is None:
            raise NotFoundError("Member with Discord id", discord_id)
        return member

    async def get_many(self, member_ids: list[str]) -> dict[str, Member]:
        async with self.db_lock:
            return await asyncio.to_thread(fetch_members_by_ids_sync, self.db_conn, list(member_ids))

    async def _check_duplicates(self, *, discord_id: str | None, trello_id: str | None, exclude_id: str | None) -> None:
        async with self.db_lock:
            if discord_id:
                hit = await asyncio.to_thread(fetch_member_by_discord_id_sync, self.db_conn, discord_id)
                if hit is not None and hit.id != exclude_id:
                    raise DuplicateMember("discord_id", discord_id)
            if trello_id:
                hit = await asyncio.to_thread(fetch_member_by_trello_id_sync, self.db_conn, trello_id)
                if hit is not None and hit.id != exclude_id:
                    raise DuplicateMember("trello_id", trello_id)

    # ---- external sync ----

    async def _sync_roles(
        self,
        member: Member,
        *,
        old_role: MemberRole | None,
        new_role: MemberRole | None,
        warnings: list[str],
    ) -> None:
        if self.role_sync is not None and member.discord_id:
            try:
                if old_role is not None:
                    await self.role_sync.remove_role(member.discord_id, old_role)
                if new_role is not None:
                    await self.role_sync.add_role(member.discord_id, new_role)
            except ExternalServiceError as e:
                print(f"[Members] role sync failed for {member.id}: {e}")
                warnings.append(str(e))

        if self.wiki is not None and member.wiki_id is not None:
            try:
                old_group = self.wiki.group_for_role(old_role) if old_role is not None else None
                new_group = self.wiki.group_for_role(new_role) if new_role is not None else None
                if old_group:
                    await self.wiki.unassign_group(member.wiki_id, old_group)
                if new_group:
                    await self.wiki.assign_group(member.wiki_id, new_group)
            except ExternalServiceError as e:
                print(f"[Members] wiki sync failed for {member.id}: {e}")
                warnings.append(str(e))

    # ---- mutations ----

    async def add(
        self,
        *,
        name: str,
        discord_id: str | None = None,
        trello_id: str | None = None,
        trello_report_card_id: str | None = None,
        role: MemberRole = MemberRole.MEMBER,
        email: str | None = None,
    ) -> MemberChange:
        await self._check_duplicates(discord_id=discord_id, trello_id=trello_id, exclude_id=None)
        async with self.db_lock:
            try:
                member = await asyncio.to_thread(
                    insert_member_sync,
                    self.db_conn,
                    name=name,
                    discord_id=discord_id,
                    trello_id=trello_id,
                    trello_report_card_id=trello_report_card_id,
                    role=role,
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateMember("discord_id/trello_id", discord_id or trello_id or "?") from e
        print(f"[Members] added {member.name} ({member.id}) role={member.role.label}")

        change = MemberChange(member=member)
        if email and self.wiki is not None and self.wiki.enabled:
            try:
                wiki_id = await self.wiki.find_or_create_user(email, name, self.wiki.group_for_role(role))
            except ExternalServiceError as e:
                print(f"[Members] wiki account for {member.id} failed: {e}")
                change.warnings.append(str(e))
                wiki_id = None
            if wiki_id is not None:
                async with self.db_lock:
                    change.member = await asyncio.to_thread(
                        update_member_sync, self.db_conn, member.id, {"wiki_id": wiki_id}
                    )

        await self._sync_roles(change.member, old_role=None, new_role=role, warnings=change.warnings)
        return change

    async def soft_delete(self, member_id: str) -> MemberChange:
        member = await self.get(member_id)
        change = MemberChange(member=member)
        if member.role == MemberRole.EX_MEMBER:
            return change
        await self._sync_roles(member, old_role=member.role, new_role=None, warnings=change.warnings)
        patch = {
            "role": MemberRole.EX_MEMBER,
            "discord_id": None,
            "trello_id": None,
            "trello_report_card_id": None,
            "wiki_id": None,
        }
        async with self.db_lock:
            change.member = await asyncio.to_thread(update_member_sync, self.db_conn, member.id, patch)
        print(f"[Members] {member.name} ({member.id}) is now an ex-member")
        return change

    async def hard_delete(self, member_id: str) -> int:
        async with self.db_lock:
            deleted = await asyncio.to_thread(delete_member_sync, self.db_conn, str(member_id))
        if deleted == 0:
            raise NotFoundError("Member", member_id)
        print(f"[Members] purged {member_id}")
        return deleted

    async def update(self, member_id: str, patch: dict[str, Any]) -> MemberChange:
        member = await self.get(member_id)
        await self._check_duplicates(
            discord_id=patch.get("discord_id"),
            trello_id=patch.get("trello_id"),
            exclude_id=member.id,
        )
        async with self.db_lock:
            try:
                updated = await asyncio.to_thread(update_member_sync, self.db_conn, member.id, dict(patch))
            except sqlite3.IntegrityError as e:
                raise DuplicateMember("discord_id/trello_id", str(patch.get("discord_id") or patch.get("trello_id"))) from e
        change = MemberChange(member=updated)
        new_role = patch.get("role")
        if new_role is not None and MemberRole(new_role) != member.role:
            await self._sync_roles(
                updated,
                old_role=member.role if member.role != MemberRole.EX_MEMBER else None,
                new_role=MemberRole(new_role) if new_role != MemberRole.EX_MEMBER else None,
                warnings=change.warnings,
            )
        return change

    async def list(
        self,
        *,
        page: int = 1,
        page_size: int = 10,
        role: MemberRole | None = None,
        bucket: ActivityBucket | None = None,
        include_ex: bool = True,
    ) -> tuple[list[Member], int]:
        exclude = None if include_ex or role is not None else MemberRole.EX_MEMBER
        async with self.db_lock:
            return await asyncio.to_thread(
                list_members_sync,
                self.db_conn,
                page=page,
                page_size=page_size,
                role=role,
                exclude_role=exclude,
                bucket=bucket,
                active_since=self.active_since() if bucket is not None else None,
            )

    # ---- activity ----

    async def update_activity_if_newer(self, member_id: str, day: date) -> bool:
        async with self.db_lock:
            return await asyncio.to_thread(set_last_activity_if_newer_sync, self.db_conn, str(member_id), day)

    async def refresh_activity(self, member_id: str) -> date | None:
        member = await self.get(member_id)
        async with self.db_lock:
            report_day = await asyncio.to_thread(latest_report_date_sync, self.db_conn, member.id)
            meeting_end = await asyncio.to_thread(latest_attended_end_sync, self.db_conn, member.id)
        candidates = [d for d in (report_day, self.local_date(meeting_end) if meeting_end else None) if d]
        if not candidates:
            return member.last_activity
        latest = max(candidates)
        if latest != member.last_activity:
            async with self.db_lock:
                await asyncio.to_thread(update_member_sync, self.db_conn, member.id, {"last_activity": latest})
        return latest

    async def refresh_all(self) -> int:
        async with self.db_lock:
            ids = await asyncio.to_thread(list_member_ids_sync, self.db_conn)
        changed = 0
        for member_id in ids:
            before = (await self.get(member_id)).last_activity
            after = await self.refresh_activity(member_id)
            if after != before:
                changed += 1
        print(f"[Activity] refreshed {len(ids)} member(s), {changed} changed")
        return changed
