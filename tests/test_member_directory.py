from __future__ import annotations

import asyncio
import unittest
from datetime import date
from datetime import datetime
from datetime import timezone

from db.migrate import init_db
from meetings.store import create_meeting_sync
from meetings.store import insert_attendance_sync
from meetings.store import update_meeting_sync
from members.service import MemberDirectory
from members.store import ActivityBucket
from members.store import MemberRole
from misc.errors import DuplicateMember
from misc.errors import ExternalServiceError
from misc.errors import NotFoundError
from reports.store import insert_report_sync


NOW = datetime(2024, 2, 10, 12, 0, tzinfo=timezone.utc)


class FakeRoleSync:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str, MemberRole]] = []

    async def add_role(self, discord_id, role):
        if self.fail:
            raise ExternalServiceError("discord", "missing permissions")
        self.calls.append(("add", discord_id, role))

    async def remove_role(self, discord_id, role):
        if self.fail:
            raise ExternalServiceError("discord", "missing permissions")
        self.calls.append(("remove", discord_id, role))


class FakeWiki:
    enabled = True

    def __init__(self):
        self.calls: list[tuple] = []

    def group_for_role(self, role):
        return {MemberRole.MEMBER: 3, MemberRole.APPRENTICE: 4}.get(role)

    async def find_or_create_user(self, email, name, group_id=None):
        self.calls.append(("find_or_create", email, group_id))
        return 77

    async def assign_group(self, wiki_id, group_id):
        self.calls.append(("assign", wiki_id, group_id))

    async def unassign_group(self, wiki_id, group_id):
        self.calls.append(("unassign", wiki_id, group_id))


class MemberDirectoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = init_db(":memory:")
        self.role_sync = FakeRoleSync()
        self.wiki = FakeWiki()
        self.directory = MemberDirectory(
            db_lock=asyncio.Lock(),
            db_conn=self.conn,
            role_sync=self.role_sync,
            wiki=self.wiki,
            timezone_name="UTC",
            inactivity_days=30,
            now_func=lambda: NOW,
        )

    async def asyncTearDown(self):
        self.conn.close()

    async def test_add_syncs_role_and_wiki_account(self):
        change = await self.directory.add(name="Alice", discord_id="1001", email="alice@example.org")
        self.assertEqual(change.warnings, [])
        self.assertEqual(change.member.wiki_id, 77)
        self.assertEqual(self.role_sync.calls, [("add", "1001", MemberRole.MEMBER)])
        self.assertIn(("find_or_create", "alice@example.org", 3), self.wiki.calls)
        self.assertIn(("assign", 77, 3), self.wiki.calls)

    async def test_duplicate_identities_are_rejected(self):
        await self.directory.add(name="Alice", discord_id="1001", trello_id="t1")
        with self.assertRaises(DuplicateMember):
            await self.directory.add(name="Alice again", discord_id="1001")
        with self.assertRaises(DuplicateMember):
            await self.directory.add(name="Other", trello_id="t1")

    async def test_role_sync_failure_becomes_warning(self):
        self.directory.role_sync = FakeRoleSync(fail=True)
        change = await self.directory.add(name="Bob", discord_id="1002")
        self.assertEqual(change.member.name, "Bob")
        self.assertEqual(len(change.warnings), 1)
        self.assertIn("missing permissions", change.render("Added Bob."))

    async def test_soft_delete_clears_identities(self):
        alice = (await self.directory.add(name="Alice", discord_id="1001", trello_id="t1")).member
        change = await self.directory.soft_delete(alice.id)
        self.assertEqual(change.member.role, MemberRole.EX_MEMBER)
        self.assertIsNone(change.member.discord_id)
        self.assertIsNone(change.member.trello_id)
        self.assertIn(("remove", "1001", MemberRole.MEMBER), self.role_sync.calls)
        # the identity is free again
        await self.directory.add(name="New Alice", discord_id="1001")

    async def test_hard_delete_removes_row(self):
        alice = (await self.directory.add(name="Alice")).member
        await self.directory.hard_delete(alice.id)
        with self.assertRaises(NotFoundError):
            await self.directory.get(alice.id)
        with self.assertRaises(NotFoundError):
            await self.directory.hard_delete(alice.id)

    async def test_update_role_swaps_discord_roles(self):
        alice = (await self.directory.add(name="Alice", discord_id="1001", role=MemberRole.APPRENTICE)).member
        self.role_sync.calls.clear()
        change = await self.directory.update(alice.id, {"role": MemberRole.MEMBER, "name": "Alice B"})
        self.assertEqual(change.member.name, "Alice B")
        self.assertEqual(
            self.role_sync.calls,
            [("remove", "1001", MemberRole.APPRENTICE), ("add", "1001", MemberRole.MEMBER)],
        )

    async def test_list_orders_by_name_and_filters(self):
        for name, role in (("carol", MemberRole.MEMBER), ("Alice", MemberRole.APPRENTICE), ("bob", MemberRole.MEMBER)):
            await self.directory.add(name=name, role=role)
        gone = (await self.directory.add(name="Dave")).member
        await self.directory.soft_delete(gone.id)

        everyone, pages = await self.directory.list(page=1, page_size=10)
        self.assertEqual([m.name for m in everyone], ["Alice", "bob", "carol", "Dave"])
        self.assertEqual(pages, 1)

        current, _ = await self.directory.list(include_ex=False)
        self.assertEqual([m.name for m in current], ["Alice", "bob", "carol"])

        apprentices, _ = await self.directory.list(role=MemberRole.APPRENTICE)
        self.assertEqual([m.name for m in apprentices], ["Alice"])

        page2, pages = await self.directory.list(page=2, page_size=3)
        self.assertEqual([m.name for m in page2], ["Dave"])
        self.assertEqual(pages, 2)

    async def test_activity_buckets(self):
        fresh = (await self.directory.add(name="Fresh")).member
        stale = (await self.directory.add(name="Stale")).member
        await self.directory.add(name="Never")
        await self.directory.update_activity_if_newer(fresh.id, date(2024, 2, 1))
        await self.directory.update_activity_if_newer(stale.id, date(2023, 12, 1))

        active, _ = await self.directory.list(bucket=ActivityBucket.ACTIVE)
        inactive, _ = await self.directory.list(bucket=ActivityBucket.INACTIVE)
        self.assertEqual([m.name for m in active], ["Fresh"])
        self.assertEqual([m.name for m in inactive], ["Never", "Stale"])

    async def test_update_activity_only_moves_forward(self):
        alice = (await self.directory.add(name="Alice")).member
        self.assertTrue(await self.directory.update_activity_if_newer(alice.id, date(2024, 2, 1)))
        self.assertFalse(await self.directory.update_activity_if_newer(alice.id, date(2024, 1, 1)))
        self.assertFalse(await self.directory.update_activity_if_newer(alice.id, date(2024, 2, 1)))
        self.assertEqual((await self.directory.get(alice.id)).last_activity, date(2024, 2, 1))

    async def test_refresh_activity_takes_latest_of_reports_and_meetings(self):
        alice = (await self.directory.add(name="Alice")).member
        insert_report_sync(self.conn, member_id=alice.id, content="r", create_date=date(2024, 1, 10))
        meeting = create_meeting_sync(
            self.conn,
            start_date=datetime(2024, 2, 1, 18, 0, tzinfo=timezone.utc),
            channel_id="42",
            scheduled_cron="0 0 18 * * THU",
            summary_date=date(2024, 2, 1),
        )
        insert_attendance_sync(self.conn, meeting_id=meeting.id, member_id=alice.id)
        update_meeting_sync(self.conn, meeting.id, end_date=datetime(2024, 2, 1, 19, 30, tzinfo=timezone.utc))
        # a stale value in either direction is corrected
        await self.directory.update(alice.id, {"last_activity": date(2024, 2, 5)})

        self.assertEqual(await self.directory.refresh_activity(alice.id), date(2024, 2, 1))
        self.assertEqual((await self.directory.get(alice.id)).last_activity, date(2024, 2, 1))

    async def test_refresh_activity_without_history_keeps_value(self):
        alice = (await self.directory.add(name="Alice")).member
        self.assertIsNone(await self.directory.refresh_activity(alice.id))

    async def test_refresh_all_counts_changes(self):
        alice = (await self.directory.add(name="Alice")).member
        await self.directory.add(name="Bob")
        insert_report_sync(self.conn, member_id=alice.id, content="r", create_date=date(2024, 1, 10))
        self.assertEqual(await self.directory.refresh_all(), 1)
        self.assertEqual(await self.directory.refresh_all(), 0)


if __name__ == "__main__":
    unittest.main()
