from __future__ import annotations

import asyncio
import unittest
from datetime import date
from datetime import datetime
from datetime import timezone

from db.migrate import init_db
from meetings.store import create_meeting_sync
from meetings.store import insert_attendance_sync
from members.service import MemberDirectory
from misc.errors import MessageCountMismatch
from misc.errors import NoSummaryMessages
from misc.errors import SummaryAlreadySent
from misc.text_chunks import chunk_text
from reports.service import ReportLedger
from reports.store import insert_report_sync
from summaries.service import SummaryCompiler


NOW = datetime(2024, 3, 1, 19, 0, tzinfo=timezone.utc)
SUMMARY_CHANNEL = 555


class FakeMessenger:
    def __init__(self):
        self.sent: list[tuple[int, str]] = []
        self.edits: list[tuple[int, str, str]] = []

    async def send(self, channel_id, text):
        self.sent.append((channel_id, text))
        return str(9000 + len(self.sent))

    async def edit(self, channel_id, message_id, text):
        self.edits.append((channel_id, message_id, text))


class SummaryCompilerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = init_db(":memory:")
        lock = asyncio.Lock()
        self.members = MemberDirectory(db_lock=lock, db_conn=self.conn, now_func=lambda: NOW)
        self.reports = ReportLedger(db_lock=lock, db_conn=self.conn, members=self.members)
        self.messenger = FakeMessenger()
        self.chunk_limit = 2000
        self.compiler = SummaryCompiler(
            db_lock=lock,
            db_conn=self.conn,
            reports=self.reports,
            members=self.members,
            messenger=self.messenger,
            summary_channel_id=SUMMARY_CHANNEL,
            chunk_func=lambda text: chunk_text(text, self.chunk_limit),
        )
        self.alice = (await self.members.add(name="Alice")).member
        self.bob = (await self.members.add(name="Bob")).member
        self.meeting = create_meeting_sync(
            self.conn,
            start_date=datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc),
            channel_id="42",
            scheduled_cron="0 0 18 * * FRI",
            summary_date=date(2024, 3, 1),
        )
        # roster order is join order, not alphabetical
        insert_attendance_sync(self.conn, meeting_id=self.meeting.id, member_id=self.bob.id)
        insert_attendance_sync(self.conn, meeting_id=self.meeting.id, member_id=self.alice.id)
        self.summary_id = self.meeting.summary_id

    async def asyncTearDown(self):
        self.conn.close()

    async def test_generate_summary_layout(self):
        insert_report_sync(self.conn, member_id=self.alice.id, content="a1", create_date=date(2024, 2, 28))
        await self.compiler.set_note(self.summary_id, "Next week: demo day")
        text = await self.compiler.generate_summary(self.summary_id)
        self.assertEqual(
            text,
            "**Meeting report 01.03.2024**\n\n"
            "**Present:** Bob, Alice\n\n"
            "**This week's reports:**\n"
            "**Alice:** a1\n"
            "**Meeting note:**\n"
            "Next week: demo day",
        )

    async def test_preview_does_not_publish_or_send(self):
        insert_report_sync(self.conn, member_id=self.alice.id, content="a1", create_date=date(2024, 2, 28))
        text = await self.compiler.preview(self.summary_id, note="draft")
        self.assertTrue(text.endswith("draft"))
        self.assertEqual(self.messenger.sent, [])
        self.assertEqual(len(await self.reports.get_unpublished(date(2024, 3, 1))), 1)
        self.assertEqual((await self.compiler.get(self.summary_id)).note, "")

    async def test_first_send_records_ids_and_publishes(self):
        insert_report_sync(self.conn, member_id=self.alice.id, content="a1", create_date=date(2024, 2, 28))
        await self.compiler.send_summary(self.summary_id)
        self.assertEqual(len(self.messenger.sent), 1)
        self.assertEqual(self.messenger.sent[0][0], SUMMARY_CHANNEL)
        summary = await self.compiler.get(self.summary_id)
        self.assertEqual(summary.messages_id, ["9001"])
        self.assertEqual(await self.reports.get_unpublished(date(2024, 3, 1)), [])

        with self.assertRaises(SummaryAlreadySent):
            await self.compiler.send_summary(self.summary_id)

    async def test_long_summary_is_split_across_messages(self):
        self.chunk_limit = 60
        for i in range(5):
            insert_report_sync(self.conn, member_id=self.alice.id, content=f"report number {i}", create_date=date(2024, 2, 28))
        await self.compiler.send_summary(self.summary_id)
        self.assertGreater(len(self.messenger.sent), 1)
        self.assertTrue(all(len(text) <= 60 for _, text in self.messenger.sent))

    async def test_resend_edits_in_place(self):
        await self.compiler.send_summary(self.summary_id)
        await self.compiler.set_note(self.summary_id, "edited")
        await self.compiler.send_summary(self.summary_id, resend=True)
        self.assertEqual(len(self.messenger.sent), 1)
        self.assertEqual(len(self.messenger.edits), 1)
        channel_id, message_id, text = self.messenger.edits[0]
        self.assertEqual((channel_id, message_id), (SUMMARY_CHANNEL, "9001"))
        self.assertTrue(text.endswith("edited"))

    async def test_resend_keeps_newer_reports_for_the_next_summary(self):
        insert_report_sync(self.conn, member_id=self.alice.id, content="a1", create_date=date(2024, 2, 28))
        await self.compiler.send_summary(self.summary_id)
        newer = insert_report_sync(self.conn, member_id=self.bob.id, content="b1", create_date=date(2024, 3, 1))

        await self.compiler.set_note(self.summary_id, "edited")
        await self.compiler.send_summary(self.summary_id, resend=True)
        text = self.messenger.edits[0][2]
        self.assertIn("**Alice:** a1", text)
        self.assertNotIn("b1", text)
        self.assertEqual([r.id for r in await self.reports.get_unpublished(date(2024, 3, 1))], [newer.id])

    async def test_resend_without_messages_fails(self):
        with self.assertRaises(NoSummaryMessages):
            await self.compiler.send_summary(self.summary_id, resend=True)
        self.assertFalse(await self.compiler.resend_if_sent(self.summary_id))

    async def test_resend_with_different_chunk_count_fails_and_keeps_ids(self):
        self.chunk_limit = 80
        await self.compiler.send_summary(self.summary_id)
        sent_ids = (await self.compiler.get(self.summary_id)).messages_id
        await self.compiler.set_note(self.summary_id, "\n".join(f"a much longer note line {i}" for i in range(10)))
        with self.assertRaises(MessageCountMismatch):
            await self.compiler.send_summary(self.summary_id, resend=True)
        self.assertEqual((await self.compiler.get(self.summary_id)).messages_id, sent_ids)
        self.assertEqual(self.messenger.edits, [])

    async def test_attach_to_sent_summary_resends(self):
        await self.compiler.send_summary(self.summary_id)
        late = insert_report_sync(self.conn, member_id=self.bob.id, content="late one", create_date=date(2024, 3, 4))
        self.assertTrue(await self.compiler.attach_report(late.id, self.summary_id))
        self.assertEqual(len(self.messenger.edits), 1)
        self.assertIn("**Bob:** late one", self.messenger.edits[0][2])
        self.assertTrue((await self.reports.get(late.id)).published)

    async def test_attach_to_unsent_summary_only_tags(self):
        late = insert_report_sync(self.conn, member_id=self.bob.id, content="late one", create_date=date(2024, 3, 4))
        self.assertFalse(await self.compiler.attach_report(late.id, self.summary_id))
        report = await self.reports.get(late.id)
        self.assertEqual(report.summary_id, self.summary_id)
        self.assertFalse(report.published)
        self.assertIn("**Bob:** late one", await self.compiler.preview(self.summary_id))


if __name__ == "__main__":
    unittest.main()
