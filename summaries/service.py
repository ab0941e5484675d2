from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

from meetings.store import fetch_meeting_by_summary_sync
from meetings.store import list_attendance_sync
from misc.errors import MessageCountMismatch
from misc.errors import NoSummaryMessages
from misc.errors import NotFoundError
from misc.errors import SummaryAlreadySent
from misc.text_chunks import chunk_text
from reports.store import attach_report_sync
from summaries.store import Summary
from summaries.store import fetch_summary_sync
from summaries.store import list_summaries_sync
from summaries.store import set_messages_sync
from summaries.store import set_note_sync


DATE_FORMAT = "%d.%m.%Y"


class SummaryCompiler:
    """Renders a meeting summary and keeps its posted messages in sync.

    A summary is posted once; later changes (a late report, an edited note)
    are applied by editing the same messages, which only works while the
    rendered text still chunks into the same number of messages.
    """

    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        reports,
        members,
        messenger,
        summary_channel_id: int,
        timezone_name: str = "UTC",
        chunk_func: Callable[[str], list[str]] = chunk_text,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.reports = reports
        self.members = members
        self.messenger = messenger
        self.summary_channel_id = int(summary_channel_id or 0)
        self.timezone_name = (timezone_name or "UTC").strip() or "UTC"
        self.chunk_func = chunk_func

    def _local_date(self, dt: datetime) -> date:
        try:
            tz = ZoneInfo(self.timezone_name)
        except Exception:
            tz = ZoneInfo("UTC")
        return dt.astimezone(tz).date()

    async def get(self, summary_id: str) -> Summary:
        async with self.db_lock:
            summary = await asyncio.to_thread(fetch_summary_sync, self.db_conn, str(summary_id))
        if summary is None:
            raise NotFoundError("Summary", summary_id)
        return summary

    async def list(self, *, page: int = 1, page_size: int = 10) -> tuple[list[Summary], int]:
        async with self.db_lock:
            return await asyncio.to_thread(list_summaries_sync, self.db_conn, page=page, page_size=page_size)

    async def set_note(self, summary_id: str, note: str) -> Summary:
        await self.get(summary_id)
        async with self.db_lock:
            return await asyncio.to_thread(set_note_sync, self.db_conn, str(summary_id), note)

    async def _meeting_context(self, summary: Summary) -> tuple[date, list[str]]:
        async with self.db_lock:
            meeting = await asyncio.to_thread(fetch_meeting_by_summary_sync, self.db_conn, summary.id)
            attendee_ids = (
                await asyncio.to_thread(list_attendance_sync, self.db_conn, meeting.id) if meeting else []
            )
        meeting_day = self._local_date(meeting.start_date) if meeting else summary.create_date
        members = await self.members.get_many(attendee_ids)
        names = [members[mid].name for mid in attendee_ids if mid in members]
        return meeting_day, names

    async def _compose(
        self, summary: Summary, note: str | None, *, include_unpublished: bool = True
    ) -> tuple[str, list[str]]:
        meeting_day, names = await self._meeting_context(summary)
        block = await self.reports.report_summary(
            summary.id, False, meeting_day, include_unpublished=include_unpublished
        )
        text = f"**Meeting report {meeting_day.strftime(DATE_FORMAT)}**\n\n"
        text += "**Present:** " + ", ".join(names)
        text += "\n\n**This week's reports:**\n"
        text += block.text
        text += "\n**Meeting note:**\n"
        text += summary.note if note is None else note
        return text, block.report_ids

    async def generate_summary(self, summary_id: str, note: str | None = None, publish: bool = False) -> str:
        summary = await self.get(summary_id)
        text, report_ids = await self._compose(summary, note)
        if publish:
            await self._publish(summary.id, report_ids)
        return text

    async def preview(self, summary_id: str, note: str | None = None) -> str:
        return await self.generate_summary(summary_id, note=note, publish=False)

    async def _publish(self, summary_id: str, report_ids: list[str]) -> None:
        await self.reports.publish(report_ids, summary_id)

    async def send_summary(
        self, summary_id: str, resend: bool = False, *, gather_unpublished: bool | None = None
    ) -> str:
        """Post the summary, or edit its posted messages when resend is set.

        A first send gathers the unpublished reports up to the meeting day and
        publishes them into this summary. A resend only re-renders the reports
        already tied to it unless gather_unpublished asks otherwise.
        """
        if gather_unpublished is None:
            gather_unpublished = not resend
        summary = await self.get(summary_id)
        text, report_ids = await self._compose(summary, None, include_unpublished=gather_unpublished)
        chunks = self.chunk_func(text)

        if resend:
            if not summary.messages_id:
                raise NoSummaryMessages(summary.id)
            if len(summary.messages_id) != len(chunks):
                raise MessageCountMismatch(len(summary.messages_id), len(chunks))
            for message_id, chunk in zip(summary.messages_id, chunks):
                await self.messenger.edit(self.summary_channel_id, message_id, chunk)
            print(f"[Summary] re-sent {summary.id} ({len(chunks)} message(s) edited)")
        else:
            if summary.messages_id:
                raise SummaryAlreadySent(summary.id)
            message_ids: list[str] = []
            for chunk in chunks:
                message_ids.append(str(await self.messenger.send(self.summary_channel_id, chunk)))
            async with self.db_lock:
                await asyncio.to_thread(set_messages_sync, self.db_conn, summary.id, message_ids)
            print(f"[Summary] sent {summary.id} as {len(message_ids)} message(s)")

        await self._publish(summary.id, report_ids)
        return text

    async def resend_if_sent(self, summary_id: str) -> bool:
        summary = await self.get(summary_id)
        if not summary.sent:
            return False
        await self.send_summary(summary.id, resend=True)
        return True

    async def attach_report(self, report_id: str, summary_id: str) -> bool:
        """Tie a report to a summary; a summary already posted is re-sent.

        Returns whether the posted summary was updated.
        """
        summary = await self.get(summary_id)
        report = await self.reports.get(report_id)
        async with self.db_lock:
            await asyncio.to_thread(
                attach_report_sync, self.db_conn, report.id, summary.id, published=summary.sent
            )
        if summary.sent:
            await self.send_summary(summary.id, resend=True)
            return True
        return False
