from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any

from members.store import Member
from misc.errors import NotFoundError
from reports.store import Report
from reports.store import delete_report_sync
from reports.store import fetch_by_summary_sync
from reports.store import fetch_report_sync
from reports.store import fetch_unpublished_sync
from reports.store import insert_report_sync
from reports.store import list_reports_sync
from reports.store import publish_reports_sync
from reports.store import update_report_sync


@dataclass(slots=True)
class ReportBlock:
    text: str
    report_ids: list[str]


def render_report_block(reports: list[Report], members: dict[str, Member]) -> str:
    """One `**Name:** a b` line per member; reports must already be grouped."""
    lines: list[str] = []
    last_member: str | None = None
    for report in reports:
        if report.member_id != last_member:
            member = members.get(report.member_id)
            name = member.name if member else report.member_id
            lines.append(f"**{name}:**")
            last_member = report.member_id
        lines[-1] += f" {report.content}"
    return "\n".join(lines)


class ReportLedger:
    def __init__(self, *, db_lock, db_conn, members) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.members = members

    async def get(self, report_id: str) -> Report:
        async with self.db_lock:
            report = await asyncio.to_thread(fetch_report_sync, self.db_conn, str(report_id))
        if report is None:
            raise NotFoundError("Report", report_id)
        return report

    async def insert(self, member_id: str, content: str) -> Report:
        member = await self.members.get(member_id)
        today = self.members.today()
        async with self.db_lock:
            report = await asyncio.to_thread(
                insert_report_sync,
                self.db_conn,
                member_id=member.id,
                content=content.strip(),
                create_date=today,
            )
        await self.members.update_activity_if_newer(member.id, today)
        print(f"[Reports] {member.name} added report {report.id}")
        return report

    async def update(self, report_id: str, patch: dict[str, Any]) -> Report:
        report = await self.get(report_id)
        target = None
        if "member_id" in patch:
            target = await self.members.get(patch["member_id"])
        async with self.db_lock:
            updated = await asyncio.to_thread(update_report_sync, self.db_conn, report.id, dict(patch))
        if target is not None:
            await self.members.update_activity_if_newer(target.id, report.create_date)
        return updated

    async def delete(self, report_id: str) -> int:
        async with self.db_lock:
            deleted = await asyncio.to_thread(delete_report_sync, self.db_conn, str(report_id))
        if deleted == 0:
            raise NotFoundError("Report", report_id)
        return deleted

    async def list(
        self,
        *,
        page: int = 1,
        page_size: int = 10,
        member_id: str | None = None,
        published: bool | None = None,
    ) -> tuple[list[Report], int]:
        async with self.db_lock:
            return await asyncio.to_thread(
                list_reports_sync,
                self.db_conn,
                page=page,
                page_size=page_size,
                member_id=member_id,
                published=published,
            )

    async def get_unpublished(self, cutoff: date) -> list[Report]:
        async with self.db_lock:
            return await asyncio.to_thread(fetch_unpublished_sync, self.db_conn, cutoff)

    async def get_by_summary(self, summary_id: str) -> list[Report]:
        async with self.db_lock:
            return await asyncio.to_thread(fetch_by_summary_sync, self.db_conn, str(summary_id))

    async def collect(
        self, summary_id: str | None, cutoff: date, *, include_unpublished: bool = True
    ) -> list[Report]:
        reports = await self.get_unpublished(cutoff) if include_unpublished else []
        if summary_id is not None:
            reports = await self.get_by_summary(summary_id) + reports
        seen: set[str] = set()
        unique: list[Report] = []
        for r in reports:
            if r.id in seen:
                continue
            seen.add(r.id)
            unique.append(r)
        # stable: within one member, keep chronological order
        unique.sort(key=lambda r: r.member_id)
        return unique

    async def publish(self, report_ids: list[str], summary_id: str) -> int:
        async with self.db_lock:
            count = await asyncio.to_thread(publish_reports_sync, self.db_conn, list(report_ids), summary_id)
        if count:
            print(f"[Reports] published {count} report(s) into summary {summary_id}")
        return count

    async def report_summary(
        self,
        summary_id: str | None,
        publish: bool,
        cutoff: date,
        *,
        include_unpublished: bool = True,
    ) -> ReportBlock:
        """Render the reports block for a summary.

        With include_unpublished=False only reports already tied to the
        summary are used, so re-rendering a posted summary never pulls in
        reports written after it.
        """
        reports = await self.collect(summary_id, cutoff, include_unpublished=include_unpublished)
        members = await self.members.get_many(sorted({r.member_id for r in reports}))
        text = render_report_block(reports, members)
        if publish and summary_id is not None:
            await self.publish([r.id for r in reports], summary_id)
        return ReportBlock(text=text, report_ids=[r.id for r in reports])
