from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from meetings.rwlock import AsyncRWLock
from meetings.schedule import MeetingSchedule
from meetings.schedule import next_occurrence
from meetings.schedule import parse_schedule
from meetings.store import Meeting
from meetings.store import create_meeting_sync
from meetings.store import delete_attendance_sync
from meetings.store import fetch_current_meeting_sync
from meetings.store import fetch_meeting_sync
from meetings.store import insert_attendance_sync
from meetings.store import list_attendance_sync
from meetings.store import list_meetings_sync
from meetings.store import update_meeting_sync
from members.store import Member
from members.store import MemberRole
from misc.discord_timestamps import format_when
from misc.errors import AlreadyInMeeting
from misc.errors import InvalidChannel
from misc.errors import InvalidSchedule
from misc.errors import NoMeetingOngoing
from misc.errors import NotFoundError
from misc.errors import NotInMeeting
from misc.errors import OctobotError
from misc.errors import StateError


@dataclass(slots=True)
class MeetingStatus:
    meeting: Meeting
    schedule: MeetingSchedule
    # member_id -> Member, in the order they joined
    roster: dict[str, Member] = field(default_factory=dict)
    ongoing: bool = False
    skip: bool = False


@dataclass(frozen=True, slots=True)
class StatusView:
    ongoing: bool
    meeting_id: str
    summary_id: str
    start_date: datetime
    schedule: str
    channel_id: str
    roster: tuple[str, ...]
    skip_next: bool

    def render(self) -> str:
        state = "ongoing" if self.ongoing else "planned"
        lines = [
            f"Meeting `{self.meeting_id}` is **{state}**",
            f"{'Started' if self.ongoing else 'Starts'}: {format_when(self.start_date)}",
            f"Schedule: {self.schedule}",
            f"Channel: <#{self.channel_id}>",
            f"Present ({len(self.roster)}): {', '.join(self.roster) if self.roster else '-'}",
        ]
        if self.skip_next:
            lines.append("The next occurrence will be skipped.")
        return "\n".join(lines)


class MeetingLifecycleEngine:
    """Owns the current meeting and the task that waits for it to start.

    The persisted meeting row only knows whether it has ended; whether a
    not-ended meeting is still planned or already ongoing lives here and is
    re-derived from the start time on bootstrap.
    """

    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        members,
        summaries,
        voice,
        default_cron: str,
        default_channel_id: int,
        timezone_name: str = "UTC",
        now_func: Callable[[], datetime] | None = None,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_seconds: float = 60,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.members = members
        self.summaries = summaries
        self.voice = voice
        self.default_cron = default_cron
        self.default_channel_id = int(default_channel_id or 0)
        self.timezone_name = (timezone_name or "UTC").strip() or "UTC"
        self._now = now_func or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep_func
        self.retry_seconds = float(retry_seconds)

        self._lock = AsyncRWLock()
        self._status: MeetingStatus | None = None
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._ended = asyncio.Event()

    # ---- helpers ----

    def _tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone_name)
        except Exception:
            return ZoneInfo("UTC")

    def _local_date(self, dt: datetime) -> date:
        return dt.astimezone(self._tzinfo()).date()

    async def _db(self, fn, *args, **kwargs):
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)

    def _require(self) -> MeetingStatus:
        if self._status is None:
            raise StateError("Meeting engine has not been started")
        return self._status

    async def _create_meeting(self, schedule: MeetingSchedule, channel_id: str | int) -> Meeting:
        start = next_occurrence(schedule, self._now())
        meeting = await self._db(
            create_meeting_sync,
            start_date=start,
            channel_id=str(channel_id),
            scheduled_cron=schedule.expr,
            summary_date=self._local_date(start),
        )
        print(f"[Meeting] planned {meeting.id} for {start.isoformat()} ({schedule.expr})")
        return meeting

    async def _load_roster(self, meeting_id: str) -> dict[str, Member]:
        ids = await self._db(list_attendance_sync, meeting_id)
        by_id = await self.members.get_many(ids)
        return {mid: by_id[mid] for mid in ids if mid in by_id}

    async def get_meeting(self, meeting_id: str) -> Meeting:
        meeting = await self._db(fetch_meeting_sync, str(meeting_id))
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        return meeting

    # ---- lifecycle ----

    async def bootstrap(self) -> StatusView:
        async with self._lock.write():
            meeting = await self._db(fetch_current_meeting_sync)
            if meeting is None:
                schedule = parse_schedule(self.default_cron, self.timezone_name)
                meeting = await self._create_meeting(schedule, self.default_channel_id)
            else:
                try:
                    schedule = parse_schedule(meeting.scheduled_cron, self.timezone_name)
                except InvalidSchedule as e:
                    print(f"[Meeting] stored schedule of {meeting.id} unusable ({e}); using default")
                    schedule = parse_schedule(self.default_cron, self.timezone_name)
                    meeting = await self._db(
                        update_meeting_sync,
                        meeting.id,
                        start_date=next_occurrence(schedule, self._now()),
                        scheduled_cron=schedule.expr,
                    )

            self._status = MeetingStatus(
                meeting=meeting,
                schedule=schedule,
                roster=await self._load_roster(meeting.id),
            )
            if meeting.start_date <= self._now():
                # restarted mid-meeting
                self._status.ongoing = True
                self._ended.clear()
                await self._snapshot_locked(self._status)
            print(
                f"[Meeting] bootstrap: {meeting.id} "
                f"{'ongoing' if self._status.ongoing else 'planned'} start={meeting.start_date.isoformat()}"
            )
            self._arm_locked()
            return self._view(self._status)

    def _arm_locked(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._run(self._generation))

    async def shutdown(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._ended.set()

    async def _run(self, generation: int) -> None:
        while True:
            try:
                async with self._lock.read():
                    if generation != self._generation:
                        return
                    status = self._require()
                    ongoing = status.ongoing
                    start = status.meeting.start_date

                if not ongoing:
                    delay = (start - self._now()).total_seconds()
                    await self._sleep(max(0.0, delay))
                    async with self._lock.write():
                        if generation != self._generation:
                            return
                        status = self._require()
                        if not status.ongoing:
                            if status.meeting.start_date > self._now():
                                continue
                            if status.skip:
                                status.skip = False
                                start = next_occurrence(status.schedule, self._now())
                                status.meeting = await self._db(
                                    update_meeting_sync, status.meeting.id, start_date=start
                                )
                                print(f"[Meeting] skipped occurrence; {status.meeting.id} moved to {start.isoformat()}")
                                continue
                            status.ongoing = True
                            self._ended.clear()
                            print(f"[Meeting] {status.meeting.id} started")
                            await self._snapshot_locked(status)

                await self._ended.wait()
                self._ended.clear()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                print(f"[Meeting] wait loop error: {e}")
                await self._sleep(self.retry_seconds)

    async def _snapshot_locked(self, status: MeetingStatus) -> None:
        channel_id = status.meeting.channel_id
        try:
            occupants = await self.voice.occupants_of(int(channel_id))
        except OctobotError as e:
            print(f"[Meeting] snapshot of channel {channel_id} failed: {e}")
            return
        for discord_id in occupants:
            try:
                member = await self.members.get_by_discord_id(str(discord_id))
                if member is None or member.role == MemberRole.EX_MEMBER:
                    print(f"[Meeting] snapshot: user {discord_id} is not a member, skipped")
                    continue
                if member.id in status.roster:
                    continue
                await self._add_locked(status, member)
            except AlreadyInMeeting:
                continue
            except Exception as e:
                print(f"[Meeting] snapshot: {discord_id} skipped: {e}")
                continue
        print(f"[Meeting] snapshot of {channel_id}: {len(status.roster)} present")

    # ---- attendance ----

    async def _add_locked(self, status: MeetingStatus, member: Member) -> None:
        meeting = status.meeting
        await self._db(insert_attendance_sync, meeting_id=meeting.id, member_id=member.id, member_name=member.name)
        status.roster[member.id] = member
        if meeting.end_date is not None:
            await self.members.update_activity_if_newer(member.id, self._local_date(meeting.end_date))

    async def _resend_past(self, meeting: Meeting) -> str:
        try:
            if await self.summaries.resend_if_sent(meeting.summary_id):
                return " Summary updated."
        except OctobotError as e:
            return f" Summary not updated: {e}"
        return ""

    async def add_member(self, member_id: str, meeting_id: str | None = None) -> str:
        member = await self.members.get(member_id)
        async with self._lock.write():
            status = self._require()
            if meeting_id is None or str(meeting_id) == status.meeting.id:
                await self._add_locked(status, member)
                return f"{member.name} added to the meeting."

        meeting = await self.get_meeting(meeting_id)
        await self._db(insert_attendance_sync, meeting_id=meeting.id, member_id=member.id, member_name=member.name)
        if meeting.end_date is not None:
            await self.members.update_activity_if_newer(member.id, self._local_date(meeting.end_date))
        out = f"{member.name} added to meeting `{meeting.id}`."
        if meeting.end_date is not None:
            out += await self._resend_past(meeting)
        return out

    async def remove_member(self, member_id: str, meeting_id: str | None = None) -> str:
        member = await self.members.get(member_id)
        async with self._lock.write():
            status = self._require()
            if meeting_id is None or str(meeting_id) == status.meeting.id:
                deleted = await self._db(delete_attendance_sync, meeting_id=status.meeting.id, member_id=member.id)
                if deleted == 0:
                    raise NotInMeeting(member.name)
                status.roster.pop(member.id, None)
                return f"{member.name} removed from the meeting."

        meeting = await self.get_meeting(meeting_id)
        deleted = await self._db(delete_attendance_sync, meeting_id=meeting.id, member_id=member.id)
        if deleted == 0:
            raise NotInMeeting(member.name)
        out = f"{member.name} removed from meeting `{meeting.id}`."
        if meeting.end_date is not None:
            out += await self._resend_past(meeting)
        return out

    async def handle_voice_join(self, discord_id: str, channel_id: int | str) -> bool:
        member = await self.members.get_by_discord_id(str(discord_id))
        if member is None or member.role == MemberRole.EX_MEMBER:
            return False
        async with self._lock.write():
            status = self._status
            if status is None or not status.ongoing or str(channel_id) != status.meeting.channel_id:
                return False
            if member.id in status.roster:
                return False
            try:
                await self._add_locked(status, member)
            except AlreadyInMeeting:
                return False
        print(f"[Meeting] {member.name} joined {channel_id}")
        return True

    # ---- transitions ----

    async def end_meeting(self, note: str = "") -> str:
        async with self._lock.write():
            status = self._require()
            if not status.ongoing:
                raise NoMeetingOngoing()
            meeting = status.meeting
            if note:
                await self.summaries.set_note(meeting.summary_id, note)
            summary = await self.summaries.get(meeting.summary_id)
            # a previous attempt may have posted before failing
            text = await self.summaries.send_summary(
                meeting.summary_id, resend=summary.sent, gather_unpublished=True
            )

            ended_at = self._now()
            await self._db(update_meeting_sync, meeting.id, end_date=ended_at)
            day = self._local_date(ended_at)
            for member_id in status.roster:
                await self.members.update_activity_if_newer(member_id, day)

            next_meeting = await self._create_meeting(status.schedule, meeting.channel_id)
            self._status = MeetingStatus(
                meeting=next_meeting,
                schedule=status.schedule,
                skip=status.skip,
            )
            self._ended.set()
            print(f"[Meeting] {meeting.id} ended with {len(status.roster)} present")
            return text

    async def replan_schedule(self, cron: str) -> StatusView:
        schedule = parse_schedule(cron, self.timezone_name)
        async with self._lock.write():
            status = self._require()
            if status.ongoing:
                raise StateError("Cannot change the schedule while a meeting is ongoing; end it first")
            start = next_occurrence(schedule, self._now())
            status.meeting = await self._db(
                update_meeting_sync,
                status.meeting.id,
                start_date=start,
                scheduled_cron=schedule.expr,
            )
            status.schedule = schedule
            self._arm_locked()
            print(f"[Meeting] schedule changed to {schedule.expr}; next start {start.isoformat()}")
            return self._view(status)

    async def replan_channel(self, channel_id: int) -> StatusView:
        if not self.voice.is_voice_channel(int(channel_id)):
            raise InvalidChannel(channel_id)
        async with self._lock.write():
            status = self._require()
            if status.ongoing:
                raise StateError("Cannot change the channel while a meeting is ongoing; end it first")
            status.meeting = await self._db(update_meeting_sync, status.meeting.id, channel_id=str(channel_id))
            self._arm_locked()
            print(f"[Meeting] channel changed to {channel_id}")
            return self._view(status)

    async def skip_next(self) -> StatusView:
        async with self._lock.write():
            status = self._require()
            status.skip = True
            return self._view(status)

    async def set_note(self, note: str, meeting_id: str | None = None) -> str:
        if meeting_id is None:
            async with self._lock.read():
                meeting = self._require().meeting
        else:
            meeting = await self.get_meeting(meeting_id)
        await self.summaries.set_note(meeting.summary_id, note)
        out = f"Note saved for meeting `{meeting.id}`."
        if meeting.end_date is not None:
            out += await self._resend_past(meeting)
        return out

    # ---- queries ----

    def _view(self, status: MeetingStatus) -> StatusView:
        return StatusView(
            ongoing=status.ongoing,
            meeting_id=status.meeting.id,
            summary_id=status.meeting.summary_id,
            start_date=status.meeting.start_date,
            schedule=status.schedule.describe(),
            channel_id=status.meeting.channel_id,
            roster=tuple(m.name for m in status.roster.values()),
            skip_next=status.skip,
        )

    async def status(self) -> StatusView:
        async with self._lock.read():
            return self._view(self._require())

    async def list_meetings(self, *, page: int = 1, page_size: int = 10) -> tuple[list[Meeting], int]:
        return await self._db(list_meetings_sync, page=page, page_size=page_size)
