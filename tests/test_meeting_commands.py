from __future__ import annotations

import unittest
from datetime import datetime
from datetime import timezone
from types import SimpleNamespace

from meetings.engine import StatusView
from misc.errors import InvalidSchedule
from misc.errors import NoMeetingOngoing

try:
    import discord
    from discord.ext import commands
except ModuleNotFoundError:
    discord = None
    commands = None

if commands is not None:
    from misc.commands.command_deps import CommandDeps
    from misc.commands.command_deps import CommandGates
    from misc.commands.commands_meeting import register as register_meeting
    from misc.events_runtime import is_voice_join


def _view(**overrides) -> StatusView:
    values = dict(
        ongoing=False,
        meeting_id="m1",
        summary_id="s1",
        start_date=datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc),
        schedule="`0 0 18 * * FRI` (UTC)",
        channel_id="42",
        roster=(),
        skip_next=False,
    )
    values.update(overrides)
    return StatusView(**values)


class StubMeetings:
    def __init__(self):
        self.calls: list[tuple] = []
        self.end_error: Exception | None = None

    async def status(self):
        return _view(meeting_id="m2")

    async def end_meeting(self, note=""):
        self.calls.append(("end", note))
        if self.end_error is not None:
            raise self.end_error
        return "summary"

    async def replan_schedule(self, cron):
        self.calls.append(("schedule", cron))
        if cron == "bad":
            raise InvalidSchedule(cron, "expected 5, 6 or 7 fields, got 1")
        return _view()

    async def set_note(self, note, meeting_id=None):
        self.calls.append(("note", note, meeting_id))
        return "Note saved."


class FakeChannel:
    id = 10

    def __init__(self):
        self.sent: list[str] = []

    async def send(self, text):
        self.sent.append(text)


class FakeCtx:
    def __init__(self, manager: bool):
        self.channel = FakeChannel()
        self.author = SimpleNamespace(id=1, manager=manager)
        self.guild = object()
        self.sent: list[str] = []

    async def send(self, text):
        self.sent.append(text)


@unittest.skipIf(commands is None, "discord.py not installed")
class MeetingCommandTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.meetings = StubMeetings()

        async def send_chunked(channel, text):
            await channel.send(text)

        self.bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
        register_meeting(
            self.bot,
            deps=CommandDeps(send_chunked=send_chunked, meetings=self.meetings),
            gates=CommandGates(user_is_manager=lambda author: author.manager, user_is_member=lambda author: True),
        )

    async def _run(self, name: str, manager: bool, *args, **kwargs) -> FakeCtx:
        ctx = FakeCtx(manager)
        await self.bot.get_command(name).callback(ctx, *args, **kwargs)
        return ctx

    async def test_state_changing_commands_are_manager_only(self):
        for name in ("meeting.end", "meeting.schedule", "meeting.channel", "meeting.skip", "meeting.note", "meeting.add", "meeting.remove"):
            ctx = await self._run(name, False)
            self.assertEqual(ctx.sent, ["Only managers can do that."], name)
        self.assertEqual(self.meetings.calls, [])

    async def test_status_is_public(self):
        ctx = await self._run("meeting.status", False)
        self.assertIn("Meeting `m2` is **planned**", ctx.channel.sent[0])

    async def test_end_reports_next_meeting(self):
        ctx = await self._run("meeting.end", True, note=" wrap up ")
        self.assertEqual(self.meetings.calls, [("end", "wrap up")])
        self.assertIn("`m2`", ctx.sent[0])

    async def test_end_without_ongoing_meeting_reports_error(self):
        self.meetings.end_error = NoMeetingOngoing()
        ctx = await self._run("meeting.end", True)
        self.assertEqual(ctx.sent, ["Error: No meeting is ongoing"])

    async def test_schedule_strips_backticks_and_reports_bad_cron(self):
        ctx = await self._run("meeting.schedule", True, cron="`0 0 19 * * FRI`")
        self.assertEqual(self.meetings.calls[-1], ("schedule", "0 0 19 * * FRI"))
        self.assertTrue(ctx.channel.sent[0].startswith("Schedule updated."))

        ctx = await self._run("meeting.schedule", True, cron="bad")
        self.assertTrue(ctx.sent[0].startswith("Error: Invalid schedule `bad`"))

    async def test_note_with_and_without_meeting_id(self):
        await self._run("meeting.note", True, raw="just a note")
        await self._run("meeting.note", True, raw="abc123 | for an old meeting")
        self.assertEqual(
            self.meetings.calls,
            [("note", "just a note", None), ("note", "for an old meeting", "abc123")],
        )

    def test_is_voice_join(self):
        chan_a = SimpleNamespace(id=1)
        chan_b = SimpleNamespace(id=2)
        self.assertTrue(is_voice_join(SimpleNamespace(channel=None), SimpleNamespace(channel=chan_a)))
        self.assertTrue(is_voice_join(SimpleNamespace(channel=chan_b), SimpleNamespace(channel=chan_a)))
        self.assertFalse(is_voice_join(SimpleNamespace(channel=chan_a), SimpleNamespace(channel=chan_a)))
        self.assertFalse(is_voice_join(SimpleNamespace(channel=chan_a), SimpleNamespace(channel=None)))


if __name__ == "__main__":
    unittest.main()
