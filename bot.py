import asyncio
import os

import discord
from discord.ext import commands
from config.defaults import DEFAULT_MEETING_RETRY_SECONDS
from config.defaults import DEFAULT_PAGE_SIZE
from config.defaults import DISCORD_MAX_MESSAGE_LEN
from config.defaults import MAX_PAGE_SIZE
from config.settings import describe_settings
from config.settings import load_settings
from db.migrate import init_db
from db.migrate import list_schema_migrations_sync
from jobs.activity import activity_refresh_loop as activity_refresh_loop_service
from meetings.engine import MeetingLifecycleEngine
from members.role_sync import DiscordRoleSync
from members.service import MemberDirectory
from misc.discord_gates import user_has_any_role
from misc.discord_gates import user_is_manager as user_is_manager_gate
from misc.runtime_wiring import wire_bot_runtime
from misc.text_chunks import send_chunked as send_chunked_service
from misc.voice import DiscordVoiceOccupancy
from reports.service import ReportLedger
from summaries.messenger import DiscordMessenger
from summaries.service import SummaryCompiler
from wiki.client import WikiClient

# =========================
# CONFIG
# =========================
SETTINGS = load_settings()
for warning in SETTINGS.warnings:
    print(f"[CFG] {warning}")

if not SETTINGS.discord_token:
    raise RuntimeError("Missing DISCORD_TOKEN (or OCTOBOT_DISCORD_TOKEN) env var")

print(f"[CFG] {describe_settings(SETTINGS)}")

# =========================
# SQLITE
# =========================
db_conn = init_db(SETTINGS.db_path)
print(f"[DB] Using DB_PATH={SETTINGS.db_path}")
print(f"[DB] DB file exists? {os.path.exists(SETTINGS.db_path)}")
db_lock = asyncio.Lock()

# =========================
# DISCORD BOT
# =========================
intents = discord.Intents.default()
intents.message_content = True
intents.members = True
intents.voice_states = True

class OctobotBot(commands.Bot):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.shutdown_hooks: list = []

    async def close(self) -> None:
        for hook in self.shutdown_hooks:
            try:
                await hook()
            except Exception as e:
                print(f"[Bot] shutdown hook failed: {e}")
        await super().close()


bot = OctobotBot(command_prefix="!", intents=intents)


def user_is_manager(member) -> bool:
    return user_is_manager_gate(member, SETTINGS.manager_role_name)


def user_is_member(member) -> bool:
    return user_has_any_role(member, {SETTINGS.member_role_id, SETTINGS.apprentice_role_id})


async def send_chunked(channel, text: str) -> None:
    await send_chunked_service(channel, text, DISCORD_MAX_MESSAGE_LEN)

# =========================
# SERVICES
# =========================
wiki_client = WikiClient(
    url=SETTINGS.wiki_url,
    token=SETTINGS.wiki_token,
    enabled=SETTINGS.wiki_enabled,
    member_group_id=SETTINGS.wiki_member_group_id,
    apprentice_group_id=SETTINGS.wiki_apprentice_group_id,
)

member_directory = MemberDirectory(
    db_lock=db_lock,
    db_conn=db_conn,
    role_sync=DiscordRoleSync(
        bot=bot,
        server_id=SETTINGS.server_id,
        member_role_id=SETTINGS.member_role_id,
        apprentice_role_id=SETTINGS.apprentice_role_id,
    ),
    wiki=wiki_client,
    timezone_name=SETTINGS.timezone,
    inactivity_days=SETTINGS.inactivity_days,
)

report_ledger = ReportLedger(
    db_lock=db_lock,
    db_conn=db_conn,
    members=member_directory,
)

summary_compiler = SummaryCompiler(
    db_lock=db_lock,
    db_conn=db_conn,
    reports=report_ledger,
    members=member_directory,
    messenger=DiscordMessenger(bot),
    summary_channel_id=SETTINGS.summary_channel_id,
    timezone_name=SETTINGS.timezone,
)

meeting_engine = MeetingLifecycleEngine(
    db_lock=db_lock,
    db_conn=db_conn,
    members=member_directory,
    summaries=summary_compiler,
    voice=DiscordVoiceOccupancy(bot),
    default_cron=SETTINGS.meeting_cron,
    default_channel_id=SETTINGS.meeting_channel_id,
    timezone_name=SETTINGS.timezone,
    retry_seconds=DEFAULT_MEETING_RETRY_SECONDS,
)
bot.shutdown_hooks.append(meeting_engine.shutdown)


async def activity_refresh_loop() -> None:
    return await activity_refresh_loop_service(
        member_directory=member_directory,
        interval_hours=SETTINGS.activity_refresh_hours,
    )

wire_bot_runtime(
    bot,
    db_lock=db_lock,
    db_conn=db_conn,
    list_schema_migrations_sync=list_schema_migrations_sync,
    send_chunked=send_chunked,
    member_directory=member_directory,
    report_ledger=report_ledger,
    summary_compiler=summary_compiler,
    meeting_engine=meeting_engine,
    user_is_manager=user_is_manager,
    user_is_member=user_is_member,
    page_size=DEFAULT_PAGE_SIZE,
    max_page_size=MAX_PAGE_SIZE,
    activity_refresh_enabled=SETTINGS.activity_refresh_hours > 0,
    activity_loop_func=activity_refresh_loop,
)

bot.run(SETTINGS.discord_token)
