from __future__ import annotations

import asyncio

import discord
from discord.ext import commands
from misc.errors import OctobotError
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def is_voice_join(before, after) -> bool:
    if after is None or after.channel is None:
        return False
    before_channel = getattr(before, "channel", None)
    return before_channel is None or int(before_channel.id) != int(after.channel.id)


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Octobot is online as {bot.user}")

        # on_ready fires again after reconnects; the engine must only start once
        if not getattr(bot, "_meeting_bootstrapped", False):
            try:
                view = await deps.meetings.bootstrap()
                bot._meeting_bootstrapped = True
                print(f"[Meeting] engine started, next meeting {view.meeting_id}")
            except OctobotError as e:
                print(f"[Meeting] bootstrap failed: {e}")

        if boot.activity_refresh_enabled and not getattr(bot, "_activity_task", None):
            bot._activity_task = asyncio.create_task(boot.activity_loop_func())
            print("[Activity] refresh loop started")

    @bot.event
    async def on_voice_state_update(member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        if member.bot or not is_voice_join(before, after):
            return
        try:
            await deps.meetings.handle_voice_join(str(member.id), int(after.channel.id))
        except OctobotError as e:
            print(f"[Meeting] voice join of {member.id} not recorded: {e}")

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, (commands.NoPrivateMessage, commands.BadArgument, commands.MissingRequiredArgument)):
            await ctx.send(f"Error: {error}")
            return
        original = getattr(error, "original", error)
        print(f"[Commands] {ctx.command} failed: {type(original).__name__}: {original}")
        await ctx.send("Something went wrong while running that command.")
