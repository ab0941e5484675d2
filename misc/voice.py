from __future__ import annotations

import discord


class DiscordVoiceOccupancy:
    """Answers "who is in this voice channel" from the gateway cache."""

    def __init__(self, bot) -> None:
        self.bot = bot

    def _channel(self, channel_id: int):
        return self.bot.get_channel(int(channel_id))

    def is_voice_channel(self, channel_id: int) -> bool:
        return isinstance(self._channel(channel_id), (discord.VoiceChannel, discord.StageChannel))

    async def occupants_of(self, channel_id: int) -> list[str]:
        channel = self._channel(channel_id)
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            print(f"[Meeting] channel {channel_id} is not a cached voice channel")
            return []
        return [str(m.id) for m in channel.members if not m.bot]
