from __future__ import annotations

import discord

from misc.errors import ExternalServiceError


class DiscordMessenger:
    def __init__(self, bot) -> None:
        self.bot = bot

    async def _channel(self, channel_id: int):
        channel = self.bot.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(int(channel_id))
            except discord.HTTPException as e:
                raise ExternalServiceError("discord", f"cannot fetch channel {channel_id}: {e}") from e
        return channel

    async def send(self, channel_id: int, text: str) -> str:
        channel = await self._channel(channel_id)
        try:
            message = await channel.send(text)
        except discord.HTTPException as e:
            raise ExternalServiceError("discord", f"send to {channel_id} failed: {e}") from e
        return str(message.id)

    async def edit(self, channel_id: int, message_id: str, text: str) -> None:
        channel = await self._channel(channel_id)
        try:
            message = channel.get_partial_message(int(message_id))
            await message.edit(content=text)
        except discord.HTTPException as e:
            raise ExternalServiceError("discord", f"edit of message {message_id} failed: {e}") from e
