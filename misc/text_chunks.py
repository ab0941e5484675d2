from __future__ import annotations

from config.defaults import DISCORD_MAX_MESSAGE_LEN


def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    text = (text or "").rstrip()
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    remaining = text

    while len(remaining) > limit:
        # Prefer the last newline that fits; a single over-long line is hard-cut
        split_at = remaining.rfind("\n", 0, limit + 1)
        if split_at <= 0:
            split_at = limit
            chunk, remaining = remaining[:split_at], remaining[split_at:]
        else:
            chunk, remaining = remaining[:split_at], remaining[split_at + 1:]

        chunk = chunk.rstrip()
        if chunk:
            chunks.append(chunk)

    remaining = remaining.rstrip()
    if remaining:
        chunks.append(remaining)

    return chunks


async def send_chunked(channel, text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list:
    sent = []
    for part in chunk_text(text, limit):
        if part:
            sent.append(await channel.send(part))
    return sent
