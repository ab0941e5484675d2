from __future__ import annotations

import re
import shlex


USER_MENTION_RE = re.compile(r"^<@!?(\d{5,20})>$")
CHANNEL_MENTION_RE = re.compile(r"^<#!?(\d{5,20})>$")
SNOWFLAKE_RE = re.compile(r"^(\d{5,20})$")


def parse_user_token(token: str) -> str | None:
    token = (token or "").strip()
    m = USER_MENTION_RE.match(token) or SNOWFLAKE_RE.match(token)
    return m.group(1) if m else None


def parse_channel_id_token(token: str) -> int | None:
    token = (token or "").strip()
    if not token:
        return None
    m = CHANNEL_MENTION_RE.match(token) or SNOWFLAKE_RE.match(token)
    return int(m.group(1)) if m else None


def split_pipe(raw: str) -> tuple[str, str]:
    """`left | right` -> (left, right); right is "" when there is no pipe."""
    text = (raw or "").strip()
    if "|" not in text:
        return text, ""
    left, right = text.split("|", 1)
    return left.strip(), right.strip()


def parse_kv(raw: str) -> tuple[list[str], dict[str, str]]:
    """Split `a b key=value key2="two words"` into positionals and options."""
    try:
        tokens = shlex.split(raw or "")
    except ValueError:
        tokens = (raw or "").split()
    positional: list[str] = []
    options: dict[str, str] = {}
    for tok in tokens:
        if "=" in tok and not tok.startswith("="):
            key, value = tok.split("=", 1)
            options[key.strip().lower()] = value.strip()
        else:
            positional.append(tok)
    return positional, options


def parse_page_args(tokens: list[str], *, default_size: int, max_size: int) -> tuple[int, int, list[str]]:
    """Leading integers are `page [page_size]`; everything else is returned."""
    numbers: list[int] = []
    rest: list[str] = []
    for tok in tokens:
        if tok.isdigit() and len(tok) <= 4 and len(numbers) < 2 and not rest:
            numbers.append(int(tok))
        else:
            rest.append(tok)
    page = max(1, numbers[0]) if numbers else 1
    size = numbers[1] if len(numbers) > 1 else default_size
    size = max(1, min(int(size), int(max_size)))
    return page, size, rest


def page_footer(page: int, total_pages: int) -> str:
    return f"Page {page}/{max(total_pages, 1)}"
