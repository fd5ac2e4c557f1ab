"""Mention parsing and argument tokenizing helpers."""

from __future__ import annotations

import re
from typing import Optional, Tuple

USER_MENTION = re.compile(r"^<@!?(\d{1,21})>$")
ROLE_MENTION = re.compile(r"^<@&(\d{1,21})>$")
CHANNEL_MENTION = re.compile(r"^<#(\d{1,21})>$")
SNOWFLAKE = re.compile(r"^(\d{1,21})$")

_MENTION_PATTERNS = {
    "user": USER_MENTION,
    "member": USER_MENTION,
    "role": ROLE_MENTION,
    "channel": CHANNEL_MENTION,
}

# Opening quote -> closing quote.
QUOTES = {
    '"': '"',
    "'": "'",
    "‘": "’",
    "‚": "‛",
    "“": "”",
    "„": "‟",
    "「": "」",
    "『": "』",
    "〝": "〞",
    "﹁": "﹂",
    "﹃": "﹄",
    "＂": "＂",
    "｢": "｣",
    "«": "»",
    "《": "》",
    "〈": "〉",
}


def parse_id(value: str, kind: str) -> Optional[int]:
    """Return the snowflake referenced by ``value`` or ``None``.

    ``value`` may be a raw id or a mention of the given ``kind``
    (``user``, ``member``, ``role`` or ``channel``).
    """
    if not isinstance(value, str):
        return None
    value = value.strip()
    match = SNOWFLAKE.match(value)
    if match:
        return int(match.group(1))
    pattern = _MENTION_PATTERNS.get(kind)
    if pattern is None:
        return None
    match = pattern.match(value)
    if match:
        return int(match.group(1))
    return None


def mention_forms(user_id: int) -> Tuple[str, str]:
    """Both spellings the client uses when mentioning ``user_id``."""
    return f"<@{user_id}>", f"<@!{user_id}>"


def split_first(text: str) -> Tuple[str, str]:
    """Split off the first whitespace-delimited token of ``text``."""
    text = text.lstrip()
    if not text:
        return "", ""
    parts = text.split(maxsplit=1)
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


def next_argument(text: str) -> Tuple[str, str]:
    """Like :func:`split_first`, but honours a leading quote.

    ``'"hello world" rest'`` yields ``("hello world", "rest")``. A quote that is
    never closed is treated as an ordinary character.
    """
    text = text.lstrip()
    if not text:
        return "", ""
    closing = QUOTES.get(text[0])
    if closing is not None:
        end = text.find(closing, 1)
        if end != -1:
            return text[1:end], text[end + 1:].lstrip()
    return split_first(text)
