"""Pytest configuration helpers and shared fakes."""

import os
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import discord
import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Ensure config bootstrap has the secrets it needs during CI/unit tests.
os.environ.setdefault("DISCORD_TOKEN", "TEST_TOKEN")

from switchboard.services.context import ExecutionContext, InteractionEvent, MessageEvent  # noqa: E402
from switchboard.services.lookup import (  # noqa: E402
    ChannelRecord,
    GuildRecord,
    MemberRecord,
    MemoryLookup,
    RoleRecord,
    UserRecord,
)
from switchboard.services.permission_resolver import OverwriteKind, PermissionOverwrite  # noqa: E402

GUILD_ID = 100
OWNER_ID = 1
MOD_ID = 2
USER_ID = 3
MOD_ROLE_ID = 200
MUTED_ROLE_ID = 201
TEXT_CHANNEL_ID = 300
VOICE_CHANNEL_ID = 301
LOCKED_CHANNEL_ID = 302
BOT_ID = 999

EVERYONE_PERMS = discord.Permissions(view_channel=True, send_messages=True).value
MOD_PERMS = discord.Permissions(kick_members=True, manage_roles=True, manage_channels=True).value


class FakeMessenger:
    """Records outbound messages instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[int, Optional[str], dict]] = []
        self.fail = fail

    async def send_message(self, channel_id, content=None, *, embed=None, **options):
        if self.fail:
            raise RuntimeError("send failed")
        self.sent.append((channel_id, content, options))
        return {"channel_id": channel_id, "content": content}

    @property
    def contents(self) -> List[Optional[str]]:
        return [content for _, content, _ in self.sent]


class FakeResponder:
    """Records interaction calls in order."""

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []
        self._followups = 0

    async def defer(self, *, ephemeral):
        self.calls.append(("defer", ephemeral))

    async def send_initial(self, content, *, ephemeral, **options):
        self.calls.append(("send_initial", content, ephemeral))
        return None if ephemeral else {"id": "original", "content": content}

    async def send_followup(self, content, *, ephemeral, **options):
        self._followups += 1
        self.calls.append(("send_followup", content, ephemeral))
        return {"id": f"followup-{self._followups}", "content": content}

    async def edit_original(self, content, **options):
        self.calls.append(("edit_original", content))
        return {"id": "original", "content": content}

    async def delete_original(self):
        self.calls.append(("delete_original",))

    async def edit_message(self, message, content, **options):
        self.calls.append(("edit_message", message["id"], content))
        return {"id": message["id"], "content": content}

    async def delete_message(self, message):
        self.calls.append(("delete_message", message["id"]))

    @property
    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


class FlakyLookup(MemoryLookup):
    """Member lookups fail outright, as a dropped gateway cache would."""

    async def fetch_member(self, guild_id, user_id):
        raise RuntimeError("member cache unavailable")


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def responder():
    return FakeResponder()


@pytest.fixture
def lookup():
    locked = (
        PermissionOverwrite(GUILD_ID, OverwriteKind.ROLE, deny=discord.Permissions(send_messages=True).value),
        PermissionOverwrite(MOD_ROLE_ID, OverwriteKind.ROLE, deny=discord.Permissions(manage_channels=True).value),
    )
    return MemoryLookup(
        guilds=[
            GuildRecord(
                id=GUILD_ID,
                owner_id=OWNER_ID,
                role_permissions={GUILD_ID: EVERYONE_PERMS, MOD_ROLE_ID: MOD_PERMS, MUTED_ROLE_ID: 0},
                name="Test Guild",
            )
        ],
        roles=[
            RoleRecord(GUILD_ID, GUILD_ID, EVERYONE_PERMS, "@everyone"),
            RoleRecord(MOD_ROLE_ID, GUILD_ID, MOD_PERMS, "Moderator", position=2),
            RoleRecord(MUTED_ROLE_ID, GUILD_ID, 0, "Muted", position=1),
        ],
        members=[
            MemberRecord(OWNER_ID, GUILD_ID, name="owner"),
            MemberRecord(MOD_ID, GUILD_ID, frozenset({MOD_ROLE_ID}), name="mod"),
            MemberRecord(USER_ID, GUILD_ID, name="user"),
        ],
        users=[UserRecord(BOT_ID, "switchboard", bot=True)],
        channels=[
            ChannelRecord(TEXT_CHANNEL_ID, GUILD_ID, discord.ChannelType.text, name="general"),
            ChannelRecord(VOICE_CHANNEL_ID, GUILD_ID, discord.ChannelType.voice, name="Lounge"),
            ChannelRecord(LOCKED_CHANNEL_ID, GUILD_ID, discord.ChannelType.text, locked, name="announcements"),
        ],
    )


def message(content: str, *, author_id: int = USER_ID, guild_id: Optional[int] = GUILD_ID, **kwargs) -> MessageEvent:
    kwargs.setdefault("channel_id", TEXT_CHANNEL_ID)
    return MessageEvent(content=content, author_id=author_id, guild_id=guild_id, **kwargs)


def interaction(command_name: str, *, member_id: int = USER_ID, guild_id: Optional[int] = GUILD_ID, **kwargs) -> InteractionEvent:
    kwargs.setdefault("channel_id", TEXT_CHANNEL_ID)
    return InteractionEvent(command_name=command_name, member_id=member_id, guild_id=guild_id, **kwargs)


@pytest.fixture
def make_ctx(lookup):
    def factory(event=None, **kwargs) -> ExecutionContext:
        return ExecutionContext(event=event or message(""), lookup=lookup, **kwargs)

    return factory
