"""Narrow interfaces to the object cache and outbound messaging layers.

The dispatcher never talks to the platform directly. Everything it reads goes
through an :class:`ObjectLookup` and everything it sends goes through a
:class:`Messenger` or an :class:`InteractionResponder`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional, Protocol, Tuple, runtime_checkable

import discord

from switchboard.services.permission_resolver import PermissionOverwrite


@dataclass(frozen=True)
class UserRecord:
    id: int
    name: str = ""
    bot: bool = False
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"


@dataclass(frozen=True)
class MemberRecord:
    id: int
    guild_id: int
    role_ids: FrozenSet[int] = frozenset()
    name: str = ""
    bot: bool = False
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"


@dataclass(frozen=True)
class RoleRecord:
    id: int
    guild_id: int
    permissions: int = 0
    name: str = ""
    position: int = 0
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def mention(self) -> str:
        return f"<@&{self.id}>"


@dataclass(frozen=True)
class ChannelRecord:
    id: int
    guild_id: Optional[int] = None
    type: discord.ChannelType = discord.ChannelType.text
    overwrites: Tuple[PermissionOverwrite, ...] = ()
    name: str = ""
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def mention(self) -> str:
        return f"<#{self.id}>"


@dataclass(frozen=True)
class GuildRecord:
    """A guild and the base permissions of its roles (``id`` is also the @everyone role)."""

    id: int
    owner_id: int
    role_permissions: Dict[int, int] = field(default_factory=dict, compare=False)
    name: str = ""
    raw: Any = field(default=None, compare=False, repr=False)


@runtime_checkable
class ObjectLookup(Protocol):
    """Resolve platform entities by id; ``None`` means not found."""

    async def fetch_user(self, user_id: int) -> Optional[UserRecord]: ...

    async def fetch_member(self, guild_id: int, user_id: int) -> Optional[MemberRecord]: ...

    async def fetch_channel(self, channel_id: int) -> Optional[ChannelRecord]: ...

    async def fetch_role(self, guild_id: int, role_id: int) -> Optional[RoleRecord]: ...

    async def fetch_guild(self, guild_id: int) -> Optional[GuildRecord]: ...


@runtime_checkable
class Messenger(Protocol):
    """Outbound message sending used for replies to text commands."""

    async def send_message(
        self,
        channel_id: int,
        content: Optional[str] = None,
        *,
        embed: Optional[discord.Embed] = None,
        **options: Any,
    ) -> Any: ...


@runtime_checkable
class InteractionResponder(Protocol):
    """Outbound calls available on one interaction."""

    async def defer(self, *, ephemeral: bool) -> None: ...

    async def send_initial(self, content: Optional[str], *, ephemeral: bool, **options: Any) -> Any: ...

    async def send_followup(self, content: Optional[str], *, ephemeral: bool, **options: Any) -> Any: ...

    async def edit_original(self, content: Optional[str], **options: Any) -> Any: ...

    async def delete_original(self) -> None: ...

    async def edit_message(self, message: Any, content: Optional[str], **options: Any) -> Any: ...

    async def delete_message(self, message: Any) -> None: ...


class MemoryLookup:
    """Dictionary backed :class:`ObjectLookup` for tests and offline tooling."""

    def __init__(
        self,
        *,
        users: Iterable[UserRecord] = (),
        members: Iterable[MemberRecord] = (),
        channels: Iterable[ChannelRecord] = (),
        roles: Iterable[RoleRecord] = (),
        guilds: Iterable[GuildRecord] = (),
    ) -> None:
        self.users: Dict[int, UserRecord] = {user.id: user for user in users}
        self.members: Dict[Tuple[int, int], MemberRecord] = {
            (member.guild_id, member.id): member for member in members
        }
        self.channels: Dict[int, ChannelRecord] = {channel.id: channel for channel in channels}
        self.roles: Dict[Tuple[int, int], RoleRecord] = {(role.guild_id, role.id): role for role in roles}
        self.guilds: Dict[int, GuildRecord] = {guild.id: guild for guild in guilds}

    def add(self, *records: Any) -> "MemoryLookup":
        for record in records:
            if isinstance(record, MemberRecord):
                self.members[(record.guild_id, record.id)] = record
            elif isinstance(record, UserRecord):
                self.users[record.id] = record
            elif isinstance(record, ChannelRecord):
                self.channels[record.id] = record
            elif isinstance(record, RoleRecord):
                self.roles[(record.guild_id, record.id)] = record
            elif isinstance(record, GuildRecord):
                self.guilds[record.id] = record
            else:
                raise TypeError(f"Unsupported record type: {type(record).__name__}")
        return self

    async def fetch_user(self, user_id: int) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if user is None:
            # Members double as users.
            for (_, member_id), member in self.members.items():
                if member_id == user_id:
                    return UserRecord(id=member.id, name=member.name, bot=member.bot)
        return user

    async def fetch_member(self, guild_id: int, user_id: int) -> Optional[MemberRecord]:
        return self.members.get((guild_id, user_id))

    async def fetch_channel(self, channel_id: int) -> Optional[ChannelRecord]:
        return self.channels.get(channel_id)

    async def fetch_role(self, guild_id: int, role_id: int) -> Optional[RoleRecord]:
        return self.roles.get((guild_id, role_id))

    async def fetch_guild(self, guild_id: int) -> Optional[GuildRecord]:
        return self.guilds.get(guild_id)
