"""discord.py backed lookup, messaging and application command payloads."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import discord

from switchboard.services.arguments import Argument, ArgumentKind
from switchboard.services.command_tree import CommandGroup
from switchboard.services.lookup import (
    ChannelRecord,
    GuildRecord,
    MemberRecord,
    RoleRecord,
    UserRecord,
)
from switchboard.services.permission_resolver import OverwriteKind, PermissionOverwrite


def user_record(user: Any) -> UserRecord:
    return UserRecord(id=user.id, name=str(user), bot=bool(getattr(user, "bot", False)), raw=user)


def member_record(member: discord.Member) -> MemberRecord:
    # ``roles`` includes @everyone, which is keyed by the guild id anyway.
    role_ids = frozenset(role.id for role in member.roles if role.id != member.guild.id)
    return MemberRecord(
        id=member.id,
        guild_id=member.guild.id,
        role_ids=role_ids,
        name=member.display_name,
        bot=member.bot,
        raw=member,
    )


def role_record(role: discord.Role) -> RoleRecord:
    return RoleRecord(
        id=role.id,
        guild_id=role.guild.id,
        permissions=role.permissions.value,
        name=role.name,
        position=role.position,
        raw=role,
    )


def overwrite_records(channel: Any) -> tuple:
    overwrites = getattr(channel, "overwrites", None) or {}
    records = []
    for target, overwrite in overwrites.items():
        if isinstance(target, discord.Role) or getattr(target, "type", None) is discord.Role:
            kind = OverwriteKind.ROLE
        else:
            kind = OverwriteKind.MEMBER
        allow, deny = overwrite.pair()
        records.append(PermissionOverwrite(target.id, kind, allow.value, deny.value))
    return tuple(records)


def channel_record(channel: Any) -> ChannelRecord:
    guild = getattr(channel, "guild", None)
    return ChannelRecord(
        id=channel.id,
        guild_id=guild.id if guild is not None else None,
        type=getattr(channel, "type", discord.ChannelType.text),
        overwrites=overwrite_records(channel),
        name=getattr(channel, "name", None) or "",
        raw=channel,
    )


def guild_record(guild: discord.Guild) -> GuildRecord:
    return GuildRecord(
        id=guild.id,
        owner_id=guild.owner_id,
        role_permissions={role.id: role.permissions.value for role in guild.roles},
        name=guild.name,
        raw=guild,
    )


class DiscordLookup:
    """Cache-first lookup that falls back to the REST API on a miss."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def fetch_user(self, user_id: int) -> Optional[UserRecord]:
        user = self.client.get_user(user_id)
        if user is None:
            try:
                user = await self.client.fetch_user(user_id)
            except discord.NotFound:
                return None
        return user_record(user)

    async def fetch_member(self, guild_id: int, user_id: int) -> Optional[MemberRecord]:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            return None
        member = guild.get_member(user_id)
        if member is None:
            try:
                member = await guild.fetch_member(user_id)
            except discord.NotFound:
                return None
        return member_record(member)

    async def fetch_channel(self, channel_id: int) -> Optional[ChannelRecord]:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden):
                return None
        return channel_record(channel)

    async def fetch_role(self, guild_id: int, role_id: int) -> Optional[RoleRecord]:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            return None
        role = guild.get_role(role_id)
        return role_record(role) if role is not None else None

    async def fetch_guild(self, guild_id: int) -> Optional[GuildRecord]:
        guild = self.client.get_guild(guild_id)
        return guild_record(guild) if guild is not None else None


class DiscordMessenger:
    """Send replies for text commands through a discord.py client."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def send_message(
        self,
        channel_id: int,
        content: Optional[str] = None,
        *,
        embed: Optional[discord.Embed] = None,
        **options: Any,
    ) -> Any:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        return await channel.send(content=content, embed=embed, **options)


class DiscordInteractionResponder:
    """Adapter from :class:`InteractionSession` calls to ``discord.Interaction``."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    async def defer(self, *, ephemeral: bool) -> None:
        await self.interaction.response.defer(ephemeral=ephemeral, thinking=True)

    async def send_initial(self, content: Optional[str], *, ephemeral: bool, **options: Any) -> Any:
        await self.interaction.response.send_message(content, ephemeral=ephemeral, **options)
        if ephemeral:
            return None
        return await self.interaction.original_response()

    async def send_followup(self, content: Optional[str], *, ephemeral: bool, **options: Any) -> Any:
        return await self.interaction.followup.send(content, ephemeral=ephemeral, wait=True, **options)

    async def edit_original(self, content: Optional[str], **options: Any) -> Any:
        return await self.interaction.edit_original_response(content=content, **options)

    async def delete_original(self) -> None:
        await self.interaction.delete_original_response()

    async def edit_message(self, message: Any, content: Optional[str], **options: Any) -> Any:
        return await message.edit(content=content, **options)

    async def delete_message(self, message: Any) -> None:
        await message.delete()


# ------------------------------------------------------------------ slash command payloads
_OPTION_TYPES = {
    ArgumentKind.STRING: discord.AppCommandOptionType.string,
    ArgumentKind.TEXT: discord.AppCommandOptionType.string,
    ArgumentKind.STRING_LIST: discord.AppCommandOptionType.string,
    ArgumentKind.INTEGER: discord.AppCommandOptionType.integer,
    ArgumentKind.FLOAT: discord.AppCommandOptionType.number,
    ArgumentKind.BOOLEAN: discord.AppCommandOptionType.boolean,
    ArgumentKind.USER: discord.AppCommandOptionType.user,
    ArgumentKind.MEMBER: discord.AppCommandOptionType.user,
    ArgumentKind.CHANNEL: discord.AppCommandOptionType.channel,
    ArgumentKind.TYPED_CHANNEL: discord.AppCommandOptionType.channel,
    ArgumentKind.ROLE: discord.AppCommandOptionType.role,
}

DEFAULT_DESCRIPTION = "No description provided."


def _description(text: Optional[str]) -> str:
    return (text or DEFAULT_DESCRIPTION)[:100]


def option_payload(argument: Argument) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": _OPTION_TYPES[argument.kind].value,
        "name": argument.name,
        "description": _description(argument.description),
        "required": argument.required,
    }
    if argument.choices is not None and argument.kind in (
        ArgumentKind.STRING,
        ArgumentKind.INTEGER,
        ArgumentKind.FLOAT,
    ):
        payload["choices"] = [{"name": str(choice), "value": choice} for choice in argument.choices]
    if argument.min_value is not None:
        payload["min_value"] = argument.min_value
    if argument.max_value is not None:
        payload["max_value"] = argument.max_value
    if argument.channel_types:
        payload["channel_types"] = sorted(kind.value for kind in argument.channel_types)
    return payload


def command_payload(node: Any, *, nested: bool = False) -> Dict[str, Any]:
    """Application command JSON for a top-level command or group.

    Nested commands become subcommand options and nested groups become
    subcommand groups. Default handlers have no slash equivalent.
    """
    payload: Dict[str, Any] = {"name": node.name, "description": _description(node.description)}
    if isinstance(node, CommandGroup):
        payload["options"] = [command_payload(child, nested=True) for child in node.children.values()]
        if nested:
            payload["type"] = discord.AppCommandOptionType.subcommand_group.value
    else:
        payload["options"] = [option_payload(argument) for argument in node.arguments or ()]
        if nested:
            payload["type"] = discord.AppCommandOptionType.subcommand.value
    if not nested:
        payload["type"] = discord.AppCommandType.chat_input.value
    return payload


def tree_payloads(tree: CommandGroup) -> List[Dict[str, Any]]:
    return [command_payload(child) for child in tree.children.values()]
