"""Moderation commands gated by permission filters."""

from __future__ import annotations

from typing import Any, Dict, Optional

import discord

from switchboard.services.arguments import Argument, ArgumentKind
from switchboard.services.context import AckMode, ExecutionContext
from switchboard.services.filters import guild_only, has_guild_permissions, has_permissions
from switchboard.services.lookup import ChannelRecord, MemberRecord, RoleRecord
from switchboard.utils.exceptions import UserFacingError

MAX_SLOWMODE_SECONDS = 21600
TEXT_CHANNELS = frozenset({discord.ChannelType.text, discord.ChannelType.news, discord.ChannelType.forum})


def _platform_object(record: Any, what: str) -> Any:
    """The discord.py object behind ``record``; records built offline have none."""
    raw = getattr(record, "raw", None)
    if raw is None:
        raise UserFacingError(f"That {what} is not available right now.")
    return raw


async def kick_member(member: MemberRecord, reason: Optional[str]) -> str:
    try:
        await _platform_object(member, "member").kick(reason=reason)
    except discord.Forbidden:
        raise UserFacingError(f"I am not allowed to kick {member.mention}.") from None
    suffix = f" ({reason})" if reason else ""
    return f"Kicked {member.mention}{suffix}."


async def change_role(member: MemberRecord, role: RoleRecord, *, add: bool) -> str:
    target = _platform_object(member, "member")
    role_object = _platform_object(role, "role")
    try:
        if add:
            await target.add_roles(role_object)
        else:
            await target.remove_roles(role_object)
    except discord.Forbidden:
        raise UserFacingError(f"I cannot manage {role.mention}; it may be above my highest role.") from None
    return f"{'Added' if add else 'Removed'} {role.mention} {'to' if add else 'from'} {member.mention}."


async def set_slowmode(channel: ChannelRecord, seconds: int) -> str:
    try:
        await _platform_object(channel, "channel").edit(slowmode_delay=seconds)
    except discord.Forbidden:
        raise UserFacingError(f"I am not allowed to edit {channel.mention}.") from None
    if seconds == 0:
        return f"Slowmode disabled in {channel.mention}."
    return f"Slowmode in {channel.mention} set to {seconds}s."


def setup(bot: Any) -> None:
    messenger = bot.dispatcher.messenger

    async def reply(ctx: ExecutionContext, content: str) -> None:
        await messenger.send_message(ctx.channel_id, content)

    member_arg = Argument("member", ArgumentKind.MEMBER, description="Member to act on")
    role_arg = Argument("role", ArgumentKind.ROLE, description="Role to add or remove")
    reason_arg = Argument("reason", ArgumentKind.TEXT, required=False, description="Shown in the audit log")
    slowmode_args = [
        Argument("channel", ArgumentKind.TYPED_CHANNEL, channel_types=TEXT_CHANNELS, description="Channel to edit"),
        Argument(
            "seconds",
            ArgumentKind.INTEGER,
            min_value=0,
            max_value=MAX_SLOWMODE_SECONDS,
            description="Delay between messages, 0 to disable",
        ),
    ]
    can_kick = guild_only() & has_permissions(kick_members=True)
    can_manage_roles = guild_only() & has_guild_permissions(manage_roles=True)
    can_manage_channels = guild_only() & has_permissions(manage_channels=True)

    # ------------------------------------------------------------------ text
    text = bot.text_commands

    @text.command(description="Kick a member from the server.", arguments=[member_arg, reason_arg], filters=can_kick)
    async def kick(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, await kick_member(args["member"], args["reason"]))

    role = text.group("role", description="Add or remove roles.", filters=can_manage_roles)

    @role.command(aliases=("give",), description="Give a role to a member.", arguments=[member_arg, role_arg])
    async def add(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, await change_role(args["member"], args["role"], add=True))

    @role.command(aliases=("take",), description="Take a role from a member.", arguments=[member_arg, role_arg])
    async def remove(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, await change_role(args["member"], args["role"], add=False))

    @text.command(description="Set a channel's slowmode.", arguments=slowmode_args, filters=can_manage_channels)
    async def slowmode(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, await set_slowmode(args["channel"], args["seconds"]))

    # ------------------------------------------------------------------ slash
    slash = bot.slash_commands

    @slash.command(
        name="kick",
        description="Kick a member from the server.",
        arguments=[member_arg, reason_arg],
        filters=can_kick,
        ack_mode=AckMode.MANUAL,
    )
    async def slash_kick(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        # Kicking can be slow; acknowledge before calling out.
        await session.acknowledge(ephemeral=True)
        await session.respond(await kick_member(args["member"], args["reason"]), ephemeral=True)

    slash_role = slash.group("role", description="Add or remove roles.", filters=can_manage_roles)

    @slash_role.command(name="add", description="Give a role to a member.", arguments=[member_arg, role_arg])
    async def slash_add(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(await change_role(args["member"], args["role"], add=True))

    @slash_role.command(name="remove", description="Take a role from a member.", arguments=[member_arg, role_arg])
    async def slash_remove(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(await change_role(args["member"], args["role"], add=False))

    @slash.command(
        name="slowmode",
        description="Set a channel's slowmode.",
        arguments=slowmode_args,
        filters=can_manage_channels,
    )
    async def slash_slowmode(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(await set_slowmode(args["channel"], args["seconds"]))
