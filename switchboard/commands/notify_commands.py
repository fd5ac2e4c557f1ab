"""Per-server notification opt-in, exposed as a ``notify`` command group."""

from __future__ import annotations

from typing import Any, Dict, Optional, Set

from switchboard.services.context import AckMode, ExecutionContext
from switchboard.services.filters import guild_only


class NotifySubscriptions:
    """In-memory opt-in list, keyed by guild."""

    def __init__(self) -> None:
        self._members: Dict[int, Set[int]] = {}

    def enable(self, guild_id: int, user_id: int) -> bool:
        members = self._members.setdefault(guild_id, set())
        if user_id in members:
            return False
        members.add(user_id)
        return True

    def disable(self, guild_id: int, user_id: int) -> bool:
        members = self._members.get(guild_id)
        if not members or user_id not in members:
            return False
        members.discard(user_id)
        return True

    def enabled(self, guild_id: Optional[int], user_id: int) -> bool:
        return guild_id is not None and user_id in self._members.get(guild_id, ())


def _status(subscriptions: NotifySubscriptions, ctx: ExecutionContext) -> str:
    if subscriptions.enabled(ctx.guild_id, ctx.author_id):
        return "Notifications are **on** for you in this server."
    return "Notifications are **off** for you in this server."


def setup(bot: Any) -> None:
    subscriptions = NotifySubscriptions()
    bot.notify_subscriptions = subscriptions
    messenger = bot.dispatcher.messenger

    async def reply(ctx: ExecutionContext, content: str) -> None:
        await messenger.send_message(ctx.channel_id, content)

    # ------------------------------------------------------------------ text
    notify = bot.text_commands.group(
        "notify",
        aliases=("notifications",),
        description="Manage your notification preference.",
        filters=guild_only(),
    )

    @notify.command(description="Turn notifications on.")
    async def on(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        changed = subscriptions.enable(ctx.guild_id, ctx.author_id)
        await reply(ctx, "Notifications enabled." if changed else "Notifications were already enabled.")

    @notify.command(description="Turn notifications off.")
    async def off(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        changed = subscriptions.disable(ctx.guild_id, ctx.author_id)
        await reply(ctx, "Notifications disabled." if changed else "Notifications were already disabled.")

    @notify.default()
    async def notify_fallback(message, raw: str, ctx: ExecutionContext) -> None:
        if raw:
            await reply(ctx, f"Unknown option `{raw.split()[0]}`. Use `on` or `off`.\n{_status(subscriptions, ctx)}")
        else:
            await reply(ctx, _status(subscriptions, ctx))

    # ------------------------------------------------------------------ slash
    slash_notify = bot.slash_commands.group(
        "notify",
        description="Manage your notification preference.",
        filters=guild_only(),
        ack_mode=AckMode.AUTO_EPHEMERAL,
    )

    @slash_notify.command(name="on", description="Turn notifications on.")
    async def slash_on(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        subscriptions.enable(ctx.guild_id, ctx.author_id)
        await session.respond(_status(subscriptions, ctx), ephemeral=True)

    @slash_notify.command(name="off", description="Turn notifications off.")
    async def slash_off(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        subscriptions.disable(ctx.guild_id, ctx.author_id)
        await session.respond(_status(subscriptions, ctx), ephemeral=True)

    @slash_notify.command(name="status", description="Show your notification preference.")
    async def slash_status(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(_status(subscriptions, ctx), ephemeral=True)
