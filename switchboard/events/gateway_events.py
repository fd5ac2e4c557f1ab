"""Translate discord.py gateway events into dispatcher events."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import discord

from switchboard.services.context import InteractionEvent, InteractionOption, MessageEvent
from switchboard.services.discord_bridge import DiscordInteractionResponder
from switchboard.services.dispatcher import Dispatcher

_NESTED_OPTION_TYPES = (
    discord.AppCommandOptionType.subcommand.value,
    discord.AppCommandOptionType.subcommand_group.value,
)


def message_event_from(message: discord.Message) -> MessageEvent:
    author = message.author
    roles = getattr(author, "roles", None) or ()
    guild = message.guild
    return MessageEvent(
        content=message.content,
        channel_id=message.channel.id,
        author_id=author.id,
        guild_id=guild.id if guild is not None else None,
        member_role_ids=tuple(role.id for role in roles if guild is None or role.id != guild.id),
        message_id=message.id,
        author_is_bot=author.bot,
        raw=message,
    )


def flatten_options(data: Dict[str, Any]) -> Tuple[str, List[Dict[str, Any]]]:
    """Walk subcommand groups down to the leaf and return ``(path, leaf options)``."""
    path = [data.get("name", "")]
    options = list(data.get("options") or [])
    while len(options) == 1 and options[0].get("type") in _NESTED_OPTION_TYPES:
        nested = options[0]
        path.append(nested["name"])
        options = list(nested.get("options") or [])
    return " ".join(part for part in path if part), options


def interaction_event_from(interaction: discord.Interaction, *, received_at: Optional[float] = None) -> InteractionEvent:
    """Build an :class:`InteractionEvent`; deadlines count from the interaction's creation."""
    name, options = flatten_options(interaction.data or {})
    if received_at is None:
        age = (discord.utils.utcnow() - interaction.created_at).total_seconds()
        received_at = time.monotonic() - max(0.0, age)
    return InteractionEvent(
        command_name=name,
        channel_id=interaction.channel_id,
        member_id=interaction.user.id,
        guild_id=interaction.guild_id,
        options=tuple(InteractionOption(option["name"], option.get("value")) for option in options),
        interaction_id=interaction.id,
        received_at=received_at,
        raw=interaction,
    )


class GatewayEvents:
    """Feed messages and application command interactions to a :class:`Dispatcher`."""

    def __init__(self, dispatcher: Dispatcher, *, ignore_bots: bool = True) -> None:
        self.dispatcher = dispatcher
        self.ignore_bots = ignore_bots
        self.logger = logging.getLogger("Switchboard.Gateway")

    async def on_message(self, message: discord.Message) -> None:
        if self.ignore_bots and message.author.bot:
            return
        self.dispatcher.handle_message(message_event_from(message))

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.application_command:
            return
        event = interaction_event_from(interaction)
        if not event.command_name:
            self.logger.debug("Ignoring interaction %s without a command name", interaction.id)
            return
        self.dispatcher.handle_interaction(event, DiscordInteractionResponder(interaction))
