"""General purpose commands: ping, echo, choose and help."""

from __future__ import annotations

import math
import random
from typing import Any, Dict

from switchboard.services.arguments import Argument, ArgumentKind
from switchboard.services.context import AckMode, ExecutionContext


def _latency_ms(bot: Any) -> str:
    latency = getattr(bot, "latency", float("nan"))
    if not math.isfinite(latency):
        return "n/a"
    return f"{latency * 1000:.0f}ms"


def setup(bot: Any) -> None:
    text = bot.text_commands
    slash = bot.slash_commands
    messenger = bot.dispatcher.messenger

    async def reply(ctx: ExecutionContext, content: str) -> None:
        await messenger.send_message(ctx.channel_id, content)

    # ------------------------------------------------------------------ text
    @text.command(aliases=("latency",), description="Check that the bot is responsive.")
    async def ping(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, f"Pong! Gateway latency: `{_latency_ms(bot)}`")

    @text.command(
        description="Repeat a message back.",
        arguments=[Argument("text", ArgumentKind.TEXT, description="What to repeat")],
    )
    async def echo(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, args["text"])

    @text.command(
        aliases=("pick",),
        description="Pick one of several options at random.",
        arguments=[Argument("options", ArgumentKind.STRING_LIST, description="Options separated by spaces")],
    )
    async def choose(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await reply(ctx, f"I choose **{random.choice(args['options'])}**")

    @text.command(name="help", description="List available commands.")
    async def help_command(message, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        prefix = ctx.prefix or text.default_prefix
        lines = [
            f"`{prefix}{command.usage}` {command.description or ''}".rstrip()
            for command in text.walk()
            if command.parent.default_command is not command
        ]
        await reply(ctx, "\n".join(lines) or "No commands registered.")

    # ------------------------------------------------------------------ slash
    @slash.command(name="ping", description="Check that the bot is responsive.", ack_mode=AckMode.AUTO_EPHEMERAL)
    async def slash_ping(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(f"Pong! Gateway latency: `{_latency_ms(bot)}`", ephemeral=True)

    @slash.command(
        name="echo",
        description="Repeat a message back.",
        arguments=[Argument("text", ArgumentKind.STRING, description="What to repeat")],
    )
    async def slash_echo(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(args["text"])

    @slash.command(
        name="choose",
        description="Pick one of several options at random.",
        arguments=[Argument("options", ArgumentKind.STRING_LIST, description="Options separated by spaces")],
    )
    async def slash_choose(session, args: Dict[str, Any], ctx: ExecutionContext) -> None:
        await session.respond(f"I choose **{random.choice(args['options'])}**")
