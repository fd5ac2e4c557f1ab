"""Global command error handling."""

from __future__ import annotations

import logging
import traceback
from typing import Optional

from switchboard.configs.schema import DispatchConfig
from switchboard.services.command_tree import ErrorHandler, Resolution
from switchboard.services.context import ExecutionContext
from switchboard.services.lookup import Messenger
from switchboard.utils.exceptions import (
    AcknowledgementTimeout,
    ArgumentError,
    HandlerError,
    UserFacingError,
)


class ErrorEvents:
    """Log unexpected errors and surface friendly messages to users."""

    def __init__(
        self,
        messenger: Optional[Messenger] = None,
        config: Optional[DispatchConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.messenger = messenger
        self.config = config or DispatchConfig()
        self.logger = logger or logging.getLogger("Switchboard.Errors")

    async def reply(self, ctx: ExecutionContext, content: str) -> None:
        """Best-effort reply to the invoker; delivery failures are only logged."""
        try:
            if ctx.session is not None:
                await ctx.session.respond(content, ephemeral=True)
            elif self.messenger is not None:
                await self.messenger.send_message(ctx.channel_id, content)
        except Exception as e:
            self.logger.debug("Suppressed error sending reply: %s", e)

    async def on_command_error(
        self,
        ctx: ExecutionContext,
        error: BaseException,
        handler: Optional[ErrorHandler] = None,
    ) -> None:
        """Route ``error`` to ``handler`` if given, otherwise apply the defaults."""
        ctx.error = error
        if handler is not None:
            try:
                await handler(ctx, error)
            except Exception as exc:
                self.logger.error(
                    "Error callback for '%s' failed: %s",
                    self._name(ctx),
                    "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                )
            return

        if isinstance(error, ArgumentError):
            if self.config.reply_on_argument_error:
                await self.reply(ctx, self._argument_message(ctx, error))
            return

        original = error.original if isinstance(error, HandlerError) else error
        if isinstance(original, UserFacingError):
            await self.reply(ctx, original.message)
            return

        self.logger.error(
            "Unhandled error in command '%s': %s",
            self._name(ctx),
            "".join(traceback.format_exception(type(original), original, original.__traceback__)),
        )
        if self.config.handler_error_reply:
            await self.reply(ctx, self.config.handler_error_reply)

    async def on_resolution_error(self, resolution: Resolution, ctx: ExecutionContext, error: BaseException) -> None:
        await self.on_command_error(ctx, error, resolution.error_handler)

    async def on_ack_timeout(self, ctx: ExecutionContext, error: AcknowledgementTimeout) -> None:
        ctx.error = error
        self.logger.error("Interaction for '%s' failed: %s", self._name(ctx), error)

    def _argument_message(self, ctx: ExecutionContext, error: ArgumentError) -> str:
        message = error.message
        if ctx.command is not None:
            prefix = ctx.prefix or ("/" if ctx.is_interaction else "")
            message += f"\nUsage: `{prefix}{ctx.command.usage}`"
        return message

    @staticmethod
    def _name(ctx: ExecutionContext) -> str:
        return ctx.command.qualified_name if ctx.command is not None else "?"
