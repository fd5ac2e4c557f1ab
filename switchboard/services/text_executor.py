"""Message-based command execution.

``TextCommandExecutor.execute`` drives one message through
prefix matching, tree resolution, filters, argument parsing and the handler
call. Failures of one invocation are contained here so that the dispatcher
keeps serving other messages.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional, Sequence, Tuple

from switchboard.configs.schema import DispatchConfig
from switchboard.events.error_events import ErrorEvents
from switchboard.services.arguments import ArgumentParser
from switchboard.services.command_tree import CommandTree
from switchboard.services.context import (
    ExecutionContext,
    ExecutionOutcome,
    ExecutionState,
    MessageEvent,
)
from switchboard.services.dispatch_analytics_service import DispatchAnalyticsService
from switchboard.services.filters import evaluate_chain
from switchboard.services.lookup import Messenger, ObjectLookup
from switchboard.utils.exceptions import ArgumentError, HandlerError
from switchboard.utils.mentions import mention_forms


class PrefixResolver:
    """Match the configured prefixes against message content."""

    def __init__(
        self,
        default_prefix: str,
        additional_prefixes: Sequence[str] = (),
        mention_prefix: bool = False,
        bot_id: Optional[int] = None,
    ) -> None:
        self.default_prefix = default_prefix
        self.additional_prefixes = tuple(additional_prefixes)
        self.mention_prefix = mention_prefix
        self.bot_id = bot_id

    @classmethod
    def for_tree(cls, tree: CommandTree, bot_id: Optional[int] = None) -> "PrefixResolver":
        return cls(tree.default_prefix, tree.additional_prefixes, tree.mention_prefix, bot_id)

    @property
    def prefixes(self) -> Tuple[str, ...]:
        prefixes = [self.default_prefix, *self.additional_prefixes]
        if self.mention_prefix and self.bot_id is not None:
            prefixes.extend(mention_forms(self.bot_id))
        return tuple(dict.fromkeys(prefix for prefix in prefixes if prefix))

    def match(self, content: str) -> Optional[str]:
        """Return the longest prefix ``content`` starts with, if any."""
        best: Optional[str] = None
        for prefix in self.prefixes:
            if content.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        return best


class TextCommandExecutor:
    """Run text commands from one :class:`CommandTree`."""

    def __init__(
        self,
        tree: CommandTree,
        lookup: ObjectLookup,
        messenger: Messenger,
        *,
        config: Optional[DispatchConfig] = None,
        reporter: Optional[ErrorEvents] = None,
        analytics: Optional[DispatchAnalyticsService] = None,
        parser: Optional[ArgumentParser] = None,
        bot_id: Optional[int] = None,
    ) -> None:
        self.tree = tree
        self.lookup = lookup
        self.messenger = messenger
        self.config = config or DispatchConfig()
        self.reporter = reporter or ErrorEvents(messenger, self.config)
        self.analytics = analytics
        self.parser = parser or ArgumentParser()
        self.prefixes = PrefixResolver.for_tree(tree, bot_id)
        self.logger = logging.getLogger("Switchboard.TextCommands")

    def set_bot_id(self, bot_id: int) -> None:
        """Enable the mention prefix once the bot's own id is known."""
        self.prefixes.bot_id = bot_id

    async def execute(self, message: MessageEvent) -> ExecutionOutcome:
        ctx = ExecutionContext(event=message, lookup=self.lookup)
        prefix = self.prefixes.match(message.content)
        if prefix is None:
            return ExecutionOutcome.IGNORED
        started = time.monotonic()
        ctx.prefix = prefix
        ctx.advance(ExecutionState.PREFIX_MATCHED)
        outcome = await self._run(ctx, message.content[len(prefix):])
        if self.analytics is not None and outcome is not ExecutionOutcome.NO_MATCH:
            await self.analytics.record_dispatch(ctx, outcome, started)
        return outcome

    async def _run(self, ctx: ExecutionContext, text: str) -> ExecutionOutcome:
        resolution = self.tree.resolve(text)
        if resolution is None:
            self.logger.debug("No command matched %r", text[:50])
            return ExecutionOutcome.NO_MATCH
        command = resolution.command
        ctx.command = command
        ctx.scopes = resolution.scopes
        ctx.raw_args = resolution.raw_args
        ctx.invoked_with = resolution.invoked_with
        ctx.advance(ExecutionState.NODE_RESOLVED)

        try:
            verdict = await evaluate_chain(resolution.filters, ctx)
        except Exception as exc:
            ctx.advance(ExecutionState.ERRORED)
            await self.reporter.on_resolution_error(resolution, ctx, HandlerError(command, exc))
            return ExecutionOutcome.ERRORED
        if not verdict.passed:
            self.logger.debug("Filters rejected '%s' for user %s", command.qualified_name, ctx.author_id)
            if verdict.description and self.config.reply_on_filter_rejection:
                await self.reporter.reply(ctx, self.config.rejection_template.format(criteria=verdict.description))
            return ExecutionOutcome.FILTERED
        ctx.advance(ExecutionState.FILTERS_PASSED)

        args: Any
        if command.is_raw:
            args = resolution.raw_args
        else:
            try:
                args = await self.parser.parse(command.arguments, resolution.raw_args, ctx)
            except ArgumentError as error:
                ctx.advance(ExecutionState.ERRORED)
                await self.reporter.on_resolution_error(resolution, ctx, error)
                return ExecutionOutcome.ARGUMENT_ERROR
            except Exception as exc:
                # A lookup failing for any reason other than "not found".
                ctx.advance(ExecutionState.ERRORED)
                await self.reporter.on_resolution_error(resolution, ctx, HandlerError(command, exc))
                return ExecutionOutcome.ERRORED
        ctx.advance(ExecutionState.ARGUMENTS_PARSED)

        ctx.advance(ExecutionState.INVOKED)
        try:
            await command.handler(ctx.event, args, ctx)
        except Exception as exc:
            ctx.advance(ExecutionState.ERRORED)
            await self.reporter.on_resolution_error(resolution, ctx, HandlerError(command, exc))
            return ExecutionOutcome.ERRORED
        ctx.advance(ExecutionState.COMPLETED)
        self.logger.debug("Command '%s' completed", command.qualified_name)
        return ExecutionOutcome.COMPLETED
