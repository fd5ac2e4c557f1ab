"""Entry point for inbound events.

Building trees has no side effects; the dispatcher only starts reacting to
events once :meth:`Dispatcher.start` has frozen every tree. Each event is
handled in its own task, and a failure in one never reaches another.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from switchboard.configs.schema import AppConfig
from switchboard.events.error_events import ErrorEvents
from switchboard.services.command_tree import CommandTree
from switchboard.services.context import ExecutionOutcome, InteractionEvent, MessageEvent
from switchboard.services.dispatch_analytics_service import DispatchAnalyticsService
from switchboard.services.interaction_ack import InteractionAckController, InteractionSession
from switchboard.services.lookup import InteractionResponder, Messenger, ObjectLookup
from switchboard.services.text_executor import TextCommandExecutor
from switchboard.utils.exceptions import RegistrationError


class Dispatcher:
    """Fan inbound messages and interactions out to executors."""

    def __init__(
        self,
        lookup: ObjectLookup,
        messenger: Messenger,
        *,
        config: Optional[AppConfig] = None,
        analytics: Optional[DispatchAnalyticsService] = None,
    ) -> None:
        self.config = config or AppConfig()
        self.lookup = lookup
        self.messenger = messenger
        self.analytics = analytics
        self.reporter = ErrorEvents(messenger, self.config.dispatch)
        self.logger = logging.getLogger("Switchboard.Dispatcher")
        self.slash_tree = CommandTree(default_prefix="/", mention_prefix=False)
        self.executors: List[TextCommandExecutor] = []
        self.interactions = InteractionAckController(
            self.slash_tree,
            lookup,
            config=self.config.interactions,
            reporter=self.reporter,
            analytics=analytics,
            rejection_template=self.config.dispatch.rejection_template,
        )
        self._accepting = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def accepting(self) -> bool:
        return self._accepting

    # ------------------------------------------------------------------ registration
    def create_tree(self, **overrides) -> CommandTree:
        """Create a text command tree using the configured prefixes unless overridden."""
        dispatch = self.config.dispatch
        options = {
            "default_prefix": dispatch.default_prefix,
            "additional_prefixes": dispatch.additional_prefixes,
            "mention_prefix": dispatch.mention_prefix,
        }
        options.update(overrides)
        tree = CommandTree(**options)
        self.add_tree(tree)
        return tree

    def add_tree(self, tree: CommandTree) -> TextCommandExecutor:
        if self._accepting:
            raise RegistrationError("Cannot add command trees after dispatch has started")
        executor = TextCommandExecutor(
            tree,
            self.lookup,
            self.messenger,
            config=self.config.dispatch,
            reporter=self.reporter,
            analytics=self.analytics,
        )
        self.executors.append(executor)
        return executor

    def set_bot_id(self, bot_id: int) -> None:
        for executor in self.executors:
            executor.set_bot_id(bot_id)

    # ------------------------------------------------------------------ lifecycle
    def start(self) -> None:
        """Freeze every tree and begin accepting events."""
        if self._accepting:
            return
        for executor in self.executors:
            executor.tree.freeze()
        self.slash_tree.freeze()
        self._accepting = True
        self.logger.info(
            "Dispatcher accepting events (%s text tree(s), %s slash command(s)).",
            len(self.executors),
            sum(1 for _ in self.slash_tree.walk()),
        )

    async def stop(self) -> None:
        """Stop accepting events and wait for in-flight dispatches."""
        self._accepting = False
        await self.drain()

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ events
    def handle_message(self, event: MessageEvent) -> Optional[asyncio.Task]:
        if not self._accepting:
            self.logger.debug("Dropping message %s; dispatcher not started", event.message_id)
            return None
        return self._spawn(self.process_message(event))

    def handle_interaction(self, event: InteractionEvent, responder: InteractionResponder) -> Optional[asyncio.Task]:
        if not self._accepting:
            self.logger.debug("Dropping interaction %s; dispatcher not started", event.interaction_id)
            return None
        return self._spawn(self.process_interaction(event, responder))

    async def process_message(self, event: MessageEvent) -> List[ExecutionOutcome]:
        outcomes = []
        for executor in self.executors:
            try:
                outcomes.append(await executor.execute(event))
            except Exception:
                self.logger.exception("Text dispatch failed for message %s", event.message_id)
                outcomes.append(ExecutionOutcome.ERRORED)
        return outcomes

    async def process_interaction(
        self, event: InteractionEvent, responder: InteractionResponder
    ) -> Optional[InteractionSession]:
        try:
            return await self.interactions.dispatch(event, responder)
        except Exception:
            self.logger.exception("Interaction dispatch failed for %s", event.command_name)
            return None

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
