"""Application bootstrap for the Switchboard Discord bot.

This module wires together configuration, logging, the dispatcher and dynamic
command module loading so the bot can be launched with
``python -m switchboard.main``. Side effects stay in the ``setup_hook``
lifecycle so the import is safe for testing.
"""

import importlib
import logging
import os
from typing import List, Optional

import discord

from switchboard.configs.schema import AppConfig
from switchboard.configs.settings import CONFIG, DISCORD_TOKEN
from switchboard.events.gateway_events import GatewayEvents
from switchboard.services.command_tree import CommandTree
from switchboard.services.discord_bridge import DiscordLookup, DiscordMessenger, tree_payloads
from switchboard.services.dispatch_analytics_service import DispatchAnalyticsService
from switchboard.services.dispatcher import Dispatcher
from switchboard.utils.logger import setup_logging


def build_intents(config: AppConfig) -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = config.bot.intents.members
    intents.message_content = config.bot.intents.message_content  # Requires privileged intent
    return intents


class Switchboard(discord.AutoShardedClient):
    """Gateway client that hands every message and interaction to the dispatcher.

    ``AutoShardedClient`` is used so that the bot can scale automatically when
    the guild count grows. Command modules register on :attr:`text_commands`
    and :attr:`slash_commands` during ``setup_hook``; both trees are frozen
    before the first event is dispatched.
    """

    def __init__(self, config: AppConfig = CONFIG):
        super().__init__(intents=build_intents(config), shard_count=config.bot.shard_count)
        self.config = config
        self.logger: Optional[logging.Logger] = None
        self.analytics_service = DispatchAnalyticsService(config.analytics)
        self.dispatcher = Dispatcher(
            DiscordLookup(self),
            DiscordMessenger(self),
            config=config,
            analytics=self.analytics_service,
        )
        self.text_commands: CommandTree = self.dispatcher.create_tree()
        self.slash_commands: CommandTree = self.dispatcher.slash_tree
        self.gateway_events = GatewayEvents(self.dispatcher, ignore_bots=config.bot.ignore_bots)
        self.loaded_modules: List[str] = []

    async def setup_hook(self):
        """Configure logging, load command modules and start dispatching."""
        setup_logging(self.config.logging)

        self.logger = logging.getLogger("Switchboard")
        self.logger.info("Initializing Switchboard...")

        await self.analytics_service.start()
        for name in self._command_module_names():
            module = importlib.import_module(name)
            module.setup(self)
            self.loaded_modules.append(name)
            self.logger.info("Loaded command module: %s", name)

        if self.user is not None:
            self.dispatcher.set_bot_id(self.user.id)
        self.dispatcher.start()

        if self.config.bot.sync_commands_on_start:
            await self._sync_application_commands()

    def _command_module_names(self) -> List[str]:
        if self.config.bot.command_modules:
            return list(self.config.bot.command_modules)
        folder = os.path.join(os.path.dirname(__file__), "commands")
        return [
            f"switchboard.commands.{file[:-3]}"
            for file in sorted(os.listdir(folder))
            if file.endswith(".py") and not file.startswith("__")
        ]

    async def _sync_application_commands(self) -> None:
        """Publish the slash command tree as the global application commands."""
        if self.application_id is None:
            if self.logger:
                self.logger.warning("Slash command sync skipped: application id is not known yet.")
            return
        payload = tree_payloads(self.slash_commands)
        await self.http.bulk_upsert_global_commands(self.application_id, payload=payload)
        if self.logger:
            self.logger.info("Slash commands synced (%s top-level command(s)).", len(payload))

    async def on_ready(self):
        if self.user is not None:
            self.dispatcher.set_bot_id(self.user.id)
        if self.logger:
            self.logger.info("Connected as %s across %s guild(s).", self.user, len(self.guilds))

    async def on_message(self, message: discord.Message):
        await self.gateway_events.on_message(message)

    async def on_interaction(self, interaction: discord.Interaction):
        await self.gateway_events.on_interaction(interaction)

    async def close(self):
        """Drain in-flight dispatches and flush analytics before disconnecting."""
        try:
            await self.dispatcher.stop()
        except Exception as e:
            if self.logger:
                self.logger.error("Error while draining dispatcher: %s", e)
        await self.analytics_service.close()
        await super().close()


def main() -> None:
    if not DISCORD_TOKEN:
        raise SystemExit("DISCORD_TOKEN is not set")
    bot = Switchboard()
    bot.run(DISCORD_TOKEN, log_handler=None)


if __name__ == "__main__":
    main()
