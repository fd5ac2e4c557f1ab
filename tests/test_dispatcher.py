"""
Tests for the event dispatcher (switchboard/services/dispatcher.py).
"""

import pytest

from conftest import interaction, message
from switchboard.configs.schema import AppConfig, DispatchConfig
from switchboard.services.command_tree import CommandTree
from switchboard.services.context import ExecutionOutcome
from switchboard.services.dispatcher import Dispatcher
from switchboard.utils.exceptions import RegistrationError


@pytest.fixture
def dispatcher(lookup, messenger):
    return Dispatcher(lookup, messenger, config=AppConfig(dispatch=DispatchConfig(default_prefix="!", mention_prefix=False)))


# ─── Registration ─────────────────────────────────────────────────────────────

class TestRegistration:
    def test_create_tree_uses_configured_prefix(self, dispatcher):
        tree = dispatcher.create_tree()
        assert tree.default_prefix == "!"
        assert dispatcher.executors[0].tree is tree

    def test_create_tree_overrides(self, dispatcher):
        assert dispatcher.create_tree(default_prefix="?").default_prefix == "?"

    def test_start_freezes_every_tree(self, dispatcher):
        tree = dispatcher.create_tree()
        dispatcher.start()
        assert dispatcher.accepting
        assert tree.frozen
        assert dispatcher.slash_tree.frozen

    def test_no_trees_after_start(self, dispatcher):
        dispatcher.start()
        with pytest.raises(RegistrationError):
            dispatcher.add_tree(CommandTree())


# ─── Events ───────────────────────────────────────────────────────────────────

class TestEvents:
    @pytest.mark.asyncio
    async def test_events_dropped_before_start(self, dispatcher, responder):
        assert dispatcher.handle_message(message("!ping")) is None
        assert dispatcher.handle_interaction(interaction("ping"), responder) is None

    @pytest.mark.asyncio
    async def test_message_runs_every_tree(self, dispatcher, messenger):
        first = dispatcher.create_tree()
        second = dispatcher.create_tree(default_prefix="?")

        @first.command()
        async def ping(event, args, ctx):
            await messenger.send_message(ctx.channel_id, "pong")

        @second.command(name="ping")
        async def other(event, args, ctx):
            await messenger.send_message(ctx.channel_id, "other")

        dispatcher.start()
        task = dispatcher.handle_message(message("!ping"))
        assert await task == [ExecutionOutcome.COMPLETED, ExecutionOutcome.IGNORED]
        assert messenger.contents == ["pong"]

    @pytest.mark.asyncio
    async def test_failing_executor_is_isolated(self, dispatcher, messenger):
        tree = dispatcher.create_tree()

        @tree.command()
        async def ping(event, args, ctx):
            await messenger.send_message(ctx.channel_id, "pong")

        dispatcher.start()

        async def explode(event):
            raise RuntimeError("broken executor")

        dispatcher.executors.insert(0, type("Broken", (), {"execute": staticmethod(explode)})())
        outcomes = await dispatcher.process_message(message("!ping"))
        assert outcomes == [ExecutionOutcome.ERRORED, ExecutionOutcome.COMPLETED]
        assert messenger.contents == ["pong"]

    @pytest.mark.asyncio
    async def test_interaction_goes_to_slash_tree(self, dispatcher, responder):
        @dispatcher.slash_tree.command()
        async def ping(session, args, ctx):
            await session.respond("pong")

        dispatcher.start()
        session = await dispatcher.handle_interaction(interaction("ping"), responder)
        assert session.closed
        assert responder.calls == [("send_initial", "pong", False)]

    @pytest.mark.asyncio
    async def test_stop_drains_in_flight(self, dispatcher, messenger):
        tree = dispatcher.create_tree()

        @tree.command()
        async def ping(event, args, ctx):
            await messenger.send_message(ctx.channel_id, "pong")

        dispatcher.start()
        dispatcher.handle_message(message("!ping"))
        dispatcher.handle_message(message("!ping"))
        await dispatcher.stop()
        assert messenger.contents == ["pong", "pong"]
        assert not dispatcher.accepting
        assert dispatcher.handle_message(message("!ping")) is None
