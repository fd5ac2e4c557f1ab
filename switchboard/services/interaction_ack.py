"""Acknowledgement state machine for slash command interactions.

The platform gives an interaction about three seconds to be acknowledged.
Commands in an automatic mode are deferred for them once a short soft
deadline passes without the handler having answered; manual commands are on
their own and fail with :class:`AcknowledgementTimeout` if they miss the hard
deadline.

    Received -> Pending -> Acknowledged -> Responded* -> Closed
                       \\-> Failed (manual mode, hard deadline missed)
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, List, Optional

from switchboard.configs.schema import InteractionConfig
from switchboard.events.error_events import ErrorEvents
from switchboard.services.arguments import ArgumentParser
from switchboard.services.command_tree import CommandTree, Resolution
from switchboard.services.context import (
    AckMode,
    ExecutionContext,
    ExecutionOutcome,
    ExecutionState,
    InteractionEvent,
)
from switchboard.services.dispatch_analytics_service import DispatchAnalyticsService
from switchboard.services.filters import evaluate_chain
from switchboard.services.lookup import InteractionResponder, ObjectLookup
from switchboard.utils.exceptions import (
    AcknowledgementTimeout,
    ArgumentError,
    HandlerError,
    InteractionClosedError,
    InteractionUsageError,
)

logger = logging.getLogger("Switchboard.Interactions")


class SessionState(enum.Enum):
    RECEIVED = "received"
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESPONDED = "responded"
    CLOSED = "closed"
    FAILED = "failed"


class ResponseHandle:
    """A non-ephemeral response that can still be edited or deleted."""

    def __init__(self, session: "InteractionSession", message: Any, *, original: bool = False) -> None:
        self.session = session
        self.message = message
        self.original = original
        self.deleted = False

    async def edit(self, content: Optional[str] = None, **options: Any) -> Any:
        self._ensure_usable()
        responder = self.session.responder
        if self.original:
            self.message = await responder.edit_original(content, **options)
        else:
            self.message = await responder.edit_message(self.message, content, **options)
        return self.message

    async def delete(self) -> None:
        self._ensure_usable()
        responder = self.session.responder
        if self.original:
            await responder.delete_original()
        else:
            await responder.delete_message(self.message)
        self.deleted = True

    def _ensure_usable(self) -> None:
        self.session.ensure_open()
        if self.deleted:
            raise InteractionUsageError("This response was already deleted")


class InteractionSession:
    """Mutable per-interaction state shared between the controller and the handler."""

    def __init__(self, event: InteractionEvent, responder: InteractionResponder, *, mode: AckMode) -> None:
        self.event = event
        self.responder = responder
        self.mode = mode
        self.state = SessionState.RECEIVED
        self.acknowledged_at: Optional[float] = None
        self.ephemeral: Optional[bool] = None
        self.responses: List[ResponseHandle] = []
        self.failure: Optional[AcknowledgementTimeout] = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<InteractionSession id={self.event.interaction_id} mode={self.mode.value} state={self.state.value}>"

    @property
    def acknowledged(self) -> bool:
        return self.acknowledged_at is not None

    @property
    def closed(self) -> bool:
        return self.state in (SessionState.CLOSED, SessionState.FAILED)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.event.received_at) * 1000.0

    def ensure_open(self) -> None:
        if self.failure is not None:
            raise AcknowledgementTimeout(self.failure.interaction_id, self.failure.elapsed_ms)
        if self.state is SessionState.CLOSED:
            raise InteractionClosedError("The interaction is closed; no further responses are allowed")

    # ------------------------------------------------------------------ acknowledgement
    async def acknowledge(self, *, ephemeral: bool = False) -> None:
        """Defer the response. A second call raises without touching the first."""
        async with self._lock:
            self.ensure_open()
            if self.acknowledged:
                raise InteractionUsageError("The interaction was already acknowledged")
            await self.responder.defer(ephemeral=ephemeral)
            self._mark_acknowledged(ephemeral)

    async def auto_acknowledge(self) -> bool:
        """Defer on the handler's behalf; no-op when already acknowledged or closed."""
        async with self._lock:
            if self.acknowledged or self.closed or self.mode is AckMode.MANUAL:
                return False
            ephemeral = self.mode is AckMode.AUTO_EPHEMERAL
            await self.responder.defer(ephemeral=ephemeral)
            self._mark_acknowledged(ephemeral)
            return True

    def _mark_acknowledged(self, ephemeral: bool) -> None:
        self.acknowledged_at = time.monotonic()
        self.ephemeral = ephemeral
        if not self.closed:
            self.state = SessionState.ACKNOWLEDGED

    # ------------------------------------------------------------------ responses
    async def respond(self, content: Optional[str] = None, *, ephemeral: bool = False, **options: Any) -> Optional[ResponseHandle]:
        """Send a response; the first one acknowledges the interaction if needed.

        Ephemeral responses return ``None`` since they cannot be edited or deleted.
        """
        async with self._lock:
            self.ensure_open()
            original = False
            if not self.acknowledged:
                message = await self.responder.send_initial(content, ephemeral=ephemeral, **options)
                self._mark_acknowledged(ephemeral)
                original = True
            else:
                message = await self.responder.send_followup(content, ephemeral=ephemeral, **options)
            self.state = SessionState.RESPONDED
            if ephemeral:
                return None
            handle = ResponseHandle(self, message, original=original)
            self.responses.append(handle)
            return handle

    async def edit_original(self, content: Optional[str] = None, **options: Any) -> Any:
        self._ensure_original_editable()
        return await self.responder.edit_original(content, **options)

    async def delete_original(self) -> None:
        self._ensure_original_editable()
        await self.responder.delete_original()

    def _ensure_original_editable(self) -> None:
        self.ensure_open()
        if not self.acknowledged:
            raise InteractionUsageError("Nothing to edit: the interaction has not been acknowledged yet")
        if self.ephemeral:
            raise InteractionUsageError("Ephemeral responses cannot be edited or deleted")

    # ------------------------------------------------------------------ lifecycle
    def close(self) -> None:
        if not self.closed:
            self.state = SessionState.CLOSED

    def fail(self, error: AcknowledgementTimeout) -> None:
        self.failure = error
        self.state = SessionState.FAILED


class InteractionAckController:
    """Dispatch interactions against a command tree under the acknowledgement deadlines."""

    def __init__(
        self,
        tree: CommandTree,
        lookup: ObjectLookup,
        *,
        config: Optional[InteractionConfig] = None,
        reporter: Optional[ErrorEvents] = None,
        analytics: Optional[DispatchAnalyticsService] = None,
        parser: Optional[ArgumentParser] = None,
        rejection_template: str = "You cannot use this command. Requirement: {criteria}",
    ) -> None:
        self.tree = tree
        self.lookup = lookup
        self.config = config or InteractionConfig()
        self.reporter = reporter or ErrorEvents()
        self.analytics = analytics
        self.parser = parser or ArgumentParser()
        self.rejection_template = rejection_template

    @property
    def default_mode(self) -> AckMode:
        return AckMode(self.config.default_ack_mode)

    async def dispatch(self, event: InteractionEvent, responder: InteractionResponder) -> Optional[InteractionSession]:
        resolution = self.tree.find(event.command_name)
        if resolution is None:
            logger.warning("Received interaction for unknown command '%s'", event.command_name)
            return None

        session = InteractionSession(event, responder, mode=resolution.ack_mode or self.default_mode)
        ctx = ExecutionContext(
            event=event,
            lookup=self.lookup,
            command=resolution.command,
            scopes=resolution.scopes,
            invoked_with=resolution.invoked_with,
            session=session,
        )
        ctx.advance(ExecutionState.NODE_RESOLVED)
        session.state = SessionState.PENDING
        started = time.monotonic()

        hard_timer = asyncio.create_task(self._hard_deadline(session, ctx))
        soft_timer = None
        if session.mode is not AckMode.MANUAL:
            soft_timer = asyncio.create_task(self._soft_deadline(session))
        outcome = ExecutionOutcome.ERRORED
        try:
            outcome = await self._run(resolution, session, ctx)
        finally:
            hard_timer.cancel()
            await self._finish(session, ctx, outcome)
            if soft_timer is not None:
                soft_timer.cancel()
        if self.analytics is not None:
            await self.analytics.record_dispatch(ctx, outcome, started)
        return session

    async def _run(self, resolution: Resolution, session: InteractionSession, ctx: ExecutionContext) -> ExecutionOutcome:
        command = resolution.command
        try:
            verdict = await evaluate_chain(resolution.filters, ctx)
        except Exception as exc:
            ctx.advance(ExecutionState.ERRORED)
            await self.reporter.on_resolution_error(resolution, ctx, HandlerError(command, exc))
            return ExecutionOutcome.ERRORED
        if not verdict.passed:
            logger.debug("Filters rejected '%s' for user %s", command.qualified_name, ctx.author_id)
            if verdict.description:
                await self.reporter.reply(ctx, self.rejection_template.format(criteria=verdict.description))
            return ExecutionOutcome.FILTERED
        ctx.advance(ExecutionState.FILTERS_PASSED)

        options = session.event.options
        if command.is_raw:
            args: Any = {option.name: option.value for option in options}
        else:
            try:
                args = await self.parser.map_options(command.arguments, options, ctx)
            except ArgumentError as error:
                ctx.advance(ExecutionState.ERRORED)
                await self.reporter.on_resolution_error(resolution, ctx, error)
                return ExecutionOutcome.ARGUMENT_ERROR
            except Exception as exc:
                ctx.advance(ExecutionState.ERRORED)
                await self.reporter.on_resolution_error(resolution, ctx, HandlerError(command, exc))
                return ExecutionOutcome.ERRORED
        ctx.advance(ExecutionState.ARGUMENTS_PARSED)

        ctx.advance(ExecutionState.INVOKED)
        try:
            await command.handler(session, args, ctx)
        except Exception as exc:
            ctx.advance(ExecutionState.ERRORED)
            await self.reporter.on_resolution_error(resolution, ctx, HandlerError(command, exc))
            return ExecutionOutcome.ERRORED
        ctx.advance(ExecutionState.COMPLETED)
        return ExecutionOutcome.COMPLETED

    async def _finish(self, session: InteractionSession, ctx: ExecutionContext, outcome: ExecutionOutcome) -> None:
        if not session.acknowledged and not session.closed:
            if session.mode is not AckMode.MANUAL:
                try:
                    await session.auto_acknowledge()
                except Exception as exc:
                    logger.warning("Automatic acknowledgement on return failed for %s: %s", session, exc)
            elif outcome is ExecutionOutcome.COMPLETED:
                # Nothing can acknowledge a returned handler's interaction any more.
                await self._timeout(session, ctx)
            else:
                logger.debug("Closing unacknowledged %s after %s", session, outcome.value)
        session.close()

    async def _soft_deadline(self, session: InteractionSession) -> None:
        await asyncio.sleep(self._remaining(session, self.config.soft_deadline_ms))
        try:
            if await session.auto_acknowledge():
                logger.debug("Soft deadline passed; deferred %s automatically", session)
        except Exception as exc:
            logger.warning("Automatic acknowledgement failed for %s: %s", session, exc)

    async def _hard_deadline(self, session: InteractionSession, ctx: ExecutionContext) -> None:
        await asyncio.sleep(self._remaining(session, self.config.hard_deadline_ms))
        if not session.acknowledged and not session.closed:
            await self._timeout(session, ctx)

    async def _timeout(self, session: InteractionSession, ctx: ExecutionContext) -> None:
        error = AcknowledgementTimeout(session.event.interaction_id, session.elapsed_ms)
        session.fail(error)
        await self.reporter.on_ack_timeout(ctx, error)

    @staticmethod
    def _remaining(session: InteractionSession, deadline_ms: int) -> float:
        elapsed = time.monotonic() - session.event.received_at
        return max(0.0, deadline_ms / 1000.0 - elapsed)
