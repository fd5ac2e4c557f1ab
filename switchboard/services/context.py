"""Inbound event payloads and the per-invocation execution context."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Tuple, Union

if TYPE_CHECKING:
    from switchboard.services.command_tree import CommandGroup, CommandSpec
    from switchboard.services.interaction_ack import InteractionSession
    from switchboard.services.lookup import ObjectLookup


@dataclass(frozen=True)
class MessageEvent:
    """A chat message as delivered by the gateway layer."""

    content: str
    channel_id: int
    author_id: int
    guild_id: Optional[int] = None
    member_role_ids: Tuple[int, ...] = ()
    message_id: Optional[int] = None
    author_is_bot: bool = False
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class InteractionOption:
    name: str
    value: Any


@dataclass(frozen=True)
class InteractionEvent:
    """A slash command invocation with options already typed by the platform."""

    command_name: str
    channel_id: int
    member_id: int
    guild_id: Optional[int] = None
    options: Tuple[InteractionOption, ...] = ()
    interaction_id: Optional[int] = None
    received_at: float = field(default_factory=time.monotonic)
    raw: Any = field(default=None, compare=False, repr=False)


class AckMode(enum.Enum):
    """How an interaction is acknowledged when the handler has not done so itself."""

    MANUAL = "manual"
    AUTO_DEFAULT = "auto_default"
    AUTO_EPHEMERAL = "auto_ephemeral"


class ExecutionState(enum.Enum):
    IDLE = "idle"
    PREFIX_MATCHED = "prefix_matched"
    NODE_RESOLVED = "node_resolved"
    FILTERS_PASSED = "filters_passed"
    ARGUMENTS_PARSED = "arguments_parsed"
    INVOKED = "invoked"
    COMPLETED = "completed"
    ERRORED = "errored"


_TRANSITIONS = {
    ExecutionState.IDLE: {ExecutionState.PREFIX_MATCHED, ExecutionState.NODE_RESOLVED},
    ExecutionState.PREFIX_MATCHED: {ExecutionState.NODE_RESOLVED},
    ExecutionState.NODE_RESOLVED: {ExecutionState.FILTERS_PASSED, ExecutionState.ERRORED},
    ExecutionState.FILTERS_PASSED: {ExecutionState.ARGUMENTS_PARSED, ExecutionState.ERRORED},
    ExecutionState.ARGUMENTS_PARSED: {ExecutionState.INVOKED},
    ExecutionState.INVOKED: {ExecutionState.COMPLETED, ExecutionState.ERRORED},
    ExecutionState.COMPLETED: set(),
    ExecutionState.ERRORED: set(),
}


class ExecutionOutcome(enum.Enum):
    """How a single dispatch ended."""

    IGNORED = "ignored"
    NO_MATCH = "no_match"
    FILTERED = "filtered"
    ARGUMENT_ERROR = "argument_error"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class ExecutionContext:
    """Ephemeral state for one command invocation."""

    event: Union[MessageEvent, InteractionEvent]
    lookup: "ObjectLookup"
    command: Optional["CommandSpec"] = None
    scopes: Tuple["CommandGroup", ...] = ()
    raw_args: str = ""
    prefix: Optional[str] = None
    invoked_with: Tuple[str, ...] = ()
    session: Optional["InteractionSession"] = None
    state: ExecutionState = ExecutionState.IDLE
    error: Optional[BaseException] = None

    @property
    def guild_id(self) -> Optional[int]:
        return self.event.guild_id

    @property
    def channel_id(self) -> int:
        return self.event.channel_id

    @property
    def author_id(self) -> int:
        if isinstance(self.event, MessageEvent):
            return self.event.author_id
        return self.event.member_id

    @property
    def is_interaction(self) -> bool:
        return isinstance(self.event, InteractionEvent)

    def advance(self, state: ExecutionState) -> None:
        """Move to ``state``; skipping a pipeline stage raises ``ValueError``."""
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Cannot move an invocation from {self.state.value} to {state.value}")
        self.state = state
