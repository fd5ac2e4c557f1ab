"""Custom exception types used across the dispatcher."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from switchboard.services.arguments import Argument


class SwitchboardError(Exception):
    """Base class for every error raised by the dispatch engine."""


class UserFacingError(SwitchboardError):
    """Errors that should be presented to users as a reply."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RegistrationError(SwitchboardError):
    """Invalid command tree: duplicate names, nesting too deep, late registration."""


class ArgumentError(UserFacingError):
    """A single argument failed to parse or validate."""

    def __init__(self, argument: "Argument", reason: str):
        self.argument = argument
        self.reason = reason
        super().__init__(f"Invalid argument `{argument.name}`: {reason}")


class HandlerError(SwitchboardError):
    """Wraps an exception raised inside a command handler."""

    def __init__(self, command: Any, original: BaseException):
        self.command = command
        self.original = original
        name = getattr(command, "qualified_name", None) or getattr(command, "name", "?")
        super().__init__(f"Command '{name}' raised {type(original).__name__}: {original}")


class AcknowledgementTimeout(SwitchboardError):
    """A manual-mode interaction was not acknowledged before the hard deadline."""

    def __init__(self, interaction_id: Optional[int], elapsed_ms: float):
        self.interaction_id = interaction_id
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Interaction {interaction_id} was not acknowledged in time ({elapsed_ms:.0f}ms)."
        )


class InteractionUsageError(SwitchboardError):
    """An interaction session method was called in a state that does not allow it."""


class InteractionClosedError(InteractionUsageError):
    """The interaction session was already closed when a mutation was attempted."""
