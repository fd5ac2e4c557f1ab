"""Typed argument specifications and the parser that fills them.

A command declares an :class:`ArgumentSpec`, an ordered list of
:class:`Argument` descriptors. Text invocations are parsed token by token in
declaration order; interactions arrive with options already typed by the
platform and are only mapped and validated.

Parsing is all-or-nothing: the first failing argument raises
:class:`~switchboard.utils.exceptions.ArgumentError` and no partial mapping
ever reaches a handler.
"""

from __future__ import annotations

import enum
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Optional, Sequence, Tuple

import discord

from switchboard.services.context import ExecutionContext, InteractionOption
from switchboard.services.lookup import ChannelRecord
from switchboard.utils.exceptions import ArgumentError, RegistrationError
from switchboard.utils.mentions import next_argument, parse_id

logger = logging.getLogger("Switchboard.Arguments")


class ArgumentKind(enum.Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TEXT = "text"
    STRING_LIST = "string_list"
    USER = "user"
    MEMBER = "member"
    CHANNEL = "channel"
    ROLE = "role"
    TYPED_CHANNEL = "typed_channel"

    @property
    def is_remainder(self) -> bool:
        return self in (ArgumentKind.TEXT, ArgumentKind.STRING_LIST)

    @property
    def is_lookup(self) -> bool:
        return self in _LOOKUP_KINDS

    @property
    def is_numeric(self) -> bool:
        return self in (ArgumentKind.INTEGER, ArgumentKind.FLOAT)


_LOOKUP_KINDS = frozenset(
    {
        ArgumentKind.USER,
        ArgumentKind.MEMBER,
        ArgumentKind.CHANNEL,
        ArgumentKind.ROLE,
        ArgumentKind.TYPED_CHANNEL,
    }
)

_TRUE_WORDS = frozenset({"true", "yes", "y", "on", "1", "enable", "enabled"})
_FALSE_WORDS = frozenset({"false", "no", "n", "off", "0", "disable", "disabled"})
# Plain ASCII decimal literals; rejects "1_000", non-ASCII digits, "inf" and "nan".
_INTEGER = re.compile(r"[+-]?[0-9]+")
_DECIMAL = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


@dataclass(frozen=True)
class Argument:
    """One positional argument of a command."""

    name: str
    kind: ArgumentKind = ArgumentKind.STRING
    required: bool = True
    default: Any = None
    choices: Optional[Tuple[Any, ...]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    channel_types: Optional[FrozenSet[discord.ChannelType]] = None
    description: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.name or any(ch.isspace() for ch in self.name):
            raise RegistrationError(f"Invalid argument name: {self.name!r}")
        if not isinstance(self.kind, ArgumentKind):
            object.__setattr__(self, "kind", ArgumentKind(self.kind))
        if self.required and self.default is not None:
            raise RegistrationError(f"Argument '{self.name}' is required and cannot have a default")
        if self.choices is not None:
            object.__setattr__(self, "choices", tuple(self.choices))
            if not self.choices:
                raise RegistrationError(f"Argument '{self.name}' has an empty choice set")
        if self.min_value is not None or self.max_value is not None:
            if not self.kind.is_numeric:
                raise RegistrationError(f"Argument '{self.name}' is not numeric and cannot have bounds")
            if (
                self.min_value is not None
                and self.max_value is not None
                and self.min_value > self.max_value
            ):
                raise RegistrationError(f"Argument '{self.name}' has min_value above max_value")
        if self.kind is ArgumentKind.TYPED_CHANNEL:
            if not self.channel_types:
                raise RegistrationError(f"Argument '{self.name}' needs at least one channel type")
            object.__setattr__(self, "channel_types", frozenset(self.channel_types))
        elif self.channel_types:
            raise RegistrationError(f"Argument '{self.name}' only typed channels accept channel_types")

    @property
    def usage(self) -> str:
        label = f"{self.name}..." if self.kind.is_remainder else self.name
        return f"<{label}>" if self.required else f"[{label}]"


class ArgumentSpec(Sequence[Argument]):
    """Ordered, validated argument descriptors of one command."""

    def __init__(self, arguments: Iterable[Argument] = ()) -> None:
        self._arguments: Tuple[Argument, ...] = tuple(arguments)
        seen = set()
        optional_seen = False
        for index, argument in enumerate(self._arguments):
            if not isinstance(argument, Argument):
                raise RegistrationError(f"Expected an Argument, got {type(argument).__name__}")
            if argument.name in seen:
                raise RegistrationError(f"Duplicate argument name: {argument.name}")
            seen.add(argument.name)
            if argument.kind.is_remainder and index != len(self._arguments) - 1:
                raise RegistrationError(
                    f"Argument '{argument.name}' consumes the remaining text and must be last"
                )
            if argument.required and optional_seen:
                raise RegistrationError(
                    f"Required argument '{argument.name}' cannot follow an optional argument"
                )
            optional_seen = optional_seen or not argument.required

    def __getitem__(self, index):
        return self._arguments[index]

    def __len__(self) -> int:
        return len(self._arguments)

    def __iter__(self) -> Iterator[Argument]:
        return iter(self._arguments)

    def __repr__(self) -> str:
        return f"ArgumentSpec({list(self._arguments)!r})"

    @property
    def usage(self) -> str:
        return " ".join(argument.usage for argument in self._arguments)


class ArgumentParser:
    """Convert raw text or interaction options into typed argument values."""

    async def parse(self, spec: ArgumentSpec, raw_text: str, ctx: ExecutionContext) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        remaining = raw_text or ""
        for argument in spec:
            if argument.kind is ArgumentKind.TEXT:
                text = remaining.strip()
                values[argument.name] = self._check_choice(argument, text) if text else self._missing(argument)
                remaining = ""
                continue
            if argument.kind is ArgumentKind.STRING_LIST:
                items = remaining.split()
                if items:
                    values[argument.name] = [self._check_choice(argument, item) for item in items]
                else:
                    values[argument.name] = self._missing(argument)
                remaining = ""
                continue
            if not remaining.strip():
                values[argument.name] = self._missing(argument)
                continue
            token, remaining = next_argument(remaining)
            values[argument.name] = await self._convert(argument, token, ctx)
        if remaining.strip():
            logger.debug("Ignoring surplus argument text: %r", remaining)
        return values

    async def map_options(
        self,
        spec: ArgumentSpec,
        options: Sequence[InteractionOption],
        ctx: ExecutionContext,
    ) -> Dict[str, Any]:
        supplied = {option.name: option.value for option in options}
        unknown = set(supplied) - {argument.name for argument in spec}
        if unknown:
            logger.debug("Ignoring unknown interaction options: %s", ", ".join(sorted(unknown)))
        values: Dict[str, Any] = {}
        for argument in spec:
            value = supplied.get(argument.name)
            if value is None or (isinstance(value, str) and not value.strip()):
                values[argument.name] = self._missing(argument)
                continue
            values[argument.name] = await self._map_value(argument, value, ctx)
        return values

    # ------------------------------------------------------------------ conversion
    async def _convert(self, argument: Argument, token: str, ctx: ExecutionContext) -> Any:
        kind = argument.kind
        if kind is ArgumentKind.STRING:
            return self._check_choice(argument, token)
        if kind is ArgumentKind.INTEGER:
            return self._check_number(argument, self._to_int(argument, token))
        if kind is ArgumentKind.FLOAT:
            return self._check_number(argument, self._to_float(argument, token))
        if kind is ArgumentKind.BOOLEAN:
            return self._check_choice(argument, self._to_bool(argument, token))
        target = parse_id(token, "channel" if kind is ArgumentKind.TYPED_CHANNEL else kind.value)
        if target is None:
            raise ArgumentError(argument, f"expected a {self._noun(argument)} mention or id, got `{token}`")
        return await self._lookup(argument, target, ctx)

    async def _map_value(self, argument: Argument, value: Any, ctx: ExecutionContext) -> Any:
        kind = argument.kind
        if kind.is_lookup:
            if isinstance(value, (int, str)):
                target = parse_id(str(value), "channel" if kind is ArgumentKind.TYPED_CHANNEL else kind.value)
                if target is None:
                    raise ArgumentError(argument, f"expected a {self._noun(argument)} id")
                return await self._lookup(argument, target, ctx)
            # The platform already resolved the object.
            if kind is ArgumentKind.TYPED_CHANNEL and isinstance(value, ChannelRecord):
                self._check_channel_type(argument, value)
            return value
        if kind is ArgumentKind.INTEGER:
            if isinstance(value, str):
                value = self._to_int(argument, value)
            elif isinstance(value, float):
                value = self._to_int(argument, repr(value))
            return self._check_number(argument, value)
        if kind is ArgumentKind.FLOAT:
            return self._check_number(argument, self._to_float(argument, str(value)))
        if kind is ArgumentKind.BOOLEAN:
            if not isinstance(value, bool):
                value = self._to_bool(argument, str(value))
            return self._check_choice(argument, value)
        if kind is ArgumentKind.STRING_LIST:
            items = value.split() if isinstance(value, str) else list(value)
            if not items:
                return self._missing(argument)
            return [self._check_choice(argument, item) for item in items]
        return self._check_choice(argument, str(value))

    async def _lookup(self, argument: Argument, target: int, ctx: ExecutionContext) -> Any:
        kind = argument.kind
        lookup = ctx.lookup
        if kind is ArgumentKind.USER:
            found = await lookup.fetch_user(target)
        elif kind in (ArgumentKind.MEMBER, ArgumentKind.ROLE):
            if ctx.guild_id is None:
                raise ArgumentError(argument, f"a {self._noun(argument)} can only be resolved inside a server")
            if kind is ArgumentKind.MEMBER:
                found = await lookup.fetch_member(ctx.guild_id, target)
            else:
                found = await lookup.fetch_role(ctx.guild_id, target)
        else:
            found = await lookup.fetch_channel(target)
            if found is not None and kind is ArgumentKind.TYPED_CHANNEL:
                self._check_channel_type(argument, found)
        if found is None:
            raise ArgumentError(argument, f"{self._noun(argument)} `{target}` was not found")
        return found

    # ------------------------------------------------------------------ validation
    @staticmethod
    def _missing(argument: Argument) -> Any:
        if argument.required:
            raise ArgumentError(argument, "this argument is required")
        return argument.default

    @staticmethod
    def _check_choice(argument: Argument, value: Any) -> Any:
        if argument.choices is not None and value not in argument.choices:
            options = ", ".join(f"`{choice}`" for choice in argument.choices)
            raise ArgumentError(argument, f"must be one of {options}")
        return value

    def _check_number(self, argument: Argument, value: Any) -> Any:
        if argument.min_value is not None and value < argument.min_value:
            raise ArgumentError(argument, f"must be at least {argument.min_value:g}")
        if argument.max_value is not None and value > argument.max_value:
            raise ArgumentError(argument, f"must be at most {argument.max_value:g}")
        return self._check_choice(argument, value)

    @staticmethod
    def _to_int(argument: Argument, token: str) -> int:
        literal = token.strip()
        if _INTEGER.fullmatch(literal):
            return int(literal)
        if not _DECIMAL.fullmatch(literal):
            raise ArgumentError(argument, f"expected a whole number, got `{token}`")
        number = float(literal)
        if not math.isfinite(number):
            raise ArgumentError(argument, f"expected a whole number, got `{token}`")
        return int(number)

    @staticmethod
    def _to_float(argument: Argument, token: str) -> float:
        literal = token.strip()
        if not _DECIMAL.fullmatch(literal):
            raise ArgumentError(argument, f"expected a number, got `{token}`")
        number = float(literal)
        if not math.isfinite(number):
            raise ArgumentError(argument, f"expected a finite number, got `{token}`")
        return number

    @staticmethod
    def _to_bool(argument: Argument, token: str) -> bool:
        lowered = token.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ArgumentError(argument, f"expected yes or no, got `{token}`")

    @staticmethod
    def _check_channel_type(argument: Argument, channel: ChannelRecord) -> None:
        if channel.type not in argument.channel_types:
            wanted = " or ".join(sorted(str(kind) for kind in argument.channel_types))
            raise ArgumentError(argument, f"expected a {wanted} channel")

    @staticmethod
    def _noun(argument: Argument) -> str:
        return "channel" if argument.kind is ArgumentKind.TYPED_CHANNEL else argument.kind.value
