"""Hierarchical registry of commands and command groups.

The tree is built once at startup and frozen before any event is dispatched.
Groups nest at most two levels deep (the root plus one level of subgroups).
Within a scope every name and alias maps to exactly one child.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from switchboard.configs.schema import DispatchConfig
from switchboard.services.arguments import Argument, ArgumentSpec
from switchboard.services.context import AckMode, ExecutionContext
from switchboard.services.filters import Filter
from switchboard.utils.exceptions import RegistrationError
from switchboard.utils.mentions import split_first

logger = logging.getLogger("Switchboard.CommandTree")

MAX_GROUP_DEPTH = 2

Handler = Callable[..., Awaitable[Any]]
ErrorHandler = Callable[[ExecutionContext, BaseException], Awaitable[Any]]
Node = Union["CommandSpec", "CommandGroup"]


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name or any(ch.isspace() for ch in name):
        raise RegistrationError(f"Invalid command name: {name!r}")
    return name


@dataclass(frozen=True)
class CommandSpec:
    """A leaf command. ``arguments`` is ``None`` for raw commands."""

    name: str
    handler: Handler
    aliases: Tuple[str, ...] = ()
    description: Optional[str] = None
    arguments: Optional[ArgumentSpec] = field(default_factory=ArgumentSpec)
    filters: Optional[Filter] = None
    on_error: Optional[ErrorHandler] = None
    ack_mode: Optional[AckMode] = None
    parent: Optional["CommandGroup"] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _validate_name(self.name)
        object.__setattr__(self, "aliases", tuple(_validate_name(alias) for alias in self.aliases))
        if self.arguments is not None and not isinstance(self.arguments, ArgumentSpec):
            object.__setattr__(self, "arguments", ArgumentSpec(self.arguments))
        if not callable(self.handler):
            raise RegistrationError(f"Handler for '{self.name}' is not callable")

    @property
    def names(self) -> Tuple[str, ...]:
        return (self.name, *self.aliases)

    @property
    def is_raw(self) -> bool:
        return self.arguments is None

    @property
    def qualified_name(self) -> str:
        if self.parent is None or self.parent.qualified_name == "":
            return self.name
        return f"{self.parent.qualified_name} {self.name}"

    @property
    def usage(self) -> str:
        if self.arguments is None:
            return f"{self.qualified_name} <text...>"
        return f"{self.qualified_name} {self.arguments.usage}".rstrip()


@dataclass(frozen=True)
class Resolution:
    """Result of matching invocation text against a tree."""

    command: CommandSpec
    scopes: Tuple["CommandGroup", ...]
    raw_args: str
    invoked_with: Tuple[str, ...] = ()
    is_default: bool = False

    @property
    def filters(self) -> List[Optional[Filter]]:
        """Scope filters root-to-leaf, then the command's own."""
        chain: List[Optional[Filter]] = [scope.filters for scope in self.scopes]
        chain.append(self.command.filters)
        return chain

    @property
    def error_handler(self) -> Optional[ErrorHandler]:
        if self.command.on_error is not None:
            return self.command.on_error
        for scope in reversed(self.scopes):
            if scope.on_error is not None:
                return scope.on_error
        return None

    @property
    def ack_mode(self) -> Optional[AckMode]:
        if self.command.ack_mode is not None:
            return self.command.ack_mode
        for scope in reversed(self.scopes):
            if scope.ack_mode is not None:
                return scope.ack_mode
        return None


class CommandGroup:
    """A named scope holding commands, nested groups and an optional default handler."""

    def __init__(
        self,
        name: Optional[str] = None,
        *,
        aliases: Sequence[str] = (),
        description: Optional[str] = None,
        filters: Optional[Filter] = None,
        on_error: Optional[ErrorHandler] = None,
        ack_mode: Optional[AckMode] = None,
    ) -> None:
        self.name = _validate_name(name) if name is not None else None
        self.aliases = tuple(_validate_name(alias) for alias in aliases)
        self.description = description
        self.filters = filters
        self.on_error = on_error
        self.ack_mode = ack_mode
        self.parent: Optional[CommandGroup] = None
        self.default_command: Optional[CommandSpec] = None
        self._table: Dict[str, Node] = {}
        self._children: Dict[str, Node] = {}
        self._frozen = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.qualified_name!r} children={list(self._children)}>"

    # ------------------------------------------------------------------ structure
    @property
    def names(self) -> Tuple[str, ...]:
        if self.name is None:
            return ()
        return (self.name, *self.aliases)

    @property
    def depth(self) -> int:
        return 1 if self.parent is None else self.parent.depth + 1

    @property
    def height(self) -> int:
        nested = [child.height for child in self._children.values() if isinstance(child, CommandGroup)]
        return 1 + max(nested, default=0)

    @property
    def root(self) -> "CommandGroup":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def frozen(self) -> bool:
        return self.root._frozen

    @property
    def qualified_name(self) -> str:
        if self.parent is None:
            return self.name or ""
        parent = self.parent.qualified_name
        return f"{parent} {self.name}" if parent else (self.name or "")

    @property
    def children(self) -> Dict[str, Node]:
        return dict(self._children)

    def get(self, name: str) -> Optional[Node]:
        return self._table.get(name)

    def walk(self) -> Iterator[CommandSpec]:
        """Yield every leaf command below this scope, depth first."""
        if self.default_command is not None:
            yield self.default_command
        for child in self._children.values():
            if isinstance(child, CommandGroup):
                yield from child.walk()
            else:
                yield child

    # ------------------------------------------------------------------ registration
    def _ensure_mutable(self) -> None:
        if self.frozen:
            raise RegistrationError("Command tree is frozen; register commands before starting dispatch")

    def _claim(self, node: Node) -> None:
        names = node.names
        if len(set(names)) != len(names):
            raise RegistrationError(f"'{names[0]}' lists the same alias twice")
        for name in names:
            existing = self._table.get(name)
            if existing is not None:
                scope = self.qualified_name or "root"
                raise RegistrationError(
                    f"Name '{name}' is already taken by '{existing.names[0]}' in scope '{scope}'"
                )
        for name in names:
            self._table[name] = node
        self._children[names[0]] = node

    def add_command(self, spec: CommandSpec) -> CommandSpec:
        self._ensure_mutable()
        if spec.parent is not None:
            raise RegistrationError(f"Command '{spec.name}' is already registered in another scope")
        self._claim(spec)
        object.__setattr__(spec, "parent", self)
        logger.debug("Registered command '%s'", spec.qualified_name)
        return spec

    def command(
        self,
        name: Optional[str] = None,
        *,
        aliases: Sequence[str] = (),
        description: Optional[str] = None,
        arguments: Iterable[Argument] = (),
        filters: Optional[Filter] = None,
        on_error: Optional[ErrorHandler] = None,
        raw: bool = False,
        ack_mode: Optional[AckMode] = None,
    ) -> Callable[[Handler], CommandSpec]:
        """Decorator registering ``handler`` as a command of this scope.

        The decorated name is bound to the resulting :class:`CommandSpec`.
        """

        def decorator(handler: Handler) -> CommandSpec:
            spec = CommandSpec(
                name=name or handler.__name__,
                handler=handler,
                aliases=tuple(aliases),
                description=description or (handler.__doc__ or "").strip() or None,
                arguments=None if raw else ArgumentSpec(arguments),
                filters=filters,
                on_error=on_error,
                ack_mode=ack_mode,
            )
            return self.add_command(spec)

        return decorator

    def add_group(self, group: "CommandGroup") -> "CommandGroup":
        self._ensure_mutable()
        if group.name is None:
            raise RegistrationError("Nested groups need a name")
        if group.parent is not None:
            raise RegistrationError(f"Group '{group.name}' is already registered in another scope")
        if self.depth + group.height > MAX_GROUP_DEPTH:
            raise RegistrationError(
                f"Group '{group.name}' would nest deeper than {MAX_GROUP_DEPTH} levels"
            )
        self._claim(group)
        group.parent = self
        return group

    def group(
        self,
        name: str,
        *,
        aliases: Sequence[str] = (),
        description: Optional[str] = None,
        filters: Optional[Filter] = None,
        on_error: Optional[ErrorHandler] = None,
        ack_mode: Optional[AckMode] = None,
    ) -> "CommandGroup":
        """Create and register a nested group."""
        return self.add_group(
            CommandGroup(
                name,
                aliases=aliases,
                description=description,
                filters=filters,
                on_error=on_error,
                ack_mode=ack_mode,
            )
        )

    def default(
        self,
        *,
        filters: Optional[Filter] = None,
        on_error: Optional[ErrorHandler] = None,
        description: Optional[str] = None,
    ) -> Callable[[Handler], CommandSpec]:
        """Decorator for the handler that receives unmatched invocations raw."""

        def decorator(handler: Handler) -> CommandSpec:
            self._ensure_mutable()
            if self.default_command is not None:
                raise RegistrationError(f"Scope '{self.qualified_name or 'root'}' already has a default handler")
            spec = CommandSpec(
                name=handler.__name__,
                handler=handler,
                description=description,
                arguments=None,
                filters=filters,
                on_error=on_error,
            )
            object.__setattr__(spec, "parent", self)
            self.default_command = spec
            return spec

        return decorator

    # ------------------------------------------------------------------ lookup
    def resolve(self, text: str) -> Optional[Resolution]:
        """Match the leading tokens of ``text`` to a command.

        Unknown tokens fall through to the scope's default handler with the
        whole remaining text; with no default there is no match.
        """
        scope: CommandGroup = self
        scopes: List[CommandGroup] = [self]
        invoked: List[str] = []
        remaining = text
        while True:
            token, rest = split_first(remaining)
            node = scope._table.get(token) if token else None
            if node is None:
                if scope.default_command is not None:
                    return Resolution(
                        scope.default_command, tuple(scopes), remaining.strip(), tuple(invoked), True
                    )
                return None
            invoked.append(token)
            if isinstance(node, CommandGroup):
                scope = node
                scopes.append(node)
                remaining = rest
                continue
            return Resolution(node, tuple(scopes), rest, tuple(invoked), False)

    def find(self, path: str) -> Optional[Resolution]:
        """Resolve a space separated qualified name exactly (no default fallback)."""
        scope: CommandGroup = self
        scopes: List[CommandGroup] = [self]
        tokens = path.split()
        for index, token in enumerate(tokens):
            node = scope._table.get(token)
            if node is None:
                return None
            if isinstance(node, CommandGroup):
                scope = node
                scopes.append(node)
                continue
            if index != len(tokens) - 1:
                return None
            return Resolution(node, tuple(scopes), "", tuple(tokens), False)
        return None


class CommandTree(CommandGroup):
    """Root scope of a command tree, carrying the prefixes it answers to."""

    def __init__(
        self,
        *,
        default_prefix: str = "!",
        additional_prefixes: Sequence[str] = (),
        mention_prefix: bool = False,
        description: Optional[str] = None,
        filters: Optional[Filter] = None,
        on_error: Optional[ErrorHandler] = None,
        ack_mode: Optional[AckMode] = None,
    ) -> None:
        super().__init__(None, description=description, filters=filters, on_error=on_error, ack_mode=ack_mode)
        if not default_prefix or not default_prefix.strip():
            raise RegistrationError("default_prefix must not be empty")
        self.default_prefix = default_prefix
        self.additional_prefixes = tuple(prefix for prefix in additional_prefixes if prefix)
        self.mention_prefix = mention_prefix

    @classmethod
    def from_config(cls, config: DispatchConfig, **kwargs: Any) -> "CommandTree":
        return cls(
            default_prefix=config.default_prefix,
            additional_prefixes=config.additional_prefixes,
            mention_prefix=config.mention_prefix,
            **kwargs,
        )

    def freeze(self) -> None:
        """Reject any further registration."""
        if not self._frozen:
            self._frozen = True
            logger.info("Command tree frozen with %s command(s).", sum(1 for _ in self.walk()))
