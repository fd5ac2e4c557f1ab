"""Composable authorization predicates for commands.

Every filter exposes the same asynchronous contract, whether the check behind
it is a plain function, a coroutine, or a permission computation that has to
look up members and channels first. Filters hold no per-invocation state and
can be shared freely between commands.

    admin_or_owner = has_permissions(administrator=True) | is_guild_owner()
    quiet_mods = silent(has_role(MOD_ROLE_ID))
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Union

from switchboard.services.context import ExecutionContext, MessageEvent
from switchboard.services.permission_resolver import (
    base_permissions,
    member_permissions,
    permission_names,
    required_bits,
)

logger = logging.getLogger("Switchboard.Filters")

Description = Union[str, Callable[[], Optional[str]], None]
PredicateFn = Callable[[ExecutionContext], Union[bool, Awaitable[bool]]]

_UNSET = object()


@dataclass(frozen=True)
class FilterResult:
    passed: bool
    description: Optional[str] = None


PASSED = FilterResult(True)


class Filter:
    """Base class for all filters.

    Subclasses override :meth:`predicate` and :meth:`_describe`; combinators
    override :meth:`check` instead so that the failing child's description
    is the one reported.
    """

    def __init__(self) -> None:
        self._description: Any = _UNSET

    async def predicate(self, ctx: ExecutionContext) -> bool:
        raise NotImplementedError

    def _describe(self) -> Optional[str]:
        return None

    def describe(self) -> Optional[str]:
        """Human-readable criteria, computed on first use."""
        if self._description is _UNSET:
            self._description = self._describe()
        return self._description

    async def check(self, ctx: ExecutionContext) -> FilterResult:
        if await self.predicate(ctx):
            return PASSED
        return FilterResult(False, self.describe())

    async def test(self, ctx: ExecutionContext) -> bool:
        return (await self.check(ctx)).passed

    def __and__(self, other: "Filter") -> "Filter":
        return all_of(self, other)

    def __or__(self, other: "Filter") -> "Filter":
        return any_of(self, other)

    def __invert__(self) -> "Filter":
        return negate(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()!r}>"


class AllOf(Filter):
    def __init__(self, filters: Sequence[Filter]) -> None:
        super().__init__()
        self.filters = tuple(filters)

    async def check(self, ctx: ExecutionContext) -> FilterResult:
        for child in self.filters:
            result = await child.check(ctx)
            if not result.passed:
                return result
        return PASSED

    def _describe(self) -> Optional[str]:
        parts = [part for part in (child.describe() for child in self.filters) if part]
        return " and ".join(parts) or None


class AnyOf(Filter):
    def __init__(self, filters: Sequence[Filter]) -> None:
        super().__init__()
        self.filters = tuple(filters)

    async def check(self, ctx: ExecutionContext) -> FilterResult:
        alternatives = []
        for child in self.filters:
            result = await child.check(ctx)
            if result.passed:
                return PASSED
            if result.description:
                alternatives.append(result.description)
        return FilterResult(False, " or ".join(alternatives) or None)

    def _describe(self) -> Optional[str]:
        parts = [part for part in (child.describe() for child in self.filters) if part]
        return " or ".join(parts) or None


class Negate(Filter):
    def __init__(self, inner: Filter) -> None:
        super().__init__()
        self.inner = inner

    async def check(self, ctx: ExecutionContext) -> FilterResult:
        result = await self.inner.check(ctx)
        if result.passed:
            return FilterResult(False, self.describe())
        return PASSED

    def _describe(self) -> Optional[str]:
        inner = self.inner.describe()
        return f"not {inner}" if inner else None


class Silent(Filter):
    def __init__(self, inner: Filter) -> None:
        super().__init__()
        self.inner = inner

    async def check(self, ctx: ExecutionContext) -> FilterResult:
        result = await self.inner.check(ctx)
        return PASSED if result.passed else FilterResult(False, None)

    def describe(self) -> Optional[str]:
        return None


class Custom(Filter):
    def __init__(self, fn: PredicateFn, description: Description = None) -> None:
        super().__init__()
        self.fn = fn
        self.description_source = description

    async def predicate(self, ctx: ExecutionContext) -> bool:
        result = self.fn(ctx)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    def _describe(self) -> Optional[str]:
        if callable(self.description_source):
            return self.description_source()
        return self.description_source


def _flatten(filters: Iterable[Filter], kind: type) -> list:
    flat = []
    for item in filters:
        if not isinstance(item, Filter):
            raise TypeError(f"Expected a Filter, got {type(item).__name__}")
        if type(item) is kind:
            flat.extend(item.filters)
        else:
            flat.append(item)
    return flat


def all_of(*filters: Filter) -> Filter:
    """Conjunction; evaluates in order and stops at the first failure."""
    return AllOf(_flatten(filters, AllOf))


def any_of(*filters: Filter) -> Filter:
    """Disjunction; evaluates in order and stops at the first success."""
    return AnyOf(_flatten(filters, AnyOf))


def negate(inner: Filter) -> Filter:
    return Negate(inner)


def silent(inner: Filter) -> Filter:
    """Evaluate ``inner`` but never explain a rejection to the invoker."""
    return Silent(inner)


def custom(fn: PredicateFn, description: Description = None) -> Filter:
    """Wrap a sync or async ``fn(ctx) -> bool``."""
    return Custom(fn, description)


# ------------------------------------------------------------------ built-ins
class PermissionFilter(Filter):
    """Pass when the invoker holds every bit of ``bits``.

    With ``channel_id`` the check is made in that channel; with
    ``use_channel`` it is made in the invocation channel; otherwise only
    guild-level permissions count. A missing guild, member or channel fails
    the check.
    """

    def __init__(self, bits: int, *, channel_id: Optional[int] = None, use_channel: bool = True) -> None:
        super().__init__()
        self.bits = bits
        self.channel_id = channel_id
        self.use_channel = use_channel

    async def predicate(self, ctx: ExecutionContext) -> bool:
        if ctx.guild_id is None:
            return False
        lookup = ctx.lookup
        guild = await lookup.fetch_guild(ctx.guild_id)
        if guild is None:
            logger.debug("Permission check failed closed: guild %s not found", ctx.guild_id)
            return False
        member = await lookup.fetch_member(ctx.guild_id, ctx.author_id)
        if member is None:
            logger.debug("Permission check failed closed: member %s not found", ctx.author_id)
            return False
        if self.channel_id is None and not self.use_channel:
            permissions = base_permissions(guild, member)
        else:
            channel = await lookup.fetch_channel(self.channel_id or ctx.channel_id)
            if channel is None or (channel.guild_id is not None and channel.guild_id != guild.id):
                logger.debug("Permission check failed closed: channel %s not usable", self.channel_id or ctx.channel_id)
                return False
            permissions = member_permissions(guild, member, channel)
        return permissions & self.bits == self.bits

    def _describe(self) -> Optional[str]:
        names = permission_names(self.bits)
        label = ", ".join(names) + (" permission" if len(names) == 1 else " permissions")
        if self.channel_id is not None:
            return f"{label} in <#{self.channel_id}>"
        return label


def has_permissions(**perms: bool) -> Filter:
    """Invoker must hold ``perms`` in the channel the command was used in."""
    return PermissionFilter(required_bits(**perms))


def has_guild_permissions(**perms: bool) -> Filter:
    """Invoker must hold ``perms`` guild-wide, ignoring channel overwrites."""
    return PermissionFilter(required_bits(**perms), use_channel=False)


def can_in_channel(channel_id: int, **perms: bool) -> Filter:
    """Invoker must hold ``perms`` in a specific channel, e.g. "can manage channel X"."""
    return PermissionFilter(required_bits(**perms), channel_id=channel_id)


def is_user(*user_ids: int) -> Filter:
    allowed = frozenset(user_ids)
    return custom(lambda ctx: ctx.author_id in allowed, "allowed user")


async def _role_ids(ctx: ExecutionContext) -> Optional[frozenset]:
    if isinstance(ctx.event, MessageEvent) and ctx.event.member_role_ids:
        return frozenset(ctx.event.member_role_ids)
    if ctx.guild_id is None:
        return None
    member = await ctx.lookup.fetch_member(ctx.guild_id, ctx.author_id)
    if member is None:
        return None
    return frozenset(member.role_ids)


def has_role(*role_ids: int) -> Filter:
    """Invoker must hold at least one of ``role_ids``."""
    wanted = frozenset(role_ids)

    async def predicate(ctx: ExecutionContext) -> bool:
        held = await _role_ids(ctx)
        return bool(held and held & wanted)

    mentions = ", ".join(f"<@&{role_id}>" for role_id in role_ids)
    return custom(predicate, f"one of the roles {mentions}" if len(role_ids) > 1 else f"role {mentions}")


def guild_only() -> Filter:
    return custom(lambda ctx: ctx.guild_id is not None, "server channel")


def is_guild_owner() -> Filter:
    async def predicate(ctx: ExecutionContext) -> bool:
        if ctx.guild_id is None:
            return False
        guild = await ctx.lookup.fetch_guild(ctx.guild_id)
        return guild is not None and guild.owner_id == ctx.author_id

    return custom(predicate, "server owner")


async def evaluate_chain(filters: Iterable[Optional[Filter]], ctx: ExecutionContext) -> FilterResult:
    """Evaluate scope filters root-to-leaf; the first failure aborts."""
    for item in filters:
        if item is None:
            continue
        result = await item.check(ctx)
        if not result.passed:
            return result
    return PASSED
