"""Channel permission computation from base permissions and overwrites.

Overwrites are applied in a fixed order, each step using
``result = (result & ~deny) | allow``:

1. the ``@everyone`` overwrite (a role overwrite whose id is the guild id),
2. the union of every role overwrite the subject holds,
3. the member overwrite for the subject itself.

A subject whose base permissions include ``administrator`` skips overwrites
entirely and receives every permission.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, Optional

import discord

if TYPE_CHECKING:
    from switchboard.services.lookup import ChannelRecord, GuildRecord, MemberRecord

ALL_PERMISSIONS = discord.Permissions.all().value
ADMINISTRATOR = discord.Permissions(administrator=True).value


def coerce_bits(value: Any) -> int:
    """Turn ``value`` into a permission bitmask; anything malformed becomes 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, discord.Permissions):
        return value.value
    if isinstance(value, int):
        return value if value >= 0 else 0
    if isinstance(value, str):
        value = value.strip()
        if value.isdigit():
            return int(value)
    return 0


class OverwriteKind(enum.Enum):
    ROLE = "role"
    MEMBER = "member"


@dataclass(frozen=True)
class PermissionOverwrite:
    """A per-channel allow/deny adjustment for a single role or member."""

    subject_id: int
    subject_kind: OverwriteKind
    allow: int = 0
    deny: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "allow", coerce_bits(self.allow))
        object.__setattr__(self, "deny", coerce_bits(self.deny))

    def apply(self, permissions: int) -> int:
        return (permissions & ~self.deny) | self.allow

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PermissionOverwrite":
        """Build from the raw API shape ``{"id", "type", "allow", "deny"}``."""
        raw_type = payload.get("type", 0)
        kind = OverwriteKind.MEMBER if raw_type in (1, "1", "member") else OverwriteKind.ROLE
        return cls(
            subject_id=int(payload["id"]),
            subject_kind=kind,
            allow=payload.get("allow", 0),
            deny=payload.get("deny", 0),
        )


class OverwriteSet:
    """Ordered overwrites for one channel, unique per subject id."""

    def __init__(self, overwrites: Iterable[PermissionOverwrite] = ()) -> None:
        self._items: Dict[int, PermissionOverwrite] = {}
        for overwrite in overwrites:
            self.add(overwrite)

    def add(self, overwrite: PermissionOverwrite) -> None:
        # Replacing keeps the original position of the subject.
        self._items[overwrite.subject_id] = overwrite

    def get(self, subject_id: int) -> Optional[PermissionOverwrite]:
        return self._items.get(subject_id)

    def __iter__(self) -> Iterator[PermissionOverwrite]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


def resolve(
    base: Any,
    overwrites: Iterable[PermissionOverwrite],
    subject_id: int,
    subject_role_ids: Iterable[int],
    *,
    everyone_id: Optional[int] = None,
) -> int:
    """Return the effective channel permissions of a member."""
    permissions = coerce_bits(base)
    if permissions & ADMINISTRATOR:
        return ALL_PERMISSIONS

    held = set(subject_role_ids)
    everyone: Optional[PermissionOverwrite] = None
    member: Optional[PermissionOverwrite] = None
    role_allow = 0
    role_deny = 0
    for overwrite in overwrites:
        if overwrite.subject_kind is OverwriteKind.ROLE:
            if everyone_id is not None and overwrite.subject_id == everyone_id:
                everyone = overwrite
            elif overwrite.subject_id in held:
                role_allow |= overwrite.allow
                role_deny |= overwrite.deny
        elif overwrite.subject_id == subject_id:
            member = overwrite

    if everyone is not None:
        permissions = everyone.apply(permissions)
    permissions = (permissions & ~role_deny) | role_allow
    if member is not None:
        permissions = member.apply(permissions)
    return permissions


def resolve_role(
    base: Any,
    overwrites: Iterable[PermissionOverwrite],
    role_id: int,
    *,
    everyone_id: Optional[int] = None,
) -> int:
    """Return the effective channel permissions of a single role."""
    permissions = coerce_bits(base)
    if permissions & ADMINISTRATOR:
        return ALL_PERMISSIONS
    by_subject = {
        overwrite.subject_id: overwrite
        for overwrite in overwrites
        if overwrite.subject_kind is OverwriteKind.ROLE
    }
    if everyone_id is not None and everyone_id in by_subject:
        permissions = by_subject[everyone_id].apply(permissions)
    if role_id != everyone_id and role_id in by_subject:
        permissions = by_subject[role_id].apply(permissions)
    return permissions


def base_permissions(guild: "GuildRecord", member: "MemberRecord") -> int:
    """Guild-level permissions of ``member`` before any channel overwrite."""
    if guild.owner_id == member.id:
        return ALL_PERMISSIONS
    permissions = coerce_bits(guild.role_permissions.get(guild.id, 0))
    for role_id in member.role_ids:
        permissions |= coerce_bits(guild.role_permissions.get(role_id, 0))
    if permissions & ADMINISTRATOR:
        return ALL_PERMISSIONS
    return permissions


def member_permissions(
    guild: "GuildRecord",
    member: "MemberRecord",
    channel: Optional["ChannelRecord"] = None,
) -> int:
    """Effective permissions of ``member``, in ``channel`` when one is given."""
    base = base_permissions(guild, member)
    if channel is None:
        return base
    return resolve(base, channel.overwrites, member.id, member.role_ids, everyone_id=guild.id)


def permission_names(bits: int) -> list[str]:
    """Human-readable names of the flags set in ``bits``."""
    return [
        name.replace("_", " ").title()
        for name, enabled in discord.Permissions(bits)
        if enabled
    ]


def required_bits(**perms: bool) -> int:
    """Bitmask for keyword flags such as ``manage_channels=True``.

    Unknown flag names raise ``TypeError``.
    """
    invalid = set(perms) - set(discord.Permissions.VALID_FLAGS)
    if invalid:
        raise TypeError(f"Invalid permission(s): {', '.join(sorted(invalid))}")
    return discord.Permissions(**{name: True for name, value in perms.items() if value}).value
