"""
Tests for channel permission computation (switchboard/services/permission_resolver.py).
Covers overwrite precedence, the administrator short-circuit and malformed input.
"""

import discord
import pytest

from conftest import EVERYONE_PERMS, GUILD_ID, LOCKED_CHANNEL_ID, MOD_ID, MOD_PERMS, OWNER_ID, USER_ID
from switchboard.services.lookup import GuildRecord, MemberRecord
from switchboard.services.permission_resolver import (
    ADMINISTRATOR,
    ALL_PERMISSIONS,
    OverwriteKind,
    OverwriteSet,
    PermissionOverwrite,
    base_permissions,
    coerce_bits,
    member_permissions,
    permission_names,
    required_bits,
    resolve,
    resolve_role,
)

VIEW = discord.Permissions(view_channel=True).value
SEND = discord.Permissions(send_messages=True).value
EMBED = discord.Permissions(embed_links=True).value
MANAGE = discord.Permissions(manage_messages=True).value

EVERYONE = 10
ROLE_A = 11
ROLE_B = 12
MEMBER = 20


def role_ow(subject_id, allow=0, deny=0):
    return PermissionOverwrite(subject_id, OverwriteKind.ROLE, allow, deny)


def member_ow(subject_id, allow=0, deny=0):
    return PermissionOverwrite(subject_id, OverwriteKind.MEMBER, allow, deny)


# ─── resolve ──────────────────────────────────────────────────────────────────

class TestResolve:
    def test_no_overwrites_returns_base(self):
        assert resolve(VIEW | SEND, [], MEMBER, []) == VIEW | SEND

    def test_administrator_short_circuits(self):
        overwrites = [member_ow(MEMBER, deny=ALL_PERMISSIONS)]
        assert resolve(ADMINISTRATOR, overwrites, MEMBER, []) == ALL_PERMISSIONS

    def test_everyone_overwrite_applied(self):
        result = resolve(VIEW | SEND, [role_ow(EVERYONE, deny=SEND)], MEMBER, [], everyone_id=EVERYONE)
        assert result == VIEW

    def test_everyone_overwrite_ignored_without_everyone_id(self):
        result = resolve(VIEW | SEND, [role_ow(EVERYONE, deny=SEND)], MEMBER, [])
        assert result == VIEW | SEND

    def test_role_overwrite_undoes_everyone_deny(self):
        overwrites = [role_ow(EVERYONE, deny=SEND), role_ow(ROLE_A, allow=SEND)]
        assert resolve(VIEW | SEND, overwrites, MEMBER, [ROLE_A], everyone_id=EVERYONE) == VIEW | SEND

    def test_role_overwrites_are_unioned(self):
        overwrites = [role_ow(ROLE_A, allow=EMBED, deny=SEND), role_ow(ROLE_B, allow=MANAGE)]
        result = resolve(VIEW | SEND, overwrites, MEMBER, [ROLE_A, ROLE_B])
        assert result == VIEW | EMBED | MANAGE

    def test_role_allow_beats_other_role_deny(self):
        overwrites = [role_ow(ROLE_A, deny=SEND), role_ow(ROLE_B, allow=SEND)]
        assert resolve(VIEW, overwrites, MEMBER, [ROLE_A, ROLE_B]) & SEND

    def test_roles_not_held_are_ignored(self):
        result = resolve(VIEW | SEND, [role_ow(ROLE_B, deny=SEND)], MEMBER, [ROLE_A])
        assert result == VIEW | SEND

    def test_member_overwrite_applied_last(self):
        overwrites = [member_ow(MEMBER, deny=SEND), role_ow(ROLE_A, allow=SEND)]
        assert resolve(VIEW, overwrites, MEMBER, [ROLE_A]) == VIEW

    def test_member_overwrite_for_someone_else_ignored(self):
        assert resolve(VIEW | SEND, [member_ow(MEMBER + 1, deny=SEND)], MEMBER, []) == VIEW | SEND

    def test_member_allow_beats_everyone_deny(self):
        overwrites = [role_ow(EVERYONE, deny=SEND), member_ow(MEMBER, allow=SEND)]
        assert resolve(VIEW | SEND, overwrites, MEMBER, [], everyone_id=EVERYONE) == VIEW | SEND

    def test_malformed_base_treated_as_zero(self):
        assert resolve("not-a-number", [role_ow(ROLE_A, allow=SEND)], MEMBER, [ROLE_A]) == SEND


# ─── resolve_role ─────────────────────────────────────────────────────────────

class TestResolveRole:
    def test_applies_everyone_then_role(self):
        overwrites = [role_ow(EVERYONE, deny=SEND | EMBED), role_ow(ROLE_A, allow=EMBED)]
        assert resolve_role(VIEW | SEND | EMBED, overwrites, ROLE_A, everyone_id=EVERYONE) == VIEW | EMBED

    def test_member_overwrites_ignored(self):
        overwrites = [member_ow(ROLE_A, deny=SEND)]
        assert resolve_role(VIEW | SEND, overwrites, ROLE_A) == VIEW | SEND

    def test_administrator_role(self):
        assert resolve_role(ADMINISTRATOR, [role_ow(ROLE_A, deny=SEND)], ROLE_A) == ALL_PERMISSIONS


# ─── Overwrites ───────────────────────────────────────────────────────────────

class TestOverwrites:
    def test_apply_formula(self):
        overwrite = role_ow(ROLE_A, allow=EMBED, deny=SEND)
        assert overwrite.apply(VIEW | SEND) == VIEW | EMBED

    def test_malformed_bits_coerced(self):
        overwrite = role_ow(ROLE_A, allow=-1, deny="garbage")
        assert overwrite.allow == 0
        assert overwrite.deny == 0

    def test_from_payload_member(self):
        overwrite = PermissionOverwrite.from_payload({"id": "5", "type": 1, "allow": "2048", "deny": "0"})
        assert overwrite.subject_id == 5
        assert overwrite.subject_kind is OverwriteKind.MEMBER
        assert overwrite.allow == 2048

    def test_from_payload_defaults_to_role(self):
        overwrite = PermissionOverwrite.from_payload({"id": 7})
        assert overwrite.subject_kind is OverwriteKind.ROLE
        assert overwrite.allow == 0 and overwrite.deny == 0

    def test_overwrite_set_unique_per_subject(self):
        overwrites = OverwriteSet([role_ow(ROLE_A, allow=SEND), role_ow(ROLE_B), role_ow(ROLE_A, deny=SEND)])
        assert len(overwrites) == 2
        assert overwrites.get(ROLE_A).deny == SEND
        assert [ow.subject_id for ow in overwrites] == [ROLE_A, ROLE_B]


class TestCoerceBits:
    @pytest.mark.parametrize(
        "value, expected",
        [(16, 16), ("16", 16), (" 8 ", 8), (-4, 0), (True, 0), (None, 0), (3.5, 0), ("0x10", 0)],
    )
    def test_values(self, value, expected):
        assert coerce_bits(value) == expected

    def test_permissions_object(self):
        assert coerce_bits(discord.Permissions(send_messages=True)) == SEND


# ─── Guild-level helpers ──────────────────────────────────────────────────────

class TestMemberPermissions:
    @pytest.mark.asyncio
    async def test_owner_gets_everything(self, lookup):
        guild = await lookup.fetch_guild(GUILD_ID)
        owner = await lookup.fetch_member(GUILD_ID, OWNER_ID)
        assert base_permissions(guild, owner) == ALL_PERMISSIONS

    @pytest.mark.asyncio
    async def test_regular_member_gets_everyone_role(self, lookup):
        guild = await lookup.fetch_guild(GUILD_ID)
        member = await lookup.fetch_member(GUILD_ID, USER_ID)
        assert base_permissions(guild, member) == EVERYONE_PERMS

    @pytest.mark.asyncio
    async def test_roles_are_combined(self, lookup):
        guild = await lookup.fetch_guild(GUILD_ID)
        mod = await lookup.fetch_member(GUILD_ID, MOD_ID)
        assert base_permissions(guild, mod) == EVERYONE_PERMS | MOD_PERMS

    def test_administrator_role_grants_everything(self):
        guild = GuildRecord(id=1, owner_id=2, role_permissions={1: 0, 5: ADMINISTRATOR})
        member = MemberRecord(3, 1, frozenset({5}))
        assert base_permissions(guild, member) == ALL_PERMISSIONS

    @pytest.mark.asyncio
    async def test_channel_overwrites_applied(self, lookup):
        guild = await lookup.fetch_guild(GUILD_ID)
        channel = await lookup.fetch_channel(LOCKED_CHANNEL_ID)
        member = await lookup.fetch_member(GUILD_ID, USER_ID)
        mod = await lookup.fetch_member(GUILD_ID, MOD_ID)
        assert not member_permissions(guild, member, channel) & SEND
        mod_perms = discord.Permissions(member_permissions(guild, mod, channel))
        assert mod_perms.kick_members
        assert not mod_perms.manage_channels
        assert not mod_perms.send_messages

    @pytest.mark.asyncio
    async def test_owner_ignores_channel_overwrites(self, lookup):
        guild = await lookup.fetch_guild(GUILD_ID)
        channel = await lookup.fetch_channel(LOCKED_CHANNEL_ID)
        owner = await lookup.fetch_member(GUILD_ID, OWNER_ID)
        assert member_permissions(guild, owner, channel) == ALL_PERMISSIONS


# ─── Flag names ───────────────────────────────────────────────────────────────

class TestFlagNames:
    def test_permission_names(self):
        assert permission_names(discord.Permissions(manage_channels=True).value) == ["Manage Channels"]

    def test_required_bits(self):
        assert required_bits(send_messages=True, embed_links=True) == SEND | EMBED

    def test_required_bits_skips_false(self):
        assert required_bits(send_messages=True, embed_links=False) == SEND

    def test_required_bits_rejects_unknown(self):
        with pytest.raises(TypeError):
            required_bits(launch_rockets=True)
