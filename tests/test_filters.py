"""
Tests for the filter algebra (switchboard/services/filters.py).
"""

import pytest

from conftest import (
    GUILD_ID,
    LOCKED_CHANNEL_ID,
    MOD_ID,
    MOD_ROLE_ID,
    OWNER_ID,
    TEXT_CHANNEL_ID,
    USER_ID,
    interaction,
    message,
)
from switchboard.services.filters import (
    AllOf,
    AnyOf,
    Filter,
    all_of,
    any_of,
    can_in_channel,
    custom,
    evaluate_chain,
    guild_only,
    has_guild_permissions,
    has_permissions,
    has_role,
    is_guild_owner,
    is_user,
    negate,
    silent,
)


def tracked(result, description, calls):
    def fn(ctx):
        calls.append(description)
        return result

    return custom(fn, description)


# ─── Combinators ──────────────────────────────────────────────────────────────

class TestCombinators:
    @pytest.mark.asyncio
    async def test_all_of_short_circuits_on_first_failure(self, make_ctx):
        calls = []
        chain = all_of(tracked(True, "a", calls), tracked(False, "b", calls), tracked(False, "c", calls))
        result = await chain.check(make_ctx())
        assert result.passed is False
        assert result.description == "b"
        assert calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_any_of_short_circuits_on_first_success(self, make_ctx):
        calls = []
        chain = any_of(tracked(False, "a", calls), tracked(True, "b", calls), tracked(True, "c", calls))
        assert (await chain.check(make_ctx())).passed is True
        assert calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_any_of_failure_lists_alternatives(self, make_ctx):
        chain = any_of(custom(lambda ctx: False, "x"), custom(lambda ctx: False, "y"))
        result = await chain.check(make_ctx())
        assert result.passed is False
        assert result.description == "x or y"

    @pytest.mark.asyncio
    async def test_negate(self, make_ctx):
        inverted = negate(custom(lambda ctx: True, "muted"))
        result = await inverted.check(make_ctx())
        assert result.passed is False
        assert result.description == "not muted"
        assert await negate(custom(lambda ctx: False, "muted")).test(make_ctx())

    @pytest.mark.asyncio
    async def test_silent_hides_description(self, make_ctx):
        result = await silent(custom(lambda ctx: False, "secret")).check(make_ctx())
        assert result.passed is False
        assert result.description is None

    @pytest.mark.asyncio
    async def test_silent_passes_through_success(self, make_ctx):
        assert await silent(custom(lambda ctx: True, "secret")).test(make_ctx())

    @pytest.mark.asyncio
    async def test_async_custom_predicate(self, make_ctx):
        async def fn(ctx):
            return ctx.author_id == USER_ID

        assert await custom(fn, "async").test(make_ctx())

    def test_operators_build_combinators(self):
        a = custom(lambda ctx: True, "a")
        b = custom(lambda ctx: True, "b")
        c = custom(lambda ctx: True, "c")
        assert isinstance(a & b, AllOf)
        assert isinstance(a | b, AnyOf)
        assert len((a & b & c).filters) == 3
        assert (a | b).describe() == "a or b"
        assert (~a).describe() == "not a"

    def test_flatten_rejects_non_filters(self):
        with pytest.raises(TypeError):
            all_of(custom(lambda ctx: True), lambda ctx: True)

    def test_description_is_computed_once(self):
        produced = []

        def describe():
            produced.append(1)
            return "lazy"

        item = custom(lambda ctx: True, describe)
        assert produced == []
        assert item.describe() == "lazy"
        assert item.describe() == "lazy"
        assert produced == [1]

    @pytest.mark.asyncio
    async def test_base_filter_predicate_not_implemented(self, make_ctx):
        with pytest.raises(NotImplementedError):
            await Filter().check(make_ctx())


# ─── Permission filters ───────────────────────────────────────────────────────

class TestPermissionFilters:
    @pytest.mark.asyncio
    async def test_has_permissions_pass_and_fail(self, make_ctx):
        kick = has_permissions(kick_members=True)
        assert await kick.test(make_ctx(message("", author_id=MOD_ID)))
        result = await kick.check(make_ctx(message("", author_id=USER_ID)))
        assert result.passed is False
        assert result.description == "Kick Members permission"

    @pytest.mark.asyncio
    async def test_has_permissions_uses_invocation_channel(self, make_ctx):
        send = has_permissions(send_messages=True)
        assert await send.test(make_ctx(message("", channel_id=TEXT_CHANNEL_ID)))
        assert not await send.test(make_ctx(message("", channel_id=LOCKED_CHANNEL_ID)))

    @pytest.mark.asyncio
    async def test_guild_permissions_ignore_overwrites(self, make_ctx):
        manage = has_guild_permissions(manage_channels=True)
        assert await manage.test(make_ctx(message("", author_id=MOD_ID, channel_id=LOCKED_CHANNEL_ID)))

    @pytest.mark.asyncio
    async def test_can_in_channel(self, make_ctx):
        manage = can_in_channel(LOCKED_CHANNEL_ID, manage_channels=True)
        result = await manage.check(make_ctx(message("", author_id=MOD_ID)))
        assert result.passed is False
        assert result.description == f"Manage Channels permission in <#{LOCKED_CHANNEL_ID}>"
        assert await manage.test(make_ctx(message("", author_id=OWNER_ID)))

    def test_multiple_permissions_described_in_plural(self):
        assert has_permissions(kick_members=True, ban_members=True).describe() == "Kick Members, Ban Members permissions"

    @pytest.mark.asyncio
    async def test_fails_closed_without_guild(self, make_ctx):
        assert not await has_permissions(send_messages=True).test(make_ctx(message("", guild_id=None)))

    @pytest.mark.asyncio
    async def test_fails_closed_for_unknown_member(self, make_ctx):
        assert not await has_permissions(send_messages=True).test(make_ctx(message("", author_id=12345)))

    @pytest.mark.asyncio
    async def test_fails_closed_for_unknown_channel(self, make_ctx):
        assert not await can_in_channel(424242, send_messages=True).test(make_ctx(message("", author_id=OWNER_ID)))

    @pytest.mark.asyncio
    async def test_works_for_interactions(self, make_ctx):
        ctx = make_ctx(interaction("kick", member_id=MOD_ID))
        assert await has_permissions(kick_members=True).test(ctx)

    def test_unknown_permission_name(self):
        with pytest.raises(TypeError):
            has_permissions(fly=True)


# ─── Identity filters ─────────────────────────────────────────────────────────

class TestIdentityFilters:
    @pytest.mark.asyncio
    async def test_is_user(self, make_ctx):
        only_owner = is_user(OWNER_ID)
        assert await only_owner.test(make_ctx(message("", author_id=OWNER_ID)))
        assert not await only_owner.test(make_ctx(message("", author_id=USER_ID)))

    @pytest.mark.asyncio
    async def test_has_role_from_lookup(self, make_ctx):
        mods = has_role(MOD_ROLE_ID)
        assert await mods.test(make_ctx(message("", author_id=MOD_ID)))
        result = await mods.check(make_ctx(message("", author_id=USER_ID)))
        assert result.description == f"role <@&{MOD_ROLE_ID}>"

    @pytest.mark.asyncio
    async def test_has_role_from_message_roles(self, make_ctx):
        ctx = make_ctx(message("", author_id=USER_ID, member_role_ids=(MOD_ROLE_ID,)))
        assert await has_role(MOD_ROLE_ID).test(ctx)

    def test_has_role_plural_description(self):
        assert has_role(1, 2).describe() == "one of the roles <@&1>, <@&2>"

    @pytest.mark.asyncio
    async def test_guild_only(self, make_ctx):
        assert await guild_only().test(make_ctx(message("")))
        result = await guild_only().check(make_ctx(message("", guild_id=None)))
        assert result.description == "server channel"

    @pytest.mark.asyncio
    async def test_is_guild_owner(self, make_ctx):
        assert await is_guild_owner().test(make_ctx(message("", author_id=OWNER_ID)))
        assert not await is_guild_owner().test(make_ctx(message("", author_id=MOD_ID)))


# ─── evaluate_chain ───────────────────────────────────────────────────────────

class TestEvaluateChain:
    @pytest.mark.asyncio
    async def test_skips_missing_filters(self, make_ctx):
        assert (await evaluate_chain([None, None], make_ctx())).passed

    @pytest.mark.asyncio
    async def test_first_failure_aborts(self, make_ctx):
        calls = []
        result = await evaluate_chain(
            [tracked(True, "root", calls), tracked(False, "group", calls), tracked(False, "leaf", calls)],
            make_ctx(),
        )
        assert result.description == "group"
        assert calls == ["root", "group"]

    @pytest.mark.asyncio
    async def test_owner_or_admin(self, make_ctx):
        chain = is_guild_owner() | has_permissions(administrator=True)
        assert await chain.test(make_ctx(message("", author_id=OWNER_ID, guild_id=GUILD_ID)))
        result = await chain.check(make_ctx(message("", author_id=USER_ID)))
        assert result.description == "server owner or Administrator permission"
