# -*- coding: utf-8 -*-
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from discord.ext import commands

from apply_bot.applications import ApplicationStore
from apply_bot.cog import ApplyCog
from apply_bot.ui_components import STALE_TEXT, handle_admin_approve, handle_admin_reject
from resp_bot.cog import RespCog

from .conftest import GUILD_ID, OWNER_ID, http_error, make_interaction


@pytest.fixture
def store(data_dir, global_settings):
    global_settings.set_admin_roles(GUILD_ID, [50, 51])
    return ApplicationStore(data_dir, global_settings)


@pytest.fixture
def admin_roles(guild):
    return guild.add_role(50, "Admin", 50), guild.add_role(51, "Mod", 40)


@pytest.fixture
def owner(guild):
    return guild.add_member(OWNER_ID, name="owner")


def make_ctx(author, guild):
    ctx = MagicMock()
    ctx.author = author
    ctx.guild = guild
    ctx.bot.can_run = AsyncMock(return_value=True)
    ctx.send = AsyncMock()
    return ctx


async def invoke(cog: commands.Cog, command: commands.Command, ctx, *args):
    """Вызов подкоманды так же, как это делает Command.prepare: сначала проверки"""
    if not await command.can_run(ctx):
        raise commands.CheckFailure(f"Проверки команды {command.qualified_name} не пройдены")
    await command.callback(cog, ctx, *args)


# ─── Доступ к setadmin / resp ────────────────────────────────────────────────

async def test_setadmin_subcommands_refuse_non_owner(store, registry, guild):
    cog = ApplyCog(MagicMock(), store=store, registry=registry)
    stranger = guild.add_member(555)
    ctx = make_ctx(stranger, guild)

    subcommands = cog.setadmin.commands
    assert {c.name for c in subcommands} == {"channel", "approvers", "limit", "cooldown", "show"}
    for command in subcommands:
        assert not await command.can_run(ctx), command.qualified_name

    with pytest.raises(commands.CheckFailure):
        await invoke(cog, cog.setadmin.get_command("limit"), ctx, 99)
    assert store.get_settings(GUILD_ID)["max_pending_per_admin"] == 3
    ctx.send.assert_not_called()


async def test_setadmin_limit_by_owner(store, registry, guild, owner):
    cog = ApplyCog(MagicMock(), store=store, registry=registry)
    ctx = make_ctx(owner, guild)

    await invoke(cog, cog.setadmin.get_command("limit"), ctx, 99)
    assert store.get_settings(GUILD_ID)["max_pending_per_admin"] == 99


async def test_setadmin_subcommands_need_guild(store, registry, owner):
    cog = ApplyCog(MagicMock(), store=store, registry=registry)
    ctx = make_ctx(owner, None)
    with pytest.raises(commands.NoPrivateMessage):
        await cog.setadmin.get_command("show").can_run(ctx)


async def test_resp_subcommands_refuse_guild_owner(registry, guild, global_settings):
    cog = RespCog(MagicMock(), registry=registry)
    guild_owner = guild.add_member(guild.owner_id)
    ctx = make_ctx(guild_owner, guild)

    # группа пускает владельца сервера, но управление реестром только для владельцев бота
    assert await cog.resp.can_run(ctx)
    for command in cog.resp.commands:
        assert not await command.can_run(ctx), command.qualified_name


# ─── Одобрение и отклонение заявок ───────────────────────────────────────────

async def test_approve_grants_roles_and_reports_failures(store, registry, guild, owner, admin_roles):
    admin, mod = admin_roles
    candidate = guild.add_member(10)

    async def flaky_add_roles(role, reason=None):
        if role is mod:
            raise http_error()
        candidate.roles.append(role)

    candidate.add_roles = AsyncMock(side_effect=flaky_add_roles)
    app_id = store.create(candidate.id, 2, GUILD_ID, {"user_id": candidate.id})
    interaction = make_interaction(owner, guild, f"admin_approve_{app_id}")

    await handle_admin_approve(interaction, app_id, store, registry)

    assert candidate.add_roles.await_count == 2
    assert admin in candidate.roles and mod not in candidate.roles
    assert store.get(app_id) is None
    candidate.send.assert_awaited_once()

    edit = interaction.message.edit.await_args.kwargs
    assert edit["view"] is None
    assert edit["embed"].color == discord.Color.green()
    assert edit["embed"].footer.text == "Одобрена"

    text = interaction.followup.send.await_args.args[0]
    assert "Admin" in text
    assert "⚠️ Не выданы: Mod" in text


async def test_approve_keeps_record_when_no_role_added(store, registry, guild, owner, admin_roles):
    candidate = guild.add_member(10)
    candidate.add_roles = AsyncMock(side_effect=http_error())
    app_id = store.create(candidate.id, 2, GUILD_ID, {})
    interaction = make_interaction(owner, guild)

    await handle_admin_approve(interaction, app_id, store, registry)

    assert store.get(app_id) is not None
    interaction.message.edit.assert_not_called()
    assert interaction.followup.send.await_args.args[0] == "❌ Не удалось выдать ни одной роли"


async def test_approve_requires_approver(store, registry, guild, admin_roles):
    stranger = guild.add_member(555)
    app_id = store.create(10, 2, GUILD_ID, {})
    interaction = make_interaction(stranger, guild)

    await handle_admin_approve(interaction, app_id, store, registry)

    assert "нет права" in interaction.response.send_message.await_args.args[0]
    assert store.get(app_id) is not None


async def test_reject_sets_cooldown_and_notifies(store, registry, guild, owner):
    candidate = guild.add_member(10)
    app_id = store.create(candidate.id, 2, GUILD_ID, {})
    interaction = make_interaction(owner, guild)

    await handle_admin_reject(interaction, app_id, store, registry)

    assert store.get(app_id) is None
    in_cooldown, _ = store.is_in_cooldown(candidate.id, GUILD_ID)
    assert in_cooldown
    assert store.load()["rejected_cooldowns"][str(candidate.id)]["rejected_by"] == OWNER_ID
    interaction.response.send_message.assert_awaited_once_with("❌ Заявка отклонена", ephemeral=True)

    dm = candidate.send.await_args.kwargs["embed"]
    assert dm.title == "❌ Заявка отклонена"
    assert "1 д." in dm.description
    assert interaction.message.edit.await_args.kwargs["embed"].footer.text == "Отклонена"


@pytest.mark.parametrize("handler", [handle_admin_approve, handle_admin_reject])
async def test_stale_application_removes_buttons(store, registry, guild, owner, admin_roles, handler):
    interaction = make_interaction(owner, guild, "admin_approve_app_0_10")

    await handler(interaction, "app_0_10", store, registry)

    interaction.response.send_message.assert_awaited_once_with(STALE_TEXT, ephemeral=True)
    interaction.message.edit.assert_awaited_once_with(view=None)
