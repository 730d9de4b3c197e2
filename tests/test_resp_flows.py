# -*- coding: utf-8 -*-
from unittest.mock import MagicMock

import discord
import pytest

from resp_bot import ui_components
from resp_bot.ui_components import (CALL_COOLDOWN_MS, CALL_TTL_MS, apply_responsibility_changes,
                                    check_call_cooldown, cleanup_calls, create_call_menu, handle_claim_button,
                                    handle_resp_decision, parse_contact_id)

from .conftest import GUILD_ID, OWNER_ID, make_interaction


@pytest.fixture
def shared_role_setup(guild, registry):
    role = guild.add_role(70, "Staff", 30)
    registry.create("a")
    registry.create("b")
    registry.set_roles("a", [role.id])
    registry.set_roles("b", [role.id])
    member = guild.add_member(10)
    return role, member


async def test_adding_grants_roles(registry, shared_role_setup):
    role, member = shared_role_setup
    summary = await apply_responsibility_changes(member, ["a"], True, registry)
    assert summary == {"done": ["a"], "errors": []}
    assert role in member.roles
    assert registry.responsibilities_of(member.id) == ["a"]


async def test_role_kept_while_another_responsibility_needs_it(registry, shared_role_setup):
    role, member = shared_role_setup
    await apply_responsibility_changes(member, ["a", "b"], True, registry)
    member.add_roles.reset_mock()

    await apply_responsibility_changes(member, ["a"], False, registry)
    assert role in member.roles
    member.remove_roles.assert_not_called()

    await apply_responsibility_changes(member, ["b"], False, registry)
    assert role not in member.roles


async def test_unknown_responsibility_reports_error(registry, shared_role_setup):
    _, member = shared_role_setup
    summary = await apply_responsibility_changes(member, ["missing"], True, registry)
    assert summary["done"] == []
    assert len(summary["errors"]) == 1


def test_parse_contact_id():
    assert parse_contact_id("masoul_contact_دعم فني_123_456") == ("دعم فني", 123, 456)
    assert parse_contact_id("masoul_contact_snake_case_all_5") == ("snake_case", None, 5)


def test_call_cooldown(monkeypatch):
    monkeypatch.setattr(ui_components, "call_cooldowns", {})
    assert check_call_cooldown(1, "support", now=1_000) == 0

    ui_components.call_cooldowns[(1, "support")] = 1_000
    assert check_call_cooldown(1, "support", now=11_000) == CALL_COOLDOWN_MS - 10_000
    assert check_call_cooldown(1, "support", now=1_000 + CALL_COOLDOWN_MS) == 0
    assert check_call_cooldown(2, "support", now=11_000) == 0


async def test_call_menu_has_button_per_responsible(guild):
    guild.add_member(5, name="helper")
    resp = {"description": "помощь", "responsibles": [5, 6], "image": None}
    embed, view = create_call_menu("support", resp, guild)

    ids = [item.custom_id for item in view.children]
    assert len(ids) == 3
    assert ids[-1].startswith("masoul_contact_support_all_")
    assert [item.label for item in view.children][:2] == ["helper", "6"]
    assert parse_contact_id(ids[0])[:2] == ("support", 5)


def test_cleanup_calls_ages_out_entries(monkeypatch):
    monkeypatch.setattr(ui_components, "call_cooldowns", {(1, "a"): 1_000, (2, "a"): 50_000})
    monkeypatch.setattr(ui_components, "active_calls", {
        "old": {"name": "a", "created_at": 1_000},
        "fresh": {"name": "a", "created_at": 50_000},
    })

    assert cleanup_calls(now=1_000 + CALL_COOLDOWN_MS) == 1
    assert list(ui_components.call_cooldowns) == [(2, "a")]
    assert set(ui_components.active_calls) == {"old", "fresh"}

    assert cleanup_calls(now=1_000 + CALL_TTL_MS) == 2
    assert ui_components.call_cooldowns == {}
    assert list(ui_components.active_calls) == ["fresh"]


# ─── Решение по заявке на ответственность ────────────────────────────────────

@pytest.fixture
def support_role(guild, registry):
    role = guild.add_role(71, "Support", 30)
    registry.create("support")
    registry.set_roles("support", [role.id])
    return role


@pytest.fixture
def owner(guild):
    return guild.add_member(OWNER_ID, name="owner")


async def test_resp_approve_adds_responsible(global_settings, registry, applications, guild, owner,
                                             support_role):
    member = guild.add_member(10)
    app_id = applications.create(member.id, GUILD_ID, "support", "хочу помогать")
    interaction = make_interaction(owner, guild, f"resp_approve_{app_id}")

    await handle_resp_decision(interaction, app_id, approve=True, registry=registry, applications=applications)

    assert registry.get("support")["responsibles"] == [member.id]
    assert support_role in member.roles
    assert applications.get(app_id) is None
    assert "support" in member.send.await_args.kwargs["content"]
    assert interaction.message.edit.await_args.kwargs["embed"].color == discord.Color.green()
    assert interaction.followup.send.await_args.args[0].startswith(f"✅ <@{member.id}>")


async def test_resp_reject_only_notifies(global_settings, registry, applications, guild, owner,
                                         support_role):
    member = guild.add_member(10)
    app_id = applications.create(member.id, GUILD_ID, "support", "хочу помогать")
    interaction = make_interaction(owner, guild)

    await handle_resp_decision(interaction, app_id, approve=False, registry=registry, applications=applications)

    assert registry.get("support")["responsibles"] == []
    member.add_roles.assert_not_called()
    assert applications.get(app_id) is None
    assert "отклонена" in member.send.await_args.kwargs["content"]


async def test_resp_decision_owners_only(global_settings, registry, applications, guild, support_role):
    app_id = applications.create(10, GUILD_ID, "support", "хочу помогать")
    interaction = make_interaction(guild.add_member(20), guild)

    await handle_resp_decision(interaction, app_id, approve=True, registry=registry, applications=applications)

    interaction.response.send_message.assert_awaited_once_with("❌ Решение принимают только владельцы",
                                                               ephemeral=True)
    assert applications.get(app_id) is not None


# ─── Принятие вызова ─────────────────────────────────────────────────────────

async def test_first_claim_wins(monkeypatch, guild):
    requester = guild.add_member(10)
    monkeypatch.setattr(ui_components, "active_calls", {"call_1": {
        "name": "support", "requester_id": requester.id, "guild_id": GUILD_ID, "reason": "помогите",
        "claimed_by": None, "jump_url": None, "created_at": 0,
    }})
    client = MagicMock()
    client.get_user.return_value = requester

    first = make_interaction(guild.add_member(20), guild, "masoul_claim_call_1")
    await handle_claim_button(first, "call_1", client)
    first.response.edit_message.assert_awaited_once()
    assert ui_components.active_calls["call_1"]["claimed_by"] == 20
    assert "<@20>" in requester.send.await_args.kwargs["content"]

    second = make_interaction(guild.add_member(30), guild, "masoul_claim_call_1")
    await handle_claim_button(second, "call_1", client)
    second.response.edit_message.assert_not_called()
    assert "уже принят" in second.response.send_message.await_args.args[0]
    assert ui_components.active_calls["call_1"]["claimed_by"] == 20
    requester.send.assert_awaited_once()


async def test_claim_unknown_call(monkeypatch, guild):
    monkeypatch.setattr(ui_components, "active_calls", {})
    interaction = make_interaction(guild.add_member(20), guild)
    await handle_claim_button(interaction, "call_404", MagicMock())
    assert "не найден" in interaction.response.send_message.await_args.args[0]
