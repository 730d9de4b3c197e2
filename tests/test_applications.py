# -*- coding: utf-8 -*-
from types import SimpleNamespace

import pytest

import apply_bot.applications as applications_module
from apply_bot.applications import HOUR_MS, ApplicationStore, can_approve, can_nominate, validate_candidate
from apply_bot.ui_components import manageable_roles

from .conftest import GUILD_ID, OWNER_ID

NOW = 1_700_000_000_000


@pytest.fixture(autouse=True)
def frozen_time(monkeypatch):
    clock = {"now": NOW}
    monkeypatch.setattr(applications_module, "now_ms", lambda: clock["now"])
    return clock


@pytest.fixture
def store(data_dir, settings):
    settings.set_admin_roles(GUILD_ID, [50])
    return ApplicationStore(data_dir, settings)


@pytest.fixture
def admin_role(guild):
    return guild.add_role(50, "Admin", 50)


def test_valid_candidate(store, guild):
    candidate = guild.add_member(10)
    assert validate_candidate(candidate, [50], store, requester_id=2, guild_id=GUILD_ID)


def test_admin_or_bot_candidate_rejected(store, guild, admin_role):
    admin = guild.add_member(10, roles=[admin_role])
    assert not validate_candidate(admin, [50], store, 2, GUILD_ID)

    bot = guild.add_member(11)
    bot.bot = True
    assert not validate_candidate(bot, [50], store, 2, GUILD_ID)


def test_one_pending_per_candidate(store, guild):
    candidate = guild.add_member(10)
    app_id = store.create(candidate.id, 2, GUILD_ID, {"user_id": candidate.id})
    assert app_id == f"app_{NOW}_{candidate.id}"

    result = validate_candidate(candidate, [50], store, 3, GUILD_ID)
    assert not result
    assert "уже есть заявка" in result.error


def test_pending_limit_per_requester(store, guild, settings):
    settings.update_apply_settings(GUILD_ID, {"max_pending_per_admin": 2})
    store.create(20, 2, GUILD_ID, {})
    store.create(21, 2, GUILD_ID, {})

    candidate = guild.add_member(22)
    assert not validate_candidate(candidate, [50], store, 2, GUILD_ID)
    assert validate_candidate(candidate, [50], store, 3, GUILD_ID)


def test_rejection_cooldown(store, guild, frozen_time):
    candidate = guild.add_member(10)
    store.add_rejection(candidate.id, rejected_by=2)

    in_cooldown, remaining = store.is_in_cooldown(candidate.id, GUILD_ID)
    assert in_cooldown
    assert remaining == 24 * HOUR_MS
    assert not validate_candidate(candidate, [50], store, 2, GUILD_ID)

    frozen_time["now"] = NOW + 25 * HOUR_MS
    assert store.is_in_cooldown(candidate.id, GUILD_ID) == (False, 0)
    assert validate_candidate(candidate, [50], store, 2, GUILD_ID)
    assert store.cleanup_expired_cooldowns() == 1
    assert store.load()["rejected_cooldowns"] == {}


def test_attach_and_remove(store):
    app_id = store.create(10, 2, GUILD_ID, {})
    assert store.attach_message(app_id, 111, 222)
    assert store.get(app_id)["message_id"] == 111
    assert store.remove(app_id)["candidate_id"] == 10
    assert store.remove(app_id) is None
    assert not store.attach_message(app_id, 1, 2)


def test_can_nominate(guild, admin_role):
    plain = guild.add_member(10)
    admin = guild.add_member(11, roles=[admin_role])
    owner = guild.add_member(OWNER_ID)
    assert not can_nominate(plain, [50], {OWNER_ID})
    assert can_nominate(admin, [50], {OWNER_ID})
    assert can_nominate(owner, [50], {OWNER_ID})


def test_can_approve_modes(guild, registry):
    judge_role = guild.add_role(60, "Judge", 60)
    judge = guild.add_member(10, roles=[judge_role])
    owners = {OWNER_ID}

    assert not can_approve(judge, {"approvers": {"type": "owners", "list": []}}, owners, registry)
    assert can_approve(judge, {"approvers": {"type": "roles", "list": [60]}}, owners, registry)

    registry.create("HR")
    registry.add_responsible("HR", judge.id)
    assert can_approve(judge, {"approvers": {"type": "responsibility", "list": ["HR"]}}, owners, registry)
    assert can_approve(guild.add_member(OWNER_ID), {}, owners, registry)


def test_manageable_roles(guild):
    low = guild.add_role(51, "Low", 40)
    high = guild.add_role(52, "High", 120)
    ok, blocked = manageable_roles(guild, [51, 52, 404])
    assert ok == [low]
    assert blocked == [high]

    guild.me.guild_permissions = SimpleNamespace(manage_roles=False)
    ok, blocked = manageable_roles(guild, [51])
    assert ok == [] and blocked == [low]
