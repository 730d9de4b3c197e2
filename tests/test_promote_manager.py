# -*- coding: utf-8 -*-
from unittest.mock import MagicMock

import pytest

import promote_bot.manager as manager_module
from promote_bot.manager import MAX_LOG_ENTRIES, PromoteManager
from staff_bot.storage import read_json

from .conftest import GUILD_ID, OWNER_ID

NOW = 1_700_000_000_000
DAY_MS = 86_400_000


@pytest.fixture(autouse=True)
def frozen_time(monkeypatch):
    clock = {"now": NOW}
    monkeypatch.setattr(manager_module, "now_ms", lambda: clock["now"])
    return clock


@pytest.fixture
def manager(data_dir, settings, stats_provider, registry):
    m = PromoteManager(data_dir=data_dir, settings=settings, stats_provider=stats_provider, registry=registry)
    m.ensure_data_files()
    return m


@pytest.fixture
def setup(guild, settings):
    """R на позиции 10, у U высшая роль на 5, у G высшая на 20"""
    old_admin = guild.add_role(5, "Old", 5)
    target_role = guild.add_role(10, "R", 10)
    granter_role = guild.add_role(20, "Boss", 20)
    settings.set_admin_roles(GUILD_ID, [old_admin.id, target_role.id])
    user = guild.add_member(100, roles=[old_admin])
    granter = guild.add_member(200, roles=[granter_role])
    return {"R": target_role, "old": old_admin, "U": user, "G": granter, "boss": granter_role}


def log_types(manager):
    return [entry["type"] for entry in read_json(manager.logs_path, [])]


async def test_temporary_promotion_sets_end_time(manager, guild, setup):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "7d", "активность", setup["G"].id)

    assert result, result.error
    assert result.data["end_time"] == NOW + 7 * DAY_MS
    assert setup["R"] in setup["U"].roles
    # временная выдача не трогает прежние роли
    assert setup["old"] in setup["U"].roles

    record = manager.get_promote(result.data["promote_id"])
    assert record["duration"] == "7d"
    assert record["user_stats"]["total_messages"] == 42
    assert log_types(manager) == ["PROMOTION_APPLIED"]


async def test_permanent_promotion_replaces_admin_roles_and_sends_dm(manager, guild, setup):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "نهائي", "заслужил", setup["G"].id)

    assert result, result.error
    assert result.data["end_time"] is None
    assert result.data["removed_old_roles"] == ["Old"]
    assert setup["old"] not in setup["U"].roles
    setup["U"].send.assert_awaited_once()
    assert manager.get_promote(result.data["promote_id"])["duration"] == "permanent"


async def test_granter_below_role_is_rejected(manager, guild, setup):
    setup["G"].roles.remove(setup["boss"])
    setup["G"].roles.append(guild.add_role(9, "Low", 9))

    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)

    assert not result
    setup["U"].add_roles.assert_not_called()
    assert manager.get_active_promotes() == []


async def test_role_not_above_target_top_is_rejected(manager, guild, setup):
    setup["U"].roles.append(guild.add_role(15, "Senior", 15))

    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)

    assert not result
    assert "не выше текущей высшей роли" in result.error
    assert "Senior" in result.error
    setup["U"].add_roles.assert_not_called()


async def test_owner_bypasses_hierarchy(manager, guild, setup):
    owner = guild.add_member(OWNER_ID)
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", owner.id)
    assert result, result.error


async def test_invalid_duration_changes_nothing(manager, guild, setup):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "abc", "x", setup["G"].id)

    assert not result
    assert "abc" in result.error
    setup["U"].add_roles.assert_not_called()
    setup["U"].remove_roles.assert_not_called()


async def test_non_admin_role_is_rejected(manager, guild, setup):
    other = guild.add_role(11, "NotAdmin", 11)
    result = await manager.create_promotion(guild, setup["U"].id, other.id, "1d", "x", setup["G"].id)
    assert not result
    setup["U"].add_roles.assert_not_called()


async def test_role_above_bot_is_rejected(manager, guild, setup, settings):
    high = guild.add_role(150, "Top", 150)
    settings.set_admin_roles(GUILD_ID, [setup["R"].id, high.id])
    owner = guild.add_member(OWNER_ID)
    result = await manager.create_promotion(guild, setup["U"].id, high.id, "1d", "x", owner.id)
    assert not result
    assert "бота" in result.error


async def test_missing_reason_is_rejected(manager, guild, setup):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "  ", setup["G"].id)
    assert not result


async def test_ban_blocks_promotion(manager, guild, setup):
    ban = await manager.add_promotion_ban(guild, setup["U"].id, "1d", "нарушения", setup["G"].id)
    assert ban
    assert manager.is_user_banned(setup["U"].id, GUILD_ID)

    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)
    assert not result
    setup["U"].add_roles.assert_not_called()

    second = await manager.add_promotion_ban(guild, setup["U"].id, "1d", "ещё", setup["G"].id)
    assert not second


async def test_expired_ban_no_longer_blocks(manager, guild, setup, frozen_time):
    await manager.add_promotion_ban(guild, setup["U"].id, "1h", "тест", setup["G"].id)
    frozen_time["now"] = NOW + 2 * 3_600_000

    assert not manager.is_user_banned(setup["U"].id, GUILD_ID)
    assert manager.get_banned_users(GUILD_ID) == []
    assert await manager.process_expired_bans(now=frozen_time["now"]) == 1
    assert "PROMOTION_BAN_EXPIRED" in log_types(manager)


async def test_unban(manager, guild, setup):
    await manager.add_promotion_ban(guild, setup["U"].id, None, "тест", setup["G"].id)
    assert manager.get_ban(setup["U"].id, GUILD_ID)["end_time"] is None

    assert await manager.remove_promotion_ban(guild, setup["U"].id, "прощён", setup["G"].id)
    assert not manager.is_user_banned(setup["U"].id, GUILD_ID)
    assert not await manager.remove_promotion_ban(guild, setup["U"].id, "снова", setup["G"].id)


async def test_expiry_removes_role_once(manager, guild, setup, frozen_time):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1h", "x", setup["G"].id)
    assert result
    manager.bot = MagicMock(get_guild=lambda gid: guild if gid == GUILD_ID else None)

    later = NOW + 2 * 3_600_000
    frozen_time["now"] = later
    assert await manager.process_expired_promotions(now=later) == 1
    assert setup["R"] not in setup["U"].roles
    assert manager.get_active_promotes() == []

    assert await manager.process_expired_promotions(now=later) == 0
    assert setup["U"].remove_roles.await_count == 1
    assert log_types(manager).count("PROMOTION_ENDED") == 1


async def test_expiry_without_bot_does_nothing(manager, guild, setup):
    await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1h", "x", setup["G"].id)
    assert await manager.process_expired_promotions(now=NOW + DAY_MS) == 0
    assert len(manager.get_active_promotes()) == 1


async def test_expiry_skips_unavailable_guild(manager, guild, setup):
    await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1h", "x", setup["G"].id)
    guild.unavailable = True
    manager.bot = MagicMock(get_guild=lambda gid: guild)
    assert await manager.process_expired_promotions(now=NOW + DAY_MS) == 0
    assert len(manager.get_active_promotes()) == 1


async def test_expiry_when_member_left(manager, guild, setup):
    await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1h", "x", setup["G"].id)
    del guild.members[setup["U"].id]
    manager.bot = MagicMock(get_guild=lambda gid: guild)

    assert await manager.process_expired_promotions(now=NOW + DAY_MS) == 1
    assert manager.get_active_promotes() == []
    assert "PROMOTION_EXPIRED_MEMBER_LEFT" in log_types(manager)


async def test_modify_duration_recomputes_from_now(manager, guild, setup, frozen_time):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)
    frozen_time["now"] = NOW + 1000

    modified = await manager.modify_promotion_duration(guild, result.data["promote_id"], "3d", setup["G"].id)
    assert modified
    assert modified.data["end_time"] == NOW + 1000 + 3 * DAY_MS

    bad = await manager.modify_promotion_duration(guild, result.data["promote_id"], "soon", setup["G"].id)
    assert not bad


async def test_end_promotion_removes_role(manager, guild, setup):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)
    ended = await manager.end_promotion(guild, result.data["promote_id"], "вручную", setup["G"].id)

    assert ended
    assert setup["R"] not in setup["U"].roles
    assert manager.get_active_promotes() == []
    assert not await manager.end_promotion(guild, result.data["promote_id"])


async def test_leave_and_rejoin_restores_promotion(manager, guild, setup):
    result = await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "7d", "x", setup["G"].id)
    member = setup["U"]

    left = await manager.handle_member_leave(member)
    assert left.data["saved"] == 1
    assert manager.get_active_promotes() == []

    member.roles.remove(setup["R"])
    joined = await manager.handle_member_join(member)
    assert joined.data == {"restored": 1, "failed": 0}
    assert setup["R"] in member.roles

    [record] = manager.get_active_promotes(GUILD_ID)
    assert record["restored_after_leave"] is True
    assert record["original_left_at"] == NOW
    assert record["end_time"] == result.data["end_time"]

    # снимок использован
    again = await manager.handle_member_join(member)
    assert again.data["restored"] == 0


async def test_rejoin_after_expiry_restores_nothing(manager, guild, setup, frozen_time):
    await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1h", "x", setup["G"].id)
    await manager.handle_member_leave(setup["U"])
    setup["U"].roles.remove(setup["R"])
    frozen_time["now"] = NOW + DAY_MS

    joined = await manager.handle_member_join(setup["U"])
    assert joined.data == {"restored": 0, "failed": 1}
    assert setup["R"] not in setup["U"].roles


async def test_manual_role_removal_drops_record(manager, guild, setup, frozen_time):
    await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)
    # выдача бота отслеживается некоторое время
    assert await manager.handle_manual_role_removal(setup["U"], setup["R"].id) == 0

    frozen_time["now"] = NOW + 60_000
    assert await manager.handle_manual_role_removal(setup["U"], setup["R"].id) == 1
    assert manager.get_active_promotes() == []


def test_log_is_capped(manager):
    for i in range(MAX_LOG_ENTRIES + 5):
        manager.log_action("PROMOTION_APPLIED", {"n": i})
    logs = read_json(manager.logs_path, [])
    assert len(logs) == MAX_LOG_ENTRIES
    assert logs[0]["data"]["n"] == 5
    assert logs[-1]["data"]["n"] == MAX_LOG_ENTRIES + 4


def test_grouped_logs(manager):
    manager.log_action("PROMOTION_APPLIED", {"n": 1})
    manager.log_action("PROMOTION_ENDED", {"n": 2})
    manager.log_action("PROMOTION_APPLIED", {"n": 3})

    grouped = manager.get_grouped_logs()
    assert {t: [e["data"]["n"] for e in entries] for t, entries in grouped.items()} == {
        "PROMOTION_APPLIED": [1, 3],
        "PROMOTION_ENDED": [2],
    }
    # limit берёт только последние записи
    assert list(manager.get_grouped_logs(limit=1)) == ["PROMOTION_APPLIED"]


async def test_bulk_promotion_skips_log_and_dm(manager, guild, setup):
    result = await manager.create_bulk_promotion(guild, setup["U"].id, setup["R"].id, "1d", "массовое",
                                                 setup["G"].id, transaction_id="tx_1")

    assert result, result.error
    assert setup["R"] in setup["U"].roles
    assert manager.get_promote(result.data["promote_id"])["transaction_id"] == "tx_1"
    assert log_types(manager) == []
    setup["U"].send.assert_not_called()


async def test_system_stats(manager, guild, setup):
    await manager.create_promotion(guild, setup["U"].id, setup["R"].id, "1d", "x", setup["G"].id)
    other = guild.add_member(300)
    await manager.add_promotion_ban(guild, other.id, "1d", "x", setup["G"].id)

    stats = manager.get_system_stats()
    assert stats["active"] == 1
    assert stats["temporary"] == 1
    assert stats["permanent"] == 0
    assert stats["banned"] == 1


def test_permission_by_roles_and_responsibility(manager, guild, setup, registry):
    member = setup["G"]
    assert not manager.has_permission(member, GUILD_ID)

    manager.update_settings(GUILD_ID, allowed_users={"type": "roles", "targets": [setup["boss"].id]})
    assert manager.has_permission(member, GUILD_ID)

    registry.create("ترقيات")
    registry.add_responsible("ترقيات", setup["U"].id)
    manager.update_settings(GUILD_ID, allowed_users={"type": "responsibility", "targets": ["ترقيات"]})
    assert manager.has_permission(setup["U"], GUILD_ID)
    assert not manager.has_permission(member, GUILD_ID)
