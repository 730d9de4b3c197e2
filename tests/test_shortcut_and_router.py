# -*- coding: utf-8 -*-
from unittest.mock import AsyncMock, MagicMock

import pytest

import staff_bot.main as main_module
from promote_bot.ui_components import plan_move, shortcut_ladder


@pytest.fixture
def ladder(guild):
    ranks = [guild.add_role(31, "A1", 31), guild.add_role(32, "A2", 32), guild.add_role(33, "A3", 33)]
    guild.add_role(40, "Moderators", 40)
    return ranks


def test_ladder_splits_rank_and_visual_roles(guild, ladder):
    ids = [40, 33, 31, 32]
    assert shortcut_ladder(guild, ids, "rank") == ladder
    assert [r.name for r in shortcut_ladder(guild, ids, "visual")] == ["Moderators"]


def test_move_up(ladder):
    assert plan_move(ladder, set(), "up", 1) == (None, ladder[0])
    assert plan_move(ladder, {31}, "up", 1) == (ladder[0], ladder[1])
    # выше вершины лестницы не поднимаемся
    assert plan_move(ladder, {32}, "up", 5) == (ladder[1], ladder[2])


def test_move_down(ladder):
    assert plan_move(ladder, {33}, "down", 2) == (ladder[2], ladder[0])
    assert plan_move(ladder, {31}, "down", 1) == (ladder[0], None)
    assert plan_move(ladder, set(), "down", 1) == (None, None)


def test_highest_held_role_counts(ladder):
    assert plan_move(ladder, {31, 33}, "down", 1) == (ladder[2], ladder[1])


@pytest.mark.parametrize("custom_id,handler,expected_arg", [
    ("admin_approve_app_1_2", "handle_admin_approve", "app_1_2"),
    ("admin_reject_app_1_2", "handle_admin_reject", "app_1_2"),
    ("resp_approve_resp_app_1_2", "handle_resp_decision", "resp_app_1_2"),
    ("resp_reject_resp_app_1_2", "handle_resp_decision", "resp_app_1_2"),
    ("masoul_claim_call_9", "handle_claim_button", "call_9"),
])
async def test_router_dispatches_by_prefix(monkeypatch, custom_id, handler, expected_arg):
    mock = AsyncMock()
    monkeypatch.setattr(main_module, handler, mock)
    interaction = MagicMock()

    assert await main_module.route_interaction(MagicMock(), interaction, custom_id)
    mock.assert_awaited_once()
    args = mock.await_args.args
    assert args[0] is interaction
    assert args[1] == expected_arg


async def test_router_resp_decision_flag(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(main_module, "handle_resp_decision", mock)
    await main_module.route_interaction(MagicMock(), MagicMock(), "resp_reject_x")
    assert mock.await_args.kwargs == {"approve": False}


async def test_router_contact_and_unknown(monkeypatch):
    contact = AsyncMock()
    monkeypatch.setattr(main_module, "handle_contact_button", contact)

    assert await main_module.route_interaction(MagicMock(), MagicMock(), "masoul_contact_a_all_1")
    contact.assert_awaited_once()
    assert not await main_module.route_interaction(MagicMock(), MagicMock(), "promote_main_menu")


def test_command_prefix_from_env(monkeypatch):
    monkeypatch.setenv("COMMAND_PREFIX", "?")
    assert main_module.get_command_prefix() == "?"
    monkeypatch.delenv("COMMAND_PREFIX")
    assert main_module.get_command_prefix() == "!"
