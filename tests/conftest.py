# -*- coding: utf-8 -*-
"""Общие фикстуры: временный каталог данных и лёгкие подделки объектов Discord"""

import os
import tempfile
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Глобальные экземпляры создаются при импорте, поэтому каталог задаётся заранее
os.environ.setdefault("STAFFBOT_DATA_DIR", tempfile.mkdtemp(prefix="staffbot-tests-"))

import discord  # noqa: E402
import pytest  # noqa: E402

from resp_bot.registry import RespApplications, ResponsibilityRegistry  # noqa: E402
import unified_settings as settings_module  # noqa: E402
from unified_settings import UnifiedSettings  # noqa: E402

GUILD_ID = 1000
OWNER_ID = 1


def not_found():
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Member")


def http_error(message: str = "Server Error"):
    return discord.HTTPException(MagicMock(status=500, reason=message), message)


def make_interaction(user, guild, custom_id: str = ""):
    """Взаимодействие кнопки: ответы и followup записываются в AsyncMock"""
    interaction = MagicMock()
    interaction.user = user
    interaction.guild = guild
    interaction.data = {"custom_id": custom_id}
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.response.edit_message = AsyncMock()
    interaction.response.send_modal = AsyncMock()
    interaction.followup.send = AsyncMock()
    interaction.message.embeds = []
    interaction.message.edit = AsyncMock()
    return interaction


class FakeRole:
    def __init__(self, role_id: int, name: str, position: int):
        self.id = role_id
        self.name = name
        self.position = position

    @property
    def mention(self):
        return f"<@&{self.id}>"

    def __repr__(self):
        return f"FakeRole({self.name}, pos={self.position})"


class FakeMember:
    def __init__(self, user_id: int, guild: "FakeGuild", roles=(), name: str = None, bot: bool = False):
        self.id = user_id
        self.guild = guild
        self.name = name or f"user{user_id}"
        self.display_name = self.name
        self.bot = bot
        self.roles = [guild.default_role, *roles]
        self.guild_permissions = SimpleNamespace(manage_roles=True)
        self.send = AsyncMock()
        self.add_roles = AsyncMock(side_effect=self._add_roles)
        self.remove_roles = AsyncMock(side_effect=self._remove_roles)

    async def _add_roles(self, *roles, reason=None):
        for role in roles:
            if role not in self.roles:
                self.roles.append(role)

    async def _remove_roles(self, *roles, reason=None):
        for role in roles:
            if role in self.roles:
                self.roles.remove(role)

    @property
    def top_role(self):
        return max(self.roles, key=lambda r: r.position)

    @property
    def mention(self):
        return f"<@{self.id}>"


class FakeGuild:
    def __init__(self, guild_id: int = GUILD_ID, name: str = "Test Guild"):
        self.id = guild_id
        self.name = name
        self.owner_id = 999
        self.unavailable = False
        self.default_role = FakeRole(guild_id, "@everyone", 0)
        self.roles = {guild_id: self.default_role}
        self.members = {}
        bot_role = self.add_role(9000, "Bot", 100)
        self.me = self.add_member(8000, roles=[bot_role], name="staffbot")

    def add_role(self, role_id: int, name: str, position: int) -> FakeRole:
        role = FakeRole(role_id, name, position)
        self.roles[role_id] = role
        return role

    def add_member(self, user_id: int, roles=(), name: str = None) -> FakeMember:
        member = FakeMember(user_id, self, roles, name)
        self.members[user_id] = member
        return member

    def get_role(self, role_id):
        return self.roles.get(int(role_id))

    def get_member(self, user_id):
        return self.members.get(int(user_id))

    async def fetch_member(self, user_id):
        member = self.get_member(user_id)
        if member is None:
            raise not_found()
        return member

    def get_channel(self, channel_id):
        return None


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def settings(tmp_path):
    s = UnifiedSettings(str(tmp_path / "unified_settings.json"))
    s.set_bot_owners([OWNER_ID])
    return s


@pytest.fixture
def global_settings(monkeypatch, settings):
    """Подменить глобальный экземпляр настроек, через который проверяются владельцы"""
    monkeypatch.setattr(settings_module, "unified_settings", settings)
    return settings


@pytest.fixture
def registry(data_dir):
    r = ResponsibilityRegistry(data_dir)
    r.ensure_file()
    return r


@pytest.fixture
def applications(data_dir):
    return RespApplications(data_dir)


@pytest.fixture
def guild():
    return FakeGuild()


@pytest.fixture
def stats_provider():
    return AsyncMock(return_value={
        "total_voice_time": 3_600_000,
        "total_messages": 42,
        "total_reactions": 3,
        "total_sessions": 2,
        "active_days": 5,
    })
