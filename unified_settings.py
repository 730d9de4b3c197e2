# -*- coding: utf-8 -*-
"""
Единая система настроек для StaffBot
Объединяет настройки повышений, заявок в администрацию и ответственностей в один JSON файл
"""

import copy
import logging
import os
from typing import Dict, Any, List

from staff_bot.storage import DATA_DIR, read_json, write_json

logger = logging.getLogger("staffbot.settings")

# Путь к единому файлу настроек
UNIFIED_SETTINGS_FILE = os.path.join(DATA_DIR, "unified_settings.json")

# Настройки по умолчанию для каждой гильдии
DEFAULT_GUILD_SETTINGS = {
    # Повышения
    "promote": {
        "menu_channel": None,
        "log_channel": None,
        "allowed_users": {
            "type": None,  # owners / roles / responsibility
            "targets": []
        }
    },
    # Заявки в администрацию
    "admin_apply": {
        "application_channel": None,
        "approvers": {
            "type": "owners",
            "list": []
        },
        "max_pending_per_admin": 3,
        "reject_cooldown_hours": 24
    },
    # Ответственности
    "resp": {
        "suggestions_channel": None,
        "embed_channel": None,
        "embed_data": None  # {"message_id": ..., "channel_id": ...}
    },
    # Список административных ролей гильдии
    "admin_roles": []
}

SECTIONS = ("promote", "admin_apply", "resp")


class UnifiedSettings:
    """Класс для управления едиными настройками"""

    def __init__(self, settings_file: str = UNIFIED_SETTINGS_FILE):
        self.settings_file = settings_file
        self.settings = self._load_settings()

    def _load_settings(self) -> Dict[str, Any]:
        """Загрузить настройки из файла"""
        data = read_json(self.settings_file, {"guilds": {}, "bot_owners": []})
        data.setdefault("guilds", {})
        data.setdefault("bot_owners", [])
        return data

    def _save_settings(self) -> bool:
        """Сохранить настройки в файл (с объединением с диском)"""
        disk_data = read_json(self.settings_file, {})
        merged = self._deep_merge_dicts(disk_data, self.settings)
        if not write_json(self.settings_file, merged):
            logger.error("❌ Ошибка сохранения настроек")
            return False
        self.settings = merged
        logger.debug("💾 Настройки сохранены")
        return True

    def _deep_merge_dicts(self, base: dict, incoming: dict) -> dict:
        """Глубокое слияние словарей. Значения из incoming имеют приоритет."""
        result = base.copy()
        for key, value in incoming.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge_dicts(result[key], value)
            else:
                result[key] = value
        return result

    def get_guild_settings(self, guild_id: int) -> Dict[str, Any]:
        """Получить настройки гильдии (недостающие ключи дополняются дефолтами)"""
        guild_id_str = str(guild_id)
        guilds = self.settings.setdefault("guilds", {})

        if guild_id_str not in guilds:
            guilds[guild_id_str] = copy.deepcopy(DEFAULT_GUILD_SETTINGS)
            self._save_settings()
        else:
            guilds[guild_id_str] = self._deep_merge_dicts(
                copy.deepcopy(DEFAULT_GUILD_SETTINGS), guilds[guild_id_str]
            )

        return guilds[guild_id_str]

    def get_section(self, guild_id: int, section: str) -> Dict[str, Any]:
        """Получить одну секцию настроек"""
        guild_settings = self.get_guild_settings(guild_id)
        return guild_settings.get(section, copy.deepcopy(DEFAULT_GUILD_SETTINGS[section]))

    def update_section(self, guild_id: int, section: str, updates: Dict[str, Any]) -> bool:
        """Обновить несколько настроек секции"""
        guild_settings = self.get_guild_settings(guild_id)
        if section not in guild_settings:
            guild_settings[section] = copy.deepcopy(DEFAULT_GUILD_SETTINGS[section])
        guild_settings[section].update(updates)
        return self._save_settings()

    def get_promote_settings(self, guild_id: int) -> Dict[str, Any]:
        return self.get_section(guild_id, "promote")

    def update_promote_settings(self, guild_id: int, updates: Dict[str, Any]) -> bool:
        return self.update_section(guild_id, "promote", updates)

    def get_apply_settings(self, guild_id: int) -> Dict[str, Any]:
        return self.get_section(guild_id, "admin_apply")

    def update_apply_settings(self, guild_id: int, updates: Dict[str, Any]) -> bool:
        return self.update_section(guild_id, "admin_apply", updates)

    def get_resp_settings(self, guild_id: int) -> Dict[str, Any]:
        return self.get_section(guild_id, "resp")

    def update_resp_settings(self, guild_id: int, updates: Dict[str, Any]) -> bool:
        return self.update_section(guild_id, "resp", updates)

    def get_admin_roles(self, guild_id: int) -> List[int]:
        """Административные роли гильдии"""
        roles = self.get_guild_settings(guild_id).get("admin_roles") or []
        return [int(r) for r in roles]

    def set_admin_roles(self, guild_id: int, role_ids) -> bool:
        guild_settings = self.get_guild_settings(guild_id)
        guild_settings["admin_roles"] = sorted({int(r) for r in role_ids})
        return self._save_settings()

    def get_bot_owners(self) -> set:
        """Владельцы бота: из файла настроек и переменной окружения BOT_OWNERS"""
        owners = {int(o) for o in self.settings.get("bot_owners", [])}
        env_owners = os.getenv("BOT_OWNERS", "")
        owners |= {int(tok) for tok in env_owners.split(",") if tok.strip().isdigit()}
        return owners

    def set_bot_owners(self, owner_ids) -> bool:
        self.settings["bot_owners"] = sorted({int(o) for o in owner_ids})
        return self._save_settings()

    def export_settings(self) -> Dict[str, Any]:
        """Экспорт всех настроек"""
        return copy.deepcopy(self.settings)

    def import_settings(self, imported_settings: Dict[str, Any]) -> bool:
        """Импорт настроек"""
        self.settings = imported_settings
        self.settings.setdefault("guilds", {})
        self.settings.setdefault("bot_owners", [])
        return write_json(self.settings_file, self.settings)


# Глобальный экземпляр
unified_settings = UnifiedSettings()


def get_bot_owners() -> set:
    """Владельцы бота из глобального экземпляра"""
    return unified_settings.get_bot_owners()


def is_bot_owner(user_id: int) -> bool:
    return int(user_id) in unified_settings.get_bot_owners()
