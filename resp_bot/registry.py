# -*- coding: utf-8 -*-
"""
Реестр ответственностей: название -> описание, ответственные, порядок, роли, шорткат, изображение
"""

import logging
import os
from typing import Dict, Iterable, List, Optional

from staff_bot.results import OperationResult
from staff_bot.storage import DATA_DIR, ensure_json, now_ms, read_json, write_json

logger = logging.getLogger("staffbot.resp")

MAX_NAME_LENGTH = 50


def new_responsibility(description: str = "", order: int = 0) -> Dict:
    return {
        "description": description,
        "responsibles": [],
        "order": order,
        "roles": [],
        "mention": {"enabled": False, "shortcut": None},
        "image": None,
        "created_at": now_ms(),
    }


class ResponsibilityRegistry:
    """Хранилище ответственностей в responsibilities.json"""

    def __init__(self, data_dir: str = DATA_DIR):
        self.path = os.path.join(data_dir, "responsibilities.json")

    def ensure_file(self):
        ensure_json(self.path, {})

    def _load(self) -> Dict[str, Dict]:
        data = read_json(self.path, {})
        for resp in data.values():
            resp.setdefault("responsibles", [])
            resp.setdefault("roles", [])
            resp.setdefault("order", 0)
            resp.setdefault("mention", {"enabled": False, "shortcut": None})
            resp.setdefault("image", None)
            resp.setdefault("description", "")
        return data

    def _save(self, data: Dict[str, Dict]) -> bool:
        return write_json(self.path, data)

    # ─── Чтение ────────────────────────────────────────────────────────────────
    def all(self) -> Dict[str, Dict]:
        """Все ответственности, упорядоченные по order, затем по имени"""
        data = self._load()
        ordered = sorted(data.items(), key=lambda item: (item[1].get("order", 0), item[0]))
        return dict(ordered)

    def names(self) -> List[str]:
        return list(self.all().keys())

    def get(self, name: str) -> Optional[Dict]:
        return self._load().get(name)

    def responsibilities_of(self, user_id: int) -> List[str]:
        return [name for name, resp in self.all().items() if int(user_id) in resp["responsibles"]]

    def is_responsible(self, user_id: int, names: Iterable[str]) -> bool:
        data = self._load()
        for name in names:
            resp = data.get(name)
            if resp and int(user_id) in resp["responsibles"]:
                return True
        return False

    def roles_still_needed(self, user_id: int, role_id: int, excluding: Iterable[str] = ()) -> bool:
        """Нужна ли роль пользователю из-за другой ответственности"""
        skip = set(excluding)
        for name, resp in self._load().items():
            if name in skip:
                continue
            if int(role_id) in resp["roles"] and int(user_id) in resp["responsibles"]:
                return True
        return False

    def find_by_shortcut(self, word: str) -> Optional[str]:
        if not word:
            return None
        word = word.strip().lower()
        for name, resp in self.all().items():
            mention = resp.get("mention") or {}
            shortcut = mention.get("shortcut")
            if mention.get("enabled") and shortcut and shortcut.lower() == word:
                return name
        return None

    # ─── Изменение ─────────────────────────────────────────────────────────────
    def create(self, name: str, description: str = "", order: int = None) -> OperationResult:
        name = (name or "").strip()
        if not name:
            return OperationResult.fail("Название не может быть пустым")
        if len(name) > MAX_NAME_LENGTH:
            return OperationResult.fail(f"Название длиннее {MAX_NAME_LENGTH} символов")
        data = self._load()
        if name in data:
            return OperationResult.fail(f"Ответственность **{name}** уже существует")
        if order is None:
            order = max((r.get("order", 0) for r in data.values()), default=0) + 1
        data[name] = new_responsibility(description, order)
        if not self._save(data):
            return OperationResult.fail("Не удалось сохранить ответственность")
        logger.info(f"✅ Создана ответственность {name}")
        return OperationResult.ok(name=name)

    def update(self, name: str, **changes) -> OperationResult:
        data = self._load()
        if name not in data:
            return OperationResult.fail(f"Ответственность **{name}** не найдена")
        data[name].update(changes)
        if not self._save(data):
            return OperationResult.fail("Не удалось сохранить ответственность")
        return OperationResult.ok(name=name)

    def rename(self, old_name: str, new_name: str) -> OperationResult:
        new_name = (new_name or "").strip()
        data = self._load()
        if old_name not in data:
            return OperationResult.fail(f"Ответственность **{old_name}** не найдена")
        if not new_name or new_name in data:
            return OperationResult.fail("Новое название пустое или уже занято")
        data[new_name] = data.pop(old_name)
        if not self._save(data):
            return OperationResult.fail("Не удалось сохранить ответственность")
        return OperationResult.ok(name=new_name)

    def delete(self, name: str) -> OperationResult:
        data = self._load()
        if name not in data:
            return OperationResult.fail(f"Ответственность **{name}** не найдена")
        removed = data.pop(name)
        if not self._save(data):
            return OperationResult.fail("Не удалось сохранить ответственность")
        logger.info(f"🗑️ Удалена ответственность {name}")
        return OperationResult.ok(name=name, responsibility=removed)

    def set_description(self, name: str, description: str) -> OperationResult:
        return self.update(name, description=description)

    def set_order(self, name: str, order: int) -> OperationResult:
        return self.update(name, order=int(order))

    def set_image(self, name: str, image_url: Optional[str]) -> OperationResult:
        return self.update(name, image=image_url or None)

    def set_roles(self, name: str, role_ids: Iterable[int]) -> OperationResult:
        return self.update(name, roles=sorted({int(r) for r in role_ids}))

    def set_mention(self, name: str, enabled: bool, shortcut: Optional[str] = None) -> OperationResult:
        if enabled and shortcut:
            other = self.find_by_shortcut(shortcut)
            if other and other != name:
                return OperationResult.fail(f"Шорткат уже используется ответственностью **{other}**")
        return self.update(name, mention={"enabled": bool(enabled), "shortcut": shortcut})

    def add_responsible(self, name: str, user_id: int) -> OperationResult:
        data = self._load()
        resp = data.get(name)
        if resp is None:
            return OperationResult.fail(f"Ответственность **{name}** не найдена")
        if int(user_id) in resp["responsibles"]:
            return OperationResult.fail("Участник уже является ответственным")
        resp["responsibles"].append(int(user_id))
        if not self._save(data):
            return OperationResult.fail("Не удалось сохранить ответственность")
        return OperationResult.ok(name=name, roles=list(resp["roles"]))

    def remove_responsible(self, name: str, user_id: int) -> OperationResult:
        data = self._load()
        resp = data.get(name)
        if resp is None:
            return OperationResult.fail(f"Ответственность **{name}** не найдена")
        if int(user_id) not in resp["responsibles"]:
            return OperationResult.fail("Участник не является ответственным")
        resp["responsibles"].remove(int(user_id))
        if not self._save(data):
            return OperationResult.fail("Не удалось сохранить ответственность")
        return OperationResult.ok(name=name, roles=list(resp["roles"]))


class RespApplications:
    """Заявки на ответственность в resp_applications.json"""

    def __init__(self, data_dir: str = DATA_DIR):
        self.path = os.path.join(data_dir, "resp_applications.json")

    def _load(self) -> Dict[str, Dict]:
        return read_json(self.path, {})

    def create(self, user_id: int, guild_id: int, responsibility: str, reason: str) -> Optional[str]:
        created_at = now_ms()
        app_id = f"resp_app_{created_at}_{user_id}"
        data = self._load()
        data[app_id] = {
            "user_id": int(user_id),
            "guild_id": int(guild_id),
            "responsibility": responsibility,
            "reason": reason,
            "created_at": created_at,
        }
        return app_id if write_json(self.path, data) else None

    def get(self, app_id: str) -> Optional[Dict]:
        return self._load().get(app_id)

    def remove(self, app_id: str) -> Optional[Dict]:
        data = self._load()
        app = data.pop(app_id, None)
        if app is not None:
            write_json(self.path, data)
        return app

    def has_pending(self, user_id: int, responsibility: str) -> bool:
        return any(app["user_id"] == int(user_id) and app["responsibility"] == responsibility
                   for app in self._load().values())


# Глобальные экземпляры
responsibility_registry = ResponsibilityRegistry()
resp_applications = RespApplications()
