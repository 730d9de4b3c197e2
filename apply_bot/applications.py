# -*- coding: utf-8 -*-
"""
Хранилище заявок на администрацию и проверки номинации/одобрения
"""

import logging
import os
from typing import Dict, Iterable, Optional, Tuple

import discord

import unified_settings as settings_module
from resp_bot.registry import ResponsibilityRegistry
from staff_bot.results import OperationResult
from staff_bot.storage import DATA_DIR, now_ms, read_json, write_json

logger = logging.getLogger("staffbot.apply")

EMPTY_STORE = {"pending_applications": {}, "rejected_cooldowns": {}}
HOUR_MS = 60 * 60 * 1000


class ApplicationStore:
    """Заявки в admin_applications.json"""

    def __init__(self, data_dir: str = DATA_DIR, settings: "settings_module.UnifiedSettings" = None):
        self.path = os.path.join(data_dir, "admin_applications.json")
        self.settings = settings or settings_module.unified_settings

    def load(self) -> Dict:
        data = read_json(self.path, EMPTY_STORE)
        data.setdefault("pending_applications", {})
        data.setdefault("rejected_cooldowns", {})
        return data

    def save(self, data: Dict) -> bool:
        return write_json(self.path, data)

    def get_settings(self, guild_id: int) -> Dict:
        return self.settings.get_apply_settings(guild_id)

    # ─── Проверки ──────────────────────────────────────────────────────────────
    def is_in_cooldown(self, candidate_id: int, guild_id: int) -> Tuple[bool, int]:
        """(в кулдауне, оставшееся время в мс)"""
        entry = self.load()["rejected_cooldowns"].get(str(candidate_id))
        if not entry:
            return False, 0
        hours = self.get_settings(guild_id).get("reject_cooldown_hours", 24)
        remaining = entry["rejected_at"] + int(hours) * HOUR_MS - now_ms()
        if remaining <= 0:
            return False, 0
        return True, remaining

    def has_pending(self, candidate_id: int) -> bool:
        return any(app["candidate_id"] == int(candidate_id)
                   for app in self.load()["pending_applications"].values())

    def count_pending_by(self, requester_id: int) -> int:
        return sum(1 for app in self.load()["pending_applications"].values()
                   if app["requester_id"] == int(requester_id))

    # ─── Изменение ─────────────────────────────────────────────────────────────
    def create(self, candidate_id: int, requester_id: int, guild_id: int, stats: Dict) -> Optional[str]:
        created_at = now_ms()
        app_id = f"app_{created_at}_{candidate_id}"
        data = self.load()
        data["pending_applications"][app_id] = {
            "candidate_id": int(candidate_id),
            "requester_id": int(requester_id),
            "guild_id": int(guild_id),
            "created_at": created_at,
            "user_stats": stats,
            "message_id": None,
            "channel_id": None,
        }
        if not self.save(data):
            return None
        logger.info(f"📝 Создана заявка {app_id}")
        return app_id

    def attach_message(self, app_id: str, message_id: int, channel_id: int) -> bool:
        data = self.load()
        app = data["pending_applications"].get(app_id)
        if app is None:
            return False
        app["message_id"] = int(message_id)
        app["channel_id"] = int(channel_id)
        return self.save(data)

    def get(self, app_id: str) -> Optional[Dict]:
        return self.load()["pending_applications"].get(app_id)

    def remove(self, app_id: str) -> Optional[Dict]:
        data = self.load()
        app = data["pending_applications"].pop(app_id, None)
        if app is not None:
            self.save(data)
        return app

    def add_rejection(self, candidate_id: int, rejected_by: int) -> bool:
        data = self.load()
        data["rejected_cooldowns"][str(candidate_id)] = {
            "rejected_at": now_ms(),
            "rejected_by": int(rejected_by),
        }
        return self.save(data)

    def cleanup_expired_cooldowns(self, max_hours: int = None) -> int:
        """Удалить истёкшие кулдауны. По умолчанию берётся наибольший срок из настроек"""
        data = self.load()
        if max_hours is None:
            guilds = self.settings.settings.get("guilds", {})
            hours = [int(g.get("admin_apply", {}).get("reject_cooldown_hours", 24)) for g in guilds.values()]
            max_hours = max(hours, default=24)
        threshold = now_ms() - max_hours * HOUR_MS
        expired = [cid for cid, entry in data["rejected_cooldowns"].items() if entry["rejected_at"] <= threshold]
        for cid in expired:
            del data["rejected_cooldowns"][cid]
        if expired:
            self.save(data)
            logger.info(f"🧹 Удалено истёкших кулдаунов: {len(expired)}")
        return len(expired)


# ─── Права ───────────────────────────────────────────────────────────────────

def can_nominate(member: discord.Member, admin_roles: Iterable[int], owners: Iterable[int]) -> bool:
    if member.id in set(owners) or member.guild.owner_id == member.id:
        return True
    admin_ids = {int(r) for r in admin_roles}
    return any(role.id in admin_ids for role in member.roles)


def can_approve(member: discord.Member, settings: Dict, owners: Iterable[int],
                responsibilities: ResponsibilityRegistry) -> bool:
    if member.id in set(owners) or member.guild.owner_id == member.id:
        return True
    approvers = settings.get("approvers") or {}
    approver_type = approvers.get("type")
    targets = approvers.get("list") or []
    if approver_type == "roles":
        target_ids = {int(t) for t in targets}
        return any(role.id in target_ids for role in member.roles)
    if approver_type == "responsibility":
        return responsibilities.is_responsible(member.id, targets)
    return False


def validate_candidate(candidate: discord.Member, admin_roles: Iterable[int], store: ApplicationStore,
                       requester_id: int, guild_id: int) -> OperationResult:
    if candidate.bot:
        return OperationResult.fail("Нельзя номинировать бота")
    admin_ids = {int(r) for r in admin_roles}
    if any(role.id in admin_ids for role in candidate.roles):
        return OperationResult.fail(f"У {candidate.mention} уже есть административная роль")

    in_cooldown, remaining = store.is_in_cooldown(candidate.id, guild_id)
    if in_cooldown:
        hours = max(1, remaining // HOUR_MS)
        return OperationResult.fail(f"Кандидат недавно был отклонён, повторно можно через ~{hours} ч.")
    if store.has_pending(candidate.id):
        return OperationResult.fail("На этого кандидата уже есть заявка на рассмотрении")

    limit = int(store.get_settings(guild_id).get("max_pending_per_admin", 3))
    if store.count_pending_by(requester_id) >= limit:
        return OperationResult.fail(f"У вас уже {limit} заявок на рассмотрении")
    return OperationResult.ok()


# Глобальный экземпляр
application_store = ApplicationStore()
