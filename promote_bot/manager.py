# -*- coding: utf-8 -*-
"""
Менеджер повышений: выдача временных ролей, истечение сроков, запреты,
восстановление повышений после возвращения участника и журнал действий.

Все публичные операции возвращают OperationResult и не пробрасывают исключения.
"""

import logging
import os
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import discord

import unified_settings as settings_module
from resp_bot.registry import ResponsibilityRegistry
from staff_bot.durations import is_permanent, parse_duration
from staff_bot.results import OperationResult
from staff_bot.stats_db import stats_db
from staff_bot.storage import DATA_DIR, ensure_json, now_ms, read_json, write_json

from .embeds import (absence_text, create_dm_embed, create_log_embed, duration_label,
                     end_label, role_list_text, stats_line, ts)

logger = logging.getLogger("staffbot.promote")

MAX_LOG_ENTRIES = 1000
IGNORE_TTL_MS = 30_000
TRACKING_TTL_MS = 10_000
DEFAULT_END_REASON = "انتهاء المدة المحددة"

StatsProvider = Callable[[int], Awaitable[Dict]]


def ban_key(user_id: int, guild_id: int) -> str:
    return f"{user_id}_{guild_id}"


def tracking_key(guild_id: int, user_id: int, role_id: int) -> str:
    return f"{guild_id}_{user_id}_{role_id}"


class PromoteManager:
    """Жизненный цикл повышений"""

    def __init__(self, data_dir: str = DATA_DIR, settings: "settings_module.UnifiedSettings" = None,
                 stats_provider: StatsProvider = None, registry: ResponsibilityRegistry = None):
        self.data_dir = data_dir
        self.settings = settings or settings_module.unified_settings
        self.stats_provider = stats_provider or stats_db.get_interaction_stats
        self.registry = registry or ResponsibilityRegistry(data_dir)

        self.active_promotes_path = os.path.join(data_dir, "active_promotes.json")
        self.bans_path = os.path.join(data_dir, "promote_bans.json")
        self.logs_path = os.path.join(data_dir, "promote_logs.json")
        self.left_members_path = os.path.join(data_dir, "left_members_promotes.json")

        self.bot: Optional[discord.Client] = None
        # ключ -> момент истечения (мс)
        self.auto_promote_ignore: Dict[str, int] = {}
        self.bot_promotion_tracking: Dict[str, int] = {}

    def init(self, bot: discord.Client):
        self.bot = bot
        self.ensure_data_files()
        logger.info("✅ Менеджер повышений инициализирован")

    def ensure_data_files(self):
        ensure_json(self.active_promotes_path, {})
        ensure_json(self.bans_path, {})
        ensure_json(self.logs_path, [])
        ensure_json(self.left_members_path, {})
        self.registry.ensure_file()

    # ─── Файлы ──────────────────────────────────────────────────────────────────
    def _load_active(self) -> Dict[str, Dict]:
        return read_json(self.active_promotes_path, {})

    def _save_active(self, data: Dict[str, Dict]) -> bool:
        return write_json(self.active_promotes_path, data)

    def _load_bans(self) -> Dict[str, Dict]:
        return read_json(self.bans_path, {})

    def _save_bans(self, data: Dict[str, Dict]) -> bool:
        return write_json(self.bans_path, data)

    def _load_left(self) -> Dict[str, Dict]:
        return read_json(self.left_members_path, {})

    def _save_left(self, data: Dict[str, Dict]) -> bool:
        return write_json(self.left_members_path, data)

    def _delete_promotes(self, promote_ids: List[str]) -> bool:
        data = self._load_active()
        for promote_id in promote_ids:
            data.pop(promote_id, None)
        return self._save_active(data)

    def delete_promotion_record(self, promote_id: str) -> bool:
        """Удалить запись без снятия роли и уведомлений"""
        return self._delete_promotes([promote_id])

    def log_action(self, action_type: str, data: Dict) -> bool:
        """Добавить запись в журнал действий (не более MAX_LOG_ENTRIES)"""
        logs = read_json(self.logs_path, [])
        logs.append({"type": action_type, "data": data, "timestamp": now_ms()})
        if len(logs) > MAX_LOG_ENTRIES:
            logs = logs[-MAX_LOG_ENTRIES:]
        if not write_json(self.logs_path, logs):
            logger.error(f"❌ Не удалось записать действие {action_type} в журнал")
            return False
        return True

    # ─── Discord-помощники ─────────────────────────────────────────────────────
    @staticmethod
    async def resolve_member(guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except (discord.NotFound, discord.HTTPException):
            return None

    async def _resolve_user(self, user_id: int, member: discord.Member = None):
        if member is not None:
            return member
        if self.bot is None:
            return None
        user = self.bot.get_user(int(user_id))
        if user is not None:
            return user
        try:
            return await self.bot.fetch_user(int(user_id))
        except (discord.NotFound, discord.HTTPException):
            return None

    async def send_dm(self, user, embed: discord.Embed) -> bool:
        if user is None:
            return False
        try:
            await user.send(embed=embed)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Не удалось отправить ЛС пользователю {getattr(user, 'id', '?')}: {e}")
            return False

    async def send_log_message(self, guild: discord.Guild, embed: discord.Embed) -> bool:
        channel_id = self.get_settings(guild.id).get("log_channel")
        if not channel_id:
            return False
        channel = guild.get_channel(int(channel_id))
        if channel is None:
            logger.warning(f"⚠️ Канал логов {channel_id} не найден на сервере {guild.id}")
            return False
        try:
            await channel.send(embed=embed)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Не удалось отправить лог в канал {channel_id}: {e}")
            return False

    # ─── Проверки ──────────────────────────────────────────────────────────────
    def validate_bot_permissions(self, guild: discord.Guild, role: Optional[discord.Role]) -> OperationResult:
        if role is None:
            return OperationResult.fail("Роль не найдена")
        me = guild.me
        if me is None or not me.guild_permissions.manage_roles:
            return OperationResult.fail("У бота нет права управлять ролями")
        if role.position >= me.top_role.position:
            return OperationResult.fail(f"Роль **{role.name}** выше или равна высшей роли бота")
        return OperationResult.ok()

    async def validate_role_hierarchy(self, guild: discord.Guild, target_id: int, role_id: int,
                                      by_user_id: int) -> OperationResult:
        target = await self.resolve_member(guild, target_id)
        granter = await self.resolve_member(guild, by_user_id)
        role = guild.get_role(int(role_id))
        if target is None or granter is None or role is None:
            return OperationResult.fail("Не удалось найти участника, выдающего или роль")

        if self.is_owner(by_user_id):
            return OperationResult.ok()

        target_top = target.top_role
        if target_top.id != guild.id and role.position <= target_top.position:
            return OperationResult.fail(
                f"Роль **{role.name}** не выше текущей высшей роли участника (**{target_top.name}**)"
            )
        granter_top = granter.top_role
        if role.position >= granter_top.position:
            return OperationResult.fail(f"Нельзя выдать роль **{role.name}**: она не ниже вашей высшей роли")
        return OperationResult.ok()

    # ─── Настройки и права ─────────────────────────────────────────────────────
    def get_settings(self, guild_id: int) -> Dict:
        return self.settings.get_promote_settings(guild_id)

    def update_settings(self, guild_id: int, **changes) -> bool:
        return self.settings.update_promote_settings(guild_id, changes)

    def get_admin_roles(self, guild_id: int) -> List[int]:
        return self.settings.get_admin_roles(guild_id)

    def is_admin_role(self, guild_id: int, role_id: int) -> bool:
        return int(role_id) in self.get_admin_roles(guild_id)

    def is_owner(self, user_id: int) -> bool:
        return int(user_id) in self.settings.get_bot_owners()

    def has_permission(self, member: discord.Member, guild_id: int) -> bool:
        if self.is_owner(member.id):
            return True
        allowed = self.get_settings(guild_id).get("allowed_users") or {}
        allowed_type = allowed.get("type")
        targets = allowed.get("targets") or []

        if allowed_type == "roles":
            target_ids = {int(t) for t in targets}
            return any(role.id in target_ids for role in member.roles)
        if allowed_type == "responsibility":
            return self.registry.is_responsible(member.id, targets)
        return False

    # ─── Временные отметки ─────────────────────────────────────────────────────
    def add_to_ignore(self, user_id: int, role_id: int, ttl_ms: int = IGNORE_TTL_MS):
        self.auto_promote_ignore[f"{user_id}_{role_id}"] = now_ms() + ttl_ms

    def is_ignored(self, user_id: int, role_id: int) -> bool:
        key = f"{user_id}_{role_id}"
        expires = self.auto_promote_ignore.get(key)
        if expires is None:
            return False
        if expires <= now_ms():
            del self.auto_promote_ignore[key]
            return False
        return True

    def track_bot_promotion(self, guild_id: int, user_id: int, role_id: int, ttl_ms: int = TRACKING_TTL_MS):
        self.bot_promotion_tracking[tracking_key(guild_id, user_id, role_id)] = now_ms() + ttl_ms

    def is_bot_promoting(self, guild_id: int, user_id: int, role_id: int) -> bool:
        key = tracking_key(guild_id, user_id, role_id)
        expires = self.bot_promotion_tracking.get(key)
        if expires is None:
            return False
        if expires <= now_ms():
            del self.bot_promotion_tracking[key]
            return False
        return True

    def cleanup_tracking(self) -> int:
        now = now_ms()
        removed = 0
        for mapping in (self.auto_promote_ignore, self.bot_promotion_tracking):
            for key in [k for k, expires in mapping.items() if expires <= now]:
                del mapping[key]
                removed += 1
        if removed:
            logger.debug(f"🧹 Очищено {removed} временных отметок")
        return removed

    # ─── Выдача повышения ──────────────────────────────────────────────────────
    async def create_promotion(self, guild: discord.Guild, target_id: int, role_id: int, duration,
                               reason: str, by_user_id: int, *, is_bulk: bool = False,
                               send_dm: bool = True, is_multi: bool = False,
                               transaction_id: str = None) -> OperationResult:
        try:
            return await self._create_promotion(guild, target_id, role_id, duration, reason, by_user_id,
                                                is_bulk=is_bulk, send_dm=send_dm, is_multi=is_multi,
                                                transaction_id=transaction_id)
        except Exception as e:
            logger.error(f"❌ Ошибка при создании повышения: {e}", exc_info=True)
            return OperationResult.fail("Внутренняя ошибка при выдаче повышения")

    async def create_bulk_promotion(self, guild: discord.Guild, target_id: int, role_id: int, duration,
                                    reason: str, by_user_id: int, *, send_dm: bool = False,
                                    transaction_id: str = None) -> OperationResult:
        return await self.create_promotion(guild, target_id, role_id, duration, reason, by_user_id,
                                           is_bulk=True, send_dm=send_dm, transaction_id=transaction_id)

    async def _create_promotion(self, guild, target_id, role_id, duration, reason, by_user_id, *,
                                is_bulk, send_dm, is_multi, transaction_id) -> OperationResult:
        if guild is None or not target_id or not role_id or not by_user_id:
            return OperationResult.fail("Не хватает данных для повышения")
        reason = (reason or "").strip()
        if not reason:
            return OperationResult.fail("Необходимо указать причину")

        permanent = is_permanent(duration)
        duration_ms = None
        if not permanent:
            try:
                duration_ms = parse_duration(str(duration))
            except ValueError:
                return OperationResult.fail(f"Неверный формат длительности: `{duration}`")

        target_id, role_id, by_user_id = int(target_id), int(role_id), int(by_user_id)

        if not self.is_admin_role(guild.id, role_id):
            return OperationResult.fail("Эта роль не входит в список административных ролей")

        role = guild.get_role(role_id)
        check = self.validate_bot_permissions(guild, role)
        if not check:
            return check
        check = await self.validate_role_hierarchy(guild, target_id, role_id, by_user_id)
        if not check:
            return check

        member = await self.resolve_member(guild, target_id)
        if member is None:
            return OperationResult.fail("Участник не найден на сервере")
        if any(r.id == role_id for r in member.roles):
            return OperationResult.fail(f"У участника уже есть роль **{role.name}**")

        ban = self.get_ban(target_id, guild.id)
        if ban:
            until = "نهائي" if ban.get("end_time") is None else ts(ban["end_time"])
            return OperationResult.fail(f"Участник заблокирован для повышений до: {until}")

        try:
            user_stats = await self.stats_provider(target_id)
        except Exception as e:
            logger.warning(f"⚠️ Не удалось получить статистику {target_id}: {e}")
            user_stats = None

        previous_top = member.top_role
        previous_role_name = previous_top.name if previous_top.id != guild.id else None

        self.track_bot_promotion(guild.id, target_id, role_id)
        try:
            await member.add_roles(role, reason=f"Повышение: {reason}")
        except (discord.Forbidden, discord.HTTPException) as e:
            logger.error(f"❌ Не удалось выдать роль {role_id} участнику {target_id}: {e}")
            return OperationResult.fail("Не удалось выдать роль")

        removed_old_roles: List[str] = []
        if permanent and not is_multi:
            removed_old_roles = await self._remove_other_admin_roles(guild, member, role_id)

        start = now_ms()
        promote_id = f"{target_id}_{role_id}_{start}"
        end_time = None if permanent else start + duration_ms
        record = {
            "id": promote_id,
            "user_id": target_id,
            "role_id": role_id,
            "guild_id": guild.id,
            "reason": reason,
            "by_user_id": by_user_id,
            "start_time": start,
            "end_time": end_time,
            "duration": "permanent" if permanent else str(duration),
            "status": "active",
            "user_stats": user_stats,
        }
        if transaction_id:
            record["transaction_id"] = transaction_id

        active = self._load_active()
        active[promote_id] = record
        if not self._save_active(active):
            logger.error(f"❌ Роль выдана, но запись {promote_id} не сохранена")

        if not is_bulk and not is_multi:
            self.log_action("PROMOTION_APPLIED", {
                "promote_id": promote_id,
                "user_id": target_id,
                "role_id": role_id,
                "guild_id": guild.id,
                "by_user_id": by_user_id,
                "duration": record["duration"],
                "reason": reason,
                "removed_old_roles": removed_old_roles,
            })
            embed = create_log_embed("PROMOTION_APPLIED", [
                ("👤 Участник", f"<@{target_id}>", True),
                ("🔙 Прежняя роль", previous_role_name or "нет", True),
                ("🆕 Новая роль", role.mention, True),
                ("⏱️ Срок", duration_label(record["duration"]), True),
                ("⌛ Окончание", end_label(end_time), True),
                ("👮 Выдал", f"<@{by_user_id}>", True),
                ("📝 Причина", reason, False),
                ("📊 Статистика", stats_line(user_stats), False),
                ("🗑️ Снятые роли", ", ".join(removed_old_roles) or "нет", False),
            ])
            await self.send_log_message(guild, embed)

        if send_dm and not is_multi:
            dm = create_dm_embed(
                "🎉 Вы получили повышение",
                f"Вам выдана роль **{role.name}** на сервере **{guild.name}**",
                [("⏱️ Срок", duration_label(record["duration"]), True),
                 ("⌛ Окончание", end_label(end_time), True),
                 ("📝 Причина", reason, False)],
                color=discord.Color.green(), guild=guild,
            )
            await self.send_dm(member, dm)

        logger.info(f"✅ Повышение {promote_id} выдано ({record['duration']})")
        return OperationResult.ok(promote_id=promote_id, end_time=end_time,
                                  removed_old_roles=removed_old_roles,
                                  previous_role_name=previous_role_name)

    async def _remove_other_admin_roles(self, guild: discord.Guild, member: discord.Member,
                                        keep_role_id: int) -> List[str]:
        admin_ids = set(self.get_admin_roles(guild.id))
        to_remove = [r for r in member.roles if r.id in admin_ids and r.id != keep_role_id]
        removed = []
        for role in to_remove:
            self.add_to_ignore(member.id, role.id)
            try:
                await member.remove_roles(role, reason="Постоянное повышение: замена роли")
                removed.append(role.name)
            except (discord.Forbidden, discord.HTTPException) as e:
                logger.warning(f"⚠️ Не удалось снять роль {role.name} у {member.id}: {e}")
        return removed

    # ─── Завершение и изменение ────────────────────────────────────────────────
    async def end_promotion(self, guild: discord.Guild, promote_id: str,
                            reason: str = DEFAULT_END_REASON, ended_by: int = None) -> OperationResult:
        try:
            record = self._load_active().get(promote_id)
            if record is None:
                return OperationResult.fail("Запись о повышении не найдена")

            user_id, role_id = record["user_id"], record["role_id"]
            self.add_to_ignore(user_id, role_id)
            role = guild.get_role(role_id)
            member = await self.resolve_member(guild, user_id)
            if member is not None and role is not None and role in member.roles:
                try:
                    await member.remove_roles(role, reason=f"Завершение повышения: {reason}")
                except (discord.Forbidden, discord.HTTPException) as e:
                    logger.error(f"❌ Не удалось снять роль {role_id} у {user_id}: {e}")
                    return OperationResult.fail("Не удалось снять роль")

            self._delete_promotes([promote_id])
            self.log_action("PROMOTION_ENDED", {
                "promote_id": promote_id,
                "user_id": user_id,
                "role_id": role_id,
                "guild_id": guild.id,
                "reason": reason,
                "ended_by": ended_by,
            })
            role_text = role.mention if role else f"`{role_id}`"
            await self.send_log_message(guild, create_log_embed("PROMOTION_ENDED", [
                ("👤 Участник", f"<@{user_id}>", True),
                ("🏷️ Роль", role_text, True),
                ("👮 Завершил", f"<@{ended_by}>" if ended_by else "система", True),
                ("📝 Причина", reason, False),
            ]))
            if member is not None:
                await self.send_dm(member, create_dm_embed(
                    "⏰ Повышение завершено",
                    f"Роль **{role.name if role else role_id}** снята на сервере **{guild.name}**",
                    [("📝 Причина", reason, False)],
                    color=discord.Color.orange(), guild=guild,
                ))
            return OperationResult.ok(promote_id=promote_id, member_present=member is not None)
        except Exception as e:
            logger.error(f"❌ Ошибка при завершении повышения {promote_id}: {e}", exc_info=True)
            return OperationResult.fail("Внутренняя ошибка при завершении повышения")

    async def modify_promotion_duration(self, guild: discord.Guild, promote_id: str, new_duration,
                                        modified_by: int) -> OperationResult:
        permanent = is_permanent(new_duration)
        new_ms = None
        if not permanent:
            try:
                new_ms = parse_duration(str(new_duration))
            except ValueError:
                return OperationResult.fail(f"Неверный формат длительности: `{new_duration}`")

        active = self._load_active()
        record = active.get(promote_id)
        if record is None:
            return OperationResult.fail("Запись о повышении не найдена")

        old_duration = record.get("duration")
        now = now_ms()
        record["duration"] = "permanent" if permanent else str(new_duration)
        record["end_time"] = None if permanent else now + new_ms
        record["modified_by"] = int(modified_by)
        record["modified_at"] = now
        if not self._save_active(active):
            return OperationResult.fail("Не удалось сохранить изменения")

        self.log_action("PROMOTION_MODIFIED", {
            "promote_id": promote_id,
            "user_id": record["user_id"],
            "role_id": record["role_id"],
            "guild_id": guild.id,
            "old_duration": old_duration,
            "new_duration": record["duration"],
            "modified_by": int(modified_by),
        })
        await self.send_log_message(guild, create_log_embed("PROMOTION_MODIFIED", [
            ("👤 Участник", f"<@{record['user_id']}>", True),
            ("🏷️ Роль", f"<@&{record['role_id']}>", True),
            ("🔙 Было", duration_label(old_duration), True),
            ("🆕 Стало", duration_label(record["duration"]), True),
            ("⌛ Окончание", end_label(record["end_time"]), True),
            ("✏️ Изменил", f"<@{modified_by}>", True),
        ]))
        return OperationResult.ok(promote_id=promote_id, end_time=record["end_time"])

    # ─── Запреты ───────────────────────────────────────────────────────────────
    @staticmethod
    def _ban_expired(ban: Dict, now: int = None) -> bool:
        end_time = ban.get("end_time")
        return end_time is not None and end_time <= (now or now_ms())

    def get_ban(self, user_id: int, guild_id: int) -> Optional[Dict]:
        """Действующий запрет или None (истёкший запрет не считается)"""
        ban = self._load_bans().get(ban_key(user_id, guild_id))
        if ban is None or self._ban_expired(ban):
            return None
        return ban

    def is_user_banned(self, user_id: int, guild_id: int) -> bool:
        return self.get_ban(user_id, guild_id) is not None

    def get_banned_users(self, guild_id: int) -> List[Dict]:
        now = now_ms()
        return [b for b in self._load_bans().values()
                if b.get("guild_id") == int(guild_id) and not self._ban_expired(b, now)]

    async def add_promotion_ban(self, guild: discord.Guild, target_id: int, duration, reason: str,
                                by_user_id: int) -> OperationResult:
        reason = (reason or "").strip()
        if not reason:
            return OperationResult.fail("Необходимо указать причину")
        permanent = is_permanent(duration)
        duration_ms = None
        if not permanent:
            try:
                duration_ms = parse_duration(str(duration))
            except ValueError:
                return OperationResult.fail(f"Неверный формат длительности: `{duration}`")

        target_id = int(target_id)
        member = await self.resolve_member(guild, target_id)
        if member is None:
            return OperationResult.fail("Участник не найден на сервере")
        if self.is_user_banned(target_id, guild.id):
            return OperationResult.fail("Участник уже заблокирован для повышений")

        start = now_ms()
        ban = {
            "user_id": target_id,
            "guild_id": guild.id,
            "reason": reason,
            "by_user_id": int(by_user_id),
            "start_time": start,
            "end_time": None if permanent else start + duration_ms,
            "duration": "permanent" if permanent else str(duration),
        }
        bans = self._load_bans()
        bans[ban_key(target_id, guild.id)] = ban
        if not self._save_bans(bans):
            return OperationResult.fail("Не удалось сохранить запрет")

        self.log_action("PROMOTION_BAN_ADDED", dict(ban))
        await self.send_log_message(guild, create_log_embed("PROMOTION_BAN_ADDED", [
            ("👤 Участник", f"<@{target_id}>", True),
            ("⏱️ Срок", duration_label(ban["duration"]), True),
            ("⌛ Окончание", end_label(ban["end_time"]), True),
            ("👮 Выдал", f"<@{by_user_id}>", True),
            ("📝 Причина", reason, False),
        ]))
        await self.send_dm(member, create_dm_embed(
            "⛔ Запрет на повышения",
            f"Вам запрещено получать повышения на сервере **{guild.name}**",
            [("⌛ Окончание", end_label(ban["end_time"]), True), ("📝 Причина", reason, False)],
            color=discord.Color.red(), guild=guild,
        ))
        logger.info(f"⛔ Запрет на повышения для {target_id} ({ban['duration']})")
        return OperationResult.ok(end_time=ban["end_time"])

    async def remove_promotion_ban(self, guild: discord.Guild, target_id: int, reason: str,
                                   by_user_id: int) -> OperationResult:
        target_id = int(target_id)
        key = ban_key(target_id, guild.id)
        bans = self._load_bans()
        ban = bans.get(key)
        if ban is None or self._ban_expired(ban):
            return OperationResult.fail("Участник не заблокирован для повышений")

        del bans[key]
        if not self._save_bans(bans):
            return OperationResult.fail("Не удалось сохранить изменения")

        reason = (reason or "").strip() or "без причины"
        self.log_action("PROMOTION_BAN_REMOVED", {
            "user_id": target_id,
            "guild_id": guild.id,
            "reason": reason,
            "by_user_id": int(by_user_id),
        })
        await self.send_log_message(guild, create_log_embed("PROMOTION_BAN_REMOVED", [
            ("👤 Участник", f"<@{target_id}>", True),
            ("👮 Снял", f"<@{by_user_id}>", True),
            ("📝 Причина", reason, False),
        ]))
        member = await self.resolve_member(guild, target_id)
        await self.send_dm(await self._resolve_user(target_id, member), create_dm_embed(
            "✅ Запрет на повышения снят",
            f"Вы снова можете получать повышения на сервере **{guild.name}**",
            [("📝 Причина", reason, False)],
            color=discord.Color.green(), guild=guild,
        ))
        return OperationResult.ok()

    # ─── Запросы ───────────────────────────────────────────────────────────────
    def get_active_promotes(self, guild_id: int = None) -> List[Dict]:
        records = list(self._load_active().values())
        if guild_id is not None:
            records = [r for r in records if r.get("guild_id") == int(guild_id)]
        return records

    def get_promote(self, promote_id: str) -> Optional[Dict]:
        return self._load_active().get(promote_id)

    def get_user_promotes(self, user_id: int, guild_id: int = None) -> List[Dict]:
        return [r for r in self.get_active_promotes(guild_id) if r.get("user_id") == int(user_id)]

    def get_expired_promotes(self, now: int = None) -> List[Dict]:
        now = now or now_ms()
        return [r for r in self._load_active().values()
                if r.get("end_time") is not None and r["end_time"] <= now]

    def get_expired_bans(self, now: int = None) -> List[Dict]:
        now = now or now_ms()
        return [b for b in self._load_bans().values() if self._ban_expired(b, now)]

    def get_user_promotion_records(self, user_id: int, guild_id: int = None) -> List[Dict]:
        """Записи журнала по пользователю, новые первыми"""
        user_id = int(user_id)
        records = []
        for entry in read_json(self.logs_path, []):
            data = entry.get("data") or {}
            if data.get("user_id") != user_id:
                continue
            if guild_id is not None and data.get("guild_id") not in (None, int(guild_id)):
                continue
            records.append(entry)
        records.sort(key=lambda e: e.get("timestamp") or 0, reverse=True)
        return records

    def get_grouped_logs(self, limit: int = 50) -> Dict[str, List[Dict]]:
        """Последние записи журнала, сгруппированные по типу"""
        grouped: Dict[str, List[Dict]] = defaultdict(list)
        for entry in read_json(self.logs_path, [])[-limit:]:
            grouped[entry.get("type", "UNKNOWN")].append(entry)
        return dict(grouped)

    def get_system_stats(self) -> Dict[str, int]:
        active = list(self._load_active().values())
        now = now_ms()
        return {
            "active": len(active),
            "temporary": sum(1 for r in active if r.get("end_time") is not None),
            "permanent": sum(1 for r in active if r.get("end_time") is None),
            "banned": sum(1 for b in self._load_bans().values() if not self._ban_expired(b, now)),
            "log_entries": len(read_json(self.logs_path, [])),
            "left_members": len(self._load_left()),
        }

    # ─── Истечение сроков ──────────────────────────────────────────────────────
    async def process_expired_promotions(self, now: int = None) -> int:
        """Снять истёкшие повышения. Возвращает число обработанных записей"""
        if self.bot is None:
            return 0
        now = now or now_ms()
        groups: Dict[Tuple[int, int], List[Dict]] = defaultdict(list)
        for record in self.get_expired_promotes(now):
            groups[(record["user_id"], record["guild_id"])].append(record)

        processed = 0
        for (user_id, guild_id), records in groups.items():
            guild = self.bot.get_guild(guild_id)
            if guild is None or guild.unavailable:
                continue
            try:
                processed += await self._expire_group(guild, user_id, records)
            except Exception as e:
                logger.error(f"❌ Ошибка при обработке истёкших повышений {user_id}: {e}", exc_info=True)
        if processed:
            logger.info(f"⏰ Обработано истёкших повышений: {processed}")
        return processed

    async def _expire_group(self, guild: discord.Guild, user_id: int, records: List[Dict]) -> int:
        member = await self.resolve_member(guild, user_id)
        if member is None:
            for record in records:
                self.log_action("PROMOTION_EXPIRED_MEMBER_LEFT", {
                    "promote_id": record["id"], "user_id": user_id,
                    "role_id": record["role_id"], "guild_id": guild.id,
                })
            self._delete_promotes([r["id"] for r in records])
            await self.send_log_message(guild, create_log_embed("PROMOTION_EXPIRED_MEMBER_LEFT", [
                ("👤 Участник", f"<@{user_id}>", True),
                ("🏷️ Роли", ", ".join(f"<@&{r['role_id']}>" for r in records), False),
            ]))
            return len(records)

        ended: List[Dict] = []
        done_ids: List[str] = []
        for record in records:
            role = guild.get_role(record["role_id"])
            if role is None:
                logger.warning(f"⚠️ Роль {record['role_id']} удалена, запись {record['id']} снята")
                done_ids.append(record["id"])
                continue
            if role not in member.roles:
                done_ids.append(record["id"])
                ended.append(record)
                continue
            self.add_to_ignore(user_id, role.id)
            try:
                await member.remove_roles(role, reason=DEFAULT_END_REASON)
            except (discord.Forbidden, discord.HTTPException) as e:
                # запись остаётся до следующей проверки
                logger.error(f"❌ Не удалось снять истёкшую роль {role.id} у {user_id}: {e}")
                continue
            done_ids.append(record["id"])
            ended.append(record)

        if done_ids:
            self._delete_promotes(done_ids)
        for record in ended:
            self.log_action("PROMOTION_ENDED", {
                "promote_id": record["id"], "user_id": user_id, "role_id": record["role_id"],
                "guild_id": guild.id, "reason": DEFAULT_END_REASON,
            })

        if len(ended) == 1:
            record = ended[0]
            await self.send_log_message(guild, create_log_embed("PROMOTION_ENDED", [
                ("👤 Участник", member.mention, True),
                ("🏷️ Роль", f"<@&{record['role_id']}>", True),
                ("📝 Причина", DEFAULT_END_REASON, False),
            ]))
            await self.send_dm(member, create_dm_embed(
                "⏰ Срок повышения истёк",
                f"Роль <@&{record['role_id']}> снята на сервере **{guild.name}**",
                color=discord.Color.orange(), guild=guild,
            ))
        elif len(ended) > 1:
            await self.send_log_message(guild, create_log_embed("PROMOTIONS_ENDED_UNIFIED", [
                ("👤 Участник", member.mention, True),
                ("🔢 Количество", str(len(ended)), True),
                ("🏷️ Роли", ", ".join(f"<@&{r['role_id']}>" for r in ended), False),
            ]))
            await self.send_dm(member, create_dm_embed(
                "⏰ Сроки повышений истекли",
                f"На сервере **{guild.name}** сняты роли:\n{role_list_text(ended, guild)}",
                color=discord.Color.orange(), guild=guild,
            ))
        return len(done_ids)

    async def process_expired_bans(self, now: int = None) -> int:
        now = now or now_ms()
        expired = self.get_expired_bans(now)
        if not expired:
            return 0
        bans = self._load_bans()
        for ban in expired:
            bans.pop(ban_key(ban["user_id"], ban["guild_id"]), None)
        if not self._save_bans(bans):
            return 0

        for ban in expired:
            self.log_action("PROMOTION_BAN_EXPIRED", {
                "user_id": ban["user_id"], "guild_id": ban["guild_id"], "reason": ban.get("reason"),
            })
            guild = self.bot.get_guild(ban["guild_id"]) if self.bot else None
            if guild is None:
                continue
            await self.send_log_message(guild, create_log_embed("PROMOTION_BAN_EXPIRED", [
                ("👤 Участник", f"<@{ban['user_id']}>", True),
                ("📝 Причина запрета", ban.get("reason") or "—", False),
            ]))
            member = await self.resolve_member(guild, ban["user_id"])
            await self.send_dm(member, create_dm_embed(
                "⌛ Запрет на повышения истёк",
                f"Вы снова можете получать повышения на сервере **{guild.name}**",
                color=discord.Color.teal(), guild=guild,
            ))
        logger.info(f"⌛ Снято истёкших запретов: {len(expired)}")
        return len(expired)

    # ─── Выход и возвращение участника ─────────────────────────────────────────
    async def handle_member_leave(self, member: discord.Member) -> OperationResult:
        guild = member.guild
        records = self.get_user_promotes(member.id, guild.id)
        if not records:
            return OperationResult.ok(saved=0)

        left_at = now_ms()
        snapshots = self._load_left()
        snapshots[ban_key(member.id, guild.id)] = {
            "user_id": member.id,
            "guild_id": guild.id,
            "username": member.name,
            "display_name": member.display_name,
            "left_at": left_at,
            "promotes": records,
        }
        if not self._save_left(snapshots):
            return OperationResult.fail("Не удалось сохранить снимок повышений")
        self._delete_promotes([r["id"] for r in records])

        self.log_action("MEMBER_LEFT_WITH_PROMOTIONS", {
            "user_id": member.id,
            "guild_id": guild.id,
            "promotes_count": len(records),
            "role_ids": [r["role_id"] for r in records],
        })
        await self.send_log_message(guild, create_log_embed("MEMBER_LEFT_WITH_PROMOTIONS", [
            ("👤 Участник", f"{member.mention} ({member.name})", True),
            ("🔢 Повышений", str(len(records)), True),
            ("🏷️ Роли", role_list_text(records, guild), False),
        ]))
        logger.info(f"🚪 {member.id} покинул сервер с {len(records)} повышениями, снимок сохранён")
        return OperationResult.ok(saved=len(records))

    async def handle_member_join(self, member: discord.Member) -> OperationResult:
        guild = member.guild
        key = ban_key(member.id, guild.id)
        snapshots = self._load_left()
        snapshot = snapshots.get(key)
        if snapshot is None:
            return OperationResult.ok(restored=0, failed=0)

        now = now_ms()
        restored: List[Dict] = []
        failed: List[Dict] = []
        active = self._load_active()
        for old in snapshot.get("promotes", []):
            if old.get("end_time") is not None and old["end_time"] <= now:
                failed.append({**old, "fail_reason": "истёк во время отсутствия"})
                continue
            role = guild.get_role(old["role_id"])
            if role is None:
                failed.append({**old, "fail_reason": "роль удалена"})
                continue
            if role not in member.roles:
                self.track_bot_promotion(guild.id, member.id, role.id)
                try:
                    await member.add_roles(role, reason="Восстановление повышения после возвращения")
                except (discord.Forbidden, discord.HTTPException) as e:
                    logger.error(f"❌ Не удалось восстановить роль {role.id} у {member.id}: {e}")
                    failed.append({**old, "fail_reason": "не удалось выдать роль"})
                    continue
            new_id = f"{member.id}_{role.id}_{now}"
            record = dict(old)
            record.update({
                "id": new_id,
                "restored_after_leave": True,
                "restored_at": now,
                "original_left_at": snapshot.get("left_at"),
            })
            active[new_id] = record
            restored.append(record)

        if restored:
            self._save_active(active)
        del snapshots[key]
        self._save_left(snapshots)

        absence_ms = now - (snapshot.get("left_at") or now)
        self.log_action("MEMBER_REJOINED_PROMOTIONS_RESTORED", {
            "user_id": member.id,
            "guild_id": guild.id,
            "restored": len(restored),
            "failed": len(failed),
            "absence_ms": absence_ms,
        })
        fields = [
            ("👤 Участник", member.mention, True),
            ("✅ Восстановлено", str(len(restored)), True),
            ("❌ Не восстановлено", str(len(failed)), True),
            ("⏳ Отсутствовал", absence_text(absence_ms), True),
        ]
        if restored:
            fields.append(("🏷️ Роли", role_list_text(restored, guild), False))
        if failed:
            fields.append(("⚠️ Причины", "\n".join(
                f"<@&{f['role_id']}>: {f['fail_reason']}" for f in failed[:10]), False))
        await self.send_log_message(guild, create_log_embed("MEMBER_REJOINED_PROMOTIONS_RESTORED", fields))
        logger.info(f"🔄 {member.id} вернулся: восстановлено {len(restored)}, не восстановлено {len(failed)}")
        return OperationResult.ok(restored=len(restored), failed=len(failed))

    # ─── Ручное снятие роли ────────────────────────────────────────────────────
    async def handle_manual_role_removal(self, member: discord.Member, role_id: int) -> int:
        """Роль с активным повышением снята вручную: запись удаляется"""
        if self.is_ignored(member.id, role_id) or self.is_bot_promoting(member.guild.id, member.id, role_id):
            return 0
        records = [r for r in self.get_user_promotes(member.id, member.guild.id) if r["role_id"] == int(role_id)]
        if not records:
            return 0
        self._delete_promotes([r["id"] for r in records])
        for record in records:
            self.log_action("PROMOTION_ENDED", {
                "promote_id": record["id"], "user_id": member.id, "role_id": record["role_id"],
                "guild_id": member.guild.id, "reason": "роль снята вручную",
            })
        logger.info(f"✋ Роль {role_id} снята с {member.id} вручную, записей удалено: {len(records)}")
        return len(records)


# Глобальный экземпляр
promote_manager = PromoteManager()
