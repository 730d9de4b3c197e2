# -*- coding: utf-8 -*-
"""
Сбор статистики пользователя для заявок и повышений
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

import discord

from .stats_db import StatsDatabase, stats_db
from .storage import now_ms

logger = logging.getLogger("staffbot.stats")


def format_duration(ms) -> str:
    """Перевести миллисекунды в "1 д. 2 ч. 5 мин." """
    if not ms or ms <= 0:
        return "нет"
    minutes = int(ms // 60_000)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    parts = []
    if days > 0:
        parts.append(f"{days} д.")
    if hours > 0:
        parts.append(f"{hours} ч.")
    if minutes > 0:
        parts.append(f"{minutes} мин.")
    return " ".join(parts) if parts else "меньше минуты"


def _to_ms(dt: Optional[datetime]) -> Optional[int]:
    if dt is None:
        return None
    return int(dt.timestamp() * 1000)


async def collect_user_stats(member: discord.Member, admin_roles: Iterable[int],
                             db: StatsDatabase = stats_db) -> Dict:
    """Собрать профиль участника вместе с итогами из базы активности"""
    now = now_ms()
    joined_at = _to_ms(member.joined_at)
    created_at = _to_ms(member.created_at)
    admin_role_ids = {int(r) for r in admin_roles}
    own_roles = [r for r in member.roles if r.id != member.guild.id]

    totals = await db.get_interaction_stats(member.id)

    return {
        "user_id": member.id,
        "username": member.name,
        "display_name": member.display_name,
        "avatar": member.display_avatar.url,
        "joined_at": joined_at,
        "created_at": created_at,
        "time_in_server": now - joined_at if joined_at else 0,
        "account_age": now - created_at if created_at else 0,
        "role_count": len(own_roles),
        "has_admin_roles": any(r.id in admin_role_ids for r in own_roles),
        "is_bot": member.bot,
        "messages": totals["total_messages"],
        "voice_time": totals["total_voice_time"],
        "reactions": totals["total_reactions"],
        "voice_joins": totals["total_sessions"],
        "active_days": totals["active_days"],
        "collected_at": now,
    }


def _date(ms: Optional[int]) -> str:
    return f"<t:{ms // 1000}:D>" if ms else "неизвестно"


def create_user_stats_embed(stats: Dict, title: str = "📊 Информация о кандидате",
                            color: discord.Color = None) -> discord.Embed:
    embed = discord.Embed(title=title, color=color or discord.Color.blurple())
    if stats.get("avatar"):
        embed.set_thumbnail(url=stats["avatar"])

    embed.add_field(
        name="👤 Основное",
        value=f"**Имя:** {stats.get('display_name')}\n**Логин:** {stats.get('username')}\n"
              f"**ID:** `{stats.get('user_id')}`",
        inline=False
    )
    embed.add_field(
        name="📈 Активность",
        value=f"**Сообщения:** {stats.get('messages', 0):,}\n"
              f"**Голос:** {format_duration(stats.get('voice_time', 0))}\n"
              f"**Реакции:** {stats.get('reactions', 0):,}\n"
              f"**Активных дней:** {stats.get('active_days', 0)}",
        inline=True
    )
    embed.add_field(
        name="📅 Даты",
        value=f"**На сервере с:** {_date(stats.get('joined_at'))}\n"
              f"**Аккаунт создан:** {_date(stats.get('created_at'))}",
        inline=True
    )
    embed.add_field(
        name="⏱️ Сроки",
        value=f"**На сервере:** {format_duration(stats.get('time_in_server', 0))}\n"
              f"**Возраст аккаунта:** {format_duration(stats.get('account_age', 0))}",
        inline=True
    )
    embed.add_field(
        name="🏷️ Роли",
        value=f"**Количество:** {stats.get('role_count', 0)}\n"
              f"**Административные:** {'да' if stats.get('has_admin_roles') else 'нет'}",
        inline=True
    )
    embed.timestamp = discord.utils.utcnow()
    return embed
