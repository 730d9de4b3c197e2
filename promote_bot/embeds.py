# -*- coding: utf-8 -*-
"""
Embed-сообщения системы повышений: логи, личные сообщения, панели
"""

from typing import Dict, Iterable, List, Optional, Tuple

import discord

from staff_bot.durations import format_duration_ms, is_permanent
from staff_bot.user_stats import format_duration

# Тип действия -> (заголовок, цвет)
LOG_STYLES = {
    "PROMOTION_APPLIED": ("✅ Повышение выдано", discord.Color.green()),
    "PROMOTION_ENDED": ("⏰ Повышение завершено", discord.Color.orange()),
    "PROMOTIONS_ENDED_UNIFIED": ("⏰ Завершено несколько повышений", discord.Color.orange()),
    "PROMOTION_EXPIRED_MEMBER_LEFT": ("⚠️ Повышение истекло: участник вне сервера", discord.Color.dark_orange()),
    "PROMOTION_MODIFIED": ("✏️ Срок повышения изменён", discord.Color.blue()),
    "PROMOTION_BAN_ADDED": ("⛔ Запрет на повышения", discord.Color.red()),
    "PROMOTION_BAN_REMOVED": ("✅ Запрет на повышения снят", discord.Color.green()),
    "PROMOTION_BAN_EXPIRED": ("⌛ Запрет на повышения истёк", discord.Color.teal()),
    "MEMBER_LEFT_WITH_PROMOTIONS": ("🚪 Участник с повышениями покинул сервер", discord.Color.dark_orange()),
    "MEMBER_REJOINED_PROMOTIONS_RESTORED": ("🔄 Повышения восстановлены после возвращения", discord.Color.green()),
    "SHORTCUT_UP": ("🔼 Быстрое повышение", discord.Color.green()),
    "SHORTCUT_DOWN": ("🔽 Быстрое понижение", discord.Color.red()),
}

Field = Tuple[str, str, bool]


def ts(ms: Optional[int], style: str = "F") -> str:
    """Метка времени Discord из миллисекунд"""
    if not ms:
        return "—"
    return f"<t:{int(ms) // 1000}:{style}>"


def duration_label(duration) -> str:
    return "Навсегда" if is_permanent(duration) else str(duration)


def end_label(end_time: Optional[int]) -> str:
    return "Навсегда" if end_time is None else ts(end_time, "R")


def stats_line(stats: Optional[Dict]) -> str:
    if not stats:
        return "нет данных"
    return (f"💬 {stats.get('total_messages', 0)} | "
            f"🎙️ {format_duration(stats.get('total_voice_time', 0))} | "
            f"📅 {stats.get('active_days', 0)} дн.")


def create_log_embed(action: str, fields: Iterable[Field], description: str = None) -> discord.Embed:
    title, color = LOG_STYLES.get(action, (action, discord.Color.light_grey()))
    embed = discord.Embed(title=title, description=description, color=color)
    for name, value, inline in fields:
        embed.add_field(name=name, value=str(value)[:1024] or "—", inline=inline)
    embed.timestamp = discord.utils.utcnow()
    return embed


def create_dm_embed(title: str, description: str, fields: Iterable[Field] = (),
                    color: discord.Color = None, guild: discord.Guild = None) -> discord.Embed:
    embed = discord.Embed(title=title, description=description, color=color or discord.Color.blurple())
    for name, value, inline in fields:
        embed.add_field(name=name, value=str(value)[:1024] or "—", inline=inline)
    if guild is not None:
        embed.set_footer(text=f"Сервер {guild.name}")
    embed.timestamp = discord.utils.utcnow()
    return embed


def role_list_text(records: List[Dict], guild: discord.Guild, limit: int = 10) -> str:
    """Список ролей из записей повышений"""
    lines = []
    for record in records[:limit]:
        role = guild.get_role(record["role_id"])
        role_name = role.name if role else f"ID роли: {record['role_id']}"
        lines.append(f"• **{role_name}** — окончание: {end_label(record.get('end_time'))}")
    if len(records) > limit:
        lines.append(f"• **+{len(records) - limit} ещё**")
    return "\n".join(lines) or "нет"


def create_active_promotes_embed(records: List[Dict], guild: discord.Guild) -> discord.Embed:
    embed = discord.Embed(title="📋 Активные повышения", color=discord.Color.blue())
    if not records:
        embed.description = "Активных повышений нет"
        return embed

    lines = []
    for record in sorted(records, key=lambda r: r.get("start_time") or 0, reverse=True)[:20]:
        role = guild.get_role(record["role_id"])
        role_text = role.mention if role else f"`{record['role_id']}`"
        lines.append(
            f"<@{record['user_id']}> → {role_text} | до: {end_label(record.get('end_time'))}"
        )
    if len(records) > 20:
        lines.append(f"*...и ещё {len(records) - 20}*")
    embed.description = "\n".join(lines)
    embed.set_footer(text=f"Всего: {len(records)}")
    return embed


def create_settings_embed(settings: Dict, admin_roles: List[int]) -> discord.Embed:
    allowed = settings.get("allowed_users") or {}
    allowed_type = allowed.get("type")
    targets = allowed.get("targets") or []
    type_labels = {"owners": "Владельцы", "roles": "Роли", "responsibility": "Ответственности"}

    if allowed_type == "roles":
        targets_text = ", ".join(f"<@&{t}>" for t in targets) or "не выбраны"
    elif allowed_type == "responsibility":
        targets_text = ", ".join(f"**{t}**" for t in targets) or "не выбраны"
    else:
        targets_text = "—"

    embed = discord.Embed(title="⚙️ Настройки системы повышений", color=discord.Color.blurple())
    embed.add_field(name="📋 Канал меню",
                    value=f"<#{settings['menu_channel']}>" if settings.get("menu_channel") else "не задан",
                    inline=True)
    embed.add_field(name="📜 Канал логов",
                    value=f"<#{settings['log_channel']}>" if settings.get("log_channel") else "не задан",
                    inline=True)
    embed.add_field(name="🔐 Доступ",
                    value=f"{type_labels.get(allowed_type, 'не настроен')}\n{targets_text}",
                    inline=False)
    embed.add_field(name="🛡️ Административные роли",
                    value=", ".join(f"<@&{r}>" for r in admin_roles) or "не заданы",
                    inline=False)
    return embed


_RECORD_LABELS = {
    "PROMOTION_APPLIED": "✅ Повышение",
    "PROMOTION_ENDED": "⏰ Завершение",
    "PROMOTION_MODIFIED": "✏️ Изменение срока",
    "PROMOTION_BAN_ADDED": "⛔ Запрет",
    "PROMOTION_BAN_REMOVED": "✅ Снятие запрета",
    "PROMOTION_BAN_EXPIRED": "⌛ Запрет истёк",
    "MEMBER_LEFT_WITH_PROMOTIONS": "🚪 Выход с сервера",
    "MEMBER_REJOINED_PROMOTIONS_RESTORED": "🔄 Восстановление",
}


def create_records_embed(user: discord.abc.User, records: List[Dict]) -> discord.Embed:
    embed = discord.Embed(title=f"📜 История повышений: {user.display_name}", color=discord.Color.blue())
    embed.set_thumbnail(url=user.display_avatar.url)
    if not records:
        embed.description = "Записей нет"
        return embed

    lines = []
    for entry in records[:15]:
        data = entry.get("data", {})
        label = _RECORD_LABELS.get(entry.get("type"), entry.get("type"))
        role_part = f" <@&{data['role_id']}>" if data.get("role_id") else ""
        reason = data.get("reason")
        reason_part = f" — {reason[:60]}" if reason else ""
        lines.append(f"{label}{role_part} {ts(entry.get('timestamp'), 'd')}{reason_part}")
    embed.description = "\n".join(lines)
    embed.set_footer(text=f"Всего записей: {len(records)}")
    return embed


def create_system_stats_embed(stats: Dict) -> discord.Embed:
    embed = discord.Embed(title="📊 Статистика системы повышений", color=discord.Color.blurple())
    embed.add_field(name="Активных", value=str(stats["active"]), inline=True)
    embed.add_field(name="Временных", value=str(stats["temporary"]), inline=True)
    embed.add_field(name="Постоянных", value=str(stats["permanent"]), inline=True)
    embed.add_field(name="Запретов", value=str(stats["banned"]), inline=True)
    embed.add_field(name="Записей в журнале", value=str(stats["log_entries"]), inline=True)
    embed.add_field(name="Снимков вышедших", value=str(stats["left_members"]), inline=True)
    return embed


def absence_text(ms: int) -> str:
    """Длительность отсутствия участника"""
    return format_duration_ms(ms) if ms >= 60_000 else "меньше минуты"
