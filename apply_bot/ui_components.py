# -*- coding: utf-8 -*-
"""
Кнопки и обработчики одобрения/отклонения заявок на администрацию
"""

import logging
from typing import List

import discord
from discord import ui

import unified_settings as settings_module
from promote_bot.manager import PromoteManager
from resp_bot.registry import ResponsibilityRegistry
from staff_bot.user_stats import create_user_stats_embed, format_duration

from .applications import HOUR_MS, ApplicationStore, can_approve

logger = logging.getLogger("staffbot.apply")

STALE_TEXT = "❌ Заявка не найдена или уже обработана"


class ApplicationModerationView(ui.View):
    """Кнопки одобрения/отклонения с уникальными custom_id для каждой заявки"""

    def __init__(self, app_id: str):
        super().__init__(timeout=None)
        self.app_id = app_id
        self.add_item(ui.Button(label="✅ Одобрить", style=discord.ButtonStyle.success,
                                custom_id=f"admin_approve_{app_id}"))
        self.add_item(ui.Button(label="❌ Отклонить", style=discord.ButtonStyle.danger,
                                custom_id=f"admin_reject_{app_id}"))


def create_application_embed(stats: dict, requester: discord.Member) -> discord.Embed:
    embed = create_user_stats_embed(stats, title="📝 Заявка на администрацию", color=discord.Color.gold())
    embed.add_field(name="🙋 Номинировал", value=requester.mention, inline=False)
    embed.set_footer(text="Ожидает решения")
    return embed


async def _close_message(message: discord.Message, color: discord.Color, field_name: str, field_value: str,
                         footer: str):
    """Перекрасить embed заявки, добавить итог и убрать кнопки"""
    embed = message.embeds[0].copy() if message.embeds else discord.Embed()
    embed.color = color
    embed.add_field(name=field_name, value=field_value, inline=False)
    embed.set_footer(text=footer)
    try:
        await message.edit(embed=embed, view=None)
    except discord.HTTPException as e:
        logger.warning(f"⚠️ Не удалось обновить сообщение заявки: {e}")


async def _reply_stale(interaction: discord.Interaction):
    await interaction.response.send_message(STALE_TEXT, ephemeral=True)
    try:
        await interaction.message.edit(view=None)
    except discord.HTTPException:
        logger.debug("Сообщение устаревшей заявки уже недоступно")


async def _send_dm(user, embed: discord.Embed):
    try:
        await user.send(embed=embed)
    except Exception as e:
        logger.warning(f"⚠️ Не удалось отправить ЛС кандидату {getattr(user, 'id', '?')}: {e}")


def manageable_roles(guild: discord.Guild, role_ids: List[int]):
    """Разделить роли на доступные и недоступные боту"""
    me = guild.me
    ok, blocked = [], []
    for role_id in role_ids:
        role = guild.get_role(role_id)
        if role is None:
            continue
        if me.guild_permissions.manage_roles and role.position < me.top_role.position:
            ok.append(role)
        else:
            blocked.append(role)
    return ok, blocked


async def handle_admin_approve(interaction: discord.Interaction, app_id: str, store: ApplicationStore,
                               registry: ResponsibilityRegistry):
    guild = interaction.guild
    settings = store.get_settings(guild.id)
    if not can_approve(interaction.user, settings, settings_module.get_bot_owners(), registry):
        await interaction.response.send_message("❌ У вас нет права рассматривать заявки", ephemeral=True)
        return

    app = store.get(app_id)
    if app is None:
        await _reply_stale(interaction)
        return

    admin_role_ids = store.settings.get_admin_roles(guild.id)
    roles, blocked = manageable_roles(guild, admin_role_ids)
    if blocked or not roles:
        names = ", ".join(r.name for r in blocked) or "нет ролей"
        await interaction.response.send_message(
            f"❌ Бот не может выдать административные роли: {names}", ephemeral=True
        )
        return

    await interaction.response.defer(ephemeral=True)
    candidate = await PromoteManager.resolve_member(guild, app["candidate_id"])
    if candidate is None:
        store.remove(app_id)
        await _close_message(interaction.message, discord.Color.dark_grey(), "⚠️ Итог",
                             "Кандидат покинул сервер", "Закрыта")
        await interaction.followup.send("⚠️ Кандидат покинул сервер, заявка закрыта", ephemeral=True)
        return

    added, failed = [], []
    for role in roles:
        try:
            await candidate.add_roles(role, reason=f"Заявка на администрацию одобрена {interaction.user}")
            added.append(role)
        except (discord.Forbidden, discord.HTTPException) as e:
            logger.error(f"❌ Не удалось выдать роль {role.id} кандидату {candidate.id}: {e}")
            failed.append(role)

    if not added:
        await interaction.followup.send("❌ Не удалось выдать ни одной роли", ephemeral=True)
        return

    store.remove(app_id)
    await _send_dm(candidate, discord.Embed(
        title="🎉 Вы приняты в администрацию",
        description=f"Ваша заявка на сервере **{guild.name}** одобрена",
        color=discord.Color.green()
    ))
    await _close_message(interaction.message, discord.Color.green(), "✅ Одобрил",
                         interaction.user.mention, "Одобрена")

    text = f"✅ {candidate.mention} получил роли: {', '.join(r.name for r in added)}"
    if failed:
        text += f"\n⚠️ Не выданы: {', '.join(r.name for r in failed)}"
    await interaction.followup.send(text, ephemeral=True)
    logger.info(f"✅ Заявка {app_id} одобрена пользователем {interaction.user.id}")


async def handle_admin_reject(interaction: discord.Interaction, app_id: str, store: ApplicationStore,
                              registry: ResponsibilityRegistry):
    guild = interaction.guild
    settings = store.get_settings(guild.id)
    if not can_approve(interaction.user, settings, settings_module.get_bot_owners(), registry):
        await interaction.response.send_message("❌ У вас нет права рассматривать заявки", ephemeral=True)
        return

    app = store.get(app_id)
    if app is None:
        await _reply_stale(interaction)
        return

    store.add_rejection(app["candidate_id"], interaction.user.id)
    store.remove(app_id)
    await interaction.response.send_message("❌ Заявка отклонена", ephemeral=True)

    hours = int(settings.get("reject_cooldown_hours", 24))
    candidate = await PromoteManager.resolve_member(guild, app["candidate_id"])
    if candidate is not None:
        await _send_dm(candidate, discord.Embed(
            title="❌ Заявка отклонена",
            description=f"Ваша заявка на сервере **{guild.name}** отклонена.\n"
                        f"Повторная номинация возможна через {format_duration(hours * HOUR_MS)}",
            color=discord.Color.red()
        ))
    await _close_message(interaction.message, discord.Color.red(), "❌ Отклонил",
                         interaction.user.mention, "Отклонена")
    logger.info(f"❌ Заявка {app_id} отклонена пользователем {interaction.user.id}")
