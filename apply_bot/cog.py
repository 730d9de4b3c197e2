# -*- coding: utf-8 -*-
"""
Команды заявок на администрацию: номинация и настройка
"""

import asyncio
import logging

import discord
from discord.ext import commands

import unified_settings as settings_module
from resp_bot.registry import ResponsibilityRegistry, responsibility_registry
from staff_bot.checks import owners_only
from staff_bot.user_stats import collect_user_stats

from .applications import ApplicationStore, application_store, can_nominate, validate_candidate
from .ui_components import ApplicationModerationView, create_application_embed

logger = logging.getLogger("staffbot.apply")

APPROVER_TYPES = ("owners", "roles", "responsibility")
COOLDOWN_CLEANUP_SECONDS = 60 * 60


class ApplyCog(commands.Cog):
    def __init__(self, bot: commands.Bot, store: ApplicationStore = application_store,
                 registry: ResponsibilityRegistry = responsibility_registry):
        self.bot = bot
        self.store = store
        self.registry = registry
        logger.info("Cog ApplyCog загружен")

    @commands.command(name="admin-apply", aliases=["إدارة", "ادارة", "ترشيح"])
    @commands.guild_only()
    async def admin_apply(self, ctx: commands.Context, candidate: discord.Member):
        """Номинировать участника в администрацию"""
        guild = ctx.guild
        admin_roles = self.store.settings.get_admin_roles(guild.id)
        if not can_nominate(ctx.author, admin_roles, settings_module.get_bot_owners()):
            await ctx.reply("❌ Номинировать могут только администраторы", mention_author=False)
            return

        settings = self.store.get_settings(guild.id)
        channel_id = settings.get("application_channel")
        channel = guild.get_channel(int(channel_id)) if channel_id else None
        if channel is None:
            await ctx.reply("❌ Канал заявок не настроен (`setadmin channel #канал`)", mention_author=False)
            return

        check = validate_candidate(candidate, admin_roles, self.store, ctx.author.id, guild.id)
        if not check:
            await ctx.reply(f"❌ {check.error}", mention_author=False)
            return

        stats = await collect_user_stats(candidate, admin_roles)
        app_id = self.store.create(candidate.id, ctx.author.id, guild.id, stats)
        if app_id is None:
            await ctx.reply("❌ Не удалось сохранить заявку", mention_author=False)
            return

        try:
            message = await channel.send(embed=create_application_embed(stats, ctx.author),
                                         view=ApplicationModerationView(app_id))
        except discord.HTTPException as e:
            self.store.remove(app_id)
            logger.error(f"❌ Не удалось отправить заявку в канал {channel.id}: {e}")
            await ctx.reply("❌ Не удалось отправить заявку в канал", mention_author=False)
            return

        self.store.attach_message(app_id, message.id, channel.id)
        await ctx.reply(f"✅ Заявка на {candidate.mention} отправлена в {channel.mention}", mention_author=False)

    # ── setadmin ─────────────────────────────────────────────────────────────
    @commands.group(name="setadmin", invoke_without_command=True)
    @commands.guild_only()
    @owners_only()
    async def setadmin(self, ctx: commands.Context):
        await ctx.send("Использование: `setadmin channel|approvers|limit|cooldown|show`")

    @setadmin.command(name="channel")
    @commands.guild_only()
    @owners_only()
    async def setadmin_channel(self, ctx: commands.Context, channel: discord.TextChannel):
        self.store.settings.update_apply_settings(ctx.guild.id, {"application_channel": channel.id})
        await ctx.send(f"✅ Канал заявок: {channel.mention}")

    @setadmin.command(name="approvers")
    @commands.guild_only()
    @owners_only()
    async def setadmin_approvers(self, ctx: commands.Context, approver_type: str, *targets: str):
        approver_type = approver_type.lower()
        if approver_type not in APPROVER_TYPES:
            await ctx.send(f"❌ Тип должен быть одним из: {', '.join(APPROVER_TYPES)}")
            return
        if approver_type == "roles":
            values = [r.id for r in ctx.message.role_mentions]
            if not values:
                await ctx.send("❌ Упомяните роли")
                return
        elif approver_type == "responsibility":
            values = [t for t in targets if self.registry.get(t) is not None]
            if not values:
                await ctx.send("❌ Укажите существующие ответственности")
                return
        else:
            values = []
        self.store.settings.update_apply_settings(ctx.guild.id, {"approvers": {"type": approver_type, "list": values}})
        await ctx.send(f"✅ Рассматривающие: {approver_type}")

    @setadmin.command(name="limit")
    @commands.guild_only()
    @owners_only()
    async def setadmin_limit(self, ctx: commands.Context, limit: int):
        if limit < 1:
            await ctx.send("❌ Лимит должен быть больше нуля")
            return
        self.store.settings.update_apply_settings(ctx.guild.id, {"max_pending_per_admin": limit})
        await ctx.send(f"✅ Лимит заявок на администратора: {limit}")

    @setadmin.command(name="cooldown")
    @commands.guild_only()
    @owners_only()
    async def setadmin_cooldown(self, ctx: commands.Context, hours: int):
        if hours < 0:
            await ctx.send("❌ Кулдаун не может быть отрицательным")
            return
        self.store.settings.update_apply_settings(ctx.guild.id, {"reject_cooldown_hours": hours})
        await ctx.send(f"✅ Кулдаун после отклонения: {hours} ч.")

    @setadmin.command(name="show")
    @commands.guild_only()
    @owners_only()
    async def setadmin_show(self, ctx: commands.Context):
        settings = self.store.get_settings(ctx.guild.id)
        approvers = settings.get("approvers") or {}
        embed = discord.Embed(title="⚙️ Настройки заявок", color=discord.Color.blurple())
        channel_id = settings.get("application_channel")
        embed.add_field(name="📋 Канал", value=f"<#{channel_id}>" if channel_id else "не задан", inline=True)
        embed.add_field(name="🔢 Лимит", value=str(settings.get("max_pending_per_admin")), inline=True)
        embed.add_field(name="⏳ Кулдаун", value=f"{settings.get('reject_cooldown_hours')} ч.", inline=True)
        if approvers.get("type") == "roles":
            targets = ", ".join(f"<@&{r}>" for r in approvers.get("list", []))
        else:
            targets = ", ".join(approvers.get("list", []))
        embed.add_field(name="👮 Рассматривают", value=f"{approvers.get('type') or 'не задано'} {targets}",
                        inline=False)
        embed.add_field(name="📝 На рассмотрении",
                        value=str(len(self.store.load()["pending_applications"])), inline=True)
        await ctx.send(embed=embed)


async def cooldown_cleanup_loop(bot: commands.Bot, store: ApplicationStore = application_store):
    await bot.wait_until_ready()
    while not bot.is_closed():
        try:
            store.cleanup_expired_cooldowns()
        except Exception as e:
            logger.error(f"❌ Ошибка очистки кулдаунов: {e}")
        await asyncio.sleep(COOLDOWN_CLEANUP_SECONDS)
