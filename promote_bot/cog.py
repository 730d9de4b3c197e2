# -*- coding: utf-8 -*-
"""
Команды и слушатели системы повышений, фоновые проверки сроков
"""

import asyncio
import logging

import discord
from discord.ext import commands

from staff_bot.checks import owners_only

from .manager import PromoteManager, promote_manager
from .ui_components import (PromotePanelView, ShortcutView, create_panel_embed,
                            shortcut_stats_embed)

logger = logging.getLogger("staffbot.promote.cog")

PROMOTION_POLL_SECONDS = 60
BAN_POLL_SECONDS = 10
CLEANUP_SECONDS = 5 * 60


class PromoteCog(commands.Cog):
    def __init__(self, bot: commands.Bot, manager: PromoteManager = promote_manager):
        self.bot = bot
        self.manager = manager
        logger.info("Cog PromoteCog загружен")

    # ── Команды ──────────────────────────────────────────────────────────────
    @commands.command(name="promote")
    @commands.guild_only()
    @owners_only()
    async def promote_panel(self, ctx: commands.Context):
        """Отправить панель управления повышениями"""
        await ctx.send(embed=create_panel_embed(), view=PromotePanelView(self.manager))

    @commands.command(name="up", aliases=["ترقيه"])
    @commands.guild_only()
    async def shortcut(self, ctx: commands.Context):
        """Быстрое повышение или понижение упомянутых администраторов"""
        if not self.manager.has_permission(ctx.author, ctx.guild.id):
            await ctx.reply("❌ У вас нет доступа к системе повышений", mention_author=False)
            return
        admin_role_ids = self.manager.get_admin_roles(ctx.guild.id)
        if not admin_role_ids:
            await ctx.reply("❌ Административные роли не настроены (`admin-roles add`)", mention_author=False)
            return

        admin_ids = set(admin_role_ids)
        targets = [m for m in ctx.message.mentions
                   if isinstance(m, discord.Member) and any(r.id in admin_ids for r in m.roles)]
        if not targets:
            await ctx.reply("❌ Упомяните хотя бы одного администратора", mention_author=False)
            return

        embed = await shortcut_stats_embed(targets, admin_role_ids, self.manager)
        await ctx.send(embed=embed, view=ShortcutView(self.manager, ctx.author.id, targets))

    @commands.command(name="admin-roles", aliases=["adminroles"])
    @commands.guild_only()
    @owners_only()
    async def admin_roles(self, ctx: commands.Context, action: str = "list"):
        """admin-roles add|remove @роль... | list"""
        guild_id = ctx.guild.id
        current = self.manager.get_admin_roles(guild_id)
        mentioned = [r.id for r in ctx.message.role_mentions]

        if action in ("add", "remove"):
            if not mentioned:
                await ctx.reply("❌ Упомяните роли", mention_author=False)
                return
            if action == "add":
                updated = set(current) | set(mentioned)
            else:
                updated = set(current) - set(mentioned)
            if not self.manager.settings.set_admin_roles(guild_id, updated):
                await ctx.reply("❌ Не удалось сохранить настройки", mention_author=False)
                return
            current = sorted(updated)

        roles = [ctx.guild.get_role(r) for r in current]
        roles = sorted((r for r in roles if r is not None), key=lambda r: r.position, reverse=True)
        embed = discord.Embed(
            title="🛡️ Административные роли",
            description="\n".join(f"• {r.mention} (позиция {r.position})" for r in roles) or "не заданы",
            color=discord.Color.blurple()
        )
        await ctx.send(embed=embed)

    # ── Слушатели ────────────────────────────────────────────────────────────
    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member):
        result = await self.manager.handle_member_leave(member)
        if not result:
            logger.error(f"❌ Ошибка при обработке выхода {member.id}: {result.error}")

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        result = await self.manager.handle_member_join(member)
        if not result:
            logger.error(f"❌ Ошибка при обработке возвращения {member.id}: {result.error}")

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member):
        after_ids = {r.id for r in after.roles}
        for role in before.roles:
            if role.id not in after_ids and self.manager.is_admin_role(after.guild.id, role.id):
                await self.manager.handle_manual_role_removal(after, role.id)


# ─── Фоновые задачи ──────────────────────────────────────────────────────────

async def promotion_expiry_loop(bot: commands.Bot, manager: PromoteManager = promote_manager):
    await bot.wait_until_ready()
    while not bot.is_closed():
        try:
            await manager.process_expired_promotions()
        except Exception as e:
            logger.error(f"❌ Ошибка проверки истёкших повышений: {e}")
        await asyncio.sleep(PROMOTION_POLL_SECONDS)


async def ban_expiry_loop(bot: commands.Bot, manager: PromoteManager = promote_manager):
    await bot.wait_until_ready()
    while not bot.is_closed():
        try:
            await manager.process_expired_bans()
        except Exception as e:
            logger.error(f"❌ Ошибка проверки истёкших запретов: {e}")
        await asyncio.sleep(BAN_POLL_SECONDS)


async def tracking_cleanup_loop(bot: commands.Bot, manager: PromoteManager = promote_manager):
    await bot.wait_until_ready()
    while not bot.is_closed():
        manager.cleanup_tracking()
        await asyncio.sleep(CLEANUP_SECONDS)
