# -*- coding: utf-8 -*-
"""
Команды ответственностей: настройка панели, управление реестром,
назначение ответственных и вызов по шорткату
"""

import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands

import unified_settings as settings_module
from staff_bot.checks import owners_only, owners_or_guild_owner

from .registry import ResponsibilityRegistry, responsibility_registry
from .ui_components import (RespPanelView, ResponsibilitySelectMenu, ResponsibleManageView, cleanup_calls,
                            create_call_menu, create_responsibilities_embed, refresh_resp_embed)

logger = logging.getLogger("staffbot.resp")

SETUP_TIMEOUT = 60
CALL_CLEANUP_SECONDS = 10 * 60


class RespCog(commands.Cog):
    def __init__(self, bot: commands.Bot, registry: ResponsibilityRegistry = responsibility_registry):
        self.bot = bot
        self.registry = registry
        self.settings = settings_module.unified_settings
        logger.info("Cog RespCog загружен")

    # ── Настройка ────────────────────────────────────────────────────────────
    async def _ask_channel(self, ctx: commands.Context, prompt: str) -> Optional[discord.TextChannel]:
        await ctx.send(prompt)

        def check(message: discord.Message) -> bool:
            return message.author.id == ctx.author.id and message.channel.id == ctx.channel.id

        try:
            reply = await self.bot.wait_for("message", check=check, timeout=SETUP_TIMEOUT)
        except asyncio.TimeoutError:
            await ctx.send("⏰ Время ожидания истекло, настройка отменена")
            return None

        channel = reply.channel_mentions[0] if reply.channel_mentions else None
        if channel is None or channel.guild.id != ctx.guild.id or not isinstance(channel, discord.TextChannel):
            await ctx.send("❌ Нужно упомянуть текстовый канал этого сервера")
            return None
        return channel

    @commands.group(name="resp", invoke_without_command=True)
    @commands.guild_only()
    @owners_or_guild_owner()
    async def resp(self, ctx: commands.Context):
        """Интерактивная настройка панели ответственностей"""
        config = self.settings.get_resp_settings(ctx.guild.id)

        suggestions = ctx.guild.get_channel(int(config["suggestions_channel"])) \
            if config.get("suggestions_channel") else None
        if suggestions is None:
            suggestions = await self._ask_channel(ctx, "💡 Упомяните канал для предложений и заявок:")
            if suggestions is None:
                return
            self.settings.update_resp_settings(ctx.guild.id, {"suggestions_channel": suggestions.id})

        embed_channel = ctx.guild.get_channel(int(config["embed_channel"])) \
            if config.get("embed_channel") else None
        if embed_channel is None:
            embed_channel = await self._ask_channel(ctx, "📌 Упомяните канал для списка ответственностей:")
            if embed_channel is None:
                return
            self.settings.update_resp_settings(ctx.guild.id, {"embed_channel": embed_channel.id})

        try:
            message = await embed_channel.send(embed=create_responsibilities_embed(self.registry),
                                               view=RespPanelView(self.registry))
        except discord.HTTPException as e:
            logger.error(f"❌ Не удалось отправить панель ответственностей: {e}")
            await ctx.send("❌ Не удалось отправить панель в канал")
            return
        self.settings.update_resp_settings(ctx.guild.id, {
            "embed_data": {"message_id": message.id, "channel_id": embed_channel.id}
        })
        await ctx.send(f"✅ Панель ответственностей отправлена в {embed_channel.mention}")

    async def _finish(self, ctx: commands.Context, result, success_text: str):
        if not result:
            await ctx.send(f"❌ {result.error}")
            return
        await refresh_resp_embed(ctx.guild, self.registry)
        await ctx.send(success_text)

    @resp.command(name="add")
    @commands.guild_only()
    @owners_only()
    async def resp_add(self, ctx: commands.Context, name: str, *, description: str = ""):
        await self._finish(ctx, self.registry.create(name, description), f"✅ Ответственность **{name}** создана")

    @resp.command(name="delete", aliases=["remove"])
    @commands.guild_only()
    @owners_only()
    async def resp_delete(self, ctx: commands.Context, *, name: str):
        await self._finish(ctx, self.registry.delete(name), f"🗑️ Ответственность **{name}** удалена")

    @resp.command(name="desc")
    @commands.guild_only()
    @owners_only()
    async def resp_desc(self, ctx: commands.Context, name: str, *, description: str):
        await self._finish(ctx, self.registry.set_description(name, description), "✅ Описание обновлено")

    @resp.command(name="order")
    @commands.guild_only()
    @owners_only()
    async def resp_order(self, ctx: commands.Context, name: str, order: int):
        await self._finish(ctx, self.registry.set_order(name, order), f"✅ Порядок **{name}**: {order}")

    @resp.command(name="roles")
    @commands.guild_only()
    @owners_only()
    async def resp_roles(self, ctx: commands.Context, name: str):
        role_ids = [r.id for r in ctx.message.role_mentions]
        await self._finish(ctx, self.registry.set_roles(name, role_ids),
                           f"✅ Роли **{name}**: {', '.join(f'<@&{r}>' for r in role_ids) or 'нет'}")

    @resp.command(name="image")
    @commands.guild_only()
    @owners_only()
    async def resp_image(self, ctx: commands.Context, name: str, url: str = None):
        if url is None and ctx.message.attachments:
            url = ctx.message.attachments[0].url
        if url in ("off", "none"):
            url = None
        await self._finish(ctx, self.registry.set_image(name, url), "✅ Изображение обновлено")

    @resp.command(name="shortcut")
    @commands.guild_only()
    @owners_only()
    async def resp_shortcut(self, ctx: commands.Context, name: str, word: str):
        if word.lower() == "off":
            result = self.registry.set_mention(name, False, None)
        else:
            result = self.registry.set_mention(name, True, word)
        await self._finish(ctx, result, f"✅ Шорткат **{name}**: {word}")

    @resp.command(name="list")
    @commands.guild_only()
    @owners_only()
    async def resp_list(self, ctx: commands.Context):
        await ctx.send(embed=create_responsibilities_embed(self.registry))

    # ── Ответственные участника ──────────────────────────────────────────────
    @commands.command(name="مسؤوليه", aliases=["مسؤولية"])
    @commands.guild_only()
    @owners_only()
    async def manage_responsible(self, ctx: commands.Context, member: discord.Member):
        held = self.registry.responsibilities_of(member.id)
        embed = discord.Embed(
            title=f"📌 Ответственности: {member.display_name}",
            description="\n".join(f"• {n}" for n in held) or "нет",
            color=discord.Color.blurple()
        )
        await ctx.send(embed=embed, view=ResponsibleManageView(ctx.author.id, member, self.registry))

    # ── Вызов ответственного ─────────────────────────────────────────────────
    @commands.command(name="مسؤول")
    @commands.guild_only()
    async def call_menu(self, ctx: commands.Context):
        names = [n for n, r in self.registry.all().items() if r["responsibles"]]
        if not names:
            await ctx.reply("❌ Нет ответственностей с ответственными", mention_author=False)
            return
        view = discord.ui.View(timeout=300)
        view.add_item(ResponsibilitySelectMenu(names, self.registry))
        await ctx.send("📞 Кого вызвать?", view=view)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        words = message.content.split()
        if not words:
            return
        name = self.registry.find_by_shortcut(words[0])
        if name is None:
            return
        resp = self.registry.get(name)
        if not resp or not resp["responsibles"]:
            return
        embed, view = create_call_menu(name, resp, message.guild)
        try:
            await message.reply(embed=embed, view=view, mention_author=False)
        except discord.HTTPException as e:
            logger.warning(f"⚠️ Не удалось показать меню вызова: {e}")


async def call_cleanup_loop(bot: commands.Bot):
    """Периодически удалять истёкшие кулдауны вызовов и устаревшие вызовы"""
    await bot.wait_until_ready()
    while not bot.is_closed():
        try:
            cleanup_calls()
        except Exception as e:
            logger.error(f"❌ Ошибка очистки вызовов: {e}")
        await asyncio.sleep(CALL_CLEANUP_SECONDS)
