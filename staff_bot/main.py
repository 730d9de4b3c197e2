# -*- coding: utf-8 -*-
"""
Основной бот: загрузка cog'ов, постоянные view, маршрутизация
взаимодействий, обработка ошибок и переподключение
"""

import asyncio
import logging
import os
import traceback
from datetime import datetime

import aiohttp
import discord
from discord.ext import commands

from apply_bot.applications import application_store
from apply_bot.cog import ApplyCog, cooldown_cleanup_loop
from apply_bot.ui_components import handle_admin_approve, handle_admin_reject
from promote_bot.cog import PromoteCog, ban_expiry_loop, promotion_expiry_loop, tracking_cleanup_loop
from promote_bot.manager import promote_manager
from promote_bot.ui_components import PromotePanelView
from resp_bot.cog import RespCog, call_cleanup_loop
from resp_bot.registry import responsibility_registry
from resp_bot.ui_components import (RespPanelView, handle_claim_button, handle_contact_button,
                                    handle_resp_decision)

from .activity import ActivityCog
from .stats_db import stats_db

logger = logging.getLogger("staffbot")

GATEWAY_URL = "https://discord.com/api/v10/gateway"
MONITOR_INTERVAL = 30
MAX_RETRIES = 5


def get_command_prefix() -> str:
    return os.getenv("COMMAND_PREFIX", "!")


class StaffBot(commands.Bot):
    def __init__(self):
        super().__init__(command_prefix=get_command_prefix(), intents=discord.Intents.all())
        self.background_tasks = []

    async def setup_hook(self):
        """Вызывается при запуске бота"""
        promote_manager.init(self)
        await stats_db.init()

        await self.add_cog(PromoteCog(self))
        await self.add_cog(ApplyCog(self))
        await self.add_cog(RespCog(self))
        await self.add_cog(ActivityCog(self))

        self.add_view(PromotePanelView())
        self.add_view(RespPanelView())

        for loop_factory in (promotion_expiry_loop, ban_expiry_loop, tracking_cleanup_loop,
                             cooldown_cleanup_loop, call_cleanup_loop, connection_monitor):
            self.background_tasks.append(self.loop.create_task(loop_factory(self)))

        logger.info("Бот настроен и готов к работе")

    async def on_ready(self):
        logger.info(f"✅ Бот {self.user} подключен к Discord!")
        logger.info(f"🌍 Сервера: {len(self.guilds)}")
        for guild in self.guilds:
            logger.info(f"   • {guild.name} ({guild.id})")

    async def on_interaction(self, interaction: discord.Interaction):
        """Маршрутизация кнопок с параметрами в custom_id"""
        if interaction.type != discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id", "")
        try:
            await route_interaction(self, interaction, custom_id)
        except Exception as e:
            logger.error(f"❌ Ошибка обработки взаимодействия {custom_id}: {e}", exc_info=True)
            try:
                if interaction.response.is_done():
                    await interaction.followup.send("❌ Произошла ошибка", ephemeral=True)
                else:
                    await interaction.response.send_message("❌ Произошла ошибка", ephemeral=True)
            except discord.HTTPException:
                logger.debug("Не удалось сообщить пользователю об ошибке")

    async def on_error(self, event, *args, **kwargs):
        """Глобальный обработчик ошибок бота"""
        logger.error(f"❌ Ошибка в событии {event}: {traceback.format_exc()}")

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """Обработчик ошибок команд"""
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.MissingPermissions):
            await ctx.send("❌ У вас недостаточно прав для выполнения этой команды")
        elif isinstance(error, commands.BotMissingPermissions):
            await ctx.send("❌ У бота недостаточно прав для выполнения этой команды")
        elif isinstance(error, commands.NoPrivateMessage):
            await ctx.send("❌ Команда доступна только на сервере")
        elif isinstance(error, commands.CheckFailure):
            await ctx.send("❌ У вас нет доступа к этой команде")
        elif isinstance(error, commands.MissingRequiredArgument):
            await ctx.send(f"❌ Не хватает аргумента: `{error.param.name}`")
        elif isinstance(error, commands.BadArgument):
            await ctx.send(f"❌ Неверный аргумент: {error}")
        else:
            logger.error(f"❌ Ошибка команды {ctx.command}: {error}", exc_info=error)
            await ctx.send("❌ Произошла ошибка при выполнении команды")

    async def on_disconnect(self):
        logger.warning(f"⚠️ Бот отключился в {datetime.now().strftime('%H:%M:%S')}")

    async def on_resumed(self):
        logger.info(f"✅ Подключение к Discord восстановлено в {datetime.now().strftime('%H:%M:%S')}")


async def route_interaction(bot: commands.Bot, interaction: discord.Interaction, custom_id: str) -> bool:
    """Вернуть True, если custom_id обработан маршрутизатором"""
    if custom_id.startswith("admin_approve_"):
        await handle_admin_approve(interaction, custom_id[len("admin_approve_"):],
                                   application_store, responsibility_registry)
    elif custom_id.startswith("admin_reject_"):
        await handle_admin_reject(interaction, custom_id[len("admin_reject_"):],
                                  application_store, responsibility_registry)
    elif custom_id.startswith("resp_approve_"):
        await handle_resp_decision(interaction, custom_id[len("resp_approve_"):], approve=True)
    elif custom_id.startswith("resp_reject_"):
        await handle_resp_decision(interaction, custom_id[len("resp_reject_"):], approve=False)
    elif custom_id.startswith("masoul_contact_"):
        await handle_contact_button(interaction)
    elif custom_id.startswith("masoul_claim_"):
        await handle_claim_button(interaction, custom_id[len("masoul_claim_"):], bot)
    else:
        return False
    return True


# ─── Монитор подключения ──────────────────────────────────────────────────────

async def check_discord_api() -> bool:
    """Проверяет доступность Discord API"""
    try:
        timeout = aiohttp.ClientTimeout(total=5)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(GATEWAY_URL) as response:
                return response.status == 200
    except Exception:
        return False


async def connection_monitor(bot: commands.Bot):
    """Отслеживает потерю и восстановление подключения к Discord"""
    await bot.wait_until_ready()
    logger.info("🔍 Монитор подключения активирован")
    connection_lost_time = None

    while not bot.is_closed():
        try:
            api_ok = await check_discord_api()
            now = datetime.now()
            if not api_ok:
                if connection_lost_time is None:
                    connection_lost_time = now
                    logger.warning(f"⚠️ Потеря подключения к Discord API в {now.strftime('%H:%M:%S')}")
            elif connection_lost_time is not None:
                lost = int((now - connection_lost_time).total_seconds())
                logger.info(f"✅ Подключение восстановлено после {lost // 60}м {lost % 60}с")
                connection_lost_time = None
        except Exception as e:
            logger.error(f"❌ Ошибка в мониторе подключения: {e}")
        await asyncio.sleep(MONITOR_INTERVAL)


# ─── Запуск ───────────────────────────────────────────────────────────────────

async def start_bot_with_reconnect(token: str = None):
    """Запускает бота с автоматическим переподключением при ошибках"""
    token = token or os.getenv("DISCORD_TOKEN")
    if not token:
        logger.error("❌ DISCORD_TOKEN не задан")
        return

    retry_count = 0
    while retry_count < MAX_RETRIES:
        bot = StaffBot()
        try:
            logger.info(f"🚀 Попытка запуска бота #{retry_count + 1}")
            await bot.start(token)
            break
        except discord.LoginFailure:
            logger.error("❌ КРИТИЧЕСКАЯ ОШИБКА: Неверный токен бота!")
            break
        except discord.HTTPException as e:
            logger.error(f"❌ Ошибка HTTP: {e}")
            if e.status == 429:
                logger.warning("⏳ Превышен лимит запросов, ждем...")
                await asyncio.sleep(60)
            retry_count += 1
        except discord.ConnectionClosed as e:
            logger.error(f"🔌 Соединение закрыто: {e}")
            retry_count += 1
        except Exception as e:
            logger.error(f"❌ Неожиданная ошибка: {e}", exc_info=True)
            retry_count += 1
        finally:
            if not bot.is_closed():
                await bot.close()

        if retry_count < MAX_RETRIES:
            wait_time = min(2 ** retry_count, 60)
            logger.info(f"⏳ Ожидание {wait_time} секунд перед повторной попыткой...")
            await asyncio.sleep(wait_time)
        else:
            logger.error("❌ Превышено максимальное количество попыток подключения")
