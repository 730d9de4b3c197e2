# -*- coding: utf-8 -*-
"""
Сбор активности: сообщения, реакции и голосовые сессии
"""

import logging
import time
from typing import Dict

import discord
from discord.ext import commands

from .stats_db import StatsDatabase, stats_db

logger = logging.getLogger("staffbot.stats")


class ActivityCog(commands.Cog):
    def __init__(self, bot: commands.Bot, db: StatsDatabase = stats_db):
        self.bot = bot
        self.db = db
        # user_id -> время входа в голосовой канал (монотонные секунды)
        self.voice_joins: Dict[int, float] = {}
        logger.info("Cog ActivityCog загружен")

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        try:
            await self.db.record_message(message.author.id)
        except Exception as e:
            logger.error(f"❌ Ошибка записи сообщения {message.author.id}: {e}")

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        if payload.guild_id is None or (payload.member is not None and payload.member.bot):
            return
        try:
            await self.db.record_reaction(payload.user_id)
        except Exception as e:
            logger.error(f"❌ Ошибка записи реакции {payload.user_id}: {e}")

    @commands.Cog.listener()
    async def on_voice_state_update(self, member: discord.Member, before: discord.VoiceState,
                                    after: discord.VoiceState):
        if member.bot:
            return
        if before.channel is None and after.channel is not None:
            self.voice_joins[member.id] = time.monotonic()
        elif before.channel is not None and after.channel is None:
            started = self.voice_joins.pop(member.id, None)
            if started is None:
                return
            seconds = int(time.monotonic() - started)
            try:
                await self.db.record_voice_session(member.id, seconds)
            except Exception as e:
                logger.error(f"❌ Ошибка записи голосовой сессии {member.id}: {e}")
