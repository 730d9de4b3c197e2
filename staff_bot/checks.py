# -*- coding: utf-8 -*-
"""Проверки доступа для текстовых команд"""

from discord.ext import commands

import unified_settings as settings_module


def owners_only():
    """Команда доступна только владельцам бота"""
    async def predicate(ctx: commands.Context) -> bool:
        return settings_module.is_bot_owner(ctx.author.id)
    return commands.check(predicate)


def owners_or_guild_owner():
    async def predicate(ctx: commands.Context) -> bool:
        if settings_module.is_bot_owner(ctx.author.id):
            return True
        return ctx.guild is not None and ctx.guild.owner_id == ctx.author.id
    return commands.check(predicate)
