# -*- coding: utf-8 -*-
"""
UI ответственностей: публичная панель, предложения, заявки,
управление ответственными и вызов ответственного
"""

import logging
from typing import Dict, List, Optional

import discord
from discord import ui

import unified_settings as settings_module
from staff_bot.storage import now_ms

from .registry import (RespApplications, ResponsibilityRegistry, resp_applications,
                       responsibility_registry)

logger = logging.getLogger("staffbot.resp")

CALL_COOLDOWN_MS = 60_000
# Вызов хранится сутки, затем кнопка "Принять" устаревает
CALL_TTL_MS = 24 * 60 * 60 * 1000
MAX_SELECT_OPTIONS = 25

# (user_id, ответственность) -> время последнего вызова
call_cooldowns: Dict[tuple, int] = {}
# call_id -> состояние вызова
active_calls: Dict[str, Dict] = {}


async def _safe_dm(user, **kwargs) -> bool:
    try:
        await user.send(**kwargs)
        return True
    except Exception as e:
        logger.warning(f"⚠️ Не удалось отправить ЛС {getattr(user, 'id', '?')}: {e}")
        return False


def _suggestions_channel(guild: discord.Guild) -> Optional[discord.TextChannel]:
    channel_id = settings_module.unified_settings.get_resp_settings(guild.id).get("suggestions_channel")
    if not channel_id:
        return None
    return guild.get_channel(int(channel_id))


# ─── Embed ответственностей ───────────────────────────────────────────────────

def create_responsibilities_embed(registry: ResponsibilityRegistry) -> discord.Embed:
    embed = discord.Embed(
        title="📌 Ответственности сервера",
        description="Предложите идею или подайте заявку кнопками ниже",
        color=discord.Color.blurple()
    )
    responsibilities = registry.all()
    if not responsibilities:
        embed.add_field(name="Пусто", value="Ответственности ещё не созданы", inline=False)
    for name, resp in list(responsibilities.items())[:25]:
        people = ", ".join(f"<@{uid}>" for uid in resp["responsibles"]) or "нет ответственных"
        description = resp.get("description") or "без описания"
        embed.add_field(name=f"📌 {name}", value=f"{description}\n👥 {people}"[:1024], inline=False)
    first_image = next((r["image"] for r in responsibilities.values() if r.get("image")), None)
    if first_image:
        embed.set_image(url=first_image)
    embed.timestamp = discord.utils.utcnow()
    return embed


async def refresh_resp_embed(guild: discord.Guild, registry: ResponsibilityRegistry = responsibility_registry) -> bool:
    """Обновить сохранённое сообщение с ответственностями"""
    embed_data = settings_module.unified_settings.get_resp_settings(guild.id).get("embed_data") or {}
    channel_id, message_id = embed_data.get("channel_id"), embed_data.get("message_id")
    if not channel_id or not message_id:
        return False
    channel = guild.get_channel(int(channel_id))
    if channel is None:
        return False
    try:
        message = await channel.fetch_message(int(message_id))
        await message.edit(embed=create_responsibilities_embed(registry), view=RespPanelView())
        return True
    except discord.HTTPException as e:
        logger.warning(f"⚠️ Не удалось обновить embed ответственностей: {e}")
        return False


# ─── Публичная панель ─────────────────────────────────────────────────────────

class SuggestionModal(ui.Modal):
    suggestion_text = ui.TextInput(
        label="Ваше предложение",
        style=discord.TextStyle.paragraph,
        custom_id="suggestion_text",
        required=True,
        max_length=1500
    )

    def __init__(self):
        super().__init__(title="Предложение", custom_id="suggestion_modal")

    async def on_submit(self, interaction: discord.Interaction):
        channel = _suggestions_channel(interaction.guild)
        if channel is None:
            await interaction.response.send_message("❌ Канал предложений не настроен", ephemeral=True)
            return
        embed = discord.Embed(title="💡 Новое предложение", description=self.suggestion_text.value,
                              color=discord.Color.gold())
        embed.set_author(name=interaction.user.display_name, icon_url=interaction.user.display_avatar.url)
        embed.set_footer(text=f"ID: {interaction.user.id}")
        embed.timestamp = discord.utils.utcnow()
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"❌ Не удалось отправить предложение: {e}")
            await interaction.response.send_message("❌ Не удалось отправить предложение", ephemeral=True)
            return
        await interaction.response.send_message("✅ Предложение отправлено", ephemeral=True)


class RespApplyModal(ui.Modal):
    reason = ui.TextInput(label="Почему вы подходите?", style=discord.TextStyle.paragraph,
                          required=True, max_length=1000)

    def __init__(self, name: str, registry: ResponsibilityRegistry = responsibility_registry,
                 applications: RespApplications = resp_applications):
        super().__init__(title=f"Заявка: {name}"[:45], custom_id=f"resp_apply_modal_{name}"[:100])
        self.name = name
        self.registry = registry
        self.applications = applications

    async def on_submit(self, interaction: discord.Interaction):
        user = interaction.user
        resp = self.registry.get(self.name)
        if resp is None:
            await interaction.response.send_message("❌ Ответственность не найдена", ephemeral=True)
            return
        if user.id in resp["responsibles"]:
            await interaction.response.send_message("❌ Вы уже ответственный", ephemeral=True)
            return
        if self.applications.has_pending(user.id, self.name):
            await interaction.response.send_message("❌ Ваша заявка уже на рассмотрении", ephemeral=True)
            return
        channel = _suggestions_channel(interaction.guild)
        if channel is None:
            await interaction.response.send_message("❌ Канал заявок не настроен", ephemeral=True)
            return

        app_id = self.applications.create(user.id, interaction.guild.id, self.name, self.reason.value)
        if app_id is None:
            await interaction.response.send_message("❌ Не удалось сохранить заявку", ephemeral=True)
            return
        embed = discord.Embed(title=f"📝 Заявка на ответственность: {self.name}",
                              description=self.reason.value, color=discord.Color.blue())
        embed.add_field(name="👤 Заявитель", value=user.mention, inline=True)
        embed.timestamp = discord.utils.utcnow()
        view = ui.View(timeout=None)
        view.add_item(ui.Button(label="✅ Принять", style=discord.ButtonStyle.success,
                                custom_id=f"resp_approve_{app_id}"))
        view.add_item(ui.Button(label="❌ Отклонить", style=discord.ButtonStyle.danger,
                                custom_id=f"resp_reject_{app_id}"))
        await channel.send(embed=embed, view=view)
        await interaction.response.send_message("✅ Заявка отправлена", ephemeral=True)


class RespApplySelect(ui.Select):
    def __init__(self, names: List[str]):
        options = [discord.SelectOption(label=n[:100], value=n) for n in names[:MAX_SELECT_OPTIONS]]
        super().__init__(placeholder="Выберите ответственность...", options=options,
                         custom_id="resp_apply_select")

    async def callback(self, interaction: discord.Interaction):
        await interaction.response.send_modal(RespApplyModal(self.values[0]))


class RespPanelView(ui.View):
    """Постоянные кнопки под embed ответственностей"""

    def __init__(self, registry: ResponsibilityRegistry = responsibility_registry):
        super().__init__(timeout=None)
        self.registry = registry

    @ui.button(label="Предложение", emoji="💡", style=discord.ButtonStyle.primary,
               custom_id="suggestion_button")
    async def suggestion_button(self, interaction: discord.Interaction, button: ui.Button):
        if _suggestions_channel(interaction.guild) is None:
            await interaction.response.send_message("❌ Канал предложений не настроен", ephemeral=True)
            return
        await interaction.response.send_modal(SuggestionModal())

    @ui.button(label="Подать заявку", emoji="📝", style=discord.ButtonStyle.success,
               custom_id="resp_apply_button")
    async def apply_button(self, interaction: discord.Interaction, button: ui.Button):
        names = self.registry.names()
        if not names:
            await interaction.response.send_message("❌ Ответственности ещё не созданы", ephemeral=True)
            return
        view = ui.View(timeout=300)
        view.add_item(RespApplySelect(names))
        await interaction.response.send_message("📌 Выберите ответственность:", view=view, ephemeral=True)


# ─── Решение по заявке ────────────────────────────────────────────────────────

async def _close_application_message(message: discord.Message, color: discord.Color, result: str):
    embed = message.embeds[0].copy() if message.embeds else discord.Embed()
    embed.color = color
    embed.add_field(name="Итог", value=result, inline=False)
    try:
        await message.edit(embed=embed, view=None)
    except discord.HTTPException as e:
        logger.warning(f"⚠️ Не удалось обновить заявку: {e}")


async def grant_responsibility_roles(member: discord.Member, role_ids: List[int]) -> List[str]:
    """Выдать роли ответственности. Возвращает список ошибок"""
    errors = []
    roles = [member.guild.get_role(r) for r in role_ids]
    for role in roles:
        if role is None or role in member.roles:
            continue
        try:
            await member.add_roles(role, reason="Назначение ответственным")
        except (discord.Forbidden, discord.HTTPException) as e:
            errors.append(f"{role.name}: {e}")
    return errors


async def handle_resp_decision(interaction: discord.Interaction, app_id: str, approve: bool,
                               registry: ResponsibilityRegistry = responsibility_registry,
                               applications: RespApplications = resp_applications):
    if not settings_module.is_bot_owner(interaction.user.id):
        await interaction.response.send_message("❌ Решение принимают только владельцы", ephemeral=True)
        return
    app = applications.get(app_id)
    if app is None:
        await interaction.response.send_message("❌ Заявка не найдена или уже обработана", ephemeral=True)
        try:
            await interaction.message.edit(view=None)
        except discord.HTTPException:
            logger.debug("Сообщение заявки уже недоступно")
        return

    await interaction.response.defer(ephemeral=True)
    guild = interaction.guild
    name = app["responsibility"]
    applications.remove(app_id)
    member = guild.get_member(app["user_id"])

    if not approve:
        if member is not None:
            await _safe_dm(member, content=f"❌ Ваша заявка на ответственность **{name}** отклонена")
        await _close_application_message(interaction.message, discord.Color.red(),
                                         f"Отклонил {interaction.user.mention}")
        await interaction.followup.send("❌ Заявка отклонена", ephemeral=True)
        return

    result = registry.add_responsible(name, app["user_id"])
    if not result:
        await interaction.followup.send(f"❌ {result.error}", ephemeral=True)
        await _close_application_message(interaction.message, discord.Color.dark_grey(), result.error)
        return

    errors = []
    if member is not None:
        errors = await grant_responsibility_roles(member, result.data["roles"])
        await _safe_dm(member, content=f"🎉 Вы назначены ответственным: **{name}**")
    await refresh_resp_embed(guild, registry)
    await _close_application_message(interaction.message, discord.Color.green(),
                                     f"Принял {interaction.user.mention}")
    text = f"✅ <@{app['user_id']}> назначен ответственным: **{name}**"
    if errors:
        text += "\n⚠️ " + "\n".join(errors)
    await interaction.followup.send(text, ephemeral=True)


# ─── Управление ответственными участника ─────────────────────────────────────

async def apply_responsibility_changes(member: discord.Member, names: List[str], add: bool,
                                       registry: ResponsibilityRegistry = responsibility_registry) -> Dict:
    """Добавить/убрать ответственности и синхронизировать роли"""
    done, errors = [], []
    for name in names:
        result = registry.add_responsible(name, member.id) if add else registry.remove_responsible(name, member.id)
        if not result:
            errors.append(f"{name}: {result.error}")
            continue
        done.append(name)
        if add:
            errors.extend(await grant_responsibility_roles(member, result.data["roles"]))
            continue
        for role_id in result.data["roles"]:
            role = member.guild.get_role(role_id)
            if role is None or role not in member.roles:
                continue
            if registry.roles_still_needed(member.id, role_id, excluding=[name]):
                continue
            try:
                await member.remove_roles(role, reason="Снятие ответственности")
            except (discord.Forbidden, discord.HTTPException) as e:
                errors.append(f"{role.name}: {e}")
    return {"done": done, "errors": errors}


class ResponsibilityConfirmSelect(ui.Select):
    def __init__(self, member: discord.Member, names: List[str], add: bool,
                 registry: ResponsibilityRegistry = responsibility_registry):
        self.member = member
        self.adding = add
        self.registry = registry
        options = [discord.SelectOption(label=n[:100], value=n) for n in names[:MAX_SELECT_OPTIONS]]
        prefix = "confirm_add" if add else "confirm_remove"
        super().__init__(placeholder="Выберите ответственности...", options=options,
                         min_values=1, max_values=len(options), custom_id=f"{prefix}_{member.id}")

    async def callback(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        summary = await apply_responsibility_changes(self.member, list(self.values), self.adding, self.registry)
        await refresh_resp_embed(interaction.guild, self.registry)
        verb = "Добавлены" if self.adding else "Сняты"
        text = f"✅ {verb}: {', '.join(summary['done']) or 'ничего'}"
        if summary["errors"]:
            text += "\n⚠️ Ошибки:\n" + "\n".join(summary["errors"][:10])
        await interaction.followup.send(text, ephemeral=True)


class ResponsibleManageView(ui.View):
    """Кнопки добавления/снятия ответственностей участника"""

    def __init__(self, author_id: int, member: discord.Member,
                 registry: ResponsibilityRegistry = responsibility_registry):
        super().__init__(timeout=300)
        self.author_id = author_id
        self.member = member
        self.registry = registry

        add_btn = ui.Button(label="Добавить", emoji="➕", style=discord.ButtonStyle.success,
                            custom_id=f"resp_add_{member.id}")
        add_btn.callback = self._add_callback
        remove_btn = ui.Button(label="Убрать", emoji="➖", style=discord.ButtonStyle.danger,
                               custom_id=f"resp_remove_{member.id}")
        remove_btn.callback = self._remove_callback
        self.add_item(add_btn)
        self.add_item(remove_btn)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.author_id:
            await interaction.response.send_message("❌ Это меню не для вас", ephemeral=True)
            return False
        return True

    async def _show_select(self, interaction: discord.Interaction, add: bool):
        held = set(self.registry.responsibilities_of(self.member.id))
        names = [n for n in self.registry.names() if (n not in held) == add]
        if not names:
            text = "❌ Нет ответственностей для добавления" if add else "❌ У участника нет ответственностей"
            await interaction.response.send_message(text, ephemeral=True)
            return
        view = ui.View(timeout=300)
        view.add_item(ResponsibilityConfirmSelect(self.member, names, add, self.registry))
        await interaction.response.send_message("📌 Выберите:", view=view, ephemeral=True)

    async def _add_callback(self, interaction: discord.Interaction):
        await self._show_select(interaction, add=True)

    async def _remove_callback(self, interaction: discord.Interaction):
        await self._show_select(interaction, add=False)


# ─── Вызов ответственного ─────────────────────────────────────────────────────

def parse_contact_id(custom_id: str):
    """masoul_contact_<имя>_<uid|all>_<ts> -> (имя, uid или None, ts)"""
    body = custom_id[len("masoul_contact_"):]
    name, target, ts = body.rsplit("_", 2)
    return name, (None if target == "all" else int(target)), int(ts)


def check_call_cooldown(user_id: int, name: str, now: int = None) -> int:
    """Оставшееся время кулдауна в мс (0 если можно вызывать)"""
    now = now or now_ms()
    last = call_cooldowns.get((user_id, name))
    if last is None:
        return 0
    return max(0, last + CALL_COOLDOWN_MS - now)


def cleanup_calls(now: int = None) -> int:
    """Удалить истёкшие кулдауны и устаревшие вызовы. Возвращает число удалённых записей"""
    now = now or now_ms()
    expired_cooldowns = [key for key, last in call_cooldowns.items() if now - last >= CALL_COOLDOWN_MS]
    for key in expired_cooldowns:
        del call_cooldowns[key]
    expired_calls = [call_id for call_id, call in active_calls.items()
                     if now - call.get("created_at", 0) >= CALL_TTL_MS]
    for call_id in expired_calls:
        del active_calls[call_id]
    if expired_calls:
        logger.info(f"🧹 Удалено устаревших вызовов: {len(expired_calls)}")
    return len(expired_cooldowns) + len(expired_calls)


def create_call_menu(name: str, resp: Dict, guild: discord.Guild):
    embed = discord.Embed(title=f"📞 Вызов ответственного: {name}",
                          description=resp.get("description") or None, color=discord.Color.blurple())
    view = ui.View(timeout=None)
    ts = now_ms()
    for uid in resp["responsibles"][:20]:
        member = guild.get_member(uid)
        label = member.display_name if member else str(uid)
        view.add_item(ui.Button(label=label[:80], style=discord.ButtonStyle.secondary,
                                custom_id=f"masoul_contact_{name}_{uid}_{ts}"[:100]))
    view.add_item(ui.Button(label="Все", emoji="📣", style=discord.ButtonStyle.primary,
                            custom_id=f"masoul_contact_{name}_all_{ts}"[:100]))
    if resp.get("image"):
        embed.set_thumbnail(url=resp["image"])
    return embed, view


class ResponsibilitySelectMenu(ui.Select):
    def __init__(self, names: List[str], registry: ResponsibilityRegistry = responsibility_registry):
        self.registry = registry
        options = [discord.SelectOption(label=n[:100], value=n) for n in names[:MAX_SELECT_OPTIONS]]
        super().__init__(placeholder="Кого вызвать?", options=options,
                         custom_id="masoul_select_responsibility")

    async def callback(self, interaction: discord.Interaction):
        name = self.values[0]
        resp = self.registry.get(name)
        if resp is None or not resp["responsibles"]:
            await interaction.response.send_message("❌ У этой ответственности нет ответственных", ephemeral=True)
            return
        embed, view = create_call_menu(name, resp, interaction.guild)
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)


class CallReasonModal(ui.Modal):
    reason = ui.TextInput(label="Причина вызова", style=discord.TextStyle.paragraph,
                          required=True, max_length=500)

    def __init__(self, call_id: str, name: str, target_id: Optional[int],
                 registry: ResponsibilityRegistry = responsibility_registry):
        super().__init__(title="Вызов ответственного", custom_id=f"masoul_modal_{call_id}")
        self.call_id = call_id
        self.name = name
        self.target_id = target_id
        self.registry = registry

    async def on_submit(self, interaction: discord.Interaction):
        resp = self.registry.get(self.name)
        if resp is None:
            await interaction.response.send_message("❌ Ответственность не найдена", ephemeral=True)
            return
        targets = [self.target_id] if self.target_id else list(resp["responsibles"])
        targets = [t for t in targets if t in resp["responsibles"]]
        if not targets:
            await interaction.response.send_message("❌ Ответственные не найдены", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        created_at = now_ms()
        call_cooldowns[(interaction.user.id, self.name)] = created_at
        jump_url = interaction.message.jump_url if interaction.message else None
        active_calls[self.call_id] = {
            "name": self.name,
            "requester_id": interaction.user.id,
            "guild_id": interaction.guild.id,
            "reason": self.reason.value,
            "claimed_by": None,
            "jump_url": jump_url,
            "created_at": created_at,
        }

        embed = discord.Embed(title=f"📞 Вас вызывают: {self.name}", description=self.reason.value,
                              color=discord.Color.orange())
        embed.add_field(name="👤 Вызвал", value=interaction.user.mention, inline=True)
        embed.add_field(name="🏠 Сервер", value=interaction.guild.name, inline=True)
        view = ui.View(timeout=None)
        view.add_item(ui.Button(label="Принять", emoji="✋", style=discord.ButtonStyle.success,
                                custom_id=f"masoul_claim_{self.call_id}"))
        if jump_url:
            view.add_item(ui.Button(label="Перейти", style=discord.ButtonStyle.link, url=jump_url))

        sent = 0
        for uid in targets:
            member = interaction.guild.get_member(uid)
            if member is not None and await _safe_dm(member, embed=embed, view=view):
                sent += 1
        await interaction.followup.send(f"✅ Вызов отправлен ответственным: {sent}", ephemeral=True)


async def handle_contact_button(interaction: discord.Interaction,
                                registry: ResponsibilityRegistry = responsibility_registry):
    try:
        name, target_id, _ = parse_contact_id(interaction.data["custom_id"])
    except ValueError:
        await interaction.response.send_message("❌ Неверная кнопка", ephemeral=True)
        return
    remaining = check_call_cooldown(interaction.user.id, name)
    if remaining:
        await interaction.response.send_message(
            f"⏳ Подождите ещё {remaining // 1000 + 1} сек.", ephemeral=True
        )
        return
    call_id = f"{now_ms()}_{interaction.user.id}"
    await interaction.response.send_modal(CallReasonModal(call_id, name, target_id, registry))


async def handle_claim_button(interaction: discord.Interaction, call_id: str, client: discord.Client):
    call = active_calls.get(call_id)
    if call is None:
        await interaction.response.send_message("❌ Вызов не найден или устарел", ephemeral=True)
        return
    if call["claimed_by"] is not None:
        await interaction.response.send_message(f"❌ Вызов уже принят: <@{call['claimed_by']}>", ephemeral=True)
        return
    call["claimed_by"] = interaction.user.id

    await interaction.response.edit_message(
        embed=discord.Embed(title="✅ Вызов принят", description=f"Вы приняли вызов: **{call['name']}**",
                            color=discord.Color.green()),
        view=None
    )
    requester = client.get_user(call["requester_id"])
    if requester is None:
        try:
            requester = await client.fetch_user(call["requester_id"])
        except discord.HTTPException:
            requester = None
    if requester is not None:
        await _safe_dm(requester, content=f"✅ Ваш вызов **{call['name']}** принял {interaction.user.mention}")
    logger.info(f"✋ Вызов {call_id} принят пользователем {interaction.user.id}")
