# -*- coding: utf-8 -*-
"""
UI компоненты системы повышений: панель управления, модальные окна,
настройки и быстрое повышение/понижение.
"""

import logging
from typing import Dict, List, Optional

import discord
from discord import ui

from staff_bot.storage import now_ms
from staff_bot.user_stats import format_duration

from .embeds import (create_active_promotes_embed, create_dm_embed, create_log_embed,
                     create_records_embed, create_settings_embed, create_system_stats_embed,
                     end_label, ts)
from .manager import PromoteManager, promote_manager

logger = logging.getLogger("staffbot.promote.ui")

ERROR_TEXT = "❌ Произошла ошибка"

MAIN_MENU_OPTIONS = [
    ("promote", "Повысить", "⬆️", "Выдать административную роль"),
    ("ban", "Запретить повышения", "⛔", "Запретить участнику получать повышения"),
    ("unban", "Снять запрет", "✅", "Снять запрет на повышения"),
    ("records", "История", "📜", "История повышений участника"),
    ("active", "Активные", "📋", "Список активных повышений"),
    ("end", "Завершить", "⏹️", "Досрочно завершить повышение"),
    ("modify", "Изменить срок", "✏️", "Изменить срок повышения"),
    ("settings", "Настройки", "⚙️", "Каналы и права доступа"),
    ("stats", "Статистика", "📊", "Статистика системы"),
]


async def safe_error_reply(interaction: discord.Interaction, text: str = ERROR_TEXT):
    try:
        if interaction.response.is_done():
            await interaction.followup.send(text, ephemeral=True)
        else:
            await interaction.response.send_message(text, ephemeral=True)
    except discord.HTTPException as e:
        logger.warning(f"⚠️ Не удалось отправить сообщение об ошибке: {e}")


def grant_option_label(record: Dict, guild: discord.Guild) -> str:
    member = guild.get_member(record["user_id"])
    role = guild.get_role(record["role_id"])
    who = member.display_name if member else str(record["user_id"])
    what = role.name if role else str(record["role_id"])
    return f"{who} → {what}"[:100]


# ─── Главное меню ─────────────────────────────────────────────────────────────

class PromoteMainMenu(ui.Select):
    """Меню панели управления повышениями"""

    def __init__(self, manager: PromoteManager = promote_manager):
        self.manager = manager
        options = [
            discord.SelectOption(label=label, value=value, emoji=emoji, description=description)
            for value, label, emoji, description in MAIN_MENU_OPTIONS
        ]
        super().__init__(
            placeholder="📋 Выберите действие...",
            min_values=1,
            max_values=1,
            options=options,
            custom_id="promote_main_menu"
        )

    async def callback(self, interaction: discord.Interaction):
        try:
            if not self.manager.has_permission(interaction.user, interaction.guild.id):
                await interaction.response.send_message("❌ У вас нет доступа к системе повышений", ephemeral=True)
                return
            await self.dispatch(interaction, self.values[0])
        except Exception as e:
            logger.error(f"❌ Ошибка в меню повышений: {e}", exc_info=True)
            await safe_error_reply(interaction)

    async def dispatch(self, interaction: discord.Interaction, action: str):
        guild = interaction.guild
        if action == "promote":
            await interaction.response.send_message(
                "👤 Выберите участника для повышения:",
                view=UserPickView(self.manager, "promote"), ephemeral=True
            )
        elif action == "ban":
            await interaction.response.send_message(
                "👤 Выберите участника для запрета:",
                view=UserPickView(self.manager, "ban"), ephemeral=True
            )
        elif action == "records":
            await interaction.response.send_message(
                "👤 Чью историю показать?",
                view=UserPickView(self.manager, "records"), ephemeral=True
            )
        elif action == "unban":
            banned = self.manager.get_banned_users(guild.id)
            if not banned:
                await interaction.response.send_message("ℹ️ Запрещённых участников нет", ephemeral=True)
                return
            await interaction.response.send_message(
                "👤 Выберите участника для снятия запрета:",
                view=UnbanSelectView(self.manager, banned, guild), ephemeral=True
            )
        elif action == "active":
            records = self.manager.get_active_promotes(guild.id)
            await interaction.response.send_message(
                embed=create_active_promotes_embed(records, guild), ephemeral=True
            )
        elif action in ("end", "modify"):
            records = self.manager.get_active_promotes(guild.id)
            if not records:
                await interaction.response.send_message("ℹ️ Активных повышений нет", ephemeral=True)
                return
            await interaction.response.send_message(
                "📋 Выберите повышение:",
                view=GrantSelectView(self.manager, records, guild, action), ephemeral=True
            )
        elif action == "settings":
            embed = create_settings_embed(self.manager.get_settings(guild.id),
                                          self.manager.get_admin_roles(guild.id))
            await interaction.response.send_message(embed=embed, view=PromoteSettingsView(self.manager),
                                                    ephemeral=True)
        elif action == "stats":
            await interaction.response.send_message(
                embed=create_system_stats_embed(self.manager.get_system_stats()), ephemeral=True
            )


class PromotePanelView(ui.View):
    """Постоянная панель управления повышениями"""

    def __init__(self, manager: PromoteManager = promote_manager):
        super().__init__(timeout=None)
        self.add_item(PromoteMainMenu(manager))


def create_panel_embed() -> discord.Embed:
    embed = discord.Embed(
        title="🛡️ Управление повышениями",
        description="Выберите действие в меню ниже",
        color=discord.Color.blurple()
    )
    for _, label, emoji, description in MAIN_MENU_OPTIONS:
        embed.add_field(name=f"{emoji} {label}", value=description, inline=True)
    return embed


# ─── Выбор участника ──────────────────────────────────────────────────────────

class PromoteUserSelect(ui.UserSelect):
    def __init__(self, manager: PromoteManager, action: str):
        self.manager = manager
        self.action = action
        super().__init__(placeholder="Выберите участника...", min_values=1, max_values=1,
                         custom_id=f"promote_select_user_{action}")

    async def callback(self, interaction: discord.Interaction):
        try:
            user = self.values[0]
            guild = interaction.guild
            if self.action == "promote":
                admin_roles = [guild.get_role(r) for r in self.manager.get_admin_roles(guild.id)]
                admin_roles = [r for r in admin_roles if r is not None and r not in getattr(user, "roles", [])]
                if not admin_roles:
                    await interaction.response.send_message("❌ Нет доступных административных ролей", ephemeral=True)
                    return
                await interaction.response.send_message(
                    f"🏷️ Выберите роль для {user.mention}:",
                    view=RolePickView(self.manager, user.id, admin_roles), ephemeral=True
                )
            elif self.action == "ban":
                await interaction.response.send_modal(BanModal(self.manager, user.id))
            elif self.action == "records":
                records = self.manager.get_user_promotion_records(user.id, guild.id)
                await interaction.response.send_message(embed=create_records_embed(user, records), ephemeral=True)
        except Exception as e:
            logger.error(f"❌ Ошибка выбора участника: {e}", exc_info=True)
            await safe_error_reply(interaction)


class UserPickView(ui.View):
    def __init__(self, manager: PromoteManager, action: str):
        super().__init__(timeout=300)
        self.add_item(PromoteUserSelect(manager, action))


class PromoteRoleSelect(ui.Select):
    def __init__(self, manager: PromoteManager, user_id: int, roles: List[discord.Role]):
        self.manager = manager
        self.user_id = user_id
        options = [
            discord.SelectOption(label=role.name[:100], value=str(role.id))
            for role in sorted(roles, key=lambda r: r.position, reverse=True)[:25]
        ]
        super().__init__(placeholder="Выберите роль...", min_values=1, max_values=1,
                         options=options, custom_id=f"promote_role_{user_id}")

    async def callback(self, interaction: discord.Interaction):
        await interaction.response.send_modal(PromoteModal(self.manager, self.user_id, int(self.values[0])))


class RolePickView(ui.View):
    def __init__(self, manager: PromoteManager, user_id: int, roles: List[discord.Role]):
        super().__init__(timeout=300)
        self.add_item(PromoteRoleSelect(manager, user_id, roles))


# ─── Модальные окна ───────────────────────────────────────────────────────────

class PromoteModal(ui.Modal):
    """Срок и причина повышения"""

    duration_input = ui.TextInput(
        label="Срок (7d, 12h, 1w или نهائي)",
        placeholder="например: 7d",
        required=True,
        max_length=20
    )
    reason_input = ui.TextInput(
        label="Причина",
        style=discord.TextStyle.paragraph,
        required=True,
        max_length=500
    )

    def __init__(self, manager: PromoteManager, user_id: int, role_id: int):
        super().__init__(title="Повышение", custom_id=f"promote_modal_{user_id}_{role_id}")
        self.manager = manager
        self.user_id = user_id
        self.role_id = role_id

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        result = await self.manager.create_promotion(
            interaction.guild, self.user_id, self.role_id, self.duration_input.value,
            self.reason_input.value, interaction.user.id
        )
        if not result:
            await interaction.followup.send(f"❌ {result.error}", ephemeral=True)
            return
        text = f"✅ <@{self.user_id}> получил <@&{self.role_id}> | окончание: {end_label(result.data['end_time'])}"
        if result.data.get("removed_old_roles"):
            text += f"\n🗑️ Сняты роли: {', '.join(result.data['removed_old_roles'])}"
        await interaction.followup.send(text, ephemeral=True)


class BanModal(ui.Modal):
    duration_input = ui.TextInput(label="Срок запрета (7d, 1w или نهائي)", required=True, max_length=20)
    reason_input = ui.TextInput(label="Причина", style=discord.TextStyle.paragraph,
                                required=True, max_length=500)

    def __init__(self, manager: PromoteManager, user_id: int):
        super().__init__(title="Запрет на повышения", custom_id=f"promote_ban_modal_{user_id}")
        self.manager = manager
        self.user_id = user_id

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        result = await self.manager.add_promotion_ban(
            interaction.guild, self.user_id, self.duration_input.value,
            self.reason_input.value, interaction.user.id
        )
        if not result:
            await interaction.followup.send(f"❌ {result.error}", ephemeral=True)
            return
        await interaction.followup.send(
            f"⛔ <@{self.user_id}> не может получать повышения до: {end_label(result.data['end_time'])}",
            ephemeral=True
        )


class UnbanModal(ui.Modal):
    reason_input = ui.TextInput(label="Причина снятия запрета", style=discord.TextStyle.paragraph,
                                required=True, max_length=500)

    def __init__(self, manager: PromoteManager, user_id: int):
        super().__init__(title="Снятие запрета", custom_id=f"promote_unban_modal_{user_id}")
        self.manager = manager
        self.user_id = user_id

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        result = await self.manager.remove_promotion_ban(
            interaction.guild, self.user_id, self.reason_input.value, interaction.user.id
        )
        if not result:
            await interaction.followup.send(f"❌ {result.error}", ephemeral=True)
            return
        await interaction.followup.send(f"✅ Запрет для <@{self.user_id}> снят", ephemeral=True)


class EndPromotionModal(ui.Modal):
    reason_input = ui.TextInput(label="Причина завершения", required=False, max_length=300)

    def __init__(self, manager: PromoteManager, promote_id: str):
        super().__init__(title="Завершение повышения")
        self.manager = manager
        self.promote_id = promote_id

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        reason = self.reason_input.value.strip() or "إنهاء يدوي"
        result = await self.manager.end_promotion(interaction.guild, self.promote_id, reason,
                                                  ended_by=interaction.user.id)
        if not result:
            await interaction.followup.send(f"❌ {result.error}", ephemeral=True)
            return
        await interaction.followup.send("✅ Повышение завершено", ephemeral=True)


class ModifyDurationModal(ui.Modal):
    duration_input = ui.TextInput(label="Новый срок (от текущего момента)", required=True, max_length=20)

    def __init__(self, manager: PromoteManager, promote_id: str):
        super().__init__(title="Изменение срока")
        self.manager = manager
        self.promote_id = promote_id

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        result = await self.manager.modify_promotion_duration(
            interaction.guild, self.promote_id, self.duration_input.value, interaction.user.id
        )
        if not result:
            await interaction.followup.send(f"❌ {result.error}", ephemeral=True)
            return
        await interaction.followup.send(
            f"✏️ Новое окончание: {end_label(result.data['end_time'])}", ephemeral=True
        )


# ─── Списки запретов и повышений ──────────────────────────────────────────────

class UnbanSelect(ui.Select):
    def __init__(self, manager: PromoteManager, bans: List[Dict], guild: discord.Guild):
        self.manager = manager
        options = []
        for ban in bans[:25]:
            member = guild.get_member(ban["user_id"])
            label = member.display_name if member else str(ban["user_id"])
            until = "навсегда" if ban.get("end_time") is None else "до " + ts(ban["end_time"], "d")
            options.append(discord.SelectOption(label=label[:100], value=str(ban["user_id"]),
                                                description=until[:100]))
        super().__init__(placeholder="Выберите участника...", options=options,
                         custom_id="promote_unban_select_user_eligible")

    async def callback(self, interaction: discord.Interaction):
        await interaction.response.send_modal(UnbanModal(self.manager, int(self.values[0])))


class UnbanSelectView(ui.View):
    def __init__(self, manager: PromoteManager, bans: List[Dict], guild: discord.Guild):
        super().__init__(timeout=300)
        self.add_item(UnbanSelect(manager, bans, guild))


class GrantSelect(ui.Select):
    def __init__(self, manager: PromoteManager, records: List[Dict], guild: discord.Guild, action: str):
        self.manager = manager
        self.action = action
        ordered = sorted(records, key=lambda r: r.get("start_time") or 0, reverse=True)[:25]
        options = [
            discord.SelectOption(
                label=grant_option_label(record, guild),
                value=record["id"],
                description="навсегда" if record.get("end_time") is None else "временное"
            )
            for record in ordered
        ]
        super().__init__(placeholder="Выберите повышение...", options=options,
                         custom_id=f"promote_{action}_select")

    async def callback(self, interaction: discord.Interaction):
        promote_id = self.values[0]
        if self.action == "end":
            await interaction.response.send_modal(EndPromotionModal(self.manager, promote_id))
        else:
            await interaction.response.send_modal(ModifyDurationModal(self.manager, promote_id))


class GrantSelectView(ui.View):
    def __init__(self, manager: PromoteManager, records: List[Dict], guild: discord.Guild, action: str):
        super().__init__(timeout=300)
        self.add_item(GrantSelect(manager, records, guild, action))


# ─── Настройки ────────────────────────────────────────────────────────────────

class PromoteSettingsView(ui.View):
    """Кнопки настройки каналов и доступа"""

    def __init__(self, manager: PromoteManager = promote_manager):
        super().__init__(timeout=300)
        self.manager = manager

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if not self.manager.is_owner(interaction.user.id):
            await interaction.response.send_message("❌ Настройки доступны только владельцам бота", ephemeral=True)
            return False
        return True

    @ui.button(label="Канал логов", emoji="📜", style=discord.ButtonStyle.secondary,
               custom_id="promote_setup_log_channel")
    async def log_channel_button(self, interaction: discord.Interaction, button: ui.Button):
        await interaction.response.send_message(
            "📜 Выберите канал логов:", view=ChannelPickView(self.manager, "log_channel"), ephemeral=True
        )

    @ui.button(label="Канал меню", emoji="📋", style=discord.ButtonStyle.secondary,
               custom_id="promote_setup_menu_channel")
    async def menu_channel_button(self, interaction: discord.Interaction, button: ui.Button):
        await interaction.response.send_message(
            "📋 Выберите канал для панели:", view=ChannelPickView(self.manager, "menu_channel"), ephemeral=True
        )

    @ui.button(label="Доступ", emoji="🔐", style=discord.ButtonStyle.primary,
               custom_id="promote_setup_permission")
    async def permission_button(self, interaction: discord.Interaction, button: ui.Button):
        await interaction.response.send_message(
            "🔐 Кто может пользоваться системой?", view=PermissionTypeView(self.manager), ephemeral=True
        )


class SettingsChannelSelect(ui.ChannelSelect):
    def __init__(self, manager: PromoteManager, key: str):
        self.manager = manager
        self.key = key
        super().__init__(placeholder="Выберите канал...", channel_types=[discord.ChannelType.text],
                         min_values=1, max_values=1)

    async def callback(self, interaction: discord.Interaction):
        try:
            channel = self.values[0]
            self.manager.update_settings(interaction.guild.id, **{self.key: channel.id})
            if self.key == "menu_channel":
                target = interaction.guild.get_channel(channel.id)
                if target is not None:
                    await target.send(embed=create_panel_embed(), view=PromotePanelView(self.manager))
            await interaction.response.send_message(f"✅ Канал сохранён: {channel.mention}", ephemeral=True)
        except discord.Forbidden:
            await safe_error_reply(interaction, "❌ У бота нет доступа к выбранному каналу")
        except Exception as e:
            logger.error(f"❌ Ошибка сохранения канала {self.key}: {e}", exc_info=True)
            await safe_error_reply(interaction)


class ChannelPickView(ui.View):
    def __init__(self, manager: PromoteManager, key: str):
        super().__init__(timeout=300)
        self.add_item(SettingsChannelSelect(manager, key))


class PermissionTypeSelect(ui.Select):
    def __init__(self, manager: PromoteManager):
        self.manager = manager
        options = [
            discord.SelectOption(label="Только владельцы", value="owners", emoji="👑"),
            discord.SelectOption(label="Роли", value="roles", emoji="🏷️"),
            discord.SelectOption(label="Ответственности", value="responsibility", emoji="📌"),
        ]
        super().__init__(placeholder="Тип доступа...", options=options)

    async def callback(self, interaction: discord.Interaction):
        choice = self.values[0]
        if choice == "owners":
            self.manager.update_settings(interaction.guild.id,
                                         allowed_users={"type": "owners", "targets": []})
            await interaction.response.send_message("✅ Доступ: только владельцы", ephemeral=True)
        elif choice == "roles":
            view = ui.View(timeout=300)
            view.add_item(PermissionRoleSelect(self.manager))
            await interaction.response.send_message("🏷️ Выберите роли:", view=view, ephemeral=True)
        else:
            names = self.manager.registry.names()
            if not names:
                await interaction.response.send_message("❌ Ответственности ещё не созданы", ephemeral=True)
                return
            view = ui.View(timeout=300)
            view.add_item(PermissionResponsibilitySelect(self.manager, names))
            await interaction.response.send_message("📌 Выберите ответственности:", view=view, ephemeral=True)


class PermissionTypeView(ui.View):
    def __init__(self, manager: PromoteManager):
        super().__init__(timeout=300)
        self.add_item(PermissionTypeSelect(manager))


class PermissionRoleSelect(ui.RoleSelect):
    def __init__(self, manager: PromoteManager):
        self.manager = manager
        super().__init__(placeholder="Роли с доступом...", min_values=1, max_values=10)

    async def callback(self, interaction: discord.Interaction):
        targets = [role.id for role in self.values]
        self.manager.update_settings(interaction.guild.id, allowed_users={"type": "roles", "targets": targets})
        await interaction.response.send_message(
            f"✅ Доступ выдан ролям: {', '.join(r.mention for r in self.values)}", ephemeral=True
        )


class PermissionResponsibilitySelect(ui.Select):
    def __init__(self, manager: PromoteManager, names: List[str]):
        self.manager = manager
        options = [discord.SelectOption(label=name[:100], value=name) for name in names[:25]]
        super().__init__(placeholder="Ответственности...", options=options,
                         min_values=1, max_values=len(options))

    async def callback(self, interaction: discord.Interaction):
        self.manager.update_settings(interaction.guild.id,
                                     allowed_users={"type": "responsibility", "targets": list(self.values)})
        await interaction.response.send_message(
            f"✅ Доступ выдан ответственным: {', '.join(self.values)}", ephemeral=True
        )


# ─── Быстрое повышение / понижение ────────────────────────────────────────────

# Участники, по которым сейчас выполняется быстрое действие
processing_members = set()

RANK_NAME_MAX = 3
UNDO_TIMEOUT = 60


def shortcut_ladder(guild: discord.Guild, admin_role_ids: List[int], kind: str) -> List[discord.Role]:
    """Административные роли типа kind по возрастанию позиции"""
    roles = [guild.get_role(r) for r in admin_role_ids]
    roles = [r for r in roles if r is not None]
    if kind == "rank":
        roles = [r for r in roles if len(r.name) <= RANK_NAME_MAX]
    else:
        roles = [r for r in roles if len(r.name) > RANK_NAME_MAX]
    return sorted(roles, key=lambda r: r.position)


def plan_move(ladder: List[discord.Role], member_role_ids, direction: str, level: int):
    """Вернуть (текущая роль, новая роль) для сдвига по лестнице. None означает отсутствие роли"""
    held = [i for i, role in enumerate(ladder) if role.id in member_role_ids]
    current_index = max(held) if held else None
    current = ladder[current_index] if current_index is not None else None

    if direction == "up":
        new_index = level - 1 if current_index is None else current_index + level
        new_index = min(new_index, len(ladder) - 1)
    else:
        if current_index is None:
            return current, current
        new_index = current_index - level
        if new_index < 0:
            return current, None
    return current, ladder[new_index]


async def shortcut_stats_embed(targets: List[discord.Member], admin_role_ids: List[int],
                               manager: PromoteManager) -> discord.Embed:
    embed = discord.Embed(title="⚡ Быстрое повышение / понижение", color=discord.Color.blurple())
    admin_ids = set(admin_role_ids)
    for member in targets[:10]:
        stats = await manager.stats_provider(member.id)
        admin_held = [r for r in member.roles if r.id in admin_ids]
        top = max(admin_held, key=lambda r: r.position).mention if admin_held else "нет"
        embed.add_field(
            name=member.display_name,
            value=f"🏷️ {top}\n💬 {stats.get('total_messages', 0)} | "
                  f"🎙️ {format_duration(stats.get('total_voice_time', 0))} | "
                  f"📅 {stats.get('active_days', 0)} дн.",
            inline=False
        )
    return embed


class ShortcutView(ui.View):
    """Вверх/вниз для выбранных администраторов"""

    def __init__(self, manager: PromoteManager, author_id: int, targets: List[discord.Member]):
        super().__init__(timeout=180)
        self.manager = manager
        self.author_id = author_id
        self.targets = targets
        self.direction: Optional[str] = None
        self.kind: Optional[str] = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.author_id:
            await interaction.response.send_message("❌ Это меню не для вас", ephemeral=True)
            return False
        return True

    async def _ask_kind(self, interaction: discord.Interaction, direction: str):
        self.direction = direction
        self.clear_items()
        self.add_item(ShortcutKindSelect(self))
        await interaction.response.edit_message(view=self)

    @ui.button(label="Вверх", emoji="🔼", style=discord.ButtonStyle.success)
    async def up_button(self, interaction: discord.Interaction, button: ui.Button):
        await self._ask_kind(interaction, "up")

    @ui.button(label="Вниз", emoji="🔽", style=discord.ButtonStyle.danger)
    async def down_button(self, interaction: discord.Interaction, button: ui.Button):
        await self._ask_kind(interaction, "down")

    def show_levels(self):
        self.clear_items()
        for level in range(1, 6):
            button = ui.Button(label=str(level), style=discord.ButtonStyle.primary)
            button.callback = self._make_level_callback(level)
            self.add_item(button)

    def _make_level_callback(self, level: int):
        async def callback(interaction: discord.Interaction):
            try:
                await self.execute(interaction, level)
            except Exception as e:
                logger.error(f"❌ Ошибка быстрого действия: {e}", exc_info=True)
                await safe_error_reply(interaction)
        return callback

    async def execute(self, interaction: discord.Interaction, level: int):
        await interaction.response.defer()
        guild = interaction.guild
        ladder = shortcut_ladder(guild, self.manager.get_admin_roles(guild.id), self.kind)
        if not ladder:
            await interaction.followup.send("❌ Нет подходящих административных ролей", ephemeral=True)
            return

        changes: List[Dict] = []
        lines: List[str] = []
        for member in self.targets:
            if member.id in processing_members:
                lines.append(f"⏳ {member.mention}: уже обрабатывается")
                continue
            processing_members.add(member.id)
            try:
                change = await apply_shortcut_move(self.manager, guild, member, ladder,
                                                   self.direction, level, interaction.user.id)
            finally:
                processing_members.discard(member.id)
            lines.append(change["line"])
            if change.get("ok"):
                changes.append(change)

        action = "SHORTCUT_UP" if self.direction == "up" else "SHORTCUT_DOWN"
        if changes:
            self.manager.log_action(action, {
                "by_user_id": interaction.user.id,
                "guild_id": guild.id,
                "level": level,
                "targets": [c["user_id"] for c in changes],
            })
            await self.manager.send_log_message(guild, create_log_embed(action, [
                ("👮 Выполнил", interaction.user.mention, True),
                ("🔢 Уровней", str(level), True),
                ("📋 Итог", "\n".join(lines)[:1024], False),
            ]))

        self.clear_items()
        if changes:
            self.add_item(UndoShortcutButton(self.manager, changes, self.author_id))
            self.timeout = UNDO_TIMEOUT
        embed = discord.Embed(title="⚡ Результат", description="\n".join(lines) or "Нет изменений",
                              color=discord.Color.green() if changes else discord.Color.red())
        await interaction.edit_original_response(embed=embed, view=self)


class ShortcutKindSelect(ui.Select):
    def __init__(self, parent: ShortcutView):
        self.parent_view = parent
        options = [
            discord.SelectOption(label="Ранговые роли", value="rank", emoji="🎖️"),
            discord.SelectOption(label="Визуальные роли", value="visual", emoji="🎨"),
        ]
        super().__init__(placeholder="Тип ролей...", options=options)

    async def callback(self, interaction: discord.Interaction):
        self.parent_view.kind = self.values[0]
        self.parent_view.show_levels()
        await interaction.response.edit_message(view=self.parent_view)


async def apply_shortcut_move(manager: PromoteManager, guild: discord.Guild, member: discord.Member,
                              ladder: List[discord.Role], direction: str, level: int, by_user_id: int) -> Dict:
    """Сдвинуть участника по лестнице ролей. Возвращает описание изменения для отмены"""
    member_role_ids = {r.id for r in member.roles}
    admin_before = [r for r in member.roles if manager.is_admin_role(guild.id, r.id)]
    current, new_role = plan_move(ladder, member_role_ids, direction, level)
    change = {"user_id": member.id, "added": None, "removed": [], "promote_id": None, "ok": False}

    if current is not None and new_role is not None and current.id == new_role.id:
        change["line"] = f"➖ {member.mention}: уже на крайней роли"
        return change

    if new_role is None:
        if current is None:
            change["line"] = f"➖ {member.mention}: нет ролей этого типа"
            return change
        manager.add_to_ignore(member.id, current.id)
        try:
            await member.remove_roles(current, reason="Быстрое понижение")
        except (discord.Forbidden, discord.HTTPException) as e:
            change["line"] = f"❌ {member.mention}: {e}"
            return change
        for record in manager.get_user_promotes(member.id, guild.id):
            if record["role_id"] == current.id:
                manager.delete_promotion_record(record["id"])
        change.update(ok=True, removed=[current.id], line=f"🔽 {member.mention}: снята {current.mention}")
        await manager.send_dm(member, create_dm_embed(
            "🔽 Понижение", f"С вас снята роль **{current.name}** на сервере **{guild.name}**",
            color=discord.Color.red(), guild=guild))
        return change

    word = "ترقية" if direction == "up" else "تخفيض"
    result = await manager.create_promotion(guild, member.id, new_role.id, "نهائي",
                                            f"{word} سريعة ({level})", by_user_id,
                                            is_multi=False, send_dm=False)
    if not result:
        change["line"] = f"❌ {member.mention}: {result.error}"
        return change

    removed_names = set(result.data.get("removed_old_roles") or [])
    change.update(
        ok=True,
        added=new_role.id,
        promote_id=result.data["promote_id"],
        removed=[r.id for r in admin_before if r.name in removed_names],
    )
    arrow = "🔼" if direction == "up" else "🔽"
    change["line"] = f"{arrow} {member.mention}: {current.mention if current else 'нет'} → {new_role.mention}"
    await manager.send_dm(member, create_dm_embed(
        f"{arrow} Изменение роли",
        f"Ваша роль на сервере **{guild.name}** изменена на **{new_role.name}**",
        color=discord.Color.green() if direction == "up" else discord.Color.red(), guild=guild))
    return change


class UndoShortcutButton(ui.Button):
    """Отмена быстрого действия в течение минуты"""

    def __init__(self, manager: PromoteManager, changes: List[Dict], author_id: int):
        super().__init__(label="Отменить", emoji="↩️", style=discord.ButtonStyle.secondary)
        self.manager = manager
        self.changes = changes
        self.author_id = author_id
        self.created_at = now_ms()

    async def callback(self, interaction: discord.Interaction):
        if now_ms() - self.created_at > UNDO_TIMEOUT * 1000:
            await interaction.response.send_message("❌ Время отмены истекло", ephemeral=True)
            return
        await interaction.response.defer()
        guild = interaction.guild
        restored = 0
        for change in self.changes:
            member = await PromoteManager.resolve_member(guild, change["user_id"])
            if member is None:
                continue
            try:
                if change["added"]:
                    role = guild.get_role(change["added"])
                    if role is not None:
                        self.manager.add_to_ignore(member.id, role.id)
                        await member.remove_roles(role, reason="Отмена быстрого действия")
                if change["promote_id"]:
                    self.manager.delete_promotion_record(change["promote_id"])
                roles_back = [guild.get_role(r) for r in change["removed"]]
                roles_back = [r for r in roles_back if r is not None]
                if roles_back:
                    await member.add_roles(*roles_back, reason="Отмена быстрого действия")
                restored += 1
            except (discord.Forbidden, discord.HTTPException) as e:
                logger.warning(f"⚠️ Не удалось отменить изменение для {member.id}: {e}")

        self.view.clear_items()
        self.view.stop()
        await interaction.edit_original_response(
            embed=discord.Embed(title="↩️ Отменено", description=f"Восстановлено участников: {restored}",
                                color=discord.Color.greyple()),
            view=None
        )
