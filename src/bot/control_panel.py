"""
Control Panel

The per-guild message posted when the bot joins a voice channel:

    Row 0: [Ask <persona>] [Replay Last Reply] [Close]
    Row 1: one button per persona (custom id "persona:<key>")
    Row 2: voice select
    Row 3: persona select
    Row 4: language select

Selecting a value updates the GuildSession and re-renders the panel in place.
"""

from typing import Any, Callable, Optional

import discord

from src.bot import actions, notices
from src.bot.context import BotContext
from src.config.logging_config import get_logger
from src.services.session_state import GuildSession

logger = get_logger(__name__)

PANEL_COLOR = 0x00AE86
PERSONA_BUTTON_PREFIX = "persona:"
ASK_MODAL_ID = "ask_modal"


def build_panel_embed(session: GuildSession) -> discord.Embed:
    catalogs = session.catalogs
    embed = discord.Embed(
        title="Control Panel",
        description="Ask me something, don't be scared",
        color=PANEL_COLOR,
    )
    embed.add_field(name="Assistant", value=session.persona.friendly_name, inline=True)
    embed.add_field(name="Voice", value=catalogs.voices[session.voice], inline=True)
    embed.add_field(name="Language", value=session.language_name, inline=True)
    return embed


async def rerender(interaction: discord.Interaction, context: BotContext, session: GuildSession) -> None:
    """Redraw the panel the interaction came from with the current selections."""
    await interaction.response.edit_message(
        embed=build_panel_embed(session),
        view=ControlPanelView(context, session),
    )


async def show_control_panel(channel: Any, context: BotContext, session: GuildSession) -> Optional[discord.Message]:
    """Post a fresh panel in `channel`, replacing the guild's previous one."""
    await session.clear_control_panel()

    try:
        message = await channel.send(
            content=notices.panel_content(),
            embed=build_panel_embed(session),
            view=ControlPanelView(context, session),
        )
    except discord.HTTPException as e:
        logger.error(f"⛑️ Failed to send control panel: {e}")
        return None

    session.control_panel_message = message
    logger.info(f"🥝 Control Panel MessageID updated to: {message.id}")
    return message


class AskModal(discord.ui.Modal):
    """Paragraph prompt that starts a spoken turn on submit."""

    def __init__(self, context: BotContext, friendly_name: str):
        super().__init__(title=f"Ask {friendly_name}"[:45], custom_id=ASK_MODAL_ID)
        self.context = context
        self.question = discord.ui.TextInput(
            label=f"What do you want to ask {friendly_name}?"[:45],
            style=discord.TextStyle.paragraph,
            custom_id="question",
            max_length=4000,
        )
        self.add_item(self.question)
        logger.info(f"🥝 Creating Ask {friendly_name} modal")

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await actions.speak(interaction, self.context, self.question.value)

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        logger.error(f"⛑️ Error handling modal submit interaction: {error}", exc_info=error)
        await notices.respond(interaction, notices.GENERIC_ERROR)


class CatalogSelect(discord.ui.Select):
    """Select menu over one catalog, applied through a session setter."""

    def __init__(
        self,
        custom_id: str,
        label: str,
        options: list,
        current: str,
        setter: Callable[[str], bool],
        row: int,
    ):
        super().__init__(
            custom_id=custom_id,
            placeholder=f"{label} - {current}",
            options=options,
            min_values=1,
            max_values=1,
            row=row,
        )
        self.setter = setter

    async def callback(self, interaction: discord.Interaction) -> None:
        view: ControlPanelView = self.view
        value = self.values[0]
        logger.info(f"🥝 Select menu interaction received: {self.custom_id}={value}")

        if not self.setter(value):
            await notices.respond(interaction, notices.INVALID_OPTION)
            return
        await rerender(interaction, view.context, view.session)


class PersonaButton(discord.ui.Button):
    def __init__(self, key: str, friendly_name: str, selected: bool):
        super().__init__(
            label=friendly_name,
            style=discord.ButtonStyle.success if selected else discord.ButtonStyle.secondary,
            custom_id=f"{PERSONA_BUTTON_PREFIX}{key}",
            row=1,
        )
        self.key = key

    async def callback(self, interaction: discord.Interaction) -> None:
        view: ControlPanelView = self.view
        if not view.session.set_persona(self.key):
            await notices.respond(interaction, notices.INVALID_OPTION)
            return
        await rerender(interaction, view.context, view.session)


class ControlPanelView(discord.ui.View):
    """Buttons and selects of one guild's control panel."""

    def __init__(self, context: BotContext, session: GuildSession):
        super().__init__(timeout=None)
        self.context = context
        self.session = session

        catalogs = session.catalogs
        persona = session.persona
        self.ask.label = f"Ask {persona.friendly_name}"

        for key, option in catalogs.personas.items():
            self.add_item(PersonaButton(key, option.friendly_name, selected=key == persona.key))

        self.add_item(CatalogSelect(
            custom_id="voice",
            label="Voice",
            options=[
                discord.SelectOption(label=name, value=voice, default=voice == session.voice)
                for voice, name in catalogs.voices.items()
            ],
            current=catalogs.voices[session.voice],
            setter=session.set_voice,
            row=2,
        ))
        self.add_item(CatalogSelect(
            custom_id="persona",
            label="Assistant",
            options=[
                discord.SelectOption(label=option.friendly_name, value=key, default=key == persona.key)
                for key, option in catalogs.personas.items()
            ],
            current=persona.friendly_name,
            setter=session.set_persona,
            row=3,
        ))
        self.add_item(CatalogSelect(
            custom_id="language",
            label="Language",
            options=[
                discord.SelectOption(label=name, value=code, default=code == session.language)
                for code, name in catalogs.languages.items()
            ],
            current=session.language_name,
            setter=session.set_language,
            row=4,
        ))

    @discord.ui.button(label="Ask", style=discord.ButtonStyle.success, custom_id="ask", row=0)
    async def ask(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await interaction.response.send_modal(AskModal(self.context, self.session.persona.friendly_name))

    @discord.ui.button(label="Replay Last Reply", style=discord.ButtonStyle.primary, custom_id="replay", row=0)
    async def replay(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await actions.replay_last(interaction, self.context)

    @discord.ui.button(label="Close", style=discord.ButtonStyle.danger, custom_id="close", row=0)
    async def close(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        logger.info("🥝 Close button interaction received")
        await actions.leave(interaction, self.context)

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item) -> None:
        logger.error(f"⛑️ Error handling {item.custom_id} interaction: {error}", exc_info=error)
        await notices.respond(interaction, notices.GENERIC_ERROR)
