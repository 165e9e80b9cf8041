"""
Slash commands, context menus and message triggers.

    /ricktea channel action:(join|leave)
    /ricktea say text
    /ricktea clean number
    /ricktea ping
    User context menus: "Summon Ricktea", "Ask Ricktea"
    Mention-only message → summon with greeting
    Direct message → text-only turn
"""

from datetime import timedelta
from typing import Any, List, Optional

import discord
from discord import app_commands

from src.bot import actions, notices
from src.bot.context import BotContext
from src.bot.control_panel import AskModal, show_control_panel
from src.bot.turn_reporter import MessageReporter
from src.config.logging_config import get_logger
from src.services.session_state import GuildSession
from src.services.turn_orchestrator import Turn
from src.types.error_events import TurnErrorEvent
from src.types.errors import PlaybackError

logger = get_logger(__name__)

# Discord refuses bulk deletion of older messages
BULK_DELETE_MAX_AGE = timedelta(days=14)


async def summon(context: BotContext, member: Any, channel: Any) -> Optional[GuildSession]:
    """Join the member's voice channel and post the control panel in `channel`."""
    session = await actions.join_member_channel(context, member)
    if session is None:
        return None
    await show_control_panel(channel, context, session)
    return session


# Handlers

async def handle_join(interaction: discord.Interaction, context: BotContext) -> None:
    if actions.member_voice_channel(interaction.user) is None:
        await notices.respond(interaction, notices.JOIN_VOICE_FIRST, delete_after=context.settings.notice_delete_after_s)
        return

    await interaction.response.defer(ephemeral=True, thinking=True)
    try:
        session = await summon(context, interaction.user, interaction.channel)
    except PlaybackError as e:
        event = TurnErrorEvent.from_error(e, user_id=str(interaction.user.id))
        await notices.respond(interaction, event.user_message)
        return

    await notices.respond(interaction, "🍵 Steeped into the voice channel!")
    if session is not None:
        await actions.play_greeting(context, session)


async def handle_channel(interaction: discord.Interaction, context: BotContext, action: str) -> None:
    if action == "join":
        await handle_join(interaction, context)
    elif action == "leave":
        await actions.leave(interaction, context)
    else:
        await notices.respond(interaction, "Invalid action. Use join or leave.")


async def handle_say(interaction: discord.Interaction, context: BotContext, text: str) -> Optional[Turn]:
    if not text.strip():
        await notices.respond(interaction, "🚫 Give me something to say.", delete_after=context.settings.notice_delete_after_s)
        return None
    return await actions.speak(interaction, context, text)


async def handle_clean(interaction: discord.Interaction, context: BotContext, number: int) -> int:
    """Bulk-delete up to `number` recent channel messages."""
    if number <= 0:
        await notices.respond(interaction, "Please provide a number greater than 0.", delete_after=notices.GOODBYE_DELETE_AFTER_S)
        return 0

    await interaction.response.defer(ephemeral=True, thinking=True)
    cutoff = discord.utils.utcnow() - BULK_DELETE_MAX_AGE

    try:
        deleted = await interaction.channel.purge(limit=number, check=lambda m: m.created_at > cutoff)
    except discord.HTTPException as e:
        logger.error(f"⛑️ Failed to delete messages: {e}")
        await notices.respond(interaction, "Failed to delete messages. Please try again.")
        await notices.expire_response(interaction, notices.GOODBYE_DELETE_AFTER_S)
        return 0

    logger.info(f"🥝 Deleted {len(deleted)} messages.")
    await notices.respond(interaction, f"Successfully deleted {len(deleted)} messages.")
    await notices.expire_response(interaction, notices.GOODBYE_DELETE_AFTER_S)
    return len(deleted)


async def handle_ping(interaction: discord.Interaction) -> float:
    await interaction.response.send_message("Pinging...", ephemeral=True)
    sent = await interaction.original_response()
    latency_ms = (sent.created_at - interaction.created_at).total_seconds() * 1000

    logger.info(f"🥝 Roundtrip latency: {latency_ms:.0f}ms")
    await interaction.edit_original_response(content=f"Roundtrip latency: {latency_ms:.0f}ms")
    return latency_ms


async def handle_summon(interaction: discord.Interaction, context: BotContext) -> None:
    """Context menu "Summon Ricktea": same as /ricktea channel join."""
    await handle_join(interaction, context)


async def handle_ask(interaction: discord.Interaction, context: BotContext) -> None:
    """Context menu "Ask Ricktea": open the question modal."""
    session = context.session_for(interaction.guild_id)
    await interaction.response.send_modal(AskModal(context, session.persona.friendly_name))


async def handle_mention(message: discord.Message, context: BotContext) -> Optional[GuildSession]:
    logger.info(f"🥝 Mentioned in guild channel: {message.guild.name}")
    try:
        session = await summon(context, message.author, message.channel)
    except PlaybackError as e:
        await notices.send_timed(message.channel, TurnErrorEvent.from_error(e).user_message, context.settings.notice_delete_after_s)
        return None

    if session is None:
        await notices.send_timed(message.channel, notices.JOIN_VOICE_FIRST, context.settings.notice_delete_after_s)
        return None

    await actions.play_greeting(context, session)
    return session


async def handle_direct_message(message: discord.Message, context: BotContext) -> Optional[Turn]:
    text = message.content.strip()
    if not text:
        return None

    logger.info(f"🥝 Processing DM from {message.author.name}")
    try:
        loading_message = await message.channel.send(notices.DM_LOADING)
    except discord.HTTPException as e:
        logger.error(f"⛑️ Could not answer DM from {message.author.name}: {e}")
        return None

    return await context.orchestrator.run_text_turn(
        user_id=str(message.author.id),
        address_as=message.author.name,
        text=text,
        persona=context.direct_message_persona,
        reporter=MessageReporter(loading_message, context.settings.notice_delete_after_s),
    )


def is_bare_mention(message: discord.Message, bot_user: Any) -> bool:
    content = message.content.strip()
    return content in (f"<@{bot_user.id}>", f"<@!{bot_user.id}>")


# Registration

def build_command_group(context: BotContext) -> app_commands.Group:
    group = app_commands.Group(name="ricktea", description="Various RickTea commands", guild_only=True)

    @group.command(name="channel", description="Manage voice channels")
    @app_commands.describe(action="Action to perform on the voice channel")
    @app_commands.choices(action=[
        app_commands.Choice(name="join", value="join"),
        app_commands.Choice(name="leave", value="leave"),
    ])
    async def channel(interaction: discord.Interaction, action: app_commands.Choice[str]):
        await handle_channel(interaction, context, action.value)

    @group.command(name="say", description="Say something and spill the tea 🍵")
    @app_commands.describe(text="Text to say, as refreshing as a cup of tea")
    async def say(interaction: discord.Interaction, text: str):
        await handle_say(interaction, context, text)

    @group.command(name="clean", description="Clean the channel")
    @app_commands.describe(number="Number of messages to delete")
    async def clean(interaction: discord.Interaction, number: int):
        await handle_clean(interaction, context, number)

    @group.command(name="ping", description="Check the bot's latency")
    async def ping(interaction: discord.Interaction):
        await handle_ping(interaction)

    return group


def build_context_menus(context: BotContext) -> List[app_commands.ContextMenu]:
    @app_commands.guild_only()
    async def summon_ricktea(interaction: discord.Interaction, member: discord.Member):
        await handle_summon(interaction, context)

    @app_commands.guild_only()
    async def ask_ricktea(interaction: discord.Interaction, member: discord.Member):
        await handle_ask(interaction, context)

    return [
        app_commands.ContextMenu(name="Summon Ricktea", callback=summon_ricktea),
        app_commands.ContextMenu(name="Ask Ricktea", callback=ask_ricktea),
    ]


def register_commands(tree: app_commands.CommandTree, context: BotContext) -> None:
    tree.add_command(build_command_group(context))
    for menu in build_context_menus(context):
        tree.add_command(menu)
    logger.info("✅ Registered /ricktea commands and context menus")
