"""
Voice actions shared by slash commands, the control panel and message events.

There is one implementation of each: joining the caller's channel, speaking a
turn, replaying the last reply, playing the greeting and leaving.
"""

import asyncio
from typing import Any, Optional

import discord

from src.bot import notices
from src.bot.context import BotContext
from src.bot.turn_reporter import InteractionReporter
from src.config.logging_config import get_logger
from src.services.audio_delivery import FileSink
from src.services.session_state import GuildSession
from src.services.turn_orchestrator import Turn
from src.types.error_events import TurnErrorEvent
from src.types.errors import NotFound, PlaybackError

logger = get_logger(__name__)


def member_voice_channel(member: Any) -> Optional[Any]:
    voice_state = getattr(member, "voice", None)
    return voice_state.channel if voice_state is not None else None


async def join_member_channel(context: BotContext, member: Any) -> Optional[GuildSession]:
    """
    Connect the member's guild session to the member's voice channel.

    Returns:
        The session, or None if the member is not in a voice channel

    Raises:
        PlaybackError: The voice connection could not be established
    """
    channel = member_voice_channel(member)
    if channel is None:
        return None

    session = context.session_for(channel.guild.id)
    try:
        await session.join_voice(channel)
    except (discord.ClientException, discord.HTTPException, asyncio.TimeoutError) as e:
        logger.error(f"⛑️ Could not join voice channel {channel.id}: {e}", exc_info=True)
        raise PlaybackError(f"Could not join voice channel: {e}") from e

    logger.info(f"🥝 Joined voice channel {channel.name} for {member.name}")
    return session


async def play_greeting(context: BotContext, session: GuildSession) -> None:
    """Play the greeting clip when one is configured (best-effort)."""
    clip = context.settings.greeting_clip
    if not clip:
        return

    try:
        await context.delivery.play_file(clip, session.voice_client)
    except NotFound:
        logger.warning(f"⚠️ Greeting clip not found: {clip}")
    except PlaybackError as e:
        logger.error(f"⛑️ Error playing greeting: {e}")
    finally:
        session.notify_playback_idle()


async def speak(interaction: discord.Interaction, context: BotContext, text: str) -> Optional[Turn]:
    """Run a spoken turn for the interaction's user in their voice channel."""
    if not interaction.response.is_done():
        await interaction.response.defer(ephemeral=True, thinking=True)

    try:
        session = await join_member_channel(context, interaction.user)
    except PlaybackError as e:
        event = TurnErrorEvent.from_error(e, user_id=str(interaction.user.id))
        await notices.respond(interaction, event.user_message)
        return None

    if session is None:
        await notices.respond(interaction, notices.JOIN_VOICE_FIRST)
        return None

    reporter = InteractionReporter(interaction, session)
    return await context.orchestrator.run_turn(
        session,
        user_id=str(interaction.user.id),
        address_as=interaction.user.name,
        text=text,
        reporter=reporter,
    )


async def replay_last(interaction: discord.Interaction, context: BotContext) -> bool:
    """Replay the guild's last spoken reply."""
    await interaction.response.defer(ephemeral=True, thinking=True)

    session = context.session_for(interaction.guild_id)
    sink = FileSink(session.recording_path)

    try:
        await context.delivery.replay(sink, session.voice_client)
    except NotFound:
        logger.warning(f"⚠️ Replay requested in guild {interaction.guild_id} without a recording")
        await notices.respond(interaction, notices.NO_RECORDING)
        return False
    except PlaybackError as e:
        event = TurnErrorEvent.from_error(e, user_id=str(interaction.user.id))
        await notices.respond(interaction, event.user_message)
        return False

    session.notify_playback_idle()
    await notices.respond(interaction, notices.REPLAYING)
    logger.info("🥝 Last reply replayed successfully.")
    return True


async def leave(interaction: discord.Interaction, context: BotContext) -> bool:
    """Disconnect the guild session and say goodbye (auto-deleted)."""
    session = context.session_for(interaction.guild_id)
    was_connected = await session.disconnect()

    content = notices.GOODBYE if was_connected else notices.NOT_IN_VOICE
    await notices.respond(
        interaction,
        content,
        ephemeral=False,
        delete_after=notices.GOODBYE_DELETE_AFTER_S,
    )
    return was_connected
