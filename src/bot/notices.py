"""
User-facing text and small helpers for short-lived Discord notices.

Every helper here is best-effort: Discord errors are logged, never raised.
"""

import asyncio
from typing import Any, List, Optional

import discord

from src.config.logging_config import get_logger

logger = get_logger(__name__)

PANEL_HEADER = "**Steeped into the voice channel! 🍵 Choose your brew of action:**"
PANEL_SERVED = "🍵 Your message has been served! Enjoy! 🍵"
GOODBYE = "Peace ✌️."
NOT_IN_VOICE = "I am not in a voice channel!"
JOIN_VOICE_FIRST = "⛑️ You need to be in a voice channel to use this ⛑️."
DM_LOADING = "🍵 Brewing your perfect cup of tea..."
NO_RECORDING = "🚫 Nothing to replay yet, ask me something first!"
REPLAYING = "🔁 Replaying the last reply."
INVALID_OPTION = "🚫 That option isn't on the menu."
GENERIC_ERROR = "⛑️ There was an error while handling this interaction!"

GOODBYE_DELETE_AFTER_S = 5.0

DISCORD_MESSAGE_LIMIT = 2000


def panel_content(served: bool = False) -> str:
    if served:
        return f"{PANEL_HEADER}\n\n{PANEL_SERVED}"
    return PANEL_HEADER


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """Split text into Discord-sized parts, preferring line breaks."""
    parts = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        parts.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        parts.append(remaining)
    return parts


async def respond(
    interaction: discord.Interaction,
    content: str,
    ephemeral: bool = True,
    delete_after: Optional[float] = None,
) -> None:
    """Answer an interaction whether or not it was already acknowledged."""
    try:
        if interaction.response.is_done():
            await interaction.edit_original_response(content=content)
        else:
            await interaction.response.send_message(content, ephemeral=ephemeral, delete_after=delete_after)
    except discord.HTTPException as e:
        logger.error(f"⛑️ Failed to respond to interaction: {e}")


async def send_timed(channel: Any, content: str, delete_after: float) -> Optional[discord.Message]:
    """Post a channel message that removes itself after `delete_after` seconds."""
    try:
        return await channel.send(content, delete_after=delete_after)
    except discord.HTTPException as e:
        logger.error(f"⛑️ Failed to send notice: {e}")
        return None


async def expire_response(interaction: discord.Interaction, delay: float) -> None:
    """Delete the interaction's original response after `delay` seconds."""
    await asyncio.sleep(delay)
    try:
        await interaction.delete_original_response()
    except discord.NotFound:
        logger.debug("🔍 Response already deleted")
    except discord.HTTPException as e:
        logger.warning(f"⚠️ Failed to delete response: {e}")
