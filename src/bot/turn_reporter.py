"""
Turn reporters: render a turn's progress, failure and completion on Discord.

InteractionReporter edits the (ephemeral) deferred response of a slash
command, modal or context-menu invocation. MessageReporter edits a loading
message in a direct-message channel. Discord edit failures surface as
UIUpdateError, which the orchestrator logs without changing the turn.
"""

from typing import Any, Awaitable, Callable

import discord

from src.bot import notices
from src.config.logging_config import get_logger
from src.services.session_state import GuildSession
from src.services.turn_orchestrator import Turn, TurnReporter
from src.types.error_events import TurnErrorEvent
from src.types.errors import UIUpdateError

logger = get_logger(__name__)


async def mark_served(session: GuildSession) -> bool:
    """
    Add the "served" line to the guild's control panel.

    Returns False when there is no panel or it could not be edited; a panel
    deleted behind our back is forgotten.
    """
    message = session.control_panel_message
    if message is None:
        logger.debug("🔍 No control panel to update")
        return False

    try:
        await message.edit(content=notices.panel_content(served=True))
        logger.info("🥝 Control panel message updated successfully.")
        return True
    except discord.NotFound:
        logger.warning("⚠️ Failed to edit control panel message: Unknown Message")
        if session.control_panel_message is message:
            session.control_panel_message = None
    except discord.HTTPException as e:
        logger.error(f"⛑️ Failed to edit control panel message: {e}")
    return False


async def _update(edit: Callable[..., Awaitable[Any]], **kwargs: Any) -> None:
    try:
        await edit(**kwargs)
    except discord.HTTPException as e:
        raise UIUpdateError(f"Could not update status message: {e}") from e


class InteractionReporter(TurnReporter):
    """Reports into an acknowledged interaction's original response."""

    def __init__(self, interaction: discord.Interaction, session: GuildSession):
        self.interaction = interaction
        self.session = session

    async def progress(self, turn: Turn, message: str) -> None:
        await _update(self.interaction.edit_original_response, content=message)

    async def failed(self, turn: Turn, event: TurnErrorEvent) -> None:
        await _update(self.interaction.edit_original_response, content=event.user_message)

    async def completed(self, turn: Turn) -> None:
        await _update(self.interaction.edit_original_response, content="✌️ Done.")
        await mark_served(self.session)


class MessageReporter(TurnReporter):
    """Reports by editing a loading message (direct messages)."""

    def __init__(self, loading_message: Any, notice_delete_after_s: float = 10.0):
        self.loading_message = loading_message
        self.notice_delete_after_s = notice_delete_after_s

    async def progress(self, turn: Turn, message: str) -> None:
        await _update(self.loading_message.edit, content=message)

    async def failed(self, turn: Turn, event: TurnErrorEvent) -> None:
        # Error notices in DMs expire like other timed notices
        await _update(
            self.loading_message.edit,
            content=event.user_message,
            delete_after=self.notice_delete_after_s,
        )

    async def completed(self, turn: Turn) -> None:
        # Replace the loading message with the reply
        parts = notices.split_message(turn.assistant_text or "")
        if not parts:
            return
        await _update(self.loading_message.edit, content=parts[0])
        for part in parts[1:]:
            await self.loading_message.channel.send(part)
