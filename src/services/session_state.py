"""
Guild Session State

One GuildSession per Discord guild holds everything the control panel can
change plus the live voice resources:
- selected persona / voice / language (always catalog values)
- the control-panel message currently on screen
- the voice connection and its inactivity timer

Sessions are shared by every interaction in the guild. Reads and writes are
plain attribute access on the event loop thread; concurrent turns see each
other's selections (last writer wins).
"""

import asyncio
import os
from typing import Any, Dict, Iterator, Optional

import discord

from src.config.catalog import Catalogs, Persona, get_catalogs
from src.config.logging_config import get_logger
from src.config.settings import get_settings

logger = get_logger(__name__)

RECORDING_FILENAME = "last_reply.opus"


class GuildSession:
    """
    Mutable per-guild session.

    Usage:
        session = GuildSession(guild_id=1234)
        session.set_voice("nova")
        voice_client = await session.join_voice(member.voice.channel)
        ...
        await session.disconnect()
    """

    def __init__(
        self,
        guild_id: int,
        catalogs: Optional[Catalogs] = None,
        inactivity_timeout_s: Optional[float] = None,
        audio_dir: Optional[str] = None,
    ):
        settings = get_settings()

        self.guild_id = guild_id
        self.catalogs = catalogs or get_catalogs()
        self.inactivity_timeout = inactivity_timeout_s or settings.inactivity_timeout_s
        self.audio_dir = audio_dir or settings.audio_dir

        self._persona_key = self.catalogs.personas.default
        self._voice = self.catalogs.voices.default
        self._language = self.catalogs.languages.default

        # Opaque reference to the displayed panel (anything with edit()/delete())
        self.control_panel_message: Optional[Any] = None

        self.voice_client: Optional[Any] = None
        self._inactivity_task: Optional[asyncio.Task] = None

    # Selections

    @property
    def persona_key(self) -> str:
        return self._persona_key

    @property
    def persona(self) -> Persona:
        return self.catalogs.personas[self._persona_key]

    @property
    def voice(self) -> str:
        return self._voice

    @property
    def language(self) -> str:
        return self._language

    @property
    def language_name(self) -> str:
        return self.catalogs.languages[self._language]

    def set_persona(self, key: str) -> bool:
        if key not in self.catalogs.personas:
            logger.warning(f"⚠️ Rejected unknown assistant '{key}' for guild {self.guild_id}")
            return False
        self._persona_key = key
        logger.info(f"🥝 Selected assistant updated to: {key}")
        return True

    def set_voice(self, voice: str) -> bool:
        if voice not in self.catalogs.voices:
            logger.warning(f"⚠️ Rejected unknown voice '{voice}' for guild {self.guild_id}")
            return False
        self._voice = voice
        logger.info(f"🥝 Selected voice updated to: {voice}")
        return True

    def set_language(self, language: str) -> bool:
        if language not in self.catalogs.languages:
            logger.warning(f"⚠️ Rejected unknown language '{language}' for guild {self.guild_id}")
            return False
        self._language = language
        logger.info(f"🥝 Selected language updated to: {language}")
        return True

    def reset_to_defaults(self) -> None:
        self._persona_key = self.catalogs.personas.default
        self._voice = self.catalogs.voices.default
        self._language = self.catalogs.languages.default
        logger.info(
            f"🥝 Guild {self.guild_id} reset to defaults "
            f"(assistant={self._persona_key}, voice={self._voice}, language={self._language})"
        )

    @property
    def recording_path(self) -> str:
        """Durable copy of this guild's latest spoken reply."""
        return os.path.join(self.audio_dir, str(self.guild_id), RECORDING_FILENAME)

    # Voice connection

    def is_connected(self) -> bool:
        return self.voice_client is not None and self.voice_client.is_connected()

    async def join_voice(self, channel: Any) -> Any:
        """
        Connect to `channel`, reusing the guild's existing connection.

        An existing connection in another channel of the same guild is moved
        rather than replaced.
        """
        voice_client = self.voice_client
        if voice_client is None or not voice_client.is_connected():
            voice_client = getattr(channel.guild, "voice_client", None)

        if voice_client is not None and voice_client.is_connected():
            if voice_client.channel is None or voice_client.channel.id != channel.id:
                logger.info(f"🔀 Moving voice connection to channel {channel.id} in guild {self.guild_id}")
                await voice_client.move_to(channel)
            else:
                logger.debug(f"🔁 Reusing voice connection in channel {channel.id}")
        else:
            logger.info(f"📞 Joining voice channel {channel.id} in guild {self.guild_id}")
            voice_client = await channel.connect()

        self.voice_client = voice_client
        self.notify_playback_idle()
        return voice_client

    async def disconnect(self) -> bool:
        """
        Leave voice and clear the session.

        Safe to call repeatedly. Without a connection it only removes a stale
        control panel. Returns whether a connection was torn down.
        """
        self._cancel_inactivity_timer()

        voice_client, self.voice_client = self.voice_client, None
        connected = voice_client is not None

        if voice_client is not None:
            try:
                await voice_client.disconnect(force=True)
                logger.info(f"👋 Disconnected from voice in guild {self.guild_id}")
            except (discord.HTTPException, discord.ClientException, asyncio.TimeoutError) as e:
                logger.error(f"⛑️ Error while disconnecting from voice: {e}", exc_info=True)

        await self.clear_control_panel()

        if connected:
            self.reset_to_defaults()
        else:
            logger.warning(f"⚠️ Attempted to disconnect guild {self.guild_id}, but not in a voice channel.")

        return connected

    async def clear_control_panel(self) -> None:
        """Delete the displayed panel (best-effort) and forget its reference."""
        message, self.control_panel_message = self.control_panel_message, None
        if message is None:
            return

        try:
            await message.delete()
            logger.info("🥝 Control panel message deleted successfully.")
        except discord.NotFound:
            logger.warning("⚠️ Control panel message was already gone (Unknown Message)")
        except discord.HTTPException as e:
            logger.error(f"⛑️ Failed to delete control panel message: {e}")

    # Inactivity

    def notify_playback_idle(self) -> None:
        """Restart the inactivity countdown (called whenever the player goes idle)."""
        self._cancel_inactivity_timer()
        if not self.is_connected():
            return
        self._inactivity_task = asyncio.create_task(self._inactivity_countdown())
        logger.debug(f"⏲️ Inactivity timer reset ({self.inactivity_timeout:.0f}s)")

    @property
    def inactivity_pending(self) -> bool:
        return self._inactivity_task is not None and not self._inactivity_task.done()

    async def _inactivity_countdown(self) -> None:
        await asyncio.sleep(self.inactivity_timeout)
        logger.info(f"💤 No playback for {self.inactivity_timeout:.0f}s in guild {self.guild_id}, leaving voice")
        await self.disconnect()

    def _cancel_inactivity_timer(self) -> None:
        task, self._inactivity_task = self._inactivity_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()


class SessionRegistry:
    """
    Lazily created GuildSession per guild id.

    Usage:
        registry = SessionRegistry()
        session = registry.get(interaction.guild_id)
        ...
        await registry.shutdown()
    """

    def __init__(self, catalogs: Optional[Catalogs] = None, **session_kwargs):
        self.catalogs = catalogs or get_catalogs()
        self._session_kwargs = session_kwargs
        self._sessions: Dict[int, GuildSession] = {}

    def get(self, guild_id: int) -> GuildSession:
        session = self._sessions.get(guild_id)
        if session is None:
            session = GuildSession(guild_id, catalogs=self.catalogs, **self._session_kwargs)
            self._sessions[guild_id] = session
            logger.debug(f"🆕 Created session for guild {guild_id}")
        return session

    def __iter__(self) -> Iterator[GuildSession]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)

    async def shutdown(self) -> None:
        """Disconnect every guild (process exit)."""
        for session in self:
            if session.voice_client is not None or session.control_panel_message is not None:
                await session.disconnect()
        logger.info("🧹 All guild sessions closed")
