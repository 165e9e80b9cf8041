"""
Bot Settings Module

Process-wide settings loaded from environment variables (and a .env file via
python-dotenv in discord_bot.py) with sensible fallback defaults.

Architecture:
- Environment → BotSettings (validated) → services receive plain values
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class BotSettings:
    """
    Runtime settings for the voice bridge.

    Secrets are optional here so that services and tests can be built without
    a Discord token; discord_bot.py refuses to start without one.
    """

    # Discord
    discord_token: Optional[str] = None
    # Guild to sync slash commands to instantly (global sync when unset)
    discord_guild_id: Optional[int] = None

    # OpenAI (Assistants + speech)
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    tts_model: str = "tts-1"
    openai_timeout_s: float = 60.0

    # Assistant run polling
    run_poll_interval_s: float = 1.0
    # Upper bound on a single run before it is cancelled
    run_timeout_s: float = 120.0

    # Voice session
    inactivity_timeout_s: float = 300.0
    audio_dir: str = "audio_clips"
    greeting_clip: Optional[str] = "audio_clips/greetings/greeting.mp3"

    # Persistence
    database_url: str = "sqlite+aiosqlite:///data/threads.db"

    # How long timed notices stay in the channel
    notice_delete_after_s: float = 10.0

    def validate(self) -> None:
        """Validate configuration values."""
        if self.run_poll_interval_s <= 0:
            raise ValueError("run_poll_interval_s must be positive")
        if self.run_timeout_s < self.run_poll_interval_s:
            raise ValueError("run_timeout_s must be at least run_poll_interval_s")
        if self.inactivity_timeout_s <= 0:
            raise ValueError("inactivity_timeout_s must be positive")
        if self.openai_timeout_s <= 0:
            raise ValueError("openai_timeout_s must be positive")
        if not 0 < self.notice_delete_after_s <= 60:
            raise ValueError("notice_delete_after_s must be between 0 and 60")


def _optional_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value else None


def load_settings() -> BotSettings:
    """
    Load bot settings from environment variables.

    Environment Variables:
        DISCORD_BOT_TOKEN: Discord bot token
        DISCORD_GUILD_ID: Guild for instant command sync (optional)
        OPENAI_API_KEY: OpenAI API key
        OPENAI_BASE_URL: OpenAI API base URL (default: https://api.openai.com/v1)
        TTS_MODEL: Speech model (default: tts-1)
        OPENAI_TIMEOUT_S: HTTP timeout for OpenAI calls (default: 60)
        RUN_POLL_INTERVAL_S: Delay between run status polls (default: 1)
        RUN_TIMEOUT_S: Deadline for one assistant run (default: 120)
        INACTIVITY_TIMEOUT_S: Quiet period before auto-disconnect (default: 300)
        AUDIO_DIR: Directory for durable reply recordings (default: audio_clips)
        GREETING_CLIP: Clip played when summoned, empty to disable
        DATABASE_URL: SQLAlchemy async URL (default: sqlite+aiosqlite:///data/threads.db)
        NOTICE_DELETE_AFTER_S: Lifetime of timed notices (default: 10)

    Returns:
        BotSettings with values loaded from environment or defaults
    """
    defaults = BotSettings()
    settings = BotSettings(
        discord_token=os.getenv('DISCORD_BOT_TOKEN'),
        discord_guild_id=_optional_int(os.getenv('DISCORD_GUILD_ID')),
        openai_api_key=os.getenv('OPENAI_API_KEY'),
        openai_base_url=os.getenv('OPENAI_BASE_URL', defaults.openai_base_url).rstrip('/'),
        tts_model=os.getenv('TTS_MODEL', defaults.tts_model),
        openai_timeout_s=float(os.getenv('OPENAI_TIMEOUT_S', str(defaults.openai_timeout_s))),
        run_poll_interval_s=float(os.getenv('RUN_POLL_INTERVAL_S', str(defaults.run_poll_interval_s))),
        run_timeout_s=float(os.getenv('RUN_TIMEOUT_S', str(defaults.run_timeout_s))),
        inactivity_timeout_s=float(os.getenv('INACTIVITY_TIMEOUT_S', str(defaults.inactivity_timeout_s))),
        audio_dir=os.getenv('AUDIO_DIR', defaults.audio_dir),
        greeting_clip=os.getenv('GREETING_CLIP', defaults.greeting_clip) or None,
        database_url=os.getenv('DATABASE_URL', defaults.database_url),
        notice_delete_after_s=float(os.getenv('NOTICE_DELETE_AFTER_S', str(defaults.notice_delete_after_s))),
    )

    settings.validate()
    return settings


# Global singleton instance
_settings: Optional[BotSettings] = None


def get_settings() -> BotSettings:
    """
    Get global settings singleton (loaded from the environment on first call).

    Returns:
        BotSettings singleton
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
