"""
Tiered Logging Configuration for the RickTea voice bridge

Provides a flexible logging system with 5 levels:
- TRACE (5): Ultra-verbose debugging (audio chunks, poll iterations)
- DEBUG (10): Detailed debugging (state transitions, cache hits)
- INFO (20): Standard operational messages (joins, completed turns)
- WARN (30): Warnings (rejected selections, best-effort failures)
- ERROR (40): Errors (aborted turns, backend failures)

Environment Variables:
- LOG_LEVEL: Global log level (TRACE, DEBUG, INFO, WARN, ERROR) [default: INFO]
- LOG_LEVEL_ASSISTANT: Override for the OpenAI Assistants client
- LOG_LEVEL_TTS: Override for speech synthesis
- LOG_LEVEL_AUDIO: Override for the audio delivery pipeline
- LOG_LEVEL_SESSION: Override for guild session state
- LOG_LEVEL_TURN: Override for the turn orchestrator
- LOG_LEVEL_STORE: Override for the conversation store
- LOG_LEVEL_DISCORD: Override for the Discord surface (commands, panel, bot)
- LOG_FILE: Optional path of a log file written alongside the console

Example Usage:
    from src.config.logging_config import get_logger

    logger = get_logger(__name__)
    logger.trace("🔍 Audio chunk: %d bytes", len(chunk))
    logger.debug("🧭 Turn state -> SYNTHESIZING")
    logger.info("✅ Joined voice channel")
    logger.warning("⚠️ Control panel message is gone")
    logger.error("❌ Run failed: %s", error)
"""

import logging
import os
from typing import Optional


# Define custom TRACE level (more verbose than DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self, message, *args, **kwargs):
    """Log a message with severity 'TRACE'."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


# Add trace method to Logger class
logging.Logger.trace = trace


# Module name mapping: Python module path → Logical service name
MODULE_NAME_MAP = {
    "src.services.assistant_service": "ricktea.assistant",
    "src.services.tts_service": "ricktea.tts",
    "src.services.audio_delivery": "ricktea.audio",
    "src.services.session_state": "ricktea.session",
    "src.services.turn_orchestrator": "ricktea.turn",
    "src.services.conversation_store": "ricktea.store",
    "src.database.session": "ricktea.store",
    "src.bot.actions": "ricktea.discord",
    "src.bot.commands": "ricktea.discord",
    "src.bot.control_panel": "ricktea.discord",
    "src.bot.notices": "ricktea.discord",
    "src.bot.turn_reporter": "ricktea.discord",
    "src.discord_bot": "ricktea.discord",
}

SERVICE_OVERRIDES = ["ASSISTANT", "TTS", "AUDIO", "SESSION", "TURN", "STORE", "DISCORD"]

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_log_level(module_name: str, default: str = "INFO") -> int:
    """
    Get the log level for a module, checking both module-specific and global env vars.

    Priority:
    1. Module-specific env var (LOG_LEVEL_TTS, LOG_LEVEL_TURN, etc.)
    2. Global LOG_LEVEL env var
    3. Default level (INFO)

    Args:
        module_name: Python module name (e.g., "src.services.tts_service")
        default: Default log level if no env vars set

    Returns:
        Numeric log level (5=TRACE, 10=DEBUG, 20=INFO, 30=WARN, 40=ERROR)
    """
    logical_name = MODULE_NAME_MAP.get(module_name)

    # Only mapped modules get a service override ("ricktea.tts" → "TTS")
    service_name = logical_name.split(".")[-1].upper() if logical_name else None

    if service_name:
        module_level = os.getenv(f"LOG_LEVEL_{service_name}")
        if module_level:
            return _parse_log_level(module_level)

    global_level = os.getenv("LOG_LEVEL")
    if global_level:
        return _parse_log_level(global_level)

    return _parse_log_level(default)


def _parse_log_level(level_str: str) -> int:
    """
    Parse log level string to numeric value.

    Args:
        level_str: Log level name (TRACE, DEBUG, INFO, WARN, ERROR)

    Returns:
        Numeric log level
    """
    level_map = {
        "TRACE": TRACE,
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARN": logging.WARNING,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    return level_map.get(level_str.upper(), logging.INFO)


def configure_logging(default_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure logging system with tiered levels and per-module control.

    This should be called once at application startup (in discord_bot.py).

    Args:
        default_level: Default log level if LOG_LEVEL env var not set
        log_file: Optional log file path (falls back to LOG_FILE env var)
    """
    global_level = os.getenv("LOG_LEVEL", default_level)
    numeric_level = _parse_log_level(global_level)

    handlers = [logging.StreamHandler()]
    log_file = log_file or os.getenv("LOG_FILE")
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )

    # discord.py is chatty at INFO (gateway heartbeats, voice handshakes)
    logging.getLogger("discord").setLevel(max(numeric_level, logging.WARNING))

    root_logger = logging.getLogger()
    root_logger.info(f"🚀 Logging system initialized (global level: {global_level})")
    if log_file:
        root_logger.info(f"📝 Writing logs to {log_file}")

    module_overrides = []
    for env_var in SERVICE_OVERRIDES:
        override = os.getenv(f"LOG_LEVEL_{env_var}")
        if override:
            module_overrides.append(f"{env_var}={override}")

    if module_overrides:
        root_logger.info(f"📋 Module overrides: {', '.join(module_overrides)}")


def get_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a module with appropriate log level.

    This is the main entry point for getting loggers in bot code.

    Args:
        module_name: Python module name (use __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(module_name)
    logger.setLevel(get_log_level(module_name))
    return logger
