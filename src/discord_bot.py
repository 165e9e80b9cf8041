#!/usr/bin/env python3
"""
============================================================
RickTea - Discord Voice Bot
Speaks OpenAI Assistant replies in Discord voice channels:
- /ricktea slash commands and context menus
- Per-guild control panel (persona / voice / language)
- OpenAI Assistants threads kept per Discord user
- OpenAI text-to-speech streamed into the voice channel
- Text-only replies over direct messages
============================================================
"""

import asyncio
import signal
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv

# Tiered logging system
from src.config.logging_config import configure_logging, get_logger

from src.bot import notices
from src.bot.commands import handle_direct_message, handle_mention, is_bare_mention, register_commands
from src.bot.context import BotContext, create_context
from src.config.settings import get_settings
from src.database.session import dispose_db, init_db

# Load environment variables
load_dotenv()

# Configure logging with tiered system
configure_logging(default_level="INFO")
logger = get_logger(__name__)

PRESENCE = discord.Streaming(name="a pot of tea 🍵🫖", url="https://howtomaketea.com")

# ============================================================
# DISCORD BOT SETUP
# ============================================================

# Message content of DMs and mentions is delivered without the privileged intent
intents = discord.Intents.default()
intents.guilds = True
intents.voice_states = True
intents.guild_messages = True
intents.dm_messages = True

bot = commands.Bot(command_prefix=commands.when_mentioned, intents=intents)

context: Optional[BotContext] = None
_commands_synced = False
_shutting_down = False

# ============================================================
# DISCORD BOT EVENTS
# ============================================================

@bot.event
async def on_ready():
    """Bot ready event"""
    global _commands_synced

    logger.info("=" * 60)
    logger.info(f"🥝 {bot.user} is ready to make some tea! 🧋")
    for guild in bot.guilds:
        logger.info(f"  📍 Connected to guild: {guild.name} (ID: {guild.id})")
    logger.info("=" * 60)

    await bot.change_presence(activity=PRESENCE)

    if _commands_synced:
        return
    try:
        guild_id = get_settings().discord_guild_id
        if guild_id:
            guild = discord.Object(id=guild_id)
            bot.tree.copy_global_to(guild=guild)
            synced = await bot.tree.sync(guild=guild)
        else:
            synced = await bot.tree.sync()
        _commands_synced = True
        logger.info(f"✅ Discord slash commands synced ({len(synced)})")
    except discord.HTTPException as e:
        logger.error(f"❌ Failed to sync Discord commands: {e}", exc_info=True)


@bot.event
async def on_message(message: discord.Message):
    if message.author.bot or context is None:
        return

    if message.guild is None:
        await handle_direct_message(message, context)
    elif bot.user in message.mentions and is_bare_mention(message, bot.user):
        await handle_mention(message, context)


@bot.event
async def on_voice_state_update(member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
    """Clean up the session when the bot is disconnected from outside (kick, channel deleted)"""
    if context is None or bot.user is None or member.id != bot.user.id:
        return
    if before.channel is not None and after.channel is None:
        session = context.session_for(member.guild.id)
        if session.voice_client is not None:
            logger.info(f"👋 Bot was removed from voice in guild {member.guild.id}")
            await session.disconnect()


@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    logger.error(f"❌ Error handling command {interaction.command.name if interaction.command else '?'}: {error}", exc_info=error)
    await notices.respond(interaction, notices.GENERIC_ERROR)


@bot.event
async def on_error(event, *args, **kwargs):
    """Bot error handler"""
    logger.error(f"❌ Discord bot error in {event}", exc_info=True)

# ============================================================
# APPLICATION LIFECYCLE
# ============================================================

async def shutdown():
    """Graceful shutdown"""
    global _shutting_down
    if _shutting_down:
        return
    _shutting_down = True

    logger.info("⚠️ Shutting down gracefully...")

    if context is not None:
        await context.registry.shutdown()
        await context.orchestrator.assistant.close()
        await context.orchestrator.tts.close()

    await dispose_db()
    await bot.close()

    logger.info("👋 Shutdown complete")


async def main():
    """Main application entry point"""
    global context

    settings = get_settings()
    if not settings.discord_token:
        logger.error("❌ DISCORD_BOT_TOKEN not set in environment")
        raise SystemExit(1)
    if not settings.openai_api_key:
        logger.error("❌ OPENAI_API_KEY not set in environment")
        raise SystemExit(1)

    await init_db()
    context = create_context(settings)
    register_commands(bot.tree, context)

    loop = asyncio.get_running_loop()

    def handle_signal_sync(signum):
        """Handle shutdown signals (sync wrapper)"""
        logger.info(f"⚠️ Received signal {signum}")
        asyncio.ensure_future(shutdown(), loop=loop)

    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, lambda s=signum: handle_signal_sync(s))
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        logger.info("🔐 Logging in to Discord...")
        await bot.start(settings.discord_token)
    finally:
        await shutdown()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("👋 Interrupted by user")


if __name__ == "__main__":
    run()
