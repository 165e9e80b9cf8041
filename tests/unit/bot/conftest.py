"""
Fixtures for the Discord surface: a BotContext wired to the mock OpenAI
backend and mock voice objects.
"""
import dataclasses

import pytest

from src.bot.context import BotContext
from src.config.settings import get_settings
from src.services.assistant_service import AssistantService
from src.services.session_state import SessionRegistry
from src.services.tts_service import TTSService
from src.services.turn_orchestrator import TurnOrchestrator
from tests.mocks.mock_discord import MockInteraction, MockTextChannel
from tests.mocks.mock_openai import BASE_URL


@pytest.fixture
def bot_context(catalogs, audio_dir, store, openai_backend, delivery):
    settings = dataclasses.replace(get_settings(), greeting_clip=None)
    return BotContext(
        settings=settings,
        catalogs=catalogs,
        registry=SessionRegistry(catalogs=catalogs, audio_dir=audio_dir),
        orchestrator=TurnOrchestrator(
            assistant=AssistantService(
                store=store, base_url=BASE_URL, poll_interval_s=0.01, client=openai_backend.client()
            ),
            tts=TTSService(base_url=BASE_URL, client=openai_backend.client()),
            delivery=delivery,
        ),
        delivery=delivery,
    )


@pytest.fixture
def text_channel(mock_discord_guild):
    return MockTextChannel(guild=mock_discord_guild)


@pytest.fixture
def interaction(mock_member, text_channel):
    """Interaction from a member sitting in the mock voice channel"""
    return MockInteraction(user=mock_member, channel=text_channel)


@pytest.fixture
async def guild_state(bot_context, mock_discord_guild):
    """The guild's registry session, disconnected after the test"""
    session = bot_context.session_for(mock_discord_guild.id)
    yield session
    await session.disconnect()
