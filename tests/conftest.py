"""
Pytest configuration and shared fixtures for RickTea bot tests
"""
import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config.catalog import load_catalogs
from src.config.settings import reset_settings
from src.database.session import create_engine_for, init_db
from src.services.audio_delivery import AudioDeliveryPipeline
from src.services.conversation_store import ConversationStore
from src.services.session_state import GuildSession
from tests.mocks.mock_discord import (
    MockAudioSource,
    MockGuild,
    MockMember,
    MockVoiceChannel,
)
from tests.mocks.mock_openai import MockOpenAIBackend


# ============================================================
# Environment Configuration
# ============================================================

TEST_ENV = {
    "DISCORD_BOT_TOKEN": "test_discord_token_12345",
    "OPENAI_API_KEY": "sk-test",
    "OPENAI_BASE_URL": "https://api.test/v1",
    "RUN_POLL_INTERVAL_S": "0.01",
    "RUN_TIMEOUT_S": "5",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
}


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """
    Setup test environment variables and forget cached settings
    """
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    for key in ("DEFAULT_PERSONA", "DEFAULT_VOICE", "DEFAULT_LANGUAGE", "LOG_FILE"):
        monkeypatch.delenv(key, raising=False)
    reset_settings()

    yield

    reset_settings()


# ============================================================
# Configuration Fixtures
# ============================================================

@pytest.fixture
def catalogs():
    return load_catalogs()


@pytest.fixture
def audio_dir(tmp_path):
    return str(tmp_path / "audio_clips")


# ============================================================
# Persistence Fixtures
# ============================================================

@pytest.fixture
async def session_factory():
    """Async session factory over a fresh in-memory SQLite database"""
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def store(session_factory):
    return ConversationStore(session_factory=session_factory)


# ============================================================
# Backend Fixtures
# ============================================================

@pytest.fixture
def openai_backend():
    """Fake OpenAI Assistants + speech API (httpx.MockTransport)"""
    return MockOpenAIBackend()


@pytest.fixture
def delivery():
    """Audio pipeline playing into MockVoiceClient instead of FFmpeg"""
    return AudioDeliveryPipeline(source_factory=MockAudioSource, max_buffered_chunks=4)


# ============================================================
# Discord Fixtures
# ============================================================

@pytest.fixture
def mock_discord_guild():
    return MockGuild()


@pytest.fixture
def mock_voice_channel(mock_discord_guild):
    return MockVoiceChannel(guild=mock_discord_guild)


@pytest.fixture
def mock_member(mock_voice_channel):
    """Member sitting in the mock voice channel"""
    return MockMember(name="alice", voice_channel=mock_voice_channel)


@pytest.fixture
async def guild_session(catalogs, audio_dir, mock_discord_guild):
    session = GuildSession(mock_discord_guild.id, catalogs=catalogs, audio_dir=audio_dir)
    yield session
    await session.disconnect()


# ============================================================
# Cleanup Fixtures
# ============================================================

@pytest.fixture
async def cleanup_tasks():
    """
    Cancel tasks left running by a test (inactivity timers)
    """
    yield

    tasks = [task for task in asyncio.all_tasks()
             if not task.done() and task != asyncio.current_task()]

    for task in tasks:
        task.cancel()

    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
