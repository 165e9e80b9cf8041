"""
Unit tests for GuildSession and SessionRegistry

Tests catalog-validated selections, voice join/move/reuse, idempotent
disconnect with stale control panels, and the inactivity timer.
"""
import asyncio
import os

import discord
import pytest

from src.services.session_state import GuildSession, SessionRegistry
from tests.mocks.mock_discord import MockMessage, MockVoiceChannel, MockVoiceClient, http_error


# ============================================================
# Selection Tests
# ============================================================

def test_new_session_uses_catalog_defaults(catalogs, audio_dir):
    """Test selections start at the catalog defaults"""
    session = GuildSession(1, catalogs=catalogs, audio_dir=audio_dir)

    assert session.persona_key == "Ricktea"
    assert session.voice == "onyx"
    assert session.language == "en"
    assert session.language_name == "English"
    assert session.control_panel_message is None
    assert not session.is_connected()


def test_setters_accept_catalog_values(catalogs, audio_dir):
    """Test valid selections are stored"""
    session = GuildSession(1, catalogs=catalogs, audio_dir=audio_dir)

    assert session.set_persona("Dimi") is True
    assert session.set_voice("nova") is True
    assert session.set_language("el") is True

    assert session.persona.friendly_name == "Dimi"
    assert session.voice == "nova"
    assert session.language_name == "Greek"


def test_setters_reject_unknown_values(catalogs, audio_dir):
    """Test unknown values leave the selection unchanged"""
    session = GuildSession(1, catalogs=catalogs, audio_dir=audio_dir)

    assert session.set_persona("Morty") is False
    assert session.set_voice("robot") is False
    assert session.set_language("xx") is False

    assert session.persona_key == "Ricktea"
    assert session.voice == "onyx"
    assert session.language == "en"


def test_recording_path_is_per_guild(catalogs, audio_dir):
    """Test each guild gets its own recording file"""
    first = GuildSession(1, catalogs=catalogs, audio_dir=audio_dir)
    second = GuildSession(2, catalogs=catalogs, audio_dir=audio_dir)

    assert first.recording_path == os.path.join(audio_dir, "1", "last_reply.opus")
    assert first.recording_path != second.recording_path


# ============================================================
# Voice Connection Tests
# ============================================================

@pytest.mark.asyncio
async def test_join_connects_once(guild_session, mock_voice_channel):
    """Test joining the same channel twice reuses the connection"""
    first = await guild_session.join_voice(mock_voice_channel)
    second = await guild_session.join_voice(mock_voice_channel)

    assert first is second
    assert mock_voice_channel.connect_calls == 1
    assert guild_session.is_connected()


@pytest.mark.asyncio
async def test_join_moves_between_channels(guild_session, mock_discord_guild, mock_voice_channel):
    """Test joining another channel in the guild moves the connection"""
    other = MockVoiceChannel(id=777, name="Lounge", guild=mock_discord_guild)

    voice_client = await guild_session.join_voice(mock_voice_channel)
    moved = await guild_session.join_voice(other)

    assert moved is voice_client
    assert voice_client.moved_to == [other]
    assert other.connect_calls == 0


@pytest.mark.asyncio
async def test_join_adopts_existing_guild_connection(guild_session, mock_discord_guild, mock_voice_channel):
    """Test a connection already held by the guild is reused"""
    existing = MockVoiceClient(channel=mock_voice_channel)
    mock_discord_guild.voice_client = existing

    voice_client = await guild_session.join_voice(mock_voice_channel)

    assert voice_client is existing
    assert mock_voice_channel.connect_calls == 0


@pytest.mark.asyncio
async def test_disconnect_tears_down_and_resets(guild_session, mock_voice_channel):
    """Test disconnect leaves voice, deletes the panel and resets selections"""
    voice_client = await guild_session.join_voice(mock_voice_channel)
    panel = MockMessage("panel")
    guild_session.control_panel_message = panel
    guild_session.set_voice("nova")
    guild_session.set_persona("Jason")

    assert await guild_session.disconnect() is True

    assert voice_client.disconnect_called
    panel.delete.assert_awaited_once()
    assert guild_session.control_panel_message is None
    assert guild_session.voice == "onyx"
    assert guild_session.persona_key == "Ricktea"
    assert not guild_session.inactivity_pending


@pytest.mark.asyncio
async def test_disconnect_is_idempotent_with_stale_panel(guild_session, mock_voice_channel):
    """Test a panel deleted elsewhere does not break repeated disconnects"""
    await guild_session.join_voice(mock_voice_channel)
    panel = MockMessage("panel")
    panel.delete.side_effect = http_error(discord.NotFound, 404, "Unknown Message")
    guild_session.control_panel_message = panel

    assert await guild_session.disconnect() is True
    assert await guild_session.disconnect() is False

    assert guild_session.control_panel_message is None
    assert panel.delete.await_count == 1


@pytest.mark.asyncio
async def test_disconnect_without_connection_keeps_selections(guild_session):
    """Test selections survive a disconnect when nothing was connected"""
    guild_session.set_voice("nova")

    assert await guild_session.disconnect() is False

    assert guild_session.voice == "nova"


@pytest.mark.asyncio
async def test_disconnect_survives_voice_errors(guild_session, mock_voice_channel):
    """Test a failing voice disconnect still clears the session"""
    voice_client = await guild_session.join_voice(mock_voice_channel)

    async def fail(**kwargs):
        raise discord.ClientException("already disconnected")

    voice_client.disconnect = fail

    assert await guild_session.disconnect() is True
    assert guild_session.voice_client is None


# ============================================================
# Inactivity Timer Tests
# ============================================================

@pytest.mark.asyncio
async def test_inactivity_timer_disconnects(catalogs, audio_dir, mock_voice_channel):
    """Test the session leaves voice after the timeout with no playback"""
    session = GuildSession(1, catalogs=catalogs, audio_dir=audio_dir, inactivity_timeout_s=0.1)
    voice_client = await session.join_voice(mock_voice_channel)
    session.control_panel_message = MockMessage("panel")

    assert session.inactivity_pending

    await asyncio.sleep(0.3)

    assert voice_client.disconnect_called
    assert session.voice_client is None
    assert session.control_panel_message is None


@pytest.mark.asyncio
async def test_playback_idle_restarts_timer(catalogs, audio_dir, mock_voice_channel):
    """Test each idle notification restarts the full countdown"""
    session = GuildSession(1, catalogs=catalogs, audio_dir=audio_dir, inactivity_timeout_s=0.3)
    voice_client = await session.join_voice(mock_voice_channel)

    await asyncio.sleep(0.15)
    session.notify_playback_idle()

    await asyncio.sleep(0.2)
    assert session.is_connected()

    await asyncio.sleep(0.25)
    assert not voice_client.is_connected()


@pytest.mark.asyncio
async def test_timer_not_started_without_connection(guild_session):
    """Test idle notifications are ignored while disconnected"""
    guild_session.notify_playback_idle()

    assert not guild_session.inactivity_pending


# ============================================================
# Registry Tests
# ============================================================

@pytest.mark.asyncio
async def test_registry_creates_one_session_per_guild(catalogs, audio_dir):
    """Test sessions are created lazily and cached"""
    registry = SessionRegistry(catalogs=catalogs, audio_dir=audio_dir)

    first = registry.get(1)

    assert registry.get(1) is first
    assert registry.get(2) is not first
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_registry_shutdown_disconnects_all(catalogs, audio_dir, mock_discord_guild, mock_voice_channel):
    """Test shutdown leaves every connected guild"""
    registry = SessionRegistry(catalogs=catalogs, audio_dir=audio_dir)
    session = registry.get(mock_discord_guild.id)
    voice_client = await session.join_voice(mock_voice_channel)
    idle = registry.get(12345)

    await registry.shutdown()

    assert voice_client.disconnect_called
    assert not session.inactivity_pending
    assert idle.voice_client is None
