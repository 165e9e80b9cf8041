"""
Unit tests for slash command, context menu and message handlers
"""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from src.bot import actions, commands, notices
from src.bot.control_panel import AskModal
from src.bot.turn_reporter import InteractionReporter, MessageReporter, mark_served
from src.types.error_events import USER_MESSAGES
from src.types.errors import AbortReason, UIUpdateError
from tests.mocks.mock_discord import (
    MockIncomingMessage,
    MockInteraction,
    MockMember,
    MockMessage,
    MockTextChannel,
    MockUser,
    http_error,
)


# ============================================================
# Channel Join / Leave
# ============================================================

@pytest.mark.asyncio
async def test_join_posts_control_panel(bot_context, interaction, text_channel, guild_state):
    """Test join connects, posts the panel and confirms"""
    await commands.handle_channel(interaction, bot_context, "join")

    interaction.response.defer.assert_awaited_once()
    assert guild_state.is_connected()
    assert len(text_channel.sent) == 1
    assert guild_state.control_panel_message is text_channel.sent[0]
    assert text_channel.sent[0].content == notices.PANEL_HEADER
    assert interaction.last_content == "🍵 Steeped into the voice channel!"


@pytest.mark.asyncio
async def test_join_replaces_previous_panel(bot_context, interaction, text_channel, guild_state):
    """Test a second join deletes the old panel first"""
    await commands.handle_join(interaction, bot_context)
    first_panel = guild_state.control_panel_message

    await commands.handle_join(MockInteraction(user=interaction.user, channel=text_channel), bot_context)

    first_panel.delete.assert_awaited_once()
    assert guild_state.control_panel_message is text_channel.sent[1]


@pytest.mark.asyncio
async def test_join_plays_greeting(bot_context, interaction, guild_state, tmp_path):
    """Test the configured greeting clip is played after joining"""
    clip = tmp_path / "greeting.mp3"
    clip.write_bytes(b"hello clip")
    bot_context.settings.greeting_clip = str(clip)

    await commands.handle_join(interaction, bot_context)

    assert guild_state.voice_client.played == [b"hello clip"]
    assert guild_state.inactivity_pending


@pytest.mark.asyncio
async def test_join_without_voice(bot_context, mock_discord_guild, text_channel):
    """Test a member outside voice gets a timed notice and nothing joins"""
    interaction = MockInteraction(user=MockMember(guild=mock_discord_guild), channel=text_channel)

    await commands.handle_join(interaction, bot_context)

    interaction.response.send_message.assert_awaited_once_with(
        notices.JOIN_VOICE_FIRST, ephemeral=True, delete_after=bot_context.settings.notice_delete_after_s
    )
    assert text_channel.sent == []


@pytest.mark.asyncio
async def test_join_connection_failure(bot_context, interaction, mock_voice_channel, text_channel):
    """Test a failed voice connect is reported as a playback error"""
    mock_voice_channel.connect = AsyncMock(side_effect=discord.ClientException("Already connecting"))

    await commands.handle_join(interaction, bot_context)

    assert interaction.last_content == USER_MESSAGES[AbortReason.PLAYBACK_ERROR]
    assert text_channel.sent == []


@pytest.mark.asyncio
async def test_leave_when_connected(bot_context, interaction, guild_state, mock_voice_channel):
    """Test leave disconnects and posts a self-deleting goodbye"""
    voice_client = await guild_state.join_voice(mock_voice_channel)

    await commands.handle_channel(interaction, bot_context, "leave")

    assert voice_client.disconnect_called
    interaction.response.send_message.assert_awaited_once_with(
        notices.GOODBYE, ephemeral=False, delete_after=notices.GOODBYE_DELETE_AFTER_S
    )


@pytest.mark.asyncio
async def test_leave_when_not_connected(bot_context, interaction, guild_state):
    await commands.handle_channel(interaction, bot_context, "leave")

    interaction.response.send_message.assert_awaited_once_with(
        notices.NOT_IN_VOICE, ephemeral=False, delete_after=notices.GOODBYE_DELETE_AFTER_S
    )


# ============================================================
# Say
# ============================================================

@pytest.mark.asyncio
async def test_say_speaks_reply(bot_context, interaction, guild_state, openai_backend):
    """Test /ricktea say runs a spoken turn in the caller's channel"""
    turn = await commands.handle_say(interaction, bot_context, "Hello")

    assert turn.succeeded
    assert openai_backend.user_messages == ["Hello"]
    assert guild_state.voice_client.played == [openai_backend.speech_audio]
    assert interaction.last_content == "✌️ Done."


@pytest.mark.asyncio
async def test_say_marks_panel_served(bot_context, interaction, text_channel, guild_state):
    """Test a completed turn adds the served line to the panel"""
    await commands.handle_join(interaction, bot_context)
    panel = guild_state.control_panel_message

    await commands.handle_say(MockInteraction(user=interaction.user, channel=text_channel), bot_context, "Hello")

    assert panel.content == notices.panel_content(served=True)


@pytest.mark.asyncio
async def test_say_failure_reports_once(bot_context, interaction, guild_state, openai_backend):
    """Test an aborted turn ends with its error notice"""
    openai_backend.run_statuses = ["failed"]

    turn = await commands.handle_say(interaction, bot_context, "Hello")

    assert turn.abort_reason == AbortReason.NO_RESPONSE
    assert interaction.last_content == USER_MESSAGES[AbortReason.NO_RESPONSE]


@pytest.mark.asyncio
async def test_say_requires_voice(bot_context, mock_discord_guild, text_channel, openai_backend):
    """Test speaking outside voice never reaches the assistant"""
    interaction = MockInteraction(user=MockMember(guild=mock_discord_guild), channel=text_channel)

    turn = await commands.handle_say(interaction, bot_context, "Hello")

    assert turn is None
    assert interaction.last_content == notices.JOIN_VOICE_FIRST
    assert openai_backend.requests == []


@pytest.mark.asyncio
async def test_say_rejects_blank_text(bot_context, interaction, openai_backend):
    assert await commands.handle_say(interaction, bot_context, "   ") is None
    assert openai_backend.requests == []


# ============================================================
# Replay
# ============================================================

@pytest.mark.asyncio
async def test_replay_after_turn(bot_context, interaction, guild_state, text_channel, openai_backend):
    """Test replay plays the last recording again"""
    await commands.handle_say(interaction, bot_context, "Hello")
    replay_interaction = MockInteraction(user=interaction.user, channel=text_channel)

    assert await actions.replay_last(replay_interaction, bot_context) is True

    assert guild_state.voice_client.played == [openai_backend.speech_audio] * 2
    assert replay_interaction.last_content == notices.REPLAYING


@pytest.mark.asyncio
async def test_replay_without_recording(bot_context, interaction, guild_state, mock_voice_channel):
    voice_client = await guild_state.join_voice(mock_voice_channel)

    assert await actions.replay_last(interaction, bot_context) is False

    assert interaction.last_content == notices.NO_RECORDING
    assert voice_client.play_calls == 0


# ============================================================
# Clean / Ping
# ============================================================

@pytest.mark.asyncio
async def test_clean_rejects_non_positive(bot_context, interaction):
    assert await commands.handle_clean(interaction, bot_context, 0) == 0

    interaction.response.send_message.assert_awaited_once_with(
        "Please provide a number greater than 0.", ephemeral=True, delete_after=notices.GOODBYE_DELETE_AFTER_S
    )
    interaction.channel.purge.assert_not_awaited()


@pytest.mark.asyncio
async def test_clean_purges_recent_messages(bot_context, interaction, monkeypatch):
    """Test purge is bounded and skips messages older than 14 days"""
    monkeypatch.setattr(notices, "GOODBYE_DELETE_AFTER_S", 0)
    interaction.channel.purge.return_value = [MagicMock(), MagicMock(), MagicMock()]

    assert await commands.handle_clean(interaction, bot_context, 5) == 3

    kwargs = interaction.channel.purge.await_args.kwargs
    assert kwargs["limit"] == 5
    now = discord.utils.utcnow()
    assert kwargs["check"](MagicMock(created_at=now - timedelta(days=1)))
    assert not kwargs["check"](MagicMock(created_at=now - timedelta(days=15)))

    assert interaction.last_content == "Successfully deleted 3 messages."
    interaction.delete_original_response.assert_awaited_once()


@pytest.mark.asyncio
async def test_clean_failure(bot_context, interaction, monkeypatch):
    monkeypatch.setattr(notices, "GOODBYE_DELETE_AFTER_S", 0)
    interaction.channel.purge.side_effect = http_error(discord.Forbidden, 403, "Missing Permissions")

    assert await commands.handle_clean(interaction, bot_context, 5) == 0
    assert interaction.last_content == "Failed to delete messages. Please try again."


@pytest.mark.asyncio
async def test_ping_reports_roundtrip(interaction):
    """Test latency is measured from the interaction to the reply"""
    latency = await commands.handle_ping(interaction)

    assert round(latency) == 42
    assert interaction.last_content == "Roundtrip latency: 42ms"


# ============================================================
# Context Menus
# ============================================================

@pytest.mark.asyncio
async def test_ask_context_menu_opens_modal(bot_context, interaction, guild_state):
    guild_state.set_persona("Dimi")

    await commands.handle_ask(interaction, bot_context)

    modal = interaction.response.send_modal.await_args.args[0]
    assert isinstance(modal, AskModal)
    assert modal.title == "Ask Dimi"


@pytest.mark.asyncio
async def test_summon_context_menu_joins(bot_context, interaction, guild_state):
    await commands.handle_summon(interaction, bot_context)

    assert guild_state.is_connected()
    assert guild_state.control_panel_message is not None


@pytest.mark.asyncio
async def test_register_commands(bot_context):
    """Test the command group and both context menus are added"""
    tree = MagicMock()

    commands.register_commands(tree, bot_context)

    added = [call.args[0] for call in tree.add_command.call_args_list]
    assert [command.name for command in added] == ["ricktea", "Summon Ricktea", "Ask Ricktea"]
    assert sorted(command.name for command in added[0].commands) == ["channel", "clean", "ping", "say"]


# ============================================================
# Message Triggers
# ============================================================

@pytest.mark.asyncio
async def test_mention_summons(bot_context, mock_member, mock_discord_guild, text_channel, guild_state):
    """Test a bare mention joins the author's channel with a panel"""
    message = MockIncomingMessage("<@1>", mock_member, text_channel, guild=mock_discord_guild)

    session = await commands.handle_mention(message, bot_context)

    assert session is guild_state
    assert session.is_connected()
    assert session.control_panel_message is text_channel.sent[0]


@pytest.mark.asyncio
async def test_mention_outside_voice(bot_context, mock_discord_guild, text_channel):
    author = MockMember(guild=mock_discord_guild)
    message = MockIncomingMessage("<@1>", author, text_channel, guild=mock_discord_guild)

    assert await commands.handle_mention(message, bot_context) is None

    text_channel.send.assert_awaited_once_with(
        notices.JOIN_VOICE_FIRST, delete_after=bot_context.settings.notice_delete_after_s
    )


def test_is_bare_mention():
    bot_user = MockUser(id=99)
    channel = MockTextChannel()

    assert commands.is_bare_mention(MockIncomingMessage(" <@99> ", MockUser(), channel), bot_user)
    assert commands.is_bare_mention(MockIncomingMessage("<@!99>", MockUser(), channel), bot_user)
    assert not commands.is_bare_mention(MockIncomingMessage("<@99> hi", MockUser(), channel), bot_user)


@pytest.mark.asyncio
async def test_direct_message_text_turn(bot_context, openai_backend):
    """Test a DM is answered in text with the default persona"""
    channel = MockTextChannel()
    message = MockIncomingMessage("  What's up?  ", MockUser(id=7, name="bob"), channel)

    turn = await commands.handle_direct_message(message, bot_context)

    assert turn.succeeded
    assert openai_backend.user_messages == ["What's up?"]
    assert openai_backend.run_requests[0]["assistant_id"] == bot_context.direct_message_persona.assistant_id
    assert openai_backend.speech_requests == []
    assert channel.sent[0].content == "Hi there!"


@pytest.mark.asyncio
async def test_direct_message_long_reply_is_split(bot_context, openai_backend):
    openai_backend.reply = "a" * 1500 + "\n" + "b" * 1500
    channel = MockTextChannel()
    message = MockIncomingMessage("Tell me a story", MockUser(id=7, name="bob"), channel)

    await commands.handle_direct_message(message, bot_context)

    assert channel.sent[0].content == "a" * 1500
    assert channel.sent[1].content == "b" * 1500


@pytest.mark.asyncio
async def test_blank_direct_message_ignored(bot_context):
    channel = MockTextChannel()
    message = MockIncomingMessage("   ", MockUser(), channel)

    assert await commands.handle_direct_message(message, bot_context) is None
    assert channel.sent == []


# ============================================================
# Reporters and Notices
# ============================================================

@pytest.mark.asyncio
async def test_mark_served_forgets_deleted_panel(guild_session):
    """Test a panel deleted elsewhere is dropped instead of raising"""
    panel = MockMessage(notices.PANEL_HEADER)
    panel.edit.side_effect = http_error(discord.NotFound, 404, "Unknown Message")
    guild_session.control_panel_message = panel

    assert await mark_served(guild_session) is False
    assert guild_session.control_panel_message is None


@pytest.mark.asyncio
async def test_mark_served_keeps_panel_on_other_errors(guild_session):
    panel = MockMessage(notices.PANEL_HEADER)
    panel.edit.side_effect = http_error(discord.HTTPException, 500, "Internal Server Error")
    guild_session.control_panel_message = panel

    assert await mark_served(guild_session) is False
    assert guild_session.control_panel_message is panel


@pytest.mark.asyncio
async def test_mark_served_without_panel(guild_session):
    assert await mark_served(guild_session) is False


@pytest.mark.asyncio
async def test_interaction_reporter_renders_progress(interaction, guild_session):
    reporter = InteractionReporter(interaction, guild_session)

    await reporter.progress(None, "🍵 Warming up the pot...")

    assert interaction.last_content == "🍵 Warming up the pot..."


@pytest.mark.asyncio
async def test_message_reporter_failure():
    loading = MockMessage(notices.DM_LOADING, channel=MockTextChannel())
    reporter = MessageReporter(loading, notice_delete_after_s=7)
    event = MagicMock(user_message="⛑️ nope")

    await reporter.failed(None, event)

    assert loading.content == "⛑️ nope"
    loading.edit.assert_awaited_once_with(content="⛑️ nope", delete_after=7)


@pytest.mark.asyncio
async def test_reporter_edit_failure_raises_ui_update_error(interaction, guild_session):
    """Test Discord edit errors surface as UIUpdateError"""
    interaction.edit_original_response.side_effect = http_error(discord.NotFound, 404, "Unknown Message")
    reporter = InteractionReporter(interaction, guild_session)

    with pytest.raises(UIUpdateError):
        await reporter.progress(None, "🍵 Warming up the pot...")


@pytest.mark.asyncio
async def test_respond_swallows_http_errors(interaction):
    interaction.response.send_message.side_effect = http_error(discord.HTTPException, 500, "boom")

    await notices.respond(interaction, "hello")


def test_split_message_prefers_line_breaks():
    text = "line one\nline two\nline three"

    assert notices.split_message(text, limit=18) == ["line one\nline two", "line three"]


def test_split_message_hard_cut():
    assert notices.split_message("x" * 25, limit=10) == ["x" * 10, "x" * 10, "x" * 5]
    assert notices.split_message("") == []
