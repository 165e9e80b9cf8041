"""
TurnOrchestrator

Purpose: Drive one conversation turn end to end:

    IDLE → THREAD_RESOLVING → MESSAGE_SUBMITTING → ASSISTANT_RUNNING
         → SYNTHESIZING → DELIVERING → DONE

with ABORTED(reason) reachable from every non-idle state.

Key Features:
- Strictly sequential steps; turns for different users interleave freely
- Persona/voice/language are snapshotted into the Turn at entry, so a panel
  change mid-flight only affects the next turn
- Every state entry reports progress (best-effort, failures only logged)
- Every abort reports exactly one TurnErrorEvent
- Session selections are never written by a turn; the only durable write is
  the conversation id created in THREAD_RESOLVING (kept for the retry)

Design Pattern: Observer - a TurnReporter renders progress/failure/completion
for whichever Discord surface started the turn.
"""

import random
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.config.catalog import Persona
from src.config.logging_config import get_logger
from src.services.assistant_service import AssistantService, get_assistant_service
from src.services.audio_delivery import AudioDeliveryPipeline, FileSink
from src.services.session_state import GuildSession
from src.services.tts_service import TTSService, get_tts_service
from src.types.error_events import TurnErrorEvent
from src.types.errors import AbortReason, PlaybackError, TurnError, UIUpdateError

logger = get_logger(__name__)

LOADING_MESSAGES = (
    "🍵 Brewing your perfect cup of tea...",
    "🍵 Stirring in some wisdom...",
    "🍵 Adding a dash of humor...",
    "🍵 Waiting for the tea to steep...",
    "🍵 Warming up the pot...",
    "🍵 Almost there, just a moment more...",
)

TALKING_MESSAGE = "🗣️ Talking to you!"


def random_loading_message() -> str:
    message = random.choice(LOADING_MESSAGES)
    logger.debug(f"🥝 Random loading message selected: {message}")
    return message


class TurnState(str, Enum):
    IDLE = "idle"
    THREAD_RESOLVING = "thread_resolving"
    MESSAGE_SUBMITTING = "message_submitting"
    ASSISTANT_RUNNING = "assistant_running"
    SYNTHESIZING = "synthesizing"
    DELIVERING = "delivering"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class Turn:
    """
    One in-flight conversation turn (never persisted).

    Attributes:
        user_id: Discord user id (conversation key)
        address_as: Name the assistant addresses the user by
        text: User input
        persona: Persona selected at turn entry
        voice: Voice selected at turn entry (None for text-only turns)
        language: Language name to reply in (None keeps the assistant default)
        conversation_id: Thread id, once resolved
        assistant_text: Trimmed assistant reply, once received
        audio_path: Durable recording path, once spoken
        state: Current state
        abort_reason: Set when state is ABORTED
    """
    user_id: str
    address_as: str
    text: str
    persona: Persona
    voice: Optional[str] = None
    language: Optional[str] = None
    conversation_id: Optional[str] = None
    assistant_text: Optional[str] = None
    audio_path: Optional[str] = None
    state: TurnState = TurnState.IDLE
    abort_reason: Optional[AbortReason] = None

    @property
    def succeeded(self) -> bool:
        return self.state == TurnState.DONE


class TurnReporter(ABC):
    """
    UI side of a turn. Every hook is awaited best-effort: exceptions are
    logged by the orchestrator and never change the turn outcome.
    """

    async def progress(self, turn: Turn, message: str) -> None:
        """Called on every state entry with a progress line."""

    async def failed(self, turn: Turn, event: TurnErrorEvent) -> None:
        """Called exactly once when the turn aborts."""

    async def completed(self, turn: Turn) -> None:
        """Called once when the turn reaches DONE."""


class TurnOrchestrator:
    """
    Runs spoken turns (guild voice) and text-only turns (direct messages).

    Usage:
        orchestrator = TurnOrchestrator()
        turn = await orchestrator.run_turn(session, user_id, "alice", "Hello", reporter)
        if turn.succeeded:
            ...
    """

    def __init__(
        self,
        assistant: Optional[AssistantService] = None,
        tts: Optional[TTSService] = None,
        delivery: Optional[AudioDeliveryPipeline] = None,
    ):
        self.assistant = assistant or get_assistant_service()
        self.tts = tts or get_tts_service()
        self.delivery = delivery or AudioDeliveryPipeline()

    async def run_turn(
        self,
        session: GuildSession,
        user_id: str,
        address_as: str,
        text: str,
        reporter: TurnReporter,
    ) -> Turn:
        """
        Ask the session's persona and speak the reply in the session's voice
        channel.

        Returns:
            The finished Turn (DONE or ABORTED); pipeline errors are reported,
            not raised
        """
        language = None
        if session.language != session.catalogs.languages.default:
            language = session.language_name

        turn = Turn(
            user_id=str(user_id),
            address_as=address_as,
            text=text,
            persona=session.persona,
            voice=session.voice,
            language=language,
        )
        logger.info(
            f"🎙️ Turn for {address_as}: persona={turn.persona.key}, voice={turn.voice}, "
            f"language={turn.language or 'default'}"
        )

        delivery_started = False
        try:
            await self._converse(turn, reporter)

            await self._enter(turn, TurnState.SYNTHESIZING, reporter, TALKING_MESSAGE)
            voice_client = session.voice_client
            if not session.is_connected():
                raise PlaybackError("Not connected to a voice channel")

            sink = FileSink(session.recording_path)
            async with self.tts.synthesize(turn.assistant_text, turn.voice) as audio:
                await self._enter(turn, TurnState.DELIVERING, reporter, TALKING_MESSAGE)
                delivery_started = True
                await self.delivery.deliver(audio, sink, voice_client)
            turn.audio_path = sink.path

        except TurnError as e:
            await self._abort(turn, e, reporter)
            return turn

        finally:
            if delivery_started:
                session.notify_playback_idle()

        await self._finish(turn, reporter)
        return turn

    async def run_text_turn(
        self,
        user_id: str,
        address_as: str,
        text: str,
        persona: Persona,
        reporter: TurnReporter,
        language: Optional[str] = None,
    ) -> Turn:
        """
        Ask `persona` and report the reply as text (direct messages).

        Stops after ASSISTANT_RUNNING; `turn.assistant_text` holds the reply
        when the turn completes.
        """
        turn = Turn(
            user_id=str(user_id),
            address_as=address_as,
            text=text,
            persona=persona,
            language=language,
        )
        logger.info(f"💬 Text turn for {address_as}: persona={persona.key}")

        try:
            await self._converse(turn, reporter)
        except TurnError as e:
            await self._abort(turn, e, reporter)
            return turn

        await self._finish(turn, reporter)
        return turn

    # Internal methods

    async def _converse(self, turn: Turn, reporter: TurnReporter) -> None:
        await self._enter(turn, TurnState.THREAD_RESOLVING, reporter, random_loading_message())
        turn.conversation_id = await self.assistant.get_or_create_conversation(turn.user_id)

        await self._enter(turn, TurnState.MESSAGE_SUBMITTING, reporter, random_loading_message())
        await self.assistant.append_user_message(turn.conversation_id, turn.text)

        await self._enter(turn, TurnState.ASSISTANT_RUNNING, reporter, random_loading_message())
        reply = await self.assistant.run_to_completion(
            turn.conversation_id,
            turn.persona.assistant_id,
            turn.address_as,
            language=turn.language,
        )
        turn.assistant_text = reply.strip()
        logger.info(f"🥝 OpenAI Response: {turn.assistant_text[:100]}")

    async def _enter(self, turn: Turn, state: TurnState, reporter: TurnReporter, message: str) -> None:
        logger.debug(f"🔀 Turn {turn.user_id}: {turn.state.value} → {state.value}")
        turn.state = state
        try:
            await reporter.progress(turn, message)
        except UIUpdateError as e:
            logger.warning(f"⚠️ Progress update failed in {state.value}: {e}")
        except Exception as e:
            logger.error(f"⛑️ Reporter error in {state.value}: {e}", exc_info=True)

    async def _abort(self, turn: Turn, error: TurnError, reporter: TurnReporter) -> None:
        event = TurnErrorEvent.from_error(error, user_id=turn.user_id)
        logger.error(
            f"⛑️ Turn aborted in {turn.state.value} ({event.reason.value}): {event.technical_details}"
        )
        turn.state = TurnState.ABORTED
        turn.abort_reason = event.reason
        try:
            await reporter.failed(turn, event)
        except UIUpdateError as e:
            logger.warning(f"⚠️ Failed to report aborted turn: {e}")
        except Exception as e:
            logger.error(f"⛑️ Failed to report aborted turn: {e}", exc_info=True)

    async def _finish(self, turn: Turn, reporter: TurnReporter) -> None:
        turn.state = TurnState.DONE
        logger.info(f"✅ Turn complete for {turn.address_as}")
        try:
            await reporter.completed(turn)
        except UIUpdateError as e:
            logger.warning(f"⚠️ Completion update failed: {e}")
        except Exception as e:
            logger.error(f"⛑️ Reporter error on completion: {e}", exc_info=True)
