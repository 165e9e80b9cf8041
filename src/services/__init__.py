"""
RickTea Services Package

This package contains the conversation turn pipeline:
- conversation_store: Durable user → Assistants thread mapping
- assistant_service: OpenAI Assistants client (thread, message, run)
- tts_service: OpenAI text-to-speech streaming client
- audio_delivery: Tee of synthesized audio into the voice player and the last-reply recording
- session_state: Per-guild selections, voice connection and inactivity timer
- turn_orchestrator: Turn state machine tying the above together
"""

from .conversation_store import ConversationStore
from .assistant_service import AssistantService, get_assistant_service
from .tts_service import TTSService, get_tts_service
from .audio_delivery import AudioDeliveryPipeline, FileSink
from .session_state import GuildSession, SessionRegistry
from .turn_orchestrator import Turn, TurnOrchestrator, TurnReporter, TurnState

__all__ = [
    "ConversationStore",
    "AssistantService",
    "get_assistant_service",
    "TTSService",
    "get_tts_service",
    "AudioDeliveryPipeline",
    "FileSink",
    "GuildSession",
    "SessionRegistry",
    "Turn",
    "TurnOrchestrator",
    "TurnReporter",
    "TurnState",
]
