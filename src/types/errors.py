"""
Turn error taxonomy.

Pipeline-stage errors abort the current turn and are reported to the user
exactly once. UIUpdateError is never fatal. NotFound covers replay without a
recording and stale control-panel references.
"""

from enum import Enum
from typing import Optional


class AbortReason(str, Enum):
    """Why a turn ended in the ABORTED state."""

    BACKEND_UNAVAILABLE = "backend_unavailable"
    NO_RESPONSE = "no_response"
    TIMEOUT = "timeout"
    SYNTHESIS_ERROR = "synthesis_error"
    PLAYBACK_ERROR = "playback_error"


class TurnError(Exception):
    """Base exception for errors raised by the turn pipeline."""

    reason: Optional[AbortReason] = None


class BackendUnavailable(TurnError):
    """AI backend create/append/run transport failure."""

    reason = AbortReason.BACKEND_UNAVAILABLE


class NoResponse(TurnError):
    """Run finished without a retrievable assistant message."""

    reason = AbortReason.NO_RESPONSE


class AssistantTimeout(TurnError):
    """Run did not reach a terminal status before the deadline."""

    reason = AbortReason.TIMEOUT


class SynthesisError(TurnError):
    """Text-to-speech backend failure."""

    reason = AbortReason.SYNTHESIS_ERROR


class PlaybackError(TurnError):
    """Voice transport failure or missing connection during delivery."""

    reason = AbortReason.PLAYBACK_ERROR


class UIUpdateError(TurnError):
    """A Discord message could not be edited or deleted (always non-fatal)."""


class NotFound(TurnError):
    """No recording to replay, or a UI message reference went stale."""
