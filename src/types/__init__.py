"""
Types Module

Error taxonomy and error event schema for the voice bridge
"""

from .errors import (
    AbortReason,
    TurnError,
    BackendUnavailable,
    NoResponse,
    AssistantTimeout,
    SynthesisError,
    PlaybackError,
    UIUpdateError,
    NotFound,
)
from .error_events import TurnErrorEvent

__all__ = [
    "AbortReason",
    "TurnError",
    "BackendUnavailable",
    "NoResponse",
    "AssistantTimeout",
    "SynthesisError",
    "PlaybackError",
    "UIUpdateError",
    "NotFound",
    "TurnErrorEvent",
]
