"""
Turn Error Event

Purpose: Standardized record of an aborted turn. The orchestrator builds one
TurnErrorEvent per abort and hands it to the reporter, which turns it into the
single user-visible notice; the technical details only go to the logs.

Design Pattern: Observer Pattern - orchestrator emits, reporter renders
"""

from typing import Optional
from pydantic import BaseModel, Field

from src.types.errors import AbortReason, TurnError


# User-facing text per abort reason
USER_MESSAGES = {
    AbortReason.BACKEND_UNAVAILABLE: "⛑️ Couldn't reach the assistant. Please try again.",
    AbortReason.NO_RESPONSE: "🚫 The assistant didn't come back with an answer.",
    AbortReason.TIMEOUT: "⏳ The assistant took too long to answer. Please try again.",
    AbortReason.SYNTHESIS_ERROR: "⛑️ Error generating the audio.",
    AbortReason.PLAYBACK_ERROR: "⛑️ Error playing the audio in the voice channel.",
}

RETRYABLE = {
    AbortReason.BACKEND_UNAVAILABLE,
    AbortReason.TIMEOUT,
    AbortReason.PLAYBACK_ERROR,
}


class TurnErrorEvent(BaseModel):
    """
    Standardized error event emitted when a turn aborts.

    Attributes:
        reason: Abort reason (see AbortReason)
        user_message: Human-readable message for the Discord notice
        technical_details: Detailed error info for server logs
        user_id: Discord user id of the turn's author
        retry_suggested: Whether the user should simply try again

    Example:
        ```python
        event = TurnErrorEvent.from_error(NoResponse("run failed"), user_id="42")
        await interaction.edit_original_response(content=event.user_message)
        ```
    """

    reason: AbortReason = Field(..., description="Why the turn aborted")
    user_message: str = Field(
        ...,
        description="User-friendly error message for the notice",
        min_length=1,
        max_length=500
    )
    technical_details: str = Field(
        ...,
        description="Technical error details for server logs",
        min_length=1,
        max_length=2000
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Discord user id of the turn's author"
    )
    retry_suggested: bool = Field(
        default=False,
        description="Whether user should retry the operation"
    )

    @classmethod
    def from_error(cls, error: TurnError, user_id: Optional[str] = None) -> "TurnErrorEvent":
        reason = error.reason or AbortReason.BACKEND_UNAVAILABLE
        details = f"{type(error).__name__}: {error}"
        return cls(
            reason=reason,
            user_message=USER_MESSAGES[reason],
            technical_details=details[:2000],
            user_id=user_id,
            retry_suggested=reason in RETRYABLE,
        )
