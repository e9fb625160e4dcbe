"""
Wire schemas for the external reasoning service.

The service speaks the OpenAI-compatible chat-completions protocol; the
assistant message content must itself be a JSON object matching
IntentResponse. Anything else is a parse failure.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telesense.services.domain import DrivingIntent


class IntentResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    intent: DrivingIntent
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str = "No explanation provided"
    factors: list[str] = Field(default_factory=list)

    @field_validator("intent", mode="before")
    @classmethod
    def normalise_intent(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class ChatMessage(BaseModel):
    role: str = "assistant"
    content: str


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatCompletion(BaseModel):
    """Only the fields we read; the rest of the envelope is ignored."""
    model_config = ConfigDict(extra="ignore")

    choices: list[ChatChoice] = Field(min_length=1)
