"""
Conversation models.

Sessions and messages belong to the surrounding chat product; the pipeline
only reads history and persists the assistant's finished answer.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .document import _new_id, _utcnow


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMode(str, Enum):
    """
    Conversation modes.

    Each mode selects the system instruction sent with every completion
    (see generation/prompts.py). CLAIMS is the default.
    """

    CLAIMS = "claims_mode"
    TRANSITION = "transition_mode"
    DOCUMENT = "document_mode"
    MENTAL_HEALTH = "mental_health_mode"
    EDUCATION = "education_mode"
    CAREER = "career_mode"
    FINANCE = "finance_mode"
    HOUSING = "housing_mode"
    SURVIVOR = "survivor_mode"
    TRAINING = "training_mode"


class ChatSession(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Message(BaseModel):
    """One message of a chat session."""

    id: str = Field(default_factory=_new_id)
    session_id: str
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


class StreamEventType(str, Enum):
    """
    Events produced by the completion streamer.

    A stream is zero or more TOKEN events followed by exactly one terminal
    event: COMPLETE or ERROR.
    """

    TOKEN = "token"
    COMPLETE = "complete"
    ERROR = "error"


class StreamEvent(BaseModel):
    """
    One event of a streamed completion.

    TOKEN:    text holds the increment, index its position in the stream.
    COMPLETE: message holds the persisted assistant message (None when the
              model produced no text).
    ERROR:    code and text describe the failure; nothing was persisted.
    """

    event: StreamEventType
    text: str = ""
    index: int = 0
    code: Optional[str] = None
    message: Optional[Message] = None

    @property
    def is_terminal(self) -> bool:
        return self.event != StreamEventType.TOKEN

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict for the transport layer."""
        data: dict[str, Any] = {"event": self.event.value}
        if self.event == StreamEventType.TOKEN:
            data["data"] = {"token": self.text, "index": self.index}
        elif self.event == StreamEventType.COMPLETE:
            data["data"] = {
                "message_id": self.message.id if self.message else None,
                "full_answer": self.message.content if self.message else "",
            }
        else:
            data["data"] = {"code": self.code, "message": self.text}
        return data
