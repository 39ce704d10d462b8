"""
Conversation Data Models

Persisted shape of a slot-filling conversation:
{id, stage, step, isComplete, profileAccumulator, messages: [...]}
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque identifier for conversations and messages."""
    return uuid.uuid4().hex


class ConversationStep(str, Enum):
    """Question cursor driving which prompt is asked next."""

    COUNTRY = "COUNTRY"
    COUNTRY_OTHER = "COUNTRY_OTHER"
    DEGREE_LEVEL = "DEGREE_LEVEL"
    CURRENT_EDUCATION = "CURRENT_EDUCATION"
    GPA_SCORE = "GPA_SCORE"
    LANGUAGE_TEST = "LANGUAGE_TEST"
    LANGUAGE_SCORE = "LANGUAGE_SCORE"
    STANDARDIZED_TESTS = "STANDARDIZED_TESTS"
    ADDITIONAL_INFO = "ADDITIONAL_INFO"
    COMPLETE = "COMPLETE"


class ConversationStage(str, Enum):
    """Coarse lifecycle of a conversation."""

    GREETING = "GREETING"
    PROFILE_BUILDING = "PROFILE_BUILDING"
    COMPLETE = "COMPLETE"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(_CamelModel):
    """One chat message. Insertion order is the only ordering guarantee."""

    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant"]
    content: str
    options: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class ConversationRecord(_CamelModel):
    """Conversation state plus its message history."""

    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    stage: ConversationStage = ConversationStage.GREETING
    step: ConversationStep = ConversationStep.COUNTRY
    is_complete: bool = False
    profile_accumulator: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    messages: list[Message] = Field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        """Serialize to the camelCase API shape."""
        return self.model_dump(mode="json", by_alias=True)


class StartConversationResult(_CamelModel):
    """Result of creating a conversation: its id and the first question."""

    conversation_id: str
    message: str
    options: list[str] = Field(default_factory=list)


class TurnResult(_CamelModel):
    """Result of one dialogue turn."""

    user_message_id: str
    assistant_message_id: str
    assistant_message: str
    options: list[str] = Field(default_factory=list)
    is_complete: bool = False
