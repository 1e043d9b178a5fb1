"""Domain models for stored conversations."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ConversationRecord:
    """Represents a persisted conversation."""

    id: int
    title: str
    created_at_millis: int
    is_meal_detection: bool


@dataclass(frozen=True)
class MessageRecord:
    """Represents a persisted conversation message."""

    id: int
    conversation_id: int
    content: str
    from_user: bool
    timestamp_millis: int
