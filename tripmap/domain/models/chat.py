"""Domain models specific to chat interactions.

Includes the `Message` entity, the `ConversationHistory` aggregate root and
the typed `ChatReply` returned by the chat gateway.
"""

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, TypedDict

from tripmap.domain.models.common import MessageRole, ReplyText

USER = MessageRole("user")
ASSISTANT = MessageRole("assistant")
SYSTEM = MessageRole("system")

VALID_ROLES = (USER, ASSISTANT, SYSTEM)


class ChatMessage(TypedDict):
    """Represents a message structure expected by chat-completion APIs."""
    role: MessageRole
    content: str


@dataclass(frozen=True)
class Message:
    """Entity representing a single message within a conversation."""
    role: MessageRole
    content: str

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    def to_chat_message(self) -> ChatMessage:
        """Converts this domain Message to the ChatMessage format for API calls."""
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationHistory:
    """Aggregate root representing an ongoing conversation, in chronological order."""
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    messages: List[Message] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def add_message(self, role: MessageRole, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message

    def get_history(self) -> List[Message]:
        """Returns a copy of the full message history."""
        return list(self.messages)

    def __len__(self) -> int:
        return len(self.messages)


class DegradedReason(enum.Enum):
    """Why the chat gateway answered with a fixed degraded reply instead of the model's."""
    OVERLOADED = "overloaded"
    TRANSIENT = "transient"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ChatReply:
    """Typed result of a chat turn: the text to show plus the degradation reason, if any."""
    text: ReplyText
    degraded_reason: Optional[DegradedReason] = None

    @property
    def is_degraded(self) -> bool:
        return self.degraded_reason is not None

    @property
    def is_overloaded(self) -> bool:
        return self.degraded_reason is DegradedReason.OVERLOADED

    def __str__(self) -> str:
        return str(self.text)
