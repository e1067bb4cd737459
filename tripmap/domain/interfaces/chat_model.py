"""Interface for chat-completion models.

Defines the contract for sending a conversation window to a chat-completion
provider. Implementations perform exactly one attempt; retries, throttling
and circuit breaking are applied by the caller through the RetryOrchestrator.
"""

import abc
from typing import Any, List

from tripmap.domain.models.chat import ChatMessage


class ChatModel(abc.ABC):
    """Abstract Base Class for chat-completion interactions."""

    @abc.abstractmethod
    async def create_completion(self, messages: List[ChatMessage]) -> Any:
        """Sends the messages to the provider once and returns the raw response.

        Args:
            messages: The conversation window, system prompt first.

        Returns:
            The raw provider response (an `httpx.Response` or an SDK object).

        Raises:
            Exception: Transport and status errors from the underlying client.
        """
        pass

    @abc.abstractmethod
    def parse_reply(self, raw_response: Any) -> str:
        """Extracts the reply text from a successful raw response.

        Raises:
            ValueError: If the response does not contain a textual reply.
        """
        pass
