"""Chat gateway: one conversation window in, one typed reply out.

Wraps the chat model behind the RetryOrchestrator and folds every failure
into a fixed, user-facing degraded reply. `send` never raises; callers
decide what to do with the `DegradedReason` of the result.
"""

import logging
from typing import List, Optional, Sequence, Union

from tripmap.core.exceptions import MalformedResponse, RateLimited, UpstreamError
from tripmap.domain.interfaces.chat_model import ChatModel
from tripmap.domain.models.chat import SYSTEM, ChatMessage, ChatReply, ConversationHistory, DegradedReason, Message
from tripmap.domain.models.common import CHAT, ReplyText
from tripmap.infrastructure.config.settings import DEFAULT_HISTORY_WINDOW
from tripmap.infrastructure.resilience.api_retry import RetryOrchestrator

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Tu es un expert en voyages. Réponds de manière concise et utile en français. "
    "Limite tes réponses à 100 mots maximum."
)

DEGRADED_REPLIES = {
    DegradedReason.OVERLOADED: ReplyText(
        "Je suis désolé, mais le service est temporairement surchargé. "
        "Veuillez réessayer dans quelques instants."
    ),
    DegradedReason.TRANSIENT: ReplyText(
        "Je suis désolé, une erreur s'est produite. Veuillez réessayer dans quelques instants."
    ),
    DegradedReason.MALFORMED: ReplyText(
        "Je suis désolé, j'ai reçu une réponse que je ne peux pas interpréter. Veuillez réessayer."
    ),
}


def degraded_reply(reason: DegradedReason) -> ChatReply:
    return ChatReply(text=DEGRADED_REPLIES[reason], degraded_reason=reason)


def build_window(
    messages: Sequence[Message], system_prompt: str = SYSTEM_PROMPT, size: int = DEFAULT_HISTORY_WINDOW
) -> List[ChatMessage]:
    """Builds the messages sent upstream.

    The first system message of the history is kept (the default prompt is
    used when there is none) as entry zero, followed by the most recent
    non-system messages, `size` entries in total.
    """
    system = next((m for m in messages if m.role == SYSTEM), None) or Message(role=SYSTEM, content=system_prompt)
    conversation = [m for m in messages if m.role != SYSTEM]
    keep = max(size - 1, 0)
    recent = conversation[-keep:] if keep else []
    return [system.to_chat_message()] + [m.to_chat_message() for m in recent]


class ChatGateway:
    """Sends a conversation to the chat model and always returns a ChatReply."""

    def __init__(
        self,
        chat_model: Optional[ChatModel],
        retry_orchestrator: RetryOrchestrator,
        system_prompt: str = SYSTEM_PROMPT,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ):
        """Initializes the gateway.

        Args:
            chat_model: The chat-completion adapter, None when the service is not configured.
            retry_orchestrator: Applies throttling, retries and the 'chat' circuit.
            system_prompt: Prepended when the history has no system message.
            history_window: Number of entries sent upstream, system prompt included.
        """
        self.chat_model = chat_model
        self.retry_orchestrator = retry_orchestrator
        self.system_prompt = system_prompt
        self.history_window = history_window

    def _parse(self, raw_response) -> str:
        text = self.chat_model.parse_reply(raw_response)
        if not text.strip():
            raise ValueError("Empty reply")
        return text

    async def send(self, history: Union[ConversationHistory, Sequence[Message]]) -> ChatReply:
        """Returns the model's reply to `history`, or a degraded reply on any failure."""
        if self.chat_model is None:
            logger.error("Chat service configuration error: no chat model configured.")
            return degraded_reply(DegradedReason.TRANSIENT)

        messages = history.get_history() if isinstance(history, ConversationHistory) else list(history)
        window = build_window(messages, self.system_prompt, self.history_window)
        logger.debug(f"Sending {len(window)} of {len(messages)} messages to the chat model.")

        try:
            text = await self.retry_orchestrator.execute(
                lambda: self.chat_model.create_completion(window), CHAT, parse=self._parse
            )
        except RateLimited as e:
            logger.warning(f"Chat service rate limited: {e}")
            return degraded_reply(DegradedReason.OVERLOADED)
        except MalformedResponse as e:
            logger.error(f"Chat service returned an unusable reply: {e}")
            return degraded_reply(DegradedReason.MALFORMED)
        except UpstreamError as e:
            logger.error(f"Chat service failed: {e}")
            return degraded_reply(DegradedReason.TRANSIENT)
        except Exception as e:
            logger.error(f"Unexpected error in chat gateway: {e}", exc_info=True)
            return degraded_reply(DegradedReason.TRANSIENT)

        return ChatReply(text=ReplyText(text))
