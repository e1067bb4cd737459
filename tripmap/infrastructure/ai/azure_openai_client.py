"""Concrete implementation of the ChatModel interface using Azure OpenAI.

Hides the specifics of the OpenAI client library. The SDK's own retries are
disabled: every attempt is driven by the RetryOrchestrator so that the
chat throttle and circuit see each request.
"""

import logging
from typing import Any, List, Optional

from openai import AsyncAzureOpenAI

from tripmap.domain.interfaces.chat_model import ChatModel
from tripmap.domain.models.chat import ChatMessage
from tripmap.infrastructure.config.settings import DEFAULT_AZURE_OPENAI_API_VERSION

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 150
DEFAULT_TEMPERATURE = 0.7


class AzureChatClient(ChatModel):
    """Azure OpenAI implementation of the ChatModel interface."""

    def __init__(
        self,
        endpoint: Optional[str],
        api_key: Optional[str],
        deployment: Optional[str],
        api_version: str = DEFAULT_AZURE_OPENAI_API_VERSION,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        client: Optional[AsyncAzureOpenAI] = None,
    ):
        """Initializes the Azure OpenAI client.

        Args:
            endpoint: Azure OpenAI resource endpoint.
            api_key: Azure OpenAI key.
            deployment: Name of the chat model deployment.
            api_version: Azure OpenAI REST API version.
            max_tokens: Reply length cap.
            temperature: Sampling temperature.
            client: Pre-built SDK client (tests inject a mock here).

        Raises:
            ValueError: If endpoint, key or deployment is missing.
        """
        if not (endpoint and api_key and deployment):
            raise ValueError("Azure OpenAI endpoint, key and deployment must all be configured.")

        self.client = client or AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            api_key=api_key,
            api_version=api_version,
            max_retries=0,
        )
        self.deployment = deployment
        self.max_tokens = max_tokens
        self.temperature = temperature
        logger.info(f"AzureChatClient initialized for deployment: {self.deployment}")

    async def create_completion(self, messages: List[ChatMessage]) -> Any:
        logger.debug(f"Sending {len(messages)} messages to Azure OpenAI deployment: {self.deployment}")
        return await self.client.chat.completions.create(
            model=self.deployment,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def parse_reply(self, raw_response: Any) -> str:
        """Returns the content of the first choice.

        Raises:
            ValueError: If there is no choice or its content is not text.
        """
        choices = getattr(raw_response, "choices", None)
        if not choices:
            raise ValueError("Chat completion contains no choices")
        content = choices[0].message.content
        if not isinstance(content, str):
            raise ValueError(f"Chat completion content is not text: {type(content).__name__}")
        usage = getattr(raw_response, "usage", None)
        if usage is not None:
            logger.debug(f"Azure OpenAI usage: {usage}")
        return content

    async def aclose(self) -> None:
        await self.client.close()
