"""OpenAI LLM service for streamed, context-grounded responses."""

from typing import AsyncIterator, List, Optional

from openai import AsyncOpenAI

from pdf_rag.core.config import settings
from pdf_rag.core.exceptions import LLMError
from pdf_rag.models.chat import ConversationMessage, TokenUsage


class LLMService:
    """Service for generating streamed LLM responses."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        """Initialize the LLM service."""
        self._client = client
        self.model = settings.llm_model
        self.temperature = settings.llm_temperature

    @property
    def client(self) -> AsyncOpenAI:
        """OpenAI client, created on first use."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def stream_response(
        self,
        system_prompt: str,
        messages: List[ConversationMessage],
        usage: Optional[TokenUsage] = None,
    ) -> AsyncIterator[str]:
        """
        Stream a response conditioned on the retrieval system prompt.

        Args:
            system_prompt: Instructions with the retrieved context embedded.
            messages: Conversation so far, oldest first.
            usage: Filled in with token counts once the stream finishes.

        Yields:
            Text deltas as they arrive.

        Raises:
            LLMError: If response generation fails.
        """
        chat_messages = [{"role": "system", "content": system_prompt}]
        chat_messages.extend(
            {"role": message.role, "content": message.content}
            for message in messages
            if message.role != "system"
        )

        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=chat_messages,
                temperature=self.temperature,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                if chunk.usage is not None and usage is not None:
                    usage.prompt_tokens = chunk.usage.prompt_tokens
                    usage.completion_tokens = chunk.usage.completion_tokens
                    usage.total_tokens = chunk.usage.total_tokens
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except Exception as e:
            raise LLMError(f"Failed to generate response: {str(e)}") from e
