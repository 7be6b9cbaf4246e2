"""OpenAI-compatible LLM provider implementation."""

import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from workflow_orchestrator.llm.provider import LLMProvider, LLMProviderError
from workflow_orchestrator.llm.registry import ModelDescriptor

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIProvider(LLMProvider):
    """Chat completions against any OpenAI-compatible endpoint."""

    def __init__(
        self,
        descriptor: ModelDescriptor,
        *,
        temperature: float = 0.0,
        timeout: float | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            descriptor: Model endpoint, credentials and model name.
            temperature: Default sampling temperature.
            timeout: Per-request timeout in seconds, enforced by the HTTP client.

        Raises:
            ValueError: If the descriptor carries no API key.
        """
        if not descriptor.api_key:
            raise ValueError("Model API key is required")

        self.model = descriptor.model or DEFAULT_MODEL
        self.temperature = temperature
        # One attempt per call; callers bound it with their own timeout.
        self.client = AsyncOpenAI(
            api_key=descriptor.api_key,
            base_url=descriptor.base_url or None,
            timeout=timeout,
            max_retries=0,
        )

        logger.debug(
            "OpenAI provider initialized",
            extra={"model": self.model, "base_url": descriptor.base_url},
        )

    async def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        temp = temperature if temperature is not None else self.temperature

        logger.debug(f"Generating chat completion with {len(messages)} messages")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore
                max_tokens=max_tokens,
                temperature=temp,
                **kwargs,
            )
        except OpenAIError as e:
            raise LLMProviderError(str(e) or type(e).__name__) from e

        if not response.choices:
            raise LLMProviderError("Empty response from model")
        content = response.choices[0].message.content or ""
        logger.debug(f"Generated {len(content)} characters")

        return content

    async def aclose(self) -> None:
        await self.client.close()
