"""Abstract base class for LLM providers."""

import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """A provider call failed (network, timeout, API error, empty reply)."""


class LLMProvider(ABC):
    """Abstract base class for chat-style LLM backends.

    The engine issues exactly one chat request per guard or suggestion call and
    treats the reply as free text.
    """

    model: str

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate a chat completion from messages.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional provider-specific parameters.

        Returns:
            The reply text.

        Raises:
            LLMProviderError: If the request fails.
        """

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None


async def close_quietly(provider: LLMProvider) -> None:
    """Close `provider`, logging rather than raising on failure."""
    try:
        await provider.aclose()
    except Exception as e:
        logger.debug("Failed to close LLM provider", extra={"error": str(e)})
