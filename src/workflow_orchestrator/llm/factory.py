"""Factory for creating LLM providers."""

import logging

from workflow_orchestrator.llm.openai_provider import OpenAIProvider
from workflow_orchestrator.llm.provider import LLMProvider
from workflow_orchestrator.llm.registry import ModelDescriptor

logger = logging.getLogger(__name__)


class LLMFactory:
    """Factory for creating LLM provider instances."""

    @staticmethod
    def create(
        descriptor: ModelDescriptor,
        *,
        temperature: float = 0.0,
        timeout: float | None = None,
    ) -> LLMProvider:
        """Create a provider for a model descriptor.

        Args:
            descriptor: Model endpoint and credentials.
            temperature: Default sampling temperature.
            timeout: HTTP-level timeout in seconds.

        Returns:
            Configured LLM provider instance.

        Raises:
            ValueError: If the descriptor cannot be used (e.g. no API key).
        """
        logger.debug("Creating LLM provider", extra={"model": descriptor.model})
        return OpenAIProvider(descriptor, temperature=temperature, timeout=timeout)
