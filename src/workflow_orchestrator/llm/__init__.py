"""LLM package initialization."""

from workflow_orchestrator.llm.factory import LLMFactory
from workflow_orchestrator.llm.provider import LLMProvider, LLMProviderError
from workflow_orchestrator.llm.registry import ModelDescriptor, ModelRegistry, StaticModelRegistry

__all__ = [
    "LLMFactory",
    "LLMProvider",
    "LLMProviderError",
    "ModelDescriptor",
    "ModelRegistry",
    "StaticModelRegistry",
]
