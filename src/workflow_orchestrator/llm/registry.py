"""Model descriptors and the default-model lookup."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, Field

from workflow_orchestrator.core.config import LLMConfig


class ModelDescriptor(BaseModel):
    """Where and how to reach a language model."""

    api_key: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    model: str | None = None


class ModelRegistry(Protocol):
    async def find_default(self) -> ModelDescriptor | None: ...


class StaticModelRegistry:
    """Serves one fixed descriptor (or none)."""

    def __init__(self, descriptor: ModelDescriptor | None) -> None:
        self._descriptor = descriptor

    @classmethod
    def from_config(cls, config: LLMConfig) -> StaticModelRegistry:
        if not config.api_key:
            return cls(None)
        return cls(
            ModelDescriptor(api_key=config.api_key, base_url=config.base_url, model=config.model)
        )

    async def find_default(self) -> ModelDescriptor | None:
        return self._descriptor
