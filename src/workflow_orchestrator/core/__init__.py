"""Core package initialization."""

from workflow_orchestrator.core.config import (
    AutoTransitionConfig,
    LLMConfig,
    OrchestratorConfig,
    StateConfig,
)

__all__ = [
    "AutoTransitionConfig",
    "LLMConfig",
    "OrchestratorConfig",
    "StateConfig",
]
