"""Test configuration and fixtures."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from workflow_orchestrator.core.config import (
    AutoTransitionConfig,
    LLMConfig,
    OrchestratorConfig,
    StateConfig,
)
from workflow_orchestrator.llm.provider import LLMProvider
from workflow_orchestrator.llm.registry import ModelDescriptor, StaticModelRegistry
from workflow_orchestrator.workflow.definition import (
    StateDefinition,
    TransitionDefinition,
    WorkflowDefinition,
)

ORG_ID = "org-1"


class FakeProvider(LLMProvider):
    """Replays a canned reply (or raises) and records the messages it received."""

    def __init__(
        self,
        reply: str = "",
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        model: str = "test-model",
    ) -> None:
        self.model = model
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[list[dict[str, str]]] = []
        self.closed = False

    async def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def aclose(self) -> None:
        self.closed = True


def build_definition(
    *,
    id: str = "def-1",
    organization_id: str = ORG_ID,
    transitions: list[TransitionDefinition] | None = None,
    metadata: dict[str, Any] | None = None,
    activate: bool = True,
) -> WorkflowDefinition:
    """Deal approval workflow: draft -> approved -> completed, plus draft -> rejected."""

    states = [
        StateDefinition("draft", initial=True),
        StateDefinition("approved"),
        StateDefinition("rejected", final=True),
        StateDefinition("completed", final=True),
    ]
    if transitions is None:
        transitions = [
            TransitionDefinition("draft", "approved"),
            TransitionDefinition("draft", "rejected"),
            TransitionDefinition("approved", "completed"),
        ]
    definition = WorkflowDefinition.create(
        id,
        organization_id,
        "Deal approval",
        "Opportunity",
        states,
        transitions,
        metadata=metadata,
    )
    if activate:
        definition.activate()
    return definition


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / ".state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(api_key="test-key", model="test-model")


@pytest.fixture
def state_config(temp_state_dir: Path) -> StateConfig:
    """Provide a test state configuration."""
    return StateConfig(storage_path=temp_state_dir)


@pytest.fixture
def orchestrator_config(llm_config: LLMConfig, state_config: StateConfig) -> OrchestratorConfig:
    """Provide a test orchestrator configuration."""
    return OrchestratorConfig(
        log_level="DEBUG",
        debug=True,
        llm=llm_config,
        state=state_config,
        auto_transition=AutoTransitionConfig(),
    )


@pytest.fixture
def model_registry() -> StaticModelRegistry:
    return StaticModelRegistry(
        ModelDescriptor(api_key="test-key", base_url=None, model="test-model")
    )
