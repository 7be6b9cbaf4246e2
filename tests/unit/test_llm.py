"""Unit tests for the OpenAI-compatible provider and factory."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from openai import OpenAIError

from workflow_orchestrator.llm.factory import LLMFactory
from workflow_orchestrator.llm.openai_provider import DEFAULT_MODEL, OpenAIProvider
from workflow_orchestrator.llm.provider import LLMProviderError, close_quietly
from workflow_orchestrator.llm.registry import ModelDescriptor


def _provider(**create_kwargs: object) -> tuple[OpenAIProvider, AsyncMock]:
    provider = OpenAIProvider(
        ModelDescriptor(api_key="sk-test", base_url="http://localhost:8080/v1", model="local"),
        temperature=0.2,
    )
    create = AsyncMock(**create_kwargs)
    provider.client = Mock(chat=Mock(completions=Mock(create=create)), close=AsyncMock())
    return provider, create


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_requires_api_key() -> None:
    with pytest.raises(ValueError, match="API key"):
        OpenAIProvider(ModelDescriptor(api_key=None, model="m"))


def test_factory_defaults_model_name() -> None:
    provider = LLMFactory.create(ModelDescriptor(api_key="sk-test"), timeout=3.0)

    assert isinstance(provider, OpenAIProvider)
    assert provider.model == DEFAULT_MODEL


@pytest.mark.asyncio
async def test_chat_returns_message_content() -> None:
    provider, create = _provider(return_value=_completion('{"allowed": true}'))

    reply = await provider.chat([{"role": "user", "content": "hi"}], max_tokens=64)

    assert reply == '{"allowed": true}'
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "local"
    assert kwargs["max_tokens"] == 64
    assert kwargs["temperature"] == 0.2


@pytest.mark.asyncio
async def test_chat_wraps_sdk_errors() -> None:
    provider, _ = _provider(side_effect=OpenAIError("rate limited"))

    with pytest.raises(LLMProviderError, match="rate limited"):
        await provider.chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_chat_rejects_empty_choices() -> None:
    provider, _ = _provider(return_value=SimpleNamespace(choices=[]))

    with pytest.raises(LLMProviderError, match="Empty response"):
        await provider.chat([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_missing_content_is_empty_string() -> None:
    provider, _ = _provider(return_value=_completion(None))

    assert await provider.chat([{"role": "user", "content": "hi"}]) == ""


@pytest.mark.asyncio
async def test_close_quietly_swallows_close_errors() -> None:
    provider, _ = _provider()
    provider.client.close = AsyncMock(side_effect=RuntimeError("already closed"))

    await close_quietly(provider)

    provider.client.close.assert_awaited_once()
