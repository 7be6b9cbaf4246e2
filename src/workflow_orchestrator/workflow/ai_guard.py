"""LLM-judged transition guards (`ai_guard` / `ai_guard:<rule>`).

The guard fails closed: anything other than an explicit ``"allowed": true`` from
the model rejects the transition.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from workflow_orchestrator.llm.factory import LLMFactory
from workflow_orchestrator.llm.parsing import JSONExtractionError, extract_json_object
from workflow_orchestrator.llm.provider import LLMProvider, close_quietly
from workflow_orchestrator.llm.registry import ModelDescriptor, ModelRegistry

from .definition import TransitionDefinition

logger = logging.getLogger(__name__)

GUARD_TIMEOUT_SECONDS = 5.0
GUARD_MAX_TOKENS = 256

GUARD_SYSTEM_PROMPT = (
    "You decide if a workflow transition is allowed. Reply with valid JSON only: "
    '{ "allowed": true or false, "reason": "short explanation" }. No markdown.'
)

ProviderFactory = Callable[[ModelDescriptor], LLMProvider]


@dataclass(frozen=True, slots=True)
class AiGuardResult:
    allowed: bool
    reason: str | None = None
    model: str | None = None
    error: str | None = None


def _json(value: Mapping[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def build_guard_prompt(
    *,
    entity: Mapping[str, Any] | None,
    current_state: str,
    context: Mapping[str, Any] | None,
    transition: TransitionDefinition,
    to_state: str,
) -> str:
    parts = [
        f"Current state: {current_state}",
        f"Target state: {to_state}",
        f"Transition: {transition.from_state} -> {transition.to_state}",
    ]
    if entity:
        parts.append(f"Entity data: {_json(entity)}")
    if context:
        parts.append(f"Workflow context: {_json(context)}")
    rule = transition.ai_guard_rule
    if rule:
        parts.append(f"Additional rule: {rule}")
    parts.append(
        '\nShould this transition be allowed? Reply with JSON: { "allowed": true|false, "reason": "..." }'
    )
    return "\n".join(parts)


class AiGuardEvaluator:
    """Asks the default model whether a transition may proceed."""

    def __init__(
        self,
        models: ModelRegistry,
        *,
        timeout_seconds: float = GUARD_TIMEOUT_SECONDS,
        temperature: float = 0.0,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self._models = models
        self._timeout = timeout_seconds
        self._provider_factory = provider_factory or (
            lambda d: LLMFactory.create(d, temperature=temperature, timeout=timeout_seconds)
        )

    async def evaluate_guard(
        self,
        entity: Mapping[str, Any] | None,
        *,
        current_state: str,
        context: Mapping[str, Any] | None,
        transition: TransitionDefinition,
        to_state: str,
    ) -> AiGuardResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        try:
            descriptor = await asyncio.wait_for(self._models.find_default(), timeout=self._timeout)
        except TimeoutError:
            return self._timed_out(to_state, None)
        except Exception as e:
            logger.warning("Default model lookup failed", extra={"error": str(e)})
            return AiGuardResult(allowed=False, reason="No AI model configured", error=str(e))

        if descriptor is None or not descriptor.api_key:
            return AiGuardResult(
                allowed=False, reason="No AI model configured", error="No default model"
            )

        prompt = build_guard_prompt(
            entity=entity,
            current_state=current_state,
            context=context,
            transition=transition,
            to_state=to_state,
        )
        messages = [
            {"role": "system", "content": GUARD_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        try:
            provider = self._provider_factory(descriptor)
        except Exception as e:
            return AiGuardResult(allowed=False, reason=str(e), error=str(e), model=descriptor.model)

        try:
            # The lookup and the call share one budget.
            reply = await asyncio.wait_for(
                provider.chat(messages, max_tokens=GUARD_MAX_TOKENS),
                timeout=max(deadline - loop.time(), 0.0),
            )
        except TimeoutError:
            return self._timed_out(to_state, descriptor.model)
        except Exception as e:
            message = str(e) or "AI guard evaluation failed"
            logger.warning("AI guard call failed", extra={"to_state": to_state, "error": message})
            return AiGuardResult(allowed=False, reason=message, error=message, model=descriptor.model)
        finally:
            await close_quietly(provider)

        try:
            obj = extract_json_object(reply)
        except JSONExtractionError as e:
            return AiGuardResult(allowed=False, reason=str(e), model=descriptor.model)

        reason = obj.get("reason")
        return AiGuardResult(
            allowed=obj.get("allowed") is True,
            reason=reason if isinstance(reason, str) else None,
            model=descriptor.model,
        )

    def _timed_out(self, to_state: str, model: str | None) -> AiGuardResult:
        message = f"AI guard timed out after {self._timeout:g}s"
        logger.warning(message, extra={"to_state": to_state})
        return AiGuardResult(allowed=False, reason=message, error=message, model=model)

