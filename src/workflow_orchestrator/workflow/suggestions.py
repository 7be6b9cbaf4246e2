"""Advisory next-state recommendations from the default model.

Suggestions are best-effort: every failure path returns an empty list.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from workflow_orchestrator.llm.factory import LLMFactory
from workflow_orchestrator.llm.parsing import extract_json_object
from workflow_orchestrator.llm.provider import close_quietly
from workflow_orchestrator.llm.registry import ModelRegistry

from .ai_guard import ProviderFactory

logger = logging.getLogger(__name__)

SUGGESTION_TIMEOUT_SECONDS = 8.0
SUGGESTION_MAX_TOKENS = 512
MAX_SUGGESTIONS = 2

SUGGESTION_SYSTEM_PROMPT = (
    "You recommend 1-2 next workflow transitions. Reply with valid JSON only: "
    '{ "suggestions": [ { "toState": "stateName", "reason": "short reason" } ] }. No markdown.'
)


@dataclass(frozen=True, slots=True)
class SuggestedTransition:
    to_state: str
    reason: str = ""


def build_suggestion_prompt(
    *,
    current_state: str,
    entity_type: str,
    to_states: Sequence[str],
    entity: Mapping[str, Any] | None = None,
) -> str:
    parts = [
        f"Current workflow state: {current_state}",
        f"Entity type: {entity_type}",
        f"Possible next states: {', '.join(to_states)}",
    ]
    if entity:
        parts.append(f"Entity data: {json.dumps(entity, ensure_ascii=False, default=str)}")
    parts.append(
        "\nRecommend 1-2 best next states with a short reason for each. Reply with JSON: "
        '{ "suggestions": [ { "toState": "...", "reason": "..." } ] }'
    )
    return "\n".join(parts)


def parse_suggestions(reply: str, valid_to_states: Sequence[str]) -> list[SuggestedTransition]:
    """Keep the first suggestion for each reachable state, at most two."""

    obj = extract_json_object(reply)
    raw = obj.get("suggestions")
    if not isinstance(raw, list):
        return []
    valid = set(valid_to_states)
    seen: set[str] = set()
    out: list[SuggestedTransition] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        to_state = item.get("toState")
        if not isinstance(to_state, str) or to_state not in valid or to_state in seen:
            continue
        seen.add(to_state)
        reason = item.get("reason")
        out.append(SuggestedTransition(to_state=to_state, reason=reason if isinstance(reason, str) else ""))
        if len(out) == MAX_SUGGESTIONS:
            break
    return out


class AiSuggestionService:
    def __init__(
        self,
        models: ModelRegistry,
        *,
        timeout_seconds: float = SUGGESTION_TIMEOUT_SECONDS,
        temperature: float = 0.0,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self._models = models
        self._timeout = timeout_seconds
        self._provider_factory = provider_factory or (
            lambda d: LLMFactory.create(d, temperature=temperature, timeout=timeout_seconds)
        )

    async def get_suggested_transitions(
        self,
        *,
        current_state: str,
        entity_type: str,
        to_states: Sequence[str],
        entity: Mapping[str, Any] | None = None,
        instance_id: str | None = None,
    ) -> list[SuggestedTransition]:
        if not to_states:
            return []
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        try:
            descriptor = await asyncio.wait_for(self._models.find_default(), timeout=self._timeout)
            if descriptor is None or not descriptor.api_key:
                return []

            prompt = build_suggestion_prompt(
                current_state=current_state,
                entity_type=entity_type,
                to_states=to_states,
                entity=entity,
            )
            provider = self._provider_factory(descriptor)
            try:
                reply = await asyncio.wait_for(
                    provider.chat(
                        [
                            {"role": "system", "content": SUGGESTION_SYSTEM_PROMPT},
                            {"role": "user", "content": prompt},
                        ],
                        max_tokens=SUGGESTION_MAX_TOKENS,
                    ),
                    timeout=max(deadline - loop.time(), 0.0),
                )
            finally:
                await close_quietly(provider)

            return parse_suggestions(reply, to_states)
        except Exception as e:
            logger.info(
                "Suggestion request failed",
                extra={"instance_id": instance_id, "error": str(e) or type(e).__name__},
            )
            return []
