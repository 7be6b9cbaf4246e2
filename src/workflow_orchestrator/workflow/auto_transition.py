"""Daily auto-transition sweep.

For every active definition with ``metadata.autoTransition.enabled``, each running
instance is offered to the suggestion model. The top suggestion is written to the
suggestion log. Definitions using the ``execute`` strategy also have that suggestion
executed, but only when the global ``allow_execute`` switch is on; otherwise they are
treated as ``audit``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from .definition import WorkflowDefinition
from .instance import WorkflowInstance
from .records import AutoSuggestionLog
from .services import GetSuggestedTransitionsService
from .transitions import ExecuteTransitionCommand, ExecuteTransitionService

if TYPE_CHECKING:
    from workflow_orchestrator.state.stores import (
        DefinitionStore,
        InstanceStore,
        SuggestionLogStore,
    )

logger = logging.getLogger(__name__)

STRATEGY_AUDIT = "audit"
STRATEGY_EXECUTE = "execute"
DEFAULT_SYSTEM_ACTOR_ID = "system:auto-transition"


@dataclass(slots=True)
class AutoTransitionRunSummary:
    definitions_scanned: int = 0
    instances_scanned: int = 0
    suggestions_logged: int = 0
    transitions_executed: int = 0
    failures: list[str] = field(default_factory=list)


class AutoTransitionJob:
    def __init__(
        self,
        *,
        definitions: DefinitionStore,
        instances: InstanceStore,
        suggestion_logs: SuggestionLogStore,
        suggestions: GetSuggestedTransitionsService,
        transitions: ExecuteTransitionService | None = None,
        allow_execute: bool = False,
        system_actor_id: str = DEFAULT_SYSTEM_ACTOR_ID,
    ) -> None:
        self._definitions = definitions
        self._instances = instances
        self._suggestion_logs = suggestion_logs
        self._suggestions = suggestions
        self._transitions = transitions
        self._allow_execute = allow_execute
        self._system_actor_id = system_actor_id

    def _effective_strategy(self, definition: WorkflowDefinition) -> str:
        strategy = definition.auto_transition_policy.strategy
        if strategy == STRATEGY_EXECUTE:
            if self._allow_execute and self._transitions is not None:
                return STRATEGY_EXECUTE
            logger.warning(
                "Execute strategy is disabled; recording suggestions only",
                extra={"definition_id": definition.id},
            )
            return STRATEGY_AUDIT
        if strategy != STRATEGY_AUDIT:
            logger.warning(
                "Unknown auto-transition strategy; recording suggestions only",
                extra={"definition_id": definition.id, "strategy": strategy},
            )
        return STRATEGY_AUDIT

    async def run(self) -> AutoTransitionRunSummary:
        summary = AutoTransitionRunSummary()
        logger.info("Workflow auto-transition job started")

        definitions = [
            d for d in await self._definitions.find_active() if d.auto_transition_policy.enabled
        ]
        if not definitions:
            logger.info("No workflows with autoTransition enabled")
            return summary

        for definition in definitions:
            summary.definitions_scanned += 1
            strategy = self._effective_strategy(definition)
            instances = await self._instances.find_running_by_definition(definition.id)
            for instance in instances:
                summary.instances_scanned += 1
                try:
                    await self._process(instance, strategy, summary)
                except Exception as e:
                    logger.warning(
                        "Auto-suggestion failed for instance",
                        extra={"instance_id": instance.id, "error": str(e)},
                    )
                    summary.failures.append(instance.id)

        logger.info(
            "Workflow auto-transition job finished",
            extra={
                "definitions_scanned": summary.definitions_scanned,
                "instances_scanned": summary.instances_scanned,
                "suggestions_logged": summary.suggestions_logged,
                "transitions_executed": summary.transitions_executed,
                "failures": len(summary.failures),
            },
        )
        return summary

    async def _process(
        self, instance: WorkflowInstance, strategy: str, summary: AutoTransitionRunSummary
    ) -> None:
        suggestions = await self._suggestions.get_suggested_transitions(
            instance.id, instance.organization_id, instance.context
        )
        if not suggestions:
            return

        top = suggestions[0]
        await self._suggestion_logs.create(
            AutoSuggestionLog(
                workflow_instance_id=instance.id,
                organization_id=instance.organization_id,
                suggested_to_state=top.to_state,
                reason=top.reason or None,
                strategy=strategy,
            )
        )
        summary.suggestions_logged += 1
        logger.debug(
            "Auto-transition suggestion recorded",
            extra={"instance_id": instance.id, "to_state": top.to_state, "strategy": strategy},
        )

        if strategy != STRATEGY_EXECUTE or self._transitions is None:
            return

        result = await self._transitions.execute(
            ExecuteTransitionCommand(
                instance_id=instance.id,
                to_state=top.to_state,
                user_id=self._system_actor_id,
                organization_id=instance.organization_id,
                entity=instance.context,
            )
        )
        if result.success:
            summary.transitions_executed += 1
            logger.info(
                "Auto-transition executed",
                extra={"instance_id": instance.id, "to_state": top.to_state},
            )
        else:
            logger.info(
                "Auto-transition rejected",
                extra={"instance_id": instance.id, "to_state": top.to_state, "error": result.error},
            )


def next_run_after(now: datetime, *, hour: int, minute: int) -> datetime:
    """Return the first daily run time (UTC) strictly after `now`."""

    now = now.astimezone(UTC)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DailyScheduler:
    """Runs a coroutine job once a day on a background daemon thread.

    Each run gets a fresh event loop through :func:`asyncio.run`. A failing run is
    logged and the schedule continues.
    """

    def __init__(
        self,
        job: Callable[[], Coroutine[Any, Any, object]],
        *,
        hour: int,
        minute: int,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._job = job
        self._hour = hour
        self._minute = minute
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="workflow-auto-transition", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def run_once(self) -> object:
        try:
            return asyncio.run(self._job())
        except Exception:
            logger.exception("Scheduled auto-transition run failed")
            return None

    def run_forever(self) -> None:
        while not self._stop.is_set():
            now = self._clock()
            due = next_run_after(now, hour=self._hour, minute=self._minute)
            logger.info("Next auto-transition run scheduled", extra={"due": due.isoformat()})
            if self._stop.wait((due - now).total_seconds()):
                break
            self.run_once()
