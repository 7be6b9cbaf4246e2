"""Transition execution: guard, action, entity side effect, persistence, audit.

Callers must serialize transitions per instance id; two concurrent executions
against the same instance can both pass the transition lookup with stale state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from . import events
from .actions import execute_action
from .ai_guard import AiGuardEvaluator
from .guards import ExpressionGuardEvaluator
from .records import ActionResult, GuardResult, HistoryEntry

if TYPE_CHECKING:
    from workflow_orchestrator.state.stores import (
        DefinitionStore,
        EntityUpdater,
        HistoryStore,
        InstanceStore,
    )

logger = logging.getLogger(__name__)

STATE_FIELD_CANDIDATES = ("state", "status", "workflowState", "currentState", "stage")
DEFAULT_STATE_FIELD = "state"


@dataclass(frozen=True, slots=True)
class ExecuteTransitionCommand:
    instance_id: str
    to_state: str
    user_id: str | None
    organization_id: str
    entity: Mapping[str, Any] | None = None
    entity_updater: EntityUpdater | None = None


@dataclass(frozen=True, slots=True)
class TransitionResult:
    success: bool
    error: str | None = None
    history_id: str | None = None
    updated_entity: object = None

    @classmethod
    def failed(cls, error: str) -> TransitionResult:
        return cls(success=False, error=error)


def determine_state_field(entity: Mapping[str, Any] | None) -> str:
    """Pick the entity field that mirrors the workflow state."""

    if not entity:
        return DEFAULT_STATE_FIELD
    for name in STATE_FIELD_CANDIDATES:
        if name in entity:
            return name
    return DEFAULT_STATE_FIELD


def publish_quietly(publisher: events.EventPublisher, event: events.WorkflowEvent) -> None:
    try:
        publisher.publish(event)
    except Exception as e:
        logger.warning(
            "Event publisher failed", extra={"event_type": event.type, "error": str(e)}
        )


class ExecuteTransitionService:
    """Moves a workflow instance along one declared transition.

    Expected failures (unknown or finished instance, unknown definition, undeclared
    transition, guard rejection) come back as ``TransitionResult(success=False)``
    before any action or entity update runs. A ``DomainError`` raised while applying
    the move propagates and nothing is persisted.
    """

    def __init__(
        self,
        *,
        instances: InstanceStore,
        definitions: DefinitionStore,
        history: HistoryStore,
        publisher: events.EventPublisher,
        ai_guard: AiGuardEvaluator,
        expression_guard: ExpressionGuardEvaluator | None = None,
    ) -> None:
        self._instances = instances
        self._definitions = definitions
        self._history = history
        self._publisher = publisher
        self._ai_guard = ai_guard
        self._expression_guard = expression_guard or ExpressionGuardEvaluator()

    async def execute(self, command: ExecuteTransitionCommand) -> TransitionResult:
        instance = await self._instances.find_by_id(command.instance_id, command.organization_id)
        if instance is None:
            return TransitionResult.failed("Workflow instance not found")
        if not instance.is_running:
            return TransitionResult.failed("Cannot transition: instance is not running")

        definition = await self._definitions.find_by_id(
            instance.workflow_definition_id, command.organization_id
        )
        if definition is None:
            return TransitionResult.failed("Workflow definition not found")

        from_state = instance.current_state
        transition = definition.find_transition(from_state, command.to_state)
        if transition is None:
            return TransitionResult.failed(
                f'No transition exists from "{from_state}" to "{command.to_state}"'
            )

        guard_result: GuardResult | None = None
        if transition.guard:
            if transition.is_ai_guarded:
                verdict = await self._ai_guard.evaluate_guard(
                    command.entity,
                    current_state=from_state,
                    context=instance.context,
                    transition=transition,
                    to_state=command.to_state,
                )
                guard_result = GuardResult(
                    passed=verdict.allowed,
                    type="ai_guard",
                    reason=verdict.reason,
                    model=verdict.model,
                    error=verdict.error,
                )
                if not verdict.allowed:
                    logger.info(
                        "AI guard rejected transition",
                        extra={"instance_id": instance.id, "to_state": command.to_state},
                    )
                    return TransitionResult.failed(verdict.reason or "AI guard rejected transition")
            else:
                validation = self._expression_guard.validate_transition(
                    transition, command.entity, instance.context
                )
                if not validation.valid:
                    return TransitionResult.failed(validation.error or "Guard condition failed")
                if validation.guard_result is not None:
                    guard_result = GuardResult(
                        passed=validation.guard_result.passed,
                        error=validation.guard_result.error,
                    )

        action_result: ActionResult | None = None
        if transition.action:
            action_result = execute_action(transition.action, command.entity, instance.context)

        updated_entity: object = None
        if command.entity_updater is not None and instance.entity_id:
            field_name = determine_state_field(command.entity)
            try:
                updated_entity = await command.entity_updater.update(
                    instance.entity_id, {field_name: command.to_state}, command.organization_id
                )
            except Exception as e:
                logger.warning(
                    "Failed to update entity state field",
                    extra={"instance_id": instance.id, "field": field_name, "error": str(e)},
                )

        instance.transition_to(command.to_state, definition)
        await self._instances.save(instance)

        entry = await self._history.create(
            HistoryEntry(
                workflow_instance_id=instance.id,
                from_state=from_state,
                to_state=command.to_state,
                triggered_by_id=command.user_id,
                guard_result=guard_result,
                action_result=action_result,
            )
        )

        if action_result is not None:
            publish_quietly(
                self._publisher,
                events.action_executed(
                    instance_id=instance.id,
                    action=transition.action or "",
                    executed=action_result.executed,
                    error=action_result.error,
                ),
            )
        publish_quietly(
            self._publisher,
            events.transitioned(
                instance_id=instance.id,
                from_state=from_state,
                to_state=command.to_state,
                triggered_by_id=command.user_id,
            ),
        )
        if definition.is_final_state(command.to_state):
            publish_quietly(
                self._publisher,
                events.instance_completed(
                    instance_id=instance.id,
                    final_state=command.to_state,
                    completed_at=instance.completed_at,
                ),
            )

        logger.info(
            "Workflow transition executed",
            extra={
                "instance_id": instance.id,
                "from_state": from_state,
                "to_state": command.to_state,
                "history_id": entry.id,
            },
        )
        return TransitionResult(success=True, history_id=entry.id, updated_entity=updated_entity)
