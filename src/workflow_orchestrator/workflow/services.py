"""Instance lifecycle services: start, cancel, inspect, and transition queries."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from . import events
from .definition import TransitionDefinition, WorkflowDefinition
from .errors import BusinessRuleViolation
from .guards import ExpressionGuardEvaluator
from .instance import InstanceStatus, WorkflowInstance
from .records import HistoryEntry
from .suggestions import AiSuggestionService, SuggestedTransition
from .transitions import publish_quietly

if TYPE_CHECKING:
    from workflow_orchestrator.state.stores import DefinitionStore, HistoryStore, InstanceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StartWorkflowInstanceCommand:
    workflow_definition_id: str
    entity_type: str
    entity_id: str
    organization_id: str
    user_id: str | None
    context: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class CancelledInstance:
    id: str
    status: InstanceStatus
    cancelled_at: datetime


@dataclass(frozen=True, slots=True)
class WorkflowInstanceView:
    instance: WorkflowInstance
    definition: WorkflowDefinition | None


@dataclass(frozen=True, slots=True)
class AvailableTransition:
    transition: TransitionDefinition
    guard_passed: bool
    guard_error: str | None = None


class StartWorkflowInstanceService:
    def __init__(
        self,
        *,
        definitions: DefinitionStore,
        instances: InstanceStore,
        publisher: events.EventPublisher,
    ) -> None:
        self._definitions = definitions
        self._instances = instances
        self._publisher = publisher

    async def execute(self, command: StartWorkflowInstanceCommand) -> WorkflowInstance:
        """Start a new instance for an entity.

        Raises:
            BusinessRuleViolation: If the definition is missing or the entity already
                has a running instance of it.
            DomainError: If the definition is not active.
        """
        definition = await self._definitions.find_by_id(
            command.workflow_definition_id, command.organization_id
        )
        if definition is None:
            raise BusinessRuleViolation("Workflow definition not found")
        definition.ensure_can_start()

        existing = await self._instances.find_running_instance(
            command.entity_type,
            command.entity_id,
            command.workflow_definition_id,
            command.organization_id,
        )
        if existing is not None:
            raise BusinessRuleViolation("Workflow instance already exists for this entity")

        instance = WorkflowInstance.create(
            str(uuid.uuid4()),
            command.organization_id,
            definition,
            command.entity_type,
            command.entity_id,
            command.user_id,
            command.context,
        )
        await self._instances.save(instance)
        publish_quietly(
            self._publisher,
            events.instance_started(
                instance_id=instance.id,
                definition_id=definition.id,
                entity_type=command.entity_type,
                entity_id=command.entity_id,
            ),
        )
        logger.info(
            "Workflow instance started",
            extra={"instance_id": instance.id, "definition_id": definition.id},
        )
        return instance


class CancelWorkflowInstanceService:
    def __init__(self, *, instances: InstanceStore, publisher: events.EventPublisher) -> None:
        self._instances = instances
        self._publisher = publisher

    async def cancel(self, instance_id: str, organization_id: str) -> CancelledInstance:
        instance = await self._instances.find_by_id(instance_id, organization_id)
        if instance is None:
            raise BusinessRuleViolation("Workflow instance not found")
        if not instance.is_running:
            raise BusinessRuleViolation(
                f"Cannot cancel workflow instance in status: {instance.status.value}"
            )

        instance.cancel()
        await self._instances.save(instance)

        cancelled_at = instance.completed_at or datetime.now(tz=UTC)
        publish_quietly(
            self._publisher,
            events.instance_cancelled(instance_id=instance.id, cancelled_at=cancelled_at),
        )
        logger.info("Workflow instance cancelled", extra={"instance_id": instance.id})
        return CancelledInstance(id=instance.id, status=instance.status, cancelled_at=cancelled_at)


class GetWorkflowInstanceService:
    def __init__(self, *, instances: InstanceStore, definitions: DefinitionStore) -> None:
        self._instances = instances
        self._definitions = definitions

    async def get(self, instance_id: str, organization_id: str) -> WorkflowInstanceView:
        instance = await self._instances.find_by_id(instance_id, organization_id)
        if instance is None:
            raise BusinessRuleViolation(f"Workflow instance with ID {instance_id} not found")
        definition = await self._definitions.find_by_id(
            instance.workflow_definition_id, organization_id
        )
        return WorkflowInstanceView(instance=instance, definition=definition)


class GetAvailableTransitionsService:
    """Lists transitions leaving the current state with expression guards pre-evaluated.

    AI guards are only consulted on execution, so they are reported as passing.
    """

    def __init__(
        self,
        *,
        instances: InstanceStore,
        definitions: DefinitionStore,
        expression_guard: ExpressionGuardEvaluator | None = None,
    ) -> None:
        self._instances = instances
        self._definitions = definitions
        self._expression_guard = expression_guard or ExpressionGuardEvaluator()

    async def get_available_transitions(
        self,
        instance_id: str,
        organization_id: str,
        entity: Mapping[str, Any] | None = None,
    ) -> list[AvailableTransition]:
        instance = await self._instances.find_by_id(instance_id, organization_id)
        if instance is None:
            return []
        definition = await self._definitions.find_by_id(
            instance.workflow_definition_id, organization_id
        )
        if definition is None:
            return []

        available: list[AvailableTransition] = []
        for transition in definition.transitions_from(instance.current_state):
            if not transition.guard or transition.is_ai_guarded:
                available.append(AvailableTransition(transition=transition, guard_passed=True))
                continue
            result = self._expression_guard.evaluate(transition.guard, entity, instance.context)
            available.append(
                AvailableTransition(
                    transition=transition, guard_passed=result.passed, guard_error=result.error
                )
            )
        return available


class GetSuggestedTransitionsService:
    def __init__(
        self,
        *,
        instances: InstanceStore,
        definitions: DefinitionStore,
        suggestions: AiSuggestionService,
    ) -> None:
        self._instances = instances
        self._definitions = definitions
        self._suggestions = suggestions

    async def get_suggested_transitions(
        self,
        instance_id: str,
        organization_id: str,
        entity: Mapping[str, Any] | None = None,
    ) -> list[SuggestedTransition]:
        instance = await self._instances.find_by_id(instance_id, organization_id)
        if instance is None or not instance.is_running:
            return []
        definition = await self._definitions.find_by_id(
            instance.workflow_definition_id, organization_id
        )
        if definition is None:
            return []

        to_states = list(
            dict.fromkeys(t.to_state for t in definition.transitions_from(instance.current_state))
        )
        if not to_states:
            return []

        return await self._suggestions.get_suggested_transitions(
            current_state=instance.current_state,
            entity_type=instance.entity_type,
            to_states=to_states,
            entity=entity,
            instance_id=instance.id,
        )


class GetWorkflowHistoryService:
    def __init__(self, *, instances: InstanceStore, history: HistoryStore) -> None:
        self._instances = instances
        self._history = history

    async def get_history(self, instance_id: str, organization_id: str) -> list[HistoryEntry]:
        instance = await self._instances.find_by_id(instance_id, organization_id)
        if instance is None:
            raise BusinessRuleViolation("Workflow instance not found")
        return await self._history.find_by_instance_id(instance.id)
