"""Workflow instances: one running execution of a definition against an entity."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .definition import WorkflowDefinition
from .errors import DomainError


class InstanceStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _dt(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return None


class WorkflowInstance:
    """Tracks the current state of one entity inside a workflow.

    The instance only enforces state-machine legality. Guards, actions and side
    effects belong to :class:`~workflow_orchestrator.workflow.transitions.ExecuteTransitionService`.
    """

    def __init__(
        self,
        *,
        id: str,
        organization_id: str,
        workflow_definition_id: str,
        entity_type: str,
        entity_id: str,
        current_state: str,
        context: dict[str, Any],
        status: InstanceStatus,
        started_by_id: str | None,
        started_at: datetime,
        completed_at: datetime | None = None,
    ) -> None:
        self.id = id
        self.organization_id = organization_id
        self.workflow_definition_id = workflow_definition_id
        self.entity_type = entity_type
        self.entity_id = entity_id
        self._current_state = current_state
        self.context = context
        self._status = status
        self.started_by_id = started_by_id
        self.started_at = started_at
        self._completed_at = completed_at

    @property
    def current_state(self) -> str:
        return self._current_state

    @property
    def status(self) -> InstanceStatus:
        return self._status

    @property
    def completed_at(self) -> datetime | None:
        return self._completed_at

    @property
    def is_running(self) -> bool:
        return self._status is InstanceStatus.RUNNING

    @classmethod
    def create(
        cls,
        id: str,
        organization_id: str,
        definition: WorkflowDefinition,
        entity_type: str,
        entity_id: str,
        started_by_id: str | None,
        context: dict[str, Any] | None = None,
    ) -> WorkflowInstance:
        definition.ensure_can_start()
        initial = definition.get_initial_state()
        return cls(
            id=id,
            organization_id=organization_id,
            workflow_definition_id=definition.id,
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=initial.name,
            context=dict(context or {}),
            status=InstanceStatus.RUNNING,
            started_by_id=started_by_id,
            started_at=_utc_now(),
        )

    @classmethod
    def from_persistence(
        cls,
        id: str,
        organization_id: str,
        workflow_definition_id: str,
        entity_type: str,
        entity_id: str,
        current_state: str,
        context: dict[str, Any],
        status: InstanceStatus,
        started_by_id: str | None,
        started_at: datetime,
        completed_at: datetime | None,
    ) -> WorkflowInstance:
        """Rebuild a stored instance without re-validating it."""

        return cls(
            id=id,
            organization_id=organization_id,
            workflow_definition_id=workflow_definition_id,
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=current_state,
            context=context,
            status=status,
            started_by_id=started_by_id,
            started_at=started_at,
            completed_at=completed_at,
        )

    def transition_to(self, to_state: str, definition: WorkflowDefinition) -> None:
        if not self.is_running:
            raise DomainError("Cannot transition: instance is not running")
        if definition.find_transition(self._current_state, to_state) is None:
            raise DomainError(
                f'No transition exists from "{self._current_state}" to "{to_state}"'
            )
        self._current_state = to_state
        if definition.is_final_state(to_state):
            self._status = InstanceStatus.COMPLETED
            self._completed_at = _utc_now()

    def complete(self, final_state: str) -> None:
        if not self.is_running:
            raise DomainError("Cannot complete: instance is not running")
        self._current_state = final_state
        self._status = InstanceStatus.COMPLETED
        self._completed_at = _utc_now()

    def cancel(self) -> None:
        if not self.is_running:
            raise DomainError("Cannot cancel: instance is not running")
        self._status = InstanceStatus.CANCELLED
        self._completed_at = _utc_now()

    def to_record(self) -> dict[str, object]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "workflow_definition_id": self.workflow_definition_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "current_state": self._current_state,
            "context": self.context,
            "status": self._status.value,
            "started_by_id": self.started_by_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self._completed_at.isoformat() if self._completed_at else None,
        }

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> WorkflowInstance:
        context = raw.get("context")
        started_by = raw.get("started_by_id")
        return cls.from_persistence(
            id=str(raw["id"]),
            organization_id=str(raw["organization_id"]),
            workflow_definition_id=str(raw["workflow_definition_id"]),
            entity_type=str(raw.get("entity_type", "")),
            entity_id=str(raw.get("entity_id", "")),
            current_state=str(raw["current_state"]),
            context=dict(context) if isinstance(context, dict) else {},
            status=InstanceStatus(raw.get("status", InstanceStatus.RUNNING.value)),
            started_by_id=started_by if isinstance(started_by, str) else None,
            started_at=_dt(raw.get("started_at")) or _utc_now(),
            completed_at=_dt(raw.get("completed_at")),
        )

    def __repr__(self) -> str:
        return (
            f"WorkflowInstance(id={self.id!r}, current_state={self._current_state!r}, "
            f"status={self._status.value!r})"
        )
