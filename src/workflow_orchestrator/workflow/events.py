from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

logger = logging.getLogger(__name__)

INSTANCE_STARTED = "workflow.instance.started"
TRANSITIONED = "workflow.transitioned"
INSTANCE_COMPLETED = "workflow.instance.completed"
INSTANCE_CANCELLED = "workflow.instance.cancelled"
ACTION_EXECUTED = "workflow.action.executed"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class WorkflowEvent:
    """A domain event emitted after a workflow change has been persisted.

    Publishers deliver events fire-and-forget; the engine never waits on consumers.
    """

    type: str
    payload: dict[str, object]
    occurred_at: datetime = field(default_factory=_utc_now)


def instance_started(
    *, instance_id: str, definition_id: str, entity_type: str, entity_id: str
) -> WorkflowEvent:
    return WorkflowEvent(
        type=INSTANCE_STARTED,
        payload={
            "instance_id": instance_id,
            "definition_id": definition_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
        },
    )


def transitioned(
    *, instance_id: str, from_state: str, to_state: str, triggered_by_id: str | None
) -> WorkflowEvent:
    return WorkflowEvent(
        type=TRANSITIONED,
        payload={
            "instance_id": instance_id,
            "from_state": from_state,
            "to_state": to_state,
            "triggered_by_id": triggered_by_id,
        },
    )


def instance_completed(
    *, instance_id: str, final_state: str, completed_at: datetime | None
) -> WorkflowEvent:
    at = completed_at or _utc_now()
    return WorkflowEvent(
        type=INSTANCE_COMPLETED,
        payload={
            "instance_id": instance_id,
            "final_state": final_state,
            "completed_at": at.isoformat(),
        },
        occurred_at=at,
    )


def instance_cancelled(*, instance_id: str, cancelled_at: datetime | None) -> WorkflowEvent:
    at = cancelled_at or _utc_now()
    return WorkflowEvent(
        type=INSTANCE_CANCELLED,
        payload={"instance_id": instance_id, "cancelled_at": at.isoformat()},
        occurred_at=at,
    )


def action_executed(
    *, instance_id: str, action: str, executed: bool, error: str | None
) -> WorkflowEvent:
    return WorkflowEvent(
        type=ACTION_EXECUTED,
        payload={
            "instance_id": instance_id,
            "action": action,
            "executed": executed,
            "error": error,
        },
    )


class EventPublisher(Protocol):
    def publish(self, event: WorkflowEvent) -> None: ...


class InMemoryEventPublisher:
    """Collects events in order. Useful for tests and local runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[WorkflowEvent] = []

    def publish(self, event: WorkflowEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[WorkflowEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> list[WorkflowEvent]:
        return [e for e in self.events if e.type == event_type]


class LoggingEventPublisher:
    """Writes each event as a structured log record."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def publish(self, event: WorkflowEvent) -> None:
        self._log.info(
            "Workflow event",
            extra={
                "event_type": event.type,
                "occurred_at": event.occurred_at.isoformat(),
                "payload": event.payload,
            },
        )
