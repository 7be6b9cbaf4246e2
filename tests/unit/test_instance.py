"""Unit tests for workflow instances."""

from __future__ import annotations

import pytest
from conftest import ORG_ID, build_definition

from workflow_orchestrator.workflow.errors import DomainError
from workflow_orchestrator.workflow.instance import InstanceStatus, WorkflowInstance


def _start(context: dict[str, object] | None = None) -> WorkflowInstance:
    return WorkflowInstance.create(
        "inst-1", ORG_ID, build_definition(), "Opportunity", "opp-1", "user-1", context
    )


def test_create_requires_active_definition() -> None:
    with pytest.raises(DomainError, match="not active"):
        WorkflowInstance.create(
            "i", ORG_ID, build_definition(activate=False), "Opportunity", "opp-1", None
        )


def test_create_seeds_initial_state() -> None:
    instance = _start({"priority": "high"})

    assert instance.current_state == "draft"
    assert instance.status is InstanceStatus.RUNNING
    assert instance.context == {"priority": "high"}
    assert instance.completed_at is None
    assert instance.started_at.tzinfo is not None


def test_transition_to_declared_state() -> None:
    instance = _start()

    instance.transition_to("approved", build_definition())

    assert instance.current_state == "approved"
    assert instance.is_running


def test_transition_to_final_state_completes() -> None:
    definition = build_definition()
    instance = _start()

    instance.transition_to("approved", definition)
    instance.transition_to("completed", definition)

    assert instance.status is InstanceStatus.COMPLETED
    assert instance.completed_at is not None


def test_transition_to_undeclared_state_fails() -> None:
    instance = _start()

    with pytest.raises(DomainError, match='No transition exists from "draft" to "completed"'):
        instance.transition_to("completed", build_definition())
    assert instance.current_state == "draft"


def test_transition_requires_running() -> None:
    instance = _start()
    instance.cancel()

    assert instance.status is InstanceStatus.CANCELLED
    with pytest.raises(DomainError, match="not running"):
        instance.transition_to("approved", build_definition())


def test_complete_and_cancel_require_running() -> None:
    instance = _start()
    instance.complete("completed")

    assert instance.status is InstanceStatus.COMPLETED
    assert instance.current_state == "completed"
    with pytest.raises(DomainError):
        instance.cancel()
    with pytest.raises(DomainError):
        instance.complete("completed")


def test_record_round_trip() -> None:
    instance = _start({"amount": 1500, "tags": ["a"]})
    instance.transition_to("approved", build_definition())

    restored = WorkflowInstance.from_record(instance.to_record())

    assert restored.id == instance.id
    assert restored.current_state == "approved"
    assert restored.context == {"amount": 1500, "tags": ["a"]}
    assert restored.status is InstanceStatus.RUNNING
    assert restored.started_at == instance.started_at
    assert restored.started_by_id == "user-1"
