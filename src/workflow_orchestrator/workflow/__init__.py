"""Workflow domain.

This package holds:
- definitions and instances (the state machine and its executions)
- guards (expression interpreter and AI judge) and transition actions
- the transition execution service and instance lifecycle services
- the auto-transition sweep
"""

from workflow_orchestrator.workflow.definition import (
    DefinitionStatus,
    StateDefinition,
    TransitionDefinition,
    WorkflowDefinition,
)
from workflow_orchestrator.workflow.errors import (
    BusinessRuleViolation,
    DomainError,
    WorkflowError,
)
from workflow_orchestrator.workflow.instance import InstanceStatus, WorkflowInstance
from workflow_orchestrator.workflow.transitions import (
    ExecuteTransitionCommand,
    ExecuteTransitionService,
    TransitionResult,
)

__all__ = [
    "BusinessRuleViolation",
    "DefinitionStatus",
    "DomainError",
    "ExecuteTransitionCommand",
    "ExecuteTransitionService",
    "InstanceStatus",
    "StateDefinition",
    "TransitionDefinition",
    "TransitionResult",
    "WorkflowDefinition",
    "WorkflowError",
    "WorkflowInstance",
]
