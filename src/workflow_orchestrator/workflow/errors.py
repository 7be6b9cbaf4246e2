from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow errors carrying a human-readable message."""


class DomainError(WorkflowError):
    """An invariant of a definition or instance was violated."""


class BusinessRuleViolation(WorkflowError):
    """A lifecycle service refused a request (not found, duplicate, wrong status)."""
