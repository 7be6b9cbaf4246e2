"""Workflow definitions: the state-machine blueprint bound to an entity type."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import DomainError

AI_GUARD = "ai_guard"
AI_GUARD_PREFIX = "ai_guard:"

DEFAULT_VERSION = "1.0.0"


class DefinitionStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


def _str(v: object) -> str | None:
    return v if isinstance(v, str) else None


def _dict(v: object) -> dict[str, Any] | None:
    return dict(v) if isinstance(v, dict) else None


@dataclass(frozen=True, slots=True)
class StateDefinition:
    name: str
    initial: bool = False
    final: bool = False
    metadata: dict[str, Any] | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"name": self.name, "initial": self.initial, "final": self.final}
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out

    @staticmethod
    def from_json(obj: dict[str, object]) -> StateDefinition:
        return StateDefinition(
            name=str(obj.get("name", "")),
            initial=obj.get("initial") is True,
            final=obj.get("final") is True,
            metadata=_dict(obj.get("metadata")),
        )


@dataclass(frozen=True, slots=True)
class TransitionDefinition:
    """A declared `(from, to)` edge with an optional guard and action."""

    from_state: str
    to_state: str
    guard: str | None = None
    action: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_ai_guarded(self) -> bool:
        return self.guard is not None and (
            self.guard == AI_GUARD or self.guard.startswith(AI_GUARD_PREFIX)
        )

    @property
    def ai_guard_rule(self) -> str | None:
        """Free-text rule of an `ai_guard:<rule>` guard, if any."""

        if self.guard is None or not self.guard.startswith(AI_GUARD_PREFIX):
            return None
        rule = self.guard[len(AI_GUARD_PREFIX) :].strip()
        return rule or None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"from": self.from_state, "to": self.to_state}
        if self.guard is not None:
            out["guard"] = self.guard
        if self.action is not None:
            out["action"] = self.action
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out

    @staticmethod
    def from_json(obj: dict[str, object]) -> TransitionDefinition:
        # Actions may be stored as JSON objects; normalise to their string form.
        action_raw = obj.get("action")
        if isinstance(action_raw, dict):
            action: str | None = json.dumps(action_raw, ensure_ascii=False)
        else:
            action = _str(action_raw) or None
        return TransitionDefinition(
            from_state=str(obj.get("from", "")),
            to_state=str(obj.get("to", "")),
            guard=_str(obj.get("guard")) or None,
            action=action,
            metadata=_dict(obj.get("metadata")),
        )


@dataclass(frozen=True, slots=True)
class AutoTransitionPolicy:
    enabled: bool = False
    strategy: str = "audit"

    @staticmethod
    def from_metadata(metadata: dict[str, Any] | None) -> AutoTransitionPolicy:
        raw = (metadata or {}).get("autoTransition")
        if not isinstance(raw, dict):
            return AutoTransitionPolicy()
        strategy = raw.get("strategy")
        return AutoTransitionPolicy(
            enabled=raw.get("enabled") is True,
            strategy=strategy if isinstance(strategy, str) and strategy else "audit",
        )


class WorkflowDefinition:
    """A named state machine bound to an entity type.

    Build new definitions through :meth:`create`, which enforces the structural
    invariants. :meth:`from_persistence` rebuilds a stored definition as-is.
    """

    def __init__(
        self,
        *,
        id: str,
        organization_id: str,
        name: str,
        entity_type: str,
        states: Sequence[StateDefinition],
        transitions: Sequence[TransitionDefinition],
        status: DefinitionStatus,
        description: str | None = None,
        version: str = DEFAULT_VERSION,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.id = id
        self.organization_id = organization_id
        self.name = name
        self.description = description
        self.entity_type = entity_type
        self.states: tuple[StateDefinition, ...] = tuple(states)
        self.transitions: tuple[TransitionDefinition, ...] = tuple(transitions)
        self._status = status
        self.version = version
        self.metadata = metadata

    @property
    def status(self) -> DefinitionStatus:
        return self._status

    @classmethod
    def create(
        cls,
        id: str,
        organization_id: str,
        name: str,
        entity_type: str,
        states: Sequence[StateDefinition],
        transitions: Sequence[TransitionDefinition],
        *,
        description: str | None = None,
        version: str = DEFAULT_VERSION,
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowDefinition:
        if not name.strip():
            raise DomainError("Workflow name must not be empty")
        if not states:
            raise DomainError("Workflow must have at least one state")

        names = [s.name for s in states]
        if len(set(names)) != len(names):
            raise DomainError("State names must be unique")

        initial_count = sum(1 for s in states if s.initial)
        if initial_count != 1:
            raise DomainError("Workflow must have exactly one initial state")

        declared = set(names)
        for t in transitions:
            if t.from_state not in declared or t.to_state not in declared:
                raise DomainError(
                    f"Transition {t.from_state} -> {t.to_state} references unknown state"
                )

        return cls(
            id=id,
            organization_id=organization_id,
            name=name,
            entity_type=entity_type,
            states=states,
            transitions=transitions,
            status=DefinitionStatus.DRAFT,
            description=description,
            version=version,
            metadata=metadata,
        )

    @classmethod
    def from_persistence(
        cls,
        id: str,
        organization_id: str,
        name: str,
        entity_type: str,
        states: Sequence[StateDefinition],
        transitions: Sequence[TransitionDefinition],
        status: DefinitionStatus,
        *,
        description: str | None = None,
        version: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowDefinition:
        """Rebuild a stored definition without re-validating it."""

        return cls(
            id=id,
            organization_id=organization_id,
            name=name,
            entity_type=entity_type,
            states=states,
            transitions=transitions,
            status=status,
            description=description,
            version=version or DEFAULT_VERSION,
            metadata=metadata,
        )

    def activate(self) -> None:
        if not self.states:
            raise DomainError("Cannot activate workflow with no states")
        self._status = DefinitionStatus.ACTIVE

    def deactivate(self) -> None:
        self._status = DefinitionStatus.INACTIVE

    def ensure_can_start(self) -> None:
        if self._status is not DefinitionStatus.ACTIVE:
            raise DomainError("Cannot start workflow: workflow is not active")

    def find_transition(self, from_state: str, to_state: str) -> TransitionDefinition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def transitions_from(self, state: str) -> list[TransitionDefinition]:
        return [t for t in self.transitions if t.from_state == state]

    def get_initial_state(self) -> StateDefinition:
        for s in self.states:
            if s.initial:
                return s
        raise DomainError("No initial state found")

    def get_final_states(self) -> list[StateDefinition]:
        return [s for s in self.states if s.final]

    def is_final_state(self, state_name: str) -> bool:
        return any(s.name == state_name and s.final for s in self.states)

    @property
    def auto_transition_policy(self) -> AutoTransitionPolicy:
        return AutoTransitionPolicy.from_metadata(self.metadata)

    def to_record(self) -> dict[str, object]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "entity_type": self.entity_type,
            "states": [s.to_json() for s in self.states],
            "transitions": [t.to_json() for t in self.transitions],
            "status": self._status.value,
            "version": self.version,
            "metadata": self.metadata,
        }

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> WorkflowDefinition:
        return cls.from_persistence(
            id=str(raw["id"]),
            organization_id=str(raw["organization_id"]),
            name=str(raw.get("name", "")),
            entity_type=str(raw.get("entity_type", "")),
            states=[StateDefinition.from_json(s) for s in raw.get("states") or []],
            transitions=[TransitionDefinition.from_json(t) for t in raw.get("transitions") or []],
            status=DefinitionStatus(raw.get("status", DefinitionStatus.DRAFT.value)),
            description=_str(raw.get("description")),
            version=_str(raw.get("version")),
            metadata=_dict(raw.get("metadata")),
        )

    def __repr__(self) -> str:
        return (
            f"WorkflowDefinition(id={self.id!r}, name={self.name!r}, "
            f"entity_type={self.entity_type!r}, status={self._status.value!r})"
        )


def definition_from_document(
    raw: dict[str, Any], *, id: str, organization_id: str
) -> WorkflowDefinition:
    """Validate a user-authored definition document (`states`/`transitions` lists)."""

    states = [StateDefinition.from_json(s) for s in raw.get("states") or []]
    transitions = [TransitionDefinition.from_json(t) for t in raw.get("transitions") or []]
    return WorkflowDefinition.create(
        id,
        organization_id,
        str(raw.get("name", "")),
        str(raw.get("entityType", raw.get("entity_type", ""))),
        states,
        transitions,
        description=_str(raw.get("description")),
        version=_str(raw.get("version")) or DEFAULT_VERSION,
        metadata=_dict(raw.get("metadata")),
    )

