"""Persistence contracts and in-memory reference stores.

Stores keep serialized records rather than live objects, so a loaded definition or
instance is a private copy: nothing changes in the store until ``save`` is called.
"""

from __future__ import annotations

import copy
import threading
import uuid
from collections.abc import Mapping
from typing import Any, Protocol

from workflow_orchestrator.workflow.definition import DefinitionStatus, WorkflowDefinition
from workflow_orchestrator.workflow.instance import InstanceStatus, WorkflowInstance
from workflow_orchestrator.workflow.records import AutoSuggestionLog, HistoryEntry


def new_id() -> str:
    return uuid.uuid4().hex


class DefinitionStore(Protocol):
    async def find_by_id(self, id: str, organization_id: str) -> WorkflowDefinition | None: ...

    async def save(self, definition: WorkflowDefinition) -> None: ...

    async def find_all(
        self, organization_id: str, entity_type: str | None = None
    ) -> list[WorkflowDefinition]: ...

    async def find_active(self) -> list[WorkflowDefinition]: ...


class InstanceStore(Protocol):
    async def find_by_id(self, id: str, organization_id: str) -> WorkflowInstance | None: ...

    async def save(self, instance: WorkflowInstance) -> None: ...

    async def find_running_instance(
        self, entity_type: str, entity_id: str, definition_id: str, organization_id: str
    ) -> WorkflowInstance | None: ...

    async def find_all(
        self,
        organization_id: str,
        definition_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> list[WorkflowInstance]: ...

    async def find_running_by_definition(self, definition_id: str) -> list[WorkflowInstance]: ...


class HistoryStore(Protocol):
    async def create(self, entry: HistoryEntry) -> HistoryEntry: ...

    async def find_by_instance_id(self, instance_id: str) -> list[HistoryEntry]: ...


class SuggestionLogStore(Protocol):
    async def create(self, entry: AutoSuggestionLog) -> AutoSuggestionLog: ...

    async def find_by_instance_id(self, instance_id: str) -> list[AutoSuggestionLog]: ...


class EntityUpdater(Protocol):
    """Writes fields onto the business entity a workflow instance tracks."""

    async def update(
        self, entity_id: str, fields: Mapping[str, Any], organization_id: str
    ) -> object: ...


class InMemoryDefinitionStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, dict[str, Any]] = {}

    async def find_by_id(self, id: str, organization_id: str) -> WorkflowDefinition | None:
        with self._lock:
            raw = self._records.get(id)
        if raw is None or raw["organization_id"] != organization_id:
            return None
        return WorkflowDefinition.from_record(raw)

    async def save(self, definition: WorkflowDefinition) -> None:
        with self._lock:
            self._records[definition.id] = copy.deepcopy(definition.to_record())

    async def find_all(
        self, organization_id: str, entity_type: str | None = None
    ) -> list[WorkflowDefinition]:
        with self._lock:
            records = list(self._records.values())
        return [
            WorkflowDefinition.from_record(r)
            for r in records
            if r["organization_id"] == organization_id
            and (entity_type is None or r["entity_type"] == entity_type)
        ]

    async def find_active(self) -> list[WorkflowDefinition]:
        with self._lock:
            records = list(self._records.values())
        return [
            WorkflowDefinition.from_record(r)
            for r in records
            if r["status"] == DefinitionStatus.ACTIVE.value
        ]


class InMemoryInstanceStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, dict[str, Any]] = {}

    def _select(self, **match: object) -> list[WorkflowInstance]:
        with self._lock:
            records = list(self._records.values())
        return [
            WorkflowInstance.from_record(r)
            for r in records
            if all(v is None or r[k] == v for k, v in match.items())
        ]

    async def find_by_id(self, id: str, organization_id: str) -> WorkflowInstance | None:
        with self._lock:
            raw = self._records.get(id)
        if raw is None or raw["organization_id"] != organization_id:
            return None
        return WorkflowInstance.from_record(raw)

    async def save(self, instance: WorkflowInstance) -> None:
        with self._lock:
            self._records[instance.id] = copy.deepcopy(instance.to_record())

    async def find_running_instance(
        self, entity_type: str, entity_id: str, definition_id: str, organization_id: str
    ) -> WorkflowInstance | None:
        found = self._select(
            organization_id=organization_id,
            workflow_definition_id=definition_id,
            entity_type=entity_type,
            entity_id=entity_id,
            status=InstanceStatus.RUNNING.value,
        )
        return found[0] if found else None

    async def find_all(
        self,
        organization_id: str,
        definition_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> list[WorkflowInstance]:
        return self._select(
            organization_id=organization_id,
            workflow_definition_id=definition_id,
            entity_type=entity_type,
            entity_id=entity_id,
        )

    async def find_running_by_definition(self, definition_id: str) -> list[WorkflowInstance]:
        return self._select(
            workflow_definition_id=definition_id, status=InstanceStatus.RUNNING.value
        )


class InMemoryHistoryStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = []

    async def create(self, entry: HistoryEntry) -> HistoryEntry:
        stored = entry.model_copy(update={"id": entry.id or new_id()})
        with self._lock:
            self._entries.append(stored)
        return stored

    async def find_by_instance_id(self, instance_id: str) -> list[HistoryEntry]:
        with self._lock:
            entries = [e for e in self._entries if e.workflow_instance_id == instance_id]
        return sorted(entries, key=lambda e: e.timestamp)


class InMemorySuggestionLogStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[AutoSuggestionLog] = []

    async def create(self, entry: AutoSuggestionLog) -> AutoSuggestionLog:
        stored = entry.model_copy(update={"id": entry.id or new_id()})
        with self._lock:
            self._entries.append(stored)
        return stored

    async def find_by_instance_id(self, instance_id: str) -> list[AutoSuggestionLog]:
        with self._lock:
            entries = [e for e in self._entries if e.workflow_instance_id == instance_id]
        return sorted(entries, key=lambda e: e.created_at)

    @property
    def entries(self) -> list[AutoSuggestionLog]:
        with self._lock:
            return list(self._entries)
