"""JSON-file stores.

Each record kind lives in its own file under the state directory, as a JSON list.
Every call re-reads the file, so several processes may share a state directory as
long as they do not write concurrently.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from workflow_orchestrator.core.config import StateConfig
from workflow_orchestrator.workflow.definition import DefinitionStatus, WorkflowDefinition
from workflow_orchestrator.workflow.instance import InstanceStatus, WorkflowInstance
from workflow_orchestrator.workflow.records import AutoSuggestionLog, HistoryEntry

from .stores import new_id

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


@dataclass
class _JsonListFile:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable state file", extra={"path": str(self.path)})
            return []
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]

    def _save_unlocked(self, items: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(items, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def load(self) -> list[dict[str, Any]]:
        with self._lock:
            return self._load_unlocked()

    def upsert(self, record: dict[str, Any]) -> None:
        with self._lock:
            items = self._load_unlocked()
            for idx, item in enumerate(items):
                if item.get("id") == record["id"]:
                    items[idx] = record
                    break
            else:
                items.append(record)
            self._save_unlocked(items)

    def append(self, record: dict[str, Any]) -> None:
        with self._lock:
            items = self._load_unlocked()
            items.append(record)
            self._save_unlocked(items)


class JsonDefinitionStore:
    def __init__(self, path: Path) -> None:
        self._file = _JsonListFile(path)

    async def find_by_id(self, id: str, organization_id: str) -> WorkflowDefinition | None:
        for raw in self._file.load():
            if raw.get("id") == id and raw.get("organization_id") == organization_id:
                return WorkflowDefinition.from_record(raw)
        return None

    async def save(self, definition: WorkflowDefinition) -> None:
        self._file.upsert(definition.to_record())

    async def find_all(
        self, organization_id: str, entity_type: str | None = None
    ) -> list[WorkflowDefinition]:
        return [
            WorkflowDefinition.from_record(raw)
            for raw in self._file.load()
            if raw.get("organization_id") == organization_id
            and (entity_type is None or raw.get("entity_type") == entity_type)
        ]

    async def find_active(self) -> list[WorkflowDefinition]:
        return [
            WorkflowDefinition.from_record(raw)
            for raw in self._file.load()
            if raw.get("status") == DefinitionStatus.ACTIVE.value
        ]


class JsonInstanceStore:
    def __init__(self, path: Path) -> None:
        self._file = _JsonListFile(path)

    def _select(self, **match: object) -> list[WorkflowInstance]:
        return [
            WorkflowInstance.from_record(raw)
            for raw in self._file.load()
            if all(v is None or raw.get(k) == v for k, v in match.items())
        ]

    async def find_by_id(self, id: str, organization_id: str) -> WorkflowInstance | None:
        found = self._select(id=id, organization_id=organization_id)
        return found[0] if found else None

    async def save(self, instance: WorkflowInstance) -> None:
        self._file.upsert(instance.to_record())

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


class _JsonAppendLog(Generic[RecordT]):
    """Append-only list of pydantic records keyed by ``workflow_instance_id``."""

    model: type[RecordT]
    sort_key: str

    def __init__(self, path: Path) -> None:
        self._file = _JsonListFile(path)

    async def create(self, entry: RecordT) -> RecordT:
        stored = entry.model_copy(update={"id": getattr(entry, "id", None) or new_id()})
        self._file.append(stored.model_dump(mode="json"))
        return stored

    async def find_by_instance_id(self, instance_id: str) -> list[RecordT]:
        entries = [
            self.model.model_validate(raw)
            for raw in self._file.load()
            if raw.get("workflow_instance_id") == instance_id
        ]
        return sorted(entries, key=lambda e: getattr(e, self.sort_key))


class JsonHistoryStore(_JsonAppendLog[HistoryEntry]):
    model = HistoryEntry
    sort_key = "timestamp"


class JsonSuggestionLogStore(_JsonAppendLog[AutoSuggestionLog]):
    model = AutoSuggestionLog
    sort_key = "created_at"


@dataclass(frozen=True, slots=True)
class JsonStores:
    definitions: JsonDefinitionStore
    instances: JsonInstanceStore
    history: JsonHistoryStore
    suggestion_logs: JsonSuggestionLogStore

    @classmethod
    def from_config(cls, config: StateConfig) -> JsonStores:
        return cls(
            definitions=JsonDefinitionStore(config.definitions_file),
            instances=JsonInstanceStore(config.instances_file),
            history=JsonHistoryStore(config.history_file),
            suggestion_logs=JsonSuggestionLogStore(config.suggestion_log_file),
        )
