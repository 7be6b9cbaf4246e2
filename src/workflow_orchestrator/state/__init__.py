"""Persistence contracts plus in-memory and JSON-file reference stores."""

from workflow_orchestrator.state.json_store import (
    JsonDefinitionStore,
    JsonHistoryStore,
    JsonInstanceStore,
    JsonStores,
    JsonSuggestionLogStore,
)
from workflow_orchestrator.state.stores import (
    DefinitionStore,
    EntityUpdater,
    HistoryStore,
    InMemoryDefinitionStore,
    InMemoryHistoryStore,
    InMemoryInstanceStore,
    InMemorySuggestionLogStore,
    InstanceStore,
    SuggestionLogStore,
)

__all__ = [
    "DefinitionStore",
    "EntityUpdater",
    "HistoryStore",
    "InMemoryDefinitionStore",
    "InMemoryHistoryStore",
    "InMemoryInstanceStore",
    "InMemorySuggestionLogStore",
    "InstanceStore",
    "JsonDefinitionStore",
    "JsonHistoryStore",
    "JsonInstanceStore",
    "JsonStores",
    "JsonSuggestionLogStore",
    "SuggestionLogStore",
]
