"""Unit tests for the JSON-file stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import ORG_ID, build_definition

from workflow_orchestrator.core.config import StateConfig
from workflow_orchestrator.state.json_store import (
    JsonDefinitionStore,
    JsonHistoryStore,
    JsonInstanceStore,
    JsonStores,
    JsonSuggestionLogStore,
)
from workflow_orchestrator.workflow.definition import DefinitionStatus
from workflow_orchestrator.workflow.instance import InstanceStatus, WorkflowInstance
from workflow_orchestrator.workflow.records import (
    ActionResult,
    AutoSuggestionLog,
    GuardResult,
    HistoryEntry,
)


@pytest.mark.asyncio
async def test_definition_store_persists_across_instances(temp_state_dir: Path) -> None:
    path = temp_state_dir / "definitions.json"
    store = JsonDefinitionStore(path)
    definition = build_definition(metadata={"autoTransition": {"enabled": True}})
    await store.save(definition)
    await store.save(build_definition(id="def-2", activate=False))

    reopened = JsonDefinitionStore(path)
    loaded = await reopened.find_by_id("def-1", ORG_ID)

    assert loaded is not None
    assert loaded.status is DefinitionStatus.ACTIVE
    assert [s.name for s in loaded.states] == ["draft", "approved", "rejected", "completed"]
    assert loaded.auto_transition_policy.enabled is True
    assert await reopened.find_by_id("def-1", "org-2") is None
    assert [d.id for d in await reopened.find_active()] == ["def-1"]
    assert len(await reopened.find_all(ORG_ID, entity_type="Opportunity")) == 2
    assert await reopened.find_all(ORG_ID, entity_type="Lead") == []


@pytest.mark.asyncio
async def test_state_file_format(temp_state_dir: Path) -> None:
    path = temp_state_dir / "definitions.json"
    await JsonDefinitionStore(path).save(build_definition())

    text = path.read_text(encoding="utf-8")

    assert text.endswith("\n")
    assert text.startswith("[\n  {")
    [record] = json.loads(text)
    assert record["id"] == "def-1"


@pytest.mark.asyncio
async def test_instance_store_upserts_and_filters(temp_state_dir: Path) -> None:
    store = JsonInstanceStore(temp_state_dir / "instances.json")
    definition = build_definition()
    first = WorkflowInstance.create("inst-1", ORG_ID, definition, "Opportunity", "opp-1", "u")
    second = WorkflowInstance.create("inst-2", ORG_ID, definition, "Opportunity", "opp-2", "u")
    await store.save(first)
    await store.save(second)

    second.cancel()
    await store.save(second)

    assert len(await store.find_all(ORG_ID)) == 2
    assert [i.id for i in await store.find_running_by_definition("def-1")] == ["inst-1"]
    running = await store.find_running_instance("Opportunity", "opp-1", "def-1", ORG_ID)
    assert running is not None and running.id == "inst-1"
    assert await store.find_running_instance("Opportunity", "opp-2", "def-1", ORG_ID) is None
    reloaded = await store.find_by_id("inst-2", ORG_ID)
    assert reloaded is not None
    assert reloaded.status is InstanceStatus.CANCELLED
    assert reloaded.completed_at == second.completed_at
    assert await store.find_by_id("inst-2", "org-2") is None


@pytest.mark.asyncio
async def test_history_store_round_trips_nested_results(temp_state_dir: Path) -> None:
    store = JsonHistoryStore(temp_state_dir / "history.json")
    created = await store.create(
        HistoryEntry(
            workflow_instance_id="inst-1",
            from_state="draft",
            to_state="approved",
            triggered_by_id="user-1",
            guard_result=GuardResult(passed=True, type="ai_guard", reason="ok", model="m"),
            action_result=ActionResult(executed=False, action="sendFax", error="Unknown action: sendFax"),
        )
    )

    [loaded] = await JsonHistoryStore(temp_state_dir / "history.json").find_by_instance_id("inst-1")

    assert created.id
    assert loaded == created
    assert await store.find_by_instance_id("inst-2") == []


@pytest.mark.asyncio
async def test_suggestion_log_store(temp_state_dir: Path) -> None:
    store = JsonSuggestionLogStore(temp_state_dir / "auto_suggestions.json")
    entry = await store.create(
        AutoSuggestionLog(
            workflow_instance_id="inst-1", organization_id=ORG_ID, suggested_to_state="approved"
        )
    )

    [loaded] = await store.find_by_instance_id("inst-1")

    assert loaded.id == entry.id
    assert loaded.strategy == "audit"
    assert loaded.reason is None


@pytest.mark.asyncio
async def test_unreadable_file_is_treated_as_empty(temp_state_dir: Path) -> None:
    path = temp_state_dir / "instances.json"
    path.write_text("{not json", encoding="utf-8")

    assert await JsonInstanceStore(path).find_all(ORG_ID) == []


def test_stores_from_config(temp_state_dir: Path) -> None:
    stores = JsonStores.from_config(StateConfig(storage_path=temp_state_dir))

    assert isinstance(stores.definitions, JsonDefinitionStore)
    assert isinstance(stores.instances, JsonInstanceStore)
    assert isinstance(stores.history, JsonHistoryStore)
    assert isinstance(stores.suggestion_logs, JsonSuggestionLogStore)
