"""Unit tests for the daily auto-transition sweep and its scheduler."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest
from conftest import ORG_ID, FakeProvider, build_definition

from workflow_orchestrator.llm.registry import StaticModelRegistry
from workflow_orchestrator.state.stores import (
    InMemoryDefinitionStore,
    InMemoryHistoryStore,
    InMemoryInstanceStore,
    InMemorySuggestionLogStore,
)
from workflow_orchestrator.workflow.ai_guard import AiGuardEvaluator
from workflow_orchestrator.workflow.auto_transition import (
    DEFAULT_SYSTEM_ACTOR_ID,
    AutoTransitionJob,
    DailyScheduler,
    next_run_after,
)
from workflow_orchestrator.workflow.events import InMemoryEventPublisher
from workflow_orchestrator.workflow.instance import WorkflowInstance
from workflow_orchestrator.workflow.services import GetSuggestedTransitionsService
from workflow_orchestrator.workflow.suggestions import AiSuggestionService, SuggestedTransition
from workflow_orchestrator.workflow.transitions import ExecuteTransitionService

REPLY = '{"suggestions": [{"toState": "approved", "reason": "Budget confirmed"}]}'


class Sweep:
    def __init__(self, registry: StaticModelRegistry) -> None:
        self.definitions = InMemoryDefinitionStore()
        self.instances = InMemoryInstanceStore()
        self.history = InMemoryHistoryStore()
        self.logs = InMemorySuggestionLogStore()
        self.provider = FakeProvider(REPLY)
        self.suggestions = GetSuggestedTransitionsService(
            instances=self.instances,
            definitions=self.definitions,
            suggestions=AiSuggestionService(registry, provider_factory=lambda _d: self.provider),
        )
        self.transitions = ExecuteTransitionService(
            instances=self.instances,
            definitions=self.definitions,
            history=self.history,
            publisher=InMemoryEventPublisher(),
            ai_guard=AiGuardEvaluator(registry),
        )

    async def seed(self, policy: dict[str, Any] | None, *, count: int = 2) -> None:
        metadata = {"autoTransition": policy} if policy is not None else None
        definition = build_definition(metadata=metadata)
        await self.definitions.save(definition)
        for n in range(1, count + 1):
            await self.instances.save(
                WorkflowInstance.create(
                    f"inst-{n}", ORG_ID, definition, "Opportunity", f"opp-{n}", "user-1"
                )
            )

    def job(self, **kwargs: Any) -> AutoTransitionJob:
        kwargs.setdefault("suggestions", self.suggestions)
        return AutoTransitionJob(
            definitions=self.definitions,
            instances=self.instances,
            suggestion_logs=self.logs,
            transitions=self.transitions,
            **kwargs,
        )

    async def states(self) -> list[str]:
        return [i.current_state for i in await self.instances.find_all(ORG_ID)]


@pytest.fixture
def sweep(model_registry: StaticModelRegistry) -> Sweep:
    return Sweep(model_registry)


@pytest.mark.asyncio
async def test_audit_logs_top_suggestion_without_transitioning(sweep: Sweep) -> None:
    await sweep.seed({"enabled": True})

    summary = await sweep.job().run()

    assert summary.definitions_scanned == 1
    assert summary.instances_scanned == 2
    assert summary.suggestions_logged == 2
    assert summary.transitions_executed == 0
    assert summary.failures == []
    assert {log.workflow_instance_id for log in sweep.logs.entries} == {"inst-1", "inst-2"}
    log = sweep.logs.entries[0]
    assert (log.suggested_to_state, log.reason, log.strategy) == (
        "approved",
        "Budget confirmed",
        "audit",
    )
    assert log.organization_id == ORG_ID
    assert await sweep.states() == ["draft", "draft"]


@pytest.mark.asyncio
async def test_disabled_policy_is_skipped(sweep: Sweep) -> None:
    await sweep.seed({"enabled": "yes"})

    summary = await sweep.job().run()

    assert summary.definitions_scanned == 0
    assert sweep.logs.entries == []
    assert sweep.provider.calls == []


@pytest.mark.asyncio
async def test_execute_strategy_requires_global_switch(sweep: Sweep) -> None:
    await sweep.seed({"enabled": True, "strategy": "execute"})

    summary = await sweep.job().run()

    assert summary.transitions_executed == 0
    assert [log.strategy for log in sweep.logs.entries] == ["audit", "audit"]
    assert await sweep.states() == ["draft", "draft"]


@pytest.mark.asyncio
async def test_execute_strategy_transitions_as_system_actor(sweep: Sweep) -> None:
    await sweep.seed({"enabled": True, "strategy": "execute"}, count=1)

    summary = await sweep.job(allow_execute=True).run()

    assert summary.transitions_executed == 1
    assert [log.strategy for log in sweep.logs.entries] == ["execute"]
    assert await sweep.states() == ["approved"]
    [entry] = await sweep.history.find_by_instance_id("inst-1")
    assert entry.triggered_by_id == DEFAULT_SYSTEM_ACTOR_ID


@pytest.mark.asyncio
async def test_unknown_strategy_falls_back_to_audit(sweep: Sweep) -> None:
    await sweep.seed({"enabled": True, "strategy": "yolo"}, count=1)

    summary = await sweep.job(allow_execute=True).run()

    assert summary.transitions_executed == 0
    assert [log.strategy for log in sweep.logs.entries] == ["audit"]


@pytest.mark.asyncio
async def test_failing_instance_does_not_stop_the_sweep(sweep: Sweep) -> None:
    await sweep.seed({"enabled": True}, count=3)

    async def suggest(instance_id: str, organization_id: str, entity: object = None):
        if instance_id == "inst-2":
            raise RuntimeError("store unavailable")
        return [SuggestedTransition("rejected", "")]

    suggestions = Mock()
    suggestions.get_suggested_transitions = AsyncMock(side_effect=suggest)

    summary = await sweep.job(suggestions=suggestions).run()

    assert summary.instances_scanned == 3
    assert summary.suggestions_logged == 2
    assert summary.failures == ["inst-2"]
    assert all(log.reason is None for log in sweep.logs.entries)


@pytest.mark.asyncio
async def test_no_suggestion_writes_nothing(sweep: Sweep) -> None:
    await sweep.seed({"enabled": True}, count=1)
    sweep.provider.reply = '{"suggestions": []}'

    summary = await sweep.job().run()

    assert summary.instances_scanned == 1
    assert summary.suggestions_logged == 0
    assert sweep.logs.entries == []


def test_next_run_after() -> None:
    before = datetime(2024, 5, 1, 1, 30, tzinfo=UTC)
    assert next_run_after(before, hour=2, minute=0) == datetime(2024, 5, 1, 2, 0, tzinfo=UTC)

    exactly = datetime(2024, 5, 1, 2, 0, tzinfo=UTC)
    assert next_run_after(exactly, hour=2, minute=0) == datetime(2024, 5, 2, 2, 0, tzinfo=UTC)

    offset = datetime(2024, 5, 1, 3, 30, tzinfo=timezone(timedelta(hours=2)))
    assert next_run_after(offset, hour=2, minute=0) == datetime(2024, 5, 2, 2, 0, tzinfo=UTC)


def test_scheduler_run_once_returns_job_result() -> None:
    async def job() -> str:
        return "done"

    scheduler = DailyScheduler(job, hour=2, minute=0)

    assert scheduler.run_once() == "done"


def test_scheduler_run_once_survives_failure() -> None:
    async def job() -> None:
        raise RuntimeError("boom")

    scheduler = DailyScheduler(job, hour=2, minute=0)

    assert scheduler.run_once() is None


def test_scheduler_stops_before_next_run() -> None:
    calls: list[int] = []

    async def job() -> None:
        calls.append(1)

    scheduler = DailyScheduler(
        job, hour=2, minute=0, clock=lambda: datetime(2024, 5, 1, 1, 0, tzinfo=UTC)
    )
    thread = scheduler.start()
    scheduler.stop(timeout=5)

    assert not thread.is_alive()
    assert calls == []
