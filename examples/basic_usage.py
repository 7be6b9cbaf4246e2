#!/usr/bin/env python3
"""Programmatic workflow example.

This drives the engine components directly:

* build and activate a deal-approval definition
* start an instance for one opportunity
* move it through a guarded transition and a final transition
* print the audit history and the emitted events

Everything is kept in memory unless `--state-dir` is given, in which case the
JSON-file stores are used instead.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Sequence

from workflow_orchestrator.core.config import LLMConfig, StateConfig
from workflow_orchestrator.llm.registry import StaticModelRegistry
from workflow_orchestrator.logging import configure_logging
from workflow_orchestrator.state import (
    InMemoryDefinitionStore,
    InMemoryHistoryStore,
    InMemoryInstanceStore,
    JsonStores,
)
from workflow_orchestrator.workflow.ai_guard import AiGuardEvaluator
from workflow_orchestrator.workflow.definition import definition_from_document
from workflow_orchestrator.workflow.events import InMemoryEventPublisher
from workflow_orchestrator.workflow.services import (
    GetWorkflowHistoryService,
    StartWorkflowInstanceCommand,
    StartWorkflowInstanceService,
)
from workflow_orchestrator.workflow.transitions import (
    ExecuteTransitionCommand,
    ExecuteTransitionService,
)

ORG_ID = "acme"

DEAL_APPROVAL = {
    "name": "Deal approval",
    "entityType": "Opportunity",
    "states": [
        {"name": "draft", "initial": True},
        {"name": "approved"},
        {"name": "rejected", "final": True},
        {"name": "completed", "final": True},
    ],
    "transitions": [
        {"from": "draft", "to": "approved", "guard": "entity.amount > 1000"},
        {"from": "draft", "to": "rejected"},
        {
            "from": "approved",
            "to": "completed",
            "action": 'notify:{"message": "Deal closed"}',
        },
    ],
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a deal through the approval workflow.")
    parser.add_argument("--amount", type=float, default=1500, help="Deal amount")
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Persist to JSON files in this directory instead of memory",
    )
    return parser.parse_args(argv)


async def run(amount: float, state_dir: Path | None) -> int:
    if state_dir is not None:
        stores = JsonStores.from_config(StateConfig(storage_path=state_dir))
        definitions, instances, history = stores.definitions, stores.instances, stores.history
    else:
        definitions = InMemoryDefinitionStore()
        instances = InMemoryInstanceStore()
        history = InMemoryHistoryStore()
    publisher = InMemoryEventPublisher()

    definition = definition_from_document(DEAL_APPROVAL, id="deal-approval", organization_id=ORG_ID)
    definition.activate()
    await definitions.save(definition)

    instance = await StartWorkflowInstanceService(
        definitions=definitions, instances=instances, publisher=publisher
    ).execute(
        StartWorkflowInstanceCommand(
            workflow_definition_id=definition.id,
            entity_type="Opportunity",
            entity_id="opp-42",
            organization_id=ORG_ID,
            user_id="alice",
        )
    )
    print(f"Started {instance.id} in '{instance.current_state}'")

    transitions = ExecuteTransitionService(
        instances=instances,
        definitions=definitions,
        history=history,
        publisher=publisher,
        ai_guard=AiGuardEvaluator(StaticModelRegistry.from_config(LLMConfig())),
    )
    entity = {"id": "opp-42", "amount": amount}
    for to_state in ("approved", "completed"):
        result = await transitions.execute(
            ExecuteTransitionCommand(
                instance_id=instance.id,
                to_state=to_state,
                user_id="alice",
                organization_id=ORG_ID,
                entity=entity,
            )
        )
        if not result.success:
            print(f"-> {to_state}: rejected ({result.error})")
            return 4
        print(f"-> {to_state}: ok (history {result.history_id})")

    entries = await GetWorkflowHistoryService(instances=instances, history=history).get_history(
        instance.id, ORG_ID
    )
    for entry in entries:
        print(f"  {entry.timestamp.isoformat()} {entry.from_state} -> {entry.to_state}")
    for event in publisher.events:
        print(f"  event {event.type}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging("WARNING")
    return asyncio.run(run(args.amount, args.state_dir))


if __name__ == "__main__":
    raise SystemExit(main())
