"""Unit tests for the command-line entrypoint."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from conftest import ORG_ID, build_definition

from workflow_orchestrator.core.config import StateConfig
from workflow_orchestrator.main import build_parser, main
from workflow_orchestrator.state.json_store import JsonStores
from workflow_orchestrator.workflow.instance import WorkflowInstance

DEFINITION = {
    "name": "Deal approval",
    "entityType": "Opportunity",
    "states": [
        {"name": "draft", "initial": True},
        {"name": "approved"},
        {"name": "closed", "final": True},
    ],
    "transitions": [
        {"from": "draft", "to": "approved", "guard": "entity.amount > 1000"},
        {"from": "approved", "to": "closed", "action": {"action": "notify"}},
    ],
}


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ORCHESTRATOR_LLM_API_KEY", raising=False)
    monkeypatch.setenv("ORCHESTRATOR_STATE_STORAGE_PATH", str(tmp_path / ".state"))
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _write(tmp_path: Path, document: object) -> Path:
    path = tmp_path / "definition.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_validate_definition(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["validate-definition", str(_write(tmp_path, DEFINITION))])

    assert code == 0
    out = capsys.readouterr().out
    assert "Definition 'Deal approval' is valid: 3 states, 2 transitions" in out
    assert "initial 'draft', final closed" in out


def test_invalid_definition_is_a_domain_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    broken = {**DEFINITION, "transitions": [{"from": "draft", "to": "archived"}]}

    code = main(["validate-definition", str(_write(tmp_path, broken))])

    assert code == 3
    assert "references unknown state" in capsys.readouterr().err


def test_unreadable_definition_is_a_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["validate-definition", str(tmp_path / "missing.json")]) == 2
    assert "Cannot read" in capsys.readouterr().err

    assert main(["validate-definition", str(_write(tmp_path, ["not", "an", "object"]))]) == 2
    assert "must be a JSON object" in capsys.readouterr().err


def test_evaluate_guard(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["evaluate-guard", "entity.amount > 1000", "--entity", '{"amount": 1500}']) == 0
    assert json.loads(capsys.readouterr().out.strip().splitlines()[-1]) == {
        "passed": True,
        "error": None,
    }

    assert main(["evaluate-guard", "entity.amount > 1000", "--entity", '{"amount": 5}']) == 4


def test_evaluate_guard_rejects_bad_json(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["evaluate-guard", "true", "--context", "{oops"]) == 2
    assert "--context is not valid JSON" in capsys.readouterr().err


def test_bad_configuration_exits_with_2(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("ORCHESTRATOR_AUTO_TRANSITION_SCHEDULE_HOUR", "25")

    assert main(["run-auto-transitions"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_run_auto_transitions_without_model(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    stores = JsonStores.from_config(StateConfig(storage_path=tmp_path / ".state"))
    definition = build_definition(metadata={"autoTransition": {"enabled": True}})

    async def seed() -> None:
        await stores.definitions.save(definition)
        await stores.instances.save(
            WorkflowInstance.create("inst-1", ORG_ID, definition, "Opportunity", "opp-1", "u")
        )

    asyncio.run(seed())

    code = main(["run-auto-transitions"])

    assert code == 0
    out = capsys.readouterr().out
    assert '"definitions_scanned": 1' in out
    assert '"instances_scanned": 1' in out
    assert '"suggestions_logged": 0' in out
    assert not (tmp_path / ".state" / "auto_suggestions.json").exists()
