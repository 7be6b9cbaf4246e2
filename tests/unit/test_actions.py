"""Unit tests for transition action parsing and execution."""

from __future__ import annotations

import logging

import pytest

from workflow_orchestrator.workflow.actions import execute_action, parse_action


def test_parse_bare_name() -> None:
    parsed = parse_action("notify")

    assert parsed.name == "notify"
    assert parsed.params == {}


def test_parse_name_with_json_params() -> None:
    parsed = parse_action('notify:{"message": "Deal approved: ship it"}')

    assert parsed.name == "notify"
    assert parsed.params == {"message": "Deal approved: ship it"}


def test_parse_name_with_raw_params() -> None:
    parsed = parse_action("log:not json")

    assert parsed.name == "log"
    assert parsed.params == {"value": "not json"}


def test_parse_json_object() -> None:
    with_params = parse_action('{"action": "trigger_webhook", "params": {"url": "https://hook"}}')
    assert with_params.name == "trigger_webhook"
    assert with_params.params == {"url": "https://hook"}

    flat = parse_action('{"name": "log", "message": "hi"}')
    assert flat.name == "log"
    assert flat.params == {"name": "log", "message": "hi"}

    nameless = parse_action('{"message": "hi"}')
    assert nameless.name == "unknown"


@pytest.mark.parametrize(
    "action",
    ["notify", "NOTIFY", "updateFields", "update_fields", "triggerWebhook", "trigger_webhook", "log"],
)
def test_recognised_actions_execute(action: str) -> None:
    result = execute_action(action, {"id": "opp-1"}, {})

    assert result.executed is True
    assert result.action == action
    assert result.error is None


def test_unknown_action_is_not_executed() -> None:
    result = execute_action("sendFax:{}")

    assert result.executed is False
    assert result.action == "sendFax:{}"
    assert result.error == "Unknown action: sendFax"


def test_invalid_json_object_never_raises() -> None:
    result = execute_action("{not json")

    assert result.executed is False
    assert result.error


def test_notify_logs_structured_outcome(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="workflow_orchestrator.workflow.actions"):
        execute_action('notify:{"message": "Deal approved"}')

    record = next(r for r in caplog.records if r.getMessage() == "Action notify")
    assert record.notification == "Deal approved"  # type: ignore[attr-defined]
