"""Transition actions.

An action identifier takes one of three shapes:

- ``notify``: a bare name
- ``notify:{"message": "hi"}``: name plus JSON params (non-JSON params become ``{"value": raw}``)
- ``{"action": "notify", "params": {...}}``: a JSON object

Recognised actions record their intent as a structured log record; the transition
service turns the outcome into a ``workflow.action.executed`` event. Execution never
raises: every failure is returned as ``ActionResult(executed=False, error=...)``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .records import ActionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParsedAction:
    name: str
    params: dict[str, Any] = field(default_factory=dict)


def parse_action(action: str) -> ParsedAction:
    """Split an action identifier into its name and params.

    Raises:
        ValueError: If a JSON-object action is not valid JSON.
    """

    text = action.strip()
    if text.startswith("{"):
        obj = json.loads(text)
        if not isinstance(obj, dict):
            raise ValueError("Action object must be a JSON object")
        name = obj.get("action") or obj.get("name") or "unknown"
        params = obj.get("params") or obj
        return ParsedAction(name=str(name), params=dict(params) if isinstance(params, dict) else {})

    if ":" in text:
        name, raw = text.split(":", 1)
        try:
            params = json.loads(raw)
        except json.JSONDecodeError:
            params = {"value": raw}
        if not isinstance(params, dict):
            params = {"value": params}
        return ParsedAction(name=name, params=params)

    return ParsedAction(name=text)


Handler = Callable[[ParsedAction, Mapping[str, Any] | None, Mapping[str, Any] | None], None]


def _notify(action: ParsedAction, _entity: Mapping[str, Any] | None, _context: Mapping[str, Any] | None) -> None:
    logger.info(
        "Action notify",
        extra={"action": "notify", "notification": action.params.get("message") or "Workflow transition occurred"},
    )


def _update_fields(action: ParsedAction, _entity: Mapping[str, Any] | None, _context: Mapping[str, Any] | None) -> None:
    logger.info(
        "Action update_fields",
        extra={"action": "update_fields", "fields": action.params.get("fields") or {}},
    )


def _trigger_webhook(
    action: ParsedAction, _entity: Mapping[str, Any] | None, _context: Mapping[str, Any] | None
) -> None:
    logger.info(
        "Action trigger_webhook",
        extra={"action": "trigger_webhook", "url": action.params.get("url") or "not specified"},
    )


def _log(action: ParsedAction, _entity: Mapping[str, Any] | None, _context: Mapping[str, Any] | None) -> None:
    message = action.params.get("message")
    if not message:
        message = json.dumps(action.params, ensure_ascii=False, default=str)
    logger.info("Action log", extra={"action": "log", "detail": message})


HANDLERS: dict[str, Handler] = {
    "notify": _notify,
    "updatefields": _update_fields,
    "update_fields": _update_fields,
    "triggerwebhook": _trigger_webhook,
    "trigger_webhook": _trigger_webhook,
    "log": _log,
}


def execute_action(
    action: str,
    entity: Mapping[str, Any] | None = None,
    context: Mapping[str, Any] | None = None,
) -> ActionResult:
    try:
        parsed = parse_action(action)
        handler = HANDLERS.get(parsed.name.lower())
        if handler is None:
            logger.warning("Unknown action", extra={"action": parsed.name})
            return ActionResult(executed=False, action=action, error=f"Unknown action: {parsed.name}")
        handler(parsed, entity, context)
        return ActionResult(executed=True, action=action)
    except Exception as e:
        logger.warning("Action execution failed", extra={"action": action, "error": str(e)})
        return ActionResult(executed=False, action=action, error=str(e) or "Action execution failed")
