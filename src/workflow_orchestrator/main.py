"""CLI entrypoint for the workflow orchestrator.

Operator commands: validate a definition file, try a guard expression, run one
auto-transition sweep, or keep the daily sweep running in the foreground.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from workflow_orchestrator import __version__
from workflow_orchestrator.core.config import OrchestratorConfig
from workflow_orchestrator.llm.registry import StaticModelRegistry
from workflow_orchestrator.state.json_store import JsonStores
from workflow_orchestrator.workflow.ai_guard import AiGuardEvaluator
from workflow_orchestrator.workflow.auto_transition import AutoTransitionJob, DailyScheduler
from workflow_orchestrator.workflow.definition import definition_from_document
from workflow_orchestrator.workflow.errors import WorkflowError
from workflow_orchestrator.workflow.events import LoggingEventPublisher
from workflow_orchestrator.workflow.guards import ExpressionGuardEvaluator
from workflow_orchestrator.workflow.services import GetSuggestedTransitionsService
from workflow_orchestrator.workflow.suggestions import AiSuggestionService
from workflow_orchestrator.workflow.transitions import ExecuteTransitionService

logger = logging.getLogger(__name__)


class UsageError(Exception):
    """Bad command-line input (unreadable file, malformed JSON)."""


def _load_json_object(text: str, *, what: str) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise UsageError(f"{what} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise UsageError(f"{what} must be a JSON object")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-orchestrator",
        description="Multi-tenant workflow orchestration engine",
    )
    parser.add_argument(
        "--version", action="version", version=f"workflow-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser(
        "validate-definition",
        help="Validate a workflow definition JSON file",
    )
    validate.add_argument("path", type=Path, help="Path to the definition JSON file")
    validate.add_argument(
        "--organization-id",
        default="local",
        help="Organization the definition would belong to",
    )

    evaluate = subparsers.add_parser(
        "evaluate-guard",
        help="Evaluate a guard expression against an entity and context",
    )
    evaluate.add_argument("expression", help="Guard expression, e.g. 'entity.amount > 1000'")
    evaluate.add_argument("--entity", default="{}", help="Entity snapshot as a JSON object")
    evaluate.add_argument("--context", default="{}", help="Workflow context as a JSON object")

    subparsers.add_parser(
        "run-auto-transitions",
        help="Run one auto-transition sweep over the local state directory",
    )

    subparsers.add_parser(
        "schedule",
        help="Run the auto-transition sweep daily at the configured UTC time (blocks)",
    )

    return parser


def build_auto_transition_job(config: OrchestratorConfig) -> AutoTransitionJob:
    stores = JsonStores.from_config(config.state)
    models = StaticModelRegistry.from_config(config.llm)

    suggestion_service = AiSuggestionService(
        models,
        timeout_seconds=config.llm.suggestion_timeout_seconds,
        temperature=config.llm.temperature,
    )
    suggestions = GetSuggestedTransitionsService(
        instances=stores.instances,
        definitions=stores.definitions,
        suggestions=suggestion_service,
    )
    transitions = ExecuteTransitionService(
        instances=stores.instances,
        definitions=stores.definitions,
        history=stores.history,
        publisher=LoggingEventPublisher(),
        ai_guard=AiGuardEvaluator(
            models,
            timeout_seconds=config.llm.guard_timeout_seconds,
            temperature=config.llm.temperature,
        ),
    )
    return AutoTransitionJob(
        definitions=stores.definitions,
        instances=stores.instances,
        suggestion_logs=stores.suggestion_logs,
        suggestions=suggestions,
        transitions=transitions,
        allow_execute=config.auto_transition.allow_execute,
        system_actor_id=config.auto_transition.system_actor_id,
    )


def _validate_definition(args: argparse.Namespace) -> int:
    try:
        text = args.path.read_text(encoding="utf-8")
    except OSError as e:
        raise UsageError(f"Cannot read {args.path}: {e}") from e
    raw = _load_json_object(text, what=str(args.path))

    definition = definition_from_document(
        raw,
        id=str(raw.get("id") or uuid.uuid4()),
        organization_id=args.organization_id,
    )
    initial = definition.get_initial_state().name
    finals = ", ".join(s.name for s in definition.get_final_states()) or "none"
    print(
        f"Definition '{definition.name}' is valid: {len(definition.states)} states, "
        f"{len(definition.transitions)} transitions, initial '{initial}', final {finals}"
    )
    return 0


def _evaluate_guard(args: argparse.Namespace) -> int:
    entity = _load_json_object(args.entity, what="--entity")
    context = _load_json_object(args.context, what="--context")

    result = ExpressionGuardEvaluator().evaluate(args.expression, entity, context)
    print(json.dumps({"passed": result.passed, "error": result.error}))
    return 0 if result.passed else 4


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = OrchestratorConfig()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    config.setup_logging()

    try:
        if args.command == "validate-definition":
            return _validate_definition(args)

        if args.command == "evaluate-guard":
            return _evaluate_guard(args)

        if args.command == "run-auto-transitions":
            job = build_auto_transition_job(config)
            summary = asyncio.run(job.run())
            print(json.dumps(asdict(summary), indent=2))
            return 0 if not summary.failures else 4

        if args.command == "schedule":
            job = build_auto_transition_job(config)
            scheduler = DailyScheduler(
                job.run,
                hour=config.auto_transition.schedule_hour,
                minute=config.auto_transition.schedule_minute,
            )
            try:
                scheduler.run_forever()
            except KeyboardInterrupt:
                logger.info("Scheduler stopped")
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except UsageError as e:
        print(str(e), file=sys.stderr)
        return 2

    except WorkflowError as e:
        logger.warning(str(e), extra={"command": args.command})
        print(str(e), file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
