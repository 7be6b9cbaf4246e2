"""Expression guard evaluation and transition pre-validation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .definition import TransitionDefinition
from .expression import evaluate_expression, truthy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExpressionGuardResult:
    passed: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class TransitionValidation:
    valid: bool
    error: str | None = None
    guard_result: ExpressionGuardResult | None = None


class ExpressionGuardEvaluator:
    """Evaluates expression guards. Never raises: failures become `passed=False`."""

    def evaluate(
        self,
        expression: str,
        entity: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> ExpressionGuardResult:
        try:
            value = evaluate_expression(expression, entity, context)
        except RecursionError:
            return ExpressionGuardResult(passed=False, error="Guard expression is too deeply nested")
        except Exception as e:
            logger.debug("Guard evaluation failed", extra={"guard": expression, "error": str(e)})
            return ExpressionGuardResult(passed=False, error=str(e) or "Guard evaluation failed")
        return ExpressionGuardResult(passed=truthy(value))

    def validate_transition(
        self,
        transition: TransitionDefinition | None,
        entity: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> TransitionValidation:
        """Check an expression-guarded transition.

        AI guards are reported valid here; they are evaluated by the AI guard
        evaluator at execution time.
        """

        if transition is None:
            return TransitionValidation(valid=False, error="No transition found")
        if not transition.guard or transition.is_ai_guarded:
            return TransitionValidation(valid=True)

        result = self.evaluate(transition.guard, entity, context)
        if not result.passed:
            return TransitionValidation(
                valid=False,
                error=result.error or "Guard condition failed",
                guard_result=result,
            )
        return TransitionValidation(valid=True, guard_result=result)
