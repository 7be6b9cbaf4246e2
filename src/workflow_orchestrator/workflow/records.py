"""Append-only audit records written by the engine."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

GuardType = Literal["expression", "ai_guard"]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class GuardResult(BaseModel):
    """Outcome of evaluating a transition guard."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    type: GuardType = "expression"
    reason: str | None = None
    model: str | None = None
    error: str | None = None


class ActionResult(BaseModel):
    """Outcome of running a transition action."""

    model_config = ConfigDict(frozen=True)

    executed: bool
    action: str | None = None
    error: str | None = None


class HistoryEntry(BaseModel):
    """Immutable audit record of one executed transition.

    `id` is assigned by the history store on `create`.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    workflow_instance_id: str
    from_state: str
    to_state: str
    triggered_by_id: str | None = None
    timestamp: datetime = Field(default_factory=_utc_now)
    guard_result: GuardResult | None = None
    action_result: ActionResult | None = None
    metadata: dict[str, Any] | None = None


class AutoSuggestionLog(BaseModel):
    """Suggestion recorded by the auto-transition sweep."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    workflow_instance_id: str
    organization_id: str
    suggested_to_state: str
    reason: str | None = None
    strategy: str = "audit"
    created_at: datetime = Field(default_factory=_utc_now)
