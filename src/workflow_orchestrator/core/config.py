"""Core configuration for the workflow orchestrator."""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_orchestrator.logging import configure_logging


class LLMConfig(BaseSettings):
    """Configuration for the default model used by AI guards and suggestions."""

    api_key: str | None = Field(
        default=None,
        description="API key for the model endpoint. Without it AI guards fail closed.",
    )
    base_url: str | None = Field(
        default=None,
        description="Base URL of an OpenAI-compatible endpoint (None = provider default)",
    )
    model: str = Field(
        default="gpt-4o-mini",
        description="Model name sent with each request",
    )
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for guard and suggestion calls",
    )
    guard_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Hard timeout for one AI guard call",
    )
    suggestion_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Timeout for one AI suggestion call",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_LLM_",
        env_file=".env",
        extra="ignore",
    )


class StateConfig(BaseSettings):
    """Configuration for the local JSON-file stores."""

    storage_path: Path = Field(
        default=Path(".state"),
        description="Directory holding definitions, instances and audit records",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_STATE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def definitions_file(self) -> Path:
        return self.storage_path / "definitions.json"

    @property
    def instances_file(self) -> Path:
        return self.storage_path / "instances.json"

    @property
    def history_file(self) -> Path:
        return self.storage_path / "history.json"

    @property
    def suggestion_log_file(self) -> Path:
        return self.storage_path / "auto_suggestions.json"


class AutoTransitionConfig(BaseSettings):
    """Configuration for the daily auto-transition sweep."""

    schedule_hour: int = Field(
        default=2,
        ge=0,
        le=23,
        description="Hour of day (UTC) at which the sweep runs",
    )
    schedule_minute: int = Field(
        default=0,
        ge=0,
        le=59,
        description="Minute of the hour at which the sweep runs",
    )
    allow_execute: bool = Field(
        default=False,
        description=(
            "If true, definitions whose autoTransition strategy is 'execute' have the top "
            "suggestion executed. When false, 'execute' behaves like 'audit'."
        ),
    )
    system_actor_id: str = Field(
        default="system:auto-transition",
        description="Actor recorded on transitions executed by the sweep",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_AUTO_TRANSITION_",
        env_file=".env",
        extra="ignore",
    )


class OrchestratorConfig(BaseSettings):
    """Main configuration for the orchestrator."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )
    state: StateConfig = Field(
        default_factory=StateConfig,
        description="State configuration",
    )
    auto_transition: AutoTransitionConfig = Field(
        default_factory=AutoTransitionConfig,
        description="Auto-transition sweep configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.log_level)

        if self.debug:
            logging.getLogger("workflow_orchestrator").setLevel(logging.DEBUG)
