"""Workflow Orchestrator.

A multi-tenant engine for state-machine workflows bound to business entities:
- definitions validated on creation and activated before use
- guarded, audited transitions (expression guards or an AI judge)
- a daily auto-transition sweep that records AI suggestions
"""

__version__ = "0.1.0"

from workflow_orchestrator.core.config import OrchestratorConfig

__all__ = ["__version__", "OrchestratorConfig"]
