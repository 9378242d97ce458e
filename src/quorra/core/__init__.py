"""Core orchestrator."""

from quorra.core.orchestrator import Orchestrator

__all__ = ["Orchestrator"]
