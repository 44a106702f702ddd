"""Configuration package for the orchestration core."""

from .orchestrator_config import OrchestratorConfig

__all__ = ["OrchestratorConfig"]
